"""Unit tests for date, relative-time and currency formatting."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.clienter.formatting import (
    format_currency,
    format_date,
    format_relative_time,
    format_time,
    format_time_ago,
)

NOW = datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc)


# ── Dates and Times ──────────────────────────────────────────────────────────


def test_format_time_afternoon():
    assert format_time(datetime(2026, 3, 5, 15, 5, tzinfo=timezone.utc)) == "3:05 PM"


def test_format_time_midnight_and_noon():
    assert format_time(datetime(2026, 3, 5, 0, 0, tzinfo=timezone.utc)) == "12:00 AM"
    assert format_time(datetime(2026, 3, 5, 12, 30, tzinfo=timezone.utc)) == "12:30 PM"


def test_format_time_in_timezone():
    value = datetime(2026, 3, 5, 15, 0, tzinfo=timezone.utc)
    assert format_time(value, "America/New_York") == "10:00 AM"


def test_format_date():
    value = datetime(2026, 3, 5, 15, 0, tzinfo=timezone.utc)
    assert format_date(value) == "Mar 5, 2026"
    assert format_date(value, include_time=True) == "Mar 5, 2026 at 3:00 PM"


def test_naive_datetime_treated_as_utc():
    assert format_time(datetime(2026, 3, 5, 9, 15)) == "9:15 AM"


def test_relative_time_today():
    assert format_relative_time(NOW + timedelta(hours=5), now=NOW) == "Today at 3:00 PM"


def test_relative_time_tomorrow():
    assert format_relative_time(NOW + timedelta(days=1), now=NOW) == "Tomorrow at 10:00 AM"


def test_relative_time_later_date():
    assert format_relative_time(NOW + timedelta(days=3), now=NOW) == "Mar 8, 2026 at 10:00 AM"


def test_relative_time_uses_local_day_boundary():
    # 23:30 UTC on Mar 5 is already Mar 6 in Kolkata
    late = datetime(2026, 3, 5, 23, 30, tzinfo=timezone.utc)
    assert format_relative_time(late, "UTC", now=NOW) == "Today at 11:30 PM"
    assert format_relative_time(late, "Asia/Kolkata", now=NOW) == "Tomorrow at 5:00 AM"


@pytest.mark.parametrize(
    ("delta", "expected"),
    [
        (timedelta(seconds=10), "less than a minute ago"),
        (timedelta(minutes=5), "5 minutes ago"),
        (timedelta(hours=1), "about 1 hour ago"),
        (timedelta(hours=3), "about 3 hours ago"),
        (timedelta(days=1), "1 day ago"),
        (timedelta(days=5), "5 days ago"),
        (-timedelta(days=2), "in 2 days"),
    ],
)
def test_format_time_ago(delta, expected):
    assert format_time_ago(NOW - delta, now=NOW) == expected


# ── Currency ─────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("amount", "currency", "expected"),
    [
        (1234.5, "USD", "$1,234.50"),
        (99, "EUR", "€99.00"),
        (1500000, "INR", "₹15,00,000.00"),
        (5000, "JPY", "¥5,000"),
        (250, "GBP", "£250.00"),
        (-42, "USD", "-$42.00"),
        (10, "CHF", "CHF10.00"),
    ],
)
def test_format_currency(amount, currency, expected):
    assert format_currency(amount, currency) == expected


@pytest.mark.parametrize("amount", [None, 0, 0.0])
def test_format_currency_empty_amounts(amount):
    assert format_currency(amount, "USD") == "$0"
    assert format_currency(amount, "INR") == "₹0"
