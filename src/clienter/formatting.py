"""Display formatting for dates, relative times and money.

All functions accept timezone-aware datetimes (naive values are treated
as UTC) and render them in the caller's IANA timezone, which comes from
the user's profile.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "AUD": "A$",
    "CAD": "C$",
    "JPY": "¥",
    "CNY": "¥",
}

# Currencies rendered without minor units
_ZERO_DECIMAL_CURRENCIES = frozenset({"JPY"})


def _localize(value: datetime, tz: str) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(tz))


def format_time(value: datetime, tz: str = "UTC") -> str:
    """Render a clock time like "3:05 PM"."""
    local = _localize(value, tz)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {meridiem}"


def format_date(value: datetime, tz: str = "UTC", include_time: bool = False) -> str:
    """Render "Mar 5, 2026", optionally followed by " at 3:05 PM"."""
    local = _localize(value, tz)
    text = f"{local:%b} {local.day}, {local.year}"
    if include_time:
        text = f"{text} at {format_time(local, tz)}"
    return text


def format_relative_time(
    value: datetime, tz: str = "UTC", now: datetime | None = None
) -> str:
    """Render "Today at ...", "Tomorrow at ..." or a full date with time.

    Day boundaries are taken in the given timezone, not in UTC.
    """
    local = _localize(value, tz)
    today = _localize(now or datetime.now(timezone.utc), tz).date()

    if local.date() == today:
        return f"Today at {format_time(local, tz)}"
    if local.date() == today + timedelta(days=1):
        return f"Tomorrow at {format_time(local, tz)}"
    return format_date(local, tz, include_time=True)


def _distance_words(seconds: float) -> str:
    minutes = round(seconds / 60)
    if seconds < 30:
        return "less than a minute"
    if minutes < 2:
        return "1 minute"
    if minutes < 45:
        return f"{minutes} minutes"
    if minutes < 90:
        return "about 1 hour"
    if minutes < 24 * 60:
        return f"about {round(minutes / 60)} hours"
    if minutes < 42 * 60:
        return "1 day"
    days = round(minutes / (24 * 60))
    if days < 30:
        return f"{days} days"
    if days < 45:
        return "about 1 month"
    if days < 60:
        return "about 2 months"
    if days < 365:
        return f"{round(days / 30)} months"
    years = days // 365
    return "about 1 year" if years == 1 else f"about {years} years"


def format_time_ago(value: datetime, now: datetime | None = None) -> str:
    """Render the distance to `now` with a suffix: "5 minutes ago", "in 1 day"."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    delta = (now - value).total_seconds()
    words = _distance_words(abs(delta))
    return f"{words} ago" if delta >= 0 else f"in {words}"


def _group_digits(integer_part: str, currency: str) -> str:
    if currency != "INR" or len(integer_part) <= 3:
        return f"{int(integer_part):,}"
    # Indian grouping: last three digits, then pairs (1,00,000)
    head, tail = integer_part[:-3], integer_part[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_currency(amount: float | None, currency: str = "USD") -> str:
    """Render an amount with its currency symbol; empty amounts render as "<symbol>0"."""
    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    if not amount:
        return f"{symbol}0"

    decimals = 0 if currency in _ZERO_DECIMAL_CURRENCIES else 2
    sign = "-" if amount < 0 else ""
    fixed = f"{abs(amount):.{decimals}f}"
    integer_part, _, fraction = fixed.partition(".")
    grouped = _group_digits(integer_part, currency)
    return f"{sign}{symbol}{grouped}{'.' + fraction if fraction else ''}"
