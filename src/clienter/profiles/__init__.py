"""User profiles -- display name, timezone, currency and default reminder lead time."""
