"""Clock helpers — timezone-aware UTC timestamps.

SQLite (tests) returns naive datetimes for DateTime(timezone=True) columns;
as_utc() treats those as UTC so comparisons never mix naive and aware values.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso(value: datetime | None) -> str | None:
    """ISO-8601 in UTC, None passes through (JSON serialization of timestamps)."""
    value = as_utc(value)
    return value.isoformat() if value else None
