"""Timezone helpers.

All timestamps are handled as aware UTC datetimes. SQLite returns naive values
for ``DateTime(timezone=True)`` columns, so values read back from the store go
through :func:`ensure_utc`.
"""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_epoch_ms(value: datetime) -> int:
    """Milliseconds since the Unix epoch."""
    return int(ensure_utc(value).timestamp() * 1000)
