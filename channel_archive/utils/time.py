from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_iso8601(value: str | None) -> Optional[datetime]:
    """
    Parse an ISO8601 timestamp into a timezone-aware UTC datetime.

    Exporter transcripts carry local offsets (e.g. +02:00); the result is
    always normalized to UTC.
    """
    if not value:
        return None

    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))

    # Normalize to UTC timezone-aware
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt


def parse_ledger_timestamp(value: str) -> Optional[datetime]:
    """
    Parse the timestamp suffix of a ledger line.

    Accepts ISO8601 and the epoch-milliseconds form older ledgers used.
    Returns None when the value is neither.
    """
    value = value.strip()
    if not value:
        return None

    if value.isdigit():
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)

    try:
        return parse_iso8601(value)
    except ValueError:
        return None
