"""Declarative base and shared column types for the archive tables."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import BigInteger, DateTime
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from channel_archive.utils.time import utcnow

__all__ = ["Base", "TZDateTime", "utcnow"]


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TZDateTime(TypeDecorator):
    """Timestamp column that always binds and loads UTC-aware datetimes.

    Naive values are taken to be UTC already; values carrying another offset
    (transcripts keep the exporting machine's local offset) are converted.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        return _as_utc(value)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        return _as_utc(value)


class Base(DeclarativeBase):
    """Declarative base for the channel archive ORM models.

    Plain ``int`` columns map to BIGINT since every id stored here is a
    Discord snowflake.
    """

    type_annotation_map = {
        int: BigInteger,
    }
