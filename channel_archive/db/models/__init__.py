"""Channel Archive Database Models.

All models use SQLAlchemy 2.0 syntax with PostgreSQL dialect.
"""

from channel_archive.db.base import Base
from channel_archive.db.models.archive_job import ArchiveJobRecord
from channel_archive.db.models.message import ArchivedMessage

__all__ = [
    "Base",
    "ArchiveJobRecord",
    "ArchivedMessage",
]
