"""Repository layer for database operations.

Provides clean separation between data access and business logic.
All upsert operations are centralized here.
"""

from channel_archive.db.repositories.message_repository import (
    count_messages,
    get_unindexed_messages,
    mark_messages_indexed,
    upsert_messages,
)

__all__ = [
    "upsert_messages",
    "get_unindexed_messages",
    "mark_messages_indexed",
    "count_messages",
]
