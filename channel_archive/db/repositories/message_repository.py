"""Message repository for bulk database operations.

Handles the archived message table:
- Replace-style upserts from transcript ingestion
- Loading and flagging messages for the indexing stage
- Counts for status reporting
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from channel_archive.db.models import ArchivedMessage
from channel_archive.db.base import utcnow

# Keeps each statement well under PostgreSQL's bind parameter limit
UPSERT_CHUNK_SIZE = 1000


def _chunked(items: Sequence, size: int) -> Iterable[Sequence]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def upsert_messages(
    session: AsyncSession, messages: list[ArchivedMessage]
) -> int:
    """Upsert messages keyed by message_id, resetting the indexed flag.

    Duplicate ids within the batch are collapsed (last occurrence wins) so no
    statement touches the same row twice.

    Args:
        session: Database session
        messages: ArchivedMessage instances to write

    Returns:
        Number of distinct messages written
    """
    if not messages:
        return 0

    # Deduplicate by message_id, last wins
    unique: dict[int, ArchivedMessage] = {}
    for message in messages:
        unique[message.message_id] = message

    now = utcnow()
    values = [
        {
            "message_id": m.message_id,
            "content": m.content,
            "author_id": m.author_id,
            "channel_id": m.channel_id,
            "sent_at": m.sent_at,
            "indexed": False,
            "ingested_at": now,
        }
        for m in unique.values()
    ]

    for chunk in _chunked(values, UPSERT_CHUNK_SIZE):
        insert_stmt = pg_insert(ArchivedMessage).values(list(chunk))
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=["message_id"],
            set_={
                "content": insert_stmt.excluded.content,
                "author_id": insert_stmt.excluded.author_id,
                "channel_id": insert_stmt.excluded.channel_id,
                "sent_at": insert_stmt.excluded.sent_at,
                "indexed": False,
                "ingested_at": insert_stmt.excluded.ingested_at,
            },
        )
        await session.execute(stmt)

    return len(values)


async def get_unindexed_messages(session: AsyncSession) -> list[ArchivedMessage]:
    """Load every message not yet confirmed by the vector index.

    Args:
        session: Database session

    Returns:
        Unindexed messages, oldest first
    """
    stmt = (
        select(ArchivedMessage)
        .where(ArchivedMessage.indexed.is_(False))
        .order_by(ArchivedMessage.sent_at, ArchivedMessage.message_id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def mark_messages_indexed(session: AsyncSession, message_ids: list[int]) -> int:
    """Set indexed = True for exactly the given message ids.

    Args:
        session: Database session
        message_ids: Ids confirmed by the vector index

    Returns:
        Number of ids flagged
    """
    if not message_ids:
        return 0

    for chunk in _chunked(message_ids, UPSERT_CHUNK_SIZE):
        stmt = (
            update(ArchivedMessage)
            .where(ArchivedMessage.message_id.in_(list(chunk)))
            .values(indexed=True)
        )
        await session.execute(stmt)

    return len(message_ids)


async def count_messages(session: AsyncSession) -> tuple[int, int]:
    """Count archived messages.

    Returns:
        (total, unindexed) message counts
    """
    stmt = select(
        func.count(),
        func.count().filter(ArchivedMessage.indexed.is_(False)),
    ).select_from(ArchivedMessage)
    result = await session.execute(stmt)
    row = result.one()
    return int(row[0] or 0), int(row[1] or 0)
