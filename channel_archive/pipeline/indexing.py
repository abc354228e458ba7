"""Indexing stage: push unindexed messages into the vector index.

The indexed flag is only flipped after the vector index confirmed the batch.
Any failure before that leaves every flag false, so the next run retries the
same messages.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol

import httpx
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from channel_archive.core.errors import TransportFailure
from channel_archive.db.repositories import get_unindexed_messages, mark_messages_indexed
from channel_archive.pipeline.logger import logger
from channel_archive.pipeline.models import VectorDocument

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from channel_archive.db.models import ArchivedMessage


class VectorIndex(Protocol):
    async def add_documents(self, documents: list[VectorDocument]) -> int: ...


_TRANSPORT_ERRORS = (
    UnexpectedResponse,
    ResponseHandlingException,
    httpx.HTTPError,
    ConnectionError,
)


def build_vector_document(message: ArchivedMessage) -> VectorDocument:
    """One document per message, with the ids needed to trace a hit back."""
    return VectorDocument(
        id=message.message_id,
        text=message.content,
        metadata={
            "messageId": str(message.message_id),
            "channelId": str(message.channel_id),
            "authorId": str(message.author_id),
            "sentAt": message.sent_at.isoformat(),
        },
    )


class MessageIndexer:
    """Submits unindexed messages in one batch and flags them afterwards."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        vector_index: VectorIndex,
        timeout: float = 600.0,
    ) -> None:
        self.session_factory = session_factory
        self.vector_index = vector_index
        self.timeout = timeout

    async def index(self) -> int:
        """Index every message whose indexed flag is false.

        Returns:
            Number of messages indexed (0 when nothing was pending)

        Raises:
            TransportFailure: The vector index did not confirm the batch
        """
        async with self.session_factory() as session:
            messages = await get_unindexed_messages(session)
            if not messages:
                logger.debug("No unindexed messages")
                return 0

            documents = [build_vector_document(m) for m in messages]
            logger.debug(f"Submitting {len(documents)} documents to the vector index")

            try:
                await asyncio.wait_for(
                    self.vector_index.add_documents(documents), timeout=self.timeout
                )
            except asyncio.TimeoutError as e:
                raise TransportFailure(
                    f"Vector index did not respond within {self.timeout:.0f}s"
                ) from e
            except _TRANSPORT_ERRORS as e:
                raise TransportFailure(f"Vector index rejected the batch: {e}") from e

            ids = [doc.id for doc in documents]
            await mark_messages_indexed(session, ids)
            await session.commit()

        return len(ids)
