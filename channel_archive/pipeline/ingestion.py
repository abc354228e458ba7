"""Ingestion stage: load exporter JSON transcripts into the message store.

Each transcript file is parsed with pydantic, mapped to ArchivedMessage rows
and upserted in its own transaction. A malformed file fails the stage, but
files committed before it stay committed.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from channel_archive.core.errors import DataFailure
from channel_archive.db.models import ArchivedMessage
from channel_archive.db.repositories import upsert_messages
from channel_archive.pipeline.logger import logger
from channel_archive.utils.time import parse_iso8601

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


# =============================================================================
# Transcript Schema
# =============================================================================


class TranscriptAuthor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int


class TranscriptMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    content: str | None = None
    author: TranscriptAuthor
    timestamp: str


class TranscriptChannel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str | None = None


class TranscriptBundle(BaseModel):
    """Top level of a DiscordChatExporter JSON export."""

    model_config = ConfigDict(extra="ignore")

    channel: TranscriptChannel
    messages: list[TranscriptMessage] = []


# =============================================================================
# Loading & Mapping
# =============================================================================


def load_transcript(path: Path) -> TranscriptBundle:
    """Read and validate one transcript file.

    Raises:
        DataFailure: The file is unreadable or not a valid transcript
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DataFailure(f"Could not read transcript {path.name}: {e}") from e

    try:
        return TranscriptBundle.model_validate_json(raw)
    except ValidationError as e:
        raise DataFailure(
            f"Malformed transcript {path.name}: {e.error_count()} validation error(s)"
        ) from e


def map_transcript(bundle: TranscriptBundle) -> list[ArchivedMessage]:
    """Convert a transcript into ArchivedMessage rows.

    Messages with empty or missing content are dropped. NULL bytes are
    stripped since PostgreSQL rejects them in text columns.

    Raises:
        DataFailure: A message timestamp cannot be parsed
    """
    messages: list[ArchivedMessage] = []
    for message in bundle.messages:
        content = (message.content or "").replace("\x00", "")
        if not content:
            continue

        try:
            sent_at = parse_iso8601(message.timestamp)
        except ValueError as e:
            raise DataFailure(
                f"Message {message.id} has an invalid timestamp: {message.timestamp!r}"
            ) from e
        if sent_at is None:
            raise DataFailure(f"Message {message.id} has no timestamp")

        messages.append(
            ArchivedMessage(
                message_id=message.id,
                content=content,
                author_id=message.author.id,
                channel_id=bundle.channel.id,
                sent_at=sent_at,
                indexed=False,
            )
        )
    return messages


def discover_transcripts(directory: Path) -> list[Path]:
    """List the JSON exports in a directory, oldest name first."""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.glob("*.json") if p.is_file())


# =============================================================================
# Ingestor
# =============================================================================


class TranscriptIngestor:
    """Upserts transcript messages, committing once per file."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def ingest(self, paths: list[Path]) -> int:
        """Ingest transcript files in order.

        Args:
            paths: Transcript files to load

        Returns:
            Number of message rows upserted across all files

        Raises:
            DataFailure: A file is malformed or the store rejected a write
        """
        total = 0
        for path in paths:
            messages = map_transcript(load_transcript(path))
            if not messages:
                logger.debug(f"{path.name}: no messages with content")
                continue

            try:
                async with self.session_factory() as session:
                    count = await upsert_messages(session, messages)
                    await session.commit()
            except SQLAlchemyError as e:
                raise DataFailure(f"Store rejected {path.name}: {e}") from e

            logger.debug(f"{path.name}: upserted {count} messages")
            total += count

        return total
