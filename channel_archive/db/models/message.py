"""Archived message ORM model.

This module defines the ArchivedMessage entity: one row per Discord message
ingested from an exporter transcript.

Design principles:
- message_id (Discord snowflake) is the deduplication key
- Re-ingesting a message replaces its row and resets `indexed`, so edited
  content is re-embedded on the next indexing run
- Only the indexing stage sets `indexed = True`, after the vector index
  confirmed the batch
- Rows are never deleted by the pipeline
"""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from channel_archive.db.base import Base, TZDateTime, utcnow


class ArchivedMessage(Base):
    """
    A chat message archived from a channel transcript.

    Author and channel are stored as bare snowflakes; the archive keeps no
    user or channel tables of its own.
    """

    __tablename__ = "archived_messages"

    # -------------------------------------------------------------------------
    # Primary Key
    # -------------------------------------------------------------------------

    # Discord snowflake ID, assigned by Discord and carried in the transcript.
    message_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)

    # -------------------------------------------------------------------------
    # Content
    # -------------------------------------------------------------------------

    # Never empty: messages without text are dropped during ingestion.
    content: Mapped[str] = mapped_column(Text, nullable=False)

    author_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    channel_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # The transcript's `timestamp` field, normalized to UTC.
    sent_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)

    # -------------------------------------------------------------------------
    # Indexing State
    # -------------------------------------------------------------------------

    # False until the message's embedding is confirmed by the vector index.
    indexed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # When this row was last written by the ingestion stage.
    ingested_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=utcnow
    )

    # -------------------------------------------------------------------------
    # Indexes
    # -------------------------------------------------------------------------

    __table_args__ = (
        # Find messages awaiting indexing
        Index("ix_archived_messages_indexed", "indexed"),
        # Per-channel counts and history
        Index("ix_archived_messages_channel_sent_at", "channel_id", "sent_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ArchivedMessage(message_id={self.message_id}, "
            f"channel_id={self.channel_id}, indexed={self.indexed})>"
        )
