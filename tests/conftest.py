"""Shared fixtures for channel-archive tests."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from channel_archive.pipeline.ledger import StatusLedger


# Sample Discord role data for testing permissions
@pytest.fixture
def sample_roles() -> list[dict]:
    """Sample guild roles for permission testing."""
    return [
        {
            "id": "123456789",  # @everyone role (same as guild_id)
            "name": "@everyone",
            "permissions": "104324673",  # Basic permissions, no MANAGE_CHANNELS
        },
        {
            "id": "111111111",
            "name": "Member",
            "permissions": "1024",  # VIEW_CHANNEL only
        },
        {
            "id": "222222222",
            "name": "Moderator",
            "permissions": "16",  # MANAGE_CHANNELS (1 << 4)
        },
        {
            "id": "333333333",
            "name": "Admin",
            "permissions": "8",  # ADMINISTRATOR
        },
    ]


@pytest.fixture
def guild_id() -> int:
    """Sample guild ID (also @everyone role ID)."""
    return 123456789


@pytest.fixture
def sample_channel_overwrites() -> list[dict]:
    """Sample channel permission overwrites."""
    return [
        {
            "id": "123456789",  # @everyone
            "type": 0,  # role
            "allow": "0",
            "deny": "1024",  # Deny VIEW_CHANNEL
        },
        {
            "id": "111111111",  # Member role
            "type": 0,  # role
            "allow": "1024",  # Allow VIEW_CHANNEL
            "deny": "0",
        },
    ]


@pytest.fixture
def sample_member_overwrite() -> dict:
    """Sample member-specific permission overwrite."""
    return {
        "id": "999999999",  # User ID
        "type": 1,  # member
        "allow": "1040",  # Allow VIEW_CHANNEL | MANAGE_CHANNELS
        "deny": "0",
    }


# Exporter transcripts


def _make_transcript(
    channel_id: int = 555,
    messages: list[dict] | None = None,
) -> dict:
    """Build a DiscordChatExporter-style JSON transcript."""
    if messages is None:
        messages = [
            {
                "id": "1001",
                "type": "Default",
                "timestamp": "2024-03-01T10:00:00.000+00:00",
                "content": "first message",
                "author": {"id": "42", "name": "alice"},
                "attachments": [],
            },
            {
                "id": "1002",
                "type": "Default",
                "timestamp": "2024-03-01T10:05:00.000+02:00",
                "content": "",
                "author": {"id": "43", "name": "bob"},
            },
            {
                "id": "1003",
                "type": "Default",
                "timestamp": "2024-03-01T10:06:00.000+00:00",
                "content": "third message",
                "author": {"id": "42", "name": "alice"},
            },
        ]
    return {
        "guild": {"id": "123456789", "name": "Test Guild"},
        "channel": {"id": str(channel_id), "name": "general", "type": "GuildTextChat"},
        "messages": messages,
        "messageCount": len(messages),
    }


@pytest.fixture
def make_transcript():
    """Factory for transcript dicts with custom messages."""
    return _make_transcript


@pytest.fixture
def transcript_file(tmp_path: Path) -> Path:
    """A transcript with two messages that have content and one that is empty."""
    path = tmp_path / "raw" / "555-2024-03-01.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps(_make_transcript()), encoding="utf-8")
    return path


@pytest.fixture
def ledger(tmp_path: Path) -> StatusLedger:
    return StatusLedger(tmp_path / "log.txt", secrets=["super-secret-token"])


# Database sessions


@pytest.fixture
def session() -> AsyncMock:
    """A mock AsyncSession; add() is synchronous in SQLAlchemy."""
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def session_factory(session: AsyncMock) -> MagicMock:
    """An async_sessionmaker stand-in that always yields the same session."""
    factory = MagicMock()
    context = AsyncMock()
    context.__aenter__.return_value = session
    context.__aexit__.return_value = False
    factory.return_value = context
    return factory
