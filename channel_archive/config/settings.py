"""Configuration management using pydantic-settings.

Provides validated configuration with support for:
- JSON config file (config.json)
- Environment variables prefixed with CHANNEL_ARCHIVE_ (nested keys use "__",
  e.g. CHANNEL_ARCHIVE_DISCORD__TOKEN); values present in config.json win
- Type coercion and validation
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from channel_archive.pipeline.models import (
    DEFAULT_FAILURE_POLICIES,
    FailurePolicy,
    PipelineVariant,
)


def _snowflake_string(v: Any) -> Any:
    if isinstance(v, int):
        return str(v)
    return v


class DiscordConfig(BaseModel):
    """Discord credentials and the archive category channels are moved into."""

    token: str = ""
    user_agent: str = "DiscordBot (https://github.com/channel-archive, 0.1.0)"
    guild_id: str | None = None
    archive_category_id: str | None = None
    # Post notices into the archived channel (moved, export failed, ...)
    notify_channel: bool = True
    # Operator channel for stage failures and moves; None disables reports
    command_center_channel_id: str | None = None

    @field_validator(
        "guild_id", "archive_category_id", "command_center_channel_id", mode="before"
    )
    @classmethod
    def ensure_string_id(cls, v: Any) -> Any:
        """Accept snowflake IDs given as JSON numbers."""
        return _snowflake_string(v)


class ExporterConfig(BaseModel):
    """DiscordChatExporter CLI invocation."""

    command: str = "/opt/app/DiscordChatExporter.Cli"
    timeout_seconds: float = 1800.0
    success_marker: str = "Successfully exported"


class StorageConfig(BaseModel):
    """S3-compatible object storage (DigitalOcean Spaces, MinIO)."""

    endpoint: str = "nyc3.digitaloceanspaces.com"
    access_key: str = ""
    secret_key: str = ""
    bucket: str = ""
    region: str = "nyc3"
    secure: bool = True
    acl: Literal["private", "public-read"] = "private"
    public_base_url: str | None = None
    timeout_seconds: float = 300.0

    @property
    def base_url(self) -> str:
        """Base URL artifacts are reachable at."""
        if self.public_base_url:
            return self.public_base_url.rstrip("/")
        return f"https://{self.bucket}.{self.endpoint}"

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"


class VectorIndexConfig(BaseModel):
    """Qdrant collection and embedding model used for message search."""

    url: str = "http://localhost:6333"
    api_key: str | None = None
    collection: str = "channel-archive"
    embedding_model: str = "BAAI/bge-small-en-v1.5"
    timeout_seconds: float = 600.0


class PipelineConfig(BaseModel):
    """Pipeline shape, failure policy and on-disk locations."""

    variant: PipelineVariant = PipelineVariant.LOCAL
    # None means the variant's default (local: continue, remote: abort)
    failure_policy: FailurePolicy | None = None
    archives_path: Path = Path("data/archives")
    ledger_path: Path = Path("log.txt")
    # Remote jobs POST {channelId, guildId, success, archiveUrl} here when set
    callback_url: str | None = None
    callback_timeout_seconds: float = 30.0

    def resolve_failure_policy(
        self, variant: PipelineVariant | None = None
    ) -> FailurePolicy:
        """Return the configured policy, or the default for the variant."""
        if self.failure_policy is not None:
            return self.failure_policy
        return DEFAULT_FAILURE_POLICIES[variant or self.variant]


class ServerConfig(BaseModel):
    """HTTP trigger settings."""

    host: str = "0.0.0.0"
    port: int = 8080
    # Shared secret expected in the Authorization header; None disables the check
    api_key: str | None = None


class AppSettings(BaseSettings):
    """Application settings with validation.

    Settings are loaded from a JSON config file (config.json), falling back
    to CHANNEL_ARCHIVE_* environment variables for keys the file omits.
    """

    # postgresql+asyncpg://... ; empty disables the message store and job records
    database_url: str = ""
    discord: DiscordConfig = DiscordConfig()
    exporter: ExporterConfig = ExporterConfig()
    storage: StorageConfig = StorageConfig()
    vector_index: VectorIndexConfig = VectorIndexConfig()
    pipeline: PipelineConfig = PipelineConfig()
    server: ServerConfig = ServerConfig()

    model_config = SettingsConfigDict(
        extra="ignore",
        env_prefix="CHANNEL_ARCHIVE_",
        env_nested_delimiter="__",
    )

    @classmethod
    def from_json(cls, path: str | Path = "config.json") -> "AppSettings":
        """Load settings from a JSON config file.

        Args:
            path: Path to the JSON config file

        Returns:
            AppSettings instance with validated configuration
        """
        config_path = Path(path)
        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return cls(**data)
        return cls()

    @property
    def secrets(self) -> list[str]:
        """Configured credentials that must never reach a log line."""
        candidates = [
            self.discord.token,
            self.storage.access_key,
            self.storage.secret_key,
            self.vector_index.api_key,
            self.server.api_key,
        ]
        return [secret for secret in candidates if secret]


@lru_cache
def get_settings(config_path: str = "config.json") -> AppSettings:
    """Get cached application settings.

    Args:
        config_path: Path to JSON config file (default: config.json)

    Returns:
        Cached AppSettings instance
    """
    return AppSettings.from_json(config_path)


def load_config(path: str | Path = "config.json") -> AppSettings:
    """Load configuration from file, bypassing the cache."""
    get_settings.cache_clear()
    return AppSettings.from_json(path)
