"""Wiring for archive jobs, status reports and search.

Builds pipelines from AppSettings and provides the coroutines the CLI and
the HTTP trigger call.
"""

from __future__ import annotations

from datetime import timedelta

from channel_archive.config.settings import AppSettings, load_config
from channel_archive.db.engine import dispose_engines, get_async_session
from channel_archive.db.repositories import count_messages
from channel_archive.discord_api.client import DiscordClient
from channel_archive.pipeline.exporter import TranscriptExporter
from channel_archive.pipeline.job_state import JobStateManager
from channel_archive.pipeline.ledger import LedgerStatus, StatusLedger
from channel_archive.pipeline.logger import logger
from channel_archive.pipeline.models import PipelineResult, PipelineVariant
from channel_archive.pipeline.orchestrator import (
    ArchivePipeline,
    LocalPipeline,
    RemotePipeline,
)
from channel_archive.pipeline.relocation import ChannelRelocator
from channel_archive.pipeline.reporting import CommandCenterReporter, CompletionCallback
from channel_archive.pipeline.storage import ArtifactStore
from channel_archive.search.vector_index import QdrantVectorIndex


def build_discord_client(settings: AppSettings) -> DiscordClient:
    return DiscordClient(
        token=settings.discord.token,
        user_agent=settings.discord.user_agent,
    )


def build_ledger(settings: AppSettings) -> StatusLedger:
    return StatusLedger(settings.pipeline.ledger_path, secrets=settings.secrets)


def build_exporter(settings: AppSettings) -> TranscriptExporter:
    return TranscriptExporter(
        command=settings.exporter.command,
        token=settings.discord.token,
        timeout=settings.exporter.timeout_seconds,
        success_marker=settings.exporter.success_marker,
        secrets=tuple(settings.secrets),
    )


def build_reporter(
    settings: AppSettings, discord: DiscordClient | None
) -> CommandCenterReporter | None:
    channel = settings.discord.command_center_channel_id
    if discord is None or not channel:
        return None
    return CommandCenterReporter(discord, int(channel), secrets=settings.secrets)


def build_callback(settings: AppSettings) -> CompletionCallback | None:
    if not settings.pipeline.callback_url:
        return None
    return CompletionCallback(
        settings.pipeline.callback_url,
        timeout=settings.pipeline.callback_timeout_seconds,
    )


def build_pipeline(
    settings: AppSettings,
    variant: PipelineVariant,
    discord: DiscordClient | None = None,
    vector_index: QdrantVectorIndex | None = None,
) -> ArchivePipeline:
    """Build the pipeline for a variant from settings.

    Args:
        settings: Application settings
        variant: Which pipeline to build
        discord: Shared, opened Discord client (required for remote)
        vector_index: Vector index for the local pipeline (built if None)

    Returns:
        A ready-to-run pipeline
    """
    ledger = build_ledger(settings)
    exporter = build_exporter(settings)
    archives_path = settings.pipeline.archives_path
    policy = settings.pipeline.resolve_failure_policy(variant)
    reporter = build_reporter(settings, discord)

    if variant is PipelineVariant.LOCAL:
        return LocalPipeline(
            ledger,
            exporter,
            archives_path,
            vector_index or QdrantVectorIndex(settings.vector_index),
            database_url=settings.database_url,
            discord=discord,
            failure_policy=policy,
            reporter=reporter,
            index_timeout=settings.vector_index.timeout_seconds,
        )

    if discord is None:
        raise ValueError("The remote pipeline needs a Discord client")

    category = settings.discord.archive_category_id
    relocator = ChannelRelocator(
        discord,
        int(category) if category else None,
        notify=settings.discord.notify_channel,
        reporter=reporter,
    )
    return RemotePipeline(
        ledger,
        exporter,
        archives_path,
        ArtifactStore(settings.storage),
        relocator,
        discord=discord,
        database_url=settings.database_url or None,
        failure_policy=policy,
        reporter=reporter,
        callback=build_callback(settings),
    )


async def run_archive(
    config_path: str = "config.json",
    variant: PipelineVariant = PipelineVariant.LOCAL,
    channel_id: int = 0,
    guild_id: int | None = None,
) -> PipelineResult:
    """Entry point for running one archive job from the CLI."""
    settings = load_config(config_path)
    if guild_id is None and settings.discord.guild_id:
        guild_id = int(settings.discord.guild_id)

    vector_index: QdrantVectorIndex | None = None
    async with build_discord_client(settings) as discord:
        try:
            if variant is PipelineVariant.LOCAL:
                vector_index = QdrantVectorIndex(settings.vector_index)
            pipeline = build_pipeline(settings, variant, discord, vector_index)
            return await pipeline.run(channel_id=channel_id, guild_id=guild_id)
        finally:
            if vector_index is not None:
                await vector_index.close()
            await dispose_engines()


async def run_status(config_path: str = "config.json", hours: float = 24.0) -> None:
    """Print readiness, recent ledger activity and message counts.

    Readiness comes from the same source the pipeline gate uses: the
    job-state table when a database is configured, otherwise the ledger.
    """
    settings = load_config(config_path)
    ledger = build_ledger(settings)
    window = timedelta(hours=hours)

    status = ledger.read_status()
    stats: dict[str, int] = {}
    if settings.database_url:
        try:
            async with get_async_session(settings.database_url)() as session:
                busy = await JobStateManager(session).is_busy()
                total, unindexed = await count_messages(session)
            status = LedgerStatus.BUSY if busy else LedgerStatus.READY
            stats = {"messages": total, "unindexed": unindexed}
        finally:
            await dispose_engines()

    logger.status_report(
        status.value,
        ledger.render_recent_activity(window),
        stats,
    )


async def run_search(
    config_path: str = "config.json", query: str = "", limit: int = 5
) -> None:
    """Semantic search over indexed messages."""
    settings = load_config(config_path)
    index = QdrantVectorIndex(settings.vector_index)
    try:
        hits = await index.search(query, limit=limit)
    finally:
        await index.close()
    logger.search_results(query, hits)
