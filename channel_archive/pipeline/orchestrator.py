"""Pipeline orchestration for archive jobs.

An archive job runs a fixed sequence of stages for one channel:

    local:  Export (JSON) -> Ingest -> Index
    remote: Export (HTML) -> Upload -> Relocate

Every transition is written to the status ledger (and, when a database is
configured, to the job-state table) before the next stage starts. A stage
failure is caught at the stage boundary and recorded; the failure policy
decides whether the remaining stages still run.

With a command-center reporter wired, stage failures are also posted for
operators; the remote variant can POST its outcome to a completion callback.
"""

from __future__ import annotations

import asyncio
from abc import abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
from sqlalchemy.exc import SQLAlchemyError

from channel_archive.core import BaseOrchestrator
from channel_archive.core.errors import ArchiveError, DataFailure, PipelineBusy
from channel_archive.discord_api.client import DiscordAPIError
from channel_archive.pipeline.exporter import ExportFormat, export_filename
from channel_archive.pipeline.indexing import MessageIndexer
from channel_archive.pipeline.ingestion import TranscriptIngestor, discover_transcripts
from channel_archive.pipeline.job_state import JobStateManager
from channel_archive.pipeline.ledger import LedgerEntry, LedgerStatus
from channel_archive.pipeline.logger import logger
from channel_archive.pipeline.models import (
    DEFAULT_FAILURE_POLICIES,
    Artifact,
    ArchiveJob,
    FailurePolicy,
    Outcome,
    PipelineResult,
    PipelineVariant,
    StageResult,
    StageStatus,
)

if TYPE_CHECKING:
    from channel_archive.discord_api.client import DiscordClient
    from channel_archive.pipeline.exporter import TranscriptExporter
    from channel_archive.pipeline.indexing import VectorIndex
    from channel_archive.pipeline.ledger import StatusLedger
    from channel_archive.pipeline.relocation import ChannelRelocator
    from channel_archive.pipeline.reporting import (
        CommandCenterReporter,
        CompletionCallback,
    )
    from channel_archive.pipeline.storage import ArtifactStore


# Stage labels as they appear in the ledger
EXPORT_STAGE = "Export"
INGEST_STAGE = "Ingest"
INDEX_STAGE = "Index"
UPLOAD_STAGE = "Upload"
RELOCATE_STAGE = "Relocate"
CALLBACK_STAGE = "Callback"
JOB_STAGE = "Archive"

RAW_EXPORTS_DIR = "raw"


@dataclass
class JobContext:
    """State handed from one stage to the next."""

    job: ArchiveJob
    subject: str
    result: PipelineResult
    export_path: Path | None = None
    artifact: Artifact | None = None


@dataclass
class Stage:
    """A named step; run() returns a one-line description of what it did."""

    label: str
    run: Callable[[JobContext], Awaitable[str]]


class ArchivePipeline(BaseOrchestrator):
    """Runs the stages of one variant with ledger bookkeeping.

    Subclasses define the variant, the export format and the stage list.
    """

    variant: PipelineVariant
    export_format: ExportFormat

    def __init__(
        self,
        ledger: StatusLedger,
        exporter: TranscriptExporter,
        archives_path: Path,
        *,
        discord: DiscordClient | None = None,
        database_url: str | None = None,
        failure_policy: FailurePolicy | None = None,
        reporter: CommandCenterReporter | None = None,
    ) -> None:
        super().__init__(database_url)
        self.ledger = ledger
        self.exporter = exporter
        self.archives_path = Path(archives_path)
        self.discord = discord
        self.failure_policy = failure_policy or DEFAULT_FAILURE_POLICIES[self.variant]
        self.reporter = reporter

    @abstractmethod
    def stages(self) -> list[Stage]:
        """Stages in execution order."""
        ...

    # -------------------------------------------------------------------------
    # Readiness
    # -------------------------------------------------------------------------

    async def is_ready(self) -> bool:
        """Whether a new job may start.

        Uses the job-state table when a database is configured, otherwise
        the ledger head.
        """
        if self.async_session is not None:
            async with self.async_session() as session:
                return not await JobStateManager(session).is_busy()
        return self.ledger.read_status() is LedgerStatus.READY

    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------

    def _entry(
        self, ctx: JobContext, stage: str, outcome: Outcome, detail: str | None = None
    ) -> LedgerEntry:
        return LedgerEntry(stage=stage, outcome=outcome, subject=ctx.subject, detail=detail)

    async def _record_job(
        self,
        ctx: JobContext,
        stage: str,
        outcome: Outcome,
        detail: str | None = None,
        start: bool = False,
    ) -> None:
        """Mirror a transition into the job-state table (best effort)."""
        if self.async_session is None:
            return
        try:
            async with self.async_session() as session:
                state = JobStateManager(session)
                if start:
                    await state.start_job(ctx.job, self.variant.value, ctx.subject, stage)
                else:
                    await state.record_stage(ctx.job.job_id, stage, outcome, detail)
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Could not record job state for {ctx.subject}: {e}")

    async def _resolve_subject(self, job: ArchiveJob) -> str:
        """Channel name for ledger lines; also fills a missing guild id."""
        fallback = f"channel-{job.channel_id}"
        if self.discord is None:
            return fallback
        try:
            channel = await self.discord.get_channel(job.channel_id)
        except (DiscordAPIError, httpx.HTTPError) as e:
            logger.warning(f"Could not look up channel {job.channel_id}: {e}")
            return fallback

        if job.guild_id is None and channel.get("guild_id"):
            job.guild_id = int(channel["guild_id"])
        return channel.get("name") or fallback

    async def _on_stage_failure(self, ctx: JobContext, stage: Stage, detail: str) -> None:
        """Hook for variant-specific reactions to a failed stage."""

    async def _on_job_finished(self, ctx: JobContext) -> None:
        """Hook run once the final ledger entry of a job is written."""

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def _run_stage(self, ctx: JobContext, stage: Stage) -> StageResult:
        logger.stage_start(stage.label)
        try:
            detail = await stage.run(ctx)
        except ArchiveError as e:
            logger.stage_failed(stage.label, e.message)
            return StageResult(stage.label, StageStatus.FAILED, e.message)
        except Exception as e:
            detail = self.ledger.mask(f"Unexpected error: {e}")
            logger.exception(f"{stage.label} of {ctx.subject} failed: {detail}")
            logger.stage_failed(stage.label, detail)
            return StageResult(stage.label, StageStatus.FAILED, detail)

        logger.stage_complete(stage.label, detail)
        return StageResult(stage.label, StageStatus.COMPLETE, detail)

    async def _run_pipeline(
        self,
        channel_id: int,
        guild_id: int | None = None,
    ) -> PipelineResult:
        """Run every stage for a channel.

        Raises:
            PipelineBusy: Another job is still running
        """
        if not await self.is_ready():
            logger.busy(channel_id)
            raise PipelineBusy(channel_id)

        job = ArchiveJob(channel_id=channel_id, guild_id=guild_id)
        subject = await self._resolve_subject(job)
        result = PipelineResult(job=job, variant=self.variant, subject=subject)
        ctx = JobContext(job=job, subject=subject, result=result)

        stages = self.stages()
        logger.job_start(
            ctx.subject, channel_id, self.variant.value, self.failure_policy.value
        )

        self.ledger.append_many(
            [
                self._entry(ctx, JOB_STAGE, Outcome.INITIATING),
                self._entry(ctx, stages[0].label, Outcome.INITIATING),
            ]
        )
        await self._record_job(ctx, stages[0].label, Outcome.INITIATING, start=True)

        try:
            await self._run_stages(ctx, stages, result)
        except asyncio.CancelledError:
            self.ledger.append(
                self._entry(ctx, JOB_STAGE, Outcome.FAILED, "cancelled")
            )
            await self._record_job(ctx, JOB_STAGE, Outcome.FAILED, "cancelled")
            raise

        await self._on_job_finished(ctx)
        return result

    async def _run_stages(
        self, ctx: JobContext, stages: list[Stage], result: PipelineResult
    ) -> None:
        aborted = False
        for index, stage in enumerate(stages):
            if aborted:
                logger.stage_skipped(stage.label, "an earlier stage failed")
                result.stages.append(StageResult(stage.label, StageStatus.SKIPPED))
                continue

            stage_result = await self._run_stage(ctx, stage)
            result.stages.append(stage_result)

            if stage_result.failed:
                if self.reporter is not None:
                    await self.reporter.report(
                        f"{stage.label} of {ctx.subject} failed: {stage_result.detail}"
                    )
                await self._on_stage_failure(ctx, stage, stage_result.detail)
                if self.failure_policy is FailurePolicy.ABORT:
                    aborted = True
                terminal = self._entry(
                    ctx, stage.label, Outcome.FAILED, stage_result.detail
                )
            else:
                terminal = self._entry(ctx, stage.label, Outcome.COMPLETE)

            is_last = aborted or index == len(stages) - 1
            if is_last:
                job_detail = None
                if not result.success:
                    failed = ", ".join(s.stage for s in result.failed_stages)
                    job_detail = f"failed stages: {failed}"
                following = self._entry(ctx, JOB_STAGE, result.outcome, job_detail)
            else:
                following = self._entry(ctx, stages[index + 1].label, Outcome.INITIATING)

            self.ledger.append_many([terminal, following])
            await self._record_job(
                ctx, following.stage, following.outcome, following.detail
            )

    def _log_summary(self, result: PipelineResult, elapsed: float) -> None:
        """Log the final job summary."""
        result.elapsed = elapsed
        logger.summary(result)


class LocalPipeline(ArchivePipeline):
    """Export (JSON) -> Ingest -> Index.

    Requires a database; defaults to continuing past failed stages so
    earlier transcripts still get ingested and indexed.
    """

    variant = PipelineVariant.LOCAL
    export_format = ExportFormat.JSON

    def __init__(
        self,
        ledger: StatusLedger,
        exporter: TranscriptExporter,
        archives_path: Path,
        vector_index: VectorIndex,
        *,
        database_url: str,
        discord: DiscordClient | None = None,
        failure_policy: FailurePolicy | None = None,
        reporter: CommandCenterReporter | None = None,
        index_timeout: float = 600.0,
    ) -> None:
        if not database_url:
            raise ValueError("The local pipeline needs database_url")
        super().__init__(
            ledger,
            exporter,
            archives_path,
            discord=discord,
            database_url=database_url,
            failure_policy=failure_policy,
            reporter=reporter,
        )
        self.raw_path = self.archives_path / RAW_EXPORTS_DIR
        self.ingestor = TranscriptIngestor(self.async_session)
        self.indexer = MessageIndexer(self.async_session, vector_index, index_timeout)

    def stages(self) -> list[Stage]:
        return [
            Stage(EXPORT_STAGE, self._export),
            Stage(INGEST_STAGE, self._ingest),
            Stage(INDEX_STAGE, self._index),
        ]

    async def _export(self, ctx: JobContext) -> str:
        output = self.raw_path / export_filename(ctx.job.channel_id, self.export_format)
        await self.exporter.export(ctx.job.channel_id, output, self.export_format)
        ctx.export_path = output
        return f"Exported to {output}"

    async def _ingest(self, ctx: JobContext) -> str:
        paths = discover_transcripts(self.raw_path)
        count = await self.ingestor.ingest(paths)
        return f"Ingested {count:,} messages from {len(paths)} transcript(s)"

    async def _index(self, ctx: JobContext) -> str:
        count = await self.indexer.index()
        return f"Indexed {count:,} messages"


class RemotePipeline(ArchivePipeline):
    """Export (HTML) -> Upload -> Relocate.

    Defaults to aborting on the first failure: a channel is never moved
    without a stored backup.
    """

    variant = PipelineVariant.REMOTE
    export_format = ExportFormat.HTML_DARK

    def __init__(
        self,
        ledger: StatusLedger,
        exporter: TranscriptExporter,
        archives_path: Path,
        store: ArtifactStore,
        relocator: ChannelRelocator,
        *,
        discord: DiscordClient | None = None,
        database_url: str | None = None,
        failure_policy: FailurePolicy | None = None,
        reporter: CommandCenterReporter | None = None,
        callback: CompletionCallback | None = None,
    ) -> None:
        super().__init__(
            ledger,
            exporter,
            archives_path,
            discord=discord,
            database_url=database_url,
            failure_policy=failure_policy,
            reporter=reporter,
        )
        self.store = store
        self.relocator = relocator
        self.callback = callback

    def stages(self) -> list[Stage]:
        return [
            Stage(EXPORT_STAGE, self._export),
            Stage(UPLOAD_STAGE, self._upload),
            Stage(RELOCATE_STAGE, self._relocate),
        ]

    async def _export(self, ctx: JobContext) -> str:
        output = self.archives_path / export_filename(
            ctx.job.channel_id, self.export_format
        )
        await self.exporter.export(ctx.job.channel_id, output, self.export_format)
        ctx.export_path = output
        return f"Exported to {output}"

    async def _upload(self, ctx: JobContext) -> str:
        if ctx.export_path is None or not ctx.export_path.exists():
            raise DataFailure("No exported transcript to upload")
        artifact = await self.store.upload(ctx.export_path, ctx.subject)
        ctx.artifact = artifact
        ctx.result.artifact = artifact
        return f"Uploaded to {artifact.public_url}"

    async def _relocate(self, ctx: JobContext) -> str:
        if ctx.job.guild_id is None:
            raise DataFailure("No guild id available to relocate the channel")
        moved = await self.relocator.relocate(
            ctx.job.channel_id, ctx.job.guild_id, ctx.artifact
        )
        if moved.renamed:
            return f"Moved to the archive category as {moved.name}"
        return "Moved to the archive category"

    async def _on_stage_failure(self, ctx: JobContext, stage: Stage, detail: str) -> None:
        if stage.label == EXPORT_STAGE:
            await self.relocator.notify_export_failed(ctx.job.channel_id)

    async def _on_job_finished(self, ctx: JobContext) -> None:
        """POST the outcome to the completion callback and log the attempt.

        The callback entry is written after the job's terminal entry, so the
        ledger head stays terminal whatever the callback does.
        """
        if self.callback is None:
            return
        archive_url = ctx.artifact.public_url if ctx.artifact is not None else None
        delivered = await self.callback.notify(
            ctx.job, ctx.result.success, archive_url
        )
        if delivered:
            entry = self._entry(ctx, CALLBACK_STAGE, Outcome.COMPLETE)
        else:
            entry = self._entry(
                ctx, CALLBACK_STAGE, Outcome.FAILED, "callback was not accepted"
            )
        self.ledger.append(entry)
