"""Archive job state management.

Provides CRUD operations for ArchiveJobRecord rows, the explicit record of
which stage a job is in and how it ended.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from channel_archive.db.models import ArchiveJobRecord
from channel_archive.pipeline.models import ArchiveJob, Outcome


class JobStateManager:
    """Manages ArchiveJobRecord rows for readiness and progress tracking."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_job(self, job_id: str) -> ArchiveJobRecord | None:
        """Get a job record, or None if not exists."""
        result = await self.session.execute(
            select(ArchiveJobRecord).where(ArchiveJobRecord.job_id == job_id)
        )
        return result.scalar_one_or_none()

    async def get_latest_job(self) -> ArchiveJobRecord | None:
        """Get the most recently updated job record."""
        result = await self.session.execute(
            select(ArchiveJobRecord)
            .order_by(ArchiveJobRecord.updated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def start_job(
        self, job: ArchiveJob, variant: str, subject: str, stage: str
    ) -> ArchiveJobRecord:
        """Create the record for a job entering its first stage."""
        now = datetime.now(timezone.utc)
        record = ArchiveJobRecord(
            job_id=job.job_id,
            channel_id=job.channel_id,
            guild_id=job.guild_id,
            variant=variant,
            subject=subject,
            stage=stage,
            outcome=Outcome.INITIATING.value,
            started_at=job.started_at,
            updated_at=now,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def record_stage(
        self,
        job_id: str,
        stage: str,
        outcome: Outcome,
        detail: str | None = None,
    ) -> None:
        """Record a stage transition for an existing job.

        A missing record is ignored; the ledger still carries the transition.
        """
        record = await self.get_job(job_id)
        if record is None:
            return

        record.stage = stage
        record.outcome = outcome.value
        if detail is not None:
            record.detail = detail
        record.updated_at = datetime.now(timezone.utc)
        await self.session.flush()

    async def is_busy(self) -> bool:
        """Check whether the latest job is still running."""
        record = await self.get_latest_job()
        return record is not None and record.outcome == Outcome.INITIATING.value
