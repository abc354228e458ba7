"""Archive job state ORM model.

One row per archive job, updated at every stage transition. This is the
explicit job-state record; the text ledger mirrors the same transitions as a
human-readable audit trail.

Lifecycle:
- Created when a job passes the readiness check
- `stage`/`outcome` updated before and after each stage
- Finished with stage "Archive" and a Complete or Failed outcome
"""

from datetime import datetime

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from channel_archive.db.base import Base, TZDateTime, utcnow


class ArchiveJobRecord(Base):
    """
    Persisted state of one archive job.

    A job whose latest outcome is "Initiating" is still running; readiness
    checks refuse new jobs while such a row is the most recent one.
    """

    __tablename__ = "archive_jobs"

    # uuid4 hex generated by the orchestrator
    job_id: Mapped[str] = mapped_column(String(32), primary_key=True)

    channel_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # NULL for local jobs triggered without a guild
    guild_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # "local" or "remote"
    variant: Mapped[str] = mapped_column(String(16), nullable=False)

    # Channel name the job was started for (ledger subject)
    subject: Mapped[str] = mapped_column(Text, nullable=False)

    # Stage label of the latest transition ("Export", "Ingest", ..., "Archive")
    stage: Mapped[str] = mapped_column(String(32), nullable=False)

    # "Initiating", "Complete" or "Failed"
    outcome: Mapped[str] = mapped_column(String(16), nullable=False)

    # Masked failure description of the latest failed stage
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=utcnow
    )

    updated_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        # Latest job lookup for readiness checks
        Index("ix_archive_jobs_updated_at", "updated_at"),
        Index("ix_archive_jobs_channel_id", "channel_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ArchiveJobRecord(job_id={self.job_id}, stage={self.stage}, "
            f"outcome={self.outcome})>"
        )
