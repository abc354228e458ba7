"""Value types shared by the archive pipeline stages."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from channel_archive.utils.time import utcnow


class Outcome(str, Enum):
    """Marker carried by every ledger entry and job-state record."""

    INITIATING = "Initiating"
    COMPLETE = "Complete"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self is not Outcome.INITIATING


class PipelineVariant(str, Enum):
    """The two pipeline shapes.

    LOCAL:  Export (JSON) -> Ingest -> Index
    REMOTE: Export (HTML) -> Upload -> Relocate
    """

    LOCAL = "local"
    REMOTE = "remote"


class FailurePolicy(str, Enum):
    """What the orchestrator does after a stage fails."""

    # Keep running the remaining stages (maximal forward progress)
    CONTINUE = "continue"
    # Skip the remaining stages and fail the job immediately
    ABORT = "abort"


DEFAULT_FAILURE_POLICIES: dict[PipelineVariant, FailurePolicy] = {
    PipelineVariant.LOCAL: FailurePolicy.CONTINUE,
    PipelineVariant.REMOTE: FailurePolicy.ABORT,
}


class StageStatus(str, Enum):
    COMPLETE = "complete"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ArchiveJob:
    """A single archive run. Lives only while the pipeline executes."""

    channel_id: int
    guild_id: int | None = None
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Artifact:
    """An exported file persisted to object storage."""

    local_path: Path
    storage_key: str
    public_url: str


@dataclass(frozen=True)
class VectorDocument:
    """One indexed message as submitted to the vector index."""

    id: int
    text: str
    metadata: dict[str, Any]


@dataclass
class StageResult:
    """Outcome of one pipeline stage."""

    stage: str
    status: StageStatus
    detail: str = ""

    @property
    def failed(self) -> bool:
        return self.status is StageStatus.FAILED


@dataclass
class PipelineResult:
    """Outcome of a whole archive job."""

    job: ArchiveJob
    variant: PipelineVariant
    subject: str
    stages: list[StageResult] = field(default_factory=list)
    artifact: Artifact | None = None
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return not any(stage.failed for stage in self.stages)

    @property
    def outcome(self) -> Outcome:
        return Outcome.COMPLETE if self.success else Outcome.FAILED

    @property
    def failed_stages(self) -> list[StageResult]:
        return [stage for stage in self.stages if stage.failed]
