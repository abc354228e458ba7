"""Error taxonomy for archive pipeline stages.

Every stage failure is raised as an ArchiveError subclass and caught at the
stage boundary by the orchestrator, which records it in the ledger with a
Failed marker. Messages are masked on construction so they are safe to log.
"""

from __future__ import annotations

from channel_archive.utils.masking import mask_sensitive_info


class ArchiveError(Exception):
    """Base class for stage failures."""

    def __init__(self, message: str) -> None:
        self.message = mask_sensitive_info(message)
        super().__init__(self.message)


class ExternalToolFailure(ArchiveError):
    """The exporter ran but did not signal success (or timed out)."""

    def __init__(
        self,
        message: str,
        stdout: str = "",
        returncode: int | None = None,
    ) -> None:
        self.stdout = mask_sensitive_info(stdout)
        self.returncode = returncode
        super().__init__(message)


class TransportFailure(ArchiveError):
    """A Discord, object storage or vector index call failed."""


class DataFailure(ArchiveError):
    """A transcript was malformed or a store write was rejected."""


class PermissionFailure(ArchiveError):
    """Insufficient rights to relocate a channel."""


class PipelineBusy(Exception):
    """Raised when readiness is refused because another job is running."""

    def __init__(self, channel_id: int) -> None:
        self.channel_id = channel_id
        super().__init__(f"Another archive job is running; refused channel {channel_id}")
