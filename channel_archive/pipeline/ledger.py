"""Status ledger: the append-only, human-readable job log.

Every line records one stage transition, newest first:

    🟩 Initiating: Export of *general* - 2026-10-17T12:00:00.000000+00:00
    🟥 Failed: Upload of *general*: connection reset - 2026-10-17T12:03:10.000000+00:00

The first line answers "is a job running": a Complete or Failed marker (or an
empty ledger) means ready, anything else means busy. Writes prepend through a
temp file and os.replace, so a crash leaves either the old or the new ledger.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path

from channel_archive.pipeline.logger import logger
from channel_archive.pipeline.models import Outcome
from channel_archive.utils.masking import mask_sensitive_info, redact_secrets
from channel_archive.utils.time import parse_ledger_timestamp, utcnow

MARKERS: dict[Outcome, str] = {
    Outcome.INITIATING: "🟩",
    Outcome.COMPLETE: "🟩",
    Outcome.FAILED: "🟥",
}

TIMESTAMP_SEPARATOR = " - "
DEFAULT_WINDOW = timedelta(hours=24)

_ENTRY_RE = re.compile(
    r"^\S+\s+(?P<outcome>Initiating|Complete|Failed):\s+"
    r"(?P<stage>.+?) of \*(?P<subject>[^*]*)\*"
    r"(?::\s+(?P<detail>.*))?$"
)


class LedgerStatus(str, Enum):
    READY = "ready"
    BUSY = "busy"


def _single_line(text: str) -> str:
    return " ".join(text.split())


def split_timestamp(line: str) -> tuple[str, datetime | None]:
    """Split a ledger line into its body and its " - <timestamp>" suffix."""
    body, sep, suffix = line.rstrip().rpartition(TIMESTAMP_SEPARATOR)
    if not sep:
        return line.rstrip(), None
    timestamp = parse_ledger_timestamp(suffix)
    if timestamp is None:
        return line.rstrip(), None
    return body, timestamp


@dataclass(frozen=True)
class LedgerEntry:
    """One stage transition."""

    stage: str
    outcome: Outcome
    subject: str
    timestamp: datetime = field(default_factory=utcnow)
    detail: str | None = None

    def render(self) -> str:
        subject = self.subject.replace("*", "")
        line = f"{MARKERS[self.outcome]} {self.outcome.value}: {self.stage} of *{subject}*"
        if self.detail:
            line += f": {_single_line(self.detail)}"
        return f"{line}{TIMESTAMP_SEPARATOR}{self.timestamp.isoformat()}"

    @classmethod
    def parse(cls, line: str) -> "LedgerEntry | None":
        """Parse a rendered line; None if it is not a ledger entry."""
        body, timestamp = split_timestamp(line)
        if timestamp is None:
            return None
        match = _ENTRY_RE.match(body.strip())
        if match is None:
            return None
        return cls(
            stage=match.group("stage"),
            outcome=Outcome(match.group("outcome")),
            subject=match.group("subject"),
            timestamp=timestamp,
            detail=match.group("detail"),
        )


class StatusLedger:
    """Single-writer ledger file, newest entry first."""

    def __init__(self, path: str | Path, secrets: Iterable[str] = ()) -> None:
        self.path = Path(path)
        self._secrets = tuple(secrets)

    def _read_lines(self) -> list[str]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        return text.splitlines()

    def mask(self, text: str) -> str:
        """Mask credentials in free text (stage details, error messages)."""
        return mask_sensitive_info(text, self._secrets)

    def masked(self, entry: LedgerEntry) -> LedgerEntry:
        """Copy of an entry safe to write.

        Details get the full credential masking. Subjects are channel names,
        so only configured secrets are redacted there; the pattern-based
        masking would turn a long name into a marker the parser rejects.
        """
        detail = self.mask(entry.detail) if entry.detail else entry.detail
        return replace(
            entry, subject=redact_secrets(entry.subject, self._secrets), detail=detail
        )

    def append(self, entry: LedgerEntry) -> str:
        """Prepend an entry and flush it to disk before returning.

        Returns:
            The masked line that was written
        """
        return self.append_many([entry])[0]

    def append_many(self, entries: list[LedgerEntry]) -> list[str]:
        """Prepend several entries in one write, oldest given first.

        Used for stage hand-offs: a stage's terminal entry and the next
        stage's Initiating entry land in the same replace, so the head never
        shows a terminal marker while the job is still running.

        Returns:
            The masked lines, in the order given
        """
        lines = [self.masked(entry).render() for entry in entries]
        if not lines:
            return []

        existing = ""
        if self.path.exists():
            existing = self.path.read_text(encoding="utf-8")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write("".join(line + "\n" for line in reversed(lines)) + existing)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

        for line in lines:
            logger.info(line)
        return lines

    def first_record(self) -> str | None:
        """Return the newest record, or None for an empty ledger."""
        for line in self._read_lines():
            if line.strip():
                return line
        return None

    def latest_entry(self) -> LedgerEntry | None:
        record = self.first_record()
        if record is None:
            return None
        return LedgerEntry.parse(record)

    def read_status(self) -> LedgerStatus:
        """Classify the ledger head.

        READY for an empty ledger or a Complete/Failed head; BUSY for an
        Initiating head or a head that no longer parses.
        """
        if self.first_record() is None:
            return LedgerStatus.READY

        entry = self.latest_entry()
        if entry is not None and entry.outcome.is_terminal:
            return LedgerStatus.READY
        return LedgerStatus.BUSY

    def recent_activity(
        self,
        window: timedelta = DEFAULT_WINDOW,
        now: datetime | None = None,
    ) -> list[str]:
        """Return lines from the newest back to the first one outside window.

        Lines without a timestamp suffix are kept; the scan stops at the
        first timestamped line older than ``now - window``.
        """
        now = now or utcnow()
        activity: list[str] = []
        for line in self._read_lines():
            if not line.strip():
                continue
            _, timestamp = split_timestamp(line)
            if timestamp is not None and now - timestamp > window:
                break
            activity.append(line)
        return activity

    def render_recent_activity(
        self,
        window: timedelta = DEFAULT_WINDOW,
        now: datetime | None = None,
    ) -> str:
        hours = window.total_seconds() / 3600
        span = f"{hours:g} hours"
        activity = self.recent_activity(window, now)
        if not activity:
            return f"I've done nothing in the last {span}..."
        return f"Here's the status of my activities in the last {span}:\n" + "\n".join(
            activity
        )
