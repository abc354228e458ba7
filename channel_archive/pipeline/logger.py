"""Rich-based logging for the archive pipeline.

Console output for job and stage progress, ledger status reports and
search results, plus the end-of-job summary panel.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.table import Table

from channel_archive.utils.pipeline_logger import BasePipelineLogger

if TYPE_CHECKING:
    from channel_archive.pipeline.models import PipelineResult
    from channel_archive.search.vector_index import SearchHit


class PipelineLogger(BasePipelineLogger):
    """Logger for archive jobs with rich output."""

    def __init__(self) -> None:
        super().__init__(__name__)

    # -------------------------------------------------------------------------
    # Discord API: Rate Limiting & Retries
    # -------------------------------------------------------------------------

    def rate_limit(self, retry_after: float) -> None:
        """Log a rate limit warning with retry time."""
        self._logger.warning(f"Rate limited. Waiting {retry_after:.1f}s...")

    def retry(
        self, attempt: int, max_attempts: int, wait_time: float, reason: str = ""
    ) -> None:
        """Log a retry attempt with optional reason."""
        msg = f"Retry {attempt}/{max_attempts} in {wait_time:.1f}s"
        if reason:
            msg += f" ({reason})"
        self._logger.warning(msg)

    # -------------------------------------------------------------------------
    # Jobs & Stages
    # -------------------------------------------------------------------------

    def job_start(
        self, subject: str, channel_id: int, variant: str, policy: str
    ) -> None:
        """Log the start of an archive job."""
        self.console.print()
        self.console.rule(f"[bold cyan]{subject}[/bold cyan]", style="cyan")
        self.console.print(
            f"[dim]Channel ID: {channel_id} · {variant} pipeline · "
            f"on failure: {policy}[/dim]"
        )

    def stage_start(self, stage: str) -> None:
        self.console.print(f"\n[bold]{stage}[/bold]")

    def stage_complete(self, stage: str, detail: str) -> None:
        self.console.print(f"  [green]✓[/green] {detail or stage + ' complete'}")

    def stage_failed(self, stage: str, detail: str) -> None:
        self.console.print(f"  [red]✗[/red] {detail or stage + ' failed'}")

    def stage_skipped(self, stage: str, reason: str) -> None:
        self.console.print(f"\n[bold]{stage}[/bold]")
        self.console.print(f"  [dim]Skipped: {reason}[/dim]")

    def busy(self, channel_id: int) -> None:
        self._logger.warning(
            f"Refusing to archive channel {channel_id}: another job is running"
        )

    # -------------------------------------------------------------------------
    # Status & Search
    # -------------------------------------------------------------------------

    def status_report(
        self,
        status: str,
        activity: str,
        stats: dict[str, int] | None = None,
    ) -> None:
        """Print readiness, recent ledger activity and store counts."""
        color = "green" if status == "ready" else "yellow"
        with self.block("Status") as block:
            block.field("pipeline", status, color=color)
            for label, value in (stats or {}).items():
                block.field(label, f"{value:,}")
        self.console.print()
        self.console.print(activity, markup=False, highlight=False)

    def search_results(self, query: str, hits: list["SearchHit"]) -> None:
        """Print semantic search hits as a table."""
        if not hits:
            self.console.print(f"[dim]No messages matched {query!r}[/dim]")
            return

        table = Table(title=f"Results for {query!r}", show_lines=False)
        table.add_column("Score", justify="right", style="green")
        table.add_column("Sent", style="dim")
        table.add_column("Channel", style="cyan")
        table.add_column("Message")
        for hit in hits:
            table.add_row(
                f"{hit.score:.3f}",
                hit.sent_at or "",
                str(hit.channel_id or ""),
                hit.text,
            )
        self.console.print(table)

    # -------------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------------

    def summary(self, result: "PipelineResult | None" = None, **kwargs: Any) -> None:
        """Print final job summary."""
        if result is None:
            return

        stats: dict[str, int | str] = {
            "Channel": result.subject,
            "Pipeline": result.variant.value,
        }
        for stage in result.stages:
            stats[stage.stage] = stage.status.value
        if result.artifact is not None:
            stats["Artifact"] = result.artifact.public_url

        self.print_summary(
            f"Archive {result.outcome.value}",
            elapsed=result.elapsed,
            stats=stats,
            style="cyan" if result.success else "red",
        )


# Global logger instance
logger = PipelineLogger()
