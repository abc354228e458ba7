"""Export stage: run DiscordChatExporter and classify its outcome.

The exporter's exit code is not trusted on its own: an export only counts as
successful when its stdout contains the success marker.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from channel_archive.core.errors import ExternalToolFailure
from channel_archive.pipeline.logger import logger
from channel_archive.utils.masking import mask_sensitive_info
from channel_archive.utils.time import utcnow

SUCCESS_MARKER = "Successfully exported"


class ExportFormat(str, Enum):
    """Exporter output formats used by the pipeline variants."""

    JSON = "Json"
    HTML_DARK = "HtmlDark"

    @property
    def extension(self) -> str:
        return ".json" if self is ExportFormat.JSON else ".html"


def export_filename(channel_id: int, fmt: ExportFormat) -> str:
    """Timestamped file name for a fresh export of a channel."""
    timestamp = utcnow().strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"{channel_id}-{timestamp}{fmt.extension}"


@dataclass
class TranscriptExporter:
    """Wrapper around the DiscordChatExporter CLI.

    Args:
        command: Path to the DiscordChatExporter.Cli binary
        token: Discord token passed to the exporter
        timeout: Seconds before the subprocess is killed
        success_marker: Substring of stdout that signals a good export
    """

    command: str
    token: str
    timeout: float = 1800.0
    success_marker: str = SUCCESS_MARKER
    secrets: tuple[str, ...] = field(default=())

    def build_args(
        self, channel_id: int, output_path: Path, fmt: ExportFormat
    ) -> list[str]:
        return [
            self.command,
            "export",
            "-t",
            self.token,
            "-c",
            str(channel_id),
            "-f",
            fmt.value,
            "-o",
            str(output_path),
        ]

    def _mask(self, text: str) -> str:
        return mask_sensitive_info(text, (self.token, *self.secrets))

    async def export(
        self,
        channel_id: int,
        output_path: Path,
        fmt: ExportFormat = ExportFormat.JSON,
    ) -> str:
        """Export a channel to output_path.

        Returns:
            The exporter's stdout

        Raises:
            ExternalToolFailure: The exporter could not start, timed out,
                or its stdout lacks the success marker
        """
        args = self.build_args(channel_id, output_path, fmt)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Executing command: {self._mask(' '.join(args))}")

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolFailure(self._mask(f"Could not start exporter: {e}")) from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ExternalToolFailure(
                f"Exporter timed out after {self.timeout:.0f}s",
                returncode=process.returncode,
            )

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")

        if stderr.strip():
            logger.warning(f"Exporter stderr: {self._mask(stderr.strip())}")

        if self.success_marker not in stdout:
            masked = self._mask(stdout.strip())
            raise ExternalToolFailure(
                f"Export failed (exit code {process.returncode}): {masked}",
                stdout=masked,
                returncode=process.returncode,
            )

        return stdout
