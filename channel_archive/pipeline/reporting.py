"""Operator-facing reports sent outside the ledger.

CommandCenterReporter posts masked embeds into an operator channel (stage
failures, channel moves). CompletionCallback tells an external service that
a remote job finished. Both are best effort: a failed report is logged and
never fails the job.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import httpx

from channel_archive.discord_api.client import DiscordAPIError
from channel_archive.pipeline.logger import logger
from channel_archive.utils.masking import mask_sensitive_info

if TYPE_CHECKING:
    from channel_archive.discord_api.client import DiscordClient
    from channel_archive.pipeline.models import ArchiveJob

REPORT_COLOR = 0xFF3864

# Discord rejects embed descriptions longer than this
MAX_DESCRIPTION_LENGTH = 4096


class CommandCenterReporter:
    """Posts operator reports into a command-center channel.

    Args:
        client: Shared, already opened Discord client
        channel_id: Channel reports go to; None disables reporting
        secrets: Configured credentials masked out of every report
    """

    def __init__(
        self,
        client: DiscordClient,
        channel_id: int | None,
        secrets: Iterable[str] = (),
    ) -> None:
        self.client = client
        self.channel_id = channel_id
        self._secrets = tuple(secrets)

    def embed(self, message: str) -> dict[str, Any]:
        description = mask_sensitive_info(message, self._secrets)
        return {
            "description": description[:MAX_DESCRIPTION_LENGTH],
            "color": REPORT_COLOR,
        }

    async def report(self, message: str) -> bool:
        """Post a report; returns whether it was delivered."""
        if self.channel_id is None:
            return False
        try:
            await self.client.create_message(
                self.channel_id, embeds=[self.embed(message)]
            )
        except (DiscordAPIError, httpx.HTTPError) as e:
            logger.warning(
                f"Could not report to command center {self.channel_id}: {e}"
            )
            return False
        return True


class CompletionCallback:
    """POSTs the outcome of a remote job to a callback URL.

    The body is ``{"channelId", "guildId", "success", "archiveUrl"}`` with
    snowflakes as strings and archiveUrl null when nothing was uploaded.

    Args:
        url: Endpoint to POST to
        timeout: Request timeout in seconds
        client: httpx client to send with (a short-lived one per call if None)
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client

    @staticmethod
    def payload(
        job: ArchiveJob, success: bool, archive_url: str | None = None
    ) -> dict[str, Any]:
        return {
            "channelId": str(job.channel_id),
            "guildId": str(job.guild_id) if job.guild_id is not None else None,
            "success": success,
            "archiveUrl": archive_url,
        }

    async def _post(self, client: httpx.AsyncClient, body: dict[str, Any]) -> None:
        response = await client.post(self.url, json=body, timeout=self.timeout)
        response.raise_for_status()

    async def notify(
        self, job: ArchiveJob, success: bool, archive_url: str | None = None
    ) -> bool:
        """Send the callback; returns whether the endpoint accepted it."""
        body = self.payload(job, success, archive_url)
        try:
            if self._client is not None:
                await self._post(self._client, body)
            else:
                async with httpx.AsyncClient() as client:
                    await self._post(client, body)
        except httpx.HTTPError as e:
            logger.warning(f"Completion callback for channel {job.channel_id} failed: {e}")
            return False
        return True
