"""Relocate stage: move an archived channel into the archive category.

The bot's effective permissions are computed from the guild roles and the
channel's overwrites before anything is changed, so a missing MANAGE_CHANNELS
permission is reported as a PermissionFailure instead of a bare 403. When the
bot's member record can't be read the check is skipped and a 403 from the
move itself is mapped the same way. If a name in the archive category is
already taken, the channel is renamed first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from channel_archive.core.errors import PermissionFailure, TransportFailure
from channel_archive.discord_api.client import DiscordAPIError, DiscordClient
from channel_archive.pipeline.logger import logger
from channel_archive.pipeline.models import Artifact
from channel_archive.pipeline.naming import resolve_unique_channel_name
from channel_archive.utils.permissions import (
    ALL_PERMISSIONS,
    build_role_permissions_map,
    can_manage_channels,
    compute_base_permissions,
    compute_channel_permissions,
)
from channel_archive.utils.time import utcnow

if TYPE_CHECKING:
    from channel_archive.pipeline.reporting import CommandCenterReporter

NOTICE_COLOR = 0xFF3864


@dataclass
class RelocationResult:
    """Where the channel ended up."""

    channel_id: int
    name: str
    renamed: bool


def notice_embed(title: str, description: str) -> dict[str, Any]:
    """Build the embed posted into a channel after an archive step."""
    return {
        "title": title,
        "description": description,
        "color": NOTICE_COLOR,
        "timestamp": utcnow().isoformat(),
    }


class ChannelRelocator:
    """Moves channels into the archive category and posts notices.

    Args:
        client: Shared, already opened Discord client
        archive_category_id: Category channels are moved into
        notify: Post notice embeds into the relocated channel
        reporter: Command-center reporter told about every move
    """

    def __init__(
        self,
        client: DiscordClient,
        archive_category_id: int | None,
        notify: bool = True,
        reporter: CommandCenterReporter | None = None,
    ) -> None:
        self.client = client
        self.archive_category_id = archive_category_id
        self.notify = notify
        self.reporter = reporter

    # -------------------------------------------------------------------------
    # Notices
    # -------------------------------------------------------------------------

    async def _notify(self, channel_id: int, title: str, description: str) -> None:
        """Post a notice; failures are logged, never raised."""
        if not self.notify:
            return
        try:
            await self.client.create_message(
                channel_id, embeds=[notice_embed(title, description)]
            )
        except (DiscordAPIError, httpx.HTTPError) as e:
            logger.warning(f"Could not post notice to channel {channel_id}: {e}")

    async def notify_export_failed(self, channel_id: int) -> None:
        await self._notify(
            channel_id,
            "Channel Export Failed",
            "The export of this channel failed. Please try again later.",
        )

    # -------------------------------------------------------------------------
    # Permissions
    # -------------------------------------------------------------------------

    async def _channel_permissions(
        self, guild_id: int, channel: dict[str, Any]
    ) -> int | None:
        """The bot's effective bits on a channel; None when they can't be known."""
        guild = await self.client.get_guild(guild_id)
        user = await self.client.get_current_user()
        user_id = int(user["id"])

        if guild.get("owner_id") and int(guild["owner_id"]) == user_id:
            return ALL_PERMISSIONS

        try:
            member = await self.client.get_guild_member(guild_id, user_id)
        except DiscordAPIError as e:
            logger.warning(
                f"Could not look up the bot's roles in guild {guild_id}: {e}; "
                "skipping the permission pre-check"
            )
            return None
        user_roles = [int(r) for r in member.get("roles", [])]

        role_permissions = build_role_permissions_map(guild.get("roles", []))
        base_permissions = compute_base_permissions(user_roles, role_permissions, guild_id)
        return compute_channel_permissions(
            user_id,
            base_permissions,
            channel.get("permission_overwrites", []),
            user_roles,
            guild_id,
        )

    # -------------------------------------------------------------------------
    # Relocation
    # -------------------------------------------------------------------------

    async def relocate(
        self, channel_id: int, guild_id: int, artifact: Artifact | None = None
    ) -> RelocationResult:
        """Move a channel into the archive category, renaming on collision.

        Args:
            channel_id: Channel to move
            guild_id: Guild the channel belongs to
            artifact: Uploaded transcript, linked from the notice

        Returns:
            RelocationResult with the final channel name

        Raises:
            PermissionFailure: Missing MANAGE_CHANNELS, or the archive
                category is unset or unreachable
            TransportFailure: A Discord call failed
        """
        backup = ""
        if artifact is not None:
            backup = (
                " A backup has been created and can be accessed here: "
                f"{artifact.public_url}"
            )

        try:
            result = await self._relocate(channel_id, guild_id, backup)
        except PermissionFailure as e:
            await self._notify(channel_id, "Channel Archival Failed", e.message)
            raise
        except (DiscordAPIError, httpx.HTTPError) as e:
            await self._notify(
                channel_id,
                "Channel Exported, but Not Moved",
                f"{backup.strip() or 'A backup of this channel has been created.'}\n\n"
                f"This channel could not be moved due to an error: {e}",
            )
            if isinstance(e, DiscordAPIError) and e.status_code == 403:
                raise PermissionFailure(f"Discord refused the move: {e.message}") from e
            raise TransportFailure(f"Moving channel {channel_id} failed: {e}") from e

        return result

    async def _relocate(
        self, channel_id: int, guild_id: int, backup: str
    ) -> RelocationResult:
        if self.archive_category_id is None:
            raise PermissionFailure("No archive category is configured")

        channel = await self.client.get_channel(channel_id)
        permissions = await self._channel_permissions(guild_id, channel)
        if permissions is not None and not can_manage_channels(permissions):
            raise PermissionFailure(
                "Bot lacks MANAGE_CHANNELS permission for channel "
                f"{channel.get('name', channel_id)}"
            )

        guild_channels = await self.client.get_guild_channels(guild_id)
        category_id = str(self.archive_category_id)
        if not any(str(c.get("id")) == category_id for c in guild_channels):
            raise PermissionFailure(f"Archive category not found: {category_id}")

        siblings = [
            c.get("name", "")
            for c in guild_channels
            if str(c.get("parent_id")) == category_id
            and str(c.get("id")) != str(channel_id)
        ]
        current_name = channel.get("name") or f"channel-{channel_id}"
        new_name = resolve_unique_channel_name(current_name, siblings)
        renamed = new_name != current_name
        if renamed:
            logger.info(f"Renaming {current_name} to {new_name} to avoid a name clash")

        fields: dict[str, Any] = {"parent_id": self.archive_category_id}
        if renamed:
            fields["name"] = new_name
        await self.client.modify_channel(channel_id, **fields)
        if self.reporter is not None:
            moved_as = f"{current_name} as {new_name}" if renamed else new_name
            await self.reporter.report(
                f"Moved channel {moved_as} to the archive category"
            )

        rename_note = ""
        if renamed:
            rename_note = f" and renamed to {new_name} to avoid naming conflicts"
        await self._notify(
            channel_id,
            "Channel Moved to Archive",
            f"This channel has been moved to the archive{rename_note}!{backup}",
        )
        return RelocationResult(channel_id=channel_id, name=new_name, renamed=renamed)
