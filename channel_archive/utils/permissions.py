"""Discord permission arithmetic for the relocation stage.

Moving a channel into the archive category needs MANAGE_CHANNELS on that
channel. The bot's effective bits are computed the way Discord does it, so a
missing permission is reported up front rather than as a 403 mid-move.

See: https://discord.com/developers/docs/topics/permissions
"""

from __future__ import annotations


ADMINISTRATOR = 1 << 3
MANAGE_CHANNELS = 1 << 4
VIEW_CHANNEL = 1 << 10
ALL_PERMISSIONS = (1 << 64) - 1

ROLE_OVERWRITE = 0
MEMBER_OVERWRITE = 1


def build_role_permissions_map(roles_data: list[dict]) -> dict[int, int]:
    """Map role id to permission bits from a guild's ``roles`` payload.

    Discord sends permission bitfields as strings; missing values count as 0.
    """
    return {
        int(role["id"]): int(role.get("permissions", 0) or 0) for role in roles_data
    }


def compute_base_permissions(
    user_roles: list[int],
    guild_roles: dict[int, int],
    everyone_role_id: int,
) -> int:
    """Guild-level permissions: @everyone OR every role the member holds.

    Args:
        user_roles: Role ids held by the member
        guild_roles: Output of build_role_permissions_map
        everyone_role_id: The @everyone role, whose id equals the guild id

    Returns:
        Permission bits, or ALL_PERMISSIONS for administrators
    """
    permissions = guild_roles.get(everyone_role_id, 0)
    for role_id in user_roles:
        permissions |= guild_roles.get(role_id, 0)

    return ALL_PERMISSIONS if permissions & ADMINISTRATOR else permissions


def _apply(permissions: int, allow: int, deny: int) -> int:
    return (permissions & ~deny) | allow


def compute_channel_permissions(
    user_id: int,
    base_permissions: int,
    channel_overwrites: list[dict],
    user_roles: list[int],
    everyone_role_id: int,
) -> int:
    """Apply a channel's permission overwrites on top of the base bits.

    Overwrites are applied in three tiers, each deny before allow: the
    @everyone overwrite, then the union of the member's role overwrites, then
    an overwrite targeting the member itself. Administrators skip all of it.
    """
    if base_permissions & ADMINISTRATOR:
        return ALL_PERMISSIONS

    roles = set(user_roles)
    # (allow, deny) per tier
    everyone = (0, 0)
    role_allow = role_deny = 0
    member = (0, 0)

    for overwrite in channel_overwrites:
        target = int(overwrite["id"])
        allow = int(overwrite.get("allow", 0) or 0)
        deny = int(overwrite.get("deny", 0) or 0)

        if overwrite["type"] == ROLE_OVERWRITE:
            if target == everyone_role_id:
                everyone = (allow, deny)
            elif target in roles:
                role_allow |= allow
                role_deny |= deny
        elif overwrite["type"] == MEMBER_OVERWRITE and target == user_id:
            member = (allow, deny)

    permissions = _apply(base_permissions, *everyone)
    permissions = _apply(permissions, role_allow, role_deny)
    return _apply(permissions, *member)


def can_view_channel(permissions: int) -> bool:
    return bool(permissions & VIEW_CHANNEL)


def can_manage_channels(permissions: int) -> bool:
    """MANAGE_CHANNELS covers both renaming and re-parenting a channel."""
    return bool(permissions & MANAGE_CHANNELS)
