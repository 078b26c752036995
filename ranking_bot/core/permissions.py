"""
Permission helpers for event management commands.

Creating, editing and toggling events or changing scores is reserved for the
server owner, members with the Administrator permission and configured bot
owners (``OWNER_IDS``).
"""
from __future__ import annotations

from typing import Iterable, Optional

import discord

__all__ = [
    "is_server_owner",
    "is_administrator",
    "is_bot_owner",
    "can_manage_events",
]


def is_server_owner(user: Optional[discord.abc.User], guild: Optional[discord.Guild]) -> bool:
    owner_id = getattr(guild, "owner_id", None)
    user_id = getattr(user, "id", None)
    return owner_id is not None and user_id is not None and owner_id == user_id


def is_administrator(user: Optional[discord.abc.User]) -> bool:
    """True when the member holds the Administrator permission in the guild."""
    permissions = getattr(user, "guild_permissions", None)
    return bool(getattr(permissions, "administrator", False))


def is_bot_owner(user: Optional[discord.abc.User], owner_ids: Iterable[int] = ()) -> bool:
    user_id = getattr(user, "id", None)
    return user_id is not None and user_id in set(owner_ids)


def can_manage_events(
    user: Optional[discord.abc.User],
    guild: Optional[discord.Guild],
    owner_ids: Iterable[int] = (),
) -> bool:
    """
    Check whether a user may create or change events and scores.

    Args:
        user: member invoking the command
        guild: guild the command runs in; direct messages never qualify
        owner_ids: bot owner ids from configuration

    Returns:
        True for the server owner, administrators and bot owners.
    """
    if guild is None:
        return False
    return is_server_owner(user, guild) or is_administrator(user) or is_bot_owner(user, owner_ids)
