from __future__ import annotations

import logging
import typing as t

from .adapters.base import MASK_64, ChannelView, PlatformOverwrite, RoleView
from .records import PermissionOverwriteRecord

log = logging.getLogger("red.vrt.chronicle.permissions")


def to_unsigned(mask: str | int | None) -> int:
    """Decimal string or int to an unsigned 64 bit mask, negative values wrap"""
    if mask is None or mask == "":
        return 0
    return int(mask) & MASK_64


def fetch_channel_permissions(channel: ChannelView, role_names: dict[int, str]) -> list[PermissionOverwriteRecord]:
    """
    Portable overwrites for a channel.

    Only role overwrites are kept, member overwrites point at users that may not exist later.
    Role names are the join key on restore since IDs change between guilds.
    """
    permissions: list[PermissionOverwriteRecord] = []
    try:
        overwrites = [i for i in channel.overwrites if i.is_role]
    except Exception as e:
        log.error("Could not read permission overwrites of %s", channel.name, exc_info=e)
        return permissions

    for overwrite in overwrites:
        try:
            name = role_names.get(overwrite.target_id)
            if name is None:
                continue
            permissions.append(
                PermissionOverwriteRecord(
                    role_name=name,
                    allow=str(to_unsigned(overwrite.allow)) if overwrite.allow else "0",
                    deny=str(to_unsigned(overwrite.deny)) if overwrite.deny else "0",
                )
            )
        except Exception as e:
            log.error(
                "Failed to read the overwrite for role %s in %s",
                getattr(overwrite, "target_id", "unknown"),
                channel.name,
                exc_info=e,
            )
    return permissions


def build_overwrites(records: t.Iterable[PermissionOverwriteRecord], roles: list[RoleView]) -> list[PlatformOverwrite]:
    """Resolve portable overwrites against the destination guild's roles by name"""
    role_ids: dict[str, int] = {}
    for role in roles:
        # First role with a given name wins
        role_ids.setdefault(role.name, role.id)

    overwrites: list[PlatformOverwrite] = []
    for record in records:
        role_id = role_ids.get(record.role_name)
        if role_id is None:
            log.debug("Role %s does not exist anymore, dropping its overwrite", record.role_name)
            continue
        overwrites.append(
            PlatformOverwrite(
                id=role_id,
                allow=to_unsigned(record.allow),
                deny=to_unsigned(record.deny),
            )
        )
    return overwrites
