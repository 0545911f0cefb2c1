"""
Best effort wipe of a guild before a restore.

Every deletion and every setting change is its own call, one failure never stops the rest.
"""

from __future__ import annotations

import asyncio
import logging
import typing as t

from .adapters.base import SUPPRESSED_SYSTEM_NOTIFICATIONS, GuildView, PlatformAdapter

log = logging.getLogger("red.vrt.chronicle.reset")

AFK_TIMEOUT = 300


async def _attempt(label: str, coro: t.Awaitable) -> bool:
    try:
        await coro
        return True
    except Exception as e:
        log.warning("Reset step failed: %s", label, exc_info=e)
        return False


async def _listing(label: str, coro: t.Awaitable[list]) -> list:
    try:
        return await coro
    except Exception as e:
        log.warning("Could not list %s", label, exc_info=e)
        return []


async def clear_guild(adapter: PlatformAdapter, guild: GuildView) -> None:
    """Delete roles, channels, emojis, webhooks and bans, then reset guild settings to defaults"""
    roles = await _listing("roles", adapter.list_roles(guild))
    deletable = [i for i in roles if i.editable and not i.is_default and i.id != guild.id]
    channels = await _listing("channels", adapter.list_channels(guild))
    emojis = await _listing("emojis", adapter.list_emojis(guild))
    webhooks = await _listing("webhooks", adapter.list_guild_webhooks(guild))
    bans = await _listing("bans", adapter.list_bans(guild))

    tasks = [_attempt(f"delete role {i.name}", adapter.delete_role(guild, i)) for i in deletable]
    tasks.extend(_attempt(f"delete channel {i.name}", adapter.delete_channel(i)) for i in channels)
    tasks.extend(_attempt(f"delete emoji {i.name}", adapter.delete_emoji(guild, i)) for i in emojis)
    tasks.extend(_attempt(f"delete webhook {i.name}", adapter.delete_webhook(i)) for i in webhooks)
    tasks.extend(_attempt(f"unban {i}", adapter.unban(guild, i)) for i in bans)
    results = await asyncio.gather(*tasks)
    log.info("Cleared %s of %s items from %s", sum(results), len(results), guild.name)

    settings: list[tuple[str, dict]] = [
        ("afk channel", {"afk_channel": None}),
        ("afk timeout", {"afk_timeout": AFK_TIMEOUT}),
        ("icon", {"icon": None}),
        ("banner", {"banner": None}),
        ("splash", {"splash": None}),
        ("default notifications", {"default_notifications": "only_mentions"}),
    ]
    if not guild.is_community:
        settings.append(("explicit content filter", {"explicit_content_filter": "disabled"}))
        settings.append(("verification level", {"verification_level": "none"}))
    settings.append(("system channel", {"system_channel": None}))
    settings.append(("system channel flags", {"system_channel_flags": list(SUPPRESSED_SYSTEM_NOTIFICATIONS)}))

    for label, kwargs in settings:
        await _attempt(label, adapter.edit_guild(guild, **kwargs))
    await _attempt("widget", adapter.edit_widget(guild, False, None))
