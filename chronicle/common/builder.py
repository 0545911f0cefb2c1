from __future__ import annotations

import logging
import typing as t

from .adapters.base import ChannelView, GuildView, PlatformAdapter, normalize_tier
from .options import RestoreOptions
from .permissions import build_overwrites
from .records import CategoryRecord, ChannelKind, TextChannelRecord, VoiceChannelRecord
from .replay import load_messages, load_threads

log = logging.getLogger("red.vrt.chronicle.builder")

MAX_BITRATE_PER_TIER = (64000, 128000, 256000, 384000)
# Kinds created as themselves, everything else is recreated as a text channel
PRESERVED_KINDS = (ChannelKind.VOICE, ChannelKind.NEWS, ChannelKind.STAGE_VOICE)
# Kinds that accept topic, nsfw and slowmode on creation
TOPIC_KINDS = (
    ChannelKind.TEXT,
    ChannelKind.NEWS,
    ChannelKind.FORUM,
    ChannelKind.MEDIA,
    ChannelKind.STAGE_VOICE,
)


def downgrade_bitrate(bitrate: int | None, premium_tier: t.Any) -> int | None:
    """Clamp a voice bitrate to what the guild's boost tier allows"""
    if not bitrate:
        return bitrate
    ceiling = MAX_BITRATE_PER_TIER[normalize_tier(premium_tier)]
    if bitrate > ceiling:
        return ceiling
    return bitrate


def creation_kind(kind: ChannelKind) -> ChannelKind:
    return kind if kind in PRESERVED_KINDS else ChannelKind.TEXT


async def apply_overwrites(
    adapter: PlatformAdapter,
    guild: GuildView,
    channel: ChannelView,
    record: CategoryRecord | TextChannelRecord | VoiceChannelRecord,
) -> None:
    roles = await adapter.list_roles(guild)
    overwrites = build_overwrites(record.permissions, roles)
    await adapter.set_overwrites(guild, channel, overwrites)


async def load_category(adapter: PlatformAdapter, record: CategoryRecord, guild: GuildView) -> ChannelView:
    """Create a category and apply its overwrites"""
    category = await adapter.create_category(guild, record.name)
    await apply_overwrites(adapter, guild, category, record)
    return category


async def load_channel(
    adapter: PlatformAdapter,
    record: TextChannelRecord | VoiceChannelRecord,
    guild: GuildView,
    category: ChannelView | None = None,
    options: RestoreOptions | None = None,
) -> ChannelView:
    """
    Recreate a channel from its record.

    Text and news channels get their messages replayed through a proxy webhook, then their
    threads replayed with that same webhook. Creation errors propagate to the caller.
    """
    options = options or RestoreOptions()
    kind = creation_kind(record.type)
    kwargs: dict[str, t.Any] = {}
    if isinstance(record, VoiceChannelRecord) and record.type == ChannelKind.VOICE:
        kwargs["bitrate"] = downgrade_bitrate(record.bitrate, guild.premium_tier)
        kwargs["user_limit"] = record.user_limit
    elif record.type in TOPIC_KINDS:
        kwargs["topic"] = getattr(record, "topic", None)
        kwargs["nsfw"] = getattr(record, "nsfw", None)
        kwargs["rate_limit_per_user"] = getattr(record, "rate_limit_per_user", None)

    channel = await adapter.create_channel(guild, record.name, kind, parent=category, **kwargs)
    log.debug("Created %s channel %s", kind.value, channel.name)
    await apply_overwrites(adapter, guild, channel, record)

    if not isinstance(record, TextChannelRecord) or record.type not in (ChannelKind.TEXT, ChannelKind.NEWS):
        return channel

    webhook = None
    if record.messages or record.threads:
        webhook = await load_messages(adapter, channel, record.messages, options)
    if record.threads:
        await load_threads(adapter, channel, record.threads, options, webhook)
    return channel
