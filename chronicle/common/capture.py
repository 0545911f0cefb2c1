from __future__ import annotations

import asyncio
import logging

from .adapters.base import ChannelView, PlatformAdapter
from .extractor import fetch_channel_messages
from .options import BackupOptions
from .permissions import fetch_channel_permissions
from .records import (
    CategoryRecord,
    ChannelKind,
    TextChannelRecord,
    ThreadRecord,
    VoiceChannelRecord,
)

log = logging.getLogger("red.vrt.chronicle.capture")


def fetch_category_data(channel: ChannelView, role_names: dict[int, str]) -> CategoryRecord:
    """Category shell, children are attached by the caller"""
    return CategoryRecord(
        name=channel.name,
        permissions=fetch_channel_permissions(channel, role_names),
    )


def fetch_voice_channel_data(channel: ChannelView, role_names: dict[int, str]) -> VoiceChannelRecord:
    return VoiceChannelRecord(
        type=channel.kind,
        name=channel.name,
        bitrate=channel.bitrate,
        user_limit=channel.user_limit,
        parent_name=channel.parent_name,
        permissions=fetch_channel_permissions(channel, role_names),
    )


async def fetch_thread_data(adapter: PlatformAdapter, thread: ChannelView, options: BackupOptions) -> ThreadRecord:
    record = ThreadRecord(
        type=thread.kind,
        name=thread.name,
        archived=thread.archived,
        auto_archive_duration=thread.auto_archive_duration,
        locked=thread.locked,
        rate_limit_per_user=thread.rate_limit_per_user,
    )
    try:
        record.messages = await fetch_channel_messages(adapter, thread, options)
    except Exception as e:
        log.error("Failed to extract messages from thread %s", thread.name, exc_info=e)
    return record


async def fetch_text_channel_data(
    adapter: PlatformAdapter,
    channel: ChannelView,
    role_names: dict[int, str],
    options: BackupOptions,
) -> TextChannelRecord:
    record = TextChannelRecord(
        type=channel.kind,
        name=channel.name,
        nsfw=channel.nsfw,
        rate_limit_per_user=channel.rate_limit_per_user if channel.kind == ChannelKind.TEXT else None,
        parent_name=channel.parent_name,
        topic=channel.topic,
        permissions=fetch_channel_permissions(channel, role_names),
        is_news=channel.kind == ChannelKind.NEWS,
    )

    try:
        threads = await adapter.list_threads(channel)
    except Exception as e:
        log.error("Could not list threads of %s", channel.name, exc_info=e)
        threads = []
    if threads:
        record.threads = list(await asyncio.gather(*[fetch_thread_data(adapter, i, options) for i in threads]))

    try:
        record.messages = await fetch_channel_messages(adapter, channel, options)
    except Exception as e:
        log.error("Failed to extract messages from %s", channel.name, exc_info=e)
    return record
