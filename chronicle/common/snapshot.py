from __future__ import annotations

import logging
import typing as t
from datetime import datetime, timezone
from io import StringIO
from time import perf_counter

from discord.utils import time_snowflake
from pydantic import Field
from redbot.core.i18n import Translator
from redbot.core.utils.chat_formatting import humanize_timedelta

from . import Base
from .adapters.base import ChannelView, GuildView, PlatformAdapter
from .builder import load_category, load_channel
from .capture import fetch_category_data, fetch_text_channel_data, fetch_voice_channel_data
from .options import BackupOptions, RestoreOptions
from .records import (
    CategoryRecord,
    ChannelKind,
    ChannelRecord,
    MemberRecord,
    TextChannelRecord,
    VoiceChannelRecord,
)
from .reset import clear_guild

log = logging.getLogger("red.vrt.chronicle.snapshot")
_ = Translator("Chronicle", __file__)


def _new_id() -> str:
    return str(time_snowflake(datetime.now(tz=timezone.utc)))


class SnapshotChannels(Base):
    categories: list[CategoryRecord] = []
    others: list[ChannelRecord] = []


class GuildSnapshot(Base):
    id: str = Field(default_factory=_new_id)
    name: str
    guild_id: int
    icon_url: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now().astimezone(tz=timezone.utc))
    channels: SnapshotChannels = Field(default_factory=SnapshotChannels)
    members: list[MemberRecord] = []

    def created_fmt(self, type: t.Literal["d", "D", "t", "T", "f", "F", "R"] = "F") -> str:
        return f"<t:{int(self.created_at.timestamp())}:{type}>"

    @property
    def channel_count(self) -> int:
        return len(self.channels.others) + sum(len(i.children) for i in self.channels.categories)

    @property
    def message_count(self) -> int:
        count = 0
        for channel in self.iter_channels():
            if isinstance(channel, TextChannelRecord):
                count += len(channel.messages) + sum(len(i.messages) for i in channel.threads)
        return count

    def iter_channels(self) -> t.Iterator[ChannelRecord]:
        for category in self.channels.categories:
            yield from category.children
        yield from self.channels.others

    @classmethod
    async def capture(cls, adapter: PlatformAdapter, guild: GuildView, options: BackupOptions) -> GuildSnapshot:
        """Capture the categories, channels, threads and messages of a guild"""
        start = perf_counter()
        roles = await adapter.list_roles(guild)
        role_names = {i.id: i.name for i in roles}
        channels = sorted(await adapter.list_channels(guild), key=lambda x: x.position)

        async def _channel_record(channel: ChannelView) -> ChannelRecord | None:
            if channel.kind.is_voice:
                return fetch_voice_channel_data(channel, role_names)
            if channel.kind.is_text_like:
                return await fetch_text_channel_data(adapter, channel, role_names, options)
            log.debug("Skipping %s, %s channels are not captured", channel.name, channel.kind.value)
            return None

        snapshot = cls(
            name=guild.name,
            guild_id=guild.id,
            icon_url=guild.icon_url,
        )
        if options.backup_id:
            snapshot.id = options.backup_id

        for category in [i for i in channels if i.kind == ChannelKind.CATEGORY]:
            if category.name in options.do_not_backup:
                log.info("Ignoring category %s", category.name)
                continue
            record = fetch_category_data(category, role_names)
            for child in [i for i in channels if i.parent_id == category.id]:
                if child_record := await _channel_record(child):
                    record.children.append(child_record)
            snapshot.channels.categories.append(record)

        for channel in [i for i in channels if i.parent_id is None and i.kind != ChannelKind.CATEGORY]:
            if channel_record := await _channel_record(channel):
                snapshot.channels.others.append(channel_record)

        if options.backup_members:
            try:
                members = await adapter.list_members(guild)
            except Exception as e:
                log.error("Could not list the members of %s", guild.name, exc_info=e)
                members = []
            for member in members:
                snapshot.members.append(
                    MemberRecord(
                        user_id=member.id,
                        username=member.username,
                        avatar_url=member.avatar_url,
                        roles=[role_names[i] for i in member.role_ids if i in role_names],
                    )
                )

        log.info(
            "Captured %s channels and %s messages from %s in %.2fs",
            snapshot.channel_count,
            snapshot.message_count,
            guild.name,
            perf_counter() - start,
        )
        return snapshot

    async def restore(self, adapter: PlatformAdapter, guild: GuildView, options: RestoreOptions) -> str:
        """Rebuild this snapshot in a guild.

        Returns:
            A plain text report of everything that could not be restored
        """
        start = perf_counter()
        log.info("Restoring snapshot %s of %s to %s", self.id, self.name, guild.name)
        results = StringIO()

        if options.clear_guild_before_restore:
            try:
                await clear_guild(adapter, guild)
            except Exception as e:
                log.error("Failed to clear %s", guild.name, exc_info=e)
                results.write(_("Failed to clear the server: {}\n").format(e))

        restored = 0
        for category_record in self.channels.categories:
            try:
                category = await load_category(adapter, category_record, guild)
            except Exception as e:
                log.error("Failed to create category %s", category_record.name, exc_info=e)
                results.write(_("Failed to create category {}: {}\n").format(category_record.name, e))
                continue
            for child in category_record.children:
                restored += await self._restore_channel(adapter, guild, child, category, options, results)

        for channel_record in self.channels.others:
            restored += await self._restore_channel(adapter, guild, channel_record, None, options, results)

        log.info("Restored %s channels to %s in %.2fs", restored, guild.name, perf_counter() - start)
        delta = humanize_timedelta(seconds=int(perf_counter() - start)) or _("less than a second")
        results.write(
            _("Restored {}/{} channels in {} using the {} client\n").format(
                restored, self.channel_count, delta, adapter.name
            )
        )
        return results.getvalue()

    @staticmethod
    async def _restore_channel(
        adapter: PlatformAdapter,
        guild: GuildView,
        record: TextChannelRecord | VoiceChannelRecord,
        category: ChannelView | None,
        options: RestoreOptions,
        results: StringIO,
    ) -> int:
        try:
            await load_channel(adapter, record, guild, category=category, options=options)
        except Exception as e:
            log.error("Failed to restore channel %s", record.name, exc_info=e)
            results.write(_("Failed to restore channel {}: {}\n").format(record.name, e))
            return 0
        return 1

    def dumps(self, beautify: bool = True) -> bytes:
        return self.dump_bytes(beautify)

    @classmethod
    def loads(cls, raw: bytes | str) -> GuildSnapshot:
        return cls.load_bytes(raw)
