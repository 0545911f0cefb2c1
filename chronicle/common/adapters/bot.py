from __future__ import annotations

import logging
import typing as t
from io import BytesIO

import discord

from ..records import ChannelKind
from .base import (
    AttachmentView,
    AuthorView,
    ChannelView,
    EmojiView,
    GuildView,
    MemberView,
    MessageView,
    OverwriteView,
    PlatformAdapter,
    PlatformOverwrite,
    RoleView,
    SendPayload,
    WebhookView,
)

log = logging.getLogger("red.vrt.chronicle.adapters.bot")

NOTIFICATION_LEVELS = {
    "all_messages": discord.NotificationLevel.all_messages,
    "only_mentions": discord.NotificationLevel.only_mentions,
}
CONTENT_FILTERS = {
    "disabled": discord.ContentFilter.disabled,
    "no_role": discord.ContentFilter.no_role,
    "all_members": discord.ContentFilter.all_members,
}
VERIFICATION_LEVELS = {
    "none": discord.VerificationLevel.none,
    "low": discord.VerificationLevel.low,
    "medium": discord.VerificationLevel.medium,
    "high": discord.VerificationLevel.high,
    "highest": discord.VerificationLevel.highest,
}


def _is_role_target(target: t.Any) -> bool:
    if isinstance(target, discord.Role):
        return True
    # Uncached targets come back as discord.Object with the type they point at
    return getattr(target, "type", None) is discord.Role


def _allowed_mentions(allowed: dict | None) -> discord.AllowedMentions | None:
    if allowed is None:
        return None
    parse = allowed.get("parse", [])
    return discord.AllowedMentions(
        everyone="everyone" in parse,
        users="users" in parse,
        roles="roles" in parse,
    )


class BotAdapter(PlatformAdapter):
    """Standard variant backed by a discord.py bot client"""

    name = "discord.py"

    def __init__(self, bot: discord.Client):
        self.bot = bot

    # ---------------------------- CONVERSION ----------------------------
    def guild_view(self, guild: discord.Guild) -> GuildView:
        return GuildView(
            id=guild.id,
            name=guild.name,
            premium_tier=guild.premium_tier,
            features=set(guild.features),
            icon_url=guild.icon.url if guild.icon else None,
            handle=guild,
        )

    def channel_view(self, channel: discord.abc.GuildChannel | discord.Thread) -> ChannelView:
        overwrites: list[OverwriteView] = []
        if not isinstance(channel, discord.Thread):
            for target, overwrite in channel.overwrites.items():
                allow, deny = overwrite.pair()
                overwrites.append(
                    OverwriteView(
                        target_id=target.id,
                        is_role=_is_role_target(target),
                        allow=allow.value,
                        deny=deny.value,
                    )
                )
        parent = channel.parent if isinstance(channel, discord.Thread) else channel.category
        return ChannelView(
            id=channel.id,
            name=channel.name,
            kind=ChannelKind.from_tag(channel.type),
            handle=channel,
            position=getattr(channel, "position", 0) or 0,
            parent_id=parent.id if parent else None,
            parent_name=parent.name if parent else None,
            nsfw=bool(getattr(channel, "nsfw", False)),
            topic=getattr(channel, "topic", None),
            rate_limit_per_user=getattr(channel, "slowmode_delay", 0) or 0,
            bitrate=getattr(channel, "bitrate", 0) or 0,
            user_limit=getattr(channel, "user_limit", 0) or 0,
            overwrites=overwrites,
            archived=bool(getattr(channel, "archived", False)),
            locked=bool(getattr(channel, "locked", False)),
            auto_archive_duration=getattr(channel, "auto_archive_duration", None),
        )

    def message_view(self, message: discord.Message) -> MessageView:
        author = None
        if message.author:
            author = AuthorView(username=message.author.name, avatar_url=message.author.display_avatar.url)
        return MessageView(
            id=message.id,
            author=author,
            content=message.clean_content,
            embeds=[i.to_dict() for i in message.embeds],
            attachments=[AttachmentView(name=i.filename, url=i.url) for i in message.attachments],
            pinned=message.pinned,
            created_at=message.created_at,
        )

    @staticmethod
    def webhook_view(webhook: discord.Webhook) -> WebhookView:
        return WebhookView(
            id=webhook.id,
            name=webhook.name or "",
            channel_id=webhook.channel_id,
            token=webhook.token,
            handle=webhook,
        )

    # ---------------------------- READS ----------------------------
    async def fetch_guild(self, guild: discord.Guild | int) -> GuildView:
        if isinstance(guild, discord.Guild):
            return self.guild_view(guild)
        cached = self.bot.get_guild(int(guild))
        if cached:
            return self.guild_view(cached)
        return self.guild_view(await self.bot.fetch_guild(int(guild)))

    async def list_roles(self, guild: GuildView) -> list[RoleView]:
        return [
            RoleView(
                id=role.id,
                name=role.name,
                position=role.position,
                editable=role.is_assignable(),
                is_default=role.is_default(),
                handle=role,
            )
            for role in guild.handle.roles
        ]

    async def list_channels(self, guild: GuildView) -> list[ChannelView]:
        return [self.channel_view(i) for i in guild.handle.channels]

    async def list_threads(self, channel: ChannelView) -> list[ChannelView]:
        return [self.channel_view(i) for i in getattr(channel.handle, "threads", [])]

    async def list_members(self, guild: GuildView) -> list[MemberView]:
        return [
            MemberView(
                id=member.id,
                username=member.name,
                avatar_url=member.display_avatar.url,
                role_ids=[i.id for i in member.roles],
            )
            for member in guild.handle.members
        ]

    async def fetch_messages(self, channel: ChannelView, *, before: int | None, limit: int) -> list[MessageView]:
        cursor = discord.Object(id=before) if before else None
        return [self.message_view(i) async for i in channel.handle.history(limit=limit, before=cursor)]

    async def fetch_webhooks(self, channel: ChannelView) -> list[WebhookView]:
        return [self.webhook_view(i) for i in await channel.handle.webhooks()]

    async def list_emojis(self, guild: GuildView) -> list[EmojiView]:
        return [EmojiView(id=i.id, name=i.name, handle=i) for i in guild.handle.emojis]

    async def list_guild_webhooks(self, guild: GuildView) -> list[WebhookView]:
        return [self.webhook_view(i) for i in await guild.handle.webhooks()]

    async def list_bans(self, guild: GuildView) -> list[int]:
        return [entry.user.id async for entry in guild.handle.bans(limit=None)]

    # ---------------------------- WRITES ----------------------------
    async def create_category(self, guild: GuildView, name: str) -> ChannelView:
        category = await guild.handle.create_category(name=name)
        return self.channel_view(category)

    async def create_channel(
        self,
        guild: GuildView,
        name: str,
        kind: ChannelKind,
        parent: ChannelView | None = None,
        **options: t.Any,
    ) -> ChannelView:
        target: discord.Guild = guild.handle
        category = parent.handle if parent else None
        if kind == ChannelKind.VOICE:
            kwargs = {"name": name, "category": category}
            if options.get("bitrate"):
                kwargs["bitrate"] = options["bitrate"]
            if options.get("user_limit") is not None:
                kwargs["user_limit"] = options["user_limit"]
            channel = await target.create_voice_channel(**kwargs)
        elif kind == ChannelKind.STAGE_VOICE:
            channel = await target.create_stage_channel(name=name, category=category)
            edits = {}
            if options.get("nsfw") is not None:
                edits["nsfw"] = options["nsfw"]
            if options.get("rate_limit_per_user"):
                edits["slowmode_delay"] = options["rate_limit_per_user"]
            if edits:
                await channel.edit(**edits)
        else:
            kwargs = {"name": name, "category": category, "news": kind == ChannelKind.NEWS}
            if options.get("topic"):
                kwargs["topic"] = options["topic"]
            if options.get("nsfw") is not None:
                kwargs["nsfw"] = options["nsfw"]
            if options.get("rate_limit_per_user"):
                kwargs["slowmode_delay"] = options["rate_limit_per_user"]
            channel = await target.create_text_channel(**kwargs)
        return self.channel_view(channel)

    async def set_overwrites(
        self, guild: GuildView, channel: ChannelView, overwrites: list[PlatformOverwrite]
    ) -> None:
        mapping: dict[discord.Role | discord.Object, discord.PermissionOverwrite] = {}
        for i in overwrites:
            target = guild.handle.get_role(i.id) or discord.Object(id=i.id, type=discord.Role)
            mapping[target] = discord.PermissionOverwrite.from_pair(
                discord.Permissions(i.allow), discord.Permissions(i.deny)
            )
        await channel.handle.edit(overwrites=mapping)

    async def create_webhook(self, channel: ChannelView, name: str) -> WebhookView:
        avatar = await self.bot.user.display_avatar.read() if self.bot.user else None
        webhook = await channel.handle.create_webhook(name=name, avatar=avatar)
        return self.webhook_view(webhook)

    async def send_message(self, webhook: WebhookView, payload: SendPayload, thread: ChannelView | None = None) -> int:
        kwargs = {
            "content": payload.content,
            "username": payload.username,
            "avatar_url": payload.avatar_url,
            "embeds": [discord.Embed.from_dict(i) for i in payload.embeds],
            "wait": True,
        }
        if payload.file:
            kwargs["file"] = discord.File(BytesIO(payload.file.data), filename=payload.file.name)
        mentions = _allowed_mentions(payload.allowed_mentions)
        if mentions:
            kwargs["allowed_mentions"] = mentions
        if thread:
            kwargs["thread"] = thread.handle
        message = await webhook.handle.send(**kwargs)
        return message.id

    async def pin_message(self, channel: ChannelView, message_id: int) -> None:
        await channel.handle.get_partial_message(message_id).pin()

    async def create_thread(
        self, channel: ChannelView, name: str, auto_archive_duration: int | None = None
    ) -> ChannelView:
        kind = discord.ChannelType.public_thread
        if channel.kind == ChannelKind.NEWS:
            kind = discord.ChannelType.news_thread
        kwargs = {"name": name, "type": kind}
        if auto_archive_duration:
            kwargs["auto_archive_duration"] = auto_archive_duration
        thread = await channel.handle.create_thread(**kwargs)
        return self.channel_view(thread)

    async def delete_role(self, guild: GuildView, role: RoleView) -> None:
        await role.handle.delete()

    async def delete_channel(self, channel: ChannelView) -> None:
        await channel.handle.delete()

    async def delete_emoji(self, guild: GuildView, emoji: EmojiView) -> None:
        await emoji.handle.delete()

    async def delete_webhook(self, webhook: WebhookView) -> None:
        await webhook.handle.delete()

    async def unban(self, guild: GuildView, user_id: int) -> None:
        await guild.handle.unban(discord.Object(id=user_id))

    async def edit_guild(self, guild: GuildView, **settings: t.Any) -> None:
        kwargs = {}
        for key, value in settings.items():
            if key in ("afk_channel", "system_channel"):
                kwargs[key] = value.handle if value else None
            elif key == "default_notifications":
                kwargs[key] = NOTIFICATION_LEVELS[value]
            elif key == "explicit_content_filter":
                kwargs[key] = CONTENT_FILTERS[value]
            elif key == "verification_level":
                kwargs[key] = VERIFICATION_LEVELS[value]
            elif key == "system_channel_flags":
                # discord.py flags are inverted, False means the notification is suppressed
                kwargs[key] = discord.SystemChannelFlags(**{i: False for i in value})
            else:
                kwargs[key] = value
        await guild.handle.edit(**kwargs)

    async def edit_widget(self, guild: GuildView, enabled: bool, channel: ChannelView | None = None) -> None:
        await guild.handle.edit(widget_enabled=enabled, widget_channel=channel.handle if channel else None)
