"""
Self-automated variant: drives the REST API directly with a user account token.

Responses are raw JSON, so this adapter also does the work discord.py normally does for
the bot variant, such as resolving mentions into the readable message text.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
import typing as t
from datetime import datetime

import aiohttp
import orjson
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from ..records import ChannelKind
from .base import (
    MASK_64,
    AttachmentView,
    AuthorView,
    ChannelView,
    EmojiView,
    GuildView,
    MemberView,
    MessageView,
    OverwriteView,
    PlatformAdapter,
    PlatformError,
    PlatformOverwrite,
    RoleView,
    SendPayload,
    WebhookView,
    download,
    normalize_tier,
)

log = logging.getLogger("red.vrt.chronicle.adapters.user")

API_BASE = "https://discord.com/api/v10"
CDN_BASE = "https://cdn.discordapp.com"

NOTIFICATION_LEVELS = {"all_messages": 0, "only_mentions": 1}
CONTENT_FILTERS = {"disabled": 0, "no_role": 1, "all_members": 2}
VERIFICATION_LEVELS = {"none": 0, "low": 1, "medium": 2, "high": 3, "highest": 4}
SYSTEM_CHANNEL_FLAGS = {
    "join_notifications": 1 << 0,
    "premium_subscriptions": 1 << 1,
    "guild_reminder_notifications": 1 << 2,
    "join_notification_replies": 1 << 3,
}

USER_MENTION = re.compile(r"<@!?(\d+)>")
ROLE_MENTION = re.compile(r"<@&(\d+)>")
CHANNEL_MENTION = re.compile(r"<#(\d+)>")


class RateLimited(Exception):
    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__(f"Rate limited for {retry_after}s")


def _int(value: t.Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _avatar_url(user: dict) -> str:
    avatar = user.get("avatar")
    if avatar:
        ext = "gif" if avatar.startswith("a_") else "png"
        return f"{CDN_BASE}/avatars/{user['id']}/{avatar}.{ext}"
    # Default avatars rotate on the user ID for migrated usernames
    index = (_int(user.get("id")) >> 22) % 6
    return f"{CDN_BASE}/embed/avatars/{index}.png"


class UserAdapter(PlatformAdapter):
    """Self-automated variant backed by the REST API and a user token"""

    name = "user-rest"

    def __init__(self, token: str, session: aiohttp.ClientSession | None = None):
        self.token = token.strip()
        self._session = session
        # ID -> name lookups used to render mentions like the bot client does
        self._role_names: dict[int, str] = {}
        self._channel_names: dict[int, str] = {}

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": "Chronicle (Red-DiscordBot cog)"},
                timeout=aiohttp.ClientTimeout(total=30),
            )
        return self._session

    async def fetch_attachment(self, url: str) -> bytes:
        # The account token stays out of CDN requests
        return await download(self.session, url)

    @retry(
        retry=retry_if_exception_type((aiohttp.ClientConnectionError, RateLimited)),
        wait=wait_random_exponential(min=1, max=5),
        stop=stop_after_attempt(5),
        reraise=True,
    )
    async def request(
        self,
        method: str,
        path: str,
        *,
        payload: t.Any = None,
        params: dict | None = None,
        data: aiohttp.FormData | None = None,
    ) -> t.Any:
        kwargs: dict[str, t.Any] = {"params": params}
        if data is not None:
            kwargs["data"] = data
        elif payload is not None:
            kwargs["json"] = payload
        headers = {"Authorization": self.token}
        async with self.session.request(method, f"{API_BASE}{path}", headers=headers, **kwargs) as res:
            if res.status == 429:
                info = await res.json(content_type=None)
                retry_after = float(info.get("retry_after", 1.0))
                log.debug("Rate limited on %s %s, waiting %ss", method, path, retry_after)
                await asyncio.sleep(retry_after)
                raise RateLimited(retry_after)
            if res.status == 204:
                return None
            if res.status >= 400:
                raise PlatformError(res.status, (await res.text())[:200])
            return await res.json(content_type=None)

    # ---------------------------- CONVERSION ----------------------------
    def channel_view(self, data: dict, parent_names: dict[int, str] | None = None) -> ChannelView:
        self._channel_names[_int(data["id"])] = data.get("name", "")
        parent_id = _int(data.get("parent_id")) or None
        meta = data.get("thread_metadata") or {}
        overwrites = [
            OverwriteView(
                target_id=_int(i["id"]),
                is_role=i.get("type") in (0, "role"),
                allow=_int(i.get("allow")) if i.get("allow") is not None else None,
                deny=_int(i.get("deny")) if i.get("deny") is not None else None,
            )
            for i in data.get("permission_overwrites", [])
        ]
        return ChannelView(
            id=_int(data["id"]),
            name=data.get("name", ""),
            kind=ChannelKind.from_tag(data.get("type", 0)),
            handle=data,
            position=_int(data.get("position")),
            parent_id=parent_id,
            parent_name=(parent_names or self._channel_names).get(parent_id) if parent_id else None,
            nsfw=bool(data.get("nsfw", False)),
            topic=data.get("topic"),
            rate_limit_per_user=_int(data.get("rate_limit_per_user")),
            bitrate=_int(data.get("bitrate")),
            user_limit=_int(data.get("user_limit")),
            overwrites=overwrites,
            archived=bool(meta.get("archived", False)),
            locked=bool(meta.get("locked", False)),
            auto_archive_duration=meta.get("auto_archive_duration"),
        )

    def clean_content(self, data: dict) -> str:
        """Render mentions into readable text"""
        content = data.get("content") or ""
        users = {_int(i["id"]): i.get("global_name") or i.get("username", "") for i in data.get("mentions", [])}

        def _user(match: re.Match) -> str:
            name = users.get(_int(match.group(1)))
            return f"@{name}" if name else match.group(0)

        def _role(match: re.Match) -> str:
            name = self._role_names.get(_int(match.group(1)))
            return f"@{name}" if name else match.group(0)

        def _channel(match: re.Match) -> str:
            name = self._channel_names.get(_int(match.group(1)))
            return f"#{name}" if name else match.group(0)

        content = USER_MENTION.sub(_user, content)
        content = ROLE_MENTION.sub(_role, content)
        content = CHANNEL_MENTION.sub(_channel, content)
        return content.replace("@everyone", "@\u200beveryone").replace("@here", "@\u200bhere")

    def message_view(self, data: dict) -> MessageView:
        author = data.get("author")
        created = data.get("timestamp")
        return MessageView(
            id=_int(data["id"]),
            author=AuthorView(username=author.get("username", ""), avatar_url=_avatar_url(author)) if author else None,
            content=self.clean_content(data),
            embeds=list(data.get("embeds", [])),
            attachments=[
                AttachmentView(name=i.get("filename", ""), url=i.get("url", "")) for i in data.get("attachments", [])
            ],
            pinned=bool(data.get("pinned", False)),
            created_at=datetime.fromisoformat(created) if created else None,
        )

    @staticmethod
    def webhook_view(data: dict) -> WebhookView:
        return WebhookView(
            id=_int(data["id"]),
            name=data.get("name") or "",
            channel_id=_int(data.get("channel_id")) or None,
            token=data.get("token"),
            handle=data,
        )

    # ---------------------------- READS ----------------------------
    async def fetch_guild(self, guild: t.Any) -> GuildView:
        guild_id = _int(getattr(guild, "id", guild))
        data = await self.request("GET", f"/guilds/{guild_id}")
        self._role_names.update({_int(i["id"]): i.get("name", "") for i in data.get("roles", [])})
        icon = data.get("icon")
        return GuildView(
            id=guild_id,
            name=data.get("name", ""),
            premium_tier=normalize_tier(data.get("premium_tier", 0)),
            features=set(data.get("features", [])),
            icon_url=f"{CDN_BASE}/icons/{guild_id}/{icon}.png" if icon else None,
            handle=data,
        )

    async def list_roles(self, guild: GuildView) -> list[RoleView]:
        data = await self.request("GET", f"/guilds/{guild.id}/roles")
        roles: list[RoleView] = []
        for i in data:
            role_id = _int(i["id"])
            self._role_names[role_id] = i.get("name", "")
            roles.append(
                RoleView(
                    id=role_id,
                    name=i.get("name", ""),
                    position=_int(i.get("position")),
                    editable=not i.get("managed", False) and role_id != guild.id,
                    is_default=role_id == guild.id,
                    handle=i,
                )
            )
        return roles

    async def list_channels(self, guild: GuildView) -> list[ChannelView]:
        data = await self.request("GET", f"/guilds/{guild.id}/channels")
        names = {_int(i["id"]): i.get("name", "") for i in data}
        self._channel_names.update(names)
        return [self.channel_view(i, names) for i in data if not ChannelKind.from_tag(i.get("type", 0)).is_thread]

    async def list_threads(self, channel: ChannelView) -> list[ChannelView]:
        guild_id = channel.handle.get("guild_id")
        data = await self.request("GET", f"/guilds/{guild_id}/threads/active")
        return [
            self.channel_view(i)
            for i in data.get("threads", [])
            if _int(i.get("parent_id")) == channel.id
        ]

    async def list_members(self, guild: GuildView) -> list[MemberView]:
        members: list[MemberView] = []
        after = 0
        while True:
            data = await self.request("GET", f"/guilds/{guild.id}/members", params={"limit": 1000, "after": after})
            if not data:
                break
            for i in data:
                user = i.get("user", {})
                members.append(
                    MemberView(
                        id=_int(user.get("id")),
                        username=user.get("username", ""),
                        avatar_url=_avatar_url(user) if user else None,
                        role_ids=[_int(r) for r in i.get("roles", [])],
                    )
                )
            after = members[-1].id
            if len(data) < 1000:
                break
        return members

    async def fetch_messages(self, channel: ChannelView, *, before: int | None, limit: int) -> list[MessageView]:
        params = {"limit": limit}
        if before:
            params["before"] = before
        data = await self.request("GET", f"/channels/{channel.id}/messages", params=params)
        return [self.message_view(i) for i in data]

    async def fetch_webhooks(self, channel: ChannelView) -> list[WebhookView]:
        data = await self.request("GET", f"/channels/{channel.id}/webhooks")
        return [self.webhook_view(i) for i in data]

    async def list_emojis(self, guild: GuildView) -> list[EmojiView]:
        data = await self.request("GET", f"/guilds/{guild.id}/emojis")
        return [EmojiView(id=_int(i["id"]), name=i.get("name", ""), handle=i) for i in data]

    async def list_guild_webhooks(self, guild: GuildView) -> list[WebhookView]:
        data = await self.request("GET", f"/guilds/{guild.id}/webhooks")
        return [self.webhook_view(i) for i in data]

    async def list_bans(self, guild: GuildView) -> list[int]:
        user_ids: list[int] = []
        after = 0
        while True:
            data = await self.request("GET", f"/guilds/{guild.id}/bans", params={"limit": 1000, "after": after})
            if not data:
                break
            user_ids.extend(_int(i["user"]["id"]) for i in data)
            after = user_ids[-1]
            if len(data) < 1000:
                break
        return user_ids

    # ---------------------------- WRITES ----------------------------
    async def create_category(self, guild: GuildView, name: str) -> ChannelView:
        data = await self.request(
            "POST",
            f"/guilds/{guild.id}/channels",
            payload={"name": name, "type": ChannelKind.CATEGORY.api_value},
        )
        return self.channel_view(data)

    async def create_channel(
        self,
        guild: GuildView,
        name: str,
        kind: ChannelKind,
        parent: ChannelView | None = None,
        **options: t.Any,
    ) -> ChannelView:
        payload: dict[str, t.Any] = {"name": name, "type": kind.api_value}
        if parent:
            payload["parent_id"] = str(parent.id)
        if kind.is_voice:
            keys = ("bitrate", "user_limit") if kind == ChannelKind.VOICE else ("nsfw", "rate_limit_per_user")
        else:
            keys = ("topic", "nsfw", "rate_limit_per_user")
        for key in keys:
            if options.get(key) is not None:
                payload[key] = options[key]
        data = await self.request("POST", f"/guilds/{guild.id}/channels", payload=payload)
        return self.channel_view(data)

    async def set_overwrites(
        self, guild: GuildView, channel: ChannelView, overwrites: list[PlatformOverwrite]
    ) -> None:
        payload = [
            {
                "id": str(i.id),
                "type": 0 if i.type == "role" else 1,
                "allow": str(i.allow & MASK_64),
                "deny": str(i.deny & MASK_64),
            }
            for i in overwrites
        ]
        await self.request("PATCH", f"/channels/{channel.id}", payload={"permission_overwrites": payload})

    async def create_webhook(self, channel: ChannelView, name: str) -> WebhookView:
        payload: dict[str, t.Any] = {"name": name}
        me = await self.request("GET", "/users/@me")
        if me and me.get("avatar"):
            try:
                raw = await self.fetch_attachment(_avatar_url(me))
                payload["avatar"] = f"data:image/png;base64,{base64.b64encode(raw).decode()}"
            except (aiohttp.ClientError, PlatformError) as e:
                log.debug("Could not load account avatar for webhook: %s", e)
        data = await self.request("POST", f"/channels/{channel.id}/webhooks", payload=payload)
        return self.webhook_view(data)

    async def send_message(self, webhook: WebhookView, payload: SendPayload, thread: ChannelView | None = None) -> int:
        body: dict[str, t.Any] = {
            "username": payload.username,
            "avatar_url": payload.avatar_url,
            "content": payload.content,
            "embeds": payload.embeds,
        }
        if payload.allowed_mentions is not None:
            body["allowed_mentions"] = payload.allowed_mentions
        params = {"wait": "true"}
        if thread:
            params["thread_id"] = str(thread.id)
        path = f"/webhooks/{webhook.id}/{webhook.token}"
        if payload.file:
            form = aiohttp.FormData()
            body["attachments"] = [{"id": 0, "filename": payload.file.name}]
            form.add_field("payload_json", orjson.dumps(body).decode(), content_type="application/json")
            form.add_field("files[0]", payload.file.data, filename=payload.file.name)
            data = await self.request("POST", path, params=params, data=form)
        else:
            data = await self.request("POST", path, params=params, payload=body)
        return _int(data["id"])

    async def pin_message(self, channel: ChannelView, message_id: int) -> None:
        await self.request("PUT", f"/channels/{channel.id}/pins/{message_id}")

    async def create_thread(
        self, channel: ChannelView, name: str, auto_archive_duration: int | None = None
    ) -> ChannelView:
        kind = ChannelKind.NEWS_THREAD if channel.kind == ChannelKind.NEWS else ChannelKind.PUBLIC_THREAD
        payload: dict[str, t.Any] = {"name": name, "type": kind.api_value}
        if auto_archive_duration:
            payload["auto_archive_duration"] = auto_archive_duration
        data = await self.request("POST", f"/channels/{channel.id}/threads", payload=payload)
        return self.channel_view(data)

    async def delete_role(self, guild: GuildView, role: RoleView) -> None:
        await self.request("DELETE", f"/guilds/{guild.id}/roles/{role.id}")

    async def delete_channel(self, channel: ChannelView) -> None:
        await self.request("DELETE", f"/channels/{channel.id}")

    async def delete_emoji(self, guild: GuildView, emoji: EmojiView) -> None:
        await self.request("DELETE", f"/guilds/{guild.id}/emojis/{emoji.id}")

    async def delete_webhook(self, webhook: WebhookView) -> None:
        await self.request("DELETE", f"/webhooks/{webhook.id}")

    async def unban(self, guild: GuildView, user_id: int) -> None:
        await self.request("DELETE", f"/guilds/{guild.id}/bans/{user_id}")

    async def edit_guild(self, guild: GuildView, **settings: t.Any) -> None:
        payload: dict[str, t.Any] = {}
        for key, value in settings.items():
            if key in ("afk_channel", "system_channel"):
                payload[f"{key}_id"] = str(value.id) if value else None
            elif key == "default_notifications":
                payload["default_message_notifications"] = NOTIFICATION_LEVELS[value]
            elif key == "explicit_content_filter":
                payload[key] = CONTENT_FILTERS[value]
            elif key == "verification_level":
                payload[key] = VERIFICATION_LEVELS[value]
            elif key == "system_channel_flags":
                payload[key] = sum(SYSTEM_CHANNEL_FLAGS[i] for i in value)
            else:
                payload[key] = value
        await self.request("PATCH", f"/guilds/{guild.id}", payload=payload)

    async def edit_widget(self, guild: GuildView, enabled: bool, channel: ChannelView | None = None) -> None:
        payload = {"enabled": enabled, "channel_id": str(channel.id) if channel else None}
        await self.request("PATCH", f"/guilds/{guild.id}/widget", payload=payload)
