"""
Platform adapter interface.

Everything in the capture/replay pipeline talks to the chat platform through a
PlatformAdapter. Adapters translate their client's objects into the small view
dataclasses below, so channel types arrive already normalized to ChannelKind and
the pipeline never needs to know which client is behind the adapter.
"""

from __future__ import annotations

import logging
import typing as t
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

import aiohttp

from ..records import ChannelKind

log = logging.getLogger("red.vrt.chronicle.adapters")

MASK_64 = (1 << 64) - 1

# Notification types muted on the system channel during a reset
SUPPRESSED_SYSTEM_NOTIFICATIONS = (
    "join_notifications",
    "premium_subscriptions",
    "guild_reminder_notifications",
)


class PlatformError(Exception):
    """A request the platform refused"""

    def __init__(self, status: int, message: str = ""):
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}" if message else str(status))


class AdapterUnavailable(Exception):
    """No usable client for the requested variant"""


def normalize_tier(tier: t.Any) -> int:
    """Premium tiers come as ints, enum objects or strings like TIER_2"""
    if not isinstance(tier, (str, int)) and hasattr(tier, "value"):
        tier = tier.value
    if isinstance(tier, int):
        return max(0, min(tier, 3))
    text = str(tier or "").upper()
    if text.startswith("TIER_") and text[5:].isdigit():
        return max(0, min(int(text[5:]), 3))
    if text.isdigit():
        return max(0, min(int(text), 3))
    return 0


async def download(session: aiohttp.ClientSession, url: str) -> bytes:
    async with session.get(url) as res:
        if res.status != 200:
            raise PlatformError(res.status, f"Failed to download {url}")
        return await res.read()


@dataclass
class RoleView:
    id: int
    name: str
    position: int = 0
    editable: bool = True
    is_default: bool = False
    handle: t.Any = None


@dataclass
class OverwriteView:
    target_id: int
    is_role: bool
    allow: int | None = None
    deny: int | None = None


@dataclass
class AuthorView:
    username: str
    avatar_url: str | None = None


@dataclass
class AttachmentView:
    name: str
    url: str


@dataclass
class MessageView:
    id: int
    author: AuthorView | None
    content: str = ""
    embeds: list[dict] = field(default_factory=list)
    attachments: list[AttachmentView] = field(default_factory=list)
    pinned: bool = False
    created_at: datetime | None = None


@dataclass
class ChannelView:
    id: int
    name: str
    kind: ChannelKind
    handle: t.Any = None
    position: int = 0
    parent_id: int | None = None
    parent_name: str | None = None
    nsfw: bool = False
    topic: str | None = None
    rate_limit_per_user: int = 0
    bitrate: int = 0
    user_limit: int = 0
    overwrites: list[OverwriteView] = field(default_factory=list)
    # Thread only
    archived: bool = False
    locked: bool = False
    auto_archive_duration: int | None = None

    @property
    def is_thread(self) -> bool:
        return self.kind.is_thread


@dataclass
class GuildView:
    id: int
    name: str
    premium_tier: int = 0
    features: set[str] = field(default_factory=set)
    icon_url: str | None = None
    handle: t.Any = None

    @property
    def is_community(self) -> bool:
        return "COMMUNITY" in self.features


@dataclass
class WebhookView:
    id: int
    name: str
    channel_id: int | None = None
    token: str | None = None
    handle: t.Any = None


@dataclass
class EmojiView:
    id: int
    name: str
    handle: t.Any = None


@dataclass
class MemberView:
    id: int
    username: str
    avatar_url: str | None = None
    role_ids: list[int] = field(default_factory=list)


@dataclass
class PlatformOverwrite:
    id: int
    allow: int
    deny: int
    type: str = "role"


@dataclass
class FilePayload:
    name: str
    data: bytes


@dataclass
class SendPayload:
    username: str
    avatar_url: str | None = None
    content: str | None = None
    embeds: list[dict] = field(default_factory=list)
    file: FilePayload | None = None
    allowed_mentions: dict | None = None


class PlatformAdapter(ABC):
    """
    The capability surface the pipeline needs from a chat platform client.

    Handles passed back into an adapter are always views the same adapter produced.
    """

    # Human readable name used in logs and reports
    name: str = "Unknown"

    async def close(self) -> None:
        """Release anything the adapter opened"""

    async def fetch_attachment(self, url: str) -> bytes:
        """Download the bytes behind an attachment URL"""
        async with aiohttp.ClientSession() as session:
            return await download(session, url)

    # ---------------------------- READS ----------------------------
    @abstractmethod
    async def fetch_guild(self, guild: t.Any) -> GuildView:
        """Resolve a guild handle or ID into a view"""

    @abstractmethod
    async def list_roles(self, guild: GuildView) -> list[RoleView]:
        raise NotImplementedError

    @abstractmethod
    async def list_channels(self, guild: GuildView) -> list[ChannelView]:
        """Every guild channel except threads"""

    @abstractmethod
    async def list_threads(self, channel: ChannelView) -> list[ChannelView]:
        """Threads the client currently knows about for a channel"""

    @abstractmethod
    async def list_members(self, guild: GuildView) -> list[MemberView]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_messages(self, channel: ChannelView, *, before: int | None, limit: int) -> list[MessageView]:
        """Fetch up to `limit` messages older than `before`, newest first"""

    @abstractmethod
    async def fetch_webhooks(self, channel: ChannelView) -> list[WebhookView]:
        raise NotImplementedError

    @abstractmethod
    async def list_emojis(self, guild: GuildView) -> list[EmojiView]:
        raise NotImplementedError

    @abstractmethod
    async def list_guild_webhooks(self, guild: GuildView) -> list[WebhookView]:
        raise NotImplementedError

    @abstractmethod
    async def list_bans(self, guild: GuildView) -> list[int]:
        """User IDs of every banned user"""

    # ---------------------------- WRITES ----------------------------
    @abstractmethod
    async def create_category(self, guild: GuildView, name: str) -> ChannelView:
        raise NotImplementedError

    @abstractmethod
    async def create_channel(
        self,
        guild: GuildView,
        name: str,
        kind: ChannelKind,
        parent: ChannelView | None = None,
        **options: t.Any,
    ) -> ChannelView:
        """
        Create a channel of the given kind.

        Recognized options: topic, nsfw, rate_limit_per_user, bitrate, user_limit.
        Options the kind does not support are ignored.
        """

    @abstractmethod
    async def set_overwrites(
        self, guild: GuildView, channel: ChannelView, overwrites: list[PlatformOverwrite]
    ) -> None:
        """Replace every permission overwrite on the channel"""

    @abstractmethod
    async def create_webhook(self, channel: ChannelView, name: str) -> WebhookView:
        raise NotImplementedError

    @abstractmethod
    async def send_message(
        self, webhook: WebhookView, payload: SendPayload, thread: ChannelView | None = None
    ) -> int:
        """Execute the webhook and return the ID of the created message"""

    @abstractmethod
    async def pin_message(self, channel: ChannelView, message_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def create_thread(
        self, channel: ChannelView, name: str, auto_archive_duration: int | None = None
    ) -> ChannelView:
        raise NotImplementedError

    @abstractmethod
    async def delete_role(self, guild: GuildView, role: RoleView) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_channel(self, channel: ChannelView) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_emoji(self, guild: GuildView, emoji: EmojiView) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_webhook(self, webhook: WebhookView) -> None:
        raise NotImplementedError

    @abstractmethod
    async def unban(self, guild: GuildView, user_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def edit_guild(self, guild: GuildView, **settings: t.Any) -> None:
        """
        Edit guild level settings.

        Keys: afk_channel, afk_timeout, icon, banner, splash, default_notifications
        ("all_messages" or "only_mentions"), explicit_content_filter ("disabled",
        "no_role", "all_members"), verification_level ("none" through "highest"),
        system_channel, system_channel_flags (names of suppressed notification types).
        Channel values are views or None.
        """

    @abstractmethod
    async def edit_widget(self, guild: GuildView, enabled: bool, channel: ChannelView | None = None) -> None:
        raise NotImplementedError
