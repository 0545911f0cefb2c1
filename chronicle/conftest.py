import itertools
import typing as t
from datetime import datetime, timedelta, timezone

import pytest

try:
    from .common.adapters.base import (
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
    )
    from .common.records import ChannelKind
except ImportError:
    from chronicle.common.adapters.base import (
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
    )
    from chronicle.common.records import ChannelKind


class FakeAdapter(PlatformAdapter):
    """In-memory guild that records every call made against it"""

    name = "fake"

    def __init__(self, guild: GuildView):
        self.guild = guild
        self.roles: list[RoleView] = []
        self.channels: list[ChannelView] = []
        self.threads: dict[int, list[ChannelView]] = {}
        self.history: dict[int, list[MessageView]] = {}  # Newest first
        self.webhooks: dict[int, list[WebhookView]] = {}
        self.emojis: list[EmojiView] = []
        self.members: list[MemberView] = []
        self.bans: list[int] = []
        self.attachments: dict[str, bytes] = {}

        self.calls: list[tuple[str, tuple]] = []
        self.fail: set[str] = set()
        self.fail_channels: set[str] = set()  # Channel names whose message fetch raises
        self.overwrites: dict[int, list[PlatformOverwrite]] = {}
        self.sent: list[tuple[WebhookView, SendPayload, ChannelView | None]] = []
        self.pinned: list[tuple[int, int]] = []
        self.edits: list[dict] = []
        self.deleted: list[t.Any] = []
        self._ids = itertools.count(10_000)

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            raise PlatformError(500, f"{name} failed")

    def called(self, name: str) -> int:
        return len([i for i in self.calls if i[0] == name])

    def next_id(self) -> int:
        return next(self._ids)

    # ---------------------------- READS ----------------------------
    async def fetch_guild(self, guild: t.Any) -> GuildView:
        self._record("fetch_guild", guild)
        return self.guild

    async def list_roles(self, guild: GuildView) -> list[RoleView]:
        self._record("list_roles", guild)
        return list(self.roles)

    async def list_channels(self, guild: GuildView) -> list[ChannelView]:
        self._record("list_channels", guild)
        return list(self.channels)

    async def list_threads(self, channel: ChannelView) -> list[ChannelView]:
        self._record("list_threads", channel)
        return list(self.threads.get(channel.id, []))

    async def list_members(self, guild: GuildView) -> list[MemberView]:
        self._record("list_members", guild)
        return list(self.members)

    async def fetch_messages(self, channel: ChannelView, *, before: int | None, limit: int) -> list[MessageView]:
        self._record("fetch_messages", channel, before, limit)
        if channel.name in self.fail_channels:
            raise PlatformError(403, "Missing access")
        history = self.history.get(channel.id, [])
        if before is not None:
            history = [i for i in history if i.id < before]
        return history[:limit]

    async def fetch_webhooks(self, channel: ChannelView) -> list[WebhookView]:
        self._record("fetch_webhooks", channel)
        return list(self.webhooks.get(channel.id, []))

    async def fetch_attachment(self, url: str) -> bytes:
        self._record("fetch_attachment", url)
        if url not in self.attachments:
            raise PlatformError(404, url)
        return self.attachments[url]

    async def list_emojis(self, guild: GuildView) -> list[EmojiView]:
        self._record("list_emojis", guild)
        return list(self.emojis)

    async def list_guild_webhooks(self, guild: GuildView) -> list[WebhookView]:
        self._record("list_guild_webhooks", guild)
        return [i for hooks in self.webhooks.values() for i in hooks]

    async def list_bans(self, guild: GuildView) -> list[int]:
        self._record("list_bans", guild)
        return list(self.bans)

    # ---------------------------- WRITES ----------------------------
    async def create_category(self, guild: GuildView, name: str) -> ChannelView:
        self._record("create_category", guild, name)
        category = ChannelView(id=self.next_id(), name=name, kind=ChannelKind.CATEGORY)
        self.channels.append(category)
        return category

    async def create_channel(
        self,
        guild: GuildView,
        name: str,
        kind: ChannelKind,
        parent: ChannelView | None = None,
        **options: t.Any,
    ) -> ChannelView:
        self._record("create_channel", guild, name, kind, parent, options)
        channel = ChannelView(
            id=self.next_id(),
            name=name,
            kind=kind,
            parent_id=parent.id if parent else None,
            parent_name=parent.name if parent else None,
        )
        self.channels.append(channel)
        return channel

    async def set_overwrites(
        self, guild: GuildView, channel: ChannelView, overwrites: list[PlatformOverwrite]
    ) -> None:
        self._record("set_overwrites", guild, channel, overwrites)
        self.overwrites[channel.id] = overwrites

    async def create_webhook(self, channel: ChannelView, name: str) -> WebhookView:
        self._record("create_webhook", channel, name)
        webhook = WebhookView(id=self.next_id(), name=name, channel_id=channel.id, token="token")
        self.webhooks.setdefault(channel.id, []).append(webhook)
        return webhook

    async def send_message(self, webhook: WebhookView, payload: SendPayload, thread: ChannelView | None = None) -> int:
        self._record("send_message", webhook, payload, thread)
        self.sent.append((webhook, payload, thread))
        return self.next_id()

    async def pin_message(self, channel: ChannelView, message_id: int) -> None:
        self._record("pin_message", channel, message_id)
        self.pinned.append((channel.id, message_id))

    async def create_thread(
        self, channel: ChannelView, name: str, auto_archive_duration: int | None = None
    ) -> ChannelView:
        self._record("create_thread", channel, name, auto_archive_duration)
        thread = ChannelView(
            id=self.next_id(),
            name=name,
            kind=ChannelKind.PUBLIC_THREAD,
            parent_id=channel.id,
            parent_name=channel.name,
            auto_archive_duration=auto_archive_duration,
        )
        self.threads.setdefault(channel.id, []).append(thread)
        return thread

    async def delete_role(self, guild: GuildView, role: RoleView) -> None:
        self._record("delete_role", guild, role)
        self.deleted.append(role)

    async def delete_channel(self, channel: ChannelView) -> None:
        self._record("delete_channel", channel)
        self.deleted.append(channel)

    async def delete_emoji(self, guild: GuildView, emoji: EmojiView) -> None:
        self._record("delete_emoji", guild, emoji)
        self.deleted.append(emoji)

    async def delete_webhook(self, webhook: WebhookView) -> None:
        self._record("delete_webhook", webhook)
        self.deleted.append(webhook)

    async def unban(self, guild: GuildView, user_id: int) -> None:
        self._record("unban", guild, user_id)
        self.deleted.append(user_id)

    async def edit_guild(self, guild: GuildView, **settings: t.Any) -> None:
        self._record("edit_guild", guild, settings)
        self.edits.append(settings)

    async def edit_widget(self, guild: GuildView, enabled: bool, channel: ChannelView | None = None) -> None:
        self._record("edit_widget", guild, enabled, channel)
        self.edits.append({"widget_enabled": enabled, "widget_channel": channel})


def make_messages(count: int, start_id: int = 1000) -> list[MessageView]:
    """Messages newest first, IDs and timestamps counting down"""
    now = datetime.now(tz=timezone.utc)
    return [
        MessageView(
            id=start_id + count - i,
            author=AuthorView(username=f"user{count - i}", avatar_url=f"https://cdn.test/{count - i}.png"),
            content=f"message {count - i}",
            created_at=now - timedelta(minutes=i),
        )
        for i in range(count)
    ]


@pytest.fixture
def guild():
    return GuildView(id=1, name="Test Guild", premium_tier=0)


@pytest.fixture
def adapter(guild):
    return FakeAdapter(guild)


@pytest.fixture
def roles():
    return [
        RoleView(id=1, name="@everyone", is_default=True),
        RoleView(id=2, name="Mods", position=2),
        RoleView(id=3, name="Members", position=1),
    ]


@pytest.fixture
def text_channel():
    return ChannelView(
        id=100,
        name="general",
        kind=ChannelKind.TEXT,
        topic="Chat",
        rate_limit_per_user=5,
        overwrites=[
            OverwriteView(target_id=2, is_role=True, allow=1024, deny=0),
            OverwriteView(target_id=3, is_role=True, allow=0, deny=2048),
            OverwriteView(target_id=555, is_role=False, allow=8, deny=0),
        ],
    )


@pytest.fixture
def attachment():
    return AttachmentView(name="cat.png", url="https://cdn.test/cat.png")
