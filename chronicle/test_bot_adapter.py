from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

try:
    from .common.adapters import BotAdapter
    from .common.adapters.base import (
        ChannelView,
        FilePayload,
        GuildView,
        PlatformOverwrite,
        SendPayload,
        WebhookView,
    )
    from .common.records import ChannelKind
except ImportError:
    from chronicle.common.adapters import BotAdapter
    from chronicle.common.adapters.base import (
        ChannelView,
        FilePayload,
        GuildView,
        PlatformOverwrite,
        SendPayload,
        WebhookView,
    )
    from chronicle.common.records import ChannelKind


def make_channel(cls, channel_id: int, name: str, kind: discord.ChannelType, **attrs):
    channel = MagicMock(spec=cls)
    channel.id = channel_id
    channel.name = name
    channel.type = kind
    values = {
        "position": 0,
        "category": None,
        "nsfw": False,
        "topic": None,
        "slowmode_delay": 0,
        "bitrate": 0,
        "user_limit": 0,
        "overwrites": {},
        "archived": False,
        "locked": False,
        "auto_archive_duration": None,
    }
    values.update(attrs)
    for key, value in values.items():
        setattr(channel, key, value)
    return channel


@pytest.fixture
def bot_adapter():
    return BotAdapter(MagicMock())


@pytest.fixture
def handle():
    guild = MagicMock()
    guild.get_role.return_value = None
    guild.edit = AsyncMock()
    return guild


@pytest.fixture
def guild(handle):
    return GuildView(id=1, name="Guild", handle=handle)


def test_channel_view_overwrite_targets(bot_adapter):
    role = MagicMock(spec=discord.Role)
    role.id = 2
    member = MagicMock(spec=discord.Member)
    member.id = 3
    uncached = discord.Object(id=4, type=discord.Role)
    pair = discord.PermissionOverwrite.from_pair(discord.Permissions(1024), discord.Permissions(2048))
    category = make_channel(discord.CategoryChannel, 9, "Lobby", discord.ChannelType.category)
    channel = make_channel(
        discord.TextChannel,
        10,
        "general",
        discord.ChannelType.text,
        category=category,
        topic="Chat",
        slowmode_delay=5,
        overwrites={role: pair, member: pair, uncached: pair},
    )
    view = bot_adapter.channel_view(channel)
    assert view.kind is ChannelKind.TEXT
    assert (view.parent_id, view.parent_name) == (9, "Lobby")
    assert view.topic == "Chat"
    assert view.rate_limit_per_user == 5
    assert [(i.target_id, i.is_role, i.allow, i.deny) for i in view.overwrites] == [
        (2, True, 1024, 2048),
        (3, False, 1024, 2048),
        (4, True, 1024, 2048),
    ]


def test_thread_view_uses_parent(bot_adapter):
    parent = make_channel(discord.TextChannel, 10, "general", discord.ChannelType.text)
    thread = make_channel(
        discord.Thread,
        11,
        "side",
        discord.ChannelType.public_thread,
        archived=True,
        auto_archive_duration=1440,
    )
    thread.parent = parent
    view = bot_adapter.channel_view(thread)
    assert view.is_thread
    assert (view.parent_id, view.parent_name) == (10, "general")
    assert view.archived
    assert view.auto_archive_duration == 1440
    assert view.overwrites == []


@pytest.mark.asyncio
async def test_create_text_and_news_channels(bot_adapter, guild, handle):
    category = make_channel(discord.CategoryChannel, 9, "Lobby", discord.ChannelType.category)
    parent = ChannelView(id=9, name="Lobby", kind=ChannelKind.CATEGORY, handle=category)
    handle.create_text_channel = AsyncMock(
        return_value=make_channel(discord.TextChannel, 10, "rules", discord.ChannelType.news)
    )
    view = await bot_adapter.create_channel(
        guild, "rules", ChannelKind.NEWS, parent, topic="Read me", nsfw=False, rate_limit_per_user=0
    )
    handle.create_text_channel.assert_awaited_once_with(
        name="rules", category=category, news=True, topic="Read me", nsfw=False
    )
    assert view.kind is ChannelKind.NEWS

    handle.create_text_channel.reset_mock()
    await bot_adapter.create_channel(guild, "general", ChannelKind.TEXT, rate_limit_per_user=10)
    handle.create_text_channel.assert_awaited_once_with(
        name="general", category=None, news=False, slowmode_delay=10
    )


@pytest.mark.asyncio
async def test_create_voice_channel(bot_adapter, guild, handle):
    handle.create_voice_channel = AsyncMock(
        return_value=make_channel(discord.VoiceChannel, 12, "Voice", discord.ChannelType.voice, bitrate=96000)
    )
    view = await bot_adapter.create_channel(guild, "Voice", ChannelKind.VOICE, bitrate=96000, user_limit=0)
    handle.create_voice_channel.assert_awaited_once_with(name="Voice", category=None, bitrate=96000, user_limit=0)
    assert view.bitrate == 96000


@pytest.mark.asyncio
async def test_create_stage_channel_edits_after(bot_adapter, guild, handle):
    stage = make_channel(discord.StageChannel, 13, "Stage", discord.ChannelType.stage_voice)
    stage.edit = AsyncMock()
    handle.create_stage_channel = AsyncMock(return_value=stage)
    handle.create_text_channel = AsyncMock()
    view = await bot_adapter.create_channel(guild, "Stage", ChannelKind.STAGE_VOICE, nsfw=True)
    handle.create_stage_channel.assert_awaited_once_with(name="Stage", category=None)
    stage.edit.assert_awaited_once_with(nsfw=True)
    handle.create_text_channel.assert_not_awaited()
    assert view.kind is ChannelKind.STAGE_VOICE


@pytest.mark.asyncio
async def test_set_overwrites_falls_back_to_objects(bot_adapter, guild, handle):
    role = MagicMock(spec=discord.Role)
    handle.get_role.side_effect = lambda i: role if i == 2 else None
    channel = make_channel(discord.TextChannel, 10, "general", discord.ChannelType.text)
    channel.edit = AsyncMock()
    view = bot_adapter.channel_view(channel)
    overwrites = [PlatformOverwrite(id=2, allow=1024, deny=0), PlatformOverwrite(id=5, allow=1024, deny=0)]
    await bot_adapter.set_overwrites(guild, view, overwrites)
    mapping = channel.edit.call_args.kwargs["overwrites"]
    targets = list(mapping)
    assert targets[0] is role
    assert isinstance(targets[1], discord.Object)
    assert targets[1].id == 5
    assert mapping[role].pair()[0].value == 1024


@pytest.mark.asyncio
async def test_send_message_kwargs(bot_adapter):
    webhook = MagicMock()
    webhook.send = AsyncMock(return_value=MagicMock(id=555))
    thread_handle = MagicMock(spec=discord.Thread)
    thread = ChannelView(id=11, name="side", kind=ChannelKind.PUBLIC_THREAD, handle=thread_handle)
    payload = SendPayload(
        username="bob",
        avatar_url="https://cdn.test/bob.png",
        content="hi",
        embeds=[{"title": "Embed"}],
        file=FilePayload(name="a.png", data=b"img"),
        allowed_mentions={"parse": ["users"]},
    )
    message_id = await bot_adapter.send_message(WebhookView(id=9, name="hook", handle=webhook), payload, thread)
    assert message_id == 555

    kwargs = webhook.send.call_args.kwargs
    assert kwargs["wait"] is True
    assert kwargs["thread"] is thread_handle
    assert kwargs["username"] == "bob"
    assert kwargs["avatar_url"] == "https://cdn.test/bob.png"
    assert kwargs["embeds"][0].title == "Embed"
    assert isinstance(kwargs["file"], discord.File)
    assert kwargs["file"].filename == "a.png"
    mentions = kwargs["allowed_mentions"]
    assert mentions.users is True
    assert mentions.roles is False
    assert mentions.everyone is False


@pytest.mark.asyncio
async def test_send_message_to_channel_has_no_thread(bot_adapter):
    webhook = MagicMock()
    webhook.send = AsyncMock(return_value=MagicMock(id=1))
    await bot_adapter.send_message(WebhookView(id=9, name="hook", handle=webhook), SendPayload(username="bob"))
    kwargs = webhook.send.call_args.kwargs
    assert "thread" not in kwargs
    assert "file" not in kwargs
    assert "allowed_mentions" not in kwargs


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kind, expected",
    [
        (ChannelKind.NEWS, discord.ChannelType.news_thread),
        (ChannelKind.TEXT, discord.ChannelType.public_thread),
    ],
)
async def test_create_thread_type(bot_adapter, kind, expected):
    parent = make_channel(discord.TextChannel, 10, "general", discord.ChannelType.text)
    thread = make_channel(discord.Thread, 11, "side", discord.ChannelType.public_thread)
    thread.parent = parent
    parent.create_thread = AsyncMock(return_value=thread)
    view = ChannelView(id=10, name="general", kind=kind, handle=parent)
    await bot_adapter.create_thread(view, "side", auto_archive_duration=4320)
    parent.create_thread.assert_awaited_once_with(name="side", type=expected, auto_archive_duration=4320)


@pytest.mark.asyncio
async def test_edit_guild_maps_settings(bot_adapter, guild, handle):
    system = make_channel(discord.TextChannel, 10, "general", discord.ChannelType.text)
    await bot_adapter.edit_guild(
        guild,
        afk_channel=None,
        system_channel=ChannelView(id=10, name="general", kind=ChannelKind.TEXT, handle=system),
        default_notifications="only_mentions",
        explicit_content_filter="disabled",
        verification_level="none",
        system_channel_flags=["join_notifications", "premium_subscriptions"],
        afk_timeout=300,
    )
    kwargs = handle.edit.call_args.kwargs
    assert kwargs["afk_channel"] is None
    assert kwargs["system_channel"] is system
    assert kwargs["default_notifications"] is discord.NotificationLevel.only_mentions
    assert kwargs["explicit_content_filter"] is discord.ContentFilter.disabled
    assert kwargs["verification_level"] is discord.VerificationLevel.none
    assert kwargs["afk_timeout"] == 300
    flags = kwargs["system_channel_flags"]
    # Listed notifications are suppressed, everything else stays on
    assert flags.join_notifications is False
    assert flags.premium_subscriptions is False
    assert flags.guild_reminder_notifications is True


@pytest.mark.asyncio
async def test_edit_widget(bot_adapter, guild, handle):
    await bot_adapter.edit_widget(guild, False, None)
    handle.edit.assert_awaited_once_with(widget_enabled=False, widget_channel=None)
