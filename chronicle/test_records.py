import discord
import pytest

try:
    from .common.models import DB
    from .common.options import BackupOptions, RestoreOptions, resolve_message_target
    from .common.records import (
        CategoryRecord,
        ChannelKind,
        MessageRecord,
        PermissionOverwriteRecord,
        TextChannelRecord,
        VoiceChannelRecord,
    )
except ImportError:
    from chronicle.common.models import DB
    from chronicle.common.options import BackupOptions, RestoreOptions, resolve_message_target
    from chronicle.common.records import (
        CategoryRecord,
        ChannelKind,
        MessageRecord,
        PermissionOverwriteRecord,
        TextChannelRecord,
        VoiceChannelRecord,
    )


@pytest.mark.parametrize(
    "tag, expected",
    [
        (0, ChannelKind.TEXT),
        ("0", ChannelKind.TEXT),
        ("GUILD_TEXT", ChannelKind.TEXT),
        ("GuildText", ChannelKind.TEXT),
        ("text", ChannelKind.TEXT),
        (5, ChannelKind.NEWS),
        ("GUILD_NEWS", ChannelKind.NEWS),
        ("GuildAnnouncement", ChannelKind.NEWS),
        ("GUILD_STAGE_VOICE", ChannelKind.STAGE_VOICE),
        ("stage_voice", ChannelKind.STAGE_VOICE),
        (13, ChannelKind.STAGE_VOICE),
        (11, ChannelKind.PUBLIC_THREAD),
        ("GUILD_PUBLIC_THREAD", ChannelKind.PUBLIC_THREAD),
        (discord.ChannelType.voice, ChannelKind.VOICE),
        (discord.ChannelType.news, ChannelKind.NEWS),
        (ChannelKind.FORUM, ChannelKind.FORUM),
    ],
)
def test_channel_kind_from_tag(tag, expected):
    assert ChannelKind.from_tag(tag) is expected


@pytest.mark.parametrize("tag", [99, "GUILD_SPACESHIP", True, None])
def test_channel_kind_unknown(tag):
    with pytest.raises(ValueError):
        ChannelKind.from_tag(tag)


def test_channel_kind_helpers():
    assert ChannelKind.STAGE_VOICE.is_voice
    assert not ChannelKind.TEXT.is_voice
    assert ChannelKind.NEWS_THREAD.is_thread
    assert ChannelKind.MEDIA.is_text_like
    assert not ChannelKind.CATEGORY.is_text_like
    assert ChannelKind.NEWS.api_value == 5


def test_overwrite_masks_are_strings():
    record = PermissionOverwriteRecord(role_name="Mods", allow=1024, deny=None)
    assert record.allow == "1024"
    assert record.deny == "0"


def test_message_record_dumps_camel_case():
    record = MessageRecord(username="bob", avatar_url="https://cdn.test/bob.png", content=None, pinned=True)
    dump = record.model_dump(mode="json")
    assert dump["avatar"] == "https://cdn.test/bob.png"
    assert dump["content"] == ""
    assert "sentAt" in dump
    assert record.is_empty()


def test_channel_records_discriminated_by_type():
    category = CategoryRecord.model_validate(
        {
            "name": "Lobby",
            "permissions": [{"roleName": "Mods", "allow": "8", "deny": "0"}],
            "children": [
                {"type": "GUILD_TEXT", "name": "general", "isNews": False},
                {"type": 2, "name": "Voice", "bitrate": 64000, "userLimit": 5},
                {"type": "GUILD_STAGE_VOICE", "name": "Stage", "bitrate": 64000},
                {"type": "GuildAnnouncement", "name": "news", "isNews": True},
            ],
        }
    )
    general, voice, stage, news = category.children
    assert isinstance(general, TextChannelRecord)
    assert isinstance(voice, VoiceChannelRecord)
    assert isinstance(stage, VoiceChannelRecord)
    assert stage.type is ChannelKind.STAGE_VOICE
    assert isinstance(news, TextChannelRecord)
    assert news.type is ChannelKind.NEWS
    assert voice.user_limit == 5
    assert category.permissions[0].role_name == "Mods"


@pytest.mark.parametrize(
    "value, expected",
    [(None, 10), ("abc", 10), (True, 10), ("25", 25), (-1, -1), (0, 0), (3, 3)],
)
def test_resolve_message_target(value, expected):
    assert resolve_message_target(value) == expected


def test_backup_options_aliases():
    options = BackupOptions.model_validate(
        {"backupID": "abc", "maxMessagesPerChannel": "nope", "doNotBackup": ["Archive"], "saveImages": True}
    )
    assert options.backup_id == "abc"
    assert options.message_target == 10
    assert options.do_not_backup == ["Archive"]
    assert options.save_images
    assert options.json_save
    assert options.model_dump()["backupID"] == "abc"


def test_restore_options_defaults():
    options = RestoreOptions()
    assert options.message_limit == 10
    assert not options.clear_guild_before_restore
    assert options.allowed_mentions is None


def test_restore_limit_overrides_global_setting():
    db = DB(allowed_mentions=["users"])
    assert db.restore_options().message_limit == 10
    options = db.restore_options(clear=True, limit=-1)
    assert options.max_messages_per_channel == -1
    assert options.clear_guild_before_restore
    assert options.allowed_mentions == {"parse": ["users"]}
