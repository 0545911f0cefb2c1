from __future__ import annotations

import logging
import typing as t
from datetime import datetime
from enum import Enum

from pydantic import BeforeValidator, Discriminator, Field, Tag, field_validator

from . import Base

log = logging.getLogger("red.vrt.chronicle.records")


class ChannelKind(str, Enum):
    TEXT = "text"
    VOICE = "voice"
    CATEGORY = "category"
    NEWS = "news"
    STAGE_VOICE = "stage_voice"
    FORUM = "forum"
    MEDIA = "media"
    DIRECTORY = "directory"
    NEWS_THREAD = "news_thread"
    PUBLIC_THREAD = "public_thread"
    PRIVATE_THREAD = "private_thread"

    @classmethod
    def from_tag(cls, tag: t.Any) -> ChannelKind:
        """Normalize any channel type spelling either client variant hands us.

        Accepts our own members, enum objects exposing a `.value` (discord.py's ChannelType),
        raw API integers, legacy string literals like `GUILD_TEXT` and the enum names used by
        the current clients (`GuildText`, `text`, `stage_voice`...).
        """
        if isinstance(tag, cls):
            return tag
        if not isinstance(tag, (str, int)) and hasattr(tag, "value"):
            tag = tag.value
        if isinstance(tag, bool):
            raise ValueError(f"Invalid channel type: {tag!r}")
        if isinstance(tag, str) and tag.strip().lstrip("-").isdigit():
            tag = int(tag)
        if isinstance(tag, int):
            if tag not in _BY_API_VALUE:
                raise ValueError(f"Unknown channel type value: {tag}")
            return _BY_API_VALUE[tag]
        if isinstance(tag, str):
            key = tag.strip().replace("_", "").replace(" ", "").lower()
            if key in _BY_NAME:
                return _BY_NAME[key]
        raise ValueError(f"Unknown channel type: {tag!r}")

    @property
    def api_value(self) -> int:
        return _API_VALUES[self]

    @property
    def is_thread(self) -> bool:
        return self in (ChannelKind.NEWS_THREAD, ChannelKind.PUBLIC_THREAD, ChannelKind.PRIVATE_THREAD)

    @property
    def is_voice(self) -> bool:
        return self in (ChannelKind.VOICE, ChannelKind.STAGE_VOICE)

    @property
    def is_text_like(self) -> bool:
        return self in (ChannelKind.TEXT, ChannelKind.NEWS, ChannelKind.FORUM, ChannelKind.MEDIA)


_API_VALUES: dict[ChannelKind, int] = {
    ChannelKind.TEXT: 0,
    ChannelKind.VOICE: 2,
    ChannelKind.CATEGORY: 4,
    ChannelKind.NEWS: 5,
    ChannelKind.NEWS_THREAD: 10,
    ChannelKind.PUBLIC_THREAD: 11,
    ChannelKind.PRIVATE_THREAD: 12,
    ChannelKind.STAGE_VOICE: 13,
    ChannelKind.DIRECTORY: 14,
    ChannelKind.FORUM: 15,
    ChannelKind.MEDIA: 16,
}
_BY_API_VALUE: dict[int, ChannelKind] = {v: k for k, v in _API_VALUES.items()}
# Keys are lowercased with underscores stripped so GUILD_STAGE_VOICE, GuildStageVoice and stage_voice collide
_BY_NAME: dict[str, ChannelKind] = {
    "text": ChannelKind.TEXT,
    "guildtext": ChannelKind.TEXT,
    "voice": ChannelKind.VOICE,
    "guildvoice": ChannelKind.VOICE,
    "category": ChannelKind.CATEGORY,
    "guildcategory": ChannelKind.CATEGORY,
    "news": ChannelKind.NEWS,
    "guildnews": ChannelKind.NEWS,
    "guildannouncement": ChannelKind.NEWS,
    "announcement": ChannelKind.NEWS,
    "stagevoice": ChannelKind.STAGE_VOICE,
    "guildstagevoice": ChannelKind.STAGE_VOICE,
    "forum": ChannelKind.FORUM,
    "guildforum": ChannelKind.FORUM,
    "media": ChannelKind.MEDIA,
    "guildmedia": ChannelKind.MEDIA,
    "directory": ChannelKind.DIRECTORY,
    "guilddirectory": ChannelKind.DIRECTORY,
    "newsthread": ChannelKind.NEWS_THREAD,
    "guildnewsthread": ChannelKind.NEWS_THREAD,
    "announcementthread": ChannelKind.NEWS_THREAD,
    "publicthread": ChannelKind.PUBLIC_THREAD,
    "guildpublicthread": ChannelKind.PUBLIC_THREAD,
    "privatethread": ChannelKind.PRIVATE_THREAD,
    "guildprivatethread": ChannelKind.PRIVATE_THREAD,
}


Kind = t.Annotated[ChannelKind, BeforeValidator(ChannelKind.from_tag)]


class PermissionOverwriteRecord(Base):
    role_name: str
    allow: str = "0"  # Unsigned 64 bit mask as a decimal string
    deny: str = "0"

    @field_validator("allow", "deny", mode="before")
    @classmethod
    def _validate_mask(cls, v):
        if v is None:
            return "0"
        if isinstance(v, int):
            return str(v)
        return v


class FileRecord(Base):
    name: str
    attachment: str  # Remote URL or base64 encoded bytes


class MessageRecord(Base):
    username: str
    avatar_url: str | None = Field(default=None, alias="avatar")
    content: str = ""
    embeds: list[dict] = []
    files: list[FileRecord] = []
    pinned: bool = False
    sent_at: datetime | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _validate_content(cls, v):
        return v or ""

    def is_empty(self) -> bool:
        return not self.content and not self.embeds and not self.files


class ThreadRecord(Base):
    type: Kind = ChannelKind.PUBLIC_THREAD
    name: str
    archived: bool = False
    auto_archive_duration: int | None = None
    locked: bool = False
    rate_limit_per_user: int | None = None
    messages: list[MessageRecord] = []


class TextChannelRecord(Base):
    type: Kind = ChannelKind.TEXT
    name: str
    nsfw: bool = False
    rate_limit_per_user: int | None = None
    parent_name: str | None = Field(default=None, alias="parent")
    topic: str | None = None
    permissions: list[PermissionOverwriteRecord] = []
    messages: list[MessageRecord] = []
    is_news: bool = False
    threads: list[ThreadRecord] = []


class VoiceChannelRecord(Base):
    type: Kind = ChannelKind.VOICE
    name: str
    bitrate: int | None = None
    user_limit: int | None = None
    parent_name: str | None = Field(default=None, alias="parent")
    permissions: list[PermissionOverwriteRecord] = []


def _channel_tag(v: t.Any) -> str:
    raw = v.get("type", ChannelKind.TEXT) if isinstance(v, dict) else getattr(v, "type", ChannelKind.TEXT)
    try:
        kind = ChannelKind.from_tag(raw)
    except ValueError:
        log.warning("Unknown channel type %s in snapshot, treating it as text", raw)
        return "text"
    return "voice" if kind.is_voice else "text"


ChannelRecord = t.Annotated[
    t.Union[
        t.Annotated[TextChannelRecord, Tag("text")],
        t.Annotated[VoiceChannelRecord, Tag("voice")],
    ],
    Discriminator(_channel_tag),
]


class CategoryRecord(Base):
    name: str
    permissions: list[PermissionOverwriteRecord] = []
    children: list[ChannelRecord] = []


class MemberRecord(Base):
    user_id: int
    username: str
    avatar_url: str | None = Field(default=None, alias="avatar")
    roles: list[str] = []  # Role names
