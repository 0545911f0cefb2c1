from __future__ import annotations

import typing as t

from pydantic import Field

from . import Base

DEFAULT_MESSAGE_TARGET = 10
FETCH_ALL = -1  # Sentinel for "every message the channel has"


def resolve_message_target(value: t.Any) -> int:
    """Per channel message target, 10 when unset or not a number"""
    if value is None or isinstance(value, bool):
        return DEFAULT_MESSAGE_TARGET
    try:
        return int(value)
    except (TypeError, ValueError):
        return DEFAULT_MESSAGE_TARGET


class BackupOptions(Base):
    backup_id: str | None = Field(default=None, alias="backupID")
    max_messages_per_channel: int | str | None = DEFAULT_MESSAGE_TARGET
    json_save: bool = True
    json_beautify: bool = True
    do_not_backup: list[str] = []  # Category names
    backup_members: bool = False
    save_images: bool = False
    self_bot: bool = False
    dev_mode: bool = False

    @property
    def message_target(self) -> int:
        return resolve_message_target(self.max_messages_per_channel)


class RestoreOptions(Base):
    max_messages_per_channel: int | str | None = DEFAULT_MESSAGE_TARGET
    clear_guild_before_restore: bool = False
    allowed_mentions: dict | None = None  # {"parse": ["users", "roles", "everyone"]}

    @property
    def message_limit(self) -> int:
        return resolve_message_target(self.max_messages_per_channel)
