from __future__ import annotations

import logging
from datetime import datetime, timedelta

import discord
from pydantic import Field
from redbot.core.i18n import Translator

from . import Base
from .options import BackupOptions, RestoreOptions
from .snapshot import GuildSnapshot

log = logging.getLogger("red.vrt.chronicle.models")
_ = Translator("Chronicle", __file__)


class SnapshotInfo(Base):
    """Index entry for a stored snapshot"""

    id: str
    name: str
    created_at: datetime
    channels: int = 0
    messages: int = 0
    members: int = 0
    size: int = 0
    filename: str | None = None  # Set when the snapshot lives on disk

    @classmethod
    def from_snapshot(cls, snapshot: GuildSnapshot, size: int, filename: str | None = None) -> SnapshotInfo:
        return cls(
            id=snapshot.id,
            name=snapshot.name,
            created_at=snapshot.created_at,
            channels=snapshot.channel_count,
            messages=snapshot.message_count,
            members=len(snapshot.members),
            size=size,
            filename=filename,
        )

    def created_fmt(self, type: str = "F") -> str:
        return f"<t:{int(self.created_at.timestamp())}:{type}>"


class GuildSettings(Base):
    backups: list[SnapshotInfo] = []
    # Snapshots kept inline when json files are disabled
    stored: dict[str, GuildSnapshot] = {}
    last_backup: datetime = Field(default_factory=lambda: datetime.now().astimezone() - timedelta(days=999))

    @property
    def last_backup_r(self) -> str:
        return f"<t:{int(self.last_backup.timestamp())}:R>"

    def get_backup(self, backup_id: str) -> SnapshotInfo | None:
        for backup in self.backups:
            if backup.id == backup_id:
                return backup
        return None

    def add_backup(self, info: SnapshotInfo, snapshot: GuildSnapshot | None = None) -> None:
        """Register a snapshot, replacing any previous one with the same ID"""
        self.remove_backup(info.id)
        self.backups.append(info)
        if snapshot is not None:
            self.stored[info.id] = snapshot
        self.last_backup = datetime.now().astimezone()

    def remove_backup(self, backup_id: str) -> SnapshotInfo | None:
        info = self.get_backup(backup_id)
        if info is None:
            return None
        self.backups.remove(info)
        self.stored.pop(backup_id, None)
        return info


class DB(Base):
    configs: dict[int, GuildSettings] = {}
    options: BackupOptions = BackupOptions()
    allowed_mentions: list[str] = []  # Mention types a restore may ping
    max_backups_per_guild: int = 5

    def get_conf(self, guild: discord.Guild | int) -> GuildSettings:
        gid = guild if isinstance(guild, int) else guild.id
        return self.configs.setdefault(gid, GuildSettings())

    def restore_options(self, clear: bool = False, limit: int | None = None) -> RestoreOptions:
        return RestoreOptions(
            max_messages_per_channel=self.options.max_messages_per_channel if limit is None else limit,
            clear_guild_before_restore=clear,
            allowed_mentions={"parse": list(self.allowed_mentions)},
        )

    def cleanup(self, guild: discord.Guild | int) -> list[SnapshotInfo]:
        """Drop the oldest snapshots past the per guild limit

        Returns:
            The entries that were removed, so their files can be deleted
        """
        conf = self.get_conf(guild)
        if self.max_backups_per_guild <= 0 or len(conf.backups) <= self.max_backups_per_guild:
            return []
        removed = conf.backups[: -self.max_backups_per_guild]
        for info in removed:
            conf.remove_backup(info.id)
        return removed
