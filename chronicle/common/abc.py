from abc import ABCMeta, abstractmethod
from pathlib import Path

import discord
from discord.ext.commands.cog import CogMeta
from redbot.core.bot import Red

from .adapters import PlatformAdapter
from .models import DB
from .snapshot import GuildSnapshot


class CompositeMetaClass(CogMeta, ABCMeta):
    """Type detection"""


class MixinMeta(metaclass=ABCMeta):
    """Type hinting"""

    bot: Red
    db: DB
    backups_dir: Path

    @abstractmethod
    async def save(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_adapter(self) -> PlatformAdapter:
        raise NotImplementedError

    @abstractmethod
    async def store_snapshot(self, guild: discord.Guild, snapshot: GuildSnapshot) -> None:
        raise NotImplementedError

    @abstractmethod
    async def load_snapshot(self, guild: discord.Guild, backup_id: str) -> GuildSnapshot | None:
        raise NotImplementedError

    @abstractmethod
    async def delete_snapshot(self, guild: discord.Guild, backup_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def apply_log_level(self) -> None:
        raise NotImplementedError
