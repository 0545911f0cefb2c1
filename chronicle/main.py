import asyncio
import logging
import typing as t

import discord
from redbot.core import Config, commands
from redbot.core.bot import Red
from redbot.core.data_manager import cog_data_path
from redbot.core.i18n import Translator, cog_i18n

from .commands import ChronicleCommands
from .common.abc import CompositeMetaClass
from .common.adapters import PlatformAdapter, get_adapter
from .common.models import DB, SnapshotInfo
from .common.snapshot import GuildSnapshot

log = logging.getLogger("red.vrt.chronicle")
_ = Translator("Chronicle", __file__)
RequestType = t.Literal["discord_deleted_user", "owner", "user", "user_strict"]


# redgettext -D main.py commands/base.py commands/admin.py common/formatting.py common/snapshot.py --command-docstring


@cog_i18n(_)
class Chronicle(ChronicleCommands, commands.Cog, metaclass=CompositeMetaClass):
    """
    Capture and replay the channels and conversations of a Discord server.

    Snapshots hold:
    - Categories and channels (permissions/order)
    - Threads of text and announcement channels
    - Messages, re-posted through a webhook under their original author's name and avatar
    - Members (informational, optional)
    """

    __author__ = "[vertyco](https://github.com/vertyco/vrt-cogs)"
    __version__ = "0.1.0"

    def __init__(self, bot: Red):
        super().__init__()
        self.bot = bot
        self.config = Config.get_conf(self, 117, force_registration=True)
        self.config.register_global(db={})

        self.root = cog_data_path(self)
        self.backups_dir = self.root / "backups"

        self.db: DB = DB()
        self.saving = False

    async def cog_load(self) -> None:
        asyncio.create_task(self.initialize())

    async def initialize(self) -> None:
        await self.bot.wait_until_red_ready()
        data = await self.config.db()
        self.db = await asyncio.to_thread(DB.model_validate, data)
        self.apply_log_level()
        log.info("Config loaded")

    async def save(self) -> None:
        if self.saving:
            return
        try:
            self.saving = True
            dump = await asyncio.to_thread(self.db.model_dump, mode="json")
            await self.config.db.set(dump)
        except Exception as e:
            log.exception("Failed to save config", exc_info=e)
        finally:
            self.saving = False

    def format_help_for_context(self, ctx: commands.Context):
        helpcmd = super().format_help_for_context(ctx)
        txt = _("Version: {}\nAuthor: {}").format(self.__version__, self.__author__)
        return f"{helpcmd}\n\n{txt}"

    async def red_delete_data_for_user(self, *, requester: RequestType, user_id: int):
        """No data to delete"""

    def apply_log_level(self) -> None:
        level = logging.DEBUG if self.db.options.dev_mode else logging.INFO
        log.setLevel(level)

    async def get_adapter(self) -> PlatformAdapter:
        tokens = await self.bot.get_shared_api_tokens("chronicle")
        return get_adapter(self.bot, self.db.options, tokens.get("user_token"))

    async def store_snapshot(self, guild: discord.Guild, snapshot: GuildSnapshot) -> None:
        conf = self.db.get_conf(guild)
        dump = await asyncio.to_thread(snapshot.dumps, self.db.options.json_beautify)
        if self.db.options.json_save:
            folder = self.backups_dir / str(guild.id)
            folder.mkdir(parents=True, exist_ok=True)
            filename = f"{snapshot.id}.json"
            await asyncio.to_thread((folder / filename).write_bytes, dump)
            conf.add_backup(SnapshotInfo.from_snapshot(snapshot, len(dump), filename))
        else:
            conf.add_backup(SnapshotInfo.from_snapshot(snapshot, len(dump)), snapshot)

        for removed in self.db.cleanup(guild):
            self._unlink(guild, removed)
        await self.save()

    async def load_snapshot(self, guild: discord.Guild, backup_id: str) -> GuildSnapshot | None:
        conf = self.db.get_conf(guild)
        info = conf.get_backup(backup_id)
        if info is None:
            return None
        if not info.filename:
            return conf.stored.get(backup_id)
        path = self.backups_dir / str(guild.id) / info.filename
        if not path.exists():
            log.warning("Snapshot file %s is missing", path)
            return None
        raw = await asyncio.to_thread(path.read_bytes)
        return await asyncio.to_thread(GuildSnapshot.loads, raw)

    async def delete_snapshot(self, guild: discord.Guild, backup_id: str) -> bool:
        conf = self.db.get_conf(guild)
        info = conf.remove_backup(backup_id)
        if info is None:
            return False
        self._unlink(guild, info)
        await self.save()
        return True

    def _unlink(self, guild: discord.Guild, info: SnapshotInfo) -> None:
        if not info.filename:
            return
        path = self.backups_dir / str(guild.id) / info.filename
        if path.exists():
            path.unlink()
