import logging

import discord
from redbot.core import commands
from redbot.core.i18n import Translator, cog_i18n
from redbot.core.utils.chat_formatting import humanize_number, text_to_file
from redbot.core.utils.menus import DEFAULT_CONTROLS, menu

from ..common.abc import MixinMeta
from ..common.adapters import AdapterUnavailable, PlatformAdapter
from ..common.formatting import snapshot_str
from ..common.reset import clear_guild
from ..common.snapshot import GuildSnapshot

log = logging.getLogger("red.vrt.chronicle.commands")
_ = Translator("Chronicle", __file__)


@cog_i18n(_)
class Base(MixinMeta):
    async def _adapter(self, ctx: commands.Context) -> PlatformAdapter | None:
        try:
            return await self.get_adapter()
        except AdapterUnavailable as e:
            log.warning("No adapter available in %s: %s", ctx.guild.name, e)
            txt = _("Self-bot mode is enabled but no user token is set. Use {} to set one.").format(
                f"`{ctx.clean_prefix}set api chronicle user_token,<token>`"
            )
            await ctx.send(txt)
            return None

    @commands.group(name="chronicle")
    @commands.admin_or_permissions(administrator=True)
    @commands.guild_only()
    async def chronicle(self, ctx: commands.Context):
        """Capture and replay this server's channels and messages"""

    @chronicle.command(name="backup")
    @commands.bot_has_permissions(read_message_history=True)
    async def backup_server(self, ctx: commands.Context, limit: int = None):
        """
        Capture a snapshot of this server

        **limit**: How many messages to capture per channel, -1 for all of them.
        Defaults to the message limit in `[p]chronicleset view`.
        """
        options = self.db.options
        if limit is not None:
            options = options.model_copy(update={"max_messages_per_channel": limit})
        adapter = await self._adapter(ctx)
        if adapter is None:
            return
        try:
            async with ctx.typing():
                guild = await adapter.fetch_guild(ctx.guild.id)
                snapshot = await GuildSnapshot.capture(adapter, guild, options)
                await self.store_snapshot(ctx.guild, snapshot)
        finally:
            await adapter.close()

        txt = _("Snapshot {} created with {} channels and {} messages!").format(
            f"`{snapshot.id}`",
            humanize_number(snapshot.channel_count),
            humanize_number(snapshot.message_count),
        )
        await ctx.send(txt)

    @chronicle.command(name="restore")
    @commands.bot_has_permissions(administrator=True)
    async def restore_server(self, ctx: commands.Context, backup_id: str, clear: bool = False, limit: int = None):
        """
        Replay a snapshot into this server

        **clear**: Wipe this server's roles, channels, emojis, webhooks and bans first.
        **limit**: How many of the newest messages to replay per channel, -1 for all of them.
        Defaults to the message limit in `[p]chronicleset view`.
        The results are sent to you in DMs if this channel gets deleted.
        """
        snapshot = await self.load_snapshot(ctx.guild, backup_id)
        if snapshot is None:
            return await ctx.send(_("No snapshot found with that ID!"))
        adapter = await self._adapter(ctx)
        if adapter is None:
            return
        options = self.db.restore_options(clear, limit)
        try:
            async with ctx.typing():
                guild = await adapter.fetch_guild(ctx.guild.id)
                results = await snapshot.restore(adapter, guild, options)
        finally:
            await adapter.close()

        txt = _("Snapshot restore is complete!")
        file = text_to_file(results, "restore_results.txt")
        try:
            await ctx.send(txt, file=file)
        except discord.HTTPException:
            # The invoking channel is gone after a clear
            await ctx.author.send(txt, file=text_to_file(results, "restore_results.txt"))

    @chronicle.command(name="list")
    @commands.bot_has_permissions(embed_links=True)
    async def list_backups(self, ctx: commands.Context):
        """View the snapshots saved for this server"""
        conf = self.db.get_conf(ctx.guild)
        if not conf.backups:
            return await ctx.send(_("There are no snapshots for this server!"))
        embeds = []
        backups = sorted(conf.backups, key=lambda x: x.created_at, reverse=True)
        for idx, info in enumerate(backups):
            embed = discord.Embed(description=snapshot_str(info), color=await self.bot.get_embed_color(ctx))
            embed.set_footer(text=_("Page {}/{}").format(idx + 1, len(backups)))
            embeds.append(embed)
        await menu(ctx, embeds, DEFAULT_CONTROLS)

    @chronicle.command(name="delete")
    async def delete_backup(self, ctx: commands.Context, backup_id: str):
        """Delete a snapshot"""
        if await self.delete_snapshot(ctx.guild, backup_id):
            await ctx.send(_("Snapshot deleted!"))
        else:
            await ctx.send(_("No snapshot found with that ID!"))

    @chronicle.command(name="reset")
    @commands.guildowner()
    @commands.bot_has_permissions(administrator=True)
    async def reset_server(self, ctx: commands.Context, confirm: bool):
        """
        Wipe this server

        Deletes every role the bot can manage along with all channels, emojis and webhooks,
        lifts every ban and puts the server settings back to their defaults.

        This action cannot be undone!
        """
        if not confirm:
            return await ctx.send(_("Please confirm this action by passing `True` as an argument"))
        adapter = await self._adapter(ctx)
        if adapter is None:
            return
        try:
            guild = await adapter.fetch_guild(ctx.guild.id)
            await clear_guild(adapter, guild)
        finally:
            await adapter.close()
        try:
            await ctx.author.send(_("{} has been reset.").format(ctx.guild.name))
        except discord.HTTPException:
            log.info("Could not DM %s after resetting %s", ctx.author, ctx.guild.name)
