import logging
import typing as t

from redbot.core import commands
from redbot.core.i18n import Translator, cog_i18n

from ..common.abc import MixinMeta
from ..common.formatting import humanize_size
from ..common.options import FETCH_ALL

log = logging.getLogger("red.vrt.chronicle.commands.admin")
_ = Translator("Chronicle", __file__)

MentionType = t.Literal["users", "roles", "everyone"]


@cog_i18n(_)
class Admin(MixinMeta):
    def _toggle(self, attr: str) -> bool:
        value = not getattr(self.db.options, attr)
        setattr(self.db.options, attr, value)
        return value

    @commands.group(name="chronicleset")
    @commands.is_owner()
    async def chronicleset(self, ctx: commands.Context):
        """Global snapshot settings"""

    @chronicleset.command(name="view")
    async def view_settings(self, ctx: commands.Context):
        """View current global settings"""
        total = 0
        total_size = 0
        for conf in self.db.configs.values():
            total += len(conf.backups)
            total_size += sum(i.size for i in conf.backups)

        opts = self.db.options
        limit = _("All") if opts.message_target == FETCH_ALL else opts.message_target
        ignored = ", ".join([f"`{i}`" for i in opts.do_not_backup]) if opts.do_not_backup else _("**None Set**")
        mentions = ", ".join(self.db.allowed_mentions) if self.db.allowed_mentions else _("**None**")
        txt = _(
            "### Global Settings\n"
            "- Snapshots: {}\n"
            "- Max snapshots per server: {}\n"
            "- Message limit per channel: {}\n"
            "- Save images: {}\n"
            "- Backup members: {}\n"
            "- Save as JSON files: {}\n"
            "- Beautify JSON: {}\n"
            "- Self-bot mode: {}\n"
            "- Dev mode: {}\n"
            "- Ignored categories: {}\n"
            "- Restore mentions: {}\n"
        ).format(
            f"**{total}** ({humanize_size(total_size)})",
            f"**{self.db.max_backups_per_guild}**",
            f"**{limit}**",
            f"**{opts.save_images}**",
            f"**{opts.backup_members}**",
            f"**{opts.json_save}**",
            f"**{opts.json_beautify}**",
            f"**{opts.self_bot}**",
            f"**{opts.dev_mode}**",
            ignored,
            mentions,
        )
        await ctx.send(txt)

    @chronicleset.command(name="messagelimit")
    async def set_message_limit(self, ctx: commands.Context, limit: int):
        """Set how many messages to capture and replay per channel

        Set to -1 to capture every message.

        ⚠️**Warning**⚠️
        High limits make snapshots slow and large.
        """
        if limit < FETCH_ALL:
            return await ctx.send(_("Limit must be -1 or higher"))
        self.db.options.max_messages_per_channel = limit
        await ctx.send(_("Message limit has been set to {}").format(f"**{limit}**"))
        await self.save()

    @chronicleset.command(name="saveimages")
    async def toggle_save_images(self, ctx: commands.Context):
        """Toggle inlining image attachments into snapshots"""
        if self._toggle("save_images"):
            txt = _("Images will now be saved into snapshots")
        else:
            txt = _("Images will no longer be saved into snapshots")
        await ctx.send(txt)
        await self.save()

    @chronicleset.command(name="backupmembers")
    async def toggle_backup_members(self, ctx: commands.Context):
        """Toggle capturing the member list"""
        if self._toggle("backup_members"):
            txt = _("Members will now be captured")
        else:
            txt = _("Members will no longer be captured")
        await ctx.send(txt)
        await self.save()

    @chronicleset.command(name="selfbot")
    async def toggle_self_bot(self, ctx: commands.Context):
        """
        Toggle driving snapshots with a user account instead of the bot

        Set the token with `[p]set api chronicle user_token,<token>`
        """
        if self._toggle("self_bot"):
            txt = _("Self-bot mode has been **Enabled**")
        else:
            txt = _("Self-bot mode has been **Disabled**")
        await ctx.send(txt)
        await self.save()

    @chronicleset.command(name="devmode")
    async def toggle_dev_mode(self, ctx: commands.Context):
        """Toggle debug logging"""
        if self._toggle("dev_mode"):
            txt = _("Dev mode has been **Enabled**")
        else:
            txt = _("Dev mode has been **Disabled**")
        self.apply_log_level()
        await ctx.send(txt)
        await self.save()

    @chronicleset.command(name="jsonsave")
    async def toggle_json_save(self, ctx: commands.Context):
        """Toggle storing snapshots as JSON files instead of in the config"""
        if self._toggle("json_save"):
            txt = _("New snapshots will be saved as JSON files")
        else:
            txt = _("New snapshots will be saved in the config")
        await ctx.send(txt)
        await self.save()

    @chronicleset.command(name="jsonbeautify")
    async def toggle_json_beautify(self, ctx: commands.Context):
        """Toggle indenting snapshot JSON"""
        if self._toggle("json_beautify"):
            txt = _("Snapshot JSON will be indented")
        else:
            txt = _("Snapshot JSON will be compact")
        await ctx.send(txt)
        await self.save()

    @chronicleset.command(name="ignore")
    async def ignore_category(self, ctx: commands.Context, *, category: str):
        """Add/Remove a category name from the capture ignore list"""
        if category in self.db.options.do_not_backup:
            self.db.options.do_not_backup.remove(category)
            txt = _("Category removed from the ignore list")
        else:
            self.db.options.do_not_backup.append(category)
            txt = _("Category added to the ignore list")
        await ctx.send(txt)
        await self.save()

    @chronicleset.command(name="mentions")
    async def toggle_mention(self, ctx: commands.Context, mention: MentionType):
        """Toggle a mention type that replayed messages are allowed to ping"""
        if mention in self.db.allowed_mentions:
            self.db.allowed_mentions.remove(mention)
            txt = _("Replayed messages can no longer ping {}").format(mention)
        else:
            self.db.allowed_mentions.append(mention)
            txt = _("Replayed messages can now ping {}").format(mention)
        await ctx.send(txt)
        await self.save()

    @chronicleset.command(name="maxbackups")
    async def set_max_backups(self, ctx: commands.Context, max_backups: int):
        """Set the max snapshots kept per server"""
        if max_backups < 1:
            return await ctx.send(_("Max snapshots must be 1 or higher"))
        self.db.max_backups_per_guild = max_backups
        await ctx.send(_("Max snapshots per server has been set to {}").format(f"**{max_backups}**"))
        await self.save()
