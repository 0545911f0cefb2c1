import logging

import discord

from ..options import BackupOptions
from .base import AdapterUnavailable, PlatformAdapter, PlatformError
from .bot import BotAdapter
from .user import UserAdapter

log = logging.getLogger("red.vrt.chronicle.adapters")

__all__ = [
    "AdapterUnavailable",
    "BotAdapter",
    "PlatformAdapter",
    "PlatformError",
    "UserAdapter",
    "get_adapter",
]


def get_adapter(bot: discord.Client, options: BackupOptions, user_token: str | None = None) -> PlatformAdapter:
    """Pick the client variant once, before a capture or restore starts"""
    if options.self_bot:
        if not user_token:
            raise AdapterUnavailable("Self-bot mode is enabled but no user token is set")
        adapter = UserAdapter(user_token)
    else:
        adapter = BotAdapter(bot)
    log.debug("Using the %s adapter", adapter.name)
    return adapter
