from redbot.core.i18n import Translator
from redbot.core.utils.chat_formatting import humanize_number

from .models import SnapshotInfo

_ = Translator("Chronicle", __file__)


def snapshot_str(info: SnapshotInfo) -> str:
    txt = _(
        "## {}\n"
        "`ID:        `{}\n"
        "`Size:      `{}\n"
        "`Created:   `{}\n"
        "`Channels:  `{}\n"
        "`Messages:  `{}\n"
        "`Members:   `{}\n"
        "`Stored as: `{}\n"
    ).format(
        info.name,
        info.id,
        humanize_size(info.size),
        f"{info.created_fmt('f')} ({info.created_fmt('R')})",
        humanize_number(info.channels),
        humanize_number(info.messages),
        humanize_number(info.members),
        _("JSON file") if info.filename else _("Config"),
    )
    return txt


def humanize_size(num: float) -> str:
    for unit in ["B", "KB", "MB", "GB", "TB", "PB", "EB", "ZB"]:
        if abs(num) < 1024.0:
            return "{0:.1f}{1}".format(num, unit)
        num /= 1024.0
    return "{0:.1f}{1}".format(num, "YB")
