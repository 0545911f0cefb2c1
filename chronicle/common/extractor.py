from __future__ import annotations

import asyncio
import base64
import logging

from .adapters.base import AttachmentView, ChannelView, MessageView, PlatformAdapter
from .options import FETCH_ALL, BackupOptions
from .records import FileRecord, MessageRecord

log = logging.getLogger("red.vrt.chronicle.extractor")

PAGE_SIZE = 100
# Compared against the whole attachment URL, not its suffix
IMAGE_TOKENS = ("png", "jpg", "jpeg", "jpe", "jif", "jfif", "jfi")


def should_inline(attachment: AttachmentView, options: BackupOptions) -> bool:
    return bool(options.save_images and attachment.url and attachment.url in IMAGE_TOKENS)


async def serialize_attachment(
    adapter: PlatformAdapter, attachment: AttachmentView, options: BackupOptions
) -> FileRecord:
    data = attachment.url
    if should_inline(attachment, options):
        try:
            raw = await adapter.fetch_attachment(attachment.url)
            data = base64.b64encode(raw).decode()
        except Exception as e:
            log.warning("Could not inline attachment %s, keeping its URL", attachment.name, exc_info=e)
    return FileRecord(name=attachment.name, attachment=data)


async def serialize_message(adapter: PlatformAdapter, message: MessageView, options: BackupOptions) -> MessageRecord:
    files = await asyncio.gather(*[serialize_attachment(adapter, i, options) for i in message.attachments])
    return MessageRecord(
        username=message.author.username,
        avatar_url=message.author.avatar_url,
        content=message.content,
        embeds=message.embeds,
        files=list(files),
        pinned=message.pinned,
        sent_at=message.created_at,
    )


async def fetch_channel_messages(
    adapter: PlatformAdapter,
    channel: ChannelView,
    options: BackupOptions,
) -> list[MessageRecord]:
    """Walk a channel's history backwards and serialize up to the configured number of messages.

    Pages are requested one at a time with the oldest message of the previous page as cursor.
    Processing ends at the first message with no author, once the target is reached
    (unless it is -1), or when the channel runs out of history.

    Returns:
        Messages newest first
    """
    target = options.message_target
    messages: list[MessageRecord] = []
    before: int | None = None
    complete = False
    while not complete:
        page = await adapter.fetch_messages(channel, before=before, limit=PAGE_SIZE)
        if not page:
            break
        before = page[-1].id

        accepted: list[MessageView] = []
        for message in page:
            if message.author is None:
                complete = True
                break
            if target != FETCH_ALL and len(messages) + len(accepted) >= target:
                complete = True
                break
            accepted.append(message)

        if accepted:
            serialized = await asyncio.gather(*[serialize_message(adapter, i, options) for i in accepted])
            messages.extend(serialized)

    log.debug("Extracted %s messages from %s", len(messages), channel.name)
    return messages
