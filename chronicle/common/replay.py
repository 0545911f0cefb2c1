from __future__ import annotations

import asyncio
import base64
import logging

from .adapters.base import ChannelView, FilePayload, PlatformAdapter, SendPayload, WebhookView
from .options import FETCH_ALL, RestoreOptions
from .records import FileRecord, MessageRecord, ThreadRecord

log = logging.getLogger("red.vrt.chronicle.replay")

WEBHOOK_NAME = "MessagesBackup"


async def get_webhook(
    adapter: PlatformAdapter,
    channel: ChannelView,
    previous: WebhookView | None = None,
) -> WebhookView | None:
    """Find the proxy webhook for a channel, creating it if needed.

    Threads have no webhooks of their own, they only ever use the one handed down by their parent.
    """
    if previous is not None:
        return previous
    if channel.is_thread:
        return None

    try:
        for webhook in await adapter.fetch_webhooks(channel):
            if webhook.name == WEBHOOK_NAME:
                return webhook
    except Exception as e:
        log.error("Failed to fetch webhooks for %s", channel.name, exc_info=e)

    try:
        return await adapter.create_webhook(channel, WEBHOOK_NAME)
    except Exception as e:
        log.error("Failed to create a webhook in %s", channel.name, exc_info=e)
    return None


def prepare_messages(messages: list[MessageRecord], limit: int) -> list[MessageRecord]:
    """Drop empty messages, put them in chronological order and keep the newest `limit` of them"""
    prepared = [i for i in messages if not i.is_empty()]
    prepared.reverse()
    if limit > 0 and limit != FETCH_ALL:
        prepared = prepared[max(len(prepared) - limit, 0) :]
    return prepared


async def load_file(adapter: PlatformAdapter, record: FileRecord) -> FilePayload | None:
    try:
        if record.attachment.startswith(("http://", "https://")):
            data = await adapter.fetch_attachment(record.attachment)
        else:
            data = base64.b64decode(record.attachment, validate=True)
    except ValueError as e:
        log.warning("Attachment %s is neither a URL nor base64", record.name, exc_info=e)
        return None
    except Exception as e:
        log.warning("Could not download attachment %s", record.name, exc_info=e)
        return None
    return FilePayload(name=record.name, data=data)


async def build_payload(
    adapter: PlatformAdapter,
    message: MessageRecord,
    allowed_mentions: dict | None = None,
) -> SendPayload:
    payload = SendPayload(
        username=message.username,
        avatar_url=message.avatar_url,
        content=message.content or None,
        embeds=message.embeds,
        allowed_mentions=allowed_mentions,
    )
    if message.files:
        # Only the first file survives a replay
        payload.file = await load_file(adapter, message.files[0])
    return payload


async def load_messages(
    adapter: PlatformAdapter,
    channel: ChannelView,
    messages: list[MessageRecord],
    options: RestoreOptions,
    webhook: WebhookView | None = None,
) -> WebhookView | None:
    """
    Replay messages into a channel or thread through the proxy webhook.

    Sends are strictly sequential so the destination keeps the original order.

    Returns:
        The webhook that was used, or None if no webhook could be obtained
    """
    webhook = await get_webhook(adapter, channel, webhook)
    if webhook is None:
        log.warning("No webhook available for %s, skipping its messages", channel.name)
        return None

    thread = channel if channel.is_thread else None
    prepared = prepare_messages(messages, options.message_limit)
    log.debug("Replaying %s messages into %s", len(prepared), channel.name)
    for message in prepared:
        try:
            payload = await build_payload(adapter, message, options.allowed_mentions)
            message_id = await adapter.send_message(webhook, payload, thread=thread)
        except Exception as e:
            log.error("Failed to send a message from %s in %s", message.username, channel.name, exc_info=e)
            continue
        if message.pinned and message_id:
            try:
                await adapter.pin_message(channel, message_id)
            except Exception as e:
                log.warning("Failed to pin message %s in %s", message_id, channel.name, exc_info=e)
    return webhook


async def load_thread(
    adapter: PlatformAdapter,
    channel: ChannelView,
    record: ThreadRecord,
    options: RestoreOptions,
    webhook: WebhookView | None,
    existing: list[ChannelView],
) -> None:
    thread = next((i for i in existing if i.name == record.name), None)
    if thread is None:
        thread = await adapter.create_thread(channel, record.name, record.auto_archive_duration)
    await load_messages(adapter, thread, record.messages, options, webhook)


async def load_threads(
    adapter: PlatformAdapter,
    channel: ChannelView,
    threads: list[ThreadRecord],
    options: RestoreOptions,
    webhook: WebhookView | None,
) -> None:
    """Recreate a channel's threads concurrently, replaying each with the parent's webhook"""
    if not threads:
        return
    try:
        existing = await adapter.list_threads(channel)
    except Exception as e:
        log.error("Could not list the existing threads of %s", channel.name, exc_info=e)
        existing = []

    results = await asyncio.gather(
        *[load_thread(adapter, channel, i, options, webhook, existing) for i in threads],
        return_exceptions=True,
    )
    for record, result in zip(threads, results):
        if isinstance(result, Exception):
            log.error("Failed to restore thread %s in %s", record.name, channel.name, exc_info=result)
