"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline.
"""

from __future__ import annotations

import logging
import mimetypes
from typing import Optional

from telethon.tl.custom import Message
from telethon.tl.types import (
    DocumentAttributeAudio,
    DocumentAttributeFilename,
    DocumentAttributeVideo,
    PeerChannel,
    PeerChat,
    PeerUser,
)

from core.models import AttachmentKind, AttachmentRef, InboundMessage
from core.origin import derive_group_id, derive_topic_id

LOGGER = logging.getLogger(__name__)


class ForumResolver:
    """Resolve whether a chat is forum-enabled, with a chat_id cache.

    Only successful lookups are cached; a failed lookup reports "not a forum"
    for this message and is retried on the next one.
    """

    def __init__(self, client) -> None:
        self._client = client
        self._cache: dict[int, bool] = {}

    async def is_forum(self, chat_id: int) -> bool:
        if chat_id in self._cache:
            return self._cache[chat_id]
        try:
            entity = await self._client.get_entity(chat_id)
        except Exception:
            LOGGER.warning("Forum lookup failed for %s, treating message as topic-less", chat_id, exc_info=True)
            return False
        is_forum = bool(getattr(entity, "forum", False))
        self._cache[chat_id] = is_forum
        return is_forum


def _peer_ids(message: Message) -> tuple[Optional[int], Optional[int], Optional[int]]:
    """Return (channel_id, chat_id, user_id) from the message peer."""

    peer_id = getattr(message, "peer_id", None)
    if isinstance(peer_id, PeerChannel):
        return peer_id.channel_id, None, None
    if isinstance(peer_id, PeerChat):
        return None, peer_id.chat_id, None
    if isinstance(peer_id, PeerUser):
        return None, None, peer_id.user_id
    return None, None, None


async def topic_id_from_message(message: Message, forum_resolver: Optional[ForumResolver]) -> Optional[int]:
    """Derive the forum topic, confirming the chat really is a forum first."""

    if forum_resolver is None or not isinstance(getattr(message, "peer_id", None), PeerChannel):
        return None
    is_forum = await forum_resolver.is_forum(message.chat_id)
    reply_to = getattr(message, "reply_to", None)
    return derive_topic_id(
        is_forum=is_forum,
        forum_topic=bool(getattr(reply_to, "forum_topic", False)),
        reply_to_top_id=getattr(reply_to, "reply_to_top_id", None),
        reply_to_msg_id=getattr(reply_to, "reply_to_msg_id", None),
    )


def attachment_from_message(message: Message) -> Optional[AttachmentRef]:
    """Describe the message's media, if any, without downloading it."""

    if getattr(message, "photo", None):
        return AttachmentRef(kind=AttachmentKind.IMAGE, source_locator=message)

    document = getattr(message, "document", None)
    if document is None:
        return None

    kind = AttachmentKind.DOCUMENT
    filename: Optional[str] = None
    for attribute in getattr(document, "attributes", None) or []:
        if isinstance(attribute, DocumentAttributeFilename):
            filename = attribute.file_name
        elif isinstance(attribute, DocumentAttributeVideo):
            kind = AttachmentKind.VIDEO
        elif isinstance(attribute, DocumentAttributeAudio):
            kind = AttachmentKind.AUDIO

    mime_type = getattr(document, "mime_type", None) or ""
    if kind is AttachmentKind.DOCUMENT and mime_type.startswith("image/"):
        kind = AttachmentKind.IMAGE
    if not filename:
        extension = mimetypes.guess_extension(mime_type) if mime_type else None
        filename = f"file_{message.id}{extension or ''}"

    return AttachmentRef(kind=kind, source_locator=message, suggested_filename=filename)


async def build_inbound(message: Message, forum_resolver: Optional[ForumResolver] = None) -> InboundMessage:
    """Build a core InboundMessage from a Telethon Message."""

    channel_id, chat_id, user_id = _peer_ids(message)
    group_id = derive_group_id(channel_id, chat_id, user_id)
    topic_id = None
    if group_id is not None:
        topic_id = await topic_id_from_message(message, forum_resolver)

    attachment = attachment_from_message(message)
    return InboundMessage(
        message_id=message.id,
        origin_group_id=group_id,
        origin_topic_id=topic_id,
        origin_user_id=getattr(message, "sender_id", None),
        is_outgoing=bool(getattr(message, "out", False)),
        text_body=getattr(message, "raw_text", None) or None,
        attachments=(attachment,) if attachment else (),
        sender_ref=message,
    )
