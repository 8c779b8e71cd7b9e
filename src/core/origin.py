"""Helpers for turning Telegram peer ids into routing keys."""

from __future__ import annotations

from typing import Optional

# Channel/supergroup peer id: -100<channel_id>
CHANNEL_ID_OFFSET = -1000000000000
GENERAL_TOPIC_ID = 1


def derive_group_id(
    channel_id: Optional[int],
    chat_id: Optional[int],
    user_id: Optional[int],
) -> Optional[int]:
    """Return the routing group id using a fixed precedence.

    channel id present -> -100<channel_id>
    else chat id present -> -<chat_id>
    else user id present -> <user_id>
    else -> None
    """

    if channel_id:
        return CHANNEL_ID_OFFSET - channel_id
    if chat_id:
        return -chat_id
    if user_id:
        return user_id
    return None


def derive_topic_id(
    is_forum: bool,
    forum_topic: bool,
    reply_to_top_id: Optional[int],
    reply_to_msg_id: Optional[int],
) -> Optional[int]:
    """Return the forum topic a message belongs to, if the chat is a forum.

    Only a confirmed forum yields a topic. Inside a forum, messages without a
    topic header belong to the General topic.
    """

    if not is_forum:
        return None
    if not forum_topic:
        return GENERAL_TOPIC_ID
    if reply_to_top_id:
        return reply_to_top_id
    return reply_to_msg_id or GENERAL_TOPIC_ID


def split_group_id(group_id: int) -> tuple[str, int]:
    """Return (kind, raw_id) for a routing group id, for display purposes."""

    if group_id <= CHANNEL_ID_OFFSET:
        return "channel", CHANNEL_ID_OFFSET - group_id
    if group_id < 0:
        return "chat", -group_id
    return "user", group_id
