"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class AttachmentKind(str, Enum):
    """Closed set of media kinds the pipeline knows how to handle."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


@dataclass(frozen=True)
class RouteEntry:
    """A persisted mapping from (group, topic) to a Discord webhook."""

    id: int
    group_id: int
    topic_id: Optional[int]
    webhook_url: str
    note: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    def matches(self, group_id: int, topic_id: Optional[int]) -> bool:
        # None is its own key: a topic-less query never matches a topic entry.
        return self.group_id == group_id and self.topic_id == topic_id


@dataclass(frozen=True)
class AttachmentRef:
    """Pointer to media still living in the source platform."""

    kind: AttachmentKind
    source_locator: Any
    suggested_filename: Optional[str] = None


@dataclass(frozen=True)
class InboundMessage:
    """Platform-neutral view of one incoming message."""

    message_id: int
    origin_group_id: Optional[int]
    origin_topic_id: Optional[int]
    origin_user_id: Optional[int]
    is_outgoing: bool
    text_body: Optional[str]
    attachments: tuple[AttachmentRef, ...] = ()
    sender_ref: Any = None


@dataclass(frozen=True)
class SenderProfile:
    """Raw profile fields as returned by the source platform."""

    user_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    title: Optional[str] = None


@dataclass(frozen=True)
class SenderIdentity:
    display_name: str
    handle: str
    avatar_location: Optional[str]


@dataclass(frozen=True)
class ProcessedAttachment:
    """A local file ready for upload, owned by the pipeline until released."""

    kind: AttachmentKind
    local_path: str
    filename: str
    size_bytes: int


@dataclass(frozen=True)
class NormalizedMessage:
    """Everything the dispatcher needs to render one webhook call."""

    display_name: str
    avatar_source: Optional[str]
    content: str
    attachments: tuple[ProcessedAttachment, ...] = field(default_factory=tuple)
