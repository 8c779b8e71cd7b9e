"""Forwarding coordinator.

This module is integration-agnostic. It wires one inbound message through
routing, identity, media, and delivery, and consumes a queue so messages are
processed one at a time in arrival order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from core.errors import DeliveryError
from core.identity import IdentityResolver
from core.media import MEDIA_FAILED_NOTICE, MediaPipeline
from core.models import InboundMessage, NormalizedMessage, ProcessedAttachment
from core.ports import DispatcherPort
from core.retry import RetryPolicy
from core.routing import RoutingResolver

LOGGER = logging.getLogger(__name__)

Translator = Callable[[Any], Awaitable[InboundMessage]]


class ForwardingCoordinator:
    """Orchestrates routing, identity, media, and dispatch for each message."""

    def __init__(
        self,
        routing: RoutingResolver,
        identity: IdentityResolver,
        media: MediaPipeline,
        dispatcher: DispatcherPort,
        retry_policy: Optional[RetryPolicy] = None,
        queue_size: int = 0,
        translate: Optional[Translator] = None,
    ) -> None:
        self._routing = routing
        self._identity = identity
        self._media = media
        self._dispatcher = dispatcher
        self._retry = retry_policy or RetryPolicy()
        # Raw events are translated by the consumer so slow lookups cannot
        # reorder messages before they reach the queue.
        self._translate = translate
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self.forwarded = 0
        self.dropped = 0
        self.failed = 0

    async def submit(self, item: Any) -> None:
        """Enqueue a message (or a raw event when a translator is set).

        Blocks only if a bounded queue is full.
        """

        await self._queue.put(item)

    def pending(self) -> int:
        return self._queue.qsize()

    async def stop(self) -> None:
        """Ask the consumer loop to exit after the messages already queued."""

        await self._queue.put(None)

    async def run(self) -> None:
        """Consume the queue until stop() is called."""

        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                message = await self._translate(item) if self._translate else item
                await self.handle(message)
            except Exception:
                # One broken message must not stop the ones queued behind it.
                self.failed += 1
                LOGGER.exception("Error while forwarding message")
            finally:
                self._queue.task_done()

    async def handle(self, message: InboundMessage) -> bool:
        """Process one message; return True when it was delivered."""

        if message.is_outgoing:
            return False

        if message.origin_group_id is None:
            LOGGER.debug("Dropping message %s: no origin group id", message.message_id)
            self.dropped += 1
            return False

        group_id = message.origin_group_id
        topic_id = message.origin_topic_id
        route = self._routing.resolve(group_id, topic_id)
        if route is None:
            LOGGER.info("No route for group %s, topic %s", group_id, topic_id if topic_id is not None else "N/A")
            self.dropped += 1
            return False

        LOGGER.info("Processing message %s from group %s, topic %s", message.message_id, group_id, topic_id)

        processed: list[ProcessedAttachment] = []
        try:
            identity = await self._identity.resolve(message.sender_ref, message.origin_user_id)

            media_failed = False
            for index, ref in enumerate(message.attachments):
                outcome = await self._media.process_outcome(ref, message.message_id, index)
                if outcome.attachment is not None:
                    processed.append(outcome.attachment)
                elif outcome.failed:
                    media_failed = True

            content = message.text_body or ""
            if media_failed:
                content = f"{content}\n{MEDIA_FAILED_NOTICE}" if content.strip() else MEDIA_FAILED_NOTICE
            if not content.strip() and not processed:
                LOGGER.info("Message %s has nothing left to forward", message.message_id)
                self.dropped += 1
                return False

            normalized = NormalizedMessage(
                display_name=identity.display_name,
                avatar_source=identity.avatar_location,
                content=content,
                attachments=tuple(processed),
            )
            try:
                await self._dispatcher.deliver(route.webhook_url, normalized, self._retry)
            except DeliveryError as error:
                self.failed += 1
                LOGGER.error(
                    "Delivery failed for message %s to route %s (status %s): %s",
                    message.message_id,
                    route.id,
                    error.status,
                    error,
                )
                return False
        finally:
            # The dispatcher deletes files it was handed; this covers early exits.
            self._media.release(processed)

        self.forwarded += 1
        LOGGER.info("Message %s forwarded to route %s", message.message_id, route.id)
        return True
