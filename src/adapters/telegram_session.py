"""Telethon session adapter for the connection supervisor."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from telethon import events

LOGGER = logging.getLogger(__name__)


class TelethonSession:
    """Implements the core SessionPort around a TelegramClient."""

    def __init__(self, client) -> None:
        self._client = client
        self._handler: Optional[Callable[..., Awaitable[None]]] = None

    @property
    def client(self):
        return self._client

    async def connect(self) -> None:
        await self._client.connect()

    async def is_authorized(self) -> bool:
        return await self._client.is_user_authorized()

    async def wait_disconnected(self) -> None:
        await self._client.disconnected

    async def disconnect(self) -> None:
        if self._client.is_connected():
            await self._client.disconnect()
            LOGGER.info("Telegram client disconnected")

    def is_connected(self) -> bool:
        return self._client.is_connected()

    def subscribe(self, handler: Callable[..., Awaitable[None]]) -> None:
        """(Re)install the single incoming-message handler."""

        if self._handler is not None:
            self._client.remove_event_handler(self._handler)
        self._client.add_event_handler(handler, events.NewMessage(incoming=True))
        self._handler = handler

    def unsubscribe(self) -> None:
        if self._handler is not None:
            self._client.remove_event_handler(self._handler)
            self._handler = None
