"""Telethon-backed profile and media source.

Implements the core ProfileSourcePort and MediaSourcePort on top of a
connected TelegramClient.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from core.models import SenderProfile

LOGGER = logging.getLogger(__name__)


class TelethonSource:
    """Entity lookups and downloads for the forwarding pipeline."""

    def __init__(self, client) -> None:
        self._client = client

    async def _entity(self, sender_ref: Any, user_id: Optional[int]):
        entity = None
        # sender_ref is the Telethon Message; get_sender() reuses its cache.
        if sender_ref is not None and hasattr(sender_ref, "get_sender"):
            entity = await sender_ref.get_sender()
        if entity is None and user_id is not None:
            entity = await self._client.get_entity(user_id)
        if entity is None:
            raise LookupError(f"Sender {user_id} could not be resolved")
        return entity

    async def get_profile(self, sender_ref: Any, user_id: Optional[int]) -> SenderProfile:
        entity = await self._entity(sender_ref, user_id)
        return SenderProfile(
            user_id=int(entity.id),
            first_name=getattr(entity, "first_name", None),
            last_name=getattr(entity, "last_name", None),
            username=getattr(entity, "username", None),
            title=getattr(entity, "title", None),
        )

    async def download_avatar(self, sender_ref: Any, user_id: int, dest_path: str) -> Optional[str]:
        entity = await self._entity(sender_ref, user_id)
        # Small profile photo is plenty for a webhook avatar.
        return await self._client.download_profile_photo(entity, file=dest_path, download_big=False)

    async def download(self, locator: Any, dest_path: str) -> Optional[str]:
        return await self._client.download_media(locator, file=dest_path)
