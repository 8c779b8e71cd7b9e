"""Sender identity resolution with graceful degradation.

Tiers:
1) profile + cached avatar while fresh, else a freshly downloaded one
2) profile, avatar fetch failed -> cached avatar for the sender, else default
3) profile unreachable -> "user_<id>" with a per-user copy of the default
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from typing import Any, Optional

from core.config import IdentityConfig
from core.models import SenderIdentity, SenderProfile
from core.ports import ProfileSourcePort

LOGGER = logging.getLogger(__name__)

UNKNOWN_DISPLAY_NAME = "Unknown User"


def display_name_for(profile: SenderProfile) -> Optional[str]:
    """Return "first last", the chat title, or None."""

    parts = [part for part in (profile.first_name, profile.last_name) if part]
    if parts:
        return " ".join(parts)
    if profile.title:
        return profile.title
    return None


def handle_for(profile: SenderProfile) -> str:
    if profile.username:
        return profile.username
    return f"user_{profile.user_id}"


class IdentityResolver:
    """Resolve a sender into a display name, handle, and avatar reference."""

    def __init__(self, profiles: ProfileSourcePort, config: IdentityConfig) -> None:
        self._profiles = profiles
        self._config = config

    def cached_avatar_path(self, user_id: int) -> str:
        return os.path.join(self._config.avatar_dir, f"{user_id}.jpg")

    async def resolve(self, sender_ref: Any, user_id: Optional[int]) -> SenderIdentity:
        try:
            profile = await self._profiles.get_profile(sender_ref, user_id)
        except Exception:
            LOGGER.warning("Sender %s could not be resolved, using fallback identity", user_id, exc_info=True)
            return self._fallback_identity(user_id)

        handle = handle_for(profile)
        display_name = display_name_for(profile) or handle
        avatar = self._fresh_cached_avatar(profile.user_id)
        if avatar is None:
            avatar = await self._fetch_avatar(sender_ref, profile.user_id)
        if avatar is None:
            avatar = self._cached_or_default(profile.user_id)
        return SenderIdentity(
            display_name=display_name,
            handle=handle,
            avatar_location=self._expose(avatar),
        )

    def _fresh_cached_avatar(self, user_id: int) -> Optional[str]:
        cache_path = self.cached_avatar_path(user_id)
        try:
            modified = os.path.getmtime(cache_path)
        except OSError:
            return None
        ttl = self._config.avatar_cache_ttl_seconds
        if ttl > 0 and time.time() - modified >= ttl:
            return None
        return cache_path

    async def _fetch_avatar(self, sender_ref: Any, user_id: int) -> Optional[str]:
        """Single bounded attempt; never retried."""

        os.makedirs(self._config.avatar_dir, exist_ok=True)
        cache_path = self.cached_avatar_path(user_id)
        partial_path = os.path.join(self._config.avatar_dir, f"{user_id}.download.jpg")
        try:
            downloaded = await asyncio.wait_for(
                self._profiles.download_avatar(sender_ref, user_id, partial_path),
                timeout=self._config.avatar_timeout_seconds,
            )
        except Exception:
            LOGGER.warning("Avatar fetch failed for %s", user_id, exc_info=True)
            self._discard(partial_path)
            return None

        if not downloaded or not os.path.exists(downloaded):
            return None
        # Replace the cache only once the new file is complete.
        os.replace(downloaded, cache_path)
        return cache_path

    def _cached_or_default(self, user_id: int) -> Optional[str]:
        cache_path = self.cached_avatar_path(user_id)
        if os.path.exists(cache_path):
            return cache_path
        if os.path.exists(self._config.default_avatar):
            return self._config.default_avatar
        return None

    def _fallback_identity(self, user_id: Optional[int]) -> SenderIdentity:
        if user_id is None:
            return SenderIdentity(
                display_name=UNKNOWN_DISPLAY_NAME,
                handle="unknown",
                avatar_location=self._expose(self._default_if_present()),
            )

        handle = f"user_{user_id}"
        return SenderIdentity(
            display_name=handle,
            handle=handle,
            avatar_location=self._expose(self._materialize_default(user_id)),
        )

    def _materialize_default(self, user_id: int) -> Optional[str]:
        """Give an unresolvable sender a stable avatar file of their own."""

        cache_path = self.cached_avatar_path(user_id)
        if os.path.exists(cache_path):
            return cache_path
        default = self._default_if_present()
        if default is None:
            return None
        try:
            os.makedirs(self._config.avatar_dir, exist_ok=True)
            shutil.copyfile(default, cache_path)
        except OSError:
            LOGGER.warning("Could not copy default avatar for %s", user_id, exc_info=True)
            return default
        return cache_path

    def _default_if_present(self) -> Optional[str]:
        if os.path.exists(self._config.default_avatar):
            return self._config.default_avatar
        return None

    def _expose(self, avatar: Optional[str]) -> Optional[str]:
        """Swap a cached avatar path for the avatar server URL, if configured."""

        base_url = self._config.avatar_base_url
        if not avatar or not base_url:
            return avatar
        avatar_dir = os.path.abspath(self._config.avatar_dir)
        if os.path.dirname(os.path.abspath(avatar)) != avatar_dir:
            return avatar
        return f"{base_url.rstrip('/')}/{os.path.basename(avatar)}"

    @staticmethod
    def _discard(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
