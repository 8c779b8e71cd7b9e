"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, Telegram, and delivery
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Protocol

from core.models import NormalizedMessage, RouteEntry, SenderProfile


class RouteStorePort(Protocol):
    """Read side of the routing table."""

    def get_route(self, group_id: int, topic_id: Optional[int]) -> Optional[RouteEntry]:
        ...

    def list_routes(self) -> list[RouteEntry]:
        ...


class ProfileSourcePort(Protocol):
    """Sender lookups against the source platform."""

    async def get_profile(self, sender_ref: Any, user_id: Optional[int]) -> SenderProfile:
        ...

    async def download_avatar(self, sender_ref: Any, user_id: int, dest_path: str) -> Optional[str]:
        ...


class MediaSourcePort(Protocol):
    """Media download from the source platform."""

    async def download(self, locator: Any, dest_path: str) -> Optional[str]:
        ...


class SessionPort(Protocol):
    """A source-platform session the supervisor can (re)establish."""

    async def connect(self) -> None:
        ...

    async def is_authorized(self) -> bool:
        ...

    async def wait_disconnected(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    def is_connected(self) -> bool:
        ...


class DispatcherPort(Protocol):
    """Delivery of a normalized message to a webhook endpoint."""

    async def deliver(self, endpoint: str, message: NormalizedMessage, retry: Any = None) -> None:
        ...


Authorizer = Callable[[], Awaitable[None]]
