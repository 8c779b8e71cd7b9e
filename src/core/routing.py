"""Routing lookup for the forwarding pipeline."""

from __future__ import annotations

import logging
from typing import Optional

from core.models import RouteEntry
from core.ports import RouteStorePort

LOGGER = logging.getLogger(__name__)


class RoutingResolver:
    """Resolve (group, topic) to a webhook route without ever raising.

    A store failure is reported as "no route" so one broken lookup only drops
    the message it belongs to.
    """

    def __init__(self, store: RouteStorePort) -> None:
        self._store = store

    def resolve(self, group_id: int, topic_id: Optional[int] = None) -> Optional[RouteEntry]:
        try:
            route = self._store.get_route(group_id, topic_id)
        except Exception:
            LOGGER.exception("Route lookup failed for group %s topic %s", group_id, topic_id)
            return None
        if route is None:
            return None
        # Guard against stores that match NULL loosely.
        if not route.matches(group_id, topic_id):
            LOGGER.warning(
                "Route store returned a non-matching entry %s for group %s topic %s",
                route.id,
                group_id,
                topic_id,
            )
            return None
        return route

    def list_routes(self) -> list[RouteEntry]:
        try:
            return list(self._store.list_routes())
        except Exception:
            LOGGER.exception("Listing routes failed")
            return []
