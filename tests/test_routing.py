from __future__ import annotations

import sqlite3

import pytest

from adapters.sqlite_routes import SQLiteRouteStore
from core.models import RouteEntry
from core.routing import RoutingResolver

WEBHOOK = "https://discord.com/api/webhooks/1/abc"
FORUM_WEBHOOK = "https://discord.com/api/webhooks/2/def"


def _store(tmp_path) -> SQLiteRouteStore:
    store = SQLiteRouteStore(str(tmp_path / "routes.db"))
    store.init_db()
    return store


class BrokenStore:
    def get_route(self, group_id, topic_id):
        raise sqlite3.OperationalError("database is locked")

    def list_routes(self):
        raise sqlite3.OperationalError("database is locked")


class LooseStore:
    """Returns the topic-less route for any topic."""

    def __init__(self, route: RouteEntry) -> None:
        self._route = route

    def get_route(self, group_id, topic_id):
        return self._route

    def list_routes(self):
        return [self._route]


def test_topic_less_route_matches_only_topic_less_messages(tmp_path) -> None:
    store = _store(tmp_path)
    store.add_route(-100123, None, WEBHOOK)
    resolver = RoutingResolver(store)

    route = resolver.resolve(-100123)
    assert route is not None
    assert route.webhook_url == WEBHOOK
    assert resolver.resolve(-100123, 5) is None


def test_topic_route_matches_only_its_topic(tmp_path) -> None:
    store = _store(tmp_path)
    store.add_route(-100123, 5, FORUM_WEBHOOK)
    resolver = RoutingResolver(store)

    assert resolver.resolve(-100123, 5).webhook_url == FORUM_WEBHOOK
    assert resolver.resolve(-100123, 6) is None
    assert resolver.resolve(-100123) is None


def test_topic_and_topic_less_routes_coexist(tmp_path) -> None:
    store = _store(tmp_path)
    store.add_route(-100123, None, WEBHOOK)
    store.add_route(-100123, 5, FORUM_WEBHOOK)
    resolver = RoutingResolver(store)

    assert resolver.resolve(-100123).webhook_url == WEBHOOK
    assert resolver.resolve(-100123, 5).webhook_url == FORUM_WEBHOOK


def test_duplicate_route_is_rejected(tmp_path) -> None:
    store = _store(tmp_path)
    store.add_route(-100123, None, WEBHOOK)
    with pytest.raises(sqlite3.IntegrityError):
        store.add_route(-100123, None, FORUM_WEBHOOK)


def test_update_and_delete_route(tmp_path) -> None:
    store = _store(tmp_path)
    route_id = store.add_route(-4242, None, WEBHOOK, note="ops")

    assert store.update_route(route_id, -4242, 3, FORUM_WEBHOOK, note="forum")
    updated = store.get_route(-4242, 3)
    assert updated is not None
    assert updated.webhook_url == FORUM_WEBHOOK
    assert updated.note == "forum"
    assert store.get_route(-4242, None) is None

    assert store.delete_route(route_id)
    assert not store.delete_route(route_id)
    assert store.list_routes() == []


def test_store_failure_is_reported_as_no_route() -> None:
    resolver = RoutingResolver(BrokenStore())
    assert resolver.resolve(-100123, None) is None
    assert resolver.list_routes() == []


def test_loose_store_match_is_rejected() -> None:
    route = RouteEntry(1, -100123, None, WEBHOOK, None, None, None)
    resolver = RoutingResolver(LooseStore(route))
    assert resolver.resolve(-100123, 7) is None
    assert resolver.resolve(-100123) == route
