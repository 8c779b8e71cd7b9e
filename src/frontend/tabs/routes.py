"""Routes tab implementation.

Routes are read from and written to the SQLite route table directly, so a
running bridge picks up changes on its next message.
"""

from __future__ import annotations

import re
import sqlite3
from typing import Any, Optional

from textual import on
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import Button, DataTable, Static

from core.models import RouteEntry
from core.origin import split_group_id

from ..modals import DeleteRouteScreen, RouteFormScreen
from ..validators import RouteInput

_WEBHOOK_TOKEN = re.compile(r"(/api/webhooks/\d+/).+$")


def mask_webhook(url: str) -> str:
    return _WEBHOOK_TOKEN.sub(r"\1***", url)


class RoutesTab(Container):
    """Routes tab for editing the group/topic -> webhook table."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._routes: dict[str, RouteEntry] = {}
        self._current_row_key: Optional[str] = None
        self._table_ready = False

    def compose(self):
        with Vertical(id="routes-panel"):
            with Horizontal(id="routes-body"):
                with Container(id="routes-left"):
                    yield DataTable(id="routes-table", cursor_type="row")
                with Container(id="routes-right"):
                    yield Static("Route details", id="routes-title")
                    yield Static("", id="route-details")
                    yield Static("", id="routes-error", classes="settings-error")
            with Horizontal(id="routes-actions"):
                yield Button("Add", id="add-route", variant="success")
                yield Button("Edit", id="edit-route")
                yield Button("Delete", id="delete-route", variant="error")
                yield Button("Refresh", id="refresh-routes")

    def on_mount(self) -> None:
        table = self.query_one("#routes-table", DataTable)
        table.add_column("id", key="id", width=5)
        table.add_column("group_id", key="group_id", width=16)
        table.add_column("kind", key="kind", width=8)
        table.add_column("topic", key="topic", width=8)
        table.add_column("webhook", key="webhook", width=44)
        table.add_column("note", key="note", width=20)
        table.zebra_stripes = True
        self._table_ready = True
        self.reload_routes()

    def reload_routes(self) -> None:
        if not self._table_ready or self.app.routes_store is None:
            return
        table = self.query_one("#routes-table", DataTable)
        table.clear()
        self._routes = {}
        try:
            routes = self.app.routes_store.list_routes()
        except sqlite3.Error as exc:
            self._set_error(f"database error: {exc}")
            self.app.set_routes_status(0, str(exc))
            routes = []
        else:
            self._set_error("")
            self.app.set_routes_status(len(routes), None)

        for route in routes:
            row_key = str(route.id)
            self._routes[row_key] = route
            table.add_row(
                str(route.id),
                str(route.group_id),
                split_group_id(route.group_id)[0],
                "" if route.topic_id is None else str(route.topic_id),
                mask_webhook(route.webhook_url),
                route.note or "",
                key=row_key,
            )
        if self._current_row_key not in self._routes:
            self._current_row_key = None
        self._show_details()
        self._update_action_state()

    def _update_action_state(self) -> None:
        nothing_selected = self._current_row_key is None
        self.query_one("#edit-route", Button).disabled = nothing_selected
        self.query_one("#delete-route", Button).disabled = nothing_selected

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        self._current_row_key = self._coerce_row_key(event.row_key)
        self._show_details()
        self._update_action_state()

    def _current_route(self) -> Optional[RouteEntry]:
        if self._current_row_key is None:
            return None
        return self._routes.get(self._current_row_key)

    def _show_details(self) -> None:
        details = self.query_one("#route-details", Static)
        route = self._current_route()
        if route is None:
            details.update("Select a route to see its details.")
            return
        topic = "whole chat" if route.topic_id is None else str(route.topic_id)
        lines = [
            f"group_id: {route.group_id}",
            f"topic_id: {topic}",
            f"webhook: {mask_webhook(route.webhook_url)}",
            f"note: {route.note or '-'}",
            f"created: {route.created_at or '-'}",
            f"updated: {route.updated_at or '-'}",
        ]
        details.update("\n".join(lines))

    @on(Button.Pressed, "#add-route")
    def _on_add_route(self) -> None:
        self.app.push_screen(RouteFormScreen(), self._handle_add_route)

    @on(Button.Pressed, "#edit-route")
    def _on_edit_route(self) -> None:
        route = self._current_route()
        if route is None:
            return
        self.app.push_screen(RouteFormScreen(route), self._handle_edit_route)

    @on(Button.Pressed, "#delete-route")
    def _on_delete_route(self) -> None:
        route = self._current_route()
        if route is None:
            return
        topic = "" if route.topic_id is None else f" topic {route.topic_id}"
        label = f"#{route.id}: group {route.group_id}{topic}"
        self.app.push_screen(DeleteRouteScreen(label), self._handle_delete_route)

    @on(Button.Pressed, "#refresh-routes")
    def _on_refresh(self) -> None:
        self.reload_routes()

    def _handle_add_route(self, payload: RouteInput | None) -> None:
        if payload is None or payload.group_id is None:
            return
        try:
            route_id = self.app.routes_store.add_route(
                payload.group_id,
                payload.topic_id,
                payload.webhook_url,
                payload.note,
            )
        except sqlite3.IntegrityError:
            self._set_error("A route for this group/topic already exists")
            return
        except sqlite3.Error as exc:
            self._set_error(f"database error: {exc}")
            return
        self._current_row_key = str(route_id)
        self.reload_routes()

    def _handle_edit_route(self, payload: RouteInput | None) -> None:
        route = self._current_route()
        if payload is None or payload.group_id is None or route is None:
            return
        try:
            self.app.routes_store.update_route(
                route.id,
                payload.group_id,
                payload.topic_id,
                payload.webhook_url,
                payload.note,
            )
        except sqlite3.IntegrityError:
            self._set_error("A route for this group/topic already exists")
            return
        except sqlite3.Error as exc:
            self._set_error(f"database error: {exc}")
            return
        self.reload_routes()

    def _handle_delete_route(self, confirmed: bool | None) -> None:
        route = self._current_route()
        if not confirmed or route is None:
            return
        try:
            self.app.routes_store.delete_route(route.id)
        except sqlite3.Error as exc:
            self._set_error(f"database error: {exc}")
            return
        self._current_row_key = None
        self.reload_routes()

    @staticmethod
    def _coerce_row_key(value: Any) -> str:
        if hasattr(value, "value"):
            return str(value.value)
        return str(value)

    def _set_error(self, message: str) -> None:
        self.query_one("#routes-error", Static).update(message)
