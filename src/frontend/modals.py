"""Modal dialogs for the Textual config panel."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Static

from core.models import RouteEntry

from .validators import RouteInput, parse_route_input


class UnsavedChangesScreen(ModalScreen[str]):
    """Prompt when exiting with unsaved settings."""

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Unsaved settings", classes="modal-title"),
            Static("Write config.json before exit?", classes="modal-body"),
            Horizontal(
                Button("Save", id="unsaved-save", variant="success"),
                Button("Discard", id="unsaved-discard", variant="error"),
                Button("Cancel", id="unsaved-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog modal-dialog--confirm",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        choices = {"unsaved-save": "save", "unsaved-discard": "discard"}
        self.dismiss(choices.get(event.button.id or "", "cancel"))


class ReloadConfirmScreen(ModalScreen[str]):
    """Prompt when reloading with unsaved settings."""

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Reload config.json?", classes="modal-title"),
            Static("Unsaved settings will be lost.", classes="modal-body"),
            Horizontal(
                Button("Save", id="reload-save"),
                Button("Reload", id="reload-reload", variant="warning"),
                Button("Cancel", id="reload-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog modal-dialog--confirm",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        choices = {"reload-save": "save", "reload-reload": "reload"}
        self.dismiss(choices.get(event.button.id or "", "cancel"))


class RouteFormScreen(ModalScreen[RouteInput | None]):
    """Add a route, or edit one when `route` is given."""

    def __init__(self, route: RouteEntry | None = None) -> None:
        super().__init__()
        self._route = route

    def compose(self) -> ComposeResult:
        route = self._route
        yield Container(
            Static("Edit route" if route else "Add route", classes="modal-title"),
            Static("", id="route-error", classes="modal-error"),
            Static("group_id (from `telehook discover`)", classes="form-label"),
            Input(
                value=str(route.group_id) if route else "",
                placeholder="-1001234567890",
                id="route-group",
            ),
            Static("topic_id (blank = whole chat)", classes="form-label"),
            Input(
                value="" if route is None or route.topic_id is None else str(route.topic_id),
                placeholder="",
                id="route-topic",
            ),
            Static("webhook_url", classes="form-label"),
            Input(
                value=route.webhook_url if route else "",
                placeholder="https://discord.com/api/webhooks/...",
                password=True,
                id="route-webhook",
            ),
            Static("note (optional)", classes="form-label"),
            Input(value=(route.note or "") if route else "", placeholder="Note", id="route-note"),
            Horizontal(
                Button("Save" if route else "Add", id="route-confirm", variant="success"),
                Button("Cancel", id="route-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog modal-dialog--form",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "route-cancel":
            self.dismiss(None)
            return
        if event.button.id != "route-confirm":
            return
        parsed = parse_route_input(
            self.query_one("#route-group", Input).value,
            self.query_one("#route-topic", Input).value,
            self.query_one("#route-webhook", Input).value,
            self.query_one("#route-note", Input).value,
        )
        if parsed.error:
            self.query_one("#route-error", Static).update(parsed.error)
            return
        self.dismiss(parsed)


class DeleteRouteScreen(ModalScreen[bool]):
    """Confirm deletion of a route."""

    def __init__(self, label: str) -> None:
        super().__init__()
        self._label = label

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Delete route?", classes="modal-title"),
            Static(self._label, classes="modal-body"),
            Horizontal(
                Button("Delete", id="delete-confirm", variant="error"),
                Button("Cancel", id="delete-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog modal-dialog--confirm",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "delete-confirm")
