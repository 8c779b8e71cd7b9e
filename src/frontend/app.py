"""Main Textual app for the Telehook config panel."""

from __future__ import annotations

import json
import sqlite3
from typing import Any

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Center, Container, Horizontal, Vertical
from textual.widgets import Button, ContentSwitcher, Footer, Static, Tab, Tabs

from adapters.sqlite_routes import SQLiteRouteStore

from .constants import CONFIG_PATH, DISCORD_BLURPLE, TELEGRAM_BLUE, db_path_from_config
from .modals import ReloadConfirmScreen, UnsavedChangesScreen
from .state import ConfigState, RoutesState
from .tabs.routes import RoutesTab
from .tabs.settings import SettingsTab


class ConfigPanelApp(App):
    """Config panel: routes live in SQLite, settings in config.json."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.config_state = ConfigState()
        self.routes_state = RoutesState()
        self.routes_store: SQLiteRouteStore | None = None

    BINDINGS = [
        ("ctrl+s", "save_config", "Save"),
        ("ctrl+r", "reload_config", "Reload"),
        ("q", "request_quit", "Quit"),
        ("ctrl+c", "request_quit", "Quit"),
    ]

    CSS_PATH = "app.tcss"

    def compose(self) -> ComposeResult:
        with Container(id="header"):
            with Horizontal(id="header-row"):
                with Vertical(id="header-left"):
                    yield Static(self._title_text(), id="title")
                    yield Static("Telegram -> Discord webhook bridge", classes="subtle")
                with Vertical(id="header-right"):
                    yield Static("", id="header-db", classes="subtle")
                    yield Static("", id="header-routes", classes="subtle")
                    yield Static("", id="header-status")
                    yield Horizontal(
                        Button("Save", id="save-btn"),
                        Button("Reload", id="reload-btn"),
                        id="header-actions",
                    )

        with Container(id="tabs-bar"):
            with Center(id="tabs-center"):
                yield Tabs(
                    Tab("Routes", id="routes"),
                    Tab("Settings", id="settings"),
                    id="tabs",
                )

        with ContentSwitcher(id="content"):
            yield RoutesTab(id="routes")
            yield SettingsTab(id="settings")
        yield Footer()

    def on_mount(self) -> None:
        self._load_config()
        self._set_active_tab("routes")

    def on_tabs_tab_activated(self, event: Tabs.TabActivated) -> None:
        tab_id = event.tab.id or ""
        if not tab_id:
            label = event.tab.label
            if hasattr(label, "plain"):
                label = label.plain
            tab_id = str(label).strip().lower()
        self._set_active_tab(tab_id)

    def _set_active_tab(self, tab_id: str) -> None:
        switcher = self.query_one("#content", ContentSwitcher)
        switcher.current = tab_id

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "save-btn":
            self.action_save_config()
        elif event.button.id == "reload-btn":
            self.action_reload_config()

    def action_save_config(self) -> None:
        self._save_config()

    def action_reload_config(self) -> None:
        if self.config_state.dirty:
            self.push_screen(ReloadConfirmScreen(), self._handle_reload_choice)
        else:
            self._load_config()

    def action_request_quit(self) -> None:
        if self.config_state.dirty:
            self.push_screen(UnsavedChangesScreen(), self._handle_exit_choice)
        else:
            self.exit()

    def _handle_exit_choice(self, choice: str | None) -> None:
        if choice == "save":
            if self._save_config():
                self.exit()
        elif choice == "discard":
            self.exit()

    def _handle_reload_choice(self, choice: str | None) -> None:
        if choice == "save":
            if self._save_config():
                self._load_config()
        elif choice == "reload":
            self._load_config()

    def _load_config(self) -> None:
        try:
            loaded = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
            if not isinstance(loaded, dict):
                raise ValueError("config root must be an object")
            self.config_state.data = loaded
            self.config_state.error = None
        except FileNotFoundError:
            self.config_state.data = None
            self.config_state.error = "config.json missing"
        except json.JSONDecodeError as exc:
            self.config_state.data = None
            self.config_state.error = f"config.json error: {exc.msg}"
        except ValueError as exc:
            self.config_state.data = None
            self.config_state.error = str(exc)
        self.config_state.dirty = False
        self._open_routes_store()
        self._refresh_header()
        self.query_one(SettingsTab).reload_from_config()
        self.query_one(RoutesTab).reload_routes()

    def _open_routes_store(self) -> None:
        store = SQLiteRouteStore(str(db_path_from_config(self.config_state.data)))
        try:
            store.init_db()
        except sqlite3.Error as exc:
            self.routes_store = None
            self.routes_state.error = str(exc)
            return
        self.routes_store = store

    def _save_config(self) -> bool:
        if self.config_state.data is None:
            self.config_state.error = "Nothing to save"
            self._refresh_header()
            return False
        try:
            CONFIG_PATH.write_text(
                json.dumps(self.config_state.data, indent=2, ensure_ascii=True) + "\n",
                encoding="utf-8",
            )
            self.config_state.dirty = False
            self.config_state.error = None
            self._refresh_header()
            return True
        except OSError as exc:
            self.config_state.error = f"save failed: {exc.strerror or exc}"
            self._refresh_header()
            return False

    def mark_dirty(self) -> None:
        self.config_state.dirty = True
        self._refresh_header()

    def set_routes_status(self, count: int, error: str | None) -> None:
        self.routes_state.count = count
        self.routes_state.error = error
        self._refresh_header()

    def _refresh_header(self) -> None:
        status = self.query_one("#header-status", Static)
        save_btn = self.query_one("#save-btn", Button)

        if self.routes_store is not None:
            self.query_one("#header-db", Static).update(f"db: {self.routes_store.db_path}")
        routes_label = (
            "routes: error" if self.routes_state.error else f"routes: {self.routes_state.count}"
        )
        self.query_one("#header-routes", Static).update(routes_label)

        status.remove_class("status-loaded", "status-modified", "status-error")
        if self.config_state.error:
            status.update(f"config: {self.config_state.error}")
            status.add_class("status-error")
        elif self.config_state.dirty:
            status.update("config: modified *")
            status.add_class("status-modified")
        else:
            status.update("config: loaded")
            status.add_class("status-loaded")

        save_btn.disabled = self.config_state.data is None or not self.config_state.dirty

    def update_config_section(self, section: str, value: Any) -> None:
        """Update a config section in memory and mark dirty."""
        if self.config_state.data is None:
            self.config_state.data = {}
        self.config_state.data[section] = value
        self.mark_dirty()

    @staticmethod
    def _title_text() -> Text:
        return Text.assemble(
            ("TELE", TELEGRAM_BLUE),
            ("HOOK", DISCORD_BLURPLE),
            (" > Config Panel", "bold"),
        )
