"""Settings tab implementation.

Each config.json section gets a form built from SECTION_FIELDS. Nested keys
use dots ("file.path") and are written back into sub-objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from textual import on
from textual.containers import Container, Horizontal, ScrollableContainer, Vertical
from textual.widgets import ContentSwitcher, DataTable, Input, Select, Static, Switch, TextArea

from ..validators import parse_number

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(frozen=True)
class Field:
    key: str
    kind: str  # int, float, str, optional_str, bool, level, lines
    default: Any
    placeholder: str = ""


SECTIONS = [
    ("media", "Media", "Watermark, size ceiling, compression"),
    ("identity", "Identity", "Avatar cache and hosting"),
    ("dispatch", "Dispatch", "Webhook pacing, timeouts, retries"),
    ("connection", "Connection", "Reconnect and health checks"),
    ("startup", "Startup", "Online announcement"),
    ("routing", "Routing", "Route database location"),
    ("logging", "Logging", "Console/file logging + redaction"),
]

SECTION_FIELDS: dict[str, list[Field]] = {
    "media": [
        Field("temp_dir", "str", "temp"),
        Field("watermark_path", "str", "assets/watermark.png"),
        Field("max_upload_bytes", "int", 25 * 1024 * 1024),
        Field("target_bytes", "int", 8 * 1024 * 1024),
        Field("quality_start", "int", 85),
        Field("quality_step", "int", 15),
        Field("quality_floor", "int", 20),
        Field("max_width", "int", 1920),
        Field("max_height", "int", 1080),
        Field("sweep_interval_seconds", "float", 3600),
        Field("sweep_max_age_seconds", "float", 3600),
    ],
    "identity": [
        Field("avatar_dir", "str", "avatars"),
        Field("default_avatar", "str", "assets/default_avatar.png"),
        Field("avatar_timeout_seconds", "float", 10),
        Field("avatar_base_url", "optional_str", None, "https://example.com/avatars"),
        Field("avatar_cache_ttl_seconds", "float", 86400),
    ],
    "dispatch": [
        Field("min_interval_seconds", "float", 1.0),
        Field("text_timeout_seconds", "float", 30),
        Field("upload_timeout_seconds", "float", 60),
        Field("max_attempts", "int", 3),
        Field("backoff_seconds", "float", 2),
    ],
    "connection": [
        Field("max_reconnect_attempts", "int", 10),
        Field("reconnect_delay_seconds", "float", 5),
        Field("health_interval_seconds", "float", 30),
        Field("interactive_login", "bool", False),
        Field("queue_size", "int", 0),
    ],
    "startup": [
        Field("announce", "bool", False),
        Field("message", "str", "Telehook bridge is online."),
        Field("username", "str", "Telehook"),
    ],
    "routing": [
        Field("db_path", "str", "telehook.db"),
    ],
    "logging": [
        Field("enabled", "bool", False),
        Field("level", "level", "INFO"),
        Field("console", "bool", True),
        Field("file.enabled", "bool", False),
        Field("file.path", "str", "logs/telehook.log"),
        Field("file.max_bytes", "int", 5 * 1024 * 1024),
        Field("file.backup_count", "int", 5),
        Field("redact.enabled", "bool", False),
        Field("redact.patterns", "lines", []),
    ],
}


def field_widget_id(section: str, field: Field) -> str:
    return f"{section}-{field.key.replace('.', '-').replace('_', '-')}"


def get_nested(section: dict[str, Any], key: str, default: Any) -> Any:
    node: Any = section
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def set_nested(section: dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    node = section
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


class SettingsTab(Container):
    """Settings tab for editing the non-route sections of config.json."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._loading_form = False
        self._fields: dict[str, tuple[str, Field]] = {}
        for section, fields in SECTION_FIELDS.items():
            for field in fields:
                self._fields[field_widget_id(section, field)] = (section, field)

    def compose(self):
        with Vertical(id="settings-panel"):
            with Horizontal(id="settings-body"):
                with Container(id="settings-left"):
                    yield DataTable(id="settings-table", cursor_type="row")
                with Container(id="settings-right"):
                    with ContentSwitcher(id="settings-forms"):
                        for section, label, _ in SECTIONS:
                            with ScrollableContainer(id=f"settings-{section}"):
                                yield Static(label, classes="settings-title")
                                for field in SECTION_FIELDS[section]:
                                    yield Static(field.key, classes="form-label")
                                    yield self._build_widget(section, field)
                                yield Static("", id=f"{section}-error", classes="settings-error")

    @staticmethod
    def _build_widget(section: str, field: Field):
        widget_id = field_widget_id(section, field)
        if field.kind == "bool":
            return Switch(id=widget_id)
        if field.kind == "level":
            return Select([(level, level) for level in LOG_LEVELS], id=widget_id, allow_blank=False)
        if field.kind == "lines":
            return TextArea(id=widget_id)
        placeholder = field.placeholder or ("" if field.default is None else str(field.default))
        return Input(placeholder=placeholder, id=widget_id)

    def on_mount(self) -> None:
        table = self.query_one("#settings-table", DataTable)
        table.add_column("section", key="section", width=14)
        table.add_column("description", key="description", width=36)
        for key, label, description in SECTIONS:
            table.add_row(label, description, key=key)
        table.zebra_stripes = True
        self._select_section(SECTIONS[0][0])
        self.reload_from_config()

    def reload_from_config(self) -> None:
        self._loading_form = True
        try:
            for widget_id, (section, field) in self._fields.items():
                value = get_nested(self._get_section(section), field.key, field.default)
                self._load_widget(widget_id, field, value)
            for section, _, _ in SECTIONS:
                self._set_error(section, "")
        finally:
            self._loading_form = False

    def _load_widget(self, widget_id: str, field: Field, value: Any) -> None:
        selector = f"#{widget_id}"
        if field.kind == "bool":
            self.query_one(selector, Switch).value = bool(value)
        elif field.kind == "level":
            level = str(value).upper()
            self.query_one(selector, Select).value = level if level in LOG_LEVELS else "INFO"
        elif field.kind == "lines":
            lines = value if isinstance(value, list) else []
            self.query_one(selector, TextArea).text = "\n".join(str(line) for line in lines)
        else:
            self.query_one(selector, Input).value = "" if value is None else str(value)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        row_key = event.row_key
        self._select_section(str(getattr(row_key, "value", row_key)))

    def _select_section(self, section: str) -> None:
        self.query_one("#settings-forms", ContentSwitcher).current = f"settings-{section}"

    def _get_section(self, key: str) -> dict[str, Any]:
        data = self.app.config_state.data or {}
        section = data.get(key)
        if isinstance(section, dict):
            return section
        return {}

    def _store(self, widget_id: Optional[str], value: Any) -> None:
        if self._loading_form or widget_id not in self._fields:
            return
        section_key, field = self._fields[widget_id]
        section = self._get_section(section_key)
        set_nested(section, field.key, value)
        self.app.update_config_section(section_key, section)

    @on(Input.Changed)
    def _on_input_changed(self, event: Input.Changed) -> None:
        widget_id = event.input.id
        if self._loading_form or widget_id not in self._fields:
            return
        section, field = self._fields[widget_id]
        raw = event.value
        if field.kind in {"int", "float"}:
            parsed = parse_number(raw, allow_float=field.kind == "float")
            if parsed is None:
                if raw.strip():
                    self._set_error(section, f"{field.key}: enter a non-negative number")
                return
            self._set_error(section, "")
            self._store(widget_id, parsed)
        elif field.kind == "optional_str":
            self._store(widget_id, raw.strip() or None)
        else:
            self._store(widget_id, raw)

    @on(Switch.Changed)
    def _on_switch_changed(self, event: Switch.Changed) -> None:
        self._store(event.switch.id, bool(event.value))

    @on(Select.Changed)
    def _on_select_changed(self, event: Select.Changed) -> None:
        if event.value is Select.BLANK:
            return
        self._store(event.select.id, event.value)

    @on(TextArea.Changed)
    def _on_text_area_changed(self, event: TextArea.Changed) -> None:
        lines = [line.strip() for line in event.text_area.text.splitlines() if line.strip()]
        self._store(event.text_area.id, lines)

    def _set_error(self, section: str, message: str) -> None:
        self.query_one(f"#{section}-error", Static).update(message)
