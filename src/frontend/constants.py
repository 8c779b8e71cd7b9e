"""Shared constants for the Textual UI."""

from __future__ import annotations

from pathlib import Path
from typing import Any

TELEGRAM_BLUE = "#2AABEE"
DISCORD_BLURPLE = "#5865F2"
PROJECT_ROOT = Path(__file__).resolve().parents[2]
CONFIG_PATH = PROJECT_ROOT / "config.json"
DEFAULT_DB_NAME = "telehook.db"


def db_path_from_config(data: dict[str, Any] | None) -> Path:
    """Route database path, resolved the same way settings.py does."""

    routing = (data or {}).get("routing")
    raw = routing.get("db_path") if isinstance(routing, dict) else None
    path = Path(raw or DEFAULT_DB_NAME)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path
