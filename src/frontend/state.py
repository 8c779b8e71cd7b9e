"""State containers for config loading and dirty tracking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ConfigState:
    """config.json contents; edits are held here until saved."""

    data: dict[str, Any] | None = None
    dirty: bool = False
    error: str | None = None


@dataclass
class RoutesState:
    """Route table status. Route edits are written to SQLite immediately."""

    count: int = 0
    error: str | None = None
