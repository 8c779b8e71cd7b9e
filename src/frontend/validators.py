"""Validation helpers for route and config editing."""

from __future__ import annotations

from dataclasses import dataclass

from adapters.webhook_dispatcher import is_webhook_url


@dataclass
class RouteInput:
    group_id: int | None
    topic_id: int | None
    webhook_url: str
    note: str | None
    error: str | None = None


def parse_route_input(group_id: str, topic_id: str, webhook_url: str, note: str = "") -> RouteInput:
    """Validate the route form; the first problem found is reported."""

    group_raw = group_id.strip()
    topic_raw = topic_id.strip()
    url = webhook_url.strip()
    note_value = note.strip() or None

    if not group_raw:
        return RouteInput(None, None, url, note_value, "group_id is required")
    if not _is_int(group_raw):
        return RouteInput(None, None, url, note_value, "group_id must be an integer")
    group = int(group_raw)
    if group == 0:
        return RouteInput(None, None, url, note_value, "group_id cannot be 0")

    topic: int | None = None
    if topic_raw:
        if not topic_raw.isdigit() or int(topic_raw) == 0:
            return RouteInput(group, None, url, note_value, "topic_id must be a positive integer")
        topic = int(topic_raw)

    if not url:
        return RouteInput(group, topic, url, note_value, "webhook_url is required")
    if not is_webhook_url(url):
        return RouteInput(group, topic, url, note_value, "webhook_url is not a Discord webhook URL")

    return RouteInput(group, topic, url, note_value)


def parse_number(value: str, *, allow_float: bool = False) -> int | float | None:
    """Parse a non-negative number from an input field, or None."""

    stripped = value.strip()
    if not stripped:
        return None
    try:
        parsed: int | float = float(stripped) if allow_float else int(stripped)
    except ValueError:
        return None
    if parsed < 0:
        return None
    return parsed


def _is_int(value: str) -> bool:
    try:
        int(value)
    except ValueError:
        return False
    return True
