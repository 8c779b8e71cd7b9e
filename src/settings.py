"""Static configuration for telehook.

All user-editable settings (media limits, identity, dispatch pacing,
connection) live in a single JSON file for quick edits without touching
Python. Routes live in SQLite so they can change while the bridge runs.
"""

import json
import os

from core.config import DispatchConfig, IdentityConfig, MediaConfig, ReconnectConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _project_path(path: str) -> str:
    """Resolve relative paths against the project root, not the cwd."""

    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Route table shared by the bridge and the config panel.
_routing = _CONFIG.get("routing", {})
DB_PATH = _project_path(_routing.get("db_path", "telehook.db"))

_media = _CONFIG.get("media", {})
MEDIA = MediaConfig(
    temp_dir=_project_path(_media.get("temp_dir", "temp")),
    watermark_path=_project_path(_media.get("watermark_path", "assets/watermark.png")),
    max_upload_bytes=int(_media.get("max_upload_bytes", MediaConfig.max_upload_bytes)),
    target_bytes=int(_media.get("target_bytes", MediaConfig.target_bytes)),
    quality_start=int(_media.get("quality_start", MediaConfig.quality_start)),
    quality_step=int(_media.get("quality_step", MediaConfig.quality_step)),
    quality_floor=int(_media.get("quality_floor", MediaConfig.quality_floor)),
    max_width=int(_media.get("max_width", MediaConfig.max_width)),
    max_height=int(_media.get("max_height", MediaConfig.max_height)),
    sweep_interval_seconds=float(_media.get("sweep_interval_seconds", MediaConfig.sweep_interval_seconds)),
    sweep_max_age_seconds=float(_media.get("sweep_max_age_seconds", MediaConfig.sweep_max_age_seconds)),
)

_identity = _CONFIG.get("identity", {})
IDENTITY = IdentityConfig(
    avatar_dir=_project_path(_identity.get("avatar_dir", "avatars")),
    default_avatar=_project_path(_identity.get("default_avatar", "assets/default_avatar.png")),
    avatar_timeout_seconds=float(_identity.get("avatar_timeout_seconds", IdentityConfig.avatar_timeout_seconds)),
    # Public URL of the avatar directory; when unset avatars are inlined.
    avatar_base_url=_identity.get("avatar_base_url") or None,
    avatar_cache_ttl_seconds=float(
        _identity.get("avatar_cache_ttl_seconds", IdentityConfig.avatar_cache_ttl_seconds)
    ),
)

_dispatch = _CONFIG.get("dispatch", {})
DISPATCH = DispatchConfig(
    min_interval_seconds=float(_dispatch.get("min_interval_seconds", DispatchConfig.min_interval_seconds)),
    text_timeout_seconds=float(_dispatch.get("text_timeout_seconds", DispatchConfig.text_timeout_seconds)),
    upload_timeout_seconds=float(_dispatch.get("upload_timeout_seconds", DispatchConfig.upload_timeout_seconds)),
    max_upload_bytes=MEDIA.max_upload_bytes,
    max_attempts=int(_dispatch.get("max_attempts", DispatchConfig.max_attempts)),
    backoff_seconds=float(_dispatch.get("backoff_seconds", DispatchConfig.backoff_seconds)),
)

_connection = _CONFIG.get("connection", {})
RECONNECT = ReconnectConfig(
    max_attempts=int(_connection.get("max_reconnect_attempts", ReconnectConfig.max_attempts)),
    delay_seconds=float(_connection.get("reconnect_delay_seconds", ReconnectConfig.delay_seconds)),
    interactive_login=bool(_connection.get("interactive_login", False)),
)
HEALTH_INTERVAL_SECONDS = float(_connection.get("health_interval_seconds", 30))
# 0 means unbounded, matching asyncio.Queue.
QUEUE_SIZE = int(_connection.get("queue_size", 0))

# Optional "bridge is online" post sent to every route at startup.
_startup = _CONFIG.get("startup", {})
STARTUP_ANNOUNCE = bool(_startup.get("announce", False))
STARTUP_MESSAGE = _startup.get("message", "Telehook bridge is online.")
STARTUP_USERNAME = _startup.get("username", "Telehook")

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
