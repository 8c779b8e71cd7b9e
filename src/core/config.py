"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

MIB = 1024 * 1024


@dataclass(frozen=True)
class MediaConfig:
    """Limits and quality steps for attachment processing."""

    temp_dir: str
    watermark_path: str
    max_upload_bytes: int = 25 * MIB
    target_bytes: int = 8 * MIB
    quality_start: int = 85
    quality_step: int = 15
    quality_floor: int = 20
    max_width: int = 1920
    max_height: int = 1080
    sweep_interval_seconds: float = 3600.0
    sweep_max_age_seconds: float = 3600.0


@dataclass(frozen=True)
class IdentityConfig:
    """Where avatars are cached and how long a fetch may take."""

    avatar_dir: str
    default_avatar: str
    avatar_timeout_seconds: float = 10.0
    avatar_base_url: Optional[str] = None
    # 0 keeps cached avatars forever.
    avatar_cache_ttl_seconds: float = 86400.0


@dataclass(frozen=True)
class DispatchConfig:
    """Pacing, timeouts, and retry settings for webhook delivery."""

    min_interval_seconds: float = 1.0
    text_timeout_seconds: float = 30.0
    upload_timeout_seconds: float = 60.0
    max_upload_bytes: int = 25 * MIB
    max_attempts: int = 3
    backoff_seconds: float = 2.0


@dataclass(frozen=True)
class ReconnectConfig:
    """Fixed-delay reconnect bounds for the Telegram session."""

    max_attempts: int = 10
    delay_seconds: float = 5.0
    interactive_login: bool = False
