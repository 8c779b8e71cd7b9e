"""Exception types raised by the core pipeline."""

from __future__ import annotations

from typing import Optional


class TelehookError(Exception):
    """Base class for all telehook errors."""


class DeliveryError(TelehookError):
    """A webhook call failed; status is None for transport-level failures."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class WatermarkError(TelehookError):
    """The watermark asset is missing or unreadable."""


class AuthorizationError(TelehookError):
    """The stored Telegram session is not authorized."""


class ReconnectExhaustedError(TelehookError):
    """The supervisor gave up reconnecting; the process should exit."""
