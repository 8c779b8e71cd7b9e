"""Retry policy for webhook delivery.

The coordinator owns the policy; the dispatcher only asks it whether a failed
attempt should be repeated and how long to wait first.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.errors import DeliveryError

RETRYABLE_STATUSES = {408, 429}


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded attempts with linearly increasing backoff."""

    max_attempts: int = 3
    backoff_seconds: float = 2.0

    def is_retryable(self, error: DeliveryError) -> bool:
        # Transport failures (timeouts, resets) carry no status.
        if error.status is None:
            return True
        return error.status in RETRYABLE_STATUSES or error.status >= 500

    def should_retry(self, error: DeliveryError, attempt: int) -> bool:
        return attempt < self.max_attempts and self.is_retryable(error)

    def delay_for(self, attempt: int) -> float:
        return self.backoff_seconds * attempt


NO_RETRY = RetryPolicy(max_attempts=1)
