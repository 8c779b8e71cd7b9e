"""Connection lifecycle for the Telegram session.

States: DISCONNECTED -> AUTHENTICATING -> CONNECTED -> DISCONNECTED, with
EXHAUSTED as the terminal state once reconnect attempts run out. Reconnects
use a fixed delay and the attempt counter resets only on CONNECTED.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from core.config import ReconnectConfig
from core.errors import AuthorizationError, ReconnectExhaustedError
from core.ports import Authorizer, SessionPort

LOGGER = logging.getLogger(__name__)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    EXHAUSTED = "exhausted"


class ConnectionSupervisor:
    """Own the session and drive reconnect-with-fixed-delay on drops."""

    def __init__(
        self,
        session: SessionPort,
        config: ReconnectConfig,
        *,
        on_connected: Optional[Callable[[], Awaitable[None]]] = None,
        authorizer: Optional[Authorizer] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._session = session
        self._config = config
        self._on_connected = on_connected
        self._authorizer = authorizer
        self._sleep = sleep
        self._stopping = False
        self.state = SessionState.DISCONNECTED
        self.attempts = 0

    def is_ready(self) -> bool:
        """Liveness check for the health loop."""

        return self.state is SessionState.CONNECTED and self._session.is_connected()

    def _transition(self, state: SessionState) -> None:
        if state is not self.state:
            LOGGER.debug("Session state %s -> %s", self.state.value, state.value)
        self.state = state

    async def init(self) -> bool:
        """Run one authentication attempt; return True on CONNECTED.

        AuthorizationError is raised as-is: a missing session with no way to
        log in cannot be fixed by retrying.
        """

        if self.state is SessionState.EXHAUSTED:
            raise ReconnectExhaustedError("Reconnect attempts exhausted")

        self._transition(SessionState.AUTHENTICATING)
        try:
            await self._session.connect()
            if not await self._session.is_authorized():
                if self._authorizer is None or not self._config.interactive_login:
                    raise AuthorizationError("Telegram session is not authorized; run `telehook login` first")
                LOGGER.info("Session not authorized, starting interactive login")
                await self._authorizer()
                if not await self._session.is_authorized():
                    raise AuthorizationError("Interactive login did not authorize the session")
            if self._on_connected is not None:
                await self._on_connected()
        except AuthorizationError:
            self._transition(SessionState.DISCONNECTED)
            await self._safe_disconnect()
            raise
        except Exception as exc:
            LOGGER.error("Failed to connect to Telegram: %s", exc)
            self._transition(SessionState.DISCONNECTED)
            await self._safe_disconnect()
            return False

        self.attempts = 0
        self._transition(SessionState.CONNECTED)
        LOGGER.info("Connected to Telegram")
        return True

    async def run(self) -> None:
        """Keep the session alive until stop() or reconnect exhaustion."""

        connected = await self.init()
        while not self._stopping:
            if connected:
                try:
                    await self._session.wait_disconnected()
                except Exception:
                    LOGGER.warning("Telegram session dropped with an error", exc_info=True)
                if self._stopping:
                    break
                self._transition(SessionState.DISCONNECTED)
                LOGGER.warning("Telegram connection lost, attempting to reconnect")
            else:
                self.attempts += 1
                if self.attempts >= self._config.max_attempts:
                    self._transition(SessionState.EXHAUSTED)
                    LOGGER.error("Max reconnection attempts reached (%s)", self._config.max_attempts)
                    raise ReconnectExhaustedError(
                        f"Gave up after {self.attempts} failed connection attempts"
                    )

            LOGGER.info(
                "Reconnection attempt %s/%s in %.0fs",
                self.attempts + 1,
                self._config.max_attempts,
                self._config.delay_seconds,
            )
            await self._sleep(self._config.delay_seconds)
            if self._stopping:
                break
            connected = await self.init()

        self._transition(SessionState.DISCONNECTED)

    async def stop(self) -> None:
        """Stop reconnecting and close the session."""

        self._stopping = True
        await self._safe_disconnect()
        if self.state is not SessionState.EXHAUSTED:
            self._transition(SessionState.DISCONNECTED)

    async def _safe_disconnect(self) -> None:
        try:
            await self._session.disconnect()
        except Exception:
            LOGGER.warning("Error while disconnecting Telegram client", exc_info=True)
