from __future__ import annotations

import logging

from app import _check_health
from core.supervisor import SessionState


class DummySupervisor:
    def __init__(self, state: SessionState, ready: bool) -> None:
        self.state = state
        self._ready = ready

    def is_ready(self) -> bool:
        return self._ready


class DummyCoordinator:
    forwarded = 3
    dropped = 1
    failed = 0

    def pending(self) -> int:
        return 2


def _levels(caplog) -> list[int]:
    return [record.levelno for record in caplog.records if record.name == "app"]


def test_ready_session_is_reported_quietly(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="app")
    assert _check_health(DummySupervisor(SessionState.CONNECTED, True), DummyCoordinator()) is True
    assert _levels(caplog) == [logging.DEBUG]


def test_reconnecting_session_is_a_warning(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="app")
    assert _check_health(DummySupervisor(SessionState.DISCONNECTED, False), DummyCoordinator()) is False
    assert _levels(caplog) == [logging.WARNING]


def test_stuck_session_is_an_error(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="app")
    for state in (SessionState.CONNECTED, SessionState.EXHAUSTED):
        caplog.clear()
        assert _check_health(DummySupervisor(state, False), DummyCoordinator()) is False
        assert _levels(caplog) == [logging.ERROR]
