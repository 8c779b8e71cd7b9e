from __future__ import annotations

import pytest

import client


class DummyTelegramClient:
    def __init__(self, session, api_id, api_hash, **kwargs) -> None:
        self.session = session
        self.api_id = api_id
        self.api_hash = api_hash
        self.kwargs = kwargs


def _env(monkeypatch, **values) -> None:
    monkeypatch.setattr(client, "load_dotenv", lambda: None)
    monkeypatch.setattr(client, "TelegramClient", DummyTelegramClient)
    for key in ("API_ID", "API_HASH", "TELEGRAM_SESSION", "SESSION_NAME"):
        monkeypatch.delenv(key, raising=False)
    for key, value in values.items():
        monkeypatch.setenv(key, value)


def test_updates_are_handled_in_arrival_order(monkeypatch) -> None:
    _env(monkeypatch, API_ID="123", API_HASH="hash")

    built = client.build_client()

    assert built.kwargs["sequential_updates"] is True
    assert built.kwargs["auto_reconnect"] is False
    assert (built.session, built.api_id) == ("telehook", 123)


def test_string_session_takes_precedence(monkeypatch) -> None:
    _env(monkeypatch, API_ID="123", API_HASH="hash", TELEGRAM_SESSION="abc", SESSION_NAME="custom")
    monkeypatch.setattr(client, "StringSession", lambda value: ("string", value))

    assert client.build_client().session == ("string", "abc")


def test_blank_string_session_falls_back_to_session_file(monkeypatch) -> None:
    _env(monkeypatch, API_ID="123", API_HASH="hash", TELEGRAM_SESSION="", SESSION_NAME="custom")

    assert client.build_client().session == "custom"


def test_missing_credentials_fail_fast(monkeypatch) -> None:
    _env(monkeypatch, API_ID="123")

    with pytest.raises(RuntimeError):
        client.build_client()
