from __future__ import annotations

import logging

from app import _RedactingFormatter


def _format(formatter: logging.Formatter, message: str, *args) -> str:
    record = logging.LogRecord("telehook", logging.INFO, __file__, 1, message, args, None)
    return formatter.format(record)


def test_secrets_are_replaced() -> None:
    formatter = _RedactingFormatter(["s3cr3t-hash"], fmt="%(message)s")
    assert _format(formatter, "api hash is %s", "s3cr3t-hash") == "api hash is ***"


def test_webhook_tokens_are_hidden_but_id_kept() -> None:
    formatter = _RedactingFormatter([], fmt="%(message)s")
    line = _format(formatter, "posting to %s", "https://discord.com/api/webhooks/123456/abc-DEF_ghi")
    assert line == "posting to https://discord.com/api/webhooks/123456/***"
