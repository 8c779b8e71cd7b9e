"""Telegram client factory for telehook.

The connection supervisor owns connect/disconnect, so this only builds the
client. A TELEGRAM_SESSION string session takes precedence over the local
.session file so the bridge can run where the filesystem is ephemeral.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient
from telethon.sessions import StringSession


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    We read API_ID/API_HASH via python-dotenv to keep secrets out of the repo.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    string_session = os.getenv("TELEGRAM_SESSION")
    session_name = os.getenv("SESSION_NAME", "telehook")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    logger = logging.getLogger(__name__)
    if string_session:
        logger.info("Initializing Telegram client from string session")
        session = StringSession(string_session)
    else:
        logger.info("Initializing Telegram client with session file %s", session_name)
        session = session_name

    # Telethon's own reconnect loop is disabled; ConnectionSupervisor retries.
    # Sequential updates keep handlers in arrival order.
    return TelegramClient(
        session,
        int(api_id),
        api_hash,
        connection_retries=1,
        auto_reconnect=False,
        sequential_updates=True,
    )
