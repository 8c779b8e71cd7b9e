"""Application entry point for the telehook bridge."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import re
import signal
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from art import tprint
from dotenv import load_dotenv
from telethon.tl.types import Channel, Chat, User

import settings
from adapters.sqlite_routes import SQLiteRouteStore
from adapters.telegram_mapper import ForumResolver, build_inbound
from adapters.telegram_session import TelethonSession
from adapters.telegram_source import TelethonSource
from adapters.webhook_dispatcher import WebhookDispatcher, is_webhook_url
from client import build_client
from core.coordinator import ForwardingCoordinator
from core.errors import AuthorizationError, DeliveryError, ReconnectExhaustedError, WatermarkError
from core.identity import IdentityResolver
from core.media import MediaPipeline
from core.models import InboundMessage, NormalizedMessage, RouteEntry
from core.origin import derive_group_id
from core.retry import NO_RETRY, RetryPolicy
from core.routing import RoutingResolver
from core.supervisor import ConnectionSupervisor, SessionState
from core.watermark import Watermarker
import get_session
from get_session import authorize

NAME = "TELEHOOK"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)

# Keeps the webhook id, hides the token.
_WEBHOOK_TOKEN = re.compile(r"(/api/webhooks/\d+/)[\w-]+")


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return _WEBHOOK_TOKEN.sub(r"\1***", message)


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/telehook.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO during reconnects.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _validated_routes(store: SQLiteRouteStore) -> list[RouteEntry]:
    """List routes at startup; a broken store is fatal here, unlike at runtime."""

    routes = store.list_routes()
    if not routes:
        LOGGER.warning("No routes configured. Add some with `telehook config`.")
        return []

    valid = []
    for route in routes:
        if is_webhook_url(route.webhook_url):
            valid.append(route)
        else:
            LOGGER.warning("Route %s has an invalid webhook URL", route.id)
    LOGGER.info("%s routes loaded, %s with valid webhooks", len(routes), len(valid))
    return valid


async def _announce(dispatcher: WebhookDispatcher, routes: list[RouteEntry]) -> None:
    message = NormalizedMessage(
        display_name=settings.STARTUP_USERNAME,
        avatar_source=None,
        content=settings.STARTUP_MESSAGE,
    )
    for route in routes:
        try:
            await dispatcher.deliver(route.webhook_url, message, NO_RETRY)
        except DeliveryError as error:
            LOGGER.warning("Startup message to route %s failed: %s", route.id, error)


def _check_health(supervisor: ConnectionSupervisor, coordinator: ForwardingCoordinator) -> bool:
    """Log one health report; return whether the session is ready."""

    if supervisor.is_ready():
        LOGGER.debug(
            "Healthy: queued=%s forwarded=%s dropped=%s failed=%s",
            coordinator.pending(),
            coordinator.forwarded,
            coordinator.dropped,
            coordinator.failed,
        )
        return True
    if supervisor.state in (SessionState.DISCONNECTED, SessionState.AUTHENTICATING):
        LOGGER.warning("Telegram session not ready, reconnect in progress (state=%s)", supervisor.state.value)
    else:
        # Nothing is going to recover this on its own.
        LOGGER.error(
            "Telegram session not ready and no reconnect pending (state=%s, queued=%s)",
            supervisor.state.value,
            coordinator.pending(),
        )
    return False


async def _health_loop(supervisor: ConnectionSupervisor, coordinator: ForwardingCoordinator) -> None:
    while True:
        await asyncio.sleep(settings.HEALTH_INTERVAL_SECONDS)
        _check_health(supervisor, coordinator)


async def _serve() -> None:
    store = SQLiteRouteStore(settings.DB_PATH)
    store.init_db()
    routes = _validated_routes(store)

    watermarker = Watermarker(settings.MEDIA.watermark_path)
    watermarker.load()
    os.makedirs(settings.MEDIA.temp_dir, exist_ok=True)
    os.makedirs(settings.IDENTITY.avatar_dir, exist_ok=True)

    client = build_client()
    session = TelethonSession(client)
    source = TelethonSource(client)
    forum_resolver = ForumResolver(client)

    async def translate(message) -> InboundMessage:
        return await build_inbound(message, forum_resolver)

    media = MediaPipeline(source, watermarker, settings.MEDIA)
    dispatcher = WebhookDispatcher(settings.DISPATCH)
    coordinator = ForwardingCoordinator(
        routing=RoutingResolver(store),
        identity=IdentityResolver(source, settings.IDENTITY),
        media=media,
        dispatcher=dispatcher,
        retry_policy=RetryPolicy(
            max_attempts=settings.DISPATCH.max_attempts,
            backoff_seconds=settings.DISPATCH.backoff_seconds,
        ),
        queue_size=settings.QUEUE_SIZE,
        translate=translate,
    )

    async def on_message(event) -> None:
        # Enqueue without awaiting lookups; the consumer translates in order.
        await coordinator.submit(event.message)

    async def on_connected() -> None:
        session.subscribe(on_message)
        LOGGER.info("Listening for incoming messages...")

    supervisor = ConnectionSupervisor(
        session,
        settings.RECONNECT,
        on_connected=on_connected,
        authorizer=lambda: authorize(client),
    )

    if settings.STARTUP_ANNOUNCE and routes:
        await _announce(dispatcher, routes)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop_event.set)

    consumer = asyncio.create_task(coordinator.run(), name="coordinator")
    health = asyncio.create_task(_health_loop(supervisor, coordinator), name="health")
    sweeper = asyncio.create_task(
        media.run_sweeper(settings.MEDIA.sweep_interval_seconds, settings.MEDIA.sweep_max_age_seconds),
        name="sweeper",
    )
    supervising = asyncio.create_task(supervisor.run(), name="supervisor")
    stopping = asyncio.create_task(stop_event.wait(), name="signals")

    try:
        done, _ = await asyncio.wait({supervising, stopping}, return_when=asyncio.FIRST_COMPLETED)
        if supervising in done:
            supervising.result()
        else:
            LOGGER.info("Shutdown requested")
    finally:
        # Stop intake, close the session, then release media and temp files.
        session.unsubscribe()
        await supervisor.stop()
        for task in (supervising, stopping, health, sweeper, consumer):
            task.cancel()
        await asyncio.gather(supervising, stopping, health, sweeper, consumer, return_exceptions=True)
        await dispatcher.close()
        watermarker.close()
        removed = media.sweep(0)
        LOGGER.info(
            "Stopped: forwarded=%s dropped=%s failed=%s, %s temp files removed",
            coordinator.forwarded,
            coordinator.dropped,
            coordinator.failed,
            removed,
        )


def _run() -> None:
    _print_banner()
    _configure_logging()
    LOGGER.info("Starting telehook")

    try:
        asyncio.run(_serve())
    except (ReconnectExhaustedError, AuthorizationError, WatermarkError) as error:
        LOGGER.error("Fatal: %s", error)
        sys.exit(1)
    except KeyboardInterrupt:
        LOGGER.info("Interrupted")
    except Exception:
        LOGGER.exception("Fatal error, shutting down")
        sys.exit(1)


def _setup() -> None:
    _print_banner()
    from frontend.app import ConfigPanelApp

    ConfigPanelApp().run()


def _dialog_type(entity: Any) -> str:
    if isinstance(entity, Channel):
        return "group" if getattr(entity, "megagroup", False) else "channel"
    if isinstance(entity, Chat):
        return "group"
    if isinstance(entity, User):
        return "user"
    return "chat"


def _dialog_title(dialog: Any) -> str:
    entity = getattr(dialog, "entity", None)
    title = getattr(entity, "title", None)
    if title:
        return str(title)
    name = getattr(dialog, "name", None)
    if name:
        return str(name)
    first = getattr(entity, "first_name", None)
    last = getattr(entity, "last_name", None)
    if first or last:
        return " ".join(part for part in [first, last] if part)
    entity_id = getattr(entity, "id", None)
    return str(entity_id or "unknown")


def _group_id_from_entity(entity: Any) -> Optional[int]:
    """Same group id the bridge derives from a message in this dialog."""

    entity_id = getattr(entity, "id", None)
    if isinstance(entity, Channel):
        return derive_group_id(entity_id, None, None)
    if isinstance(entity, Chat):
        return derive_group_id(None, entity_id, None)
    if isinstance(entity, User):
        return derive_group_id(None, None, entity_id)
    return None


async def _list_dialogs(client, include_users: bool = False) -> None:
    count = 0
    async for dialog in client.iter_dialogs():
        entity = dialog.entity
        if isinstance(entity, User) and not include_users:
            continue
        group_id = _group_id_from_entity(entity)
        if group_id is None:
            continue
        count += 1
        forum = " | forum" if getattr(entity, "forum", False) else ""
        print(f"{count}. {_dialog_type(entity)} | {_dialog_title(dialog)} | group_id={group_id}{forum}")

    if not count:
        print("No dialogs found.")


def _discover(include_users: bool = False) -> None:
    _print_banner()

    async def _run_discover() -> None:
        client = build_client()
        await client.connect()
        try:
            if not await client.is_user_authorized():
                print("Authorization required. Starting login...")
                await authorize(client)
            await _list_dialogs(client, include_users=include_users)
        finally:
            await client.disconnect()

    asyncio.run(_run_discover())


def _login() -> None:
    _print_banner()

    asyncio.run(get_session.main())


def _watermark(input_path: str, output_path: Optional[str]) -> None:
    watermarker = Watermarker(settings.MEDIA.watermark_path)
    try:
        watermarker.load()
    except WatermarkError as error:
        print(f"Watermark unavailable: {error}")
        sys.exit(1)
    if not os.path.exists(input_path):
        print(f"Input file not found: {input_path}")
        sys.exit(1)

    result = watermarker.apply(input_path, output_path)
    if result == input_path:
        print("Image format not supported, nothing written.")
        sys.exit(1)
    print(f"Watermarked image written to {result}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="telehook")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the bridge")
    subparsers.add_parser("config", help="Launch the config TUI")
    discover = subparsers.add_parser(
        "discover",
        help="List dialogs with the group id to use when adding a route.",
    )
    discover.add_argument("--users", action="store_true", help="Include private chats")
    subparsers.add_parser("login", help="Log in once and print a string session")
    watermark = subparsers.add_parser("watermark", help="Apply the watermark to a local image")
    watermark.add_argument("input", help="Path to the source image")
    watermark.add_argument("-o", "--output", help="Where to write the result")

    args = parser.parse_args(argv)
    if args.command == "config":
        _setup()
        return
    if args.command == "discover":
        _discover(include_users=args.users)
        return
    if args.command == "login":
        _login()
        return
    if args.command == "watermark":
        _watermark(args.input, args.output)
        return
    _run()


if __name__ == "__main__":
    main()
