"""Discord webhook delivery adapter (aiohttp).

Implements the core DispatcherPort: payload rendering, global pacing, retry
via the caller's RetryPolicy, and unconditional cleanup of uploaded files.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import mimetypes
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import aiohttp
from PIL import Image, UnidentifiedImageError

from core.config import DispatchConfig
from core.errors import DeliveryError
from core.models import AttachmentKind, NormalizedMessage, ProcessedAttachment
from core.retry import NO_RETRY, RetryPolicy

LOGGER = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 2000
MAX_USERNAME_LENGTH = 80
TRUNCATION_MARKER = "\n[truncated]"
DEFAULT_USERNAME = "Unknown User"
SUCCESS_STATUSES = {200, 204}

WEBHOOK_URL_PATTERN = re.compile(r"^https://(?:canary\.|ptb\.)?discord(?:app)?\.com/api/webhooks/\d+/[\w-]+$")

_KIND_CONTENT_TYPES = {
    AttachmentKind.IMAGE: "image/jpeg",
    AttachmentKind.VIDEO: "video/mp4",
    AttachmentKind.AUDIO: "audio/ogg",
    AttachmentKind.DOCUMENT: "application/octet-stream",
}


def is_webhook_url(url: str) -> bool:
    return bool(WEBHOOK_URL_PATTERN.match((url or "").strip()))


def truncate_content(content: str, limit: int = MAX_CONTENT_LENGTH) -> str:
    """Clip content to the limit, ending with a visible marker when clipped."""

    if len(content) <= limit:
        return content
    return content[: limit - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def _image_mime_type(path: str) -> str:
    try:
        with Image.open(path) as image:
            mime = image.get_format_mimetype()
    except (OSError, UnidentifiedImageError):
        mime = None
    return mime or mimetypes.guess_type(path)[0] or "application/octet-stream"


def avatar_reference(avatar_source: Optional[str]) -> Optional[str]:
    """Return a value usable as avatar_url.

    Remote URLs pass through; local files are inlined as a base64 data URI
    because webhooks cannot take an avatar upload.
    """

    if not avatar_source:
        return None
    if avatar_source.startswith(("http://", "https://", "data:")):
        return avatar_source
    try:
        with open(avatar_source, "rb") as handle:
            encoded = base64.b64encode(handle.read()).decode("ascii")
    except OSError:
        LOGGER.warning("Avatar file unreadable: %s", avatar_source)
        return None
    return f"data:{_image_mime_type(avatar_source)};base64,{encoded}"


def build_payload(message: NormalizedMessage) -> dict[str, Any]:
    username = (message.display_name or "").strip() or DEFAULT_USERNAME
    payload: dict[str, Any] = {
        "username": username[:MAX_USERNAME_LENGTH],
        "content": truncate_content(message.content or ""),
    }
    avatar_url = avatar_reference(message.avatar_source)
    if avatar_url:
        payload["avatar_url"] = avatar_url
    return payload


@dataclass(frozen=True)
class UploadFile:
    """One binary part of a multipart webhook request."""

    field_name: str
    filename: str
    path: str
    content_type: str


def select_upload_files(
    attachments: Iterable[ProcessedAttachment],
    max_bytes: int,
) -> list[UploadFile]:
    """Pick the attachments that can be uploaded, numbering parts in order."""

    files: list[UploadFile] = []
    for attachment in attachments:
        if not os.path.exists(attachment.local_path):
            LOGGER.warning("Attachment missing on disk, skipping: %s", attachment.filename)
            continue
        size = os.path.getsize(attachment.local_path)
        if size > max_bytes:
            LOGGER.warning("Attachment %s exceeds upload limit (%s bytes), skipping", attachment.filename, size)
            continue
        content_type = mimetypes.guess_type(attachment.filename)[0] or _KIND_CONTENT_TYPES[attachment.kind]
        files.append(
            UploadFile(
                field_name=f"files[{len(files)}]",
                filename=attachment.filename,
                path=attachment.local_path,
                content_type=content_type,
            )
        )
    return files


def build_form(payload: dict[str, Any], files: Iterable[UploadFile]) -> aiohttp.FormData:
    form = aiohttp.FormData()
    form.add_field("payload_json", json.dumps(payload), content_type="application/json")
    for upload in files:
        with open(upload.path, "rb") as handle:
            data = handle.read()
        form.add_field(upload.field_name, data, filename=upload.filename, content_type=upload.content_type)
    return form


class WebhookDispatcher:
    """Deliver normalized messages to Discord webhooks."""

    def __init__(
        self,
        config: DispatchConfig,
        session: Optional[aiohttp.ClientSession] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = session is None
        self._clock = clock
        self._sleep = sleep
        # Shared by every endpoint: pacing is global, not per webhook.
        self._pace_lock = asyncio.Lock()
        self._last_request_end: Optional[float] = None

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def deliver(
        self,
        endpoint: str,
        message: NormalizedMessage,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        """Send one message, retrying per policy; always deletes its files."""

        policy = retry or NO_RETRY
        try:
            payload = build_payload(message)
            files = select_upload_files(message.attachments, self._config.max_upload_bytes)
            attempt = 0
            while True:
                attempt += 1
                try:
                    await self._send_once(endpoint, payload, files)
                    return
                except DeliveryError as error:
                    if not policy.should_retry(error, attempt):
                        raise
                    delay = policy.delay_for(attempt)
                    LOGGER.warning(
                        "Webhook attempt %s/%s failed (%s), retrying in %.1fs",
                        attempt,
                        policy.max_attempts,
                        error,
                        delay,
                    )
                    await self._sleep(delay)
        finally:
            self._release(message.attachments)

    async def _send_once(self, endpoint: str, payload: dict[str, Any], files: list[UploadFile]) -> None:
        async with self._pace_lock:
            await self._wait_for_slot()
            try:
                if files:
                    status = await self._post(
                        endpoint,
                        self._config.upload_timeout_seconds,
                        data=build_form(payload, files),
                    )
                else:
                    status = await self._post(endpoint, self._config.text_timeout_seconds, json=payload)
            finally:
                self._last_request_end = self._clock()

        if status not in SUCCESS_STATUSES:
            raise DeliveryError(f"Discord webhook returned status {status}", status=status)

    async def _wait_for_slot(self) -> None:
        if self._last_request_end is None:
            return
        remaining = self._last_request_end + self._config.min_interval_seconds - self._clock()
        if remaining > 0:
            await self._sleep(remaining)

    async def _post(self, endpoint: str, timeout_seconds: float, **kwargs: Any) -> int:
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        try:
            async with self._get_session().post(endpoint, timeout=timeout, **kwargs) as response:
                if response.status not in SUCCESS_STATUSES:
                    body = await response.text()
                    LOGGER.warning("Discord webhook error %s: %s", response.status, body[:200])
                return response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DeliveryError(f"Webhook request failed: {exc!r}") from exc

    @staticmethod
    def _release(attachments: Iterable[ProcessedAttachment]) -> None:
        for attachment in attachments:
            try:
                os.remove(attachment.local_path)
                LOGGER.debug("Cleaned up temp file %s", os.path.basename(attachment.local_path))
            except FileNotFoundError:
                continue
            except OSError:
                LOGGER.warning("Could not delete %s", attachment.local_path, exc_info=True)
