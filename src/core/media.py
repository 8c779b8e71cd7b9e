"""Attachment acquisition, watermarking, and size gating.

Every file the pipeline creates is tracked until the call returns: the final
artifact is handed to the caller, everything else is deleted on the way out.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from typing import Any, Awaitable, Callable, Iterable, NamedTuple, Optional

from PIL import Image

from core.config import MediaConfig
from core.models import AttachmentKind, AttachmentRef, ProcessedAttachment
from core.ports import MediaSourcePort
from core.watermark import Watermarker

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
VIDEO_EXTENSIONS = {".mp4", ".webm", ".mov", ".avi", ".mkv"}
AUDIO_EXTENSIONS = {".mp3", ".wav", ".ogg", ".oga", ".m4a", ".flac"}

_DEFAULT_EXTENSIONS = {
    AttachmentKind.IMAGE: ".jpg",
    AttachmentKind.VIDEO: ".mp4",
    AttachmentKind.AUDIO: ".ogg",
    AttachmentKind.DOCUMENT: ".bin",
}

_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')

MEDIA_FAILED_NOTICE = "[Media could not be processed]"


class MediaOutcome(NamedTuple):
    """Result of one attachment: a file, or a drop that was or was not a failure."""

    attachment: Optional[ProcessedAttachment]
    failed: bool = False


def sanitize_filename(filename: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", filename)
    cleaned = re.sub(r"\s+", "_", cleaned)
    return cleaned[:100]


def format_file_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GB"


def classify_attachment(declared: AttachmentKind, filename: Optional[str]) -> AttachmentKind:
    """Refine a declared kind using the file extension.

    Only generic documents are re-classified; Telegram already knows when it
    sends a photo, video, or voice note.
    """

    if declared is not AttachmentKind.DOCUMENT or not filename:
        return declared
    ext = os.path.splitext(filename)[1].lower()
    if ext in IMAGE_EXTENSIONS:
        return AttachmentKind.IMAGE
    if ext in VIDEO_EXTENSIONS:
        return AttachmentKind.VIDEO
    if ext in AUDIO_EXTENSIONS:
        return AttachmentKind.AUDIO
    return AttachmentKind.DOCUMENT


def compress_image(path: str, config: MediaConfig) -> Optional[str]:
    """Re-encode an image at decreasing quality until it fits the target.

    Returns the path of the first encoding that fits, or None once the
    quality floor is passed without success.
    """

    ceiling = min(config.target_bytes, config.max_upload_bytes)
    stem = os.path.splitext(path)[0]

    with Image.open(path) as source:
        image = source.convert("RGB")
    image.thumbnail((config.max_width, config.max_height))

    quality = config.quality_start
    while quality >= config.quality_floor:
        output_path = f"{stem}_q{quality}.jpg"
        image.save(output_path, "JPEG", quality=quality, optimize=True)
        size = os.path.getsize(output_path)
        if size <= ceiling:
            LOGGER.info("Image compressed to %s at %s%% quality", format_file_size(size), quality)
            return output_path
        _remove_quietly(output_path)
        quality -= max(config.quality_step, 1)

    LOGGER.warning("Could not compress %s below %s", os.path.basename(path), format_file_size(ceiling))
    return None


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        LOGGER.warning("Could not delete temp file %s", path, exc_info=True)


class MediaPipeline:
    """Turn attachment references into upload-ready local files."""

    def __init__(
        self,
        media_source: MediaSourcePort,
        watermarker: Watermarker,
        config: MediaConfig,
    ) -> None:
        self._source = media_source
        self._watermarker = watermarker
        self._config = config

    async def process(
        self,
        ref: AttachmentRef,
        message_id: int,
        index: int = 0,
    ) -> Optional[ProcessedAttachment]:
        """Materialize and transform one attachment; None means dropped."""

        outcome = await self.process_outcome(ref, message_id, index)
        return outcome.attachment

    async def process_outcome(
        self,
        ref: AttachmentRef,
        message_id: int,
        index: int = 0,
    ) -> MediaOutcome:
        """Like process(), but tells size-policy drops apart from failures."""

        created: list[str] = []
        try:
            kind = classify_attachment(ref.kind, ref.suggested_filename)
            dest_path = self._temp_path(kind, message_id, index, ref.suggested_filename)
            path = await self._source.download(ref.source_locator, dest_path)
            if not path or not os.path.exists(path):
                LOGGER.warning("Download produced no file for message %s attachment %s", message_id, index)
                return MediaOutcome(None, failed=True)
            created.append(path)
            kind = classify_attachment(kind, path)

            final_path = await self._finalize(kind, path, created)
            if final_path is None:
                return MediaOutcome(None)

            attachment = ProcessedAttachment(
                kind=kind,
                local_path=final_path,
                filename=self._upload_filename(ref, final_path),
                size_bytes=os.path.getsize(final_path),
            )
            created.remove(final_path)
            return MediaOutcome(attachment)
        except Exception:
            LOGGER.exception("Failed to process attachment %s of message %s", index, message_id)
            return MediaOutcome(None, failed=True)
        finally:
            for leftover in created:
                _remove_quietly(leftover)

    async def _finalize(self, kind: AttachmentKind, path: str, created: list[str]) -> Optional[str]:
        if kind is AttachmentKind.IMAGE:
            return await asyncio.to_thread(self._prepare_image, path, created)
        if kind in (AttachmentKind.VIDEO, AttachmentKind.AUDIO, AttachmentKind.DOCUMENT):
            return self._gate_passthrough(kind, path)
        raise ValueError(f"Unhandled attachment kind: {kind}")

    def _prepare_image(self, path: str, created: list[str]) -> Optional[str]:
        try:
            marked = self._watermarker.apply(path)
        except Exception:
            LOGGER.exception("Watermarking failed, forwarding %s unmarked", os.path.basename(path))
            marked = path
        if marked != path:
            created.append(marked)

        size = os.path.getsize(marked)
        if size <= self._config.max_upload_bytes:
            return marked

        LOGGER.info("Image too large (%s), compressing", format_file_size(size))
        compressed = compress_image(marked, self._config)
        if compressed is None:
            LOGGER.warning("Dropping image %s: still too large at quality floor", os.path.basename(path))
            return None
        created.append(compressed)
        return compressed

    def _gate_passthrough(self, kind: AttachmentKind, path: str) -> Optional[str]:
        size = os.path.getsize(path)
        if size > self._config.max_upload_bytes:
            # No transcoding for video/audio/documents.
            LOGGER.warning(
                "Dropping %s %s: %s exceeds %s",
                kind.value,
                os.path.basename(path),
                format_file_size(size),
                format_file_size(self._config.max_upload_bytes),
            )
            return None
        return path

    def _temp_path(
        self,
        kind: AttachmentKind,
        message_id: int,
        index: int,
        suggested_filename: Optional[str],
    ) -> str:
        os.makedirs(self._config.temp_dir, exist_ok=True)
        ext = ""
        if suggested_filename:
            ext = os.path.splitext(suggested_filename)[1].lower()
        if not ext:
            ext = _DEFAULT_EXTENSIONS[kind]
        # Message id + nanosecond clock + index keeps concurrent pipelines apart.
        name = f"{kind.value}_{message_id}_{time.time_ns()}_{index}{ext}"
        return os.path.join(self._config.temp_dir, name)

    @staticmethod
    def _upload_filename(ref: AttachmentRef, final_path: str) -> str:
        final_ext = os.path.splitext(final_path)[1]
        if not ref.suggested_filename:
            return os.path.basename(final_path)
        name = sanitize_filename(ref.suggested_filename)
        stem, ext = os.path.splitext(name)
        if ext.lower() != final_ext.lower():
            return f"{stem}{final_ext}"
        return name

    def release(self, attachments: Iterable[ProcessedAttachment]) -> None:
        """Delete the local files of processed attachments."""

        for attachment in attachments:
            _remove_quietly(attachment.local_path)

    def sweep(self, max_age_seconds: float = 0) -> int:
        """Remove temp files older than max_age_seconds; return the count."""

        directory = self._config.temp_dir
        if not os.path.isdir(directory):
            return 0
        cutoff = time.time() - max_age_seconds
        removed = 0
        for name in os.listdir(directory):
            path = os.path.join(directory, name)
            try:
                if os.path.isfile(path) and os.path.getmtime(path) <= cutoff:
                    os.remove(path)
                    removed += 1
            except OSError:
                LOGGER.warning("Could not sweep %s", path, exc_info=True)
        return removed

    async def run_sweeper(
        self,
        interval_seconds: float,
        max_age_seconds: float,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Periodically remove temp files left behind by crashes or bugs."""

        while True:
            await sleep(interval_seconds)
            try:
                removed = self.sweep(max_age_seconds)
            except OSError:
                LOGGER.warning("Temp sweep failed", exc_info=True)
                continue
            if removed:
                LOGGER.info("Temp sweep removed %s stale files", removed)
