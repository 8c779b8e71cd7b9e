"""Watermark compositing (Pillow).

The watermark asset is decoded once and cached on the instance; every call
scales it relative to the host image and centers it.
"""

from __future__ import annotations

import logging
import math
import os
from typing import Optional

from PIL import Image, UnidentifiedImageError

from core.errors import WatermarkError

LOGGER = logging.getLogger(__name__)

SUPPORTED_FORMATS = {"JPEG", "PNG", "WEBP", "GIF"}
WIDTH_FRACTION = 0.2
MAX_FRACTION = 0.4
OUTPUT_QUALITY = 90


def watermark_geometry(
    host_size: tuple[int, int],
    mark_size: tuple[int, int],
) -> tuple[int, int, int, int]:
    """Return (left, top, width, height) of the watermark on the host.

    Width is 20% of the host width, capped at 40% of the host's narrower side.
    Height follows the mark's aspect ratio and is capped at 40% of the host
    height as well.
    """

    host_w, host_h = host_size
    mark_w, mark_h = mark_size
    if host_w <= 0 or host_h <= 0 or mark_w <= 0 or mark_h <= 0:
        raise ValueError("image dimensions must be positive")

    width = min(math.floor(host_w * WIDTH_FRACTION), math.floor(min(host_w, host_h) * MAX_FRACTION))
    width = max(width, 1)
    height = max(math.floor(width * mark_h / mark_w), 1)

    max_height = max(math.floor(host_h * MAX_FRACTION), 1)
    if height > max_height:
        height = max_height
        width = max(math.floor(height * mark_w / mark_h), 1)

    left = (host_w - width) // 2
    top = (host_h - height) // 2
    return left, top, width, height


class Watermarker:
    """Composite a cached watermark onto images."""

    def __init__(self, watermark_path: str) -> None:
        self._watermark_path = watermark_path
        self._mark: Optional[Image.Image] = None

    @property
    def watermark_path(self) -> str:
        return self._watermark_path

    def load(self) -> Image.Image:
        """Decode and cache the watermark, raising WatermarkError if unusable."""

        if self._mark is not None:
            return self._mark
        if not os.path.exists(self._watermark_path):
            raise WatermarkError(f"Watermark file not found: {self._watermark_path}")
        try:
            with Image.open(self._watermark_path) as source:
                mark = source.convert("RGBA")
        except (OSError, UnidentifiedImageError) as exc:
            raise WatermarkError(f"Watermark file is unreadable: {self._watermark_path}") from exc
        if not mark.width or not mark.height:
            raise WatermarkError(f"Watermark file has no pixels: {self._watermark_path}")
        self._mark = mark
        LOGGER.info("Watermark loaded: %sx%s", mark.width, mark.height)
        return mark

    def apply(self, input_path: str, output_path: Optional[str] = None) -> str:
        """Watermark an image and return the path of the result.

        Returns input_path unchanged when the image format is unsupported or
        the watermark cannot be loaded.
        """

        if output_path is None:
            stem, _ = os.path.splitext(input_path)
            output_path = f"{stem}_watermarked.jpg"

        try:
            mark = self.load()
        except WatermarkError:
            LOGGER.exception("Watermark unavailable, forwarding %s without it", os.path.basename(input_path))
            return input_path

        with Image.open(input_path) as host:
            if (host.format or "").upper() not in SUPPORTED_FORMATS:
                LOGGER.info("Unsupported image format %s, skipping watermark", host.format)
                return input_path
            canvas = host.convert("RGBA")

        left, top, width, height = watermark_geometry(canvas.size, mark.size)
        scaled = mark.resize((width, height), Image.Resampling.LANCZOS)
        canvas.alpha_composite(scaled, (left, top))
        canvas.convert("RGB").save(output_path, "JPEG", quality=OUTPUT_QUALITY)

        LOGGER.info("Watermark applied: %s", os.path.basename(output_path))
        return output_path

    def close(self) -> None:
        self._mark = None
