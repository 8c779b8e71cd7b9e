from __future__ import annotations

import asyncio
import os
import shutil
import time

from PIL import Image

from core.config import MediaConfig
from core.media import MediaPipeline, classify_attachment, compress_image, sanitize_filename
from core.models import AttachmentKind, AttachmentRef
from core.watermark import Watermarker


class FakeMediaSource:
    """Copies a local file (the locator) to the requested destination."""

    def __init__(self) -> None:
        self.requests: list[str] = []

    async def download(self, locator, dest_path):
        self.requests.append(dest_path)
        if locator is None:
            return None
        shutil.copyfile(locator, dest_path)
        return dest_path


def _noise_png(path, size=(400, 400)) -> str:
    width, height = size
    Image.frombytes("RGB", size, os.urandom(width * height * 3)).save(path, "PNG")
    return str(path)


def _mark(tmp_path) -> str:
    path = tmp_path / "mark.png"
    Image.new("RGBA", (50, 50), (255, 255, 255, 160)).save(path, "PNG")
    return str(path)


def _config(tmp_path, **overrides) -> MediaConfig:
    values = dict(temp_dir=str(tmp_path / "temp"), watermark_path=str(tmp_path / "mark.png"))
    values.update(overrides)
    return MediaConfig(**values)


def _temp_files(config: MediaConfig) -> list[str]:
    if not os.path.isdir(config.temp_dir):
        return []
    return sorted(os.listdir(config.temp_dir))


def test_small_image_is_watermarked_and_kept(tmp_path) -> None:
    config = _config(tmp_path)
    source = tmp_path / "small.png"
    Image.new("RGB", (120, 80), (10, 200, 10)).save(source, "PNG")
    pipeline = MediaPipeline(FakeMediaSource(), Watermarker(_mark(tmp_path)), config)

    ref = AttachmentRef(kind=AttachmentKind.IMAGE, source_locator=str(source), suggested_filename="holiday.png")
    result = asyncio.run(pipeline.process(ref, message_id=7))

    assert result is not None
    assert result.kind is AttachmentKind.IMAGE
    assert result.local_path.endswith("_watermarked.jpg")
    assert result.filename == "holiday.jpg"
    assert result.size_bytes == os.path.getsize(result.local_path)
    # Only the final artifact survives.
    assert _temp_files(config) == [os.path.basename(result.local_path)]


def test_oversized_image_is_compressed_under_ceiling(tmp_path) -> None:
    config = _config(tmp_path, max_upload_bytes=100_000, target_bytes=100_000, max_width=100, max_height=100)
    source = _noise_png(tmp_path / "noise.png")
    pipeline = MediaPipeline(FakeMediaSource(), Watermarker(_mark(tmp_path)), config)

    ref = AttachmentRef(kind=AttachmentKind.IMAGE, source_locator=source)
    result = asyncio.run(pipeline.process(ref, message_id=8))

    assert result is not None
    assert result.size_bytes <= 100_000
    with Image.open(result.local_path) as image:
        assert image.format == "JPEG"
        assert max(image.size) <= 100
    assert _temp_files(config) == [os.path.basename(result.local_path)]


def test_image_still_too_large_at_floor_is_dropped(tmp_path) -> None:
    config = _config(tmp_path, max_upload_bytes=500, target_bytes=500, max_width=100, max_height=100)
    source = _noise_png(tmp_path / "noise.png")
    pipeline = MediaPipeline(FakeMediaSource(), Watermarker(_mark(tmp_path)), config)

    ref = AttachmentRef(kind=AttachmentKind.IMAGE, source_locator=source)
    assert asyncio.run(pipeline.process(ref, message_id=9)) is None
    assert _temp_files(config) == []


def test_compress_image_never_returns_file_above_ceiling(tmp_path) -> None:
    config = _config(tmp_path, max_upload_bytes=40_000, target_bytes=8 * 1024 * 1024, max_width=200, max_height=200)
    source = _noise_png(tmp_path / "noise.png")

    output = compress_image(source, config)

    if output is not None:
        assert os.path.getsize(output) <= 40_000


def test_oversized_document_is_dropped_without_transcoding(tmp_path) -> None:
    config = _config(tmp_path, max_upload_bytes=1000)
    source = tmp_path / "report.pdf"
    source.write_bytes(b"x" * 2000)
    pipeline = MediaPipeline(FakeMediaSource(), Watermarker(_mark(tmp_path)), config)

    ref = AttachmentRef(kind=AttachmentKind.DOCUMENT, source_locator=str(source), suggested_filename="report.pdf")
    assert asyncio.run(pipeline.process(ref, message_id=10)) is None
    assert _temp_files(config) == []


def test_video_within_limit_passes_through(tmp_path) -> None:
    config = _config(tmp_path)
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"\x00" * 512)
    pipeline = MediaPipeline(FakeMediaSource(), Watermarker(_mark(tmp_path)), config)

    ref = AttachmentRef(kind=AttachmentKind.VIDEO, source_locator=str(source), suggested_filename="clip.mp4")
    result = asyncio.run(pipeline.process(ref, message_id=11))

    assert result is not None
    assert result.kind is AttachmentKind.VIDEO
    assert result.filename == "clip.mp4"
    assert result.size_bytes == 512


def test_missing_watermark_forwards_image_unmarked(tmp_path) -> None:
    config = _config(tmp_path)
    source = tmp_path / "photo.jpg"
    Image.new("RGB", (64, 64), (0, 0, 0)).save(source, "JPEG")
    pipeline = MediaPipeline(FakeMediaSource(), Watermarker(str(tmp_path / "missing.png")), config)

    ref = AttachmentRef(kind=AttachmentKind.IMAGE, source_locator=str(source))
    result = asyncio.run(pipeline.process(ref, message_id=12))

    assert result is not None
    assert "_watermarked" not in result.local_path
    assert os.path.exists(result.local_path)


def test_failed_download_yields_nothing(tmp_path) -> None:
    config = _config(tmp_path)
    pipeline = MediaPipeline(FakeMediaSource(), Watermarker(_mark(tmp_path)), config)

    ref = AttachmentRef(kind=AttachmentKind.IMAGE, source_locator=None)
    assert asyncio.run(pipeline.process(ref, message_id=13)) is None


def test_temp_names_are_namespaced_by_message_and_index(tmp_path) -> None:
    config = _config(tmp_path)
    source = tmp_path / "a.txt"
    source.write_bytes(b"hello")
    media_source = FakeMediaSource()
    pipeline = MediaPipeline(media_source, Watermarker(_mark(tmp_path)), config)

    ref = AttachmentRef(kind=AttachmentKind.DOCUMENT, source_locator=str(source), suggested_filename="a.txt")
    first = asyncio.run(pipeline.process(ref, message_id=14, index=0))
    second = asyncio.run(pipeline.process(ref, message_id=14, index=1))

    assert first.local_path != second.local_path
    assert os.path.basename(media_source.requests[0]).startswith("document_14_")
    assert media_source.requests[1].endswith("_1.txt")


def test_release_and_sweep_remove_files(tmp_path) -> None:
    config = _config(tmp_path)
    source = tmp_path / "a.txt"
    source.write_bytes(b"hello")
    pipeline = MediaPipeline(FakeMediaSource(), Watermarker(_mark(tmp_path)), config)
    ref = AttachmentRef(kind=AttachmentKind.DOCUMENT, source_locator=str(source), suggested_filename="a.txt")

    kept = asyncio.run(pipeline.process(ref, message_id=15))
    pipeline.release([kept])
    assert not os.path.exists(kept.local_path)

    (tmp_path / "temp" / "stale.bin").write_bytes(b"old")
    assert pipeline.sweep(0) == 1
    assert _temp_files(config) == []


def test_classify_refines_generic_documents_only() -> None:
    assert classify_attachment(AttachmentKind.DOCUMENT, "cat.PNG") is AttachmentKind.IMAGE
    assert classify_attachment(AttachmentKind.DOCUMENT, "song.mp3") is AttachmentKind.AUDIO
    assert classify_attachment(AttachmentKind.DOCUMENT, "notes.txt") is AttachmentKind.DOCUMENT
    assert classify_attachment(AttachmentKind.VIDEO, "cover.jpg") is AttachmentKind.VIDEO


def test_sanitize_filename() -> None:
    assert sanitize_filename('my: "file"?.png') == "my___file__.png"


def test_outcome_separates_failures_from_size_drops(tmp_path) -> None:
    config = _config(tmp_path, max_upload_bytes=1000)
    big = tmp_path / "report.pdf"
    big.write_bytes(b"x" * 2000)
    pipeline = MediaPipeline(FakeMediaSource(), Watermarker(_mark(tmp_path)), config)

    dropped = asyncio.run(
        pipeline.process_outcome(AttachmentRef(AttachmentKind.DOCUMENT, str(big), "report.pdf"), message_id=16)
    )
    not_downloaded = asyncio.run(pipeline.process_outcome(AttachmentRef(AttachmentKind.IMAGE, None), message_id=17))
    broken = asyncio.run(
        pipeline.process_outcome(AttachmentRef(AttachmentKind.IMAGE, str(tmp_path / "gone.png")), message_id=18)
    )

    assert (dropped.attachment, dropped.failed) == (None, False)
    assert (not_downloaded.attachment, not_downloaded.failed) == (None, True)
    assert (broken.attachment, broken.failed) == (None, True)
    assert _temp_files(config) == []


def test_sweeper_removes_only_stale_files(tmp_path) -> None:
    config = _config(tmp_path)
    os.makedirs(config.temp_dir)
    stale = os.path.join(config.temp_dir, "image_1_0_0.jpg")
    fresh = os.path.join(config.temp_dir, "image_2_0_0.jpg")
    for path in (stale, fresh):
        with open(path, "wb") as handle:
            handle.write(b"x")
    two_hours_ago = time.time() - 7200
    os.utime(stale, (two_hours_ago, two_hours_ago))
    pipeline = MediaPipeline(FakeMediaSource(), Watermarker(_mark(tmp_path)), config)

    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) > 2:
            raise asyncio.CancelledError

    async def _run() -> None:
        try:
            await pipeline.run_sweeper(60, 3600, sleep=fake_sleep)
        except asyncio.CancelledError:
            pass

    asyncio.run(_run())

    assert sleeps == [60, 60, 60]
    assert _temp_files(config) == ["image_2_0_0.jpg"]
