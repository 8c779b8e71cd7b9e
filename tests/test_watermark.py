from __future__ import annotations

import os

import pytest
from PIL import Image

from core.errors import WatermarkError
from core.watermark import Watermarker, watermark_geometry


def _mark(tmp_path, size=(100, 100), color=(0, 0, 255, 255)) -> str:
    path = tmp_path / "mark.png"
    Image.new("RGBA", size, color).save(path, "PNG")
    return str(path)


def _host(tmp_path, name="photo.jpg", size=(400, 300), fmt="JPEG") -> str:
    path = tmp_path / name
    Image.new("RGB", size, (255, 0, 0)).save(path, fmt)
    return str(path)


def test_geometry_uses_fifth_of_width() -> None:
    assert watermark_geometry((1000, 800), (100, 50)) == (400, 350, 200, 100)


def test_geometry_capped_by_short_side() -> None:
    # 20% of width would be 200, but 40% of the 200px height is 80.
    assert watermark_geometry((1000, 200), (100, 100)) == (460, 60, 80, 80)


def test_geometry_caps_tall_marks_by_height() -> None:
    assert watermark_geometry((1000, 1000), (10, 100)) == (480, 300, 40, 400)


def test_geometry_is_deterministic() -> None:
    assert watermark_geometry((1920, 1080), (512, 256)) == watermark_geometry((1920, 1080), (512, 256))


def test_geometry_rejects_empty_images() -> None:
    with pytest.raises(ValueError):
        watermark_geometry((0, 100), (10, 10))


def test_apply_centers_mark_and_writes_jpeg(tmp_path) -> None:
    watermarker = Watermarker(_mark(tmp_path))
    source = _host(tmp_path)

    output = watermarker.apply(source)

    assert output == os.path.join(str(tmp_path), "photo_watermarked.jpg")
    with Image.open(output) as result:
        assert result.format == "JPEG"
        assert result.size == (400, 300)
        r, g, b = result.convert("RGB").getpixel((200, 150))
        assert b > 200 and r < 60
        r, g, b = result.convert("RGB").getpixel((5, 5))
        assert r > 200 and b < 60


def test_apply_accepts_explicit_output_path(tmp_path) -> None:
    watermarker = Watermarker(_mark(tmp_path))
    source = _host(tmp_path, name="in.png", fmt="PNG")
    target = str(tmp_path / "out.jpg")

    assert watermarker.apply(source, target) == target
    assert os.path.exists(target)


def test_unsupported_format_is_returned_unchanged(tmp_path) -> None:
    watermarker = Watermarker(_mark(tmp_path))
    source = _host(tmp_path, name="photo.bmp", fmt="BMP")

    assert watermarker.apply(source) == source
    assert not os.path.exists(str(tmp_path / "photo_watermarked.jpg"))


def test_missing_watermark_fails_open(tmp_path) -> None:
    watermarker = Watermarker(str(tmp_path / "missing.png"))
    source = _host(tmp_path)

    with pytest.raises(WatermarkError):
        watermarker.load()
    assert watermarker.apply(source) == source


def test_unreadable_watermark_raises(tmp_path) -> None:
    path = tmp_path / "mark.png"
    path.write_bytes(b"not an image")
    with pytest.raises(WatermarkError):
        Watermarker(str(path)).load()
