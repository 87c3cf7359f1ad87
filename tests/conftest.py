from pathlib import Path
from urllib.parse import urlparse

import pytest
from PIL import Image

from gifroll.config import Settings

MARKER_WIDTH = 2
WHITE = (255, 255, 255)


def _marker_image(index: int, width: int = 48, height: int = 8) -> Image.Image:
    """Black image with a white vertical bar whose x offset encodes *index*."""
    img = Image.new("RGB", (width, height), (0, 0, 0))
    x0 = index * MARKER_WIDTH
    for x in range(x0, x0 + MARKER_WIDTH):
        for y in range(height):
            img.putpixel((x, y), WHITE)
    return img


def _marker_index(image: Image.Image) -> int:
    """Recover the index encoded by ``_marker_image`` from any image mode."""
    rgb = image.convert("RGB")
    for x in range(rgb.width):
        if rgb.getpixel((x, 0)) == WHITE:
            return x // MARKER_WIDTH
    raise AssertionError("no marker found in image")


@pytest.fixture
def marker_image():
    return _marker_image


@pytest.fixture
def marker_index():
    return _marker_index


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        image_url=urlparse("http://cam.example.com/latest.jpg"),
        update_interval=60,
        post_interval=60,
        frame_count=3,
        frame_delay=50,
        min_duration=0,
        frame_position="end",
        test_mode=True,
        output_dir=tmp_path / "output",
        state_file=tmp_path / "state.json",
    )
