import io
import random

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from main import app
from optimizers.image_optimizer import ImageOptimizer
from schemas import FormatSupport, ImageBytes, PolicyOptions

# Deterministic codec set: no webp/avif, so format choices don't depend on the Pillow build
BASIC_SUPPORT = FormatSupport(jpeg=True, png=True)
FULL_SUPPORT = FormatSupport(webp=True, avif=True, jpeg=True, png=True)

# Quantized buckets: 0, 32, 224 (x3 hues), brightness near 0 or near 255
HIGH_CONTRAST_PALETTE = [
    (0, 0, 0),
    (40, 0, 0),
    (0, 40, 0),
    (255, 255, 255),
    (255, 255, 200),
    (200, 255, 255),
]


def encode(img: Image.Image, fmt: str = "PNG", **kwargs) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def flat_image(size=(100, 100), color=(120, 160, 200), mode="RGB") -> Image.Image:
    return Image.new(mode, size, color)


def checkerboard_tile(size: int = 100) -> Image.Image:
    """1px black/white checkerboard: complexity 1.0, two colors."""
    img = Image.new("RGB", (size, size))
    img.putdata(
        [
            (255, 255, 255) if (x + y) % 2 else (0, 0, 0)
            for y in range(size)
            for x in range(size)
        ]
    )
    return img


def photo_tile(size: int = 100, seed: int = 7) -> Image.Image:
    """Seeded random high-contrast pixels: high complexity, six colors."""
    rng = random.Random(seed)
    img = Image.new("RGB", (size, size))
    img.putdata([rng.choice(HIGH_CONTRAST_PALETTE) for _ in range(size * size)])
    return img


def tiled(tile: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Repeat a tile so the analyzer's top-left window sees exactly the tile."""
    img = Image.new(tile.mode, size)
    for x in range(0, size[0], tile.width):
        for y in range(0, size[1], tile.height):
            img.paste(tile, (x, y))
    return img


def image_bytes(img: Image.Image, fmt: str = "PNG", name: str = "", **kwargs) -> ImageBytes:
    mime = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp"}[fmt]
    return ImageBytes(data=encode(img, fmt, **kwargs), mime_type=mime, name=name)


@pytest.fixture
def optimizer():
    return ImageOptimizer(PolicyOptions(), BASIC_SUPPORT)


@pytest.fixture
def client(optimizer):
    """FastAPI test client (does not raise server exceptions)."""
    app.state.optimizer = optimizer
    yield TestClient(app, raise_server_exceptions=False)
    del app.state.optimizer


@pytest.fixture
def flat_png():
    return encode(flat_image())


@pytest.fixture
def transparent_png():
    return encode(flat_image(color=(255, 0, 0, 128), mode="RGBA"))


@pytest.fixture
def photo_jpeg():
    return encode(tiled(photo_tile(), (400, 300)), "JPEG", quality=95)


@pytest.fixture
def garbage():
    return b"definitely not an image, just some bytes"
