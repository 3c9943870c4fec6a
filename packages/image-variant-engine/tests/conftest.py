import io
import struct
import zlib

import numpy as np
import pytest
from PIL import Image


def _encode(image: Image.Image, image_format: str) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def noisy_rgb_image():
    rng = np.random.default_rng(seed=7)
    pixels = rng.integers(0, 256, (900, 1600, 3), dtype=np.uint8)
    return Image.fromarray(pixels)


@pytest.fixture
def large_jpeg_bytes(noisy_rgb_image):
    return _encode(noisy_rgb_image, "JPEG")


@pytest.fixture
def small_png_bytes():
    return _encode(Image.new("RGB", (40, 20), color=(10, 200, 30)), "PNG")


@pytest.fixture
def transparent_png_bytes():
    return _encode(Image.new("RGBA", (320, 320), color=(255, 0, 0, 64)), "PNG")


@pytest.fixture
def webp_bytes():
    return _encode(Image.new("RGB", (64, 64), color="blue"), "WEBP")


@pytest.fixture
def gif_bytes():
    return _encode(Image.new("P", (16, 16)), "GIF")


def _png_chunk(kind: bytes, body: bytes) -> bytes:
    crc = zlib.crc32(kind + body) & 0xFFFFFFFF
    return struct.pack(">I", len(body)) + kind + body + struct.pack(">I", crc)


@pytest.fixture
def oversized_png_header():
    """A tiny PNG whose header declares 30000x30000 pixels."""
    header = struct.pack(">IIBBBBB", 30000, 30000, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(b"\x00"))
        + _png_chunk(b"IEND", b"")
    )
