"""
Shared fixtures for palette extraction tests.

Images are generated in memory; nothing binary is checked in.
"""
import io

import numpy as np
import pytest
from PIL import Image


@pytest.fixture
def four_pixel_image():
    """2x2 image: two red pixels, one green, one blue."""
    return np.array([
        [[255, 0, 0], [255, 0, 0]],
        [[0, 255, 0], [0, 0, 255]],
    ], dtype=np.uint8)


@pytest.fixture
def noisy_image():
    """32x32 image of random colors, fixed seed."""
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, size=(32, 32, 3), dtype=np.uint8)


@pytest.fixture
def transparent_image():
    """10x10 fully transparent RGBA image."""
    return np.zeros((10, 10, 4), dtype=np.uint8)


@pytest.fixture
def png_bytes():
    """Factory encoding a uint8 pixel array as PNG bytes."""
    def encode(pixels: np.ndarray) -> bytes:
        buffer = io.BytesIO()
        Image.fromarray(pixels).save(buffer, format='PNG')
        return buffer.getvalue()
    return encode


@pytest.fixture
def write_png(tmp_path, png_bytes):
    """Factory writing a uint8 pixel array to a PNG under tmp_path."""
    def write(pixels: np.ndarray, name: str = 'image.png'):
        path = tmp_path / name
        path.write_bytes(png_bytes(pixels))
        return path
    return write
