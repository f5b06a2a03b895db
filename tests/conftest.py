"""Test fixtures for TileMixer tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Callable, Generator

import numpy as np
import pytest
from PIL import Image

from tilemixer.core.geometry import WebMercatorPyramid

RED = (200, 30, 30, 255)
GREEN = (30, 200, 30, 255)
BLUE = (30, 30, 200, 255)
CLEAR = (0, 0, 0, 0)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def geometry() -> WebMercatorPyramid:
    return WebMercatorPyramid.create_default()


def solid(color: tuple[int, int, int, int], size: int = 64) -> Image.Image:
    """A single-color RGBA tile."""
    return Image.new("RGBA", (size, size), color)


def left_half(color: tuple[int, int, int, int], size: int = 64) -> Image.Image:
    """RGBA tile with ``color`` on the left half and transparency on the right."""
    arr = np.zeros((size, size, 4), dtype=np.uint8)
    arr[:, : size // 2] = color
    return Image.fromarray(arr, "RGBA")


@pytest.fixture
def make_tile() -> Callable[..., Path]:
    """Write a tile image at ``root/level/col/row.ext`` (JPEG tiles lose their alpha)."""

    def _make_tile(
        root: Path,
        level: int,
        col: int,
        row: int,
        image: Image.Image | tuple[int, int, int, int] = RED,
        ext: str = ".png",
    ) -> Path:
        if isinstance(image, tuple):
            image = solid(image)
        path = root / str(level) / str(col) / f"{row}{ext}"
        path.parent.mkdir(parents=True, exist_ok=True)
        if ext.lower() in (".jpg", ".jpeg"):
            image = image.convert("RGB")
        image.save(path)
        return path

    return _make_tile


@pytest.fixture
def sample_sources(temp_dir: Path, make_tile: Callable[..., Path]) -> list[Path]:
    """Two overlapping pyramids: ``a.tiles`` (levels 0-2) and ``b.tiles`` (levels 0-3)."""
    a = temp_dir / "sources" / "a.tiles"
    b = temp_dir / "sources" / "b.tiles"

    make_tile(a, 0, 0, 0, RED)
    make_tile(a, 1, 0, 0, RED)
    make_tile(a, 1, 1, 1, RED)
    make_tile(a, 2, 1, 1, left_half(RED))

    make_tile(b, 0, 0, 0, left_half(BLUE))
    make_tile(b, 1, 0, 0, BLUE)
    make_tile(b, 2, 2, 2, BLUE)
    make_tile(b, 3, 2, 2, left_half(GREEN))
    return [a, b]
