"""Image compositing primitives for merged tiles.

All images handled here are RGBA; later draws are alpha-blended over
earlier ones (Porter-Duff "over").
"""

from __future__ import annotations

import math
from typing import Callable, Sequence

import numpy as np
from PIL import Image

from tilemixer.core.geometry import Pyramid
from tilemixer.core.types import GeoSector

from .source import SourcePyramid, SourceTile

#: Sort key deciding draw order; tiles with larger keys are drawn last (on top)
PriorityKey = Callable[[SourceTile], int]

Box = tuple[int, int, int, int]


def by_max_level(tile: SourceTile) -> int:
    """Deeper pyramids are assumed to have higher native resolution."""
    return tile.pyramid_max_level


def by_precedence(pyramids: Sequence[SourcePyramid]) -> PriorityKey:
    """Priority from an explicit ordering: later pyramids are drawn on top."""
    order = {id(pyramid): index for index, pyramid in enumerate(pyramids)}

    def key(tile: SourceTile) -> int:
        return order[id(tile.pyramid)]

    return key


def composite(images: Sequence[Image.Image]) -> Image.Image:
    """Blend images in order onto a transparent canvas sized like the first.

    A single image is returned as is.
    """
    if not images:
        raise ValueError("Nothing to composite")
    if len(images) == 1:
        return images[0]

    canvas = Image.new("RGBA", images[0].size, (0, 0, 0, 0))
    for image in images:
        canvas.alpha_composite(image)
    return canvas


def is_fully_opaque(image: Image.Image) -> bool:
    """Check that every pixel's alpha is at its maximum."""
    if "A" not in image.getbands():
        return True
    alpha = np.asarray(image.getchannel("A"))
    return bool(np.all(alpha == 255))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _at_least_one_pixel(start: int, end: int, limit: int) -> tuple[int, int]:
    if end > start:
        return start, end
    start = min(max(start, 0), limit - 1)
    return start, start + 1


def ancestor_box(
    geometry: Pyramid,
    tile_sector: GeoSector,
    ancestor_sector: GeoSector,
    width: int,
    height: int,
) -> Box:
    """Pixel rectangle of an ancestor image covering ``tile_sector``.

    Args:
        geometry: Geometry used for the UV mapping
        tile_sector: Sector of the tile being filled
        ancestor_sector: Sector of the ancestor tile
        width: Ancestor image width in pixels
        height: Ancestor image height in pixels

    Returns:
        (left, top, right, bottom) box, at least one pixel in each direction
    """
    lower_u, lower_v = geometry.uv_coordinates_of(ancestor_sector, tile_sector.lower)
    upper_u, upper_v = geometry.uv_coordinates_of(ancestor_sector, tile_sector.upper)

    left, right = _at_least_one_pixel(
        _round_half_up(lower_u * width), _round_half_up(upper_u * width), width
    )
    top, bottom = _at_least_one_pixel(
        _round_half_up(upper_v * height), _round_half_up(lower_v * height), height
    )
    return left, top, right, bottom


def blit_ancestor(canvas: Image.Image, ancestor: Image.Image, box: Box) -> None:
    """Stretch ``box`` of ``ancestor`` over the whole canvas and blend it in."""
    region = ancestor.resize(canvas.size, Image.Resampling.BICUBIC, box=box)
    canvas.alpha_composite(region)


def flatten(image: Image.Image, background: tuple[int, int, int]) -> Image.Image:
    """Blend onto an opaque background and drop the alpha channel."""
    if "A" not in image.getbands():
        return image.convert("RGB")
    canvas = Image.new("RGBA", image.size, background + (255,))
    canvas.alpha_composite(image)
    return canvas.convert("RGB")
