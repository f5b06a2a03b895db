"""Tile addressing and projection geometry."""

from .errors import (
    ConfigurationError,
    CoordinateSystemError,
    DrainTimeoutError,
    MixerError,
    MixInterruptedError,
)
from .geometry import Pyramid, Tile, WebMercatorPyramid
from .types import GeoPoint, GeoSector, TileCoord

__all__ = [
    "ConfigurationError",
    "CoordinateSystemError",
    "DrainTimeoutError",
    "MixerError",
    "MixInterruptedError",
    "Pyramid",
    "Tile",
    "WebMercatorPyramid",
    "GeoPoint",
    "GeoSector",
    "TileCoord",
]
