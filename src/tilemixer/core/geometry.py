"""Quad-tree pyramid geometry.

A pyramid splits a root sector into four children per level. Children
are never stored: a tile is located by subdividing from the root along
the path to the requested address, so only ``level`` subdivisions are
computed for any lookup.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from tilemixer.config import DEFAULT_TILE_SIZE

from .errors import ConfigurationError, CoordinateSystemError
from .types import GeoPoint, GeoSector, TileCoord

UPPER_LIMIT_DEGREES = 85.0511287798
LOWER_LIMIT_DEGREES = -85.0511287798


@dataclass(frozen=True)
class Tile:
    """A node of the quad-tree.

    Attributes:
        parent: Tile this one was subdivided from (None for a root tile)
        sector: Geographic region covered by the tile
        level: Depth in the tree (0 = root)
        col: Column index, counted from the west
        row: Row index, counted from the south
    """

    parent: Tile | None = field(repr=False, compare=False)
    sector: GeoSector
    level: int
    col: int
    row: int

    @property
    def coord(self) -> TileCoord:
        return TileCoord(self.level, self.col, self.row)

    def create_sub_tiles(self, split_latitude: float, split_longitude: float) -> list[Tile]:
        """Split into four children at the given latitude and longitude.

        Returned in south-west, south-east, north-west, north-east order.
        """
        lower = self.sector.lower
        upper = self.sector.upper
        level = self.level + 1
        row = 2 * self.row
        col = 2 * self.col

        def child(lat0: float, lon0: float, lat1: float, lon1: float, c: int, r: int) -> Tile:
            return Tile(self, GeoSector.from_degrees(lat0, lon0, lat1, lon1), level, c, r)

        return [
            child(lower.latitude, lower.longitude, split_latitude, split_longitude, col, row),
            child(lower.latitude, split_longitude, split_latitude, upper.longitude, col + 1, row),
            child(split_latitude, lower.longitude, upper.latitude, split_longitude, col, row + 1),
            child(split_latitude, split_longitude, upper.latitude, upper.longitude, col + 1, row + 1),
        ]


class Pyramid(ABC):
    """Base class for a tile-addressing scheme over a projected surface."""

    def __init__(self, tile_width: int = DEFAULT_TILE_SIZE, tile_height: int = DEFAULT_TILE_SIZE) -> None:
        if tile_width < 1 or tile_height < 1:
            raise ConfigurationError(
                f"Tile dimensions must be positive, got {tile_width}x{tile_height}"
            )
        self._tile_width = tile_width
        self._tile_height = tile_height

    @property
    def tile_width(self) -> int:
        return self._tile_width

    @property
    def tile_height(self) -> int:
        return self._tile_height

    @abstractmethod
    def top_tiles(self) -> list[Tile]:
        """Root tiles covering the whole surface."""

    @abstractmethod
    def number_of_rows(self, level: int) -> int:
        """Number of tile rows at ``level``."""

    @abstractmethod
    def number_of_columns(self, level: int) -> int:
        """Number of tile columns at ``level``."""

    @abstractmethod
    def create_children(self, tile: Tile) -> list[Tile]:
        """Subdivide ``tile`` into its four children."""

    @abstractmethod
    def resolution_for(self, level: int) -> tuple[float, float]:
        """Degrees (latitude, longitude) covered by one pixel at ``level``."""

    @abstractmethod
    def uv_coordinates_of(self, sector: GeoSector, point: GeoPoint) -> tuple[float, float]:
        """Map ``point`` into the [0, 1] x [0, 1] frame of ``sector``.

        ``u`` grows eastwards from the west edge, ``v`` grows southwards
        from the north edge, matching image pixel order.
        """

    @abstractmethod
    def check_crs(self, srs: str) -> None:
        """Raise CoordinateSystemError if ``srs`` is not this pyramid's projection."""

    def get_tile(self, level: int, col: int, row: int) -> Tile | None:
        """Locate a tile by descending from the root tiles.

        Returns:
            The tile at the address, or None if the address is outside
            the pyramid at that level.
        """
        for top in self.top_tiles():
            tile = self._descend(top, level, col, row)
            if tile is not None:
                return tile
        return None

    def sector_for(self, level: int, col: int, row: int) -> GeoSector | None:
        tile = self.get_tile(level, col, row)
        return None if tile is None else tile.sector

    def _descend(self, tile: Tile, level: int, col: int, row: int) -> Tile | None:
        if level < tile.level:
            return None
        while tile.level < level:
            shift = level - tile.level - 1
            if (col >> (shift + 1), row >> (shift + 1)) != (tile.col, tile.row):
                return None
            target = (col >> shift, row >> shift)
            tile = next(
                child for child in self.create_children(tile)
                if (child.col, child.row) == target
            )
        if (tile.col, tile.row) != (col, row):
            return None
        return tile


def mercator_v(latitude: float) -> float:
    """Normalized Mercator V: 0 at the upper clamp latitude, 1 at the lower."""
    if latitude >= UPPER_LIMIT_DEGREES:
        return 0.0
    if latitude <= LOWER_LIMIT_DEGREES:
        return 1.0
    lat_sin = math.sin(math.radians(latitude))
    return 1.0 - ((math.log((1.0 + lat_sin) / (1.0 - lat_sin)) / (4 * math.pi)) + 0.5)


def latitude_from_mercator_v(v: float) -> float:
    """Inverse of :func:`mercator_v`."""
    return math.degrees((math.pi / 2) - 2 * math.atan(math.exp(-2 * math.pi * (1.0 - v - 0.5))))


def split_latitude(lower_latitude: float, upper_latitude: float) -> float:
    """Latitude halfway between two latitudes in projected space."""
    middle_v = (mercator_v(lower_latitude) + mercator_v(upper_latitude)) / 2
    return latitude_from_mercator_v(middle_v)


class WebMercatorPyramid(Pyramid):
    """Spherical (Web) Mercator quad-tree with a single full-sphere root.

    Latitudes split at the projected midpoint so every tile stays square
    in Mercator pixel space; longitudes split at the arithmetic center.
    """

    CRS_NAMES: frozenset[str] = frozenset({
        "EPSG:3857",
        "EPSG:900913",
        "EPSG:3785",
        "OSGEO:41001",
        "WGS 84 / PSEUDO-MERCATOR",
    })

    def __init__(self, tile_width: int = DEFAULT_TILE_SIZE, tile_height: int = DEFAULT_TILE_SIZE) -> None:
        super().__init__(tile_width, tile_height)
        self._top_tile = Tile(None, GeoSector.full_sphere(), 0, 0, 0)

    @classmethod
    def create_default(cls) -> WebMercatorPyramid:
        return cls(256, 256)

    def top_tiles(self) -> list[Tile]:
        return [self._top_tile]

    def number_of_rows(self, level: int) -> int:
        return 2 ** level

    def number_of_columns(self, level: int) -> int:
        return 2 ** level

    def create_children(self, tile: Tile) -> list[Tile]:
        sector = tile.sector
        return tile.create_sub_tiles(
            split_latitude(sector.lower.latitude, sector.upper.latitude),
            sector.center.longitude,
        )

    def resolution_for(self, level: int) -> tuple[float, float]:
        splits = 2 ** level
        delta_latitude = 180.0 / splits
        delta_longitude = 360.0 / splits
        return delta_latitude / self.tile_height, delta_longitude / self.tile_width

    def uv_coordinates_of(self, sector: GeoSector, point: GeoPoint) -> tuple[float, float]:
        u = (point.longitude - sector.lower.longitude) / sector.delta_longitude
        top = mercator_v(sector.upper.latitude)
        bottom = mercator_v(sector.lower.latitude)
        v = (mercator_v(point.latitude) - top) / (bottom - top)
        return u, v

    def check_crs(self, srs: str) -> None:
        if srs.strip().upper() not in self.CRS_NAMES:
            raise CoordinateSystemError(
                f"Invalid CRS {srs!r}, expected Web Mercator (EPSG:3857)"
            )

    def __repr__(self) -> str:
        return f"WebMercatorPyramid({self.tile_width}x{self.tile_height})"
