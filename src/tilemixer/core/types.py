"""Shared type definitions for tile addressing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple


class TileCoord(NamedTuple):
    """Coordinate of a tile in the pyramid.

    Attributes:
        level: Pyramid level (0 = root, lowest resolution)
        col: Column index (0-based, west to east)
        row: Row index (0-based, south to north)
    """

    level: int
    col: int
    row: int

    def parent(self) -> TileCoord:
        """Coordinate of the tile one level up that contains this one."""
        return TileCoord(self.level - 1, self.col // 2, self.row // 2)


class GeoPoint(NamedTuple):
    """A geographic position in degrees."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class GeoSector:
    """Rectangular region between a south-west and a north-east corner."""

    lower: GeoPoint
    upper: GeoPoint

    @classmethod
    def from_degrees(
        cls,
        lower_latitude: float,
        lower_longitude: float,
        upper_latitude: float,
        upper_longitude: float,
    ) -> GeoSector:
        return cls(
            GeoPoint(lower_latitude, lower_longitude),
            GeoPoint(upper_latitude, upper_longitude),
        )

    @classmethod
    def full_sphere(cls) -> GeoSector:
        return cls.from_degrees(-90.0, -180.0, 90.0, 180.0)

    @property
    def center(self) -> GeoPoint:
        return GeoPoint(
            (self.lower.latitude + self.upper.latitude) / 2,
            (self.lower.longitude + self.upper.longitude) / 2,
        )

    @property
    def delta_latitude(self) -> float:
        return self.upper.latitude - self.lower.latitude

    @property
    def delta_longitude(self) -> float:
        return self.upper.longitude - self.lower.longitude
