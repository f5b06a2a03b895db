"""Index of one tile pyramid on disk (``level/column/row.ext``)."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from tilemixer.config import TILE_EXTENSIONS
from tilemixer.core.errors import ConfigurationError
from tilemixer.core.geometry import Pyramid
from tilemixer.core.types import TileCoord

from .listing import check_directory, list_entries

logger = logging.getLogger(__name__)

TILEMAP_RESOURCE = "tilemapresource.xml"


@dataclass(frozen=True, eq=False)
class SourceTile:
    """A tile image belonging to one source pyramid."""

    coord: TileCoord
    pyramid: SourcePyramid = field(repr=False)
    image_path: Path

    @property
    def pyramid_max_level(self) -> int:
        return self.pyramid.max_level


def read_srs(directory: Path) -> str | None:
    """Read the ``<SRS>`` of a gdal2tiles ``tilemapresource.xml``, if present."""
    resource = directory / TILEMAP_RESOURCE
    if not resource.is_file():
        return None
    try:
        root = ET.parse(resource).getroot()
    except ET.ParseError as e:
        raise ConfigurationError(f"Malformed {resource}: {e}") from e
    srs = root.find("SRS")
    if srs is None or not (srs.text or "").strip():
        return None
    return srs.text.strip()


def _parse_index(name: str) -> int | None:
    return int(name) if name.isascii() and name.isdigit() else None


class SourcePyramid:
    """Tiles of one input pyramid, keyed level -> column -> row.

    Built once from the directory listing and read-only afterwards, so
    it can be shared by any number of worker threads.

    Args:
        directory: Root of the pyramid (holds the level directories)
        geometry: Target geometry; when given, the pyramid's declared
            SRS is checked against it and out-of-range addresses are
            skipped
    """

    def __init__(self, directory: Path, geometry: Pyramid | None = None) -> None:
        self.directory = Path(directory)
        check_directory(self.directory)

        if geometry is not None:
            srs = read_srs(self.directory)
            if srs is not None:
                geometry.check_crs(srs)

        self._levels: dict[int, dict[int, dict[int, SourceTile]]] = {}
        self._tiles_count = 0
        self._scan(geometry)

        if not self._levels:
            raise ConfigurationError(f"No tiles found in {str(self.directory)!r}")
        self._max_level = max(self._levels)

        logger.info(
            "Indexed %s: %d tiles, levels %d-%d",
            self.name, self._tiles_count, min(self._levels), self._max_level,
        )

    @property
    def name(self) -> str:
        return self.directory.name

    @property
    def max_level(self) -> int:
        """Deepest level present; used as the compositing priority key."""
        return self._max_level

    @property
    def tiles_count(self) -> int:
        return self._tiles_count

    @property
    def levels(self) -> list[int]:
        return sorted(self._levels)

    def tile_at(self, level: int, col: int, row: int) -> SourceTile | None:
        return self._levels.get(level, {}).get(col, {}).get(row)

    def best_ancestor(self, level: int, col: int, row: int) -> SourceTile | None:
        """Find the nearest strict ancestor of an address present in this pyramid.

        Walks up one level at a time (halving column and row) and returns
        the first tile found, or None once level 0 has been checked.
        """
        coord = TileCoord(level, col, row)
        while coord.level > 0:
            coord = coord.parent()
            tile = self.tile_at(*coord)
            if tile is not None:
                return tile
        return None

    def iter_tiles(self) -> Iterator[SourceTile]:
        """Yield every tile, levels then columns then rows ascending."""
        for level in sorted(self._levels):
            columns = self._levels[level]
            for col in sorted(columns):
                rows = columns[col]
                for row in sorted(rows):
                    yield rows[row]

    def _scan(self, geometry: Pyramid | None) -> None:
        for level_entry in list_entries(self.directory):
            level = _parse_index(level_entry.name)
            if level is None or not level_entry.is_dir:
                logger.debug("Ignoring %s", level_entry.path)
                continue
            for col_entry in list_entries(level_entry.path):
                col = _parse_index(col_entry.name)
                if col is None or not col_entry.is_dir:
                    logger.debug("Ignoring %s", col_entry.path)
                    continue
                for row_entry in list_entries(col_entry.path):
                    self._add_file(level, col, row_entry.path, row_entry.is_dir, geometry)

    def _add_file(
        self,
        level: int,
        col: int,
        path: Path,
        is_dir: bool,
        geometry: Pyramid | None,
    ) -> None:
        row = _parse_index(path.stem)
        if is_dir or row is None or path.suffix.lower() not in TILE_EXTENSIONS:
            logger.debug("Ignoring %s", path)
            return

        if geometry is not None and (
            col >= geometry.number_of_columns(level) or row >= geometry.number_of_rows(level)
        ):
            logger.warning("Ignoring %s: outside level %d of %r", path, level, geometry)
            return

        rows = self._levels.setdefault(level, {}).setdefault(col, {})
        if row in rows:
            logger.warning(
                "Duplicate tile %d/%d/%d in %s, keeping %s",
                level, col, row, self.name, rows[row].image_path.name,
            )
            return
        rows[row] = SourceTile(TileCoord(level, col, row), self, path)
        self._tiles_count += 1

    def __repr__(self) -> str:
        return f"SourcePyramid({str(self.directory)!r})"
