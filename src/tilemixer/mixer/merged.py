"""Merged tree of output tiles built from several source pyramids."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Sequence

from PIL import Image

from tilemixer.config import BACKGROUND_COLOR
from tilemixer.core.geometry import Pyramid
from tilemixer.core.types import GeoSector, TileCoord

from .codec import ImageCodec
from .compositing import (
    PriorityKey,
    ancestor_box,
    blit_ancestor,
    by_max_level,
    composite,
    flatten,
    is_fully_opaque,
)
from .source import SourcePyramid, SourceTile

logger = logging.getLogger(__name__)


class MergedTile:
    """One output tile and the source tiles found at its address.

    At most one source tile per source pyramid. Only mutated while the
    merged tree is being built.
    """

    def __init__(self, coord: TileCoord) -> None:
        self.coord = coord
        self._source_tiles: list[SourceTile] = []

    @property
    def source_tiles(self) -> tuple[SourceTile, ...]:
        return tuple(self._source_tiles)

    def add_source_tile(self, source_tile: SourceTile) -> None:
        if source_tile.coord != self.coord:
            raise ValueError(f"{source_tile.coord} does not belong to {self.coord}")
        if self.contributes(source_tile.pyramid):
            raise ValueError(
                f"{source_tile.pyramid.name} already contributes to {self.coord}"
            )
        self._source_tiles.append(source_tile)

    def contributes(self, pyramid: SourcePyramid) -> bool:
        return any(tile.pyramid is pyramid for tile in self._source_tiles)

    def relative_path(self, extension: str) -> Path:
        level, col, row = self.coord
        return Path(str(level), str(col), f"{row}{extension}")

    def __repr__(self) -> str:
        names = ", ".join(tile.pyramid.name for tile in self._source_tiles)
        return f"MergedTile({self.coord.level}/{self.coord.col}/{self.coord.row}: {names})"


class MergedPyramid:
    """Output tiles keyed level -> column -> row.

    A merged tile exists for an address exactly when at least one
    source pyramid has a tile there. The tree is built synchronously in
    the constructor and only read afterwards.

    Args:
        geometry: Geometry shared by all source pyramids
        source_pyramids: Pyramids to merge
        priority: Draw-order key; tiles with larger keys are drawn on top
        codec: Image codec used to read source tiles
    """

    def __init__(
        self,
        geometry: Pyramid,
        source_pyramids: Sequence[SourcePyramid],
        priority: PriorityKey = by_max_level,
        codec: ImageCodec | None = None,
    ) -> None:
        self.geometry = geometry
        self.source_pyramids = tuple(source_pyramids)
        self.priority = priority
        self.codec = codec or ImageCodec()

        self._levels: dict[int, dict[int, dict[int, MergedTile]]] = {}
        self._tiles_count = 0
        for pyramid in self.source_pyramids:
            for source_tile in pyramid.iter_tiles():
                self._add_source_tile(source_tile)

        logger.info(
            "Merged %d source pyramids into %d tiles",
            len(self.source_pyramids), self._tiles_count,
        )

    def _add_source_tile(self, source_tile: SourceTile) -> None:
        level, col, row = source_tile.coord
        rows = self._levels.setdefault(level, {}).setdefault(col, {})
        tile = rows.get(row)
        if tile is None:
            tile = rows[row] = MergedTile(source_tile.coord)
            self._tiles_count += 1
        tile.add_source_tile(source_tile)

    @property
    def tiles_count(self) -> int:
        return self._tiles_count

    def get(self, level: int, col: int, row: int) -> MergedTile | None:
        return self._levels.get(level, {}).get(col, {}).get(row)

    def iter_tiles(self) -> Iterator[MergedTile]:
        """Yield tiles depth-first: levels, then columns, then rows ascending."""
        for level in sorted(self._levels):
            columns = self._levels[level]
            for col in sorted(columns):
                rows = columns[col]
                for row in sorted(rows):
                    yield rows[row]

    def find_ancestors(self, tile: MergedTile) -> list[SourceTile]:
        """Best ancestor from every pyramid that has no tile at this address."""
        ancestors = []
        for pyramid in self.source_pyramids:
            if tile.contributes(pyramid):
                continue
            ancestor = pyramid.best_ancestor(*tile.coord)
            if ancestor is not None:
                ancestors.append(ancestor)
        return ancestors

    def compose(self, tile: MergedTile) -> Image.Image:
        """Composite the image for one output tile (may carry transparency).

        - Every pyramid contributes: blend the sources.
        - Otherwise back-fill from the missing pyramids' ancestors, unless
          there are none or a single source is already fully opaque.
        """
        sources = sorted(tile.source_tiles, key=self.priority)
        images = [self.codec.decode(source.image_path) for source in sources]

        if len(sources) == len(self.source_pyramids):
            return composite(images)

        ancestors = self.find_ancestors(tile)
        if not ancestors:
            return composite(images)

        if len(images) == 1 and is_fully_opaque(images[0]):
            logger.debug("%s is fully opaque, skipping ancestors", tile)
            return images[0]

        ancestors.sort(key=self.priority)
        return self._compose_with_ancestors(tile, images, ancestors)

    def render(self, tile: MergedTile, background: tuple[int, int, int] = BACKGROUND_COLOR) -> Image.Image:
        """Composite a tile and flatten it for an opaque output format."""
        return flatten(self.compose(tile), background)

    def _sector(self, coord: TileCoord) -> GeoSector:
        sector = self.geometry.sector_for(*coord)
        if sector is None:
            raise ValueError(f"Tile {coord} is outside {self.geometry!r}")
        return sector

    def _compose_with_ancestors(
        self,
        tile: MergedTile,
        images: list[Image.Image],
        ancestors: list[SourceTile],
    ) -> Image.Image:
        logger.debug(
            "%s back-filled from %s",
            tile, ", ".join(f"{a.pyramid.name}@{a.coord.level}" for a in ancestors),
        )
        canvas = Image.new("RGBA", images[0].size, (0, 0, 0, 0))
        tile_sector = self._sector(tile.coord)

        for ancestor in ancestors:
            ancestor_image = self.codec.decode(ancestor.image_path)
            box = ancestor_box(
                self.geometry,
                tile_sector,
                self._sector(ancestor.coord),
                ancestor_image.width,
                ancestor_image.height,
            )
            blit_ancestor(canvas, ancestor_image, box)

        for image in images:
            canvas.alpha_composite(image)
        return canvas
