"""Entry point that merges source pyramids into one output pyramid."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from tilemixer.config import (
    BACKGROUND_COLOR,
    DRAIN_TIMEOUT_SECONDS,
    JPEG_QUALITY,
    OUTPUT_EXTENSION,
    PROGRESS_INTERVAL_SECONDS,
)
from tilemixer.core.errors import (
    ConfigurationError,
    DrainTimeoutError,
    MixInterruptedError,
)
from tilemixer.core.geometry import Pyramid
from tilemixer.core.types import TileCoord

from .codec import ImageCodec, jpeg_quality
from .compositing import PriorityKey, by_max_level, by_precedence
from .executor import CallerRunsExecutor, DirectoryGuard
from .listing import (
    check_directory,
    check_output_directory,
    ensure_empty_directory,
    find_source_directories,
)
from .merged import MergedPyramid, MergedTile
from .progress import Progress, ProgressSink
from .source import SourcePyramid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TileFailure:
    """A tile that could not be written."""

    coord: TileCoord
    message: str


@dataclass
class MixResult:
    """Summary of a finished run."""

    tiles_total: int
    tiles_written: int
    failures: list[TileFailure] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.failures


class _RunState:
    """Outcome counters shared by the tile tasks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.written = 0
        self.failures: list[TileFailure] = []

    def tile_written(self) -> None:
        with self._lock:
            self.written += 1

    def tile_failed(self, failure: TileFailure) -> None:
        with self._lock:
            self.failures.append(failure)


class TilesMixer:
    """Merge several source pyramids into ``output_directory``.

    Inputs are validated on construction; ``process()`` indexes the
    sources, builds the merged tree, then renders every merged tile on a
    bounded worker pool.

    Args:
        geometry: Geometry shared by every source pyramid
        input_directories: Roots of the source pyramids
        output_directory: Missing or empty directory for the result; created
            once the sources have been indexed
        quality: JPEG quality factor in [0, 1]
        priority: Draw-order key (default: deeper pyramids on top)
        explicit_precedence: Draw pyramids in ``input_directories`` order
            instead, later ones on top
        max_workers: Worker threads (default: CPU count times two)
        codec: Image codec for reading and writing tiles
        progress_sink: Receiver of progress reports
        progress_interval: Minimum seconds between progress reports
        drain_timeout: Seconds to wait for the pool to finish
        background: Color transparent areas are flattened onto

    Raises:
        ConfigurationError: On missing inputs, a bad quality or a
            non-empty output directory
    """

    def __init__(
        self,
        geometry: Pyramid,
        input_directories: Sequence[Path | str],
        output_directory: Path | str,
        quality: float = JPEG_QUALITY,
        *,
        priority: PriorityKey | None = None,
        explicit_precedence: bool = False,
        max_workers: int | None = None,
        codec: ImageCodec | None = None,
        progress_sink: ProgressSink | None = None,
        progress_interval: float = PROGRESS_INTERVAL_SECONDS,
        drain_timeout: float = DRAIN_TIMEOUT_SECONDS,
        background: tuple[int, int, int] = BACKGROUND_COLOR,
    ) -> None:
        if priority is not None and explicit_precedence:
            raise ConfigurationError("Use either a priority key or explicit precedence, not both")
        if not input_directories:
            raise ConfigurationError("At least one input directory is required")
        jpeg_quality(quality)

        self.geometry = geometry
        self.input_directories = [Path(d) for d in input_directories]
        for directory in self.input_directories:
            check_directory(directory)
        self.output_directory = Path(output_directory)
        check_output_directory(self.output_directory)

        self.quality = quality
        self._priority = priority
        self._explicit_precedence = explicit_precedence
        self._max_workers = max_workers
        self.codec = codec or ImageCodec()
        self._progress_sink = progress_sink
        self._progress_interval = progress_interval
        self._drain_timeout = drain_timeout
        self.background = background

    def source_pyramids(self) -> list[SourcePyramid]:
        return [SourcePyramid(directory, self.geometry) for directory in self.input_directories]

    def _priority_for(self, pyramids: Sequence[SourcePyramid]) -> PriorityKey:
        if self._explicit_precedence:
            return by_precedence(pyramids)
        return self._priority or by_max_level

    def process(self) -> MixResult:
        """Run the merge.

        Returns:
            MixResult with per-tile failures (a failed tile is left absent)

        Raises:
            ConfigurationError: If a source holds no tiles
            CoordinateSystemError: If a source declares another projection
            DrainTimeoutError: If the pool does not finish in time
            MixInterruptedError: If waiting for the pool is interrupted
        """
        started = time.monotonic()

        pyramids = self.source_pyramids()
        merged = MergedPyramid(
            self.geometry, pyramids, priority=self._priority_for(pyramids), codec=self.codec
        )
        ensure_empty_directory(self.output_directory)
        progress = Progress(
            merged.tiles_count, self._progress_sink, interval_seconds=self._progress_interval
        )
        guard = DirectoryGuard()
        state = _RunState()

        executor = CallerRunsExecutor(self._max_workers)
        logger.info(
            "Merging %d tiles into %s with %d workers",
            merged.tiles_count, self.output_directory, executor.max_workers,
        )
        try:
            for tile in merged.iter_tiles():
                executor.execute(self._process_tile, merged, tile, guard, progress, state)
            try:
                drained = executor.await_termination(self._drain_timeout)
            except KeyboardInterrupt as e:
                raise MixInterruptedError("Interrupted while waiting for tiles to finish") from e
            if not drained:
                raise DrainTimeoutError(
                    f"Tiles still running after {self._drain_timeout:.0f} seconds"
                )
        finally:
            executor.shutdown(wait=False)

        progress.finish()
        elapsed = time.monotonic() - started
        failures = sorted(state.failures, key=lambda f: f.coord)
        if failures:
            logger.warning("%d of %d tiles failed", len(failures), merged.tiles_count)
        logger.info("Wrote %d tiles in %.1fs", state.written, elapsed)
        return MixResult(merged.tiles_count, state.written, failures, elapsed)

    def _process_tile(
        self,
        merged: MergedPyramid,
        tile: MergedTile,
        guard: DirectoryGuard,
        progress: Progress,
        state: _RunState,
    ) -> None:
        try:
            image = merged.render(tile, self.background)
            output = self.output_directory / tile.relative_path(OUTPUT_EXTENSION)
            guard.ensure(output.parent)
            self.codec.encode(image, output, self.quality)
        except Exception as e:
            level, col, row = tile.coord
            logger.warning("Failed to merge tile %d/%d/%d: %s", level, col, row, e)
            state.tile_failed(TileFailure(tile.coord, str(e)))
        else:
            state.tile_written()
        finally:
            progress.step_done()


def mix_directories(
    geometry: Pyramid,
    input_directories: Sequence[Path | str],
    output_directory: Path | str,
    quality: float = JPEG_QUALITY,
    **kwargs,
) -> MixResult:
    """Merge the given pyramid directories (see :class:`TilesMixer`)."""
    return TilesMixer(geometry, input_directories, output_directory, quality, **kwargs).process()


def mix_subdirectories(
    geometry: Pyramid,
    input_root: Path | str,
    output_directory: Path | str,
    quality: float = JPEG_QUALITY,
    **kwargs,
) -> MixResult:
    """Merge every ``*.tiles`` directory found directly under ``input_root``."""
    directories = find_source_directories(Path(input_root))
    if not directories:
        raise ConfigurationError(f"No source pyramids found in {str(input_root)!r}")
    return mix_directories(geometry, directories, output_directory, quality, **kwargs)
