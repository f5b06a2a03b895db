"""CLI entry point for merging tile pyramids."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from tqdm import tqdm

from tilemixer.config import DEFAULT_TILE_SIZE, JPEG_QUALITY, SOURCE_DIR_SUFFIX
from tilemixer.core.errors import MixerError
from tilemixer.core.geometry import WebMercatorPyramid

from .engine import MixResult, TilesMixer
from .listing import find_source_directories
from .progress import ProgressReport, ProgressSink, format_duration

logger = logging.getLogger(__name__)

#: Seconds between progress bar refreshes
BAR_REFRESH_SECONDS = 0.5


class TqdmProgressSink(ProgressSink):
    """Drives a tqdm bar from progress reports."""

    def __init__(self, bar: tqdm) -> None:
        self._bar = bar

    def inform(self, report: ProgressReport) -> None:
        if self._bar.total != report.total_steps:
            self._bar.reset(total=report.total_steps)
        self._bar.n = report.steps_done
        self._bar.refresh()


def _print_header(
    input_dirs: list[Path], output_dir: Path, quality: float, tile_size: int, precedence: str
) -> None:
    """Print the CLI banner with processing parameters."""
    click.echo(click.style("TileMixer", fg="cyan", bold=True))
    click.echo(click.style("=" * 40, fg="cyan"))
    click.echo(f"Merging {len(input_dirs)} pyramid(s):")
    for directory in input_dirs:
        click.echo(f"  {directory}")
    click.echo(f"Output directory: {output_dir}")
    click.echo(f"Tile size: {tile_size}px | JPEG quality: {quality:.2f} | Priority: {precedence}")
    click.echo()


def _print_summary(result: MixResult) -> None:
    """Print the colored run summary, listing failed tiles as warnings."""
    click.echo()
    click.echo(click.style("=" * 40, fg="cyan"))

    parts = [click.style(f"{result.tiles_written} tiles written", fg="green")]
    if result.failures:
        parts.append(click.style(f"{len(result.failures)} failed", fg="yellow"))
    elapsed = format_duration(int(result.elapsed_seconds * 1000))
    click.echo(click.style("Completed: ", bold=True) + ", ".join(parts) + f" in {elapsed}")

    if result.failures:
        click.echo()
        click.echo(click.style("Failed tiles (left out of the output):", fg="yellow"))
        for failure in result.failures:
            level, col, row = failure.coord
            click.echo(f"  {level}/{col}/{row}: {failure.message}")


@click.command()
@click.argument(
    "inputs",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option(
    "-o",
    "--output",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Output directory (must be missing or empty)",
)
@click.option(
    "--subdirectories",
    "-s",
    is_flag=True,
    help=f"Treat INPUT as a root holding *{SOURCE_DIR_SUFFIX} pyramid directories",
)
@click.option(
    "--quality",
    "-q",
    type=click.FloatRange(0.0, 1.0),
    default=JPEG_QUALITY,
    help=f"JPEG quality factor (default: {JPEG_QUALITY})",
)
@click.option(
    "--tile-size",
    "-t",
    type=click.IntRange(16, 4096),
    default=DEFAULT_TILE_SIZE,
    help=f"Tile size in pixels (default: {DEFAULT_TILE_SIZE})",
)
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(min=1),
    default=None,
    help="Worker threads (default: twice the CPU count)",
)
@click.option(
    "--precedence",
    type=click.Choice(["max-level", "argument-order"]),
    default="max-level",
    help="Which source wins on overlap: the deepest pyramid, or the last INPUT",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(
    inputs: tuple[Path, ...],
    output: Path,
    subdirectories: bool,
    quality: float,
    tile_size: int,
    workers: int | None,
    precedence: str,
    verbose: bool,
) -> None:
    """Merge Web Mercator tile pyramids into one.

    Each INPUT is a pyramid laid out as LEVEL/COLUMN/ROW.png. Where a
    source has no tile, the deepest available ancestor tile of that
    source is stretched in underneath the other sources' tiles.

    Examples:

        # Merge two pyramids
        python -m tilemixer.mixer a.tiles b.tiles -o merged/

        # Merge every *.tiles directory under a root
        python -m tilemixer.mixer ./sources -s -o merged/
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if subdirectories:
            if len(inputs) != 1:
                raise click.UsageError("--subdirectories takes exactly one INPUT root")
            input_dirs = find_source_directories(inputs[0])
            if not input_dirs:
                raise MixerError(f"No *{SOURCE_DIR_SUFFIX} directories found in {inputs[0]}")
        else:
            input_dirs = list(inputs)

        _print_header(input_dirs, output, quality, tile_size, precedence)

        geometry = WebMercatorPyramid(tile_size, tile_size)
        with tqdm(total=0, desc="Merging tiles", unit="tile") as bar:
            mixer = TilesMixer(
                geometry,
                input_dirs,
                output,
                quality,
                explicit_precedence=precedence == "argument-order",
                max_workers=workers,
                progress_sink=TqdmProgressSink(bar),
                progress_interval=BAR_REFRESH_SECONDS,
            )
            result = mixer.process()
    except MixerError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    _print_summary(result)


if __name__ == "__main__":
    main()
