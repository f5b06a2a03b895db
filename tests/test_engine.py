"""End-to-end tests for merging pyramids on disk."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from tilemixer.core.errors import (
    ConfigurationError,
    CoordinateSystemError,
    DrainTimeoutError,
    MixInterruptedError,
)
from tilemixer.core.geometry import WebMercatorPyramid
from tilemixer.core.types import TileCoord
from tilemixer.mixer.codec import CodecError, ImageCodec
from tilemixer.mixer.engine import TilesMixer, mix_directories, mix_subdirectories
from tilemixer.mixer.executor import CallerRunsExecutor
from tilemixer.mixer.progress import ProgressReport, ProgressSink

from conftest import BLUE, GREEN, RED, left_half

EXPECTED_TILES = {
    Path("0/0/0.jpg"),
    Path("1/0/0.jpg"),
    Path("1/1/1.jpg"),
    Path("2/1/1.jpg"),
    Path("2/2/2.jpg"),
    Path("3/2/2.jpg"),
}


def written_tiles(root: Path) -> set[Path]:
    return {p.relative_to(root) for p in root.rglob("*") if p.is_file()}


def assert_close(actual: tuple[int, ...], expected: tuple[int, ...], tolerance: int = 12) -> None:
    assert all(abs(a - e) <= tolerance for a, e in zip(actual, expected)), (actual, expected)


class RecordingSink(ProgressSink):
    def __init__(self) -> None:
        self.finished: list[ProgressReport] = []

    def inform(self, report: ProgressReport) -> None:
        pass

    def finish(self, report: ProgressReport) -> None:
        self.finished.append(report)


class BlockingCodec(ImageCodec):
    """Codec whose decode blocks, then fails once released."""

    def __init__(self) -> None:
        self.release = threading.Event()

    def decode(self, path: Path) -> Image.Image:
        self.release.wait(10)
        raise CodecError(f"Released before decoding {path}")


class TestMixDirectories:
    def test_writes_one_jpeg_per_merged_tile(
        self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid
    ):
        output = temp_dir / "merged"
        result = mix_directories(geometry, sample_sources, output)

        assert result.success
        assert result.tiles_total == 6
        assert result.tiles_written == 6
        assert written_tiles(output) == EXPECTED_TILES
        with Image.open(output / "3" / "2" / "2.jpg") as image:
            assert image.format == "JPEG"
            assert image.mode == "RGB"
            assert image.size == (64, 64)

    def test_partial_tile_is_back_filled(
        self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid
    ):
        output = temp_dir / "merged"
        mix_directories(geometry, sample_sources, output, quality=1.0)

        with Image.open(output / "2" / "1" / "1.jpg") as image:
            assert_close(image.getpixel((8, 32)), RED[:3])
            assert_close(image.getpixel((56, 32)), BLUE[:3])

    def test_transparent_areas_become_black(
        self, temp_dir: Path, make_tile, geometry: WebMercatorPyramid
    ):
        make_tile(temp_dir / "only.tiles", 2, 0, 0, left_half(RED))
        output = temp_dir / "merged"
        mix_directories(geometry, [temp_dir / "only.tiles"], output, quality=1.0)

        with Image.open(output / "2" / "0" / "0.jpg") as image:
            assert_close(image.getpixel((8, 32)), RED[:3])
            assert_close(image.getpixel((56, 32)), (0, 0, 0))

    def test_rerun_is_byte_identical(
        self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid
    ):
        first = temp_dir / "first"
        second = temp_dir / "second"
        mix_directories(geometry, sample_sources, first, max_workers=4)
        mix_directories(geometry, sample_sources, second, max_workers=1)

        for relative in EXPECTED_TILES:
            assert (first / relative).read_bytes() == (second / relative).read_bytes()

    def test_single_worker(self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid):
        result = mix_directories(geometry, sample_sources, temp_dir / "merged", max_workers=1)
        assert result.tiles_written == 6

    def test_corrupt_tile_is_isolated(
        self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid
    ):
        (sample_sources[0] / "1" / "1" / "1.png").write_bytes(b"not an image")
        output = temp_dir / "merged"
        sink = RecordingSink()

        result = mix_directories(geometry, sample_sources, output, progress_sink=sink)

        assert not result.success
        assert result.tiles_written == 5
        assert [f.coord for f in result.failures] == [TileCoord(1, 1, 1)]
        assert "Cannot decode" in result.failures[0].message
        assert written_tiles(output) == EXPECTED_TILES - {Path("1/1/1.jpg")}
        assert sink.finished[-1].steps_done == 6

    def test_progress_finishes_with_all_steps(
        self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid
    ):
        sink = RecordingSink()
        mix_directories(geometry, sample_sources, temp_dir / "merged", progress_sink=sink)
        (report,) = sink.finished
        assert report.steps_done == report.total_steps == 6
        assert report.percent == pytest.approx(100.0)

    def test_drain_timeout(self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid):
        codec = BlockingCodec()
        mixer = TilesMixer(
            geometry,
            sample_sources,
            temp_dir / "merged",
            codec=codec,
            max_workers=8,
            drain_timeout=0.05,
        )
        try:
            with pytest.raises(DrainTimeoutError):
                mixer.process()
        finally:
            codec.release.set()

    def test_interrupt_while_draining(
        self,
        sample_sources: list[Path],
        temp_dir: Path,
        geometry: WebMercatorPyramid,
        monkeypatch: pytest.MonkeyPatch,
    ):
        drain = CallerRunsExecutor.await_termination

        def interrupted(executor: CallerRunsExecutor, timeout: float | None = None) -> bool:
            drain(executor, 10)
            raise KeyboardInterrupt

        monkeypatch.setattr(CallerRunsExecutor, "await_termination", interrupted)
        mixer = TilesMixer(geometry, sample_sources, temp_dir / "merged", max_workers=2)

        with pytest.raises(MixInterruptedError) as excinfo:
            mixer.process()
        assert isinstance(excinfo.value.__cause__, KeyboardInterrupt)

    def test_jpeg_and_png_sources(
        self,
        temp_dir: Path,
        make_tile,
        geometry: WebMercatorPyramid,
        caplog: pytest.LogCaptureFixture,
    ):
        base = temp_dir / "base.tiles"
        overlay = temp_dir / "overlay.tiles"
        make_tile(base, 1, 0, 0, BLUE, ext=".jpg")
        make_tile(base, 2, 0, 0, GREEN, ext=".jpeg")
        make_tile(overlay, 0, 0, 0, left_half(RED))
        make_tile(overlay, 2, 1, 1, left_half(RED))
        output = temp_dir / "merged"

        with caplog.at_level(logging.DEBUG, logger="tilemixer.mixer.merged"):
            result = mix_directories(geometry, [base, overlay], output, quality=1.0)

        assert result.success
        assert result.tiles_written == 4
        # single JPEG tiles are opaque, so the overlay's root is never drawn under them
        assert caplog.text.count("is fully opaque") == 2
        with Image.open(output / "1" / "0" / "0.jpg") as image:
            assert_close(image.getpixel((32, 32)), BLUE[:3])
        with Image.open(output / "2" / "0" / "0.jpg") as image:
            assert_close(image.getpixel((32, 32)), GREEN[:3])
        with Image.open(output / "2" / "1" / "1.jpg") as image:
            assert_close(image.getpixel((8, 32)), RED[:3])
            assert_close(image.getpixel((56, 32)), BLUE[:3])


class TestSubdirectories:
    def test_discovers_tiles_directories(
        self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid
    ):
        root = sample_sources[0].parent
        (root / "notes").mkdir()
        output = temp_dir / "merged"

        result = mix_subdirectories(geometry, root, output)

        assert result.tiles_written == 6
        assert written_tiles(output) == EXPECTED_TILES

    def test_no_pyramids_found(self, temp_dir: Path, geometry: WebMercatorPyramid):
        (temp_dir / "in").mkdir()
        with pytest.raises(ConfigurationError, match="No source pyramids"):
            mix_subdirectories(geometry, temp_dir / "in", temp_dir / "out")


class TestConfiguration:
    def test_output_must_be_empty(
        self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid
    ):
        output = temp_dir / "merged"
        output.mkdir()
        (output / "old.jpg").write_bytes(b"")
        with pytest.raises(ConfigurationError, match="not empty"):
            TilesMixer(geometry, sample_sources, output)

    def test_missing_input(self, temp_dir: Path, geometry: WebMercatorPyramid):
        with pytest.raises(ConfigurationError, match="doesn't exist"):
            TilesMixer(geometry, [temp_dir / "nope"], temp_dir / "merged")
        assert not (temp_dir / "merged").exists()

    def test_no_inputs(self, temp_dir: Path, geometry: WebMercatorPyramid):
        with pytest.raises(ConfigurationError):
            TilesMixer(geometry, [], temp_dir / "merged")

    @pytest.mark.parametrize("quality", [-0.1, 1.5])
    def test_quality_out_of_range(
        self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid, quality: float
    ):
        with pytest.raises(ConfigurationError, match="Quality"):
            TilesMixer(geometry, sample_sources, temp_dir / "merged", quality)

    def test_priority_and_precedence_conflict(
        self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid
    ):
        with pytest.raises(ConfigurationError):
            TilesMixer(
                geometry,
                sample_sources,
                temp_dir / "merged",
                priority=lambda tile: 0,
                explicit_precedence=True,
            )

    def test_projection_mismatch(
        self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid
    ):
        (sample_sources[0] / "tilemapresource.xml").write_text(
            "<TileMap><SRS>EPSG:4326</SRS></TileMap>"
        )
        mixer = TilesMixer(geometry, sample_sources, temp_dir / "merged")
        with pytest.raises(CoordinateSystemError):
            mixer.process()
        assert not (temp_dir / "merged").exists()

    def test_empty_source_leaves_no_output(
        self, sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid
    ):
        empty = temp_dir / "empty.tiles"
        empty.mkdir()
        mixer = TilesMixer(geometry, [*sample_sources, empty], temp_dir / "out" / "merged")
        assert not (temp_dir / "out").exists()

        with pytest.raises(ConfigurationError, match="No tiles"):
            mixer.process()
        assert not (temp_dir / "out").exists()


def test_explicit_precedence_changes_overlap(
    sample_sources: list[Path], temp_dir: Path, geometry: WebMercatorPyramid
):
    output = temp_dir / "merged"
    # b.tiles is listed first, so a.tiles' solid red covers it
    mix_directories(
        geometry, list(reversed(sample_sources)), output, quality=1.0, explicit_precedence=True
    )
    with Image.open(output / "0" / "0" / "0.jpg") as image:
        pixels = np.asarray(image)
    assert_close(tuple(pixels[32, 8]), RED[:3])
    assert_close(tuple(pixels[32, 56]), RED[:3])
