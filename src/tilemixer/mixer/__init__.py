"""Merging of several tile pyramids into one."""

from .codec import CodecError, ImageCodec
from .compositing import by_max_level, by_precedence
from .engine import (
    MixResult,
    TileFailure,
    TilesMixer,
    mix_directories,
    mix_subdirectories,
)
from .merged import MergedPyramid, MergedTile
from .progress import LoggingProgressSink, Progress, ProgressReport, ProgressSink
from .source import SourcePyramid, SourceTile

__all__ = [
    "CodecError",
    "ImageCodec",
    "by_max_level",
    "by_precedence",
    "MixResult",
    "TileFailure",
    "TilesMixer",
    "mix_directories",
    "mix_subdirectories",
    "MergedPyramid",
    "MergedTile",
    "LoggingProgressSink",
    "Progress",
    "ProgressReport",
    "ProgressSink",
    "SourcePyramid",
    "SourceTile",
]
