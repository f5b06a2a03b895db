"""Fatal error types raised by a mixing run.

Per-tile failures are not represented here: they are caught inside the
tile task and reported as ``TileFailure`` entries of the run summary.
"""

from __future__ import annotations


class MixerError(Exception):
    """Base class for errors that abort a mixing run."""


class ConfigurationError(MixerError, ValueError):
    """Invalid inputs detected before any tile is processed."""


class CoordinateSystemError(MixerError):
    """A source pyramid's projection does not match the target geometry."""


class DrainTimeoutError(MixerError):
    """The worker pool did not finish within the allotted time."""


class MixInterruptedError(MixerError):
    """Waiting for the worker pool to drain was interrupted."""
