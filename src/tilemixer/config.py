"""Centralized configuration for TileMixer.

All tunable parameters are defined here with sensible defaults.
Values can be overridden via environment variables.

Environment Variables:
    TILEMIXER_JPEG_QUALITY: Output JPEG quality in [0, 1] (default: 0.9)
    TILEMIXER_TILE_SIZE: Tile edge length in pixels (default: 256)
    TILEMIXER_WORKER_SCALE: Worker threads per CPU core (default: 2)
    TILEMIXER_PROGRESS_INTERVAL: Seconds between progress reports (default: 10)
    TILEMIXER_DRAIN_TIMEOUT: Seconds to wait for the worker pool to drain (default: 172800)
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


def _get_env_int(name: str, default: int) -> int:
    """Get an integer from environment variable with fallback."""
    value = os.environ.get(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning(
                "Invalid integer for %s: %r, using default %d", name, value, default
            )
    return default


def _get_env_float(name: str, default: float) -> float:
    """Get a float from environment variable with fallback."""
    value = os.environ.get(name)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            logger.warning(
                "Invalid number for %s: %r, using default %s", name, value, default
            )
    return default


# =============================================================================
# Pyramid Geometry
# =============================================================================

#: Default tile size in pixels (tiles are square)
DEFAULT_TILE_SIZE: int = _get_env_int("TILEMIXER_TILE_SIZE", 256)


# =============================================================================
# Input / Output Layout
# =============================================================================

#: Suffix of pyramid directories discovered under a subdirectories root
SOURCE_DIR_SUFFIX: str = ".tiles"

#: Image extensions recognized as source tiles
TILE_EXTENSIONS: frozenset[str] = frozenset({".png", ".jpg", ".jpeg"})

#: Extension of merged output tiles
OUTPUT_EXTENSION: str = ".jpg"

#: JPEG quality for merged tiles, as a fraction in [0, 1]
JPEG_QUALITY: float = _get_env_float("TILEMIXER_JPEG_QUALITY", 0.9)

#: Opaque color merged tiles are flattened onto before encoding
BACKGROUND_COLOR: tuple[int, int, int] = (0, 0, 0)


# =============================================================================
# Execution
# =============================================================================

#: Worker threads per CPU core (work is I/O bound with short CPU bursts)
WORKER_SCALE_FACTOR: int = _get_env_int("TILEMIXER_WORKER_SCALE", 2)

#: Minimum seconds between two progress reports
PROGRESS_INTERVAL_SECONDS: float = _get_env_float("TILEMIXER_PROGRESS_INTERVAL", 10.0)

#: Seconds to wait for all submitted tiles to finish (2 days)
DRAIN_TIMEOUT_SECONDS: float = _get_env_float("TILEMIXER_DRAIN_TIMEOUT", 2 * 24 * 60 * 60)


# =============================================================================
# Validation
# =============================================================================


def _validate_config() -> None:
    """Validate configuration values and log warnings for out-of-range settings."""
    global DEFAULT_TILE_SIZE, JPEG_QUALITY, WORKER_SCALE_FACTOR
    global PROGRESS_INTERVAL_SECONDS, DRAIN_TIMEOUT_SECONDS

    if DEFAULT_TILE_SIZE < 1:
        logger.warning(
            "DEFAULT_TILE_SIZE=%d is too low, clamping to 1", DEFAULT_TILE_SIZE
        )
        DEFAULT_TILE_SIZE = 1

    if not 0.0 <= JPEG_QUALITY <= 1.0:
        clamped = min(max(JPEG_QUALITY, 0.0), 1.0)
        logger.warning(
            "JPEG_QUALITY=%s is outside [0, 1], clamping to %s", JPEG_QUALITY, clamped
        )
        JPEG_QUALITY = clamped

    if WORKER_SCALE_FACTOR < 1:
        logger.warning(
            "WORKER_SCALE_FACTOR=%d is too low, clamping to 1", WORKER_SCALE_FACTOR
        )
        WORKER_SCALE_FACTOR = 1

    if PROGRESS_INTERVAL_SECONDS < 0:
        logger.warning(
            "PROGRESS_INTERVAL_SECONDS=%s is negative, clamping to 0",
            PROGRESS_INTERVAL_SECONDS,
        )
        PROGRESS_INTERVAL_SECONDS = 0.0

    if DRAIN_TIMEOUT_SECONDS <= 0:
        logger.warning(
            "DRAIN_TIMEOUT_SECONDS=%s is not positive, using 2 days",
            DRAIN_TIMEOUT_SECONDS,
        )
        DRAIN_TIMEOUT_SECONDS = 2 * 24 * 60 * 60


_validate_config()
