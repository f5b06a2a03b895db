"""Image codec backed by Pillow.

Usage:
    from tilemixer.mixer.codec import ImageCodec

    codec = ImageCodec()
    image = codec.decode(Path("3/2/1.png"))        # RGBA
    codec.encode(image.convert("RGB"), Path("out.jpg"), quality=0.9)
"""

from __future__ import annotations

from pathlib import Path

from PIL import Image, UnidentifiedImageError

from tilemixer.core.errors import ConfigurationError


class CodecError(OSError):
    """Raised when a tile image cannot be read or written."""


def jpeg_quality(quality: float) -> int:
    """Convert a [0, 1] quality factor to Pillow's 1-100 JPEG scale.

    Raises:
        ConfigurationError: If quality is outside [0, 1]
    """
    if not 0.0 <= quality <= 1.0:
        raise ConfigurationError(f"Quality must be in [0, 1], got {quality}")
    return max(1, min(100, round(quality * 100)))


class ImageCodec:
    """Decode tiles to RGBA and encode merged tiles as JPEG."""

    format = "JPEG"

    def decode(self, path: Path) -> Image.Image:
        """Load an image fully into memory as RGBA.

        Raises:
            CodecError: If the file is missing or not a readable image
        """
        try:
            with Image.open(path) as image:
                image.load()
                return image.convert("RGBA")
        except (UnidentifiedImageError, OSError) as e:
            raise CodecError(f"Cannot decode {path}: {e}") from e

    def encode(self, image: Image.Image, path: Path, quality: float) -> None:
        """Write an opaque image to ``path``.

        Args:
            image: RGB image (JPEG carries no alpha channel)
            path: Output file; its parent directory must exist
            quality: Quality factor in [0, 1]

        Raises:
            CodecError: If the image cannot be encoded or written
        """
        q = jpeg_quality(quality)
        try:
            image.save(path, format=self.format, quality=q)
        except (OSError, ValueError) as e:
            raise CodecError(f"Cannot encode {path}: {e}") from e
