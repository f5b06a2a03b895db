"""TileMixer - merge Web Mercator tile pyramids with ancestor back-fill."""

__version__ = "0.1.0"
