"""Entry point for TileMixer."""

import sys

from tilemixer.mixer.__main__ import main


if __name__ == "__main__":
    sys.exit(main())
