"""CLI entrypoint for the video mosaic pipeline."""

import sys

from video_mosaic.cli import main


if __name__ == "__main__":
    sys.exit(main())
