"""
Command line interface for building mosaic videos.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from video_mosaic.app import VideoMosaic
from video_mosaic.config import MosaicSettings, load_config
from video_mosaic.errors import MosaicError
from video_mosaic.logging_setup import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="video-mosaic",
        description="Rebuild every frame of a video out of brightness-matched reference images.",
    )
    parser.add_argument("--config", default="config.json", help="Path to a JSON config file")
    parser.add_argument("--video", type=Path, help="Source video to convert")
    parser.add_argument("--swap-images", type=Path, help="Directory of reference images")
    parser.add_argument("--assets-dir", type=Path, help="Root directory for working files and output")
    parser.add_argument("--tile-size", type=int, help="Tile edge length in pixels")
    parser.add_argument("--workers", type=int, help="Number of frames processed concurrently")
    parser.add_argument("--fps", type=int, help="Frame rate used for extraction and encoding")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--no-log-file", action="store_true", help="Log to the console only")
    return parser


def apply_overrides(settings: MosaicSettings, args: argparse.Namespace) -> MosaicSettings:
    """Overlay command line options on top of the loaded settings."""
    overrides = {}
    if args.video is not None:
        overrides["video_path"] = args.video
    if args.swap_images is not None:
        overrides["swap_images_dir"] = args.swap_images
    if args.assets_dir is not None:
        overrides["assets_dir"] = args.assets_dir
    for name in ("tile_size", "workers", "fps"):
        value = getattr(args, name)
        if value is None:
            continue
        if value <= 0:
            raise SystemExit(f"--{name.replace('_', '-')} must be a positive integer")
        overrides[name] = value
    if args.no_log_file:
        overrides["log_file"] = None
    return dataclasses.replace(settings, **overrides) if overrides else settings


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = apply_overrides(load_config(args.config), args)
    logger = configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=settings.log_file,
    )

    try:
        summary = VideoMosaic(settings, logger=logger).run()
    except MosaicError as exc:
        logger.error("Mosaic run failed: %s", exc)
        return 1

    logger.info(
        "Done: %s/%s frames processed, video at %s",
        summary.succeeded,
        summary.total,
        summary.output_path,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
