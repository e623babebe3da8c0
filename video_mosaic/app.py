"""
Video mosaic facade.

Builds the brightness catalog from the swap images, streams frames out of the
source video, composes each frame on a bounded worker pool and encodes the
processed frames back into a video.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from time import perf_counter
from typing import Iterable, Iterator, List, Optional

from dotenv import load_dotenv

from video_mosaic.cache import ResizedReferenceCache
from video_mosaic.catalog import BrightnessCatalog, build_catalog
from video_mosaic.compositor import FrameCompositor
from video_mosaic.config import MosaicSettings
from video_mosaic.errors import FrameSourceError
from video_mosaic.models import FrameJob, FrameResult, RunSummary
from video_mosaic.progress import format_duration
from video_mosaic.video import FrameExtractor, VideoEncoder
from video_mosaic.workers import FramePool

# Load environment variables
load_dotenv()


class VideoMosaic:
    """Run the catalog -> frames -> composite -> encode pipeline."""

    def __init__(
        self,
        settings: MosaicSettings,
        *,
        logger: Optional[logging.Logger] = None,
        extractor: Optional[FrameExtractor] = None,
        encoder: Optional[VideoEncoder] = None,
    ) -> None:
        self.settings = settings
        self.logger = logger or logging.getLogger("video_mosaic")
        self.extractor = extractor or FrameExtractor(self.logger, fps=settings.fps)
        self.encoder = encoder or VideoEncoder(
            self.logger,
            fps=settings.fps,
            quality=settings.quality,
        )
        self.cache = ResizedReferenceCache(max_entries=settings.cache_max_entries or None)
        self.compositor = FrameCompositor(
            self.cache,
            tile_size=settings.tile_size,
            logger=self.logger,
            background_color=settings.background_color,
            contrast_gain=settings.contrast_gain,
            contrast_bias=settings.contrast_bias,
        )

    # ------------------------------------------------------------------
    # Workspace
    # ------------------------------------------------------------------

    def reset_directories(self) -> None:
        """Clear per-run output directories and make sure the layout exists."""
        settings = self.settings
        for directory in (settings.frames_dir, settings.frames_out_dir, settings.video_out_dir):
            shutil.rmtree(directory, ignore_errors=True)
            directory.mkdir(parents=True, exist_ok=True)
        settings.references_out_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    def build_catalog(self) -> BrightnessCatalog:
        return build_catalog(
            self.settings.reference_dir,
            self.settings.references_out_dir,
            canonical_size=self.settings.canonical_size,
            keep_duplicate_brightness=self.settings.keep_duplicate_brightness,
            logger=self.logger,
        )

    def frame_jobs(
        self,
        frame_paths: Iterable[Path],
        catalog: BrightnessCatalog,
    ) -> Iterator[FrameJob]:
        output_dir = self.settings.frames_out_dir
        for index, frame_path in enumerate(frame_paths):
            yield FrameJob(
                index=index,
                input_path=frame_path,
                output_path=output_dir / frame_path.name,
                catalog=catalog,
            )

    def process_frames(
        self,
        frame_paths: Iterable[Path],
        catalog: BrightnessCatalog,
        *,
        expected_total: Optional[int] = None,
    ) -> List[FrameResult]:
        pool = FramePool(
            self.compositor.process_job,
            max_workers=self.settings.workers,
            logger=self.logger,
            expected_total=expected_total,
        )
        return pool.run(self.frame_jobs(frame_paths, catalog))

    def summarize(self, results: Iterable[FrameResult]) -> RunSummary:
        results = list(results)
        summary = RunSummary.from_results(
            results,
            warning_ratio=self.settings.failure_warning_ratio,
        )
        self.logger.info(
            "Frame summary: %s total, %s succeeded, %s failed",
            summary.total,
            summary.succeeded,
            summary.failed,
        )
        if summary.degraded:
            self.logger.warning(
                "%s of %s frames failed (%0.1f%%); output quality may be degraded",
                summary.failed,
                summary.total,
                summary.failure_ratio * 100.0,
            )
        matched = sum(result.matched_tiles for result in results)
        total_tiles = sum(result.total_tiles for result in results)
        if total_tiles:
            self.logger.info(
                "Overall match rate: %s/%s tiles (%0.0f%%)",
                matched,
                total_tiles,
                matched / total_tiles * 100.0,
            )
        self.logger.debug("Resized reference cache: %s", self.cache.stats())
        return summary

    def encode(self, results: Iterable[FrameResult]) -> Path:
        frame_paths = [
            result.output_path
            for result in results
            if result.succeeded and result.output_path is not None
        ]
        return self.encoder.encode(frame_paths, self.settings.output_path)

    def run(self, video_path: Optional[Path] = None) -> RunSummary:
        """Process the source video end to end and return the run summary."""
        source = video_path or self.settings.video_path
        if source is None:
            raise FrameSourceError("No source video configured")

        started = perf_counter()
        self.reset_directories()
        catalog = self.build_catalog()

        self.logger.info("Starting video frame extraction and processing for %s", source)
        frames = self.extractor.stream(source, self.settings.frames_dir)
        results = self.process_frames(frames, catalog)
        summary = self.summarize(results)

        output_path = self.encode(results)
        self.logger.info(
            "Mosaic video written to %s in %s",
            output_path,
            format_duration(perf_counter() - started),
        )
        return summary.with_output(output_path)


__all__ = ["VideoMosaic"]
