"""Per-frame tiling, matching and compositing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from time import perf_counter
from typing import List, Sequence, Tuple

import cv2
import numpy as np

from video_mosaic.brightness import mean_brightness
from video_mosaic.cache import ResizedReferenceCache
from video_mosaic.catalog import BrightnessCatalog
from video_mosaic.errors import (
    DecodeError,
    EmptyBrightnessInput,
    EncodeError,
    FrameProcessingError,
    TileProcessingError,
)
from video_mosaic.imaging import (
    adjust_contrast,
    blank_canvas,
    decode_image,
    encode_composite,
    stamp_placements,
    to_grayscale,
    write_file,
)
from video_mosaic.models import (
    CompositePlacement,
    FrameJob,
    FrameOutcome,
    FrameResult,
    TileMatch,
)
from video_mosaic.tiles import iter_tiles


@dataclass
class CompositeFrame:
    """A composed mosaic canvas with its tile accounting."""

    canvas: np.ndarray
    matched_tiles: int
    total_tiles: int
    skipped_tiles: int

    @property
    def match_rate(self) -> float:
        if self.total_tiles <= 0:
            return 0.0
        return self.matched_tiles / self.total_tiles


class FrameCompositor:
    """Replace every tile of a frame with its nearest-brightness reference."""

    def __init__(
        self,
        cache: ResizedReferenceCache,
        *,
        tile_size: int,
        logger: logging.Logger,
        background_color: Tuple[int, int, int] = (0, 0, 0),
        contrast_gain: float = 1.0,
        contrast_bias: float = 0.0,
    ) -> None:
        if tile_size <= 0:
            raise ValueError(f"Tile size must be positive, got {tile_size}")
        self.cache = cache
        self.tile_size = tile_size
        self.logger = logger
        self.background_color = background_color
        self.contrast_gain = contrast_gain
        self.contrast_bias = contrast_bias

    # ------------------------------------------------------------------
    # Tile matching
    # ------------------------------------------------------------------

    def prepare_grayscale(self, frame: np.ndarray) -> np.ndarray:
        return adjust_contrast(to_grayscale(frame), self.contrast_gain, self.contrast_bias)

    def match_tiles(self, gray: np.ndarray, catalog: BrightnessCatalog) -> List[TileMatch]:
        height, width = gray.shape[:2]
        matches: List[TileMatch] = []
        for tile in iter_tiles(width, height, self.tile_size):
            region = gray[tile.y : tile.y + tile.height, tile.x : tile.x + tile.width]
            try:
                brightness = mean_brightness(region)
            except EmptyBrightnessInput:
                matches.append(TileMatch(tile=tile, mean_brightness=None, reference_path=None))
                continue
            matches.append(
                TileMatch(
                    tile=tile,
                    mean_brightness=brightness,
                    reference_path=catalog.nearest(brightness),
                )
            )
        return matches

    def _placement_for(self, match: TileMatch) -> CompositePlacement:
        tile = match.tile
        try:
            buffer = self.cache.get(match.reference_path, tile.width, tile.height)
        except (DecodeError, OSError, ValueError, cv2.error) as exc:
            raise TileProcessingError(tile.x, tile.y, str(exc)) from exc
        if buffer.shape[:2] != (tile.height, tile.width):
            raise TileProcessingError(
                tile.x,
                tile.y,
                f"replacement is {buffer.shape[1]}x{buffer.shape[0]}, expected {tile.width}x{tile.height}",
            )
        return CompositePlacement(buffer=buffer, left=tile.x, top=tile.y)

    def build_placements(
        self,
        matches: Sequence[TileMatch],
    ) -> Tuple[List[CompositePlacement], int]:
        """Resolve replacement buffers; returns placements and the skipped count."""
        placements: List[CompositePlacement] = []
        skipped = 0
        for match in matches:
            if match.reference_path is None:
                continue
            try:
                placements.append(self._placement_for(match))
            except TileProcessingError as exc:
                skipped += 1
                self.logger.warning("Skipping tile: %s", exc)
        return placements, skipped

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def plan(
        self,
        frame: np.ndarray,
        catalog: BrightnessCatalog,
    ) -> Tuple[List[CompositePlacement], int, int]:
        """Return the placements for ``frame`` with its tile and skipped counts."""
        matches = self.match_tiles(self.prepare_grayscale(frame), catalog)
        placements, skipped = self.build_placements(matches)
        return placements, len(matches), skipped

    def compose(self, frame: np.ndarray, catalog: BrightnessCatalog) -> CompositeFrame:
        height, width = frame.shape[:2]
        placements, total_tiles, skipped = self.plan(frame, catalog)
        canvas = stamp_placements(blank_canvas(width, height, self.background_color), placements)
        return CompositeFrame(
            canvas=canvas,
            matched_tiles=len(placements),
            total_tiles=total_tiles,
            skipped_tiles=skipped,
        )

    def process_job(self, job: FrameJob) -> FrameResult:
        """Compose one frame file and write the result to ``job.output_path``."""
        started = perf_counter()
        try:
            data = job.input_path.read_bytes()
        except OSError as exc:
            raise FrameProcessingError(job.input_path, f"unable to read frame: {exc}") from exc

        try:
            frame = decode_image(data, job.input_path)
            height, width = frame.shape[:2]
            placements, total_tiles, skipped = self.plan(frame, job.catalog)
            encoded = encode_composite(
                width,
                height,
                placements,
                background=self.background_color,
                path=job.output_path,
            )
            write_file(encoded, job.output_path)
        except (DecodeError, EncodeError, cv2.error) as exc:
            raise FrameProcessingError(job.input_path, str(exc)) from exc

        matched = len(placements)
        match_rate = matched / total_tiles if total_tiles else 0.0
        self.logger.debug(
            "Match rate for %s: %s/%s tiles (%0.0f%%)",
            job.input_path.name,
            matched,
            total_tiles,
            match_rate * 100.0,
        )
        return FrameResult(
            path=job.input_path,
            outcome=FrameOutcome.SUCCESS,
            output_path=job.output_path,
            tile_match_rate=match_rate,
            matched_tiles=matched,
            total_tiles=total_tiles,
            skipped_tiles=skipped,
            elapsed=perf_counter() - started,
        )


__all__ = ["CompositeFrame", "FrameCompositor"]
