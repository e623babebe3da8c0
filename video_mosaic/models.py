"""Data models shared across the video mosaic pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

import numpy as np

if TYPE_CHECKING:
    from video_mosaic.catalog import BrightnessCatalog


@dataclass(frozen=True)
class ReferenceImage:
    """A normalised reference image and its measured brightness."""

    path: Path
    width: int
    height: int
    mean_brightness: float


@dataclass(frozen=True)
class CatalogEntry:
    """One ``(brightness, path)`` pair of the brightness catalog."""

    mean_brightness: float
    path: str


@dataclass(frozen=True)
class Tile:
    """Rectangular region of a frame's pixel grid."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class TileMatch:
    """Result of matching one tile against the catalog."""

    tile: Tile
    mean_brightness: Optional[float]
    reference_path: Optional[str]


@dataclass
class CompositePlacement:
    """Resized replacement ready to be stamped at ``(left, top)``."""

    buffer: np.ndarray
    left: int
    top: int


@dataclass
class FrameJob:
    """Unit of work handed to the worker pool for one extracted frame."""

    index: int
    input_path: Path
    output_path: Path
    catalog: "BrightnessCatalog" = field(repr=False)


class FrameOutcome(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class FrameResult:
    """Outcome of processing a single frame."""

    path: Path
    outcome: FrameOutcome
    output_path: Optional[Path] = None
    reason: Optional[str] = None
    tile_match_rate: float = 0.0
    matched_tiles: int = 0
    total_tiles: int = 0
    skipped_tiles: int = 0
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is FrameOutcome.SUCCESS

    @classmethod
    def failure(cls, path: Path, reason: str, *, elapsed: float = 0.0) -> "FrameResult":
        return cls(path=path, outcome=FrameOutcome.FAILURE, reason=reason, elapsed=elapsed)


@dataclass(frozen=True)
class RunSummary:
    """Aggregate counts for a batch of processed frames."""

    total: int
    succeeded: int
    failed: int
    warning_ratio: float
    output_path: Optional[Path] = None

    @property
    def failure_ratio(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.failed / self.total

    @property
    def degraded(self) -> bool:
        """True when enough frames failed that the output may look wrong."""
        return self.failed > 0 and self.failure_ratio > self.warning_ratio

    @classmethod
    def from_results(
        cls,
        results: Iterable[FrameResult],
        *,
        warning_ratio: float,
        output_path: Optional[Path] = None,
    ) -> "RunSummary":
        total = 0
        succeeded = 0
        for result in results:
            total += 1
            if result.succeeded:
                succeeded += 1
        return cls(
            total=total,
            succeeded=succeeded,
            failed=total - succeeded,
            warning_ratio=warning_ratio,
            output_path=output_path,
        )

    def with_output(self, output_path: Path) -> "RunSummary":
        return RunSummary(
            total=self.total,
            succeeded=self.succeeded,
            failed=self.failed,
            warning_ratio=self.warning_ratio,
            output_path=output_path,
        )


__all__ = [
    "CatalogEntry",
    "CompositePlacement",
    "FrameJob",
    "FrameOutcome",
    "FrameResult",
    "ReferenceImage",
    "RunSummary",
    "Tile",
    "TileMatch",
]
