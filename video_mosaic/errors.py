"""Exception hierarchy for the video mosaic pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]


class MosaicError(Exception):
    """Base class for every error raised by the mosaic pipeline."""


class DecodeError(MosaicError):
    """Image bytes could not be decoded into pixels."""

    def __init__(self, path: Optional[PathLike], reason: str) -> None:
        self.path = None if path is None else Path(path)
        self.reason = reason
        super().__init__(f"Failed to decode {self.path or '<buffer>'}: {reason}")


class EncodeError(MosaicError):
    """Pixels could not be encoded or written out."""

    def __init__(self, path: Optional[PathLike], reason: str) -> None:
        self.path = None if path is None else Path(path)
        self.reason = reason
        super().__init__(f"Failed to encode {self.path or '<buffer>'}: {reason}")


class CatalogBuildError(MosaicError):
    """A reference image could not be normalised; the catalog is unusable."""

    def __init__(self, path: Optional[PathLike], reason: str) -> None:
        self.path = None if path is None else Path(path)
        self.reason = reason
        super().__init__(f"Catalog build failed at {self.path}: {reason}")


class EmptyBrightnessInput(MosaicError, ValueError):
    """Mean brightness was requested for a buffer with no pixels."""


class TileProcessingError(MosaicError):
    """A single tile could not be matched or resized."""

    def __init__(self, x: int, y: int, reason: str) -> None:
        self.x = x
        self.y = y
        self.reason = reason
        super().__init__(f"Tile at ({x}, {y}) failed: {reason}")


class FrameProcessingError(MosaicError):
    """A whole frame could not be read, composed or written."""

    def __init__(self, path: PathLike, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Frame {self.path.name} failed: {reason}")


class FrameSourceError(MosaicError):
    """Frames could not be extracted from the source video."""


class EncodingError(MosaicError):
    """The processed frames could not be assembled into a video."""


__all__ = [
    "CatalogBuildError",
    "DecodeError",
    "EmptyBrightnessInput",
    "EncodeError",
    "EncodingError",
    "FrameProcessingError",
    "FrameSourceError",
    "MosaicError",
    "TileProcessingError",
]
