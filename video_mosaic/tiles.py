"""Tile grid decomposition for mosaic frames."""

from __future__ import annotations

from typing import Iterator

from video_mosaic.models import Tile


def _validate(width: int, height: int, tile_size: int) -> None:
    if tile_size <= 0:
        raise ValueError(f"Tile size must be positive, got {tile_size}")
    if width < 0 or height < 0:
        raise ValueError(f"Frame dimensions must be non-negative, got {width}x{height}")


def tile_count(width: int, height: int, tile_size: int) -> int:
    """Number of tiles covering a ``width`` x ``height`` frame."""
    _validate(width, height, tile_size)
    tiles_x = -(-width // tile_size)
    tiles_y = -(-height // tile_size)
    return tiles_x * tiles_y


def iter_tiles(width: int, height: int, tile_size: int) -> Iterator[Tile]:
    """Yield tiles in row-major order, clipping the last row and column."""
    _validate(width, height, tile_size)
    for y in range(0, height, tile_size):
        tile_height = min(tile_size, height - y)
        for x in range(0, width, tile_size):
            yield Tile(
                x=x,
                y=y,
                width=min(tile_size, width - x),
                height=tile_height,
            )


__all__ = ["iter_tiles", "tile_count"]
