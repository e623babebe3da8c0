"""Mean brightness measurement for grayscale pixel buffers."""

from __future__ import annotations

from typing import Union

import numpy as np

from video_mosaic.errors import EmptyBrightnessInput

GrayscaleBuffer = Union[bytes, bytearray, memoryview, np.ndarray]


def _as_uint8(buffer: GrayscaleBuffer) -> np.ndarray:
    if isinstance(buffer, np.ndarray):
        if buffer.dtype != np.uint8:
            return buffer.astype(np.uint8)
        return buffer
    return np.frombuffer(buffer, dtype=np.uint8)


def mean_brightness(buffer: GrayscaleBuffer) -> float:
    """Return the arithmetic mean of 8-bit grayscale intensities.

    The pixels are summed exactly in an unsigned 64-bit accumulator and divided
    once, so the same input always yields the same float regardless of the
    buffer's shape or memory layout.
    """
    pixels = _as_uint8(buffer)
    count = int(pixels.size)
    if count == 0:
        raise EmptyBrightnessInput("No grayscale data provided")
    total = int(np.sum(pixels, dtype=np.uint64))
    return total / count


__all__ = ["mean_brightness"]
