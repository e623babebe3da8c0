"""OpenCV-backed pixel access helpers used by the catalog and compositor."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from video_mosaic.errors import DecodeError, EncodeError
from video_mosaic.models import CompositePlacement

PathLike = Union[str, Path]
BGR = Tuple[int, int, int]


def _decode(data: bytes, flags: int, path: Optional[PathLike]) -> np.ndarray:
    if not data:
        raise DecodeError(path, "empty input")
    try:
        image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), flags)
    except cv2.error as exc:
        raise DecodeError(path, str(exc)) from exc
    if image is None:
        raise DecodeError(path, "unsupported or corrupt image data")
    return image


def decode_image(data: bytes, path: Optional[PathLike] = None) -> np.ndarray:
    """Decode encoded image bytes into an ``H x W x 3`` BGR array."""
    return _decode(data, cv2.IMREAD_COLOR, path)


def to_grayscale(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    if image.shape[2] == 1:
        return image[:, :, 0]
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def decode_grayscale(data: bytes, path: Optional[PathLike] = None) -> np.ndarray:
    """Decode encoded image bytes into a single-channel ``uint8`` array."""
    return to_grayscale(decode_image(data, path))


def decode_region(
    data: bytes,
    x: int,
    y: int,
    width: int,
    height: int,
    path: Optional[PathLike] = None,
) -> np.ndarray:
    """Decode only the grayscale pixels of one rectangular region."""
    gray = decode_grayscale(data, path)
    frame_height, frame_width = gray.shape[:2]
    if (
        x < 0
        or y < 0
        or width <= 0
        or height <= 0
        or x + width > frame_width
        or y + height > frame_height
    ):
        raise DecodeError(
            path,
            f"region {width}x{height}+{x}+{y} outside {frame_width}x{frame_height} image",
        )
    return np.ascontiguousarray(gray[y : y + height, x : x + width])


def adjust_contrast(gray: np.ndarray, gain: float, bias: float) -> np.ndarray:
    """Apply ``gain * pixel + bias`` clamped to the 8-bit range."""
    if gain == 1.0 and bias == 0.0:
        return gray
    adjusted = gray.astype(np.float32) * gain + bias
    return np.clip(np.rint(adjusted), 0, 255).astype(np.uint8)


def resize(buffer: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize to exactly ``width`` x ``height`` pixels."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Resize target must be positive, got {width}x{height}")
    source_height, source_width = buffer.shape[:2]
    if (source_width, source_height) == (width, height):
        return buffer.copy()
    interpolation = (
        cv2.INTER_AREA
        if width <= source_width and height <= source_height
        else cv2.INTER_LINEAR
    )
    return cv2.resize(buffer, (width, height), interpolation=interpolation)


def resize_cover(buffer: np.ndarray, width: int, height: int) -> np.ndarray:
    """Scale until ``width`` x ``height`` is covered, then centre-crop to it.

    Aspect ratio is preserved; whatever overflows the target on the longer
    axis is cut evenly from both sides.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Resize target must be positive, got {width}x{height}")
    source_height, source_width = buffer.shape[:2]
    scale = max(width / source_width, height / source_height)
    scaled_width = max(width, int(round(source_width * scale)))
    scaled_height = max(height, int(round(source_height * scale)))
    scaled = resize(buffer, scaled_width, scaled_height)
    left = (scaled_width - width) // 2
    top = (scaled_height - height) // 2
    return np.ascontiguousarray(scaled[top : top + height, left : left + width])


def load_resized_reference(path: PathLike, width: int, height: int) -> np.ndarray:
    """Read a reference image from disk and cover-resize it to a tile's size."""
    source = Path(path)
    try:
        data = source.read_bytes()
    except OSError as exc:
        raise DecodeError(source, str(exc)) from exc
    return resize_cover(decode_image(data, source), width, height)


def blank_canvas(width: int, height: int, background: BGR = (0, 0, 0)) -> np.ndarray:
    return np.full((height, width, 3), background, dtype=np.uint8)


def stamp_placements(
    canvas: np.ndarray,
    placements: Sequence[CompositePlacement],
    path: Optional[PathLike] = None,
) -> np.ndarray:
    """Copy every placement onto ``canvas`` in place and return it."""
    canvas_height, canvas_width = canvas.shape[:2]
    for placement in placements:
        buffer = placement.buffer
        if buffer.ndim == 2:
            buffer = cv2.cvtColor(buffer, cv2.COLOR_GRAY2BGR)
        elif buffer.shape[2] == 4:
            buffer = cv2.cvtColor(buffer, cv2.COLOR_BGRA2BGR)
        block_height, block_width = buffer.shape[:2]
        bottom = placement.top + block_height
        right = placement.left + block_width
        if placement.left < 0 or placement.top < 0 or right > canvas_width or bottom > canvas_height:
            raise EncodeError(
                path,
                f"placement {block_width}x{block_height} at ({placement.left}, {placement.top}) "
                f"exceeds {canvas_width}x{canvas_height} canvas",
            )
        canvas[placement.top : bottom, placement.left : right] = buffer
    return canvas


def encode_png(image: np.ndarray, path: Optional[PathLike] = None) -> bytes:
    try:
        success, buffer = cv2.imencode(".png", image)
    except cv2.error as exc:
        raise EncodeError(path, str(exc)) from exc
    if not success:
        raise EncodeError(path, "PNG encoder reported failure")
    return buffer.tobytes()


def encode_composite(
    width: int,
    height: int,
    placements: Sequence[CompositePlacement],
    *,
    background: BGR = (0, 0, 0),
    path: Optional[PathLike] = None,
) -> bytes:
    """Stamp ``placements`` onto a blank canvas and return PNG bytes."""
    canvas = stamp_placements(blank_canvas(width, height, background), placements, path)
    return encode_png(canvas, path)


def write_file(data: bytes, path: PathLike) -> Path:
    """Write ``data`` to ``path``, creating parent directories as needed."""
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    except OSError as exc:
        raise EncodeError(target, str(exc)) from exc
    return target


__all__ = [
    "adjust_contrast",
    "blank_canvas",
    "decode_grayscale",
    "decode_image",
    "decode_region",
    "encode_composite",
    "encode_png",
    "load_resized_reference",
    "resize",
    "resize_cover",
    "stamp_placements",
    "to_grayscale",
    "write_file",
]
