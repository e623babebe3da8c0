"""Configuration dataclasses and loading helpers for the video mosaic pipeline."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

DEFAULT_TILE_SIZE = 140
DEFAULT_CANONICAL_SIZE = 200
DEFAULT_FPS = 30
DEFAULT_QUALITY = 18
DEFAULT_CONTRAST_GAIN = 1.8
DEFAULT_CONTRAST_BIAS = -60.0
DEFAULT_FAILURE_WARNING_RATIO = 0.1
MAX_DEFAULT_WORKERS = 4


def default_worker_count() -> int:
    """Leave one core free and cap the pool to bound memory use."""
    return max(1, min(MAX_DEFAULT_WORKERS, (os.cpu_count() or 1) - 1))


def _parse_bool(value: Any, default: bool) -> bool:
    """Parse truthy/falsy values from multiple input types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return value != 0
    return default


def _parse_positive_int(value: Any, default: int) -> int:
    """Parse a positive integer with fallback to default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _parse_non_negative_int(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def _parse_float(value: Any, default: float) -> float:
    """Parse a floating point number with fallback to default."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_ratio(value: Any, default: float) -> float:
    parsed = _parse_float(value, default)
    if not 0.0 <= parsed <= 1.0:
        return default
    return parsed


def _parse_optional_path(value: Any) -> Optional[Path]:
    if value is None:
        return None
    text = str(value).strip()
    return Path(text) if text else None


def _parse_background_color(value: Any) -> Tuple[int, int, int]:
    """Parse an RGB list or ``#RRGGBB`` string into an OpenCV BGR tuple."""
    default = (0, 0, 0)

    if isinstance(value, (list, tuple)) and len(value) == 3:
        try:
            r, g, b = (max(0, min(255, int(channel))) for channel in value)
        except (TypeError, ValueError):
            return default
        return (b, g, r)

    if isinstance(value, str):
        hex_value = value.strip().lstrip("#")
        if len(hex_value) == 6:
            try:
                r = int(hex_value[0:2], 16)
                g = int(hex_value[2:4], 16)
                b = int(hex_value[4:6], 16)
            except ValueError:
                return default
            return (b, g, r)

    return default


@dataclass(frozen=True)
class MosaicSettings:
    """Root configuration for one mosaic run."""

    video_path: Optional[Path] = None
    assets_dir: Path = Path("assets")
    swap_images_dir: Optional[Path] = None
    tile_size: int = DEFAULT_TILE_SIZE
    canonical_size: int = DEFAULT_CANONICAL_SIZE
    workers: int = field(default_factory=default_worker_count)
    fps: int = DEFAULT_FPS
    quality: int = DEFAULT_QUALITY
    contrast_gain: float = DEFAULT_CONTRAST_GAIN
    contrast_bias: float = DEFAULT_CONTRAST_BIAS
    background_color: Tuple[int, int, int] = (0, 0, 0)
    cache_max_entries: int = 0
    failure_warning_ratio: float = DEFAULT_FAILURE_WARNING_RATIO
    keep_duplicate_brightness: bool = False
    output_filename: str = "mosaic.mp4"
    log_file: Optional[Path] = Path("logs") / "video_mosaic.log"

    @property
    def reference_dir(self) -> Path:
        return self.swap_images_dir or self.assets_dir / "swap-images"

    @property
    def frames_dir(self) -> Path:
        return self.assets_dir / "frames"

    @property
    def frames_out_dir(self) -> Path:
        return self.assets_dir / "frames-out"

    @property
    def references_out_dir(self) -> Path:
        return self.assets_dir / "swap-images-out"

    @property
    def video_out_dir(self) -> Path:
        return self.assets_dir / "video-out"

    @property
    def output_path(self) -> Path:
        return self.video_out_dir / self.output_filename


def _settings_from_mapping(data: Mapping[str, Any]) -> MosaicSettings:
    default = MosaicSettings()
    log_file = data.get("log_file", default.log_file)
    return MosaicSettings(
        video_path=_parse_optional_path(data.get("video_path")),
        assets_dir=_parse_optional_path(data.get("assets_dir")) or default.assets_dir,
        swap_images_dir=_parse_optional_path(data.get("swap_images_dir")),
        tile_size=_parse_positive_int(data.get("tile_size"), default.tile_size),
        canonical_size=_parse_positive_int(data.get("canonical_size"), default.canonical_size),
        workers=_parse_positive_int(data.get("workers"), default_worker_count()),
        fps=_parse_positive_int(data.get("fps"), default.fps),
        quality=_parse_non_negative_int(data.get("quality"), default.quality),
        contrast_gain=_parse_float(data.get("contrast_gain"), default.contrast_gain),
        contrast_bias=_parse_float(data.get("contrast_bias"), default.contrast_bias),
        background_color=_parse_background_color(data.get("background_color")),
        cache_max_entries=_parse_non_negative_int(
            data.get("cache_max_entries"),
            default.cache_max_entries,
        ),
        failure_warning_ratio=_parse_ratio(
            data.get("failure_warning_ratio"),
            default.failure_warning_ratio,
        ),
        keep_duplicate_brightness=_parse_bool(
            data.get("keep_duplicate_brightness"),
            default.keep_duplicate_brightness,
        ),
        output_filename=str(data.get("output_filename") or default.output_filename),
        log_file=_parse_optional_path(log_file),
    )


ENV_KEYS = {
    "video_path": "MOSAIC_VIDEO_PATH",
    "assets_dir": "MOSAIC_ASSETS_DIR",
    "swap_images_dir": "MOSAIC_SWAP_IMAGES_DIR",
    "tile_size": "MOSAIC_TILE_SIZE",
    "canonical_size": "MOSAIC_CANONICAL_SIZE",
    "workers": "MOSAIC_WORKERS",
    "fps": "MOSAIC_FPS",
    "quality": "MOSAIC_QUALITY",
    "contrast_gain": "MOSAIC_CONTRAST_GAIN",
    "contrast_bias": "MOSAIC_CONTRAST_BIAS",
    "background_color": "MOSAIC_BACKGROUND_COLOR",
    "cache_max_entries": "MOSAIC_CACHE_MAX_ENTRIES",
    "failure_warning_ratio": "MOSAIC_FAILURE_WARNING_RATIO",
    "keep_duplicate_brightness": "MOSAIC_KEEP_DUPLICATE_BRIGHTNESS",
    "output_filename": "MOSAIC_OUTPUT_FILENAME",
    "log_file": "MOSAIC_LOG_FILE",
}


def _load_env_config(env: Mapping[str, str]) -> MosaicSettings:
    """Fallback configuration derived from environment variables."""
    data = {key: env[name] for key, name in ENV_KEYS.items() if name in env}
    return _settings_from_mapping(data)


def load_config(
    config_path: Path | str | None = "config.json",
    env: Mapping[str, str] | None = None,
) -> MosaicSettings:
    """Load settings from a JSON file, or from the environment when it is absent."""
    source_env = os.environ if env is None else env

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            if not isinstance(data, Mapping):
                raise ValueError(f"Configuration root in {path} must be a JSON object")
            return _settings_from_mapping(data)

    return _load_env_config(source_env)


__all__ = [
    "MosaicSettings",
    "default_worker_count",
    "load_config",
    "_parse_background_color",
    "_parse_bool",
    "_parse_positive_int",
]
