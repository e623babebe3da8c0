"""
Brightness-matched photo mosaics for video.
"""

from .app import VideoMosaic
from .cache import ResizedReferenceCache
from .catalog import BrightnessCatalog, build_catalog
from .compositor import FrameCompositor
from .config import MosaicSettings, load_config
from .workers import FramePool

__all__ = [
    "BrightnessCatalog",
    "FrameCompositor",
    "FramePool",
    "MosaicSettings",
    "ResizedReferenceCache",
    "VideoMosaic",
    "build_catalog",
    "load_config",
]
