"""Reference catalog construction and brightness lookup."""

from __future__ import annotations

import logging
from pathlib import Path
from time import perf_counter
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union

from video_mosaic.brightness import mean_brightness
from video_mosaic.errors import CatalogBuildError, DecodeError, EncodeError
from video_mosaic.imaging import decode_image, encode_png, resize_cover, to_grayscale, write_file
from video_mosaic.matching import BrightnessIndex
from video_mosaic.models import CatalogEntry, ReferenceImage
from video_mosaic.progress import ProgressReporter

PathLike = Union[str, Path]

IMAGE_SUFFIXES = frozenset({".png", ".jpg", ".jpeg", ".bmp", ".webp", ".tif", ".tiff"})
DEFAULT_CANONICAL_SIZE = 200

LOGGER = logging.getLogger(__name__)


class BrightnessCatalog:
    """Read-only ordered collection of ``(brightness, path)`` entries."""

    def __init__(
        self,
        entries: Iterable[CatalogEntry] = (),
        references: Iterable[ReferenceImage] = (),
    ) -> None:
        self._entries: Tuple[CatalogEntry, ...] = tuple(entries)
        self._references: Tuple[ReferenceImage, ...] = tuple(references)
        self._index = BrightnessIndex(self._entries)

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[Tuple[float, PathLike]],
        *,
        keep_duplicates: bool = False,
    ) -> "BrightnessCatalog":
        """Build a catalog from ``(brightness, path)`` pairs in insertion order.

        Unless ``keep_duplicates`` is set, a pair whose brightness exactly equals
        an earlier one is dropped.
        """
        entries: List[CatalogEntry] = []
        seen: Set[float] = set()
        for brightness, path in pairs:
            value = float(brightness)
            if not keep_duplicates and value in seen:
                continue
            seen.add(value)
            entries.append(CatalogEntry(mean_brightness=value, path=str(path)))
        return cls(entries)

    @property
    def entries(self) -> Tuple[CatalogEntry, ...]:
        return self._entries

    @property
    def references(self) -> Tuple[ReferenceImage, ...]:
        """Every normalised image measured while building, duplicates included."""
        return self._references

    def brightness_values(self) -> List[float]:
        return [entry.mean_brightness for entry in self._entries]

    def nearest(self, brightness: float) -> Optional[str]:
        """Path of the entry closest in brightness, or ``None`` when empty."""
        return self._index.nearest(brightness)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __repr__(self) -> str:
        return f"BrightnessCatalog(entries={len(self._entries)})"


def list_reference_images(directory: PathLike) -> List[Path]:
    """Return image files in ``directory`` sorted by name, hidden files skipped."""
    root = Path(directory)
    if not root.is_dir():
        raise CatalogBuildError(root, "reference image directory does not exist")
    return sorted(
        (
            path
            for path in root.iterdir()
            if path.is_file()
            and not path.name.startswith(".")
            and path.suffix.lower() in IMAGE_SUFFIXES
        ),
        key=lambda path: path.name,
    )


def _normalised_name(source: Path, used: Set[str]) -> str:
    candidate = f"{source.stem}.png"
    counter = 1
    while candidate in used:
        candidate = f"{source.stem}_{counter}.png"
        counter += 1
    used.add(candidate)
    return candidate


def normalise_reference(
    source: Path,
    destination: Path,
    canonical_size: int = DEFAULT_CANONICAL_SIZE,
) -> ReferenceImage:
    """Resize one reference image, persist it and measure its brightness."""
    try:
        data = source.read_bytes()
        normalised = resize_cover(decode_image(data, source), canonical_size, canonical_size)
        brightness = mean_brightness(to_grayscale(normalised))
        write_file(encode_png(normalised, destination), destination)
    except (OSError, DecodeError, EncodeError) as exc:
        raise CatalogBuildError(source, str(exc)) from exc

    return ReferenceImage(
        path=destination,
        width=canonical_size,
        height=canonical_size,
        mean_brightness=brightness,
    )


def build_catalog(
    sources: Union[PathLike, Sequence[PathLike]],
    output_dir: PathLike,
    *,
    canonical_size: int = DEFAULT_CANONICAL_SIZE,
    keep_duplicate_brightness: bool = False,
    logger: Optional[logging.Logger] = None,
) -> BrightnessCatalog:
    """Normalise every reference image and return the brightness catalog.

    ``sources`` is either a directory or an explicit sequence of image paths.
    The first image that cannot be processed aborts the whole build with
    :class:`CatalogBuildError`.
    """
    log = logger or LOGGER
    if canonical_size <= 0:
        raise ValueError(f"Canonical size must be positive, got {canonical_size}")

    if isinstance(sources, (str, Path)):
        image_paths = list_reference_images(sources)
    else:
        image_paths = [Path(path) for path in sources]

    destination_root = Path(output_dir)
    try:
        destination_root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise CatalogBuildError(destination_root, str(exc)) from exc

    if not image_paths:
        log.warning("No reference images found; every frame will render blank")
        return BrightnessCatalog()

    log.info("Processing %s reference images...", len(image_paths))
    progress = ProgressReporter(log, "Reference image progress", total=len(image_paths))
    started = perf_counter()

    references: List[ReferenceImage] = []
    used_names: Set[str] = set()
    for source in image_paths:
        destination = destination_root / _normalised_name(source, used_names)
        references.append(normalise_reference(source, destination, canonical_size))
        progress.advance()

    catalog = BrightnessCatalog.from_pairs(
        ((reference.mean_brightness, reference.path) for reference in references),
        keep_duplicates=keep_duplicate_brightness,
    )
    catalog = BrightnessCatalog(catalog.entries, references)

    dropped = len(references) - len(catalog)
    if dropped:
        log.info(
            "Dropped %s reference images sharing an exact brightness with an earlier image",
            dropped,
        )
    log.info(
        "Built brightness catalog with %s entries in %0.2fs",
        len(catalog),
        perf_counter() - started,
    )
    return catalog


__all__ = [
    "BrightnessCatalog",
    "DEFAULT_CANONICAL_SIZE",
    "IMAGE_SUFFIXES",
    "build_catalog",
    "list_reference_images",
    "normalise_reference",
]
