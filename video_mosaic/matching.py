"""Nearest-brightness lookup against the reference catalog."""

from __future__ import annotations

import math
from bisect import bisect_left
from typing import Iterable, List, Optional, Sequence

from video_mosaic.models import CatalogEntry


def match_nearest(brightness: float, entries: Iterable[CatalogEntry]) -> Optional[str]:
    """Return the path whose brightness is closest to ``brightness``.

    Linear scan; the first entry seen with the smallest delta wins. Matches may
    be darker or brighter than the target. ``None`` for an empty catalog.
    """
    best_path: Optional[str] = None
    smallest_delta = math.inf
    for entry in entries:
        delta = abs(entry.mean_brightness - brightness)
        if delta < smallest_delta:
            smallest_delta = delta
            best_path = entry.path
    return best_path


class BrightnessIndex:
    """Sorted view of catalog entries answering nearest queries by bisection.

    Produces exactly the result of :func:`match_nearest` over the same entries:
    among equally close candidates the one inserted first wins.
    """

    def __init__(self, entries: Sequence[CatalogEntry]) -> None:
        order = sorted(
            range(len(entries)),
            key=lambda index: (entries[index].mean_brightness, index),
        )
        self._keys: List[float] = [entries[index].mean_brightness for index in order]
        self._insertion: List[int] = order
        self._paths: List[str] = [entries[index].path for index in order]

    def __len__(self) -> int:
        return len(self._keys)

    def nearest(self, brightness: float) -> Optional[str]:
        if not self._keys:
            return None

        keys = self._keys
        position = bisect_left(keys, brightness)

        best_delta = math.inf
        if position < len(keys):
            best_delta = abs(keys[position] - brightness)
        if position > 0:
            best_delta = min(best_delta, abs(keys[position - 1] - brightness))

        # Deltas grow monotonically away from the insertion point, so every
        # entry tied at the minimum sits in a contiguous run around it.
        winner: Optional[int] = None
        index = position - 1
        while index >= 0 and abs(keys[index] - brightness) == best_delta:
            if winner is None or self._insertion[index] < self._insertion[winner]:
                winner = index
            index -= 1
        index = position
        while index < len(keys) and abs(keys[index] - brightness) == best_delta:
            if winner is None or self._insertion[index] < self._insertion[winner]:
                winner = index
            index += 1

        if winner is None:
            return None
        return self._paths[winner]


__all__ = ["BrightnessIndex", "match_nearest"]
