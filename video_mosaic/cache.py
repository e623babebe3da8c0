"""Shared cache of reference images resized to tile dimensions."""

from __future__ import annotations

import threading
from collections import OrderedDict
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

import numpy as np

from video_mosaic.imaging import load_resized_reference

CacheKey = Tuple[str, int, int]
Loader = Callable[[str, int, int], np.ndarray]


class ResizedReferenceCache:
    """Memoise ``(path, width, height) -> resized buffer`` across frame jobs.

    Concurrent misses on one key are coalesced: the first caller runs the
    loader while later callers block on its result. A loader failure is
    re-raised to every waiting caller and nothing is stored, so the next
    request retries. With ``max_entries`` set, the least recently used entry
    is evicted once the bound is exceeded.
    """

    def __init__(
        self,
        loader: Optional[Loader] = None,
        *,
        max_entries: Optional[int] = None,
    ) -> None:
        self._loader: Loader = loader or load_resized_reference
        self.max_entries = max_entries if max_entries and max_entries > 0 else None
        self._entries: "OrderedDict[CacheKey, np.ndarray]" = OrderedDict()
        self._pending: Dict[CacheKey, Future] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.loads = 0
        self.evictions = 0

    def get(self, path: Union[str, Path], width: int, height: int) -> np.ndarray:
        key: CacheKey = (str(path), int(width), int(height))

        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._entries.move_to_end(key)
                self.hits += 1
                return cached
            pending = self._pending.get(key)
            owner = pending is None
            if owner:
                pending = Future()
                self._pending[key] = pending
                self.misses += 1
                self.loads += 1
            else:
                self.hits += 1

        if not owner:
            return pending.result()

        try:
            buffer = np.ascontiguousarray(self._loader(*key))
            buffer.setflags(write=False)
        except BaseException as exc:
            with self._lock:
                self._pending.pop(key, None)
            pending.set_exception(exc)
            raise

        with self._lock:
            self._entries[key] = buffer
            self._evict_locked()
            self._pending.pop(key, None)
        pending.set_result(buffer)
        return buffer

    def _evict_locked(self) -> None:
        if self.max_entries is None:
            return
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self.evictions += 1

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "loads": self.loads,
                "evictions": self.evictions,
            }


__all__ = ["ResizedReferenceCache"]
