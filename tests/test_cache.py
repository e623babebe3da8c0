import sys
import threading
import time
from pathlib import Path

import cv2
import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from video_mosaic.cache import ResizedReferenceCache
from video_mosaic.errors import DecodeError


class CountingLoader:
    def __init__(self, delay: float = 0.0, fail_first: bool = False, fail_always: bool = False):
        self.delay = delay
        self.fail_first = fail_first
        self.fail_always = fail_always
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, path, width, height):
        with self._lock:
            self.calls.append((path, width, height))
            call_number = len(self.calls)
        time.sleep(self.delay)
        if self.fail_always or (self.fail_first and call_number == 1):
            raise DecodeError(path, "simulated failure")
        return np.full((height, width, 3), len(path) % 256, dtype=np.uint8)


def test_second_get_returns_identical_buffer_without_reloading():
    loader = CountingLoader()
    cache = ResizedReferenceCache(loader)

    first = cache.get("ref.png", 12, 7)
    second = cache.get("ref.png", 12, 7)

    assert second is first
    assert second.tobytes() == first.tobytes()
    assert loader.calls == [("ref.png", 12, 7)]
    assert cache.stats()["hits"] == 1


def test_distinct_sizes_are_distinct_entries():
    loader = CountingLoader()
    cache = ResizedReferenceCache(loader)

    cache.get("ref.png", 16, 16)
    cache.get("ref.png", 2, 16)
    cache.get(Path("ref.png"), 16, 16)

    assert len(loader.calls) == 2
    assert len(cache) == 2
    assert ("ref.png", 2, 16) in cache


def test_concurrent_misses_resize_once():
    loader = CountingLoader(delay=0.05)
    cache = ResizedReferenceCache(loader)
    barrier = threading.Barrier(8)
    results = []
    results_lock = threading.Lock()

    def worker():
        barrier.wait()
        buffer = cache.get("shared.png", 20, 10)
        with results_lock:
            results.append(buffer)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(loader.calls) == 1
    assert len(results) == 8
    assert all(buffer is results[0] for buffer in results)


def test_cached_buffers_are_read_only():
    cache = ResizedReferenceCache(CountingLoader())
    buffer = cache.get("ref.png", 4, 4)

    with pytest.raises(ValueError):
        buffer[0, 0] = 1


def test_failed_load_is_not_cached():
    loader = CountingLoader(fail_first=True)
    cache = ResizedReferenceCache(loader)

    with pytest.raises(DecodeError):
        cache.get("flaky.png", 5, 5)

    buffer = cache.get("flaky.png", 5, 5)

    assert buffer.shape == (5, 5, 3)
    assert len(loader.calls) == 2


def test_lru_eviction_recomputes_on_next_miss():
    loader = CountingLoader()
    cache = ResizedReferenceCache(loader, max_entries=2)

    cache.get("a.png", 4, 4)
    cache.get("b.png", 4, 4)
    cache.get("a.png", 4, 4)
    cache.get("c.png", 4, 4)

    assert ("b.png", 4, 4) not in cache
    assert ("a.png", 4, 4) in cache

    again = cache.get("b.png", 4, 4)

    assert again.shape == (4, 4, 3)
    assert len(loader.calls) == 4
    assert cache.stats()["evictions"] == 2


def test_default_loader_resizes_reference_from_disk(tmp_path):
    image = np.zeros((10, 10, 3), dtype=np.uint8)
    image[:, :] = (10, 120, 240)
    path = tmp_path / "ref.png"
    cv2.imwrite(str(path), image)
    cache = ResizedReferenceCache()

    resized = cache.get(path, 3, 6)

    assert resized.shape == (6, 3, 3)
    assert tuple(int(c) for c in resized[0, 0]) == (10, 120, 240)


def test_default_loader_reports_missing_reference(tmp_path):
    cache = ResizedReferenceCache()

    with pytest.raises(DecodeError):
        cache.get(tmp_path / "missing.png", 3, 3)


def test_clear_forces_reload():
    loader = CountingLoader()
    cache = ResizedReferenceCache(loader)

    cache.get("ref.png", 4, 4)
    cache.clear()
    assert ("ref.png", 4, 4) not in cache
    cache.get("ref.png", 4, 4)

    assert len(loader.calls) == 2
    assert cache.stats()["entries"] == 1


def test_concurrent_waiters_share_a_failed_load():
    loader = CountingLoader(delay=0.2, fail_always=True)
    cache = ResizedReferenceCache(loader)
    barrier = threading.Barrier(6)
    errors = []
    errors_lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            cache.get("broken.png", 8, 8)
        except DecodeError as exc:
            with errors_lock:
                errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert not any(thread.is_alive() for thread in threads)
    assert len(errors) == 6
    assert len(loader.calls) == 1
    assert all(exc is errors[0] for exc in errors)
    assert ("broken.png", 8, 8) not in cache
    assert len(cache) == 0


def test_default_loader_crops_non_square_reference_instead_of_squashing(tmp_path):
    image = np.zeros((10, 40, 3), dtype=np.uint8)
    image[:, :] = (0, 0, 255)
    image[:, 15:25] = (0, 255, 0)
    path = tmp_path / "wide.png"
    cv2.imwrite(str(path), image)
    cache = ResizedReferenceCache()

    resized = cache.get(path, 10, 10)

    assert resized.shape == (10, 10, 3)
    assert {tuple(int(c) for c in pixel) for pixel in resized.reshape(-1, 3)} == {(0, 255, 0)}
