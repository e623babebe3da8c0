"""Bounded worker pool dispatching frame compositing jobs."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from time import perf_counter
from typing import Callable, Iterable, List, Optional, Tuple

from video_mosaic.errors import FrameProcessingError
from video_mosaic.models import FrameJob, FrameResult
from video_mosaic.progress import ProgressReporter

FrameHandler = Callable[[FrameJob], FrameResult]


class FramePool:
    """Run frame jobs on at most ``max_workers`` threads at a time.

    Lifecycle is ``start`` -> ``submit``... -> ``drain`` -> ``close``; the pool
    is also a context manager. ``submit`` blocks while ``max_workers`` jobs are
    outstanding, so an unbounded or lazily produced job stream never queues
    more work than the pool can run. A failing job becomes a failed
    :class:`FrameResult`; sibling jobs keep running.
    """

    def __init__(
        self,
        handler: FrameHandler,
        *,
        max_workers: int,
        logger: logging.Logger,
        expected_total: Optional[int] = None,
    ) -> None:
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self.handler = handler
        self.max_workers = max_workers
        self.logger = logger
        self.expected_total = expected_total
        self._executor: Optional[ThreadPoolExecutor] = None
        self._slots = threading.BoundedSemaphore(max_workers)
        self._submitted: List[Tuple[FrameJob, Future]] = []
        self._progress: Optional[ProgressReporter] = None
        self._failed = 0
        self._failed_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._executor is not None

    def start(self) -> "FramePool":
        if self._executor is not None:
            raise RuntimeError("Frame pool already started")
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="frame-worker",
        )
        self._submitted = []
        self._failed = 0
        self._progress = ProgressReporter(
            self.logger,
            "Frame processing progress",
            total=self.expected_total,
        )
        self.logger.info("Started frame pool with %s workers", self.max_workers)
        return self

    def submit(self, job: FrameJob) -> Future:
        if self._executor is None:
            raise RuntimeError("Frame pool is not running; call start() first")
        self._slots.acquire()
        try:
            future = self._executor.submit(self._execute, job)
        except BaseException:
            self._slots.release()
            raise
        self._submitted.append((job, future))
        return future

    def drain(self) -> List[FrameResult]:
        """Wait for every submitted job and return results in submission order."""
        wait([future for _, future in self._submitted])
        results: List[FrameResult] = []
        for job, future in self._submitted:
            if future.cancelled():
                results.append(FrameResult.failure(job.input_path, "cancelled before start"))
            else:
                results.append(future.result())
        return results

    def close(self, *, cancel_pending: bool = False) -> None:
        """Release the executor; queued jobs are dropped when ``cancel_pending``."""
        executor, self._executor = self._executor, None
        if executor is None:
            return
        if cancel_pending:
            self.logger.warning(
                "Shutting down frame pool early; waiting for running jobs to finish"
            )
        executor.shutdown(wait=True, cancel_futures=cancel_pending)

    def __enter__(self) -> "FramePool":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close(cancel_pending=exc_type is not None)

    def run(self, jobs: Iterable[FrameJob]) -> List[FrameResult]:
        """Submit every job, wait for all of them and release the pool."""
        with self:
            for job in jobs:
                self.submit(job)
            return self.drain()

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    def _execute(self, job: FrameJob) -> FrameResult:
        started = perf_counter()
        try:
            result = self.handler(job)
        except FrameProcessingError as exc:
            self.logger.error("Failed to process frame %s: %s", job.input_path.name, exc.reason)
            result = FrameResult.failure(job.input_path, str(exc), elapsed=perf_counter() - started)
        except Exception as exc:
            self.logger.exception("Unexpected error processing frame %s", job.input_path.name)
            result = FrameResult.failure(
                job.input_path,
                f"{type(exc).__name__}: {exc}",
                elapsed=perf_counter() - started,
            )
        finally:
            self._slots.release()

        if not result.succeeded:
            with self._failed_lock:
                self._failed += 1
        if self._progress is not None:
            self._progress.advance()
        return result

    @property
    def failed_count(self) -> int:
        with self._failed_lock:
            return self._failed


__all__ = ["FrameHandler", "FramePool"]
