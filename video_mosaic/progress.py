"""Helpers for estimating and reporting progress of long-running loops."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from time import perf_counter
from typing import Optional


def format_duration(seconds: float) -> str:
    """Return a compact human-readable duration string."""
    total_seconds = int(round(seconds))
    if total_seconds <= 0:
        return "<1s"
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds_remaining = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes:02d}m{seconds_remaining:02d}s"
    if minutes:
        return f"{minutes}m{seconds_remaining:02d}s"
    return f"{seconds_remaining}s"


def eta_string(elapsed: float, completed: int, total: int) -> str:
    """Format an ETA string given elapsed time and progress counters."""
    if completed <= 0 or total <= 0 or completed > total or elapsed <= 0.0:
        return "ETA estimating"

    remaining = max(0.0, elapsed * (total - completed) / completed)
    finish_time = datetime.now() + timedelta(seconds=remaining)
    return f"ETA {format_duration(remaining)} (finish {finish_time.strftime('%H:%M:%S')})"


class ProgressReporter:
    """Log a progress line every ``interval`` completed items.

    With a known ``total`` the line carries a percentage and an ETA and the
    interval defaults to 5% of the work; without one only the running count
    is logged. Safe to advance from several threads.
    """

    def __init__(
        self,
        logger: logging.Logger,
        label: str,
        *,
        total: Optional[int] = None,
        interval: Optional[int] = None,
    ) -> None:
        self.logger = logger
        self.label = label
        self.total = total if total and total > 0 else None
        if interval is not None:
            self.interval = max(1, interval)
        elif self.total is not None:
            self.interval = max(1, self.total // 20)
        else:
            self.interval = 10
        self.completed = 0
        self._started = perf_counter()
        self._lock = threading.Lock()

    @property
    def elapsed(self) -> float:
        return perf_counter() - self._started

    def advance(self, count: int = 1) -> int:
        with self._lock:
            self.completed += count
            completed = self.completed
        if completed % self.interval == 0 or completed == self.total:
            self._emit(completed)
        return completed

    def _emit(self, completed: int) -> None:
        if self.total is None:
            self.logger.info("%s: %s completed (%0.1fs elapsed)", self.label, completed, self.elapsed)
            return
        percent = (completed / self.total) * 100.0
        self.logger.info(
            "%s: %s/%s (%0.1f%%, %s)",
            self.label,
            completed,
            self.total,
            percent,
            eta_string(self.elapsed, completed, self.total),
        )


__all__ = ["ProgressReporter", "eta_string", "format_duration"]
