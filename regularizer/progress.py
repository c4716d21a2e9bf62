import time
from typing import Callable

from loguru import logger


class ProgressTracker:
    """
    Logs completed/total, throughput and a linear ETA every `every` completions.

    Purely observational: nothing waits on it.
    """

    def __init__(self, total: int, every: int = 10, clock: Callable[[], float] = time.perf_counter):
        self.total = total
        self.every = max(1, every)
        self.completed = 0
        self._clock = clock
        self._start = clock()

    def snapshot(self):
        """(elapsed seconds, pairs/sec, ETA seconds) at the current completion count."""
        elapsed = max(self._clock() - self._start, 1e-9)
        rate = self.completed / elapsed
        remaining = self.total - self.completed
        eta = remaining / rate if rate > 0 else float("inf")
        return elapsed, rate, eta

    def record(self) -> bool:
        """Count one completion; returns True when a progress line was logged."""
        self.completed += 1
        if self.completed % self.every and self.completed != self.total:
            return False
        elapsed, rate, eta = self.snapshot()
        pct = self.completed / self.total * 100.0 if self.total else 100.0
        mins, secs = divmod(int(eta), 60)
        logger.info(
            f"✅ Completed: {self.completed}/{self.total} ({pct:.1f}%) - {rate:.1f} pairs/sec - ETA: {mins}m {secs}s"
        )
        return True
