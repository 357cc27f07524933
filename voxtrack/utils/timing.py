"""Stage timing and memory tracking for pipeline runs."""

import time
import logging
import functools
from typing import Optional, Dict, Callable
from contextlib import contextmanager

import psutil


class Timer:
    """Collects wall-clock durations and RSS memory per named stage.

    A stage that runs more than once (e.g. once per frame) accumulates its
    durations; ``counts`` records how often it ran.
    """

    def __init__(self):
        self.timings: Dict[str, float] = {}
        self.counts: Dict[str, int] = {}
        self.peak_rss_gb: Dict[str, float] = {}
        self._start_times: Dict[str, float] = {}

    def start(self, stage: str) -> None:
        self._start_times[stage] = time.perf_counter()
        self._record_memory(stage)

    def stop(self, stage: str) -> float:
        """Stop timing a stage and return the duration of this run in seconds."""
        if stage not in self._start_times:
            raise ValueError(f"Timer for stage '{stage}' was never started")

        duration = time.perf_counter() - self._start_times.pop(stage)
        self.timings[stage] = self.timings.get(stage, 0.0) + duration
        self.counts[stage] = self.counts.get(stage, 0) + 1
        self._record_memory(stage)
        return duration

    def _record_memory(self, stage: str) -> None:
        rss_gb = psutil.Process().memory_info().rss / (1024 ** 3)
        self.peak_rss_gb[stage] = max(self.peak_rss_gb.get(stage, 0.0), rss_gb)

    def get_summary(self) -> str:
        """Get a table of stage durations and peak memory."""
        if not self.timings:
            return "No timing data available"

        total_time = sum(self.timings.values())
        lines = [
            f"{'Stage':<30} {'Runs':>6} {'Duration':>10} {'Share':>8} {'Peak RSS':>10}",
            "-" * 68,
        ]
        for stage, duration in self.timings.items():
            share = (duration / total_time) * 100 if total_time > 0 else 0.0
            lines.append(
                f"{stage:<30} {self.counts[stage]:>6} {duration:>9.2f}s"
                f"{share:>7.1f}% {self.peak_rss_gb.get(stage, 0.0):>8.2f}GB"
            )
        lines.append("-" * 68)
        lines.append(f"{'Total':<30} {'':>6} {total_time:>9.2f}s")
        return "\n".join(lines)


@contextmanager
def timed_stage(timer: Optional[Timer], stage: str):
    """Time a processing stage; a ``None`` timer makes this a no-op."""
    if timer is None:
        yield
        return

    timer.start(stage)
    try:
        yield
    finally:
        duration = timer.stop(stage)
        logging.debug(f"Completed {stage} in {duration:.2f}s")


def log_execution_time(func: Callable) -> Callable:
    """Decorator to log function execution time."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logging.error(
                f"Function '{func.__name__}' failed after {duration:.2f}s: {str(e)}"
            )
            raise
        duration = time.perf_counter() - start_time
        logging.debug(f"Function '{func.__name__}' completed in {duration:.2f}s")
        return result

    return wrapper
