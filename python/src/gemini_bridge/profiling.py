"""
Latency measurement for hook phases.

Timings live in the process and are logged as "[LATENCY] <phase>: <ms>ms".
"""

import functools
import logging
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)


def profile_latency(phase_name: str = "operation"):
    """
    Decorator to profile latency of a function.

    Usage:
        @profile_latency("glob_expansion")
        def expand_glob(...):
            ...

    Logs: "[LATENCY] glob_expansion: 45.3ms"
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed_ms = (time.perf_counter() - start) * 1000
                logger.debug(f"[LATENCY] {phase_name}: {elapsed_ms:.1f}ms")
        return wrapper
    return decorator


class LatencyTracker:
    """
    Context manager to track latency for a code block.

    Usage:
        with LatencyTracker("gemini_processing") as timer:
            ...
        timer.elapsed_seconds
    """

    def __init__(self, phase_name: str = "operation", level: int = logging.DEBUG):
        self.phase_name = phase_name
        self.level = level
        self.start_time: float | None = None
        self.end_time: float | None = None

    def __enter__(self) -> "LatencyTracker":
        self.start_time = time.perf_counter()
        self.end_time = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.end_time = time.perf_counter()
        logger.log(self.level, f"[LATENCY] {self.phase_name}: {self.elapsed_ms:.1f}ms")

    @property
    def elapsed_seconds(self) -> float:
        """Elapsed time so far, or the final duration once the block exited."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_seconds * 1000
