"""
Cross-process rate limiter for Gemini calls.

Every hook invocation is a separate process, so the limiter state is a file
holding the wall-clock time of the last call. A sibling ".lock" file guarded
by flock() serializes the read-wait-write sequence between processes.
"""

import asyncio
import fcntl
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

LOCK_POLL_SECONDS = 0.05


class FileRateLimiter:
    """
    Enforces a minimum interval between Gemini calls across processes.

    Lock acquisition gives up after lock_timeout seconds and lets the call
    through; a stuck lock holder must not hang every hook.
    """

    def __init__(
        self,
        state_file: str | Path,
        min_interval: float = 1.0,
        lock_timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.state_file = Path(state_file)
        self.lock_file = self.state_file.with_name(self.state_file.name + ".lock")
        self.min_interval = min_interval
        self.lock_timeout = lock_timeout
        self._clock = clock
        self._sleep = sleep

        # Stats
        self._total_turns = 0
        self._throttle_count = 0
        self._total_wait = 0.0
        self._lock_timeouts = 0

    def _read_last_call(self) -> float | None:
        try:
            raw = self.state_file.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not read rate limit file {self.state_file}: {e}")
            return None
        try:
            return float(raw)
        except ValueError:
            return None

    def _record_call(self, timestamp: float) -> None:
        """Replace the state file atomically."""
        tmp_name: str | None = None
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.state_file.parent, prefix=f".{self.state_file.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(f"{timestamp:.6f}\n")
            os.replace(tmp_name, self.state_file)
        except OSError as e:
            logger.warning(f"Could not write rate limit file {self.state_file}: {e}")
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass  # Already gone

    def can_proceed(self) -> tuple[bool, float]:
        """
        Check whether a call could start now.

        Returns:
            (can_proceed, wait_seconds) tuple
        """
        if self.min_interval <= 0:
            return True, 0.0

        last_call = self._read_last_call()
        if last_call is None:
            return True, 0.0

        elapsed = self._clock() - last_call
        if elapsed >= self.min_interval:
            return True, 0.0

        # A clock that went backwards never costs more than one full interval
        wait_time = min(self.min_interval - elapsed, self.min_interval)
        return False, wait_time

    async def _acquire_lock(self) -> int | None:
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.lock_file), os.O_CREAT | os.O_RDWR, 0o600)
        deadline = time.monotonic() + self.lock_timeout

        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return fd
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    return None
                await asyncio.sleep(LOCK_POLL_SECONDS)
            except OSError:
                os.close(fd)
                raise

    @staticmethod
    def _release_lock(fd: int) -> None:
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    async def await_turn(self) -> float:
        """
        Wait until the minimum interval since the last call has passed,
        then record the current time as the last call.

        Returns:
            Seconds spent waiting for the interval
        """
        if self.min_interval <= 0:
            self._total_turns += 1
            return 0.0

        try:
            fd = await self._acquire_lock()
        except OSError as e:
            logger.warning(f"Rate limit lock unavailable ({e}), proceeding without it")
            fd = None
        else:
            if fd is None:
                self._lock_timeouts += 1
                logger.warning(f"Timed out waiting for rate limit lock after {self.lock_timeout}s")

        try:
            proceed, wait_time = self.can_proceed()
            if not proceed:
                logger.debug(f"Rate limiting: sleeping {wait_time:.2f}s")
                self._throttle_count += 1
                self._total_wait += wait_time
                await self._sleep(wait_time)
            self._record_call(self._clock())
        finally:
            if fd is not None:
                self._release_lock(fd)

        self._total_turns += 1
        return wait_time if not proceed else 0.0

    def get_stats(self) -> dict[str, Any]:
        """Get rate limiter statistics."""
        return {
            "total_turns": self._total_turns,
            "throttle_count": self._throttle_count,
            "total_wait_seconds": round(self._total_wait, 3),
            "lock_timeouts": self._lock_timeouts,
            "min_interval": self.min_interval,
        }
