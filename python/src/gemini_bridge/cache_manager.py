"""
Cache Manager for Gemini analysis results.

One file per entry under the cache directory, named by a SHA-256 key over:
- operation and prompt
- the resolved file list and working directory
- per-file fingerprints: path, size, mtime and a digest of the first 1KB

Content sampling means an edited file produces a new key even when its path
is unchanged. Entries are read-valid for GEMINI_CACHE_TTL seconds; expired
entries are left in place and removed later by cleanup(), which uses its own
retention window (CACHE_MAX_AGE_HOURS).

Writes go to a temporary file in the cache directory followed by os.replace(),
so concurrent hook processes never observe a partial entry.
"""

import hashlib
import logging
import os
import re
import stat
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)

SAMPLE_BYTES = 1024
_KEY_RE = re.compile(r"^[0-9a-f]{64}$")


@dataclass(frozen=True)
class FileFingerprint:
    """Fingerprint of a file for cache key derivation."""

    path: str
    size: int
    mtime: int
    sample_hash: str  # SHA-256 of the first SAMPLE_BYTES bytes

    def to_key_part(self) -> str:
        return f"{self.path}|{self.size}|{self.mtime}|{self.sample_hash}|"


@dataclass
class CacheStats:
    """Statistics about cache usage within one process."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    writes: int = 0
    write_errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


def fingerprint_file(path: str, sample_bytes: int = SAMPLE_BYTES) -> FileFingerprint | None:
    """
    Fingerprint a readable regular file.

    Returns:
        FileFingerprint, or None for missing, unreadable or non-regular paths
    """
    try:
        st = os.stat(path)
        if not stat.S_ISREG(st.st_mode):
            return None
        with open(path, "rb") as f:
            sample = f.read(sample_bytes)
    except OSError:
        return None

    return FileFingerprint(
        path=path,
        size=st.st_size,
        mtime=int(st.st_mtime),
        sample_hash=hashlib.sha256(sample).hexdigest(),
    )


class AnalysisCache:
    """
    Content-addressed file cache for Gemini responses.

    The cache directory is the only shared state; no in-process locking is
    needed because every write is an atomic rename.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_dir = Path(cache_dir)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.stats = CacheStats()

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def make_key(
        self,
        prompt: str,
        files: Iterable[str],
        working_dir: str,
        operation: str = "",
    ) -> str:
        """
        Derive the cache key for a request.

        Args:
            prompt: Display prompt of the request
            files: Resolved file paths (order matters)
            working_dir: Working directory of the invocation
            operation: Tool name the request came from

        Returns:
            64-character hex SHA-256 digest
        """
        file_list = list(files)
        content_hash = "".join(
            fp.to_key_part()
            for fp in (fingerprint_file(path) for path in file_list)
            if fp is not None
        )
        input_string = f"{operation}|{prompt}|{' '.join(file_list)}|{working_dir}|{content_hash}"
        return hashlib.sha256(input_string.encode("utf-8", errors="replace")).hexdigest()

    def _entry_path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid cache key: {key!r}")
        return self.cache_dir / key

    # -------------------------------------------------------------------------
    # Read / write
    # -------------------------------------------------------------------------

    def get(self, key: str) -> str | None:
        """
        Return the cached text if present and younger than the TTL.

        Expired entries count as misses but are not deleted here.
        """
        entry = self._entry_path(key)
        try:
            age = self._clock() - entry.stat().st_mtime
        except FileNotFoundError:
            self.stats.misses += 1
            return None
        except OSError as e:
            logger.warning(f"Cache stat failed for {entry.name}: {e}")
            self.stats.misses += 1
            return None

        if age >= self.ttl_seconds:
            logger.debug(f"Cache expired: age {age:.0f}s")
            self.stats.misses += 1
            self.stats.expired += 1
            return None

        try:
            text = entry.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Cache read failed for {entry.name}: {e}")
            self.stats.misses += 1
            return None

        logger.debug(f"Cache hit: age {age:.0f}s (TTL: {self.ttl_seconds}s)")
        self.stats.hits += 1
        return text

    def put(self, key: str, text: str) -> bool:
        """
        Store text under key atomically.

        Returns:
            True if the entry was written
        """
        entry = self._entry_path(key)
        tmp_name: str | None = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{key[:16]}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, entry)
        except OSError as e:
            logger.warning(f"Failed to write cache entry {key[:16]}: {e}")
            self.stats.write_errors += 1
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass  # Already gone
            return False

        self.stats.writes += 1
        return True

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def cleanup(self, max_age_hours: float = 24) -> int:
        """
        Delete entries (and stray temp files) older than max_age_hours.

        Returns:
            Number of files removed
        """
        if not self.cache_dir.is_dir():
            return 0

        logger.debug(f"Cleaning up Gemini cache older than {max_age_hours} hours")
        cutoff = self._clock() - max_age_hours * 3600
        removed = 0
        remaining = 0
        remaining_bytes = 0

        for entry in self.cache_dir.iterdir():
            try:
                st = entry.stat()
                if not stat.S_ISREG(st.st_mode):
                    continue
                if st.st_mtime < cutoff:
                    entry.unlink()
                    removed += 1
                else:
                    remaining += 1
                    remaining_bytes += st.st_size
            except FileNotFoundError:
                continue  # Removed by a concurrent sweep
            except OSError as e:
                logger.warning(f"Could not clean cache entry {entry.name}: {e}")

        logger.info(f"Cache stats: {remaining} files, {remaining_bytes:,} bytes total ({removed} removed)")
        return removed

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics as a dictionary."""
        return {
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "expired": self.stats.expired,
            "writes": self.stats.writes,
            "write_errors": self.stats.write_errors,
            "hit_rate": f"{self.stats.hit_rate:.1%}",
        }
