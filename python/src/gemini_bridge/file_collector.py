"""
File Collector for Gemini delegation

Reads the resolved file set of a request into memory so it can be streamed to
the Gemini CLI.

Filtering (input order preserved, first GEMINI_MAX_FILES survivors kept):
- Missing, unreadable and non-regular paths are skipped
- Files larger than GEMINI_MAX_FILE_SIZE are skipped (the limit is inclusive)
- Empty files are skipped

Performance:
- Async file I/O with aiofiles (non-blocking)
- Parallel reads with asyncio.gather, bounded by a semaphore
- Timeout for file reads (network mount safety)
"""

import asyncio
import logging
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

import aiofiles

from .config import BridgeConfig

logger = logging.getLogger(__name__)

# Constants for performance tuning
MAX_CONCURRENT_FILE_READS = 16
FILE_READ_TIMEOUT_SECONDS = 10
ENCODINGS = ("utf-8", "latin-1")


@dataclass
class CollectedFile:
    """A file whose content will be sent to Gemini."""

    path: str
    content: str
    size_bytes: int

    @property
    def extension(self) -> str:
        return Path(self.path).suffix.lower()


@dataclass
class CollectionResult:
    """Result of file collection."""

    files: list[CollectedFile] = field(default_factory=list)
    total_bytes: int = 0
    skipped_files: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.files)

    def get_file_list(self) -> list[str]:
        """Get list of collected file paths."""
        return [f.path for f in self.files]

    def iter_content(self) -> Iterator[str]:
        """Yield each file framed by its "=== File: <path> ===" header."""
        for f in self.files:
            yield f"=== File: {f.path} ===\n{f.content}\n\n"

    def get_combined_content(self) -> str:
        """Get all file contents combined into the stream sent on Gemini's stdin."""
        return "".join(self.iter_content())


class FileCollector:
    """
    Collects the files of an extracted request for Gemini processing.

    Features:
    - Async file I/O for non-blocking operations
    - Per-file and per-request limits from BridgeConfig
    - Timeout protection for slow reads
    """

    def __init__(self, config: BridgeConfig | None = None):
        self.config = config or BridgeConfig()
        self._semaphore: asyncio.Semaphore | None = None

    def _select(self, paths: Iterable[str], result: CollectionResult) -> list[tuple[str, int]]:
        """Apply the existence, readability, size and count filters in input order."""
        selected: list[tuple[str, int]] = []

        for path in paths:
            if len(selected) >= self.config.max_files:
                result.skipped_files.append(f"{path} (file limit reached)")
                continue

            try:
                st = os.stat(path)
            except FileNotFoundError:
                result.skipped_files.append(f"{path} (file not found)")
                continue
            except OSError as e:
                result.errors.append(f"Cannot stat {path}: {e}")
                continue

            if not stat.S_ISREG(st.st_mode):
                result.skipped_files.append(f"{path} (not a regular file)")
                continue

            if not os.access(path, os.R_OK):
                result.skipped_files.append(f"{path} (permission denied)")
                continue

            if st.st_size > self.config.max_file_size_bytes:
                result.skipped_files.append(f"{path} (too large: {st.st_size:,} bytes)")
                continue

            if st.st_size == 0:
                result.skipped_files.append(f"{path} (empty file)")
                continue

            selected.append((path, st.st_size))

        return selected

    # -------------------------------------------------------------------------
    # Synchronous API
    # -------------------------------------------------------------------------

    def collect_paths(self, paths: list[str]) -> CollectionResult:
        """
        Collect files (sync wrapper for async).

        Args:
            paths: Resolved file paths in request order

        Returns:
            CollectionResult with collected files and skip reasons
        """
        return asyncio.run(self.collect_paths_async(paths))

    # -------------------------------------------------------------------------
    # Async API
    # -------------------------------------------------------------------------

    async def collect_paths_async(self, paths: Iterable[str]) -> CollectionResult:
        """
        Collect files asynchronously, preserving input order.

        Args:
            paths: Resolved file paths in request order

        Returns:
            CollectionResult with collected files and skip reasons
        """
        result = CollectionResult()
        selected = self._select(paths, result)
        if not selected:
            return result

        # Initialize semaphore for this collection run
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_FILE_READS)

        collected = await asyncio.gather(
            *(self._collect_file_async(path, size, result) for path, size in selected)
        )

        for item in collected:
            if item is not None:
                result.files.append(item)
                result.total_bytes += item.size_bytes

        logger.debug(
            f"Collected {result.file_count} files ({result.total_bytes:,} bytes), "
            f"skipped {len(result.skipped_files)}"
        )
        return result

    async def _collect_file_async(
        self,
        path: str,
        size: int,
        result: CollectionResult,
    ) -> CollectedFile | None:
        """Read a single file with timeout and concurrency control."""
        async with self._semaphore:
            try:
                content = await asyncio.wait_for(
                    self._read_file_content(path),
                    timeout=FILE_READ_TIMEOUT_SECONDS,
                )
            except asyncio.TimeoutError:
                result.skipped_files.append(f"{path} (read timeout)")
                return None
            except OSError as e:
                result.errors.append(f"Error reading {path}: {e}")
                return None

        if content is None:
            result.skipped_files.append(f"{path} (encoding error)")
            return None

        return CollectedFile(path=path, content=content, size_bytes=size)

    async def _read_file_content(self, path: str) -> str | None:
        """Read file content, falling back through ENCODINGS."""
        for encoding in ENCODINGS:
            try:
                async with aiofiles.open(path, mode="r", encoding=encoding) as f:
                    return await f.read()
            except UnicodeDecodeError:
                continue  # Expected - try next encoding
        return None
