"""
Size and token estimation for a resolved file set.

Token counts use the fixed 4-bytes-per-token approximation; no tokenizer is
loaded, so the estimate costs one stat() per file.
"""

import logging
import os
import stat
from dataclasses import dataclass
from typing import Iterable

from .debug_log import TRACE

logger = logging.getLogger(__name__)

BYTES_PER_TOKEN = 4


@dataclass(frozen=True)
class SizeEstimate:
    """Aggregate size of a file set."""

    file_count: int
    existing_files: int
    total_bytes: int

    @property
    def estimated_tokens(self) -> int:
        return self.total_bytes // BYTES_PER_TOKEN


def file_size(path: str) -> int | None:
    """Size of a regular file in bytes, None if it does not exist or is not a file."""
    try:
        st = os.stat(path)
    except (OSError, ValueError):
        return None
    return st.st_size if stat.S_ISREG(st.st_mode) else None


def estimate_size(files: Iterable[str]) -> SizeEstimate:
    """
    Sum the byte sizes of the existing regular files in files.

    Missing files, directories and unreadable entries contribute zero.
    """
    file_list = list(files)
    total = 0
    existing = 0

    for path in file_list:
        size = file_size(path)
        if size is None:
            logger.log(TRACE, f"File not found: {path}")
            continue
        existing += 1
        total += size
        logger.log(TRACE, f"File size: {path} = {size} bytes")

    return SizeEstimate(
        file_count=len(file_list),
        existing_files=existing,
        total_bytes=total,
    )
