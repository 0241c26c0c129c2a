"""
Debug logging for the Claude-Gemini Bridge.

Layout under the log directory:
- YYYYMMDD.log        INFO and DEBUG records
- YYYYMMDD_trace.log  TRACE records (DEBUG_LEVEL=3)
- errors.log          ERROR records, always written

Standard output carries the hook decision document, so console echo goes to
stderr only: every record when DEBUG_LEVEL >= 2, errors otherwise.
"""

import logging
import sys
import time
import uuid
from datetime import datetime
from pathlib import Path

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOGGER_NAME = "gemini_bridge"
LOG_FORMAT = "[%(asctime)s] [%(name)s] %(levelname)s %(message)s"

_LEVELS = {
    0: logging.ERROR,
    1: logging.INFO,
    2: logging.DEBUG,
    3: TRACE,
}

logger = logging.getLogger(__name__)


class _LevelRangeFilter(logging.Filter):
    """Pass records whose level lies in [low, high]."""

    def __init__(self, low: int, high: int):
        super().__init__()
        self.low = low
        self.high = high

    def filter(self, record: logging.LogRecord) -> bool:
        return self.low <= record.levelno <= self.high


def level_for(debug_level: int) -> int:
    """Map DEBUG_LEVEL (0-3) to a logging level."""
    return _LEVELS.get(max(0, min(debug_level, 3)), logging.INFO)


def configure_logging(
    log_dir: str | Path | None,
    debug_level: int = 1,
    stream=None,
) -> logging.Logger:
    """
    Attach file and stderr handlers to the package logger.

    Safe to call repeatedly; previously attached handlers are closed and
    replaced. A log directory that cannot be created degrades to stderr only.

    Args:
        log_dir: Directory for the dated log files (None for stderr only)
        debug_level: DEBUG_LEVEL value (0-3)
        stream: Console stream (default: sys.stderr)

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    level = level_for(debug_level)
    package_logger.setLevel(level)
    package_logger.propagate = False
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(stream or sys.stderr)
    console.setLevel(level if debug_level >= 2 else logging.ERROR)
    console.setFormatter(formatter)
    package_logger.addHandler(console)

    if log_dir is not None:
        log_path = Path(log_dir)
        try:
            log_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            package_logger.error(f"Cannot create log directory {log_path}: {e}")
            return package_logger

        stamp = datetime.now().strftime("%Y%m%d")

        daily = logging.FileHandler(log_path / f"{stamp}.log", delay=True, encoding="utf-8")
        daily.addFilter(_LevelRangeFilter(logging.DEBUG, logging.CRITICAL))
        daily.setFormatter(formatter)
        package_logger.addHandler(daily)

        trace = logging.FileHandler(log_path / f"{stamp}_trace.log", delay=True, encoding="utf-8")
        trace.addFilter(_LevelRangeFilter(TRACE, TRACE))
        trace.setFormatter(formatter)
        package_logger.addHandler(trace)

        errors = logging.FileHandler(log_path / "errors.log", delay=True, encoding="utf-8")
        errors.setLevel(logging.ERROR)
        errors.setFormatter(formatter)
        package_logger.addHandler(errors)

    return package_logger


def capture_input(raw_input: str, capture_dir: str | Path) -> Path | None:
    """
    Save a raw hook input for later analysis.

    Returns:
        Path of the snapshot, or None if it could not be written
    """
    directory = Path(capture_dir)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    capture_file = directory / f"{stamp}_{uuid.uuid4().hex}.json"

    try:
        directory.mkdir(parents=True, exist_ok=True)
        capture_file.write_text(raw_input, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Failed to capture input to {directory}: {e}")
        return None

    logger.debug(f"Input captured to: {capture_file}")
    return capture_file


def _remove_older_than(directory: Path, pattern: str, cutoff: float) -> int:
    removed = 0
    if not directory.is_dir():
        return 0
    for path in directory.glob(pattern):
        try:
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except FileNotFoundError:
            continue  # Removed by a concurrent sweep
        except OSError as e:
            logger.warning(f"Could not remove {path}: {e}")
    return removed


def cleanup_debug_files(
    log_dir: str | Path,
    capture_dir: str | Path | None,
    days_to_keep: float = 7,
    now: float | None = None,
) -> int:
    """
    Delete log files and captured inputs older than days_to_keep.

    Returns:
        Number of files removed
    """
    cutoff = (now if now is not None else time.time()) - days_to_keep * 86400
    logger.debug(f"Cleaning up debug files older than {days_to_keep} days")

    removed = _remove_older_than(Path(log_dir), "*.log", cutoff)
    if capture_dir is not None:
        removed += _remove_older_than(Path(capture_dir), "*.json", cutoff)
    return removed
