"""
Background maintenance for the Claude-Gemini Bridge.

At the end of a hook run the bridge occasionally removes old cache entries
(probability CACHE_CLEANUP_PROBABILITY) and old logs and captured inputs
(probability LOG_CLEANUP_PROBABILITY). The work runs in a detached child
process so the hook can print its decision and exit immediately.

Can also be run by hand:

    python -m gemini_bridge.maintenance --cache-dir ~/.claude-gemini-bridge/cache/gemini
    python -m gemini_bridge.maintenance --log-dir ~/.claude-gemini-bridge/logs/debug --log-days 3
"""

import argparse
import logging
import random
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .cache_manager import AnalysisCache
from .config import BridgeConfig, load_config
from .debug_log import cleanup_debug_files, configure_logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaintenancePlan:
    """Which cleanups a run should trigger."""

    clean_cache: bool = False
    clean_logs: bool = False

    @property
    def empty(self) -> bool:
        return not (self.clean_cache or self.clean_logs)


def plan_maintenance(
    config: BridgeConfig,
    rng: Callable[[], float] = random.random,
) -> MaintenancePlan:
    """Roll the dice for each enabled cleanup."""
    clean_cache = config.auto_cleanup_cache and rng() < config.cache_cleanup_probability
    clean_logs = config.auto_cleanup_logs and rng() < config.log_cleanup_probability
    return MaintenancePlan(clean_cache=clean_cache, clean_logs=clean_logs)


def build_command(config: BridgeConfig, plan: MaintenancePlan) -> list[str]:
    """Command line of the detached maintenance process."""
    cmd = [sys.executable, "-m", "gemini_bridge.maintenance"]
    if plan.clean_cache:
        cmd += ["--cache-dir", str(config.cache_dir), "--cache-hours", str(config.cache_max_age_hours)]
    if plan.clean_logs:
        cmd += ["--log-dir", str(config.log_dir), "--log-days", str(config.log_max_age_days)]
        if config.capture_dir is not None:
            cmd += ["--capture-dir", str(config.capture_dir)]
    return cmd


def schedule_maintenance(
    config: BridgeConfig,
    rng: Callable[[], float] = random.random,
    spawn: Callable[..., object] = subprocess.Popen,
) -> MaintenancePlan:
    """
    Possibly launch a detached cleanup process. Never waits for it.

    Launch failures are logged and otherwise ignored.

    Returns:
        The plan that was (or would have been) launched
    """
    plan = plan_maintenance(config, rng)
    if plan.empty:
        return plan

    cmd = build_command(config, plan)
    logger.debug(f"Launching background maintenance: cache={plan.clean_cache}, logs={plan.clean_logs}")
    try:
        spawn(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
            close_fds=True,
        )
    except OSError as e:
        logger.warning(f"Could not launch background maintenance: {e}")
    return plan


def run_maintenance(
    cache_dir: str | Path | None = None,
    cache_max_age_hours: float = 24,
    log_dir: str | Path | None = None,
    capture_dir: str | Path | None = None,
    log_max_age_days: float = 7,
) -> dict[str, int]:
    """
    Run the requested cleanups in the current process.

    Returns:
        Removed file counts keyed by "cache" and "logs"
    """
    removed = {"cache": 0, "logs": 0}
    if cache_dir is not None:
        removed["cache"] = AnalysisCache(cache_dir).cleanup(cache_max_age_hours)
    if log_dir is not None:
        removed["logs"] = cleanup_debug_files(log_dir, capture_dir, log_max_age_days)
    logger.info(f"Maintenance removed {removed['cache']} cache entries and {removed['logs']} debug files")
    return removed


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Remove old Gemini cache entries, logs and captured inputs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--cache-dir", help="Cache directory to clean")
    parser.add_argument("--cache-hours", type=float, default=None, help="Keep cache entries younger than this")
    parser.add_argument("--log-dir", help="Debug log directory to clean")
    parser.add_argument("--capture-dir", help="Captured input directory to clean")
    parser.add_argument("--log-days", type=float, default=None, help="Keep logs younger than this")
    parser.add_argument("--all", action="store_true", help="Clean everything using the resolved configuration")

    args = parser.parse_args(argv)
    config = load_config(Path.cwd())
    configure_logging(config.log_dir, config.debug_level)

    cache_dir = args.cache_dir
    log_dir = args.log_dir
    capture_dir = args.capture_dir
    if args.all:
        cache_dir = cache_dir or config.cache_dir
        log_dir = log_dir or config.log_dir
        capture_dir = capture_dir or config.capture_dir

    if cache_dir is None and log_dir is None:
        parser.error("nothing to do: pass --cache-dir, --log-dir or --all")

    run_maintenance(
        cache_dir=cache_dir,
        cache_max_age_hours=args.cache_hours if args.cache_hours is not None else config.cache_max_age_hours,
        log_dir=log_dir,
        capture_dir=capture_dir,
        log_max_age_days=args.log_days if args.log_days is not None else config.log_max_age_days,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
