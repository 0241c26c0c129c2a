"""
Delegation decision engine.

Decides whether an intercepted operation should be handed to Gemini (1M token
context) instead of being processed by Claude directly. Rules, first match wins:

1. DRY_RUN: always delegate (test harnesses)
2. total size > MAX_TOTAL_SIZE_FOR_GEMINI: never delegate
3. estimated tokens > CLAUDE_TOKEN_LIMIT: delegate if within GEMINI_TOKEN_LIMIT,
   otherwise report content too large for either engine
4. Task with >= MIN_FILES_FOR_GEMINI files: delegate
5. Otherwise: Claude handles it

Whatever rule fired, a delegate verdict is vetoed when any file name matches
GEMINI_EXCLUDE_PATTERNS. Nothing is sent to Gemini for secrets, keys or
certificates.
"""

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from .config import BridgeConfig
from .request_extractor import ToolOperation
from .size_estimator import SizeEstimate, estimate_size

logger = logging.getLogger(__name__)


class VerdictCode(Enum):
    DRY_RUN = "dry_run"
    LARGE_CONTENT = "large_content"
    MULTI_FILE_TASK = "multi_file_task"
    MANAGEABLE = "manageable"
    TOO_LARGE = "too_large"
    EXCEEDS_ENGINE_LIMITS = "exceeds_engine_limits"
    EXCLUDED_FILE = "excluded_file"


@dataclass(frozen=True)
class DelegationVerdict:
    """Outcome of decide(). Drives all downstream branching."""

    should_delegate: bool
    reason: str
    code: VerdictCode
    estimate: SizeEstimate | None = None

    @property
    def needs_splitting(self) -> bool:
        """Content exceeds both engines' capacity."""
        return self.code is VerdictCode.EXCEEDS_ENGINE_LIMITS


def find_excluded_file(files: Sequence[str], exclude_patterns: str) -> str | None:
    """
    Return the first file whose basename matches the exclusion regex.

    An invalid regex excludes everything rather than nothing.
    """
    if not exclude_patterns or not files:
        return None
    try:
        matcher = re.compile(exclude_patterns, re.IGNORECASE)
    except re.error as e:
        logger.error(f"Invalid GEMINI_EXCLUDE_PATTERNS ({e}), refusing to delegate")
        return files[0]

    for path in files:
        if matcher.search(os.path.basename(path.rstrip("/"))):
            return path
    return None


def _base_verdict(
    operation: ToolOperation,
    estimate: SizeEstimate,
    config: BridgeConfig,
) -> DelegationVerdict:
    if config.dry_run:
        return DelegationVerdict(True, "DRY_RUN mode: would delegate to Gemini", VerdictCode.DRY_RUN, estimate)

    total_size = estimate.total_bytes
    tokens = estimate.estimated_tokens

    if total_size > config.max_total_size_bytes:
        return DelegationVerdict(
            False,
            f"Content too large ({total_size} bytes > {config.max_total_size_bytes}) - exceeds maximum size limit",
            VerdictCode.TOO_LARGE,
            estimate,
        )

    if tokens > config.claude_token_limit:
        if tokens <= config.gemini_token_limit:
            return DelegationVerdict(
                True,
                f"Large content ({tokens} tokens > {config.claude_token_limit}) - delegating to Gemini",
                VerdictCode.LARGE_CONTENT,
                estimate,
            )
        return DelegationVerdict(
            False,
            f"Content too large even for Gemini ({tokens} tokens > {config.gemini_token_limit}) - splitting needed",
            VerdictCode.EXCEEDS_ENGINE_LIMITS,
            estimate,
        )

    if (
        operation is ToolOperation.RUN_TASK
        and estimate.file_count >= config.min_files_for_delegation
        and total_size >= config.min_total_size_bytes
    ):
        return DelegationVerdict(
            True,
            f"Multi-file Task ({estimate.file_count} files >= {config.min_files_for_delegation}) "
            f"- delegating to Gemini for better analysis",
            VerdictCode.MULTI_FILE_TASK,
            estimate,
        )

    return DelegationVerdict(
        False,
        "Content size manageable for Claude - no delegation needed",
        VerdictCode.MANAGEABLE,
        estimate,
    )


def decide(
    operation: ToolOperation,
    files: Sequence[str],
    prompt: str,
    config: BridgeConfig,
    estimate: SizeEstimate | None = None,
) -> DelegationVerdict:
    """
    Decide whether to delegate an operation to Gemini.

    Args:
        operation: The intercepted tool operation
        files: Resolved absolute file paths
        prompt: Display prompt (logged only; rules do not depend on its wording)
        config: Thresholds and exclusion patterns
        estimate: Precomputed size estimate (computed from files if omitted)

    Returns:
        DelegationVerdict
    """
    if estimate is None:
        estimate = estimate_size(files)

    logger.debug(
        f"File count: {estimate.file_count}, Total size: {estimate.total_bytes} bytes, "
        f"Estimated tokens: {estimate.estimated_tokens}"
    )

    verdict = _base_verdict(operation, estimate, config)

    if verdict.should_delegate:
        excluded = find_excluded_file(files, config.exclude_patterns)
        if excluded is not None:
            verdict = DelegationVerdict(
                False,
                f"Excluded file pattern detected: {os.path.basename(excluded)}",
                VerdictCode.EXCLUDED_FILE,
                estimate,
            )

    logger.info(f"Decision for {operation.value}: {verdict.reason}")
    logger.debug(f"Prompt: {prompt[:200]}")
    return verdict
