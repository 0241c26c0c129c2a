"""
Analysis Invoker

Orchestrates one delegated call:

1. Cache lookup (a hit skips everything below)
2. File filtering and reading
3. Engine availability check
4. Instruction prompt construction
5. Rate limiting
6. Gemini CLI execution under a timeout
7. Cache write on success

Every failure comes back as an AnalysisResult carrying an InvocationError;
nothing raises past invoke().
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from .cache_manager import AnalysisCache
from .config import BridgeConfig
from .file_collector import FileCollector
from .gemini_client import GeminiClient
from .prompts import create_gemini_prompt
from .rate_limiter import FileRateLimiter
from .request_extractor import ToolOperation

logger = logging.getLogger(__name__)


class InvocationError(Enum):
    NO_VALID_CONTENT = "no_valid_content"
    ENGINE_UNAVAILABLE = "engine_unavailable"
    TIMEOUT = "timeout"
    NONZERO_EXIT = "nonzero_exit"
    EMPTY_OUTPUT = "empty_output"
    EXECUTION_FAILED = "execution_failed"


@dataclass
class AnalysisResult:
    """Typed result of invoke(): either text or an error, never both."""

    text: str | None = None
    error: InvocationError | None = None
    message: str = ""
    file_count: int = 0
    duration_seconds: float = 0.0
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.text)

    @classmethod
    def failure(cls, error: InvocationError, message: str, **kwargs) -> "AnalysisResult":
        return cls(error=error, message=message, **kwargs)


class AnalysisInvoker:
    """
    Runs delegated analyses against the Gemini CLI.

    Collaborators are injectable so tests can substitute a stub client or a
    limiter with a fake clock.
    """

    def __init__(
        self,
        config: BridgeConfig,
        cache: AnalysisCache | None = None,
        rate_limiter: FileRateLimiter | None = None,
        client: GeminiClient | None = None,
        collector: FileCollector | None = None,
    ):
        self.config = config
        self.cache = cache or AnalysisCache(config.cache_dir, config.cache_ttl_seconds)
        self.rate_limiter = rate_limiter or FileRateLimiter(
            config.rate_limit_file, config.rate_limit_seconds
        )
        self.client = client or GeminiClient(config.gemini_command, config.timeout_seconds)
        self.collector = collector or FileCollector(config)
        self._engine_calls = 0

    @property
    def engine_calls(self) -> int:
        """Number of times the external engine was actually executed."""
        return self._engine_calls

    def invoke_sync(
        self,
        operation: ToolOperation,
        files: Sequence[str],
        working_dir: str,
        prompt: str,
    ) -> AnalysisResult:
        """Synchronous wrapper for invoke()."""
        return asyncio.run(self.invoke(operation, files, working_dir, prompt))

    async def invoke(
        self,
        operation: ToolOperation,
        files: Sequence[str],
        working_dir: str,
        prompt: str,
    ) -> AnalysisResult:
        """
        Analyze files with Gemini, using the cache when possible.

        Args:
            operation: Intercepted tool operation
            files: Resolved file set, in request order
            working_dir: Working directory of the invocation
            prompt: Display prompt of the request

        Returns:
            AnalysisResult with text on success, an InvocationError otherwise
        """
        start = time.perf_counter()
        try:
            result = await self._invoke(operation, list(files), working_dir, prompt)
        except Exception as e:
            logger.exception(f"Gemini invocation failed unexpectedly: {e}")
            result = AnalysisResult.failure(InvocationError.EXECUTION_FAILED, f"Unexpected error: {e}")
        result.duration_seconds = time.perf_counter() - start
        return result

    async def _invoke(
        self,
        operation: ToolOperation,
        files: list[str],
        working_dir: str,
        prompt: str,
    ) -> AnalysisResult:
        cache_key = self.cache.make_key(prompt, files, working_dir, operation.value)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Using cached result for {operation.value} ({len(files)} files)")
            return AnalysisResult(text=cached, file_count=len(files), from_cache=True)

        collection = await self.collector.collect_paths_async(files)
        for skipped in collection.skipped_files:
            logger.debug(f"Skipped: {skipped}")
        for error in collection.errors:
            logger.warning(error)

        if collection.file_count == 0:
            logger.warning("No valid files found for analysis")
            return AnalysisResult.failure(
                InvocationError.NO_VALID_CONTENT, "No valid files found for analysis"
            )

        if not self.client.is_available():
            logger.error(f"Gemini CLI not found: {self.client.executable}")
            return AnalysisResult.failure(
                InvocationError.ENGINE_UNAVAILABLE,
                f"Gemini CLI not available ({self.client.executable})",
                file_count=collection.file_count,
            )

        instruction = create_gemini_prompt(operation, prompt, collection.file_count)
        logger.debug(f"Processing {collection.file_count} files with Gemini")
        logger.debug(f"Prompt: {instruction}")

        await self.rate_limiter.await_turn()

        self._engine_calls += 1
        engine = await self.client.run(instruction, collection.get_combined_content())

        if engine.timed_out:
            return AnalysisResult.failure(
                InvocationError.TIMEOUT,
                f"Gemini call timed out after {self.client.timeout_seconds}s",
                file_count=collection.file_count,
            )

        if engine.exit_code is None:
            return AnalysisResult.failure(
                InvocationError.EXECUTION_FAILED,
                f"Gemini CLI could not be started: {engine.stderr}",
                file_count=collection.file_count,
            )

        if engine.exit_code != 0:
            logger.error(f"Gemini call failed (exit code: {engine.exit_code})")
            logger.debug(f"Gemini error output: {engine.stderr}")
            return AnalysisResult.failure(
                InvocationError.NONZERO_EXIT,
                f"Gemini call failed (exit code: {engine.exit_code})",
                file_count=collection.file_count,
            )

        if not engine.stdout.strip():
            logger.error("Gemini returned empty output")
            return AnalysisResult.failure(
                InvocationError.EMPTY_OUTPUT,
                "Gemini returned empty output",
                file_count=collection.file_count,
            )

        self.cache.put(cache_key, engine.stdout)
        logger.info(
            f"Gemini call successful ({engine.duration_seconds:.2f}s, {collection.file_count} files)"
        )
        return AnalysisResult(text=engine.stdout, file_count=collection.file_count)
