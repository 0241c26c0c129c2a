"""
Claude-Gemini Bridge pipeline.

One hook execution, start to finish:

    raw stdin -> ToolInvocation -> ExtractedRequest -> DelegationVerdict
              -> (AnalysisInvoker) -> HookResponse

The pipeline never raises: every outcome, including internal errors, ends in
a decision document. Only malformed input produces a non-zero exit code.
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable

from .config import BridgeConfig
from .debug_log import capture_input
from .delegation import DelegationVerdict, VerdictCode, decide
from .invoker import AnalysisInvoker, AnalysisResult
from .maintenance import schedule_maintenance
from .profiling import LatencyTracker
from .request_extractor import (
    InvalidInputError,
    extract_request,
    parse_tool_invocation,
)
from .response import (
    HookResponse,
    approve,
    delegation_failed,
    invalid_input,
    replace_with_analysis,
)
from .size_estimator import estimate_size

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID_INPUT = 1

SPLIT_REQUEST_REASON = "Content too large for either engine; split the request"


@dataclass
class BridgeOutcome:
    """What the CLI prints and how it exits."""

    response: HookResponse
    exit_code: int = EXIT_OK
    verdict: DelegationVerdict | None = None
    analysis: AnalysisResult | None = None


def decode_input(raw_input: str | bytes) -> str:
    """Decode raw stdin bytes as UTF-8. Text passes through unchanged."""
    if isinstance(raw_input, str):
        return raw_input
    try:
        return raw_input.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidInputError(f"Input is not valid UTF-8: {e}") from e


def _explain(verdict: DelegationVerdict) -> str | None:
    """Reason attached to a non-delegating verdict, None when there is nothing to report."""
    if verdict.needs_splitting:
        return f"{SPLIT_REQUEST_REASON} ({verdict.reason})"
    if verdict.code in (VerdictCode.TOO_LARGE, VerdictCode.EXCLUDED_FILE):
        return verdict.reason
    return None


class GeminiBridge:
    """
    Decides, per intercepted tool call, whether Gemini should answer instead
    of Claude, and produces the hook response.
    """

    def __init__(
        self,
        config: BridgeConfig,
        invoker: AnalysisInvoker | None = None,
        maintenance: Callable[[BridgeConfig], object] | None = schedule_maintenance,
    ):
        self.config = config
        self._invoker = invoker
        self._maintenance = maintenance

    @property
    def invoker(self) -> AnalysisInvoker:
        if self._invoker is None:
            self._invoker = AnalysisInvoker(self.config)
        return self._invoker

    def process(self, raw_input: str | bytes) -> BridgeOutcome:
        """
        Run the whole pipeline for one hook input.

        Args:
            raw_input: The JSON document Claude wrote to stdin, as text or raw bytes

        Returns:
            BridgeOutcome with the response document and exit code
        """
        with LatencyTracker("hook_execution", level=logging.INFO):
            try:
                outcome = self._process(raw_input)
            except Exception as e:
                logger.exception(f"Internal error, continuing normally: {e}")
                outcome = BridgeOutcome(approve(f"Internal bridge error: {e}"))

        if self._maintenance is not None:
            try:
                self._maintenance(self.config)
            except Exception as e:
                logger.warning(f"Maintenance scheduling failed: {e}")

        return outcome

    def _process(self, raw_input: str | bytes) -> BridgeOutcome:
        try:
            raw_input = decode_input(raw_input)
        except InvalidInputError as e:
            if self.config.capture_inputs:
                capture_input(raw_input.decode("utf-8", errors="replace"), self.config.capture_dir)
            logger.error(f"Undecodable input received from Claude: {e}")
            return BridgeOutcome(invalid_input(str(e)), exit_code=EXIT_INVALID_INPUT)

        if not raw_input.strip():
            logger.info("Empty input received, continuing with normal execution")
            return BridgeOutcome(approve("Empty input"))

        logger.debug(f"Received tool call of size: {len(raw_input.encode('utf-8'))} bytes")

        if self.config.capture_inputs:
            capture_input(raw_input, self.config.capture_dir)

        try:
            invocation = parse_tool_invocation(raw_input)
        except InvalidInputError as e:
            logger.error(f"Invalid JSON received from Claude: {e}")
            return BridgeOutcome(invalid_input(str(e)), exit_code=EXIT_INVALID_INPUT)

        logger.info(f"Processing tool: {invocation.tool_name or '(none)'}")
        request = extract_request(invocation, self.config)
        if request is None:
            return BridgeOutcome(approve())

        if request.path_rejected:
            logger.warning(f"Unsafe path in {request.operation.value} request, not delegating")
            return BridgeOutcome(approve("Unsafe path in request; not delegated"))

        estimate = estimate_size(request.files)
        verdict = decide(
            request.operation,
            request.files,
            request.display_prompt,
            self.config,
            estimate,
        )

        if not verdict.should_delegate:
            logger.info("Continuing with normal tool execution")
            return BridgeOutcome(approve(_explain(verdict)), verdict=verdict)

        logger.info(f"Delegating to Gemini for tool: {request.operation.value}")
        result = self.invoker.invoke_sync(
            request.operation,
            request.files,
            request.working_directory,
            request.display_prompt,
        )

        if not result.ok:
            logger.error(f"Gemini processing failed, continuing with normal tool execution: {result.message}")
            return BridgeOutcome(delegation_failed(result.message), verdict=verdict, analysis=result)

        logger.info(f"Gemini processing successful ({result.duration_seconds:.2f}s)")
        response = replace_with_analysis(
            result.text,
            request.operation.value,
            result.file_count,
            result.duration_seconds,
            from_cache=result.from_cache,
        )
        return BridgeOutcome(response, verdict=verdict, analysis=result)


def resolve_working_directory(raw_input: str | bytes) -> str:
    """
    Working directory named by the hook input, or the process cwd.

    Used before the pipeline runs so the project config file can be layered in.
    """
    try:
        invocation = parse_tool_invocation(decode_input(raw_input))
    except InvalidInputError:
        return os.getcwd()
    return invocation.working_directory or os.getcwd()
