"""
Claude-Gemini Bridge

A PreToolUse hook that intercepts Claude's Read, Glob, Grep and Task tool
calls and, when the content is too large or spans many files, hands the
analysis to the Gemini CLI (1M token context) instead.

Pipeline:
- Request extraction: tool call -> file set, working directory, prompt
- Path conversion: Claude's @-notation -> absolute paths, unsafe paths rejected
- Delegation decision: size/token thresholds, sensitive-file exclusion
- Analysis invocation: content-addressed cache, cross-process rate limit,
  Gemini CLI under a timeout
- Response synthesis: approve, or block with Gemini's analysis

Each hook call is a fresh process; nothing is held in memory between calls.
The hook entry point lives in gemini_bridge.cli (console script `gemini-bridge`).
"""

__version__ = "1.0.0"

from .config import BridgeConfig, load_config
from .delegation import DelegationVerdict, VerdictCode, decide
from .invoker import AnalysisInvoker, AnalysisResult, InvocationError

__all__ = [
    "BridgeConfig",
    "load_config",
    "decide",
    "DelegationVerdict",
    "VerdictCode",
    "AnalysisInvoker",
    "AnalysisResult",
    "InvocationError",
]
