"""
Response Synthesizer

Builds the decision document printed on stdout:

- {"decision": "approve"}                     proceed with the original tool
- {"decision": "approve", "reason": "..."}    proceed, with an explanation
- {"decision": "block", "reason": "..."}      replace the tool result with
                                              Gemini's analysis
"""

import json
from dataclasses import dataclass
from typing import Any

APPROVE = "approve"
BLOCK = "block"


@dataclass(frozen=True)
class HookResponse:
    """Decision document returned to Claude."""

    decision: str
    reason: str | None = None

    @property
    def replaces_tool(self) -> bool:
        return self.decision == BLOCK

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"decision": self.decision}
        if self.reason:
            data["reason"] = self.reason
        return data

    def to_json(self) -> str:
        # ASCII escapes keep the document encodable on any stdout
        return json.dumps(self.to_dict())


def approve(reason: str | None = None) -> HookResponse:
    """Let the original tool call proceed."""
    return HookResponse(APPROVE, reason or None)


def analysis_intro(
    original_tool: str,
    file_count: int,
    duration_seconds: float,
    from_cache: bool = False,
) -> str:
    plural = "file" if file_count == 1 else "files"
    source = "cached result" if from_cache else f"processed in {duration_seconds:.1f}s"
    return f"Gemini analysis for {original_tool} ({file_count} {plural}, {source}):"


def replace_with_analysis(
    analysis: str,
    original_tool: str,
    file_count: int,
    duration_seconds: float,
    from_cache: bool = False,
) -> HookResponse:
    """Replace the tool result with Gemini's analysis, prefixed by a short intro."""
    intro = analysis_intro(original_tool, file_count, duration_seconds, from_cache)
    return HookResponse(BLOCK, f"{intro}\n\n{analysis.strip()}")


def delegation_failed(message: str) -> HookResponse:
    """A delegation attempt failed; Claude continues with the original tool."""
    return approve(f"Gemini processing failed, continuing normally: {message}")


def invalid_input(message: str) -> HookResponse:
    """The hook input could not be understood; never block on it."""
    return approve(f"Invalid input: {message}")
