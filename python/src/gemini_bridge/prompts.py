"""
Instruction prompts sent to Gemini ahead of the file contents.

Wording depends on the intercepted tool and, for Task, on whether the request
reads as a search or an analysis (English and German keywords).
"""

from enum import Enum

from .request_extractor import ToolOperation


class TaskIntent(Enum):
    SEARCH = "search"
    ANALYZE = "analyze"
    GENERIC = "generic"


# Checked in order; search wins when both match
SEARCH_INDICATORS = ["search", "find", "suche", "finde"]
ANALYZE_INDICATORS = ["analyze", "analysiere", "verstehe"]

_ASSIST = "You are assisting another LLM with"

READ_PROMPT = (
    f"{_ASSIST} file analysis. The user requested to read this file, but it's large "
    "enough that I'm helping out. Please analyze this file and provide a concise summary "
    "focusing on purpose, main functions, and important details:"
)

MULTI_FILE_PROMPT = (
    f"{_ASSIST} multi-file analysis. The user is searching across {{file_count}} files. "
    "Please analyze these files and create a structured overview, grouping similar files "
    "and explaining the purpose of each group:"
)

TASK_PROMPTS = {
    TaskIntent.SEARCH: (
        f"{_ASSIST} a complex search task. The original request was: {{prompt}}\n\n"
        "Please search the provided files for the specified criteria and provide a "
        "structured list of findings with context:"
    ),
    TaskIntent.ANALYZE: (
        f"{_ASSIST} a complex analysis task. The original request was: {{prompt}}\n\n"
        "Please perform a detailed analysis of the provided files:"
    ),
    TaskIntent.GENERIC: (
        f"{_ASSIST} a complex analysis task. The original request was: {{prompt}}\n\n"
        "Please process this task with the provided files and give a comprehensive response:"
    ),
}

DEFAULT_PROMPT = (
    f"{_ASSIST} file analysis. Please analyze the provided files and provide a helpful summary."
)


def detect_task_intent(prompt: str) -> TaskIntent:
    """Classify a Task prompt as search, analysis or generic."""
    prompt_lower = prompt.lower()

    if any(ind in prompt_lower for ind in SEARCH_INDICATORS):
        return TaskIntent.SEARCH
    if any(ind in prompt_lower for ind in ANALYZE_INDICATORS):
        return TaskIntent.ANALYZE
    return TaskIntent.GENERIC


def create_gemini_prompt(
    operation: ToolOperation | None,
    original_prompt: str,
    file_count: int,
) -> str:
    """
    Build the instruction prefix for a Gemini call.

    Args:
        operation: Intercepted tool operation
        original_prompt: Display prompt of the request
        file_count: Number of files actually sent

    Returns:
        Instruction text passed to Gemini via -p
    """
    if operation is ToolOperation.READ_FILE:
        return READ_PROMPT
    if operation in (ToolOperation.GLOB_PATTERN, ToolOperation.GREP_SEARCH):
        return MULTI_FILE_PROMPT.format(file_count=file_count)
    if operation is ToolOperation.RUN_TASK:
        intent = detect_task_intent(original_prompt)
        return TASK_PROMPTS[intent].format(prompt=original_prompt)
    return DEFAULT_PROMPT
