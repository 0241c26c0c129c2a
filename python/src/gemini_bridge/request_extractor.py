"""
Request extraction for intercepted tool calls.

Turns the hook's JSON document into a ToolInvocation and then into the file
set the delegation decision is made on:

- Read:  the single target file
- Glob:  files matching the pattern under the search path (directory walk,
         never shell expansion), capped at GEMINI_MAX_FILES
- Grep:  the search root itself
- Task:  path-like tokens found in the (converted) prompt text

Two input schema versions are accepted: "tool"/"parameters" and
"tool_name"/"tool_input".
"""

import fnmatch
import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .config import BridgeConfig
from .path_converter import (
    convert_claude_paths,
    extract_files_from_text,
    is_sensitive_path,
)
from .profiling import profile_latency

logger = logging.getLogger(__name__)

_GLOB_CHARS = set("*?[")


class BridgeError(Exception):
    """Base class for bridge errors."""


class InvalidInputError(BridgeError):
    """The hook input is not a usable JSON document."""


class ToolOperation(Enum):
    READ_FILE = "Read"
    GLOB_PATTERN = "Glob"
    GREP_SEARCH = "Grep"
    RUN_TASK = "Task"

    @classmethod
    def from_tool_name(cls, name: str) -> "ToolOperation | None":
        """Map a Claude tool name to an operation, None for tools the bridge ignores."""
        for operation in cls:
            if operation.value == name:
                return operation
        return None


@dataclass(frozen=True)
class ToolInvocation:
    """One intercepted tool call. Never mutated after parsing."""

    tool_name: str
    parameters: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    working_directory: str | None = None

    @property
    def operation(self) -> ToolOperation | None:
        return ToolOperation.from_tool_name(self.tool_name)


@dataclass(frozen=True)
class ExtractedRequest:
    """File set and prompt derived from a ToolInvocation."""

    operation: ToolOperation
    files: tuple[str, ...]
    working_directory: str
    display_prompt: str
    path_rejected: bool = False

    @property
    def file_count(self) -> int:
        return len(self.files)


def parse_tool_invocation(raw_input: str) -> ToolInvocation:
    """
    Parse the hook's stdin document.

    Raises:
        InvalidInputError: Malformed JSON or a document that is not an object
    """
    try:
        data = json.loads(raw_input)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"Invalid JSON input: {e.msg} (line {e.lineno}, column {e.colno})") from e

    if not isinstance(data, dict):
        raise InvalidInputError(f"Expected a JSON object, got {type(data).__name__}")

    tool_name = data.get("tool") or data.get("tool_name") or ""
    if not isinstance(tool_name, str):
        tool_name = str(tool_name)

    parameters = data.get("parameters")
    if parameters is None:
        parameters = data.get("tool_input")
    if not isinstance(parameters, dict):
        parameters = {}

    context = data.get("context")
    working_directory = None
    if isinstance(context, dict):
        working_directory = context.get("working_directory") or None
    if not working_directory:
        working_directory = data.get("cwd") or None
    if working_directory is not None and not isinstance(working_directory, str):
        working_directory = None

    return ToolInvocation(
        tool_name=tool_name,
        parameters=MappingProxyType(dict(parameters)),
        working_directory=working_directory,
    )


# =============================================================================
# GLOB EXPANSION
# =============================================================================

def _expand_braces(pattern: str) -> list[str]:
    """Expand "{a,b}" alternatives, which pathlib globs do not understand."""
    start = pattern.find("{")
    end = pattern.find("}", start + 1) if start != -1 else -1
    if start == -1 or end == -1:
        return [pattern]

    head, body, tail = pattern[:start], pattern[start + 1:end], pattern[end + 1:]
    expanded: list[str] = []
    for alternative in body.split(","):
        expanded.extend(_expand_braces(head + alternative + tail))
    return expanded


def _split_static_prefix(pattern: str) -> tuple[str, str]:
    """Split "src/lib/**/*.py" into ("src/lib", "**/*.py")."""
    parts = pattern.split("/")
    for index, part in enumerate(parts):
        if any(ch in _GLOB_CHARS for ch in part):
            static = "/".join(parts[:index])
            if pattern.startswith("/") and not static:
                static = "/"
            return static, "/".join(parts[index:])
    return pattern, ""


def _is_skipped(name: str, skipped: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(name, skip) for skip in skipped)


def _glob_one(pattern: str, root: str | Path, skipped: tuple[str, ...]) -> set[str]:
    static, remainder = _split_static_prefix(pattern)
    base = Path(static) if os.path.isabs(static) else Path(root) / static

    if not remainder:
        # No wildcards: a literal path
        return {str(base)} if base.is_file() else set()

    if not base.is_dir():
        return set()

    matches: set[str] = set()
    try:
        for file_path in base.glob(remainder):
            if not file_path.is_file():
                continue
            relative_dirs = file_path.relative_to(base).parts[:-1]
            if any(_is_skipped(part, skipped) for part in relative_dirs):
                continue
            matches.add(str(file_path))
    except (ValueError, OSError) as e:
        logger.warning(f"Glob expansion failed for {pattern!r}: {e}")
    return matches


@profile_latency("glob_expansion")
def expand_glob(
    pattern: str,
    root: str | Path,
    max_files: int = 20,
    skipped_directories: Iterable[str] = (),
) -> list[str]:
    """
    Expand a glob pattern with pathlib.

    Supports "**", "?", "[..]" and "{a,b}" alternatives.

    Args:
        pattern: Glob relative to root, or absolute
        root: Directory relative patterns are resolved against
        max_files: Maximum number of matches to return
        skipped_directories: Directory names (fnmatch patterns) whose contents never match

    Returns:
        Absolute paths of matching files in sorted order
    """
    if not pattern or max_files <= 0:
        return []

    skipped = tuple(skipped_directories)
    matches: set[str] = set()
    for alternative in _expand_braces(pattern):
        matches |= _glob_one(alternative, root, skipped)

    return sorted(matches)[:max_files]


# =============================================================================
# EXTRACTION
# =============================================================================

def _absolute(path: str, working_dir: str) -> str:
    if not os.path.isabs(path):
        path = os.path.join(working_dir, path)
    return os.path.normpath(path)


def _safe_files(paths: Iterable[str], config: BridgeConfig) -> tuple[tuple[str, ...], bool]:
    """Drop the whole set if any path points into a sensitive location."""
    files = tuple(paths)
    for path in files:
        if is_sensitive_path(path, config.sensitive_path_prefixes):
            logger.warning(f"Rejected sensitive path: {path}")
            return (), True
    return files, False


def _search_root(raw_path: str | None, working_dir: str, config: BridgeConfig) -> str:
    if not raw_path:
        return working_dir
    converted, ok = convert_claude_paths(raw_path, working_dir, config.sensitive_path_prefixes)
    if not ok or not converted:
        return working_dir
    candidate = _absolute(converted, working_dir)
    return candidate if os.path.isdir(candidate) else working_dir


def extract_request(invocation: ToolInvocation, config: BridgeConfig) -> ExtractedRequest | None:
    """
    Derive the file set, working directory and display prompt for an invocation.

    Returns:
        ExtractedRequest, or None for tools the bridge does not handle
    """
    operation = invocation.operation
    if operation is None:
        logger.info(f"Unknown tool type: {invocation.tool_name or '(none)'}, continuing normally")
        return None

    working_dir = invocation.working_directory or os.getcwd()
    params = invocation.parameters
    prefixes = config.sensitive_path_prefixes
    rejected = False

    if operation is ToolOperation.READ_FILE:
        raw = str(params.get("file_path") or "")
        converted, ok = convert_claude_paths(raw, working_dir, prefixes)
        rejected = not ok
        candidates = [_absolute(converted, working_dir)] if converted else []
        display_prompt = f"Read file: {raw}"

    elif operation is ToolOperation.GLOB_PATTERN:
        raw = str(params.get("pattern") or "")
        search_path = _search_root(params.get("path"), working_dir, config)
        converted, ok = convert_claude_paths(raw, working_dir, prefixes)
        rejected = not ok
        candidates = []
        if converted and not is_sensitive_path(search_path, prefixes):
            candidates = expand_glob(
                converted, search_path, config.max_files, config.skipped_directories
            )
        display_prompt = f"Find files matching: {raw} in {search_path}"

    elif operation is ToolOperation.GREP_SEARCH:
        raw_path = str(params.get("path") or ".")
        pattern = str(params.get("pattern") or "")
        converted, ok = convert_claude_paths(raw_path, working_dir, prefixes)
        rejected = not ok
        # @./ converts to "", which is the working directory itself
        candidates = [_absolute(converted or ".", working_dir)] if ok else []
        display_prompt = f"Search in: {raw_path} (pattern: {pattern})"

    else:
        raw = str(params.get("prompt") or "")
        converted, ok = convert_claude_paths(raw, working_dir, prefixes)
        rejected = not ok
        candidates = (
            extract_files_from_text(converted, working_dir, config.max_files, prefixes)
            if ok else []
        )
        display_prompt = raw

    files, sensitive = _safe_files(candidates, config)
    if rejected:
        logger.warning(f"Path conversion rejected input for {operation.value}")

    logger.debug(f"Extracted {len(files)} file(s) for {operation.value} in {working_dir}")
    return ExtractedRequest(
        operation=operation,
        files=files,
        working_directory=working_dir,
        display_prompt=display_prompt,
        path_rejected=rejected or sensitive,
    )
