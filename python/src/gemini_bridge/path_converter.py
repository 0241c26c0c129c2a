"""
Path conversion for Claude's @ notation.

Claude refers to project files as "@src/main.py", meaning "relative to the
project root". These helpers turn that notation into absolute paths and pull
path-like tokens out of free text.

Conversions (base_dir = project root):
- "@./"          -> ""             (current directory, elided)
- "@/"           -> "<base_dir>/"
- "@name..."     -> "<base_dir>/name..."

Security:
- Any parent-directory traversal ("../", "..\\") fails closed
- A base_dir inside a sensitive location (/etc, /usr, ~/.ssh, ...) fails closed

All functions are pure string operations: no filesystem access, no exceptions.
"""

import os
import re
from typing import Iterable

from .config import DEFAULT_SENSITIVE_PREFIXES

# A marker must start the text or follow whitespace, a quote or an opening bracket,
# so "user@example.com" is left alone.
_MARKER_RE = re.compile(r"(?<![^\s\"'(\[{=,:])@(\./|/|[^/\s]+)")
_TRAVERSAL_RE = re.compile(r"\.\.[/\\]|(?:^|[/\\\s])\.\.(?=$|\s)")
_MULTI_SLASH_RE = re.compile(r"(?<!:)/{2,}")
_PATH_TOKEN_RE = re.compile(r"(@\S+|/\S+|\S+\.[A-Za-z0-9]+)")

_STRIP_LEADING = "\"'(<[`"
_STRIP_TRAILING = "\"'),.;:!?>]`"


def has_traversal(text: str) -> bool:
    """Check for a parent-directory traversal sequence anywhere in text."""
    return bool(text) and _TRAVERSAL_RE.search(text) is not None


def is_sensitive_path(
    path: str,
    prefixes: Iterable[str] = DEFAULT_SENSITIVE_PREFIXES,
) -> bool:
    """
    Check whether path equals or lies under one of the sensitive prefixes.

    Prefixes may use "~" for the home directory.
    """
    if not path:
        return False
    candidate = path.rstrip("/") or "/"
    for prefix in prefixes:
        expanded = os.path.expanduser(prefix).rstrip("/")
        if not expanded:
            continue
        if candidate == expanded or candidate.startswith(expanded + "/"):
            return True
    return False


def convert_claude_paths(
    input_text: str,
    base_dir: str | None,
    sensitive_prefixes: Iterable[str] = DEFAULT_SENSITIVE_PREFIXES,
) -> tuple[str, bool]:
    """
    Replace @ markers in input_text with paths under base_dir.

    Args:
        input_text: A single path or free text containing @ markers
        base_dir: Project root (default: current working directory)
        sensitive_prefixes: Locations base_dir must not point into

    Returns:
        (converted_text, ok) tuple. On a security rejection the text is
        empty and ok is False.
    """
    if not input_text:
        return "", True

    if not base_dir:
        base_dir = os.getcwd()

    if has_traversal(input_text) or has_traversal(base_dir):
        return "", False

    if is_sensitive_path(base_dir, sensitive_prefixes):
        return "", False

    base = base_dir.rstrip("/")

    def substitute(match: re.Match) -> str:
        target = match.group(1)
        if target == "./":
            return ""
        if target == "/":
            return f"{base}/"
        return f"{base}/{target}"

    converted = _MARKER_RE.sub(substitute, input_text)
    converted = _MULTI_SLASH_RE.sub("/", converted)
    return converted, True


def _clean_token(token: str) -> str:
    token = token.lstrip(_STRIP_LEADING)
    while token and token[-1] in _STRIP_TRAILING:
        token = token[:-1]
    return token


def extract_files_from_text(
    text: str,
    working_dir: str | None = None,
    max_files: int = 20,
    sensitive_prefixes: Iterable[str] = DEFAULT_SENSITIVE_PREFIXES,
) -> list[str]:
    """
    Extract path-like tokens from free text (normally an already converted prompt).

    Tokens are marker-prefixed words, absolute paths, or words ending in a
    file-extension-like suffix. Relative tokens are made absolute against
    working_dir. The result is de-duplicated in first-seen order and capped
    at max_files.

    Returns an empty list if the text contains a traversal sequence or
    mentions a sensitive location.
    """
    if not text or has_traversal(text):
        return []

    files: list[str] = []
    seen: set[str] = set()

    for raw in _PATH_TOKEN_RE.findall(text):
        token = _clean_token(raw)
        if not token or token in ("/", "@"):
            continue

        if token.startswith("@"):
            converted, ok = convert_claude_paths(token, working_dir, sensitive_prefixes)
            if not ok:
                return []
            token = converted
            if not token:
                continue

        if not token.startswith("/") and working_dir:
            token = os.path.join(working_dir, token)

        if is_sensitive_path(token, sensitive_prefixes):
            return []

        if token not in seen:
            seen.add(token)
            files.append(token)
            if len(files) >= max_files:
                break

    return files
