"""
Configuration for the Claude-Gemini Bridge

Sources are layered (later wins):
1. Built-in defaults (dataclass field defaults)
2. Global config file: <bridge_dir>/config/bridge.env
3. Project config file: <working_dir>/.claude-gemini-bridge.env
4. Process environment variables

Environment Variables (all optional):
- CLAUDE_GEMINI_BRIDGE_DIR: Base directory for cache/logs (default: ~/.claude-gemini-bridge)
- DEBUG_LEVEL: 0 (errors only) .. 3 (trace) (default: 1)
- DRY_RUN: Always delegate, used by test harnesses (default: false)
- GEMINI_CACHE_TTL / GEMINI_TIMEOUT / GEMINI_RATE_LIMIT: seconds
- CLAUDE_TOKEN_LIMIT / GEMINI_TOKEN_LIMIT: delegation token thresholds
- GEMINI_EXCLUDE_PATTERNS: regex matched against file basenames

Config files use dotenv syntax (KEY=value) and are parsed with python-dotenv,
so they are never executed.
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from dotenv import dotenv_values


DEFAULT_BRIDGE_DIR = Path.home() / ".claude-gemini-bridge"
GLOBAL_CONFIG_NAME = "config/bridge.env"
PROJECT_CONFIG_NAME = ".claude-gemini-bridge.env"

# Secrets, keys, credentials, tokens and certificates
DEFAULT_EXCLUDE_PATTERNS = (
    r"(^\.env$|^\.env\.|\.key$|\.pem$|\.p12$|\.pfx$|\.crt$|\.cer$|\.keystore$"
    r"|^id_(rsa|dsa|ecdsa|ed25519)|secret|password|credential|token)"
)

DEFAULT_SENSITIVE_PREFIXES = (
    "/etc", "/usr", "/bin", "/sbin", "/root",
    "~/.ssh", "~/.aws", "~/.gnupg",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def parse_bool(value: str | None, default: bool) -> bool:
    """Parse a shell-style boolean ("true"/"1"/"yes"), falling back to default."""
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


@dataclass
class BridgeConfig:
    """Resolved configuration for one hook execution."""

    bridge_dir: Path = DEFAULT_BRIDGE_DIR

    # Debugging
    debug_level: int = 1
    dry_run: bool = False
    capture_inputs: bool = False
    capture_dir: Path | None = None
    log_dir: Path | None = None

    # Gemini call configuration
    gemini_command: str = "gemini"
    cache_dir: Path | None = None
    cache_ttl_seconds: int = 3600  # 1 hour
    timeout_seconds: int = 30
    rate_limit_seconds: float = 1.0
    rate_limit_file: Path = field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "claude_bridge_gemini_last_call"
    )
    max_files: int = 20
    max_file_size_bytes: int = 1_048_576  # 1MB per file

    # Delegation thresholds
    min_files_for_delegation: int = 3
    min_total_size_bytes: int = 0
    max_total_size_bytes: int = 10_485_760  # 10MB
    claude_token_limit: int = 50_000
    gemini_token_limit: int = 800_000
    exclude_patterns: str = DEFAULT_EXCLUDE_PATTERNS
    sensitive_path_prefixes: tuple[str, ...] = DEFAULT_SENSITIVE_PREFIXES

    # Glob expansion never descends into these
    skipped_directories: set[str] = field(default_factory=lambda: {
        ".git", ".hg", ".svn", "node_modules", "__pycache__", "venv", ".venv",
        ".tox", ".pytest_cache", ".mypy_cache", ".ruff_cache", ".cache",
        ".idea", ".vscode", "*.egg-info",
    })

    # Maintenance
    auto_cleanup_cache: bool = True
    auto_cleanup_logs: bool = True
    cache_max_age_hours: float = 24
    log_max_age_days: float = 7
    cache_cleanup_probability: float = 0.1
    log_cleanup_probability: float = 0.05

    # Values that could not be parsed, reported by validate()
    parse_errors: list[str] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self.bridge_dir = Path(self.bridge_dir).expanduser()
        if self.cache_dir is None:
            self.cache_dir = self.bridge_dir / "cache" / "gemini"
        if self.log_dir is None:
            self.log_dir = self.bridge_dir / "logs" / "debug"
        if self.capture_dir is None:
            self.capture_dir = self.bridge_dir / "debug" / "captured"

    @classmethod
    def from_mapping(cls, values: Mapping[str, str | None]) -> "BridgeConfig":
        """
        Build a config from a flat KEY=value mapping.

        Unknown keys are ignored. Values that fail to parse keep the default
        and are recorded in parse_errors.
        """
        errors: list[str] = []
        defaults = cls()

        def get_int(key: str, default: int) -> int:
            raw = values.get(key)
            if raw is None or raw.strip() == "":
                return default
            try:
                return int(raw)
            except ValueError:
                errors.append(f"{key}={raw!r} is not an integer")
                return default

        def get_float(key: str, default: float) -> float:
            raw = values.get(key)
            if raw is None or raw.strip() == "":
                return default
            try:
                return float(raw)
            except ValueError:
                errors.append(f"{key}={raw!r} is not a number")
                return default

        def get_str(key: str, default: str) -> str:
            raw = values.get(key)
            return raw if raw else default

        def get_path(key: str) -> Path | None:
            raw = values.get(key)
            return Path(raw).expanduser() if raw else None

        bridge_dir = get_path("CLAUDE_GEMINI_BRIDGE_DIR") or defaults.bridge_dir

        prefixes_raw = values.get("SENSITIVE_PATH_PREFIXES")
        if prefixes_raw:
            prefixes = tuple(p for p in prefixes_raw.split(":") if p)
        else:
            prefixes = defaults.sensitive_path_prefixes

        config = cls(
            bridge_dir=bridge_dir,
            debug_level=get_int("DEBUG_LEVEL", defaults.debug_level),
            dry_run=parse_bool(values.get("DRY_RUN"), defaults.dry_run),
            capture_inputs=parse_bool(values.get("CAPTURE_INPUTS"), defaults.capture_inputs),
            capture_dir=get_path("CAPTURE_DIR"),
            log_dir=get_path("LOG_DIR"),
            gemini_command=get_str("GEMINI_COMMAND", defaults.gemini_command),
            cache_dir=get_path("GEMINI_CACHE_DIR"),
            cache_ttl_seconds=get_int("GEMINI_CACHE_TTL", defaults.cache_ttl_seconds),
            timeout_seconds=get_int("GEMINI_TIMEOUT", defaults.timeout_seconds),
            rate_limit_seconds=get_float("GEMINI_RATE_LIMIT", defaults.rate_limit_seconds),
            rate_limit_file=get_path("GEMINI_RATE_LIMIT_FILE") or defaults.rate_limit_file,
            max_files=get_int("GEMINI_MAX_FILES", defaults.max_files),
            max_file_size_bytes=get_int("GEMINI_MAX_FILE_SIZE", defaults.max_file_size_bytes),
            min_files_for_delegation=get_int("MIN_FILES_FOR_GEMINI", defaults.min_files_for_delegation),
            min_total_size_bytes=get_int("MIN_FILE_SIZE_FOR_GEMINI", defaults.min_total_size_bytes),
            max_total_size_bytes=get_int("MAX_TOTAL_SIZE_FOR_GEMINI", defaults.max_total_size_bytes),
            claude_token_limit=get_int("CLAUDE_TOKEN_LIMIT", defaults.claude_token_limit),
            gemini_token_limit=get_int("GEMINI_TOKEN_LIMIT", defaults.gemini_token_limit),
            exclude_patterns=get_str("GEMINI_EXCLUDE_PATTERNS", defaults.exclude_patterns),
            sensitive_path_prefixes=prefixes,
            auto_cleanup_cache=parse_bool(values.get("AUTO_CLEANUP_CACHE"), defaults.auto_cleanup_cache),
            auto_cleanup_logs=parse_bool(values.get("AUTO_CLEANUP_LOGS"), defaults.auto_cleanup_logs),
            cache_max_age_hours=get_float("CACHE_MAX_AGE_HOURS", defaults.cache_max_age_hours),
            log_max_age_days=get_float("LOG_MAX_AGE_DAYS", defaults.log_max_age_days),
            cache_cleanup_probability=get_float(
                "CACHE_CLEANUP_PROBABILITY", defaults.cache_cleanup_probability
            ),
            log_cleanup_probability=get_float(
                "LOG_CLEANUP_PROBABILITY", defaults.log_cleanup_probability
            ),
        )
        config.parse_errors = errors
        return config

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = list(self.parse_errors)

        if not 0 <= self.debug_level <= 3:
            errors.append("DEBUG_LEVEL must be between 0 and 3")

        if self.timeout_seconds <= 0:
            errors.append("GEMINI_TIMEOUT must be positive")

        if self.max_files < 1:
            errors.append("GEMINI_MAX_FILES must be at least 1")

        if self.claude_token_limit > self.gemini_token_limit:
            errors.append("CLAUDE_TOKEN_LIMIT should not exceed GEMINI_TOKEN_LIMIT")

        for name in ("cache_cleanup_probability", "log_cleanup_probability"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                errors.append(f"{name} must be between 0 and 1")

        return errors


def config_sources(working_dir: str | Path | None, environ: Mapping[str, str]) -> list[Path]:
    """Return the config files consulted for a working directory, lowest precedence first."""
    bridge_dir = Path(environ.get("CLAUDE_GEMINI_BRIDGE_DIR") or DEFAULT_BRIDGE_DIR).expanduser()
    sources = [bridge_dir / GLOBAL_CONFIG_NAME]
    if working_dir:
        sources.append(Path(working_dir) / PROJECT_CONFIG_NAME)
    return sources


def load_config(
    working_dir: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BridgeConfig:
    """
    Resolve the layered configuration.

    Args:
        working_dir: Project directory whose .claude-gemini-bridge.env is consulted
        environ: Environment mapping (default: os.environ)

    Returns:
        BridgeConfig with env > project file > global file > defaults
    """
    environ = os.environ if environ is None else environ
    merged: dict[str, str | None] = {}

    for source in config_sources(working_dir, environ):
        if source.is_file():
            try:
                merged.update(dotenv_values(source))
            except OSError:
                continue

    merged.update(environ)
    return BridgeConfig.from_mapping(merged)
