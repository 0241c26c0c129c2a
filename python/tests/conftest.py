"""
Pytest configuration and fixtures for Claude-Gemini Bridge tests.
"""

import json
import logging
import os
import shlex
import stat
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest

from gemini_bridge.cache_manager import AnalysisCache
from gemini_bridge.config import BridgeConfig
from gemini_bridge.debug_log import LOGGER_NAME
from gemini_bridge.file_collector import FileCollector
from gemini_bridge.rate_limiter import FileRateLimiter


@pytest.fixture(autouse=True)
def reset_bridge_logger() -> Generator[None, None, None]:
    """Detach handlers configure_logging() attached during a test."""
    yield
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def project_dir(temp_dir: Path) -> Path:
    """Working directory of the simulated Claude session."""
    project = temp_dir / "project"
    project.mkdir()
    return project


@pytest.fixture
def bridge_config(temp_dir: Path) -> BridgeConfig:
    """Create a test configuration isolated under temp_dir."""
    bridge_dir = temp_dir / "bridge"
    return BridgeConfig(
        bridge_dir=bridge_dir,
        rate_limit_file=bridge_dir / "gemini_last_call",
        rate_limit_seconds=0,
        auto_cleanup_cache=False,
        auto_cleanup_logs=False,
    )


@pytest.fixture
def analysis_cache(bridge_config: BridgeConfig) -> AnalysisCache:
    """Create an AnalysisCache in the test bridge directory."""
    return AnalysisCache(bridge_config.cache_dir, bridge_config.cache_ttl_seconds)


@pytest.fixture
def rate_limiter(bridge_config: BridgeConfig) -> FileRateLimiter:
    """Create a limiter that never waits."""
    return FileRateLimiter(bridge_config.rate_limit_file, min_interval=0)


@pytest.fixture
def file_collector(bridge_config: BridgeConfig) -> FileCollector:
    """Create a FileCollector instance."""
    return FileCollector(bridge_config)


@pytest.fixture
def sample_files(project_dir: Path) -> dict[str, Path]:
    """Create sample files for testing."""
    files = {}

    py_file = project_dir / "sample.py"
    py_file.write_text('''
def hello_world():
    """Say hello."""
    print("Hello, World!")

class Calculator:
    """Simple calculator."""

    def multiply(self, x: int, y: int) -> int:
        return x * y
''')
    files["python"] = py_file

    js_file = project_dir / "sample.js"
    js_file.write_text('''
function greet(name) {
    console.log(`Hello, ${name}!`);
}

module.exports = { greet };
''')
    files["javascript"] = js_file

    md_file = project_dir / "README.md"
    md_file.write_text("# Sample Project\n\nThis is a sample project for testing.\n")
    files["markdown"] = md_file

    json_file = project_dir / "config.json"
    json_file.write_text(json.dumps({"name": "test-project", "version": "1.0.0"}, indent=2))
    files["json"] = json_file

    nested_dir = project_dir / "src" / "utils"
    nested_dir.mkdir(parents=True)
    nested_file = nested_dir / "helpers.py"
    nested_file.write_text('''
def format_string(s: str) -> str:
    """Format a string."""
    return s.strip().lower()
''')
    files["nested"] = nested_file

    return files


@pytest.fixture
def make_file(project_dir: Path) -> Callable[..., Path]:
    """Factory writing a file of an exact byte size under the project directory."""

    def _make(name: str, size: int, char: str = "x") -> Path:
        path = project_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        line = char * 63 + "\n"
        content = (line * (size // 64 + 1))[:size]
        path.write_text(content)
        return path

    return _make


# =============================================================================
# Gemini CLI stand-ins
# =============================================================================

def _write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def call_log(temp_dir: Path) -> Path:
    """File the stub CLI appends one line to per execution."""
    return temp_dir / "gemini_calls.log"


@pytest.fixture
def stub_gemini(temp_dir: Path, call_log: Path) -> Path:
    """
    Executable standing in for the Gemini CLI.

    Records each call, stores the stdin it received and echoes the -p prompt.
    """
    stdin_copy = temp_dir / "gemini_stdin.txt"
    return _write_script(
        temp_dir / "gemini-stub",
        f'echo "call" >> {shlex.quote(str(call_log))}\n'
        f"cat > {shlex.quote(str(stdin_copy))}\n"
        'echo "STUB ANALYSIS"\n'
        'echo "prompt: $2"\n',
    )


@pytest.fixture
def failing_gemini(temp_dir: Path) -> Path:
    """Gemini CLI stand-in that fails with exit code 3."""
    return _write_script(
        temp_dir / "gemini-failing",
        "cat > /dev/null\n"
        'echo "quota exceeded" >&2\n'
        "exit 3\n",
    )


@pytest.fixture
def silent_gemini(temp_dir: Path) -> Path:
    """Gemini CLI stand-in that succeeds without printing anything."""
    return _write_script(temp_dir / "gemini-silent", "cat > /dev/null\nexit 0\n")


@pytest.fixture
def hanging_gemini(temp_dir: Path) -> Path:
    """Gemini CLI stand-in that never answers within a short timeout."""
    return _write_script(temp_dir / "gemini-hanging", "sleep 30\n")


@pytest.fixture
def gemini_calls(call_log: Path) -> Callable[[], int]:
    """Number of stub CLI executions recorded so far."""

    def _count() -> int:
        if not call_log.exists():
            return 0
        return len(call_log.read_text().splitlines())

    return _count


@pytest.fixture
def stub_config(bridge_config: BridgeConfig, stub_gemini: Path) -> BridgeConfig:
    """Test configuration pointing at the recording stub CLI."""
    bridge_config.gemini_command = shlex.quote(str(stub_gemini))
    return bridge_config


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> dict[str, str]:
    """Environment without bridge settings, with the bridge dir under temp_dir."""
    for key in list(os.environ):
        if key.startswith(("GEMINI_", "CLAUDE_")) or key in ("DEBUG_LEVEL", "DRY_RUN"):
            monkeypatch.delenv(key, raising=False)
    env = {"CLAUDE_GEMINI_BRIDGE_DIR": str(temp_dir / "bridge")}
    monkeypatch.setenv("CLAUDE_GEMINI_BRIDGE_DIR", env["CLAUDE_GEMINI_BRIDGE_DIR"])
    return env
