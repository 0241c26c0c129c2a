"""
Gemini CLI client.

Runs `<GEMINI_COMMAND> -p <instruction>` with the file contents on stdin and
returns whatever the CLI prints. The CLI is an opaque text-in/text-out
service: exit code 0 with non-empty stdout is success, anything else is
failure. On timeout the whole process tree is killed, since the CLI may
spawn helpers of its own.
"""

import asyncio
import logging
import shlex
import shutil
import time
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)

# Tail of stderr kept for diagnostics
MAX_STDERR_CHARS = 2000


@dataclass
class EngineResult:
    """Outcome of one CLI execution."""

    exit_code: int | None
    stdout: str
    stderr: str
    duration_seconds: float
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_code == 0 and bool(self.stdout.strip())


def kill_process_tree(pid: int) -> int:
    """
    Kill a process and all of its descendants.

    Returns:
        Number of processes signalled
    """
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return 0

    procs = parent.children(recursive=True) + [parent]
    killed = 0
    for proc in procs:
        try:
            proc.kill()
            killed += 1
        except psutil.NoSuchProcess:
            continue  # Exited on its own
        except psutil.AccessDenied as e:
            logger.warning(f"Could not kill process {proc.pid}: {e}")

    psutil.wait_procs(procs, timeout=3)
    return killed


class GeminiClient:
    """Async wrapper around the Gemini command-line tool."""

    def __init__(self, command: str = "gemini", timeout_seconds: float = 30):
        self.argv = shlex.split(command) or ["gemini"]
        self.timeout_seconds = timeout_seconds

    @property
    def executable(self) -> str:
        return self.argv[0]

    def is_available(self) -> bool:
        """Check that the CLI can be found (on PATH or as an explicit path)."""
        return shutil.which(self.executable) is not None

    async def run(self, instruction: str, stdin_text: str) -> EngineResult:
        """
        Execute the CLI once.

        Args:
            instruction: Prompt passed via -p
            stdin_text: File contents streamed on stdin

        Returns:
            EngineResult (never raises for process-level failures)
        """
        cmd = [*self.argv, "-p", instruction]
        logger.debug(f"Executing: {self.executable} -p <{len(instruction)} chars> < <{len(stdin_text)} chars>")

        start = time.perf_counter()
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start {self.executable}: {e}")
            return EngineResult(
                exit_code=None,
                stdout="",
                stderr=str(e),
                duration_seconds=time.perf_counter() - start,
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(stdin_text.encode("utf-8", errors="replace")),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            killed = kill_process_tree(proc.pid)
            await proc.wait()
            logger.error(
                f"Gemini call timed out after {self.timeout_seconds}s ({killed} process(es) killed)"
            )
            return EngineResult(
                exit_code=proc.returncode,
                stdout="",
                stderr="",
                duration_seconds=time.perf_counter() - start,
                timed_out=True,
            )

        return EngineResult(
            exit_code=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace")[-MAX_STDERR_CHARS:],
            duration_seconds=time.perf_counter() - start,
        )
