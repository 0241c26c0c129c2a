"""
Hook entry point.

Claude invokes the `gemini-bridge` command as a PreToolUse hook: one JSON
document on stdin, one decision document on stdout. Anything that goes
wrong still prints a decision so Claude never sees a broken hook.
"""

import logging
import sys
from typing import TextIO

from .bridge import EXIT_OK, GeminiBridge, resolve_working_directory
from .config import load_config
from .debug_log import configure_logging
from .response import HookResponse, approve

logger = logging.getLogger(__name__)

FALLBACK_DOCUMENT = '{"decision": "approve"}'


def _read_input(stdin: TextIO) -> str | bytes:
    """Read stdin as raw bytes when possible so decoding errors surface as invalid input."""
    buffer = getattr(stdin, "buffer", None)
    if buffer is not None:
        return buffer.read()
    return stdin.read()


def _write_decision(stdout: TextIO, response: HookResponse) -> None:
    try:
        stdout.write(response.to_json() + "\n")
    except (UnicodeError, TypeError, ValueError) as e:
        logger.error(f"Could not write decision document, approving instead: {e}")
        stdout.write(FALLBACK_DOCUMENT + "\n")
    stdout.flush()


def run(stdin: TextIO, stdout: TextIO) -> int:
    """Process one hook input and write the decision. Returns the exit code."""
    try:
        raw_input = _read_input(stdin)
        config = load_config(resolve_working_directory(raw_input))
        configure_logging(config.log_dir, config.debug_level)

        for problem in config.validate():
            logger.warning(f"Configuration: {problem}")

        logger.info("Hook execution started")
        outcome = GeminiBridge(config).process(raw_input)
        response, exit_code = outcome.response, outcome.exit_code
    except Exception as e:
        # Config or logging setup failed before the pipeline could run
        logger.exception(f"Bridge initialization failed: {e}")
        response, exit_code = approve(f"Bridge initialization failed: {e}"), EXIT_OK

    _write_decision(stdout, response)
    return exit_code


def main() -> None:
    """Console script entry point."""
    sys.exit(run(sys.stdin, sys.stdout))


if __name__ == "__main__":
    main()
