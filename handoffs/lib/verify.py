"""
Run the configured verification commands before closing a handoff.
"""

import logging
import shlex
from pathlib import Path

from handoffs.git.runner import run_command
from handoffs.lib.config import VerificationCommand
from handoffs.lib.models import VerificationResult

logger = logging.getLogger(__name__)

MAX_OUTPUT = 2000


def _truncate(text: str, limit: int = MAX_OUTPUT) -> str:
    if len(text) <= limit:
        return text
    return text[-limit:] + "\n... [truncated]"


def run_verification(
    commands: list[VerificationCommand],
    cwd: Path,
    timeout: int,
) -> list[VerificationResult]:
    """Run every command, in order, and report each outcome.

    All commands run even after a failure so the report shows the full
    picture.
    """
    results = []
    for command in commands:
        try:
            argv = shlex.split(command.run)
        except ValueError as e:
            results.append(VerificationResult(
                name=command.name,
                command=command.run,
                passed=False,
                output=f"Cannot parse command: {e}",
            ))
            continue

        logger.info(f"[CLOSE] Running verification '{command.name}': {command.run}")
        outcome = run_command(argv, cwd, timeout=timeout)
        results.append(VerificationResult(
            name=command.name,
            command=command.run,
            passed=outcome.success,
            output=_truncate(outcome.output),
            timed_out=outcome.timed_out,
        ))
        if not outcome.success:
            logger.warning(f"[CLOSE] Verification '{command.name}' failed (exit {outcome.returncode})")

    return results


def all_passed(results: list[VerificationResult]) -> bool:
    """True when every result passed. No commands counts as passed."""
    return all(r.passed for r in results)
