"""Subprocess runner with timeout handling, shared by git and verification."""

import subprocess
from dataclasses import dataclass
from pathlib import Path

DEFAULT_TIMEOUT = 30


@dataclass
class CommandResult:
    """Result of an external command."""
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """stdout and stderr combined, for reports."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


def run_command(
    cmd: list[str],
    cwd: Path,
    timeout: int = DEFAULT_TIMEOUT,
) -> CommandResult:
    """
    Run a command with timeout handling.

    A missing executable is reported like a failed command (exit 127)
    rather than raised.

    Args:
        cmd: argv list
        cwd: Working directory for the command
        timeout: Timeout in seconds

    Returns:
        CommandResult with returncode, stdout, stderr, and timed_out flag
    """
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return CommandResult(
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(
            returncode=-1,
            stdout="",
            stderr=f"Command timed out after {timeout}s",
            timed_out=True,
        )
    except FileNotFoundError as e:
        return CommandResult(returncode=127, stdout="", stderr=str(e))


def run_git(
    args: list[str],
    cwd: Path,
    timeout: int = DEFAULT_TIMEOUT,
) -> CommandResult:
    """Run a git command against the repository at cwd."""
    return run_command(["git", "-C", str(cwd)] + args, cwd, timeout)
