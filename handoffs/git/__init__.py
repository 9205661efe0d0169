"""Git and subprocess helpers for the handoff engine.

Return type conventions:
- run_command()/run_git() return CommandResult: caller must check .success.
- History queries return parsed values and fall back to empty on failure.
"""

from handoffs.git.runner import (
    CommandResult,
    run_command,
    run_git,
)
from handoffs.git.history import (
    get_commits_since,
    get_change_summary,
    extract_pr_refs,
)

__all__ = [
    # runner
    "CommandResult",
    "run_command",
    "run_git",
    # history
    "get_commits_since",
    "get_change_summary",
    "extract_pr_refs",
]
