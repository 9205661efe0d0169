"""Git history queries for closure reports.

All functions degrade to empty results on failure: history is
decoration for a report, never a reason to abort closure.
"""

import logging
import re
from pathlib import Path

from handoffs.git.runner import run_git
from handoffs.lib.models import ChangeSummary, CommitInfo

logger = logging.getLogger(__name__)

PR_REF_RE = re.compile(r'(?:\(|\s|^)#(\d+)\b')


def get_commits_since(repo: Path, since: str) -> list[CommitInfo]:
    """Commits on HEAD since an ISO timestamp, newest first."""
    result = run_git(["log", f"--since={since}", "--format=%H%x09%s"], repo, timeout=10)
    if not result.success:
        logger.warning(f"[CLOSE] git log failed, continuing without commits: {result.stderr.strip()}")
        return []

    commits = []
    for line in result.stdout.splitlines():
        sha, _, subject = line.partition("\t")
        if sha.strip():
            commits.append(CommitInfo(sha=sha.strip(), subject=subject.strip()))
    return commits


def get_change_summary(repo: Path, since: str) -> ChangeSummary:
    """Aggregate --numstat over commits since an ISO timestamp."""
    result = run_git(["log", f"--since={since}", "--numstat", "--format="], repo, timeout=10)
    if not result.success:
        logger.warning(f"[CLOSE] git log --numstat failed, continuing without stats: {result.stderr.strip()}")
        return ChangeSummary()

    summary = ChangeSummary()
    seen: set[str] = set()
    for line in result.stdout.splitlines():
        parts = line.split("\t")
        if len(parts) != 3:
            continue
        added, deleted, path = parts
        # Binary files report "-" for both counts
        if added.isdigit():
            summary.insertions += int(added)
        if deleted.isdigit():
            summary.deletions += int(deleted)
        if path not in seen:
            seen.add(path)
            summary.files.append(path)

    summary.files_changed = len(summary.files)
    return summary


def extract_pr_refs(commits: list[CommitInfo]) -> list[str]:
    """PR references like (#123) found in commit subjects, first-seen order."""
    refs = []
    for commit in commits:
        for number in PR_REF_RE.findall(commit.subject):
            ref = f"#{number}"
            if ref not in refs:
                refs.append(ref)
    return refs
