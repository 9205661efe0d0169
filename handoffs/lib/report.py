"""
Consumption report rendering.

Reports are write-once: created at closure or block, never updated.
"""

import logging
from pathlib import Path

from handoffs.lib.constants import REPORT_SUFFIX
from handoffs.lib.frontmatter import render_frontmatter
from handoffs.lib.models import ConsumptionReport
from handoffs.lib.types import HandoffError

logger = logging.getLogger(__name__)

MAX_LISTED_FILES = 50


class ReportExistsError(HandoffError):
    """A report already exists for this handoff."""


def report_path(reports_dir: Path, handoff_id: str) -> Path:
    return reports_dir / f"{handoff_id}{REPORT_SUFFIX}"


def report_frontmatter(report: ConsumptionReport) -> dict:
    data = {
        "handoff_id": report.handoff_id,
        "status": report.status,
        "completed_at": report.completed_at,
        "related_commits": report.related_commits,
        "related_prs": list(report.related_prs),
    }
    if report.blocker_handoff:
        data["blocker_handoff"] = report.blocker_handoff
    return data


def render_report(report: ConsumptionReport) -> str:
    """Render a report to markdown with YAML frontmatter."""
    done = sum(1 for r in report.requirements if r.completed)
    outcome = "Completed" if report.status == "done" else "Blocked"

    parts = [
        f"# Consumption Report: {report.handoff_id}",
        "",
        "## Outcome",
        "",
        f"**{outcome}** at {report.completed_at}. "
        f"{done}/{len(report.requirements)} requirements done.",
        "",
    ]

    if report.status == "blocked":
        parts.extend([
            "## Blocker",
            "",
            report.blocker_reason or "(no reason given)",
            "",
        ])
        if report.blocker_handoff:
            parts.append(f"Follow-up handoff: `{report.blocker_handoff}`")
            parts.append("")

    parts.append("## Requirements")
    parts.append("")
    if report.requirements:
        for req in report.requirements:
            mark = "x" if req.completed else " "
            parts.append(f"- [{mark}] **{req.id}**: {req.description}")
    else:
        parts.append("No requirements.")
    parts.append("")

    if report.verification:
        parts.append("## Verification")
        parts.append("")
        parts.append("| Check | Command | Result |")
        parts.append("|-------|---------|--------|")
        for result in report.verification:
            status = "passed" if result.passed else ("timed out" if result.timed_out else "failed")
            parts.append(f"| {result.name} | `{result.command}` | {status} |")
        parts.append("")

    parts.append("## Changes")
    parts.append("")
    changes = report.changes
    if changes.files_changed:
        parts.append(
            f"{changes.files_changed} files changed, "
            f"{changes.insertions} insertions(+), {changes.deletions} deletions(-)"
        )
        parts.append("")
        for path in changes.files[:MAX_LISTED_FILES]:
            parts.append(f"- `{path}`")
        if len(changes.files) > MAX_LISTED_FILES:
            parts.append(f"- ... and {len(changes.files) - MAX_LISTED_FILES} more")
    else:
        parts.append("No changes recorded.")
    parts.append("")

    parts.append("## Commits")
    parts.append("")
    if report.commits:
        for commit in report.commits:
            parts.append(f"- `{commit.sha[:12]}` {commit.subject}")
    else:
        parts.append("No commits recorded.")

    return render_frontmatter(report_frontmatter(report), "\n" + "\n".join(parts) + "\n")


def write_report(report: ConsumptionReport, reports_dir: Path) -> Path:
    """Write the report. Refuses to overwrite an existing one.

    Raises:
        ReportExistsError: if a report already exists
    """
    path = report_path(reports_dir, report.handoff_id)
    if path.exists():
        raise ReportExistsError(f"Report already exists for {report.handoff_id}: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_report(report))
    logger.info(f"[CLOSE] Wrote {report.status} report {path}")
    return path
