"""
Closure and block: the two terminal paths of a consumption.

Closing runs the verification commands and only writes the report and
flips the handoff to done if every one passes. Blocking writes an
outgoing blocker handoff addressed back to the sender, marks the
original handoff and its plan blocked, and writes a blocked report.

Both paths pull commits and a change summary from git history since
the plan was created; git failures just leave those empty.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from handoffs.git.history import extract_pr_refs, get_change_summary, get_commits_since
from handoffs.lib.config import HandoffConfig
from handoffs.lib.constants import HANDOFF_ID_PATTERN
from handoffs.lib.frontmatter import render_frontmatter
from handoffs.lib.loader import find_handoff, load_handoffs
from handoffs.lib.models import (
    ConsumptionReport,
    ExtractedRequirement,
    HandoffDocument,
    VerificationResult,
)
from handoffs.lib.plan import ParsedPlan, load_plan, plan_path
from handoffs.lib.report import report_path, write_report
from handoffs.lib.types import HandoffError, now_iso
from handoffs.lib.validate import validate_status_transition
from handoffs.lib.verify import all_passed, run_verification
from handoffs.workflow.state_machine import (
    HandoffStatus,
    PlanStatus,
    transition_handoff,
    transition_plan,
)

logger = logging.getLogger(__name__)

CLOSABLE_PLAN_STATUSES = {PlanStatus.TESTING.value, PlanStatus.REVIEW.value}
MAX_HANDOFF_NUMBER = 999
BLOCKER_PREFIX = "blocked-"


class ClosureError(HandoffError):
    """Closure or block precondition failed."""


class VerificationFailed(ClosureError):
    """At least one verification command failed. Nothing was changed."""

    def __init__(self, handoff_id: str, results: list[VerificationResult]):
        self.results = results
        failed = [r.name for r in results if not r.passed]
        super().__init__(
            f"Verification failed for {handoff_id}: {', '.join(failed)}. "
            "Handoff left unchanged."
        )


@dataclass
class CloseResult:
    report: ConsumptionReport
    report_path: Path
    verification: list[VerificationResult] = field(default_factory=list)


@dataclass
class BlockResult:
    report: ConsumptionReport
    report_path: Path
    blocker_id: str
    blocker_path: Path


@dataclass
class _Context:
    doc: HandoffDocument
    docs: list[HandoffDocument]
    plan: ParsedPlan
    plan_path: Path


def _load_context(config: HandoffConfig, handoff_id: str) -> _Context:
    docs, _ = load_handoffs(config.handoffs_dir, exclude=config.generated_dirs)
    doc = find_handoff(docs, handoff_id)
    path = plan_path(config.plans_dir, handoff_id)
    return _Context(doc=doc, docs=docs, plan=load_plan(path), plan_path=path)


def _require_no_report(config: HandoffConfig, handoff_id: str) -> None:
    path = report_path(config.reports_dir, handoff_id)
    if path.exists():
        raise ClosureError(f"Report already exists for {handoff_id}: {path}")


def _require_handoff_transition(doc: HandoffDocument, to_status: HandoffStatus) -> None:
    errors = validate_status_transition(
        doc.status, to_status.value, file=str(doc.file_path), handoff_id=doc.handoff_id
    )
    if errors:
        raise ClosureError(errors[0].message)


def _incomplete(requirements: list[ExtractedRequirement]) -> list[str]:
    return [r.id for r in requirements if not r.completed]


def _build_report(
    config: HandoffConfig,
    ctx: _Context,
    status: str,
    now: str,
    verification: list[VerificationResult] | None = None,
    blocker_handoff: Optional[str] = None,
    blocker_reason: Optional[str] = None,
) -> ConsumptionReport:
    since = ctx.plan.frontmatter.created_at
    commits = get_commits_since(config.root, since) if since else []
    changes = get_change_summary(config.root, since) if since else None
    report = ConsumptionReport(
        handoff_id=ctx.doc.handoff_id,
        status=status,
        completed_at=now,
        requirements=ctx.plan.requirements,
        verification=verification or [],
        commits=commits,
        related_prs=extract_pr_refs(commits),
        blocker_handoff=blocker_handoff,
        blocker_reason=blocker_reason,
    )
    if changes is not None:
        report.changes = changes
    return report


def close_handoff(config: HandoffConfig, handoff_id: str, now: str | None = None) -> CloseResult:
    """Verify, report, and mark a handoff done.

    Preconditions are checked before anything runs: the plan must be in
    testing or review with every requirement complete, no report may
    exist yet, and the handoff must be allowed to move to done.

    Raises:
        ClosureError: if a precondition fails
        VerificationFailed: if any verification command fails
    """
    now = now or now_iso()
    ctx = _load_context(config, handoff_id)
    status = ctx.plan.frontmatter.status

    if status not in CLOSABLE_PLAN_STATUSES:
        raise ClosureError(
            f"Plan for {handoff_id} is '{status}'; closure needs one of: "
            f"{', '.join(sorted(CLOSABLE_PLAN_STATUSES))}"
        )
    incomplete = _incomplete(ctx.plan.requirements)
    if incomplete:
        raise ClosureError(f"Plan for {handoff_id} has incomplete requirements: {', '.join(incomplete)}")
    _require_no_report(config, handoff_id)
    _require_handoff_transition(ctx.doc, HandoffStatus.DONE)

    results = run_verification(config.verify_commands, config.root, config.verify_timeout)
    if not all_passed(results):
        raise VerificationFailed(handoff_id, results)

    report = _build_report(config, ctx, "done", now, verification=results)
    path = write_report(report, config.reports_dir)

    if status == PlanStatus.TESTING.value:
        transition_plan(ctx.plan_path, PlanStatus.REVIEW, reason="verification passed")
    transition_plan(ctx.plan_path, PlanStatus.DONE, reason="closed")

    transition_handoff(ctx.doc.file_path, handoff_id, HandoffStatus.DONE, updates={
        "completed_at": now,
        "related_commits": report.related_commits,
        "related_prs": report.related_prs,
    })

    logger.info(f"[CLOSE] {handoff_id} closed with {len(report.commits)} commits")
    return CloseResult(report=report, report_path=path, verification=results)


# ─────────────────────────────────────────────────────────────────────────────
# Block
# ─────────────────────────────────────────────────────────────────────────────

def next_handoff_id(docs: list[HandoffDocument], source_id: str) -> str:
    """Allocate the next NNN for a blocker of source_id.

    Raises:
        ClosureError: if the NNN space is exhausted
    """
    numbers = [int(d.handoff_id[:3]) for d in docs if HANDOFF_ID_PATTERN.match(d.handoff_id)]
    number = max(numbers, default=0) + 1
    if number > MAX_HANDOFF_NUMBER:
        raise ClosureError("No handoff numbers left (999 reached)")

    slug = source_id[4:]
    if not slug.startswith(BLOCKER_PREFIX):
        slug = BLOCKER_PREFIX + slug
    return f"{number:03d}-{slug}"


def _slug_safe(text: str) -> str:
    return re.sub(r'\s+', ' ', text).strip()


def render_blocker_handoff(
    blocker_id: str,
    source: HandoffDocument,
    plan: ParsedPlan,
    reason: str,
    local_repo: str,
    now: str,
) -> str:
    """Outgoing handoff asking the sender to clear a blocker."""
    fm = source.frontmatter
    reason = _slug_safe(reason)
    frontmatter = {
        "handoff_id": blocker_id,
        "direction": "outgoing",
        "from_repo": local_repo,
        "to_repo": fm.from_repo,
        "created_at": now,
        "status": "new",
        "related_handoff": source.handoff_id,
        "requires": [{"type": "unblock", "description": reason}],
        "acceptance": [f"Consumption of {source.handoff_id} can resume"],
        "verification": [],
        "risks": [],
        "notes": f"Consumption of {source.handoff_id} is blocked: {reason}",
    }

    lines = [
        f"# Blocked: {source.title}",
        "",
        f"Consumption of handoff `{source.handoff_id}` in `{local_repo}` is blocked.",
        "",
        "## Blocker",
        "",
        reason,
        "",
        "## Progress so far",
        "",
    ]
    if plan.requirements:
        for req in plan.requirements:
            state = "done" if req.completed else "open"
            lines.append(f"- {req.id} ({state}): {req.description}")
    else:
        lines.append("No requirements were extracted.")

    return render_frontmatter(frontmatter, "\n" + "\n".join(lines) + "\n")


def block_handoff(
    config: HandoffConfig,
    handoff_id: str,
    reason: str,
    now: str | None = None,
) -> BlockResult:
    """Record that a handoff cannot be consumed.

    Raises:
        ClosureError: if the reason is empty, the plan is done, a report
            exists, or the handoff cannot move to blocked
    """
    reason = reason.strip()
    if not reason:
        raise ClosureError("A blocker reason is required")

    now = now or now_iso()
    ctx = _load_context(config, handoff_id)

    if ctx.plan.frontmatter.status == PlanStatus.DONE.value:
        raise ClosureError(f"Plan for {handoff_id} is already done")
    _require_no_report(config, handoff_id)
    _require_handoff_transition(ctx.doc, HandoffStatus.BLOCKED)

    blocker_id = next_handoff_id(ctx.docs, handoff_id)
    blocker_path = config.outgoing_dir / f"{blocker_id}.md"
    if blocker_path.exists():
        raise ClosureError(f"Blocker handoff already exists: {blocker_path}")

    blocker_path.parent.mkdir(parents=True, exist_ok=True)
    blocker_path.write_text(
        render_blocker_handoff(blocker_id, ctx.doc, ctx.plan, reason, config.repo, now)
    )
    logger.info(f"[BLOCK] {handoff_id}: wrote blocker handoff {blocker_id}")

    transition_handoff(ctx.doc.file_path, handoff_id, HandoffStatus.BLOCKED, updates={
        "blocker_reason": reason,
        "blocker_handoff": blocker_id,
    })
    if ctx.plan.frontmatter.status != PlanStatus.BLOCKED.value:
        transition_plan(ctx.plan_path, PlanStatus.BLOCKED, reason=reason, updates={"blocker_reason": reason})

    report = _build_report(
        config, ctx, "blocked", now, blocker_handoff=blocker_id, blocker_reason=reason
    )
    path = write_report(report, config.reports_dir)

    return BlockResult(report=report, report_path=path, blocker_id=blocker_id, blocker_path=blocker_path)
