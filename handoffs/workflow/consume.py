"""
Consumption workflow: start a plan, tick off requirements, move status.

Plan mutation is read-modify-write on a single file with no locking;
run one invocation per handoff at a time.
"""

import logging
from dataclasses import replace
from pathlib import Path

from handoffs.lib.config import HandoffConfig
from handoffs.lib.loader import find_handoff, load_handoffs
from handoffs.lib.models import ConsumptionPlan, HandoffDocument
from handoffs.lib.plan import (
    ParsedPlan,
    count_done,
    create_plan,
    load_plan,
    mark_requirement_complete,
    plan_path,
    update_plan_file,
)
from handoffs.lib.types import HandoffError, ValidationError, now_iso
from handoffs.lib.validate import validate_status_transition
from handoffs.workflow.state_machine import (
    HandoffStatus,
    PlanStatus,
    calculate_auto_status,
    transition_handoff,
    transition_plan,
)

logger = logging.getLogger(__name__)

# Completion never re-derives these
FROZEN_PLAN_STATUSES = {PlanStatus.DONE.value, PlanStatus.BLOCKED.value}


class ConsumptionError(HandoffError):
    """A consumption step was refused."""


def load_corpus_handoff(config: HandoffConfig, handoff_id: str) -> HandoffDocument:
    """Find one handoff by id in the configured corpus."""
    docs, _ = load_handoffs(config.handoffs_dir, exclude=config.generated_dirs)
    return find_handoff(docs, handoff_id)


def start_consumption(
    config: HandoffConfig,
    doc: HandoffDocument,
    now: str | None = None,
) -> tuple[ConsumptionPlan, Path]:
    """Create the plan for a handoff and mark the handoff in_progress.

    Raises:
        ConsumptionError: if the handoff cannot move to in_progress
        PlanExistsError: if a plan already exists
    """
    errors = validate_status_transition(
        doc.status, HandoffStatus.IN_PROGRESS.value, file=str(doc.file_path), handoff_id=doc.handoff_id
    )
    if errors:
        raise ConsumptionError(errors[0].message)

    plan, path = create_plan(doc, config.plans_dir, now)

    errors = transition_handoff(doc.file_path, doc.handoff_id, HandoffStatus.IN_PROGRESS)
    if errors:
        raise ConsumptionError(errors[0].message)

    return plan, path


def complete_requirements(
    config: HandoffConfig,
    handoff_id: str,
    req_ids: list[str],
    now: str | None = None,
) -> ParsedPlan:
    """Mark requirements complete and re-derive the plan status.

    Raises:
        PlanNotFoundError: if the plan does not exist
        RequirementNotFoundError: if any id is unknown (nothing is written)
        ConsumptionError: if the plan is done or blocked
    """
    path = plan_path(config.plans_dir, handoff_id)
    parsed = load_plan(path)
    current = parsed.frontmatter.status

    if current in FROZEN_PLAN_STATUSES:
        raise ConsumptionError(
            f"Plan for {handoff_id} is '{current}'; requirements cannot be completed"
        )

    requirements = parsed.requirements
    for req_id in req_ids:
        requirements = mark_requirement_complete(requirements, req_id)

    total = len(requirements)
    done = count_done(requirements)
    status = calculate_auto_status(total, done)
    # A plan already under review stays there once everything is done
    if current == PlanStatus.REVIEW.value and status == PlanStatus.TESTING.value:
        status = current

    frontmatter = replace(
        parsed.frontmatter,
        status=status,
        requirements_total=total,
        requirements_done=done,
        updated_at=now or now_iso(),
    )
    update_plan_file(path, frontmatter, requirements)

    if status != current:
        logger.info(f"[PLAN] {handoff_id}: {current} -> {status} ({done}/{total} done)")
    else:
        logger.info(f"[PLAN] {handoff_id}: {done}/{total} done")

    return ParsedPlan(frontmatter=frontmatter, summary=parsed.summary, requirements=requirements)


def set_plan_status(config: HandoffConfig, handoff_id: str, status: str, reason: str = "") -> None:
    """Manually move a plan through its state machine.

    Raises:
        PlanNotFoundError: if the plan does not exist
        InvalidTransition: if the table forbids the move
        ConsumptionError: if status is not a plan status
    """
    path = plan_path(config.plans_dir, handoff_id)
    load_plan(path)
    try:
        target = PlanStatus(status)
    except ValueError:
        valid = ", ".join(s.value for s in PlanStatus)
        raise ConsumptionError(f"Unknown plan status '{status}'. Must be one of: {valid}") from None
    transition_plan(path, target, reason=reason)


def set_handoff_status(config: HandoffConfig, handoff_id: str, status: str) -> list[ValidationError]:
    """Manually move a handoff. Returns validation errors instead of raising."""
    doc = load_corpus_handoff(config, handoff_id)
    try:
        target = HandoffStatus(status)
    except ValueError:
        return validate_status_transition(doc.status, status, file=str(doc.file_path), handoff_id=handoff_id)
    return transition_handoff(doc.file_path, handoff_id, target)
