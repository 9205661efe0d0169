"""Plan and handoff status rules, plus transition helpers over the FSMs.

All transition logic lives in fsm.py - this module provides:
- PlanStatus / HandoffStatus enums for type safety
- is_valid_status_transition() pure table check
- calculate_auto_status() derivation from completion counts
- transition_plan() / transition_handoff() that map a target status to a FSM trigger

Usage:
    from handoffs.workflow.state_machine import transition_plan, PlanStatus

    transition_plan(plan_path, PlanStatus.IN_PROGRESS, reason="work started")
"""

import logging
from enum import Enum
from pathlib import Path

from transitions import MachineError

from handoffs.lib.types import HandoffError, ValidationError
from handoffs.lib.validate import validate_status_transition
from handoffs.workflow.fsm import (
    HandoffFSM,
    HANDOFF_TRIGGER_FOR,
    PLAN_ALLOWED,
    PLAN_TRIGGER_FOR,
    PlanFSM,
)

logger = logging.getLogger(__name__)


class PlanStatus(Enum):
    """All consumption plan states.

    Values match FSM state strings for compatibility.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    TESTING = "testing"
    REVIEW = "review"
    BLOCKED = "blocked"

    # Terminal
    DONE = "done"


class HandoffStatus(Enum):
    """All handoff document states."""

    NEW = "new"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"

    # Terminal
    DONE = "done"


class InvalidTransition(HandoffError):
    """Raised when attempting an invalid plan state transition."""

    def __init__(self, from_state: str, to_state: str, plan_id: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.plan_id = plan_id
        self.allowed = sorted(PLAN_ALLOWED.get(from_state, ()))
        allowed_str = ", ".join(self.allowed) if self.allowed else "none (terminal state)"
        super().__init__(
            f"Invalid transition: {from_state} -> {to_state}"
            + (f" (plan: {plan_id})" if plan_id else "")
            + f". Allowed from '{from_state}': {allowed_str}"
        )


def parse_plan_status(status_str: str | None) -> PlanStatus | None:
    """Parse a status string into PlanStatus enum.

    Returns None if status is unknown.
    """
    if status_str is None:
        return None
    for state in PlanStatus:
        if state.value == status_str:
            return state
    return None


def is_valid_status_transition(from_status: str, to_status: str) -> bool:
    """Check a plan status move against the transition table.

    A pure membership check: self-moves are only valid if the table
    lists them, which it never does.
    """
    return to_status in PLAN_ALLOWED.get(from_status, frozenset())


def calculate_auto_status(total: int, done: int) -> str:
    """Derive plan status from completion counts.

    Completion lands in testing, never done: advancing past testing
    needs an explicit closure.
    """
    if done <= 0:
        return PlanStatus.PENDING.value
    if done < total:
        return PlanStatus.IN_PROGRESS.value
    return PlanStatus.TESTING.value


def transition_plan(
    plan_path: Path,
    to_state: PlanStatus,
    reason: str = "",
    updates: dict | None = None,
) -> None:
    """Transition a plan to a new state with validation.

    Uses the FSM for validation and state persistence.

    Args:
        plan_path: Path to the plan file
        to_state: Target state to transition to
        reason: Optional reason for the transition (for logging)
        updates: Extra frontmatter keys to write with the new status

    Raises:
        InvalidTransition: If the transition is not allowed
    """
    plan_id = plan_path.name
    reason_str = f" ({reason})" if reason else ""

    fsm = PlanFSM(plan_path)
    current_state = fsm.state

    # Self-transition is a no-op
    if current_state == to_state.value:
        logger.debug(f"[STATE] {plan_id}: already in {to_state.value}, no-op")
        if updates:
            fsm.save_state(updates)
        return

    trigger = PLAN_TRIGGER_FOR.get((current_state, to_state.value))
    if trigger is None:
        raise InvalidTransition(current_state, to_state.value, plan_id)

    try:
        logger.info(f"[STATE] {plan_id}: {current_state} -> {to_state.value}{reason_str}")
        getattr(fsm, trigger)(updates=updates)
    except MachineError as e:
        raise InvalidTransition(current_state, to_state.value, plan_id) from e


def transition_handoff(
    handoff_path: Path,
    handoff_id: str,
    to_state: HandoffStatus,
    updates: dict | None = None,
) -> list[ValidationError]:
    """Move a handoff document to a new status.

    Unlike plan moves this never raises for an illegal move: the
    problem comes back as a ValidationError and the file is untouched.
    A document whose current status is not a known handoff status is
    refused rather than treated as new.

    Returns:
        Empty list on success, otherwise the validation errors
    """
    fsm = HandoffFSM(handoff_path)
    current_state = fsm.recorded_state

    errors = validate_status_transition(
        current_state, to_state.value, file=str(handoff_path), handoff_id=handoff_id
    )
    if errors:
        return errors

    if current_state == to_state.value:
        logger.debug(f"[STATE] {handoff_id}: already in {to_state.value}, no-op")
        if updates:
            fsm.save_state(updates)
        return []

    trigger = HANDOFF_TRIGGER_FOR[(current_state, to_state.value)]
    getattr(fsm, trigger)(updates=updates)
    return []


def can_transition_handoff(from_status: str, to_status: str) -> bool:
    """True if the handoff table allows from_status -> to_status."""
    return not validate_status_transition(from_status, to_status)
