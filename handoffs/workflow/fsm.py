"""Handoff and consumption-plan state machines using transitions library.

Two machines share one shape:
- Explicit triggers (named actions)
- State loaded from, and persisted to, the document's YAML frontmatter
- Every transition logged

The handoff machine tracks the lifecycle of the handoff document itself.
The plan machine tracks the work of consuming it. The allowed-target
tables used for validation are derived from the trigger lists below,
so there is a single source of truth per machine.

Usage:
    from handoffs.workflow.fsm import PlanFSM

    fsm = PlanFSM(plan_path)
    fsm.start()  # pending -> in_progress
    fsm.begin_testing()  # in_progress -> testing
"""

import logging
from pathlib import Path
from typing import Callable

from transitions import Machine

from handoffs.lib.constants import HANDOFF_STATUSES, PLAN_STATUSES
from handoffs.lib.frontmatter import FrontmatterError, update_frontmatter, split_frontmatter
from handoffs.lib.types import now_iso

logger = logging.getLogger(__name__)


PLAN_STATES = list(PLAN_STATUSES)

# Transitions defined as (trigger, source, dest)
# Each trigger becomes a method on the FSM
PLAN_TRANSITIONS = [
    {"trigger": "start", "source": "pending", "dest": "in_progress"},

    # All requirements done, hand over to tests
    {"trigger": "begin_testing", "source": "in_progress", "dest": "testing"},
    {"trigger": "request_review", "source": "testing", "dest": "review"},

    # Sending work back
    {"trigger": "rework", "source": "testing", "dest": "in_progress"},
    {"trigger": "rework", "source": "review", "dest": "in_progress"},

    # Finishing
    {"trigger": "finish", "source": "in_progress", "dest": "done"},
    {"trigger": "finish", "source": "review", "dest": "done"},

    # Blocking from any live state
    {"trigger": "block", "source": "pending", "dest": "blocked"},
    {"trigger": "block", "source": "in_progress", "dest": "blocked"},
    {"trigger": "block", "source": "testing", "dest": "blocked"},
    {"trigger": "block", "source": "review", "dest": "blocked"},

    # Leaving blocked
    {"trigger": "unblock", "source": "blocked", "dest": "in_progress"},
    {"trigger": "reset", "source": "blocked", "dest": "pending"},
]


HANDOFF_STATES = list(HANDOFF_STATUSES)

HANDOFF_TRANSITIONS = [
    {"trigger": "acknowledge", "source": "new", "dest": "acknowledged"},
    {"trigger": "acknowledge", "source": "blocked", "dest": "acknowledged"},

    {"trigger": "start", "source": "new", "dest": "in_progress"},
    {"trigger": "start", "source": "acknowledged", "dest": "in_progress"},
    {"trigger": "start", "source": "blocked", "dest": "in_progress"},

    {"trigger": "finish", "source": "in_progress", "dest": "done"},

    {"trigger": "block", "source": "new", "dest": "blocked"},
    {"trigger": "block", "source": "acknowledged", "dest": "blocked"},
    {"trigger": "block", "source": "in_progress", "dest": "blocked"},
]


def _build_trigger_lookup(transitions: list[dict]) -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in transitions:
        key = (t["source"], t["dest"])
        if key not in lookup:  # First trigger wins for a given source->dest
            lookup[key] = t["trigger"]
    return lookup


def _build_allowed(states: list[str], transitions: list[dict]) -> dict[str, frozenset[str]]:
    """Build lookup from source -> set of reachable dests."""
    allowed: dict[str, set[str]] = {s: set() for s in states}
    for t in transitions:
        allowed[t["source"]].add(t["dest"])
    return {s: frozenset(d) for s, d in allowed.items()}


PLAN_TRIGGER_FOR = _build_trigger_lookup(PLAN_TRANSITIONS)
PLAN_ALLOWED = _build_allowed(PLAN_STATES, PLAN_TRANSITIONS)

HANDOFF_TRIGGER_FOR = _build_trigger_lookup(HANDOFF_TRANSITIONS)
HANDOFF_ALLOWED = _build_allowed(HANDOFF_STATES, HANDOFF_TRANSITIONS)


class DocumentFSM:
    """State machine bound to the `status` field of a markdown document.

    Subclasses pick the states, transitions and default state. Trigger
    methods accept an optional `updates` mapping of extra frontmatter
    keys written in the same save as the new status.
    """

    STATES: list[str] = []
    TRANSITIONS: list[dict] = []
    DEFAULT_STATE: str = ""
    LABEL: str = "FSM"

    def __init__(self, path: Path, on_transition: Callable[[str, str, str], None] | None = None):
        """Initialize FSM for a document.

        Args:
            path: Path to the markdown document holding the status
            on_transition: Optional callback(from_state, to_state, trigger) called after transitions
        """
        self.path = path
        self.doc_id = path.name
        self.on_transition = on_transition

        initial = self._load_state()
        # As written in the document, before any defaulting
        self.recorded_state = initial
        if initial not in self.STATES:
            logger.warning(
                f"[{self.LABEL}] {self.doc_id}: Unknown state '{initial}', defaulting to '{self.DEFAULT_STATE}'"
            )
            initial = self.DEFAULT_STATE

        self.machine = Machine(
            model=self,
            states=self.STATES,
            transitions=self.TRANSITIONS,
            initial=initial,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",  # Callback after any transition
        )

    def _load_state(self) -> str:
        """Load current state from frontmatter."""
        try:
            data, _ = split_frontmatter(self.path.read_text())
        except (OSError, FrontmatterError) as e:
            logger.warning(f"[{self.LABEL}] {self.doc_id}: Error reading state: {e}")
            return self.DEFAULT_STATE
        return str(data.get("status") or self.DEFAULT_STATE)

    def _status_updates(self) -> dict:
        return {"status": self.state}

    def save_state(self, updates: dict | None = None) -> None:
        """Write current state (and any extra keys) to frontmatter."""
        changes = self._status_updates()
        if updates:
            changes.update(updates)
        self.path.write_text(update_frontmatter(self.path.read_text(), changes))

    def on_state_change(self, event) -> None:
        """Callback after any state transition.

        Persists state to disk and logs the transition.
        """
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[{self.LABEL}] {self.doc_id}: {from_state} -> {to_state} ({trigger})")

        self.save_state(event.kwargs.get("updates"))

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        """Get list of triggers available in current state."""
        return self.machine.get_triggers(self.state)


class PlanFSM(DocumentFSM):
    """State machine for a consumption plan file."""

    STATES = PLAN_STATES
    TRANSITIONS = PLAN_TRANSITIONS
    DEFAULT_STATE = "pending"
    LABEL = "PLAN"

    def _status_updates(self) -> dict:
        return {"status": self.state, "updated_at": now_iso()}


class HandoffFSM(DocumentFSM):
    """State machine for a handoff document."""

    STATES = HANDOFF_STATES
    TRANSITIONS = HANDOFF_TRANSITIONS
    DEFAULT_STATE = "new"
    LABEL = "HANDOFF"
