"""Tests for handoffs.workflow.state_machine module.

Tests the wrapper functions around the FSM.
The FSM itself is tested in test_fsm.py.
"""

import pytest

from handoffs.lib.constants import PLAN_STATUSES
from handoffs.lib.frontmatter import render_frontmatter, split_frontmatter
from handoffs.workflow.state_machine import (
    HandoffStatus,
    InvalidTransition,
    PlanStatus,
    calculate_auto_status,
    can_transition_handoff,
    is_valid_status_transition,
    parse_plan_status,
    transition_handoff,
    transition_plan,
)

PLAN_ALLOWED = {
    "pending": {"in_progress", "blocked"},
    "in_progress": {"testing", "done", "blocked"},
    "testing": {"review", "in_progress", "blocked"},
    "review": {"in_progress", "done", "blocked"},
    "done": set(),
    "blocked": {"in_progress", "pending"},
}


def write_doc(path, status):
    path.write_text(render_frontmatter({"handoff_id": "031-a", "status": status}, "# Body\n"))
    return path


def read_frontmatter(path):
    data, _ = split_frontmatter(path.read_text())
    return data


class TestParsePlanStatus:
    def test_valid(self):
        assert parse_plan_status("in_progress") == PlanStatus.IN_PROGRESS
        assert parse_plan_status("done") == PlanStatus.DONE

    def test_none_and_unknown(self):
        assert parse_plan_status(None) is None
        assert parse_plan_status("bogus") is None

    def test_values_match_constants(self):
        assert {s.value for s in PlanStatus} == set(PLAN_STATUSES)


class TestIsValidStatusTransition:
    """All 36 ordered pairs of plan statuses."""

    @pytest.mark.parametrize("from_status", PLAN_STATUSES)
    @pytest.mark.parametrize("to_status", PLAN_STATUSES)
    def test_table(self, from_status, to_status):
        expected = to_status in PLAN_ALLOWED[from_status]
        assert is_valid_status_transition(from_status, to_status) is expected

    def test_self_moves_invalid(self):
        for status in PLAN_STATUSES:
            assert not is_valid_status_transition(status, status)

    def test_unknown_status(self):
        assert not is_valid_status_transition("bogus", "pending")


class TestCalculateAutoStatus:
    @pytest.mark.parametrize("total,done,expected", [
        (3, 0, "pending"),
        (3, 1, "in_progress"),
        (3, 2, "in_progress"),
        (3, 3, "testing"),
        (0, 0, "pending"),
        (1, 1, "testing"),
    ])
    def test_derivation(self, total, done, expected):
        assert calculate_auto_status(total, done) == expected

    def test_never_done(self):
        assert calculate_auto_status(5, 5) != "done"


class TestTransitionPlan:
    """Tests for transition_plan()."""

    @pytest.fixture
    def plan_file(self, tmp_path):
        return write_doc(tmp_path / "031-a.plan.md", "pending")

    def test_valid_transition(self, plan_file):
        transition_plan(plan_file, PlanStatus.IN_PROGRESS, reason="work started")
        assert read_frontmatter(plan_file)["status"] == "in_progress"

    def test_invalid_transition_raises(self, plan_file):
        with pytest.raises(InvalidTransition) as exc_info:
            transition_plan(plan_file, PlanStatus.DONE)
        err = exc_info.value
        assert err.from_state == "pending"
        assert err.to_state == "done"
        assert err.allowed == ["blocked", "in_progress"]
        assert read_frontmatter(plan_file)["status"] == "pending"

    def test_terminal_message(self, tmp_path):
        path = write_doc(tmp_path / "done.plan.md", "done")
        with pytest.raises(InvalidTransition, match="none \\(terminal state\\)"):
            transition_plan(path, PlanStatus.IN_PROGRESS)

    def test_self_transition_is_noop(self, plan_file):
        before = plan_file.read_text()
        transition_plan(plan_file, PlanStatus.PENDING)
        assert plan_file.read_text() == before

    def test_updates_written(self, plan_file):
        transition_plan(plan_file, PlanStatus.BLOCKED, updates={"blocker_reason": "waiting"})
        data = read_frontmatter(plan_file)
        assert data["status"] == "blocked"
        assert data["blocker_reason"] == "waiting"


class TestTransitionHandoff:
    """Tests for transition_handoff()."""

    def test_valid_move(self, tmp_path):
        path = write_doc(tmp_path / "031-a.md", "new")
        assert transition_handoff(path, "031-a", HandoffStatus.IN_PROGRESS) == []
        assert read_frontmatter(path)["status"] == "in_progress"

    def test_invalid_move_returns_errors(self, tmp_path):
        path = write_doc(tmp_path / "031-a.md", "done")
        before = path.read_text()
        errors = transition_handoff(path, "031-a", HandoffStatus.NEW)
        assert [e.code for e in errors] == ["invalid_transition"]
        assert "031-a" in errors[0].message
        assert path.read_text() == before

    def test_identity_is_legal(self, tmp_path):
        path = write_doc(tmp_path / "031-a.md", "blocked")
        assert transition_handoff(path, "031-a", HandoffStatus.BLOCKED) == []

    def test_unknown_current_status_refused(self, tmp_path):
        path = write_doc(tmp_path / "031-a.md", "bogus")
        before = path.read_text()
        errors = transition_handoff(path, "031-a", HandoffStatus.ACKNOWLEDGED)
        assert [e.code for e in errors] == ["invalid_status"]
        assert "bogus" in errors[0].message
        assert path.read_text() == before

    def test_can_transition_handoff(self):
        assert can_transition_handoff("new", "acknowledged")
        assert not can_transition_handoff("acknowledged", "new")
