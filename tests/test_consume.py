"""Tests for handoffs.workflow.consume module."""

import pytest

from handoffs.lib.frontmatter import split_frontmatter
from handoffs.lib.plan import (
    PlanNotFoundError,
    RequirementNotFoundError,
    load_plan,
    plan_path,
)
from handoffs.workflow.consume import (
    ConsumptionError,
    complete_requirements,
    load_corpus_handoff,
    set_handoff_status,
    set_plan_status,
    start_consumption,
)
from handoffs.workflow.state_machine import InvalidTransition

HANDOFF_ID = "031-add-devices-route"
NOW = "2026-01-06T10:00:00+00:00"


def handoff_status(path):
    data, _ = split_frontmatter(path.read_text())
    return data["status"]


@pytest.fixture
def started(config, write_handoff):
    """A handoff with its plan created."""
    path = write_handoff()
    doc = load_corpus_handoff(config, HANDOFF_ID)
    start_consumption(config, doc, NOW)
    return path


class TestStartConsumption:
    """Tests for start_consumption()."""

    def test_creates_plan_and_starts_handoff(self, config, write_handoff):
        path = write_handoff()
        doc = load_corpus_handoff(config, HANDOFF_ID)
        plan, created = start_consumption(config, doc, NOW)

        assert created == plan_path(config.plans_dir, HANDOFF_ID)
        assert created.exists()
        assert plan.frontmatter.status == "pending"
        assert handoff_status(path) == "in_progress"

    def test_refuses_done_handoff(self, config, write_handoff):
        write_handoff(status="done")
        doc = load_corpus_handoff(config, HANDOFF_ID)
        with pytest.raises(ConsumptionError, match="done -> in_progress"):
            start_consumption(config, doc, NOW)
        assert not plan_path(config.plans_dir, HANDOFF_ID).exists()

    def test_plan_dir_not_loaded_as_handoffs(self, config, started):
        """Plans live under handoffs_dir but are not handoffs."""
        assert load_corpus_handoff(config, HANDOFF_ID).status == "in_progress"


class TestCompleteRequirements:
    """Tests for complete_requirements()."""

    def test_progression(self, config, started):
        parsed = complete_requirements(config, HANDOFF_ID, ["REQ-001"], NOW)
        assert parsed.frontmatter.status == "in_progress"
        assert parsed.frontmatter.requirements_done == 1

        parsed = complete_requirements(config, HANDOFF_ID, ["REQ-002", "REQ-003"], NOW)
        assert parsed.frontmatter.status == "testing"
        assert parsed.frontmatter.requirements_done == 3

        on_disk = load_plan(plan_path(config.plans_dir, HANDOFF_ID))
        assert on_disk.frontmatter.status == "testing"
        assert all(r.completed for r in on_disk.requirements)

    def test_unknown_requirement_writes_nothing(self, config, started):
        path = plan_path(config.plans_dir, HANDOFF_ID)
        before = path.read_text()
        with pytest.raises(RequirementNotFoundError):
            complete_requirements(config, HANDOFF_ID, ["REQ-001", "REQ-042"], NOW)
        assert path.read_text() == before

    def test_repeat_completion_is_harmless(self, config, started):
        complete_requirements(config, HANDOFF_ID, ["REQ-001"], NOW)
        parsed = complete_requirements(config, HANDOFF_ID, ["REQ-001"], NOW)
        assert parsed.frontmatter.requirements_done == 1

    def test_review_plan_stays_in_review(self, config, started):
        complete_requirements(config, HANDOFF_ID, ["REQ-001", "REQ-002"], NOW)
        set_plan_status(config, HANDOFF_ID, "testing")
        set_plan_status(config, HANDOFF_ID, "review")
        parsed = complete_requirements(config, HANDOFF_ID, ["REQ-003"], NOW)
        assert parsed.frontmatter.status == "review"

    def test_blocked_plan_refused(self, config, started):
        set_plan_status(config, HANDOFF_ID, "blocked")
        with pytest.raises(ConsumptionError, match="blocked"):
            complete_requirements(config, HANDOFF_ID, ["REQ-001"], NOW)

    def test_missing_plan(self, config):
        with pytest.raises(PlanNotFoundError):
            complete_requirements(config, "099-missing", ["REQ-001"], NOW)


class TestManualStatus:
    """Tests for set_plan_status() and set_handoff_status()."""

    def test_plan_move_validated(self, config, started):
        with pytest.raises(InvalidTransition):
            set_plan_status(config, HANDOFF_ID, "review")

    def test_unknown_plan_status(self, config, started):
        with pytest.raises(ConsumptionError, match="Unknown plan status"):
            set_plan_status(config, HANDOFF_ID, "shipped")

    def test_handoff_move(self, config, started):
        assert set_handoff_status(config, HANDOFF_ID, "blocked") == []
        assert handoff_status(started) == "blocked"

    def test_handoff_illegal_move(self, config, started):
        errors = set_handoff_status(config, HANDOFF_ID, "new")
        assert [e.code for e in errors] == ["invalid_transition"]
        assert handoff_status(started) == "in_progress"

    def test_handoff_unknown_status(self, config, started):
        errors = set_handoff_status(config, HANDOFF_ID, "archived")
        assert [e.code for e in errors] == ["invalid_status"]

    def test_handoff_with_unknown_current_status(self, config, write_handoff):
        path = write_handoff(status="bogus")
        errors = set_handoff_status(config, HANDOFF_ID, "acknowledged")
        assert [e.code for e in errors] == ["invalid_status"]
        assert handoff_status(path) == "bogus"
