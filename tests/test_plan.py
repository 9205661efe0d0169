"""Tests for handoffs.lib.plan module."""

import pytest

from handoffs.lib.frontmatter import split_frontmatter
from handoffs.lib.loader import load_handoffs
from handoffs.lib.plan import (
    PlanExistsError,
    PlanNotFoundError,
    RequirementNotFoundError,
    count_done,
    create_plan,
    generate_plan,
    load_plan,
    mark_requirement_complete,
    parse_plan,
    plan_path,
    serialize_plan,
    update_plan_file,
    write_plan,
)
from handoffs.lib.validate import SchemaError

NOW = "2026-01-06T10:00:00+00:00"


@pytest.fixture
def doc(config, write_handoff):
    write_handoff(
        risks=[{"risk": "Breaking change to device payload", "mitigation": "version the route"}],
        verification=["curl /api/devices returns 200"],
        notes="Coordinate with backend on rollout.",
    )
    docs, _ = load_handoffs(config.handoffs_dir)
    return docs[0]


class TestGeneratePlan:
    """Tests for generate_plan()."""

    def test_frontmatter(self, doc):
        plan = generate_plan(doc, NOW)
        fm = plan.frontmatter
        assert fm.handoff_id == "031-add-devices-route"
        assert fm.status == "pending"
        assert fm.created_at == NOW
        assert fm.requirements_total == 3
        assert fm.requirements_done == 0
        assert fm.source_handoff == str(doc.file_path)

    def test_first_requirement_is_api_client(self, doc):
        req = generate_plan(doc, NOW).requirements[0]
        assert req.id == "REQ-001"
        assert req.category == "api_client"
        assert req.priority == 1
        assert req.completed is False

    def test_single_api_requirement_end_to_end(self, config, write_handoff):
        write_handoff(
            body="# New route\n\nThe backend is adding an endpoint.\n",
            requires=[{"type": "api", "description": "add a new route"}],
            acceptance=[],
        )
        docs, _ = load_handoffs(config.handoffs_dir)

        reqs = generate_plan(docs[0], NOW).requirements
        assert len(reqs) == 1
        assert reqs[0].id == "REQ-001"
        assert reqs[0].description == "add a new route"
        assert reqs[0].category == "api_client"
        assert reqs[0].priority == 1
        assert reqs[0].completed is False

    def test_breaking_change_from_risks(self, doc):
        assert generate_plan(doc, NOW).frontmatter.breaking_change is True

    def test_explicit_breaking_flag_wins(self, config, write_handoff):
        write_handoff(risks=["Breaking change ahead"], breaking_change=False)
        docs, _ = load_handoffs(config.handoffs_dir)
        assert generate_plan(docs[0], NOW).frontmatter.breaking_change is False

    def test_risks_and_test_plan(self, doc):
        plan = generate_plan(doc, NOW)
        assert plan.risks == ["Breaking change to device payload (mitigation: version the route)"]
        assert plan.test_plan[0].requirement_id is None
        assert plan.test_plan[0].description == "curl /api/devices returns 200"
        assert any(e.requirement_id == "REQ-001" for e in plan.test_plan)

    def test_impacted_files_map_to_requirements(self, doc):
        plan = generate_plan(doc, NOW)
        assert plan.impacted_files["src/infrastructure/api/"] == ["REQ-001"]

    def test_summary_mentions_notes(self, doc):
        summary = generate_plan(doc, NOW).summary
        assert "031-add-devices-route" in summary
        assert "Coordinate with backend on rollout." in summary


class TestSerializeAndParse:
    """Tests for serialize_plan() / parse_plan()."""

    def test_round_trip(self, doc):
        plan = generate_plan(doc, NOW)
        plan.requirements[1].completed = True

        parsed = parse_plan(serialize_plan(plan))
        assert parsed.frontmatter == plan.frontmatter
        assert parsed.summary == plan.summary.strip()
        assert [(r.id, r.description, r.completed) for r in parsed.requirements] == [
            (r.id, r.description, r.completed) for r in plan.requirements
        ]

    def test_advisory_fields_not_recovered(self, doc):
        parsed = parse_plan(serialize_plan(generate_plan(doc, NOW)))
        assert parsed.requirements[0].category is None
        assert parsed.requirements[0].files == []

    def test_sections_present(self, doc):
        text = serialize_plan(generate_plan(doc, NOW))
        for heading in ("## Summary", "## Requirements", "## Risks", "## Test Plan", "## Impacted Files"):
            assert heading in text
        assert "<!-- requirements:v1 -->" in text
        assert "  - category: api_client | priority: 1 | source: requires[0]" in text

    def test_frontmatter_carries_format_version(self, doc):
        data, _ = split_frontmatter(serialize_plan(generate_plan(doc, NOW)))
        assert data["plan_format"] == 1

    def test_parse_ignores_other_lists(self):
        text = (
            "---\nhandoff_id: 031-a\nstatus: pending\n---\n"
            "- [ ] not a requirement\n"
            "<!-- requirements:v1 -->\n"
            "- [x] **REQ-002**: Second\n"
            "  - category: ui | priority: 3 | source: acceptance[0]\n"
            "<!-- /requirements -->\n"
        )
        reqs = parse_plan(text).requirements
        assert [(r.id, r.completed) for r in reqs] == [("REQ-002", True)]

    def test_items_outside_the_fence_ignored(self, config, write_handoff):
        write_handoff(notes="- [ ] **REQ-001**: Copied from the sender's notes")
        docs, _ = load_handoffs(config.handoffs_dir)
        plan, path = create_plan(docs[0], config.plans_dir, NOW)

        parsed = load_plan(path)
        assert [r.id for r in parsed.requirements] == [r.id for r in plan.requirements]

        reqs = mark_requirement_complete(parsed.requirements, "REQ-001")
        update_plan_file(path, parsed.frontmatter, reqs)
        after = path.read_text()
        assert "- [ ] **REQ-001**: Copied from the sender's notes" in after
        assert after.count("- [x] **REQ-001**") == 1

    def test_four_digit_ids_survive(self, doc):
        plan = generate_plan(doc, NOW)
        plan.requirements[-1].id = "REQ-1000"
        parsed = parse_plan(serialize_plan(plan))
        assert [r.id for r in parsed.requirements][-1] == "REQ-1000"
        assert len(parsed.requirements) == len(plan.requirements)


class TestCreatePlan:
    """Tests for create_plan() and write_plan()."""

    def test_writes_plan_file(self, config, doc):
        plan, path = create_plan(doc, config.plans_dir, NOW)
        assert path == plan_path(config.plans_dir, "031-add-devices-route")
        assert path.name == "031-add-devices-route.plan.md"
        assert load_plan(path).frontmatter.requirements_total == len(plan.requirements)

    def test_refuses_to_overwrite(self, config, doc):
        _, path = create_plan(doc, config.plans_dir, NOW)
        path.write_text(path.read_text().replace("- [ ] **REQ-001**", "- [x] **REQ-001**"))
        before = path.read_text()

        with pytest.raises(PlanExistsError, match="031-add-devices-route"):
            create_plan(doc, config.plans_dir, NOW)
        assert path.read_text() == before

    def test_invalid_frontmatter_not_written(self, config, doc):
        plan = generate_plan(doc, NOW)
        plan.frontmatter.status = "bogus"
        path = plan_path(config.plans_dir, doc.handoff_id)
        with pytest.raises(SchemaError):
            write_plan(plan, path)
        assert not path.exists()

    def test_load_missing_plan(self, tmp_path):
        with pytest.raises(PlanNotFoundError):
            load_plan(tmp_path / "nope.plan.md")


class TestMarkComplete:
    """Tests for mark_requirement_complete() and update_plan_file()."""

    def test_returns_copy(self, doc):
        reqs = generate_plan(doc, NOW).requirements
        updated = mark_requirement_complete(reqs, "REQ-002")
        assert count_done(updated) == 1
        assert count_done(reqs) == 0
        assert updated[1].completed is True

    def test_idempotent(self, doc):
        reqs = generate_plan(doc, NOW).requirements
        once = mark_requirement_complete(reqs, "REQ-001")
        assert mark_requirement_complete(once, "REQ-001") == once

    def test_unknown_id(self, doc):
        reqs = generate_plan(doc, NOW).requirements
        with pytest.raises(RequirementNotFoundError, match="REQ-099"):
            mark_requirement_complete(reqs, "REQ-099")

    def test_update_preserves_tables(self, config, doc):
        plan, path = create_plan(doc, config.plans_dir, NOW)
        before = path.read_text()

        parsed = load_plan(path)
        reqs = mark_requirement_complete(parsed.requirements, "REQ-001")
        parsed.frontmatter.status = "in_progress"
        parsed.frontmatter.requirements_done = 1
        update_plan_file(path, parsed.frontmatter, reqs)

        after = path.read_text()
        assert "- [x] **REQ-001**" in after
        assert "- [ ] **REQ-002**" in after
        before_tables = before.split("## Risks", 1)[1]
        assert after.split("## Risks", 1)[1] == before_tables

        data, _ = split_frontmatter(after)
        assert data["status"] == "in_progress"
        assert data["requirements_done"] == 1
        assert data["plan_format"] == 1
