"""
Consumption plan documents.

A plan is YAML frontmatter plus a markdown body. Only the frontmatter
and the fenced requirements checklist are machine-read; the risk, test
and file tables are for humans and are never re-parsed.

Checklist sub-format (v1):

    <!-- requirements:v1 -->
    - [ ] **REQ-001**: Add the /devices route
      - category: api_client | priority: 1 | source: requires[0]
    <!-- /requirements -->

Parsing recovers ids, descriptions and completion only. Category,
tests and files are advisory and are lost on the way back.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path

from handoffs.lib.constants import PLAN_FORMAT_VERSION, PLAN_SUFFIX
from handoffs.lib.frontmatter import render_frontmatter, split_frontmatter
from handoffs.lib.models import (
    ConsumptionPlan,
    ExtractedRequirement,
    HandoffDocument,
    PlanFrontmatter,
    TestPlanEntry,
)
from handoffs.lib.requirements import parse_handoff_to_requirements
from handoffs.lib.types import HandoffError, now_iso
from handoffs.lib.validate import validate_before_write

logger = logging.getLogger(__name__)

CHECKLIST_RE = re.compile(r'^- \[([ xX])\] \*\*(REQ-\d{3,})\*\*: (.*?)\s*$')
SECTION_RE = re.compile(r'^##\s+(.+?)\s*$')

CHECKLIST_START = f"<!-- requirements:v{PLAN_FORMAT_VERSION} -->"
CHECKLIST_END = "<!-- /requirements -->"

BREAKING_RE = re.compile(r'breaking[\s_-]+change', re.IGNORECASE)


class PlanExistsError(HandoffError):
    """A plan already exists; regenerating it would discard progress."""


class PlanNotFoundError(HandoffError):
    """No plan file for the requested handoff."""


class RequirementNotFoundError(HandoffError):
    """Completion named a REQ id that is not in the plan."""


def plan_path(plans_dir: Path, handoff_id: str) -> Path:
    """Canonical location of a handoff's plan."""
    return plans_dir / f"{handoff_id}{PLAN_SUFFIX}"


# ─────────────────────────────────────────────────────────────────────────────
# Generation
# ─────────────────────────────────────────────────────────────────────────────

def _risk_text(risk) -> str:
    if isinstance(risk, dict):
        text = str(risk.get("risk") or risk.get("description") or "").strip()
        mitigation = str(risk.get("mitigation") or "").strip()
        if text and mitigation:
            return f"{text} (mitigation: {mitigation})"
        return text
    return str(risk).strip()


def detect_breaking_change(doc: HandoffDocument, risks: list[str]) -> bool:
    """Explicit flag wins; otherwise look for "breaking change" in risks or body."""
    flag = doc.raw.get("breaking_change")
    if isinstance(flag, bool):
        return flag
    return any(BREAKING_RE.search(text) for text in risks + [doc.body])


def build_test_plan(doc: HandoffDocument, requirements: list[ExtractedRequirement]) -> list[TestPlanEntry]:
    """Handoff-level verification steps first, then per-requirement tests."""
    entries = [
        TestPlanEntry(requirement_id=None, description=str(step).strip())
        for step in doc.frontmatter.verification
        if str(step).strip()
    ]
    for req in requirements:
        for test in req.tests:
            entries.append(TestPlanEntry(requirement_id=req.id, description=test))
    return entries


def build_impacted_files(requirements: list[ExtractedRequirement]) -> dict[str, list[str]]:
    """Map each hinted path to the requirements that touch it."""
    impacted: dict[str, list[str]] = {}
    for req in requirements:
        for path in req.files:
            impacted.setdefault(path, []).append(req.id)
    return impacted


def build_summary(doc: HandoffDocument, requirements: list[ExtractedRequirement]) -> str:
    fm = doc.frontmatter
    counts: dict[str, int] = {}
    for req in requirements:
        counts[req.category] = counts.get(req.category, 0) + 1

    lines = [f"Consume handoff {fm.handoff_id} ({doc.title}) from {fm.from_repo}."]
    if counts:
        breakdown = ", ".join(f"{cat}: {n}" for cat, n in counts.items())
        lines.append(f"{len(requirements)} requirements extracted ({breakdown}).")
    else:
        lines.append("No actionable requirements were found.")
    if fm.notes:
        lines.append("")
        lines.append(fm.notes.strip())
    return "\n".join(lines)


def generate_plan(doc: HandoffDocument, now: str | None = None) -> ConsumptionPlan:
    """Build a fresh plan for a handoff. Pure: nothing is written."""
    now = now or now_iso()
    requirements = parse_handoff_to_requirements(doc)
    risks = [r for r in (_risk_text(risk) for risk in doc.frontmatter.risks) if r]

    frontmatter = PlanFrontmatter(
        handoff_id=doc.handoff_id,
        source_handoff=str(doc.file_path),
        status="pending",
        created_at=now,
        updated_at=now,
        requirements_total=len(requirements),
        requirements_done=0,
        breaking_change=detect_breaking_change(doc, risks),
    )
    return ConsumptionPlan(
        frontmatter=frontmatter,
        summary=build_summary(doc, requirements),
        requirements=requirements,
        risks=risks,
        test_plan=build_test_plan(doc, requirements),
        impacted_files=build_impacted_files(requirements),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Serialization
# ─────────────────────────────────────────────────────────────────────────────

def _cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def format_checklist_item(req: ExtractedRequirement) -> list[str]:
    mark = "x" if req.completed else " "
    lines = [f"- [{mark}] **{req.id}**: {req.description}"]
    meta = []
    if req.category:
        meta.append(f"category: {req.category}")
    if req.priority is not None:
        meta.append(f"priority: {req.priority}")
    if req.source:
        meta.append(f"source: {req.source}")
    if meta:
        lines.append(f"  - {' | '.join(meta)}")
    return lines


def plan_frontmatter_dict(frontmatter: PlanFrontmatter) -> dict:
    data = frontmatter.to_dict()
    data["plan_format"] = PLAN_FORMAT_VERSION
    return data


def serialize_plan(plan: ConsumptionPlan) -> str:
    """Render a plan to markdown with YAML frontmatter."""
    fm = plan.frontmatter
    lines = [
        f"# Consumption Plan: {fm.handoff_id}",
        "",
        "## Summary",
        "",
        plan.summary.strip(),
        "",
        "## Requirements",
        "",
        CHECKLIST_START,
    ]
    for req in plan.requirements:
        lines.extend(format_checklist_item(req))
    lines.append(CHECKLIST_END)
    lines.append("")

    lines.append("## Risks")
    lines.append("")
    if plan.risks:
        lines.append("| # | Risk |")
        lines.append("|---|------|")
        for i, risk in enumerate(plan.risks, 1):
            lines.append(f"| {i} | {_cell(risk)} |")
    else:
        lines.append("No risks declared.")
    lines.append("")

    lines.append("## Test Plan")
    lines.append("")
    if plan.test_plan:
        lines.append("| Requirement | Test |")
        lines.append("|-------------|------|")
        for entry in plan.test_plan:
            lines.append(f"| {entry.requirement_id or 'handoff'} | {_cell(entry.description)} |")
    else:
        lines.append("No tests planned.")
    lines.append("")

    lines.append("## Impacted Files")
    lines.append("")
    if plan.impacted_files:
        lines.append("| File | Requirements |")
        lines.append("|------|--------------|")
        for path, req_ids in plan.impacted_files.items():
            lines.append(f"| `{path}` | {', '.join(req_ids)} |")
    else:
        lines.append("No files identified.")

    return render_frontmatter(plan_frontmatter_dict(fm), "\n" + "\n".join(lines) + "\n")


@dataclass
class ParsedPlan:
    """What survives a round trip through markdown."""
    frontmatter: PlanFrontmatter
    summary: str = ""
    requirements: list[ExtractedRequirement] = field(default_factory=list)


def _fenced_checklist(lines: list[str]):
    """Yield (index, match) for checklist items inside the requirements fence."""
    inside = False
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped == CHECKLIST_START:
            inside = True
        elif stripped == CHECKLIST_END:
            inside = False
        elif inside:
            match = CHECKLIST_RE.match(line)
            if match:
                yield i, match


def parse_checklist(body: str) -> list[ExtractedRequirement]:
    """Reconstruct minimal requirement records from the fenced checklist."""
    requirements = []
    for _, match in _fenced_checklist(body.splitlines()):
        requirements.append(ExtractedRequirement(
            id=match.group(2),
            description=match.group(3),
            source="",
            completed=match.group(1).lower() == "x",
        ))
    return requirements


def _parse_summary(body: str) -> str:
    lines = body.splitlines()
    collected = []
    in_summary = False
    for line in lines:
        section = SECTION_RE.match(line)
        if section:
            if in_summary:
                break
            in_summary = section.group(1).lower() == "summary"
            continue
        if in_summary:
            collected.append(line)
    return "\n".join(collected).strip()


def parse_plan(text: str) -> ParsedPlan:
    """Parse a serialized plan.

    Raises:
        FrontmatterError: if the plan has no valid frontmatter
    """
    data, body = split_frontmatter(text)
    return ParsedPlan(
        frontmatter=PlanFrontmatter.from_dict(data),
        summary=_parse_summary(body),
        requirements=parse_checklist(body),
    )


def load_plan(path: Path) -> ParsedPlan:
    """Read and parse a plan file.

    Raises:
        PlanNotFoundError: if the file does not exist
    """
    if not path.exists():
        raise PlanNotFoundError(f"Plan file not found: {path}")
    return parse_plan(path.read_text())


# ─────────────────────────────────────────────────────────────────────────────
# Writing
# ─────────────────────────────────────────────────────────────────────────────

def _refuse_existing(handoff_id: str, path: Path) -> None:
    if path.exists():
        raise PlanExistsError(
            f"Plan already exists for {handoff_id}: {path}. "
            "Regenerating would discard completion progress."
        )


def write_plan(plan: ConsumptionPlan, path: Path) -> Path:
    """Create the plan file. Refuses to overwrite.

    Raises:
        PlanExistsError: if a plan already exists at path
        SchemaError: if the frontmatter is invalid
    """
    _refuse_existing(plan.frontmatter.handoff_id, path)

    validate_before_write(plan_frontmatter_dict(plan.frontmatter), "plan", path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize_plan(plan))
    logger.info(
        f"[PLAN] Created {path} with {plan.frontmatter.requirements_total} requirements"
    )
    return path


def create_plan(doc: HandoffDocument, plans_dir: Path, now: str | None = None) -> tuple[ConsumptionPlan, Path]:
    """Generate and write the plan for a handoff.

    The existence check runs before extraction so a refused call does
    no work.
    """
    path = plan_path(plans_dir, doc.handoff_id)
    _refuse_existing(doc.handoff_id, path)
    plan = generate_plan(doc, now)
    write_plan(plan, path)
    return plan, path


def mark_requirement_complete(
    requirements: list[ExtractedRequirement],
    req_id: str,
) -> list[ExtractedRequirement]:
    """Return a copy of requirements with req_id marked complete.

    Does not touch the input list or its items.

    Raises:
        RequirementNotFoundError: if req_id is not present
    """
    if not any(r.id == req_id for r in requirements):
        known = ", ".join(r.id for r in requirements) or "none"
        raise RequirementNotFoundError(f"Requirement {req_id} not found (known: {known})")
    return [replace(r, completed=True) if r.id == req_id else replace(r) for r in requirements]


def count_done(requirements: list[ExtractedRequirement]) -> int:
    return sum(1 for r in requirements if r.completed)


def update_plan_file(
    path: Path,
    frontmatter: PlanFrontmatter,
    requirements: list[ExtractedRequirement],
) -> None:
    """Rewrite a plan's frontmatter and checklist marks in place.

    Every other line, including the human-readable tables, is kept
    byte for byte.

    Raises:
        SchemaError: if the frontmatter is invalid
    """
    data, body = split_frontmatter(path.read_text())
    completed = {r.id: r.completed for r in requirements}

    lines = body.splitlines()
    for i, match in list(_fenced_checklist(lines)):
        if match.group(2) in completed:
            mark = "x" if completed[match.group(2)] else " "
            lines[i] = f"- [{mark}]" + lines[i][5:]

    data.update(frontmatter.to_dict())
    validate_before_write(data, "plan", path)

    new_body = "\n".join(lines)
    if body.endswith("\n"):
        new_body += "\n"
    path.write_text(render_frontmatter(data, new_body))
