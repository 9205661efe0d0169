"""
Data models for handoffs, consumption plans and reports.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


@dataclass
class HandoffFrontmatter:
    """Typed view over a handoff's YAML header.

    Built leniently from the raw mapping: missing fields get empty
    defaults so a structurally broken document can still be reported
    on. The validator works on the raw mapping, not on this view.
    """
    handoff_id: str
    direction: str                             # incoming, outgoing
    from_repo: str
    to_repo: str
    created_at: str                            # ISO timestamp
    status: str                                # new, acknowledged, in_progress, done, blocked
    requires: list[Any] = field(default_factory=list)
    acceptance: list[str] = field(default_factory=list)
    verification: list[str] = field(default_factory=list)
    risks: list[Any] = field(default_factory=list)
    notes: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "HandoffFrontmatter":
        return cls(
            handoff_id=str(data.get("handoff_id") or ""),
            direction=str(data.get("direction") or ""),
            from_repo=str(data.get("from_repo") or ""),
            to_repo=str(data.get("to_repo") or ""),
            created_at=str(data.get("created_at") or ""),
            status=str(data.get("status") or ""),
            requires=_as_list(data.get("requires")),
            acceptance=_as_list(data.get("acceptance")),
            verification=_as_list(data.get("verification")),
            risks=_as_list(data.get("risks")),
            notes=str(data.get("notes") or ""),
        )


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


@dataclass
class HandoffDocument:
    """A parsed handoff file. Immutable for the duration of a run."""
    raw: dict                                  # Frontmatter mapping as parsed
    body: str
    file_path: Path

    @property
    def frontmatter(self) -> HandoffFrontmatter:
        return HandoffFrontmatter.from_dict(self.raw)

    @property
    def handoff_id(self) -> str:
        return str(self.raw.get("handoff_id") or "")

    @property
    def status(self) -> str:
        return str(self.raw.get("status") or "")

    @property
    def title(self) -> str:
        """First markdown H1 of the body, falling back to the handoff id."""
        for line in self.body.splitlines():
            if line.startswith("# "):
                return line[2:].strip()
        return self.handoff_id


@dataclass
class ExtractedRequirement:
    """An actionable item mined from a handoff.

    category, priority, tests and files are advisory: they are not
    recovered when a plan is parsed back from markdown.
    """
    id: str                                    # REQ-001
    description: str
    source: str                                # requires[0], acceptance[1], body:L12
    category: Optional[str] = None
    priority: Optional[int] = None
    completed: bool = False
    tests: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)


@dataclass
class PlanFrontmatter:
    handoff_id: str
    source_handoff: str                        # Path of the handoff file
    status: str                                # pending, in_progress, testing, review, done, blocked
    created_at: str
    updated_at: str
    requirements_total: int
    requirements_done: int
    breaking_change: bool = False

    def to_dict(self) -> dict:
        return {
            "handoff_id": self.handoff_id,
            "source_handoff": self.source_handoff,
            "status": self.status,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "requirements_total": self.requirements_total,
            "requirements_done": self.requirements_done,
            "breaking_change": self.breaking_change,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PlanFrontmatter":
        return cls(
            handoff_id=str(data.get("handoff_id") or ""),
            source_handoff=str(data.get("source_handoff") or ""),
            status=str(data.get("status") or "pending"),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or ""),
            requirements_total=int(data.get("requirements_total") or 0),
            requirements_done=int(data.get("requirements_done") or 0),
            breaking_change=bool(data.get("breaking_change", False)),
        )


@dataclass
class TestPlanEntry:
    requirement_id: str | None                 # None for handoff-level verification steps
    description: str

    __test__ = False                           # Not a pytest class


@dataclass
class ConsumptionPlan:
    frontmatter: PlanFrontmatter
    summary: str
    requirements: list[ExtractedRequirement] = field(default_factory=list)
    risks: list[str] = field(default_factory=list)
    test_plan: list[TestPlanEntry] = field(default_factory=list)
    impacted_files: dict[str, list[str]] = field(default_factory=dict)  # path -> REQ ids


@dataclass
class CommitInfo:
    sha: str
    subject: str


@dataclass
class ChangeSummary:
    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0
    files: list[str] = field(default_factory=list)


@dataclass
class VerificationResult:
    """Outcome of one external verification command."""
    name: str
    command: str
    passed: bool
    output: str = ""
    timed_out: bool = False


@dataclass
class ConsumptionReport:
    """Terminal artifact written once at closure or block."""
    handoff_id: str
    status: str                                # done, blocked
    completed_at: str
    requirements: list[ExtractedRequirement] = field(default_factory=list)
    verification: list[VerificationResult] = field(default_factory=list)
    commits: list[CommitInfo] = field(default_factory=list)
    changes: ChangeSummary = field(default_factory=ChangeSummary)
    related_prs: list[str] = field(default_factory=list)
    blocker_handoff: Optional[str] = None
    blocker_reason: Optional[str] = None

    @property
    def related_commits(self) -> list[str]:
        return [c.sha for c in self.commits]
