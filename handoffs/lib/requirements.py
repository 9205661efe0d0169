"""
Requirement extraction and categorization.

Mines actionable items from a handoff's frontmatter arrays and body
text, then scores each against a fixed keyword table to pick a category
and priority.

Extraction order: requires[], then acceptance[], then body matches,
each in source order. Results are stable-sorted by priority, so ties
keep that order.
"""

import re
from dataclasses import dataclass

from handoffs.lib.models import ExtractedRequirement, HandoffDocument

# Body patterns. Checked in this order; a line is mined at most once.
CHECKLIST_RE = re.compile(r'^\s*[-*]\s+\[([ xX])\]\s+(.+?)\s*$')
NUMBERED_RE = re.compile(r'^\s*\d+[.)]\s+(.+?)\s*$')
MODAL_RE = re.compile(r'\b(must|should|shall|need)', re.IGNORECASE)
PREFIX_RE = re.compile(r'^\s*(?:Requirement|REQ|Task|TODO|Action):\s*(.+?)\s*$', re.IGNORECASE)

FRONTMATTER_DELIMITER = "---"

DEFAULT_CATEGORY = "api_client"

# Category -> keywords, in tie-break order. Matching is case-insensitive
# substring, one hit per keyword.
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "api_client": (
        "api", "endpoint", "route", "client", "request", "response",
        "fetch", "http", "websocket", "server-sent",
    ),
    "schema": (
        "schema", "interface", "type definition", "typescript type", "field",
        "payload", "contract", "zod", "dto", "model", "enum",
    ),
    "ui": (
        "component", "page", "button", "dashboard", "render", "layout",
        "modal", "display", "screen", "toast", "hook",
    ),
    "logging": (
        "logging", "logger", "log level", "telemetry", "tracing", "metrics",
        "observability", "audit", "console.",
    ),
    "testing": (
        "tests", "testing", "test case", "unit test", "e2e", "coverage",
        "playwright", "vitest", "mock", "fixture",
    ),
    "deployment": (
        "deploy", "release", "docker", "pipeline", "ci/cd", "environment variable",
        "build", "nix", "rollout", "systemd",
    ),
}

CATEGORY_ORDER = list(CATEGORY_KEYWORDS)

CATEGORY_PRIORITY = {
    "api_client": 1,
    "schema": 2,
    "ui": 3,
    "logging": 4,
    "testing": 5,
    "deployment": 6,
}

# Advisory follow-ups per category. Fixed lookup, not derived from text.
CATEGORY_TESTS: dict[str, tuple[str, ...]] = {
    "api_client": (
        "Unit test API client request and response mapping",
        "Verify error responses surface to callers",
    ),
    "schema": (
        "Type-check updated type definitions",
        "Parse sample payloads against the new schema",
    ),
    "ui": (
        "Component renders the new state",
        "Manual check on the dashboard",
    ),
    "logging": (
        "Verify log output for the new events",
    ),
    "testing": (
        "Run the new tests in CI",
    ),
    "deployment": (
        "Smoke test the build artifact",
        "Verify deployment configuration",
    ),
}

CATEGORY_FILES: dict[str, tuple[str, ...]] = {
    "api_client": ("src/infrastructure/api/", "src/application/hooks/"),
    "schema": ("src/domain/types/",),
    "ui": ("src/components/", "src/pages/"),
    "logging": ("src/infrastructure/logging/",),
    "testing": ("tests/",),
    "deployment": ("scripts/", "flake.nix"),
}


def score_categories(description: str) -> dict[str, int]:
    """Count keyword hits per category."""
    text = description.lower()
    return {
        category: sum(1 for kw in keywords if kw in text)
        for category, keywords in CATEGORY_KEYWORDS.items()
    }


def categorize_requirement(description: str) -> str:
    """Pick the highest-scoring category.

    Ties, including no matches at all, go to the earliest category in
    CATEGORY_ORDER.
    """
    scores = score_categories(description)
    best = DEFAULT_CATEGORY
    best_score = scores[best]
    for category in CATEGORY_ORDER:
        if scores[category] > best_score:
            best = category
            best_score = scores[category]
    return best


def get_priority(category: str) -> int:
    return CATEGORY_PRIORITY[category]


@dataclass
class _Candidate:
    description: str
    source: str


def _requires_candidates(requires: list) -> list[_Candidate]:
    candidates = []
    for i, item in enumerate(requires):
        if isinstance(item, dict):
            description = str(item.get("description") or "").strip()
        else:
            description = str(item).strip()
        if description:
            candidates.append(_Candidate(description, f"requires[{i}]"))
    return candidates


def _acceptance_candidates(acceptance: list) -> list[_Candidate]:
    candidates = []
    for i, item in enumerate(acceptance):
        description = str(item).strip()
        if description:
            candidates.append(_Candidate(description, f"acceptance[{i}]"))
    return candidates


def match_body_line(line: str) -> str | None:
    """Return the requirement text if a body line is actionable."""
    match = CHECKLIST_RE.match(line)
    if match:
        return match.group(2)

    match = NUMBERED_RE.match(line)
    if match and MODAL_RE.search(match.group(1)):
        return match.group(1)

    match = PREFIX_RE.match(line)
    if match:
        return match.group(1)

    return None


def extract_body_candidates(body: str) -> list[_Candidate]:
    """Mine checklist, numbered-modal and prefixed lines from the body."""
    candidates = []
    for lineno, line in enumerate(body.splitlines(), 1):
        if line.strip() == FRONTMATTER_DELIMITER:
            continue
        text = match_body_line(line)
        if text:
            candidates.append(_Candidate(text, f"body:L{lineno}"))
    return candidates


def format_requirement_id(n: int) -> str:
    return f"REQ-{n:03d}"


def build_requirement(req_id: str, description: str, source: str) -> ExtractedRequirement:
    description = " ".join(description.split())
    category = categorize_requirement(description)
    return ExtractedRequirement(
        id=req_id,
        description=description,
        source=source,
        category=category,
        priority=get_priority(category),
        completed=False,
        tests=list(CATEGORY_TESTS[category]),
        files=list(CATEGORY_FILES[category]),
    )


def parse_handoff_to_requirements(doc: HandoffDocument) -> list[ExtractedRequirement]:
    """Extract, categorize and prioritize a handoff's requirements.

    IDs are assigned REQ-001.. in extraction order, before sorting, and
    restart at 001 on every call.
    """
    fm = doc.frontmatter
    candidates = (
        _requires_candidates(fm.requires)
        + _acceptance_candidates(fm.acceptance)
        + extract_body_candidates(doc.body)
    )

    requirements = [
        build_requirement(format_requirement_id(i), c.description, c.source)
        for i, c in enumerate(candidates, 1)
    ]
    return sorted(requirements, key=lambda r: r.priority)
