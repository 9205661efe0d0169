"""
YAML frontmatter codec for handoff, plan and report documents.

A document is a `---` line, a YAML mapping, a closing `---` line, then
a markdown body.
"""

from datetime import date, datetime

import yaml

from handoffs.lib.types import HandoffError

DELIMITER = "---"


class FrontmatterError(HandoffError):
    """Document has no usable YAML frontmatter."""


def split_frontmatter(text: str) -> tuple[dict, str]:
    """Split a document into (frontmatter, body).

    Raises:
        FrontmatterError: if the delimiters are missing or the YAML is not a mapping
    """
    lines = text.splitlines()
    if not lines or lines[0].strip() != DELIMITER:
        raise FrontmatterError("Missing opening '---' frontmatter delimiter")

    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() == DELIMITER:
            end = i
            break
    if end is None:
        raise FrontmatterError("Missing closing '---' frontmatter delimiter")

    try:
        data = yaml.safe_load("\n".join(lines[1:end]))
    except yaml.YAMLError as e:
        raise FrontmatterError(f"Invalid YAML frontmatter: {e}") from None

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontmatterError(f"Frontmatter must be a mapping, got {type(data).__name__}")

    body = "\n".join(lines[end + 1:])
    if text.endswith("\n") and body:
        body += "\n"
    return _normalize(data), body


def _normalize(value):
    """Convert YAML date/datetime scalars back to ISO strings."""
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def render_frontmatter(data: dict, body: str) -> str:
    """Render frontmatter and body back into a document.

    The body is written exactly as given so that a frontmatter-only
    update leaves its content hash alone.
    """
    header = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return f"{DELIMITER}\n{header}{DELIMITER}\n{body}"


def update_frontmatter(text: str, updates: dict) -> str:
    """Apply key updates to a document's frontmatter, keeping its body.

    A value of None removes the key.
    """
    data, body = split_frontmatter(text)
    for key, value in updates.items():
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
    return render_frontmatter(data, body)
