"""
Handoff document discovery.

Globs the handoffs directory for markdown files and parses each into a
HandoffDocument. Malformed files are reported, not raised.
"""

import logging
from pathlib import Path

from handoffs.lib.frontmatter import FrontmatterError, split_frontmatter
from handoffs.lib.models import HandoffDocument
from handoffs.lib.types import HandoffError, ValidationError

logger = logging.getLogger(__name__)

SKIP_NAMES = {"README.md", "INDEX.md"}


class HandoffNotFoundError(HandoffError):
    """No handoff document with the requested id."""


def load_handoff(path: Path) -> HandoffDocument:
    """Parse a single handoff file.

    Raises:
        FrontmatterError: if the frontmatter is missing or invalid
    """
    raw, body = split_frontmatter(path.read_text())
    return HandoffDocument(raw=raw, body=body, file_path=path)


def iter_handoff_paths(handoffs_dir: Path, exclude: list[Path] | None = None) -> list[Path]:
    """List candidate handoff files, sorted, skipping excluded directories."""
    if not handoffs_dir.exists():
        return []

    excluded = [p.resolve() for p in (exclude or [])]
    paths = []
    for path in sorted(handoffs_dir.rglob("*.md")):
        if path.name in SKIP_NAMES:
            continue
        resolved = path.resolve()
        if any(resolved.is_relative_to(ex) for ex in excluded):
            continue
        paths.append(path)
    return paths


def load_handoffs(
    handoffs_dir: Path,
    exclude: list[Path] | None = None,
) -> tuple[list[HandoffDocument], list[ValidationError]]:
    """Load every handoff under handoffs_dir.

    Returns:
        (documents, errors) where errors holds one malformed_frontmatter
        entry per file that could not be parsed or decoded
    """
    documents = []
    errors = []
    for path in iter_handoff_paths(handoffs_dir, exclude):
        try:
            documents.append(load_handoff(path))
        except FrontmatterError as e:
            errors.append(ValidationError(file=str(path), message=str(e), code="malformed_frontmatter"))
        except UnicodeDecodeError as e:
            errors.append(ValidationError(file=str(path), message=f"Not valid UTF-8: {e}", code="malformed_frontmatter"))
        except OSError as e:
            logger.warning(f"Failed to read {path}: {e}")
            errors.append(ValidationError(file=str(path), message=f"Unreadable file: {e}", code="unreadable"))
    return documents, errors


def find_handoff(documents: list[HandoffDocument], handoff_id: str) -> HandoffDocument:
    """Return the document with the given id.

    Raises:
        HandoffNotFoundError: if no document has that id
    """
    for doc in documents:
        if doc.handoff_id == handoff_id:
            return doc
    raise HandoffNotFoundError(f"Handoff '{handoff_id}' not found")
