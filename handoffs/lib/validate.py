"""
Validation for handoff documents and the files the engine writes.

Document checks never raise: every problem comes back as a
ValidationError so one bad file cannot stop the others from being
checked. Writes of plans and state are guarded by JSON Schema and fail
hard, since the engine must never produce invalid data itself.
"""

import json
from collections import defaultdict
from pathlib import Path
from typing import Any

import jsonschema

from handoffs.lib.constants import HANDOFF_STATUSES
from handoffs.lib.models import HandoffDocument
from handoffs.lib.types import HandoffError, ValidationError
from handoffs.workflow.fsm import HANDOFF_ALLOWED


class SchemaError(HandoffError):
    """Schema validation failed."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


# Cache loaded schemas
_schema_cache: dict[str, dict] = {}


def _get_schemas_dir() -> Path:
    """Get path to schemas directory."""
    return Path(__file__).parent.parent / "schemas"


def _load_schema(schema_name: str) -> dict:
    """Load schema by name, with caching."""
    if schema_name not in _schema_cache:
        schema_path = _get_schemas_dir() / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise SchemaError(schema_name, f"Schema file not found: {schema_path}")
        _schema_cache[schema_name] = json.loads(schema_path.read_text())
    return _schema_cache[schema_name]


def validate(data: dict, schema_name: str) -> None:
    """
    Validate data against named schema.

    Args:
        data: Dictionary to validate
        schema_name: Schema name (e.g., "handoff", "plan", "state")

    Raises:
        SchemaError: If validation fails
    """
    schema = _load_schema(schema_name)

    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else "(root)"
        raise SchemaError(schema_name, e.message, path) from None


def validate_before_write(data: dict, schema_name: str, filepath: Path) -> None:
    """
    Validate data before writing to file. Ensures we never write invalid data.

    Raises:
        SchemaError: If data doesn't match schema
    """
    try:
        validate(data, schema_name)
    except SchemaError as e:
        raise SchemaError(
            schema_name,
            f"Refusing to write invalid data to {filepath}: {e}"
        ) from None


# ─────────────────────────────────────────────────────────────────────────────
# Handoff document checks
# ─────────────────────────────────────────────────────────────────────────────

def _error_code(error: jsonschema.ValidationError) -> str:
    """Map a jsonschema failure to a stable error code."""
    field = error.absolute_path[0] if error.absolute_path else None
    if error.validator == "required":
        return "missing_field"
    if error.validator == "pattern" and field == "handoff_id":
        return "invalid_id_format"
    if error.validator == "enum" and field == "status":
        return "invalid_status"
    if error.validator == "enum" and field == "direction":
        return "invalid_direction"
    if error.validator == "type":
        return "invalid_type"
    return "invalid_value"


def check_shape(frontmatter: dict, file: str) -> list[ValidationError]:
    """Check required fields, id format, enums and field types.

    Collects every schema violation rather than stopping at the first.
    """
    schema = _load_schema("handoff")
    validator = jsonschema.Draft7Validator(schema)
    errors = []
    reported_missing: set[str] = set()

    for e in sorted(validator.iter_errors(frontmatter), key=lambda e: [str(p) for p in e.absolute_path]):
        code = _error_code(e)

        if code == "missing_field":
            for name in e.validator_value:
                if name not in e.instance and name not in reported_missing:
                    reported_missing.add(name)
                    errors.append(ValidationError(
                        file=file,
                        field=name,
                        message=f"Missing required field '{name}'",
                        code=code,
                    ))
            continue

        field = ".".join(str(p) for p in e.absolute_path) or None
        if code == "invalid_id_format":
            message = f"handoff_id '{e.instance}' must match NNN-slug (e.g. 031-add-route)"
        elif code == "invalid_status":
            message = f"Invalid status '{e.instance}'. Must be one of: {', '.join(HANDOFF_STATUSES)}"
        elif code == "invalid_direction":
            message = f"Invalid direction '{e.instance}'. Must be 'incoming' or 'outgoing'"
        else:
            message = e.message
        errors.append(ValidationError(file=file, field=field, message=message, code=code))

    return errors


def check_direction(frontmatter: dict, file: str, local_repo: str) -> list[ValidationError]:
    """Outgoing handoffs come from us; incoming handoffs are addressed to us."""
    errors = []
    direction = frontmatter.get("direction")

    if direction == "outgoing" and frontmatter.get("from_repo") != local_repo:
        errors.append(ValidationError(
            file=file,
            field="from_repo",
            message=(
                f"Outgoing handoff must have from_repo '{local_repo}', "
                f"got '{frontmatter.get('from_repo')}'"
            ),
            code="invalid_from_repo",
        ))

    if direction == "incoming" and frontmatter.get("to_repo") != local_repo:
        errors.append(ValidationError(
            file=file,
            field="to_repo",
            message=(
                f"Incoming handoff must have to_repo '{local_repo}', "
                f"got '{frontmatter.get('to_repo')}'"
            ),
            code="invalid_to_repo",
        ))

    return errors


def validate_document(doc: HandoffDocument, local_repo: str) -> list[ValidationError]:
    """Run every per-document check. Checks are independent."""
    file = str(doc.file_path)
    return check_shape(doc.raw, file) + check_direction(doc.raw, file, local_repo)


def find_duplicate_ids(docs: list[HandoffDocument]) -> list[ValidationError]:
    """Flag every file that shares its handoff_id with another file.

    Each member of a duplicate group gets its own error naming the
    other files, so all of them can be fixed from one report.
    """
    groups: dict[str, list[HandoffDocument]] = defaultdict(list)
    for doc in docs:
        if doc.handoff_id:
            groups[doc.handoff_id].append(doc)

    errors = []
    for handoff_id, members in groups.items():
        if len(members) < 2:
            continue
        for doc in members:
            siblings = [str(d.file_path) for d in members if d is not doc]
            errors.append(ValidationError(
                file=str(doc.file_path),
                field="handoff_id",
                message=f"Duplicate handoff_id '{handoff_id}' also used in: {', '.join(siblings)}",
                code="duplicate_id",
            ))
    return errors


def validate_corpus(docs: list[HandoffDocument], local_repo: str) -> list[ValidationError]:
    """Validate every document and the corpus as a whole."""
    errors = []
    for doc in docs:
        errors.extend(validate_document(doc, local_repo))
    errors.extend(find_duplicate_ids(docs))
    return errors


def valid_documents(docs: list[HandoffDocument], errors: list[ValidationError]) -> list[HandoffDocument]:
    """Documents that have no errors against them."""
    bad_files = {e.file for e in errors}
    return [d for d in docs if str(d.file_path) not in bad_files]


def validate_status_transition(
    from_status: str,
    to_status: str,
    file: str = "",
    handoff_id: str = "",
) -> list[ValidationError]:
    """Check a handoff status move against the handoff transition table.

    Identity moves are always legal. Returns an empty list when the
    move is allowed; never raises.
    """
    if from_status == to_status:
        return []

    if from_status not in HANDOFF_STATUSES:
        return [ValidationError(
            file=file,
            field="status",
            message=f"Current status '{from_status}' is not a known status; fix the document first",
            code="invalid_status",
        )]

    if to_status not in HANDOFF_STATUSES:
        return [ValidationError(
            file=file,
            field="status",
            message=f"Invalid status '{to_status}'. Must be one of: {', '.join(HANDOFF_STATUSES)}",
            code="invalid_status",
        )]

    allowed = HANDOFF_ALLOWED.get(from_status, frozenset())
    if to_status in allowed:
        return []

    allowed_str = ", ".join(sorted(allowed)) if allowed else "none (terminal state)"
    subject = f" for {handoff_id}" if handoff_id else ""
    return [ValidationError(
        file=file,
        field="status",
        message=(
            f"Invalid status transition{subject}: {from_status} -> {to_status}. "
            f"Allowed from '{from_status}': {allowed_str}"
        ),
        code="invalid_transition",
    )]


def format_errors(errors: list[ValidationError]) -> list[str]:
    """Format errors as list of lines for display."""
    return [f"  {e}" for e in errors]


def as_dict(error: ValidationError) -> dict[str, Any]:
    return {"file": error.file, "field": error.field, "message": error.message, "code": error.code}
