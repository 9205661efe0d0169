"""
Shared data types for the handoff engine.

This module contains types used across multiple modules to avoid
circular imports.
"""

from dataclasses import dataclass
from datetime import datetime, timezone


class HandoffError(Exception):
    """Base class for failures that halt a single handoff operation."""


@dataclass
class ValidationError:
    """A single problem found in a handoff document.

    A result value, not an exception: validators return lists of these
    so every problem in every file can be reported in one pass.
    """
    file: str
    message: str
    code: str
    field: str | None = None

    def __str__(self) -> str:
        location = f"{self.file} [{self.field}]" if self.field else self.file
        return f"{location}: {self.message} ({self.code})"


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string, second precision."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")
