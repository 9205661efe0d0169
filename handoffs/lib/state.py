"""
Change detection across runs.

Keeps a content-hash map of every handoff seen on the previous run in a
JSON state file. The state is a cache: losing it only means every
handoff is reported as new again, so read and write failures are
logged and never raised.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from handoffs.lib.constants import STATE_VERSION
from handoffs.lib.models import HandoffDocument
from handoffs.lib.types import now_iso
from handoffs.lib.validate import SchemaError, validate

logger = logging.getLogger(__name__)

HASH_LENGTH = 12


@dataclass
class SeenEntry:
    status: str
    last_seen: str
    content_hash: str


@dataclass
class HandoffState:
    version: int = STATE_VERSION
    last_run: Optional[str] = None
    seen: dict[str, SeenEntry] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "lastRun": self.last_run,
            "seen": {
                handoff_id: {
                    "status": entry.status,
                    "lastSeen": entry.last_seen,
                    "contentHash": entry.content_hash,
                }
                for handoff_id, entry in self.seen.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HandoffState":
        seen = {}
        for handoff_id, entry in data.get("seen", {}).items():
            seen[handoff_id] = SeenEntry(
                status=entry.get("status", ""),
                last_seen=entry.get("lastSeen", ""),
                content_hash=entry["contentHash"],
            )
        return cls(
            version=data.get("version", STATE_VERSION),
            last_run=data.get("lastRun"),
            seen=seen,
        )


class StateStore:
    """Where detection state lives between runs."""

    def load(self) -> HandoffState:
        raise NotImplementedError

    def save(self, state: HandoffState) -> None:
        raise NotImplementedError


class MemoryStateStore(StateStore):
    """In-process store, mainly for tests and dry runs."""

    def __init__(self, state: HandoffState | None = None):
        self.state = state

    def load(self) -> HandoffState:
        if self.state is None:
            return HandoffState()
        return HandoffState.from_dict(self.state.to_dict())

    def save(self, state: HandoffState) -> None:
        self.state = HandoffState.from_dict(state.to_dict())


class FileStateStore(StateStore):
    """JSON file store (.handoff-state.json)."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> HandoffState:
        """Load state. Never fails.

        A missing file is a fresh start. A corrupt file is reported and
        treated as empty. An unknown version is reported and still used.
        """
        if not self.path.exists():
            return HandoffState()

        try:
            data = json.loads(self.path.read_text())
            validate(data, "state")
        except (json.JSONDecodeError, UnicodeDecodeError, OSError, SchemaError) as e:
            logger.warning(f"[STATE] Ignoring unreadable state file {self.path}: {e}")
            return HandoffState()

        version = data.get("version")
        if version != STATE_VERSION:
            logger.warning(
                f"[STATE] State file {self.path} has version {version}, expected {STATE_VERSION}; "
                "loading anyway"
            )
        return HandoffState.from_dict(data)

    def save(self, state: HandoffState) -> None:
        """Persist state. Write failures are logged and swallowed."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(state.to_dict(), indent=2) + "\n")
        except OSError as e:
            logger.warning(f"[STATE] Failed to save state to {self.path}: {e}")


def content_hash(body: str) -> str:
    """Short SHA-256 digest of a document body."""
    return hashlib.sha256(body.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def is_new_since_last_run(doc: HandoffDocument, state: HandoffState) -> bool:
    """New iff the id was never seen or its body changed since."""
    entry = state.seen.get(doc.handoff_id)
    if entry is None:
        return True
    return entry.content_hash != content_hash(doc.body)


def find_new_handoffs(docs: list[HandoffDocument], state: HandoffState) -> list[HandoffDocument]:
    """Documents that are new or edited since the state was saved."""
    return [doc for doc in docs if is_new_since_last_run(doc, state)]


def build_state(docs: list[HandoffDocument], now: str | None = None) -> HandoffState:
    """Snapshot of the current corpus.

    Replaces the previous state wholesale: ids no longer present are
    dropped.
    """
    now = now or now_iso()
    return HandoffState(
        version=STATE_VERSION,
        last_run=now,
        seen={
            doc.handoff_id: SeenEntry(
                status=doc.status,
                last_seen=now,
                content_hash=content_hash(doc.body),
            )
            for doc in docs
        },
    )


@dataclass
class DetectionResult:
    new: list[HandoffDocument] = field(default_factory=list)
    unchanged: list[HandoffDocument] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    previous_run: Optional[str] = None


def detect_changes(
    docs: list[HandoffDocument],
    store: StateStore,
    now: str | None = None,
) -> DetectionResult:
    """Classify documents against the previous run, then save the new state."""
    previous = store.load()

    new = find_new_handoffs(docs, previous)
    new_ids = {id(d) for d in new}
    current_ids = {d.handoff_id for d in docs}

    result = DetectionResult(
        new=new,
        unchanged=[d for d in docs if id(d) not in new_ids],
        removed=sorted(h for h in previous.seen if h not in current_ids),
        previous_run=previous.last_run,
    )

    store.save(build_state(docs, now))
    logger.info(
        f"[STATE] {len(result.new)} new, {len(result.unchanged)} unchanged, "
        f"{len(result.removed)} removed since {previous.last_run or 'first run'}"
    )
    return result
