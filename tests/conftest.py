"""Shared fixtures: a throwaway repository with a handoff corpus."""

import pytest

from handoffs.lib.config import load_config
from handoffs.lib.frontmatter import render_frontmatter

DEFAULT_ID = "031-add-devices-route"

DEFAULT_BODY = """# Add devices route

The backend now serves device listings.

- [ ] Add logging and telemetry for device failures
"""


@pytest.fixture
def repo_root(tmp_path):
    """Repository root with a handoff.yaml naming it 'dashboard'."""
    root = tmp_path / "dashboard"
    root.mkdir()
    (root / "handoff.yaml").write_text("repo: dashboard\n")
    return root


@pytest.fixture
def config(repo_root, monkeypatch):
    monkeypatch.delenv("HANDOFF_REPO", raising=False)
    return load_config(repo_root)


@pytest.fixture
def write_handoff(config):
    """Factory writing a handoff document under handoffs_dir/<direction>/."""

    def _write(handoff_id=DEFAULT_ID, body=DEFAULT_BODY, **fields):
        data = {
            "handoff_id": handoff_id,
            "direction": "incoming",
            "from_repo": "backend",
            "to_repo": config.repo,
            "created_at": "2026-01-05T09:00:00+00:00",
            "status": "new",
            "requires": [{"type": "api", "description": "Add GET /api/devices endpoint"}],
            "acceptance": ["Dashboard page renders devices"],
        }
        data.update(fields)
        directory = config.handoffs_dir / data["direction"]
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{handoff_id}.md"
        path.write_text(render_frontmatter(data, body))
        return path

    return _write
