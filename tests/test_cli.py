"""Tests for the hf command line."""

from unittest.mock import patch

import pytest

from handoffs.cli import main
from handoffs.git.runner import CommandResult
from handoffs.lib.frontmatter import split_frontmatter
from handoffs.lib.models import ChangeSummary

HANDOFF_ID = "031-add-devices-route"


def hf(repo_root, *args):
    return main(["--root", str(repo_root), *args])


@pytest.fixture
def no_history():
    with patch("handoffs.workflow.closure.get_commits_since", return_value=[]), \
            patch("handoffs.workflow.closure.get_change_summary", return_value=ChangeSummary()):
        yield


class TestCheck:
    def test_clean_corpus(self, repo_root, write_handoff, capsys):
        write_handoff()
        assert hf(repo_root, "check") == 0
        assert "no problems" in capsys.readouterr().out

    def test_problems_exit_1(self, repo_root, write_handoff, capsys):
        write_handoff(status="finished")
        assert hf(repo_root, "check") == 1
        out = capsys.readouterr().out
        assert "invalid_status" in out


class TestDetect:
    def test_reports_new_then_nothing(self, config, repo_root, write_handoff, capsys):
        write_handoff()
        assert hf(repo_root, "detect") == 0
        assert HANDOFF_ID in capsys.readouterr().out
        assert config.state_file.exists()

        assert hf(repo_root, "detect") == 0
        assert "No new handoffs" in capsys.readouterr().out


class TestConsumeFlow:
    """plan -> complete -> close through the CLI."""

    def test_full_flow(self, config, repo_root, write_handoff, capsys, no_history):
        path = write_handoff()

        assert hf(repo_root, "plan", HANDOFF_ID) == 0
        assert "REQ-001" in capsys.readouterr().out

        assert hf(repo_root, "complete", HANDOFF_ID, "REQ-001", "REQ-002", "REQ-003") == 0
        assert "plan is testing" in capsys.readouterr().out

        assert hf(repo_root, "list") == 0
        assert "testing 3/3" in capsys.readouterr().out

        assert hf(repo_root, "close", HANDOFF_ID) == 0
        assert "Closed" in capsys.readouterr().out

        data, _ = split_frontmatter(path.read_text())
        assert data["status"] == "done"

    def test_second_plan_refused(self, repo_root, write_handoff, capsys):
        write_handoff()
        hf(repo_root, "plan", HANDOFF_ID)
        capsys.readouterr()
        assert hf(repo_root, "plan", HANDOFF_ID) == 1
        assert "ERROR: Plan already exists" in capsys.readouterr().out

    def test_unknown_requirement(self, repo_root, write_handoff, capsys):
        write_handoff()
        hf(repo_root, "plan", HANDOFF_ID)
        assert hf(repo_root, "complete", HANDOFF_ID, "REQ-099") == 1
        assert "REQ-099" in capsys.readouterr().out

    def test_failed_verification(self, repo_root, write_handoff, capsys, no_history):
        (repo_root / "handoff.yaml").write_text(
            "repo: dashboard\nverification:\n  commands:\n    - name: unit\n      run: npm test\n"
        )
        write_handoff()
        hf(repo_root, "plan", HANDOFF_ID)
        hf(repo_root, "complete", HANDOFF_ID, "REQ-001", "REQ-002", "REQ-003")
        capsys.readouterr()

        with patch("handoffs.lib.verify.run_command") as mock_run:
            mock_run.return_value = CommandResult(returncode=1, stdout="", stderr="1 failing")
            assert hf(repo_root, "close", HANDOFF_ID) == 1

        out = capsys.readouterr().out
        assert "[FAIL] unit" in out
        assert "1 failing" in out

    def test_block(self, config, repo_root, write_handoff, capsys, no_history):
        write_handoff()
        hf(repo_root, "plan", HANDOFF_ID)
        assert hf(repo_root, "block", HANDOFF_ID, "--reason", "Backend 500s") == 0
        assert (config.outgoing_dir / "032-blocked-add-devices-route.md").exists()


class TestStatusCommands:
    def test_illegal_handoff_status(self, repo_root, write_handoff, capsys):
        write_handoff(status="done")
        assert hf(repo_root, "status", HANDOFF_ID, "new") == 1
        assert "invalid_transition" in capsys.readouterr().out

    def test_plan_status(self, repo_root, write_handoff, capsys):
        write_handoff()
        hf(repo_root, "plan", HANDOFF_ID)
        assert hf(repo_root, "plan-status", HANDOFF_ID, "in_progress") == 0
        assert hf(repo_root, "plan-status", HANDOFF_ID, "done") == 0
        assert hf(repo_root, "plan-status", HANDOFF_ID, "pending") == 1
        assert "Invalid transition" in capsys.readouterr().out


class TestUsage:
    def test_missing_root(self, tmp_path, capsys):
        assert main(["--root", str(tmp_path / "nope"), "list"]) == 2
        assert "not a directory" in capsys.readouterr().out

    def test_unknown_handoff(self, repo_root, capsys):
        assert hf(repo_root, "plan", "099-missing") == 1
        assert "ERROR: Handoff '099-missing' not found" in capsys.readouterr().out

    def test_block_requires_reason(self, repo_root):
        with pytest.raises(SystemExit) as exc_info:
            hf(repo_root, "block", HANDOFF_ID)
        assert exc_info.value.code == 2
