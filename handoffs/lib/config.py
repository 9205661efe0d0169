"""
Configuration loader for the handoff engine.

Loads handoff.yaml from the repository root. Every key is optional; a
missing file gives the defaults below.

Example handoff.yaml:

    repo: pidicon-dashboard
    handoffs_dir: docs/handoffs
    plans_dir: docs/handoffs/plans
    reports_dir: docs/handoffs/reports
    state_file: .handoff-state.json
    verification:
      timeout: 600
      commands:
        - name: unit
          run: npm test
        - name: typecheck
          run: npx tsc --noEmit
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "handoff.yaml"
REPO_ENV_VAR = "HANDOFF_REPO"

DEFAULT_HANDOFFS_DIR = "docs/handoffs"
DEFAULT_PLANS_DIR = "docs/handoffs/plans"
DEFAULT_REPORTS_DIR = "docs/handoffs/reports"
DEFAULT_STATE_FILE = ".handoff-state.json"
DEFAULT_VERIFY_TIMEOUT = 600


@dataclass
class VerificationCommand:
    name: str
    run: str  # Shell-style command line, split with shlex


@dataclass
class HandoffConfig:
    """Repository-level configuration from handoff.yaml"""
    root: Path
    repo: str  # Local repo identity used in from_repo/to_repo
    handoffs_dir: Path
    plans_dir: Path
    reports_dir: Path
    state_file: Path
    verify_commands: list[VerificationCommand] = field(default_factory=list)
    verify_timeout: int = DEFAULT_VERIFY_TIMEOUT

    @property
    def outgoing_dir(self) -> Path:
        return self.handoffs_dir / "outgoing"

    @property
    def generated_dirs(self) -> list[Path]:
        """Directories under handoffs_dir that hold engine output, not handoffs."""
        return [self.plans_dir, self.reports_dir]


def _resolve(root: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else root / path


def _parse_commands(raw) -> list[VerificationCommand]:
    commands = []
    for i, item in enumerate(raw or []):
        if isinstance(item, str):
            commands.append(VerificationCommand(name=f"check-{i + 1}", run=item))
        elif isinstance(item, dict) and item.get("run"):
            commands.append(VerificationCommand(name=str(item.get("name") or f"check-{i + 1}"), run=str(item["run"])))
        else:
            logger.warning(f"Ignoring verification command {i + 1}: expected a string or {{name, run}}")
    return commands


def load_config(root: Path) -> HandoffConfig:
    """Load handoff.yaml under root and return HandoffConfig.

    If the file doesn't exist or can't be parsed, returns defaults.
    """
    root = root.resolve()
    data: dict = {}

    config_path = root / CONFIG_FILENAME
    if config_path.exists():
        try:
            loaded = yaml.safe_load(config_path.read_text())
            if isinstance(loaded, dict):
                data = loaded
            elif loaded is not None:
                logger.warning(f"Ignoring {config_path}: expected a mapping")
        except yaml.YAMLError as e:
            logger.warning(f"Failed to parse {config_path}: {e}")

    verification = data.get("verification") or {}
    if not isinstance(verification, dict):
        logger.warning(f"Ignoring 'verification' in {config_path}: expected a mapping")
        verification = {}

    try:
        timeout = int(verification.get("timeout", DEFAULT_VERIFY_TIMEOUT))
    except (TypeError, ValueError):
        logger.warning(f"Invalid verification timeout in {config_path}, using {DEFAULT_VERIFY_TIMEOUT}s")
        timeout = DEFAULT_VERIFY_TIMEOUT

    repo = os.environ.get(REPO_ENV_VAR) or str(data.get("repo") or root.name)

    return HandoffConfig(
        root=root,
        repo=repo,
        handoffs_dir=_resolve(root, str(data.get("handoffs_dir", DEFAULT_HANDOFFS_DIR))),
        plans_dir=_resolve(root, str(data.get("plans_dir", DEFAULT_PLANS_DIR))),
        reports_dir=_resolve(root, str(data.get("reports_dir", DEFAULT_REPORTS_DIR))),
        state_file=_resolve(root, str(data.get("state_file", DEFAULT_STATE_FILE))),
        verify_commands=_parse_commands(verification.get("commands")),
        verify_timeout=timeout,
    )
