"""Shared fixtures for the AI workflow kit tests."""

import json
import shutil
import subprocess
from pathlib import Path

import pytest

from aiworkflow.models import ContextDocument, Constraint, KeyDecision, LearnedPattern, TechnicalArtifact
from aiworkflow.workflow_logging import observability_hooks, performance_monitor


@pytest.fixture(autouse=True)
def _reset_observability():
    """Keep metrics and hooks from leaking between tests."""
    performance_monitor.clear()
    saved_hooks = {k: list(v) for k, v in observability_hooks.hooks.items()}
    yield
    performance_monitor.clear()
    observability_hooks.hooks.clear()
    observability_hooks.hooks.update(saved_hooks)


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "GITHUB_TOKEN", "GITHUB_OWNER", "GITHUB_REPO", "GITHUB_REPOSITORY", "GITHUB_ACTIONS",
        "GITHUB_OUTPUT", "AIWORKFLOW_PROJECT_ROOT", "AIWORKFLOW_TEMPLATE_ROOT",
        "AIWORKFLOW_LOG_LEVEL", "AIWORKFLOW_LOG_FILE", "SLACK_WEBHOOK_URL", "TEAMS_WEBHOOK_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def project_dir(tmp_path, clean_env):
    """A small Node.js project with a package.json and a src/ tree."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "package.json").write_text(json.dumps({
        "name": "sample-app",
        "version": "0.1.0",
        "description": "Sample application",
        "scripts": {"start": "node src/index.js", "build": "echo build"},
        "dependencies": {"express": "^4.18.0"},
    }, indent=2), encoding="utf-8")
    (root / "src").mkdir()
    (root / "src" / "index.js").write_text("console.log('hello');\n", encoding="utf-8")
    (root / "README.md").write_text("# Sample app\n", encoding="utf-8")
    return root


def _git(root: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=root, check=True, capture_output=True, text=True,
    )


@pytest.fixture
def git_project(project_dir):
    """``project_dir`` as a git repository with everything committed."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    _git(project_dir, "init", "-q")
    _git(project_dir, "add", "-A")
    _git(project_dir, "commit", "-q", "-m", "Initial commit")
    return project_dir


@pytest.fixture
def git_commit():
    """Commit everything in a repository created by ``git_project``."""
    def commit(root: Path, message: str = "Update") -> None:
        _git(root, "add", "-A")
        _git(root, "commit", "-q", "-m", message)
    return commit


def make_context(phase: str = "requirements", **overrides) -> ContextDocument:
    """A fully populated context document."""
    document = ContextDocument(
        phase=phase,
        completion_date="2024-05-01T10:00:00.000Z",
        ai_tools_used=["Claude", "GitHub Copilot"],
        key_decisions=[
            KeyDecision(
                decision=f"Decision number {i} about the architecture",
                reasoning="Because the team measured the alternatives",
                impact="Shapes the implementation",
            )
            for i in range(1, 6)
        ],
        critical_constraints=[
            Constraint(type=kind, description=f"{kind.title()} constraint with a concrete limit")
            for kind in ("technical", "business", "security", "performance", "compliance")
        ],
        learned_patterns=[
            LearnedPattern(pattern=f"Pattern number {i} that worked well", evidence="Seen in the PoC")
            for i in range(1, 6)
        ],
        next_phase_focus=[f"Focus item number {i} for the next phase" for i in range(1, 6)],
        technical_artifacts=[
            TechnicalArtifact(type="architecture_diagram", content="graph TD; client --> api --> database"),
            TechnicalArtifact(type="code_block", content="def handler(event):\n    return event", language="python"),
            TechnicalArtifact(type="api_spec", content="GET /items returns a list of items"),
            TechnicalArtifact(type="database_schema", content="CREATE TABLE items (id INTEGER PRIMARY KEY)"),
        ],
    )
    for key, value in overrides.items():
        setattr(document, key, value)
    return document


@pytest.fixture
def context_factory():
    return make_context
