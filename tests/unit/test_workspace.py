"""Unit tests for the project workspace.

This module tests path conventions, YAML/JSON helpers, context document
persistence, migration state storage and the git wrappers.
"""

import json

import pytest

from aiworkflow.errors import ContextNotFoundError, GitRepositoryError, MigrationStateError
from aiworkflow.models import MigrationState, StagedStep
from aiworkflow.workspace import (
    ProjectWorkspace,
    emit_github_outputs,
    read_yaml,
    run_git,
    write_json,
    write_yaml,
)


class TestFileHelpers:
    """Test cases for the YAML and JSON helpers."""

    def test_write_yaml_preserves_order_and_unicode(self, tmp_path):
        """Test keys stay in insertion order and unicode is kept."""
        path = write_yaml(tmp_path / "nested" / "data.yml", {"phase": "poc", "note": "要件定義", "a": 1})

        text = path.read_text(encoding="utf-8")
        assert text.index("phase") < text.index("note") < text.index("a:")
        assert "要件定義" in text
        assert read_yaml(path) == {"phase": "poc", "note": "要件定義", "a": 1}

    def test_write_json_trailing_newline(self, tmp_path):
        """Test JSON is indented and newline terminated."""
        path = write_json(tmp_path / "data.json", {"name": "app"})

        text = path.read_text(encoding="utf-8")
        assert text.endswith("}\n")
        assert json.loads(text) == {"name": "app"}

    def test_emit_github_outputs_to_file(self, tmp_path):
        """Test outputs are appended to GITHUB_OUTPUT."""
        output = tmp_path / "github_output"
        output.write_text("existing=1\n", encoding="utf-8")

        emit_github_outputs({"quality-score": 85, "needs-improvement": "false"}, output)

        assert output.read_text(encoding="utf-8") == "existing=1\nquality-score=85\nneeds-improvement=false\n"

    def test_emit_github_outputs_legacy(self, capsys):
        """Test the legacy workflow command without an output file."""
        emit_github_outputs({"context-file": "docs/ai-context/ai-context-poc.yml"})

        assert "::set-output name=context-file::docs/ai-context/ai-context-poc.yml" in capsys.readouterr().out


class TestProjectWorkspace:
    """Test cases for ProjectWorkspace."""

    def test_requires_directory(self, tmp_path):
        """Test a missing root is rejected."""
        with pytest.raises(NotADirectoryError):
            ProjectWorkspace(tmp_path / "missing")

    def test_paths(self, tmp_path):
        """Test the well-known paths."""
        workspace = ProjectWorkspace(tmp_path)

        assert workspace.context_path("poc") == tmp_path.resolve() / "docs" / "ai-context" / "ai-context-poc.yml"
        assert workspace.state_path.name == ".migration-state.json"
        assert workspace.quality_summary_path.name == "quality-summary.yml"
        assert workspace.handoff_prompt_path("review").name == "handoff-prompt-review.md"
        assert workspace.relative(workspace.context_path("poc")) == "docs/ai-context/ai-context-poc.yml"

    def test_load_package_json(self, project_dir):
        """Test package.json is parsed."""
        package = ProjectWorkspace(project_dir).load_package_json()

        assert package["name"] == "sample-app"

    def test_load_package_json_missing_or_invalid(self, tmp_path):
        """Test missing or broken package.json gives None."""
        workspace = ProjectWorkspace(tmp_path)
        assert workspace.load_package_json() is None

        workspace.package_json_path.write_text("{not json", encoding="utf-8")
        assert workspace.load_package_json() is None

    def test_save_and_load_context(self, tmp_path, context_factory):
        """Test context documents are persisted as YAML."""
        workspace = ProjectWorkspace(tmp_path)
        document = context_factory("poc")

        path = workspace.save_context(document)

        assert path == workspace.context_path("poc")
        assert workspace.load_context("poc") == document
        assert workspace.list_context_files() == [path]

    def test_load_context_missing(self, tmp_path):
        """Test a missing context raises ContextNotFoundError."""
        with pytest.raises(ContextNotFoundError) as exc_info:
            ProjectWorkspace(tmp_path).load_context("review")

        assert "ai-context-review.yml" in exc_info.value.message

    def test_load_context_not_mapping(self, tmp_path):
        """Test a context file holding a list is rejected."""
        workspace = ProjectWorkspace(tmp_path)
        write_yaml(workspace.context_path("poc"), ["not", "a", "mapping"])

        with pytest.raises(ContextNotFoundError):
            workspace.load_context("poc")

    def test_list_context_files_ignores_summaries(self, tmp_path, context_factory):
        """Test summary files are not listed as contexts."""
        workspace = ProjectWorkspace(tmp_path)
        workspace.save_context(context_factory("requirements"))
        write_yaml(workspace.quality_summary_path, {"phases": {}})
        write_yaml(workspace.progress_dashboard_path, {})

        assert [p.name for p in workspace.list_context_files()] == ["ai-context-requirements.yml"]

    def test_migration_state_round_trip(self, tmp_path):
        """Test migration state persistence."""
        workspace = ProjectWorkspace(tmp_path)
        assert workspace.load_migration_state() is None

        state = MigrationState(
            target_phase="review",
            current_phase="implementation",
            total_steps=1,
            planned_steps=[StagedStep(id="copy_docs", name="Docs")],
        )
        workspace.save_migration_state(state)

        assert workspace.load_migration_state() == state

    def test_migration_state_invalid_json(self, tmp_path):
        """Test a corrupt state file raises MigrationStateError."""
        workspace = ProjectWorkspace(tmp_path)
        workspace.state_path.write_text("{broken", encoding="utf-8")

        with pytest.raises(MigrationStateError):
            workspace.load_migration_state()

    def test_backup_dirs(self, tmp_path):
        """Test only backup directories are listed."""
        (tmp_path / ".backup-1000").mkdir()
        (tmp_path / ".backup-2000").mkdir()
        (tmp_path / ".backup-file").write_text("", encoding="utf-8")

        names = [p.name for p in ProjectWorkspace(tmp_path).backup_dirs()]

        assert names == [".backup-1000", ".backup-2000"]


class TestGit:
    """Test cases for the git wrappers."""

    def test_has_git_dir(self, tmp_path):
        """Test .git detection."""
        workspace = ProjectWorkspace(tmp_path)
        assert workspace.has_git_dir() is False

        (tmp_path / ".git").mkdir()
        assert workspace.has_git_dir() is True

    @pytest.mark.git
    def test_git_status_clean(self, git_project):
        """Test a clean repository has empty porcelain status."""
        assert ProjectWorkspace(git_project).git("status", "--porcelain").strip() == ""

    @pytest.mark.git
    def test_run_git_failure(self, git_project):
        """Test a failing git command raises GitRepositoryError."""
        with pytest.raises(GitRepositoryError) as exc_info:
            run_git(git_project, "rev-parse", "no-such-ref")

        assert "stderr" in exc_info.value.details

    def test_git_or_default(self, tmp_path):
        """Test the default is returned outside a repository."""
        workspace = ProjectWorkspace(tmp_path)

        assert workspace.git_or_default(["no-such-command"], "fallback") == "fallback"
