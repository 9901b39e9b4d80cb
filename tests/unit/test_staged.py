"""Unit tests for the staged migration."""

import pytest
from rich.console import Console

from aiworkflow.errors import InvalidPhaseError, MigrationStateError
from aiworkflow.models import MigrationState
from aiworkflow.staged import (
    PHASE_STEPS,
    STEP_CATEGORIES,
    StagedMigrationManager,
    phase_steps,
    render_status,
)
from aiworkflow.workspace import ProjectWorkspace


@pytest.fixture
def staged(project_dir):
    return StagedMigrationManager(project_dir)


class TestPhaseSteps:
    """Test cases for the cumulative step lists."""

    @pytest.mark.parametrize("phase,count", [
        ("discovery", 1), ("requirements", 3), ("poc", 5), ("implementation", 7), ("production", 12),
    ])
    def test_counts(self, phase, count):
        """Test steps accumulate up to the target phase."""
        assert len(phase_steps(phase)) == count

    def test_order(self):
        """Test earlier phases come first."""
        assert [s.id for s in phase_steps("requirements")] == ["core-docs", "github-templates", "issue-templates"]

    def test_unknown_phase(self):
        """Test unknown phases are rejected."""
        with pytest.raises(InvalidPhaseError):
            phase_steps("launch")

    def test_copies_are_independent(self):
        """Test returned steps do not alias the phase table."""
        steps = phase_steps("discovery")
        steps[0].name = "Changed"

        assert PHASE_STEPS["discovery"][0].name == "Core documents"


class TestTransitions:
    """Test cases for state transitions."""

    def test_schedule(self, staged, project_dir):
        """Test scheduling writes the state file."""
        state = staged.schedule("implementation")

        assert state.status == "scheduled"
        assert state.total_steps == 7
        assert state.current_phase == "discovery"
        saved = ProjectWorkspace(project_dir).load_migration_state()
        assert [s.id for s in saved.planned_steps] == [s.id for s in state.planned_steps]

    def test_status_without_state(self, staged):
        """Test no state is reported as None."""
        assert staged.load() is None
        with pytest.raises(MigrationStateError):
            staged.require_state()

    def test_pause_requires_in_progress(self, staged):
        """Test a scheduled migration cannot be paused."""
        staged.schedule("poc")

        with pytest.raises(MigrationStateError):
            staged.pause()

    def test_pause(self, staged):
        """Test an in-progress migration is paused."""
        staged.save(MigrationState(target_phase="poc", current_phase="discovery", status="in_progress", total_steps=5))

        state = staged.pause()

        assert state.status == "paused"
        assert state.paused_at is not None
        assert staged.load().status == "paused"

    def test_reset(self, staged, project_dir):
        """Test reset removes the state file once."""
        staged.schedule("poc")

        assert staged.reset() is True
        assert not ProjectWorkspace(project_dir).state_path.exists()
        assert staged.reset() is False

    def test_update_progress_without_state(self, staged):
        """Test progress updates are ignored without a migration."""
        assert staged.update_progress("core-docs", "Core documents") is None

    def test_update_progress_completes(self, staged):
        """Test completing every step completes the migration."""
        staged.schedule("discovery")

        state = staged.update_progress("core-docs", "Core documents")

        assert state.status == "completed"
        assert state.completed_at is not None
        assert state.progress == 100.0

    def test_update_progress_is_idempotent(self, staged):
        """Test a step is only recorded once."""
        staged.schedule("requirements")

        staged.update_progress("core-docs", "Core documents")
        state = staged.update_progress("core-docs", "Core documents")

        assert state.completed_ids() == ["core-docs"]
        assert state.status == "scheduled"

    def test_update_progress_failed(self, staged):
        """Test a failed step records the error."""
        staged.schedule("requirements")

        state = staged.update_progress("github-templates", "GitHub templates", "failed", message="disk full")

        assert state.status == "failed"
        assert state.errors[0].step == "GitHub templates"
        assert state.errors[0].message == "disk full"

    def test_update_progress_unknown_status(self, staged):
        """Test unknown statuses are rejected."""
        staged.schedule("requirements")

        with pytest.raises(MigrationStateError):
            staged.update_progress("core-docs", "Core documents", "skipped")


class TestResume:
    """Test cases for running the remaining steps."""

    def test_resume_runs_every_step(self, staged, project_dir):
        """Test file steps copy templates and checklist steps complete."""
        staged.schedule("implementation")

        state = staged.resume()

        assert state.status == "completed"
        assert state.completed_ids() == [s.id for s in phase_steps("implementation")]
        assert (project_dir / "docs" / "PROJECT_CONTEXT.md").exists()
        assert (project_dir / ".github" / "pull_request_template.md").exists()
        assert (project_dir / "docs" / "ai-context" / "README.md").exists()
        assert (project_dir / ".github" / "workflows" / "progress-tracker.yml").exists()

    def test_resume_keeps_existing_files(self, staged, project_dir):
        """Test files the project already has are not overwritten."""
        target = project_dir / "docs" / "ARCHITECTURE.md"
        target.parent.mkdir(parents=True)
        target.write_text("# Ours\n", encoding="utf-8")
        staged.schedule("discovery")

        staged.resume()

        assert target.read_text(encoding="utf-8") == "# Ours\n"

    def test_resume_stops_at_failure(self, staged):
        """Test the first failing step stops the run."""
        staged.schedule("requirements")
        original = staged.run_step

        def run_step(step, manager):
            if step.id == "github-templates":
                raise OSError("permission denied")
            return original(step, manager)

        staged.run_step = run_step

        state = staged.resume()

        assert state.status == "failed"
        assert state.completed_ids() == ["core-docs"]
        assert state.errors[0].message == "permission denied"

    def test_resume_after_failure(self, staged):
        """Test a failed migration can be resumed to completion."""
        staged.schedule("requirements")
        staged.update_progress("github-templates", "GitHub templates", "failed", message="boom")

        state = staged.resume()

        assert state.status == "completed"
        assert len(state.errors) == 1

    def test_resume_completed(self, staged):
        """Test a completed migration cannot be resumed."""
        staged.schedule("discovery")
        staged.resume()

        with pytest.raises(MigrationStateError):
            staged.resume()

    def test_resume_in_progress(self, staged):
        """Test a running migration cannot be resumed twice."""
        staged.save(MigrationState(target_phase="poc", current_phase="discovery", status="in_progress", total_steps=5))

        with pytest.raises(MigrationStateError):
            staged.resume()

    def test_checklist_steps_copy_nothing(self, staged):
        """Test steps without a template category are checklist items."""
        checklist = [s for s in phase_steps("production") if s.id not in STEP_CATEGORIES]

        assert checklist
        assert all(staged.run_step(step, None) == [] for step in checklist)


class TestRenderStatus:
    """Test cases for the console rendering."""

    def test_render_without_state(self):
        """Test the empty message."""
        console = Console(record=True)

        render_status(console, None)

        assert "No migration in progress" in console.export_text()

    def test_render_progress(self, staged):
        """Test completed and remaining steps are listed."""
        staged.schedule("implementation")
        staged.update_progress("core-docs", "Core documents")
        console = Console(record=True, width=120)

        render_status(console, staged.load())

        text = console.export_text()
        assert "Completed steps: 1/7 (14%)" in text
        assert "Quality tooling (checklist)" in text
