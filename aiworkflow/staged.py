"""Staged migration: a checklist of steps persisted in ``.migration-state.json``.

Steps are scheduled up to a target phase and applied with ``resume``; the
migration can be paused between invocations and reset at any time.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from rich.console import Console

from .errors import MigrationStateError
from .migration import MigrationManager
from .models import (
    CompletedStep,
    MigrationState,
    PHASES,
    StagedStep,
    StepError,
    utc_timestamp,
    validate_phase,
)
from .settings import Settings
from .workflow_logging import log_error_with_context, log_migration_step, log_operation
from .workspace import ProjectWorkspace

logger = logging.getLogger("aiworkflow.staged")

PHASE_STEPS: Dict[str, List[StagedStep]] = {
    "discovery": [
        StagedStep("core-docs", "Core documents", "high"),
    ],
    "requirements": [
        StagedStep("github-templates", "GitHub templates", "high"),
        StagedStep("issue-templates", "Issue templates", "medium"),
    ],
    "poc": [
        StagedStep("advanced-docs", "Workflow guides", "high"),
        StagedStep("ai-context", "AI context inheritance", "high"),
    ],
    "implementation": [
        StagedStep("workflows", "GitHub Actions", "medium"),
        StagedStep("quality-tools", "Quality tooling", "medium"),
    ],
    "review": [
        StagedStep("review-automation", "Review automation", "medium"),
        StagedStep("metrics-collection", "Metrics collection", "low"),
    ],
    "testing": [
        StagedStep("test-automation", "Test automation", "low"),
    ],
    "production": [
        StagedStep("monitoring", "Monitoring", "low"),
        StagedStep("maintenance", "Maintenance", "low"),
    ],
}

# Step ids that install template files; the rest are checklist items.
STEP_CATEGORIES = {
    "core-docs": "core-docs",
    "github-templates": "github-templates",
    "issue-templates": "github-templates",
    "advanced-docs": "advanced-docs",
    "ai-context": "ai-context",
    "workflows": "workflows",
}

STATUS_LABELS = {
    "in_progress": "[yellow]in progress[/yellow]",
    "paused": "[blue]paused[/blue]",
    "completed": "[green]completed[/green]",
    "failed": "[red]failed[/red]",
    "scheduled": "[cyan]scheduled[/cyan]",
}

RESUMABLE = ("paused", "failed", "scheduled")


def phase_steps(target_phase: str) -> List[StagedStep]:
    """Steps for every phase up to and including ``target_phase``."""
    target_phase = validate_phase(target_phase)
    steps: List[StagedStep] = []
    for phase in PHASES[: PHASES.index(target_phase) + 1]:
        steps.extend(StagedStep(s.id, s.name, s.priority) for s in PHASE_STEPS[phase])
    return steps


class StagedMigrationManager:
    def __init__(
        self,
        root: Path | str,
        template_root: Optional[Path | str] = None,
        settings: Optional[Settings] = None,
    ):
        self.workspace = ProjectWorkspace(root)
        self.template_root = template_root
        self.settings = settings

    def load(self) -> Optional[MigrationState]:
        return self.workspace.load_migration_state()

    def require_state(self) -> MigrationState:
        state = self.load()
        if state is None:
            raise MigrationStateError("No migration state found; schedule one with --schedule <phase>")
        return state

    def save(self, state: MigrationState) -> Path:
        state.last_update = utc_timestamp()
        return self.workspace.save_migration_state(state)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def schedule(self, target_phase: str, current_phase: str = "discovery") -> MigrationState:
        steps = phase_steps(target_phase)
        state = MigrationState(
            target_phase=target_phase,
            current_phase=current_phase,
            status="scheduled",
            total_steps=len(steps),
            planned_steps=steps,
        )
        self.save(state)
        logger.info(f"Scheduled {len(steps)} migration steps up to {target_phase}")
        return state

    def pause(self) -> MigrationState:
        state = self.require_state()
        if state.status != "in_progress":
            raise MigrationStateError(f"Only an in-progress migration can be paused (status: {state.status})")
        state.status = "paused"
        state.paused_at = utc_timestamp()
        self.save(state)
        logger.info("Migration paused")
        return state

    def reset(self) -> bool:
        if not self.workspace.state_path.exists():
            return False
        self.workspace.state_path.unlink()
        logger.info("Migration state reset")
        return True

    def update_progress(self, step_id: str, step_name: str, status: str = "completed", message: Optional[str] = None) -> Optional[MigrationState]:
        """Record a step outcome; a no-op when no migration state exists."""
        state = self.load()
        if state is None:
            return None

        if status == "completed":
            if step_id not in state.completed_ids():
                state.completed_steps.append(CompletedStep(id=step_id, name=step_name))
        elif status == "failed":
            state.errors.append(StepError(step=step_name, message=message or "Step execution failed"))
            state.status = "failed"
        else:
            raise MigrationStateError(f"Unknown step status '{status}'")

        if len(state.completed_steps) >= state.total_steps and state.status != "failed":
            state.status = "completed"
            state.completed_at = utc_timestamp()
        self.save(state)
        log_migration_step(str(self.workspace.root), step_id, status)
        return state

    def run_step(self, step: StagedStep, manager: MigrationManager) -> List[str]:
        category = STEP_CATEGORIES.get(step.id)
        if category is None:
            return []
        return manager.copy_category(category)

    def resume(self) -> MigrationState:
        """Run the remaining planned steps in order, stopping at the first failure."""
        state = self.require_state()
        if state.status == "completed":
            raise MigrationStateError("The migration has already completed")
        if state.status not in RESUMABLE:
            raise MigrationStateError(f"The migration is already {state.status}")

        state.status = "in_progress"
        state.paused_at = None
        self.save(state)

        manager = MigrationManager(self.workspace.root, self.template_root, self.settings)
        with log_operation("resume_migration", remaining=len(state.remaining_steps())):
            for step in state.remaining_steps():
                try:
                    copied = self.run_step(step, manager)
                except Exception as e:
                    logger.error(f"Staged step {step.id} failed: {e}")
                    log_error_with_context(e, {"operation": "resume_migration", "step": step.id})
                    return self.update_progress(step.id, step.name, "failed", message=str(e))
                logger.info(f"Step {step.id} done ({len(copied)} template entries copied)")
                self.update_progress(step.id, step.name, "completed")
        return self.require_state()


def render_status(console: Console, state: Optional[MigrationState]) -> None:
    if state is None:
        console.print("[yellow]📊 No migration in progress[/yellow]")
        return

    console.print("\n[bold blue]📊 Migration progress[/bold blue]")
    console.print(f"Started: {state.start_time}")
    console.print(f"Current phase: {state.current_phase}  Target: {state.target_phase}")
    console.print(f"Status: {STATUS_LABELS.get(state.status, state.status)}")
    if state.last_update:
        console.print(f"Last update: {state.last_update}")

    console.print(
        f"\n✅ Completed steps: {len(state.completed_steps)}/{state.total_steps} ({state.progress:.0f}%)"
    )
    for step in state.completed_steps:
        console.print(f"  [green]✓[/green] {step.name} ({step.completed_at})")

    remaining = state.remaining_steps()
    if remaining:
        console.print("\n[yellow]⏳ Remaining steps:[/yellow]")
        for step in remaining:
            note = "" if step.id in STEP_CATEGORIES else " [dim](checklist)[/dim]"
            console.print(f"  ○ {step.name}{note}")

    if state.backup_path:
        console.print(f"\n💾 Backup: {state.backup_path}")

    if state.errors:
        console.print("\n[red]❌ Errors:[/red]")
        for error in state.errors:
            console.print(f"  - {error.step}: {error.message} ({error.timestamp})")
