"""MCP server exposing the workflow kit to AI assistants."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from .context_extractor import extract_and_save
from .health import HealthChecker
from .migration import MigrationManager
from .models import PHASE_LABELS, next_phase
from .next_phase import generate_next_phase_context
from .phase_detection import detect_phase
from .quality import QualityEvaluator
from .rollback import RollbackManager
from .settings import resolve_project_root
from .staged import StagedMigrationManager
from .validation import MigrationValidator
from .workflow_logging import setup_logging_from_env
from .workspace import ProjectWorkspace

mcp = FastMCP("ai-workflow-kit")


def _root(root: Optional[str]) -> Path:
    return resolve_project_root(root)


@mcp.tool()
def detect_project_phase(root: Optional[str] = None, detailed: bool = False) -> Dict[str, Any]:
    """STEP 1: Estimate which development phase the project is in.
    Scores every phase from file, dependency and git history indicators."""

    result = detect_phase(_root(root))
    return {
        **result.to_dict(detailed=detailed),
        "next_suggested_step": "validate_migration",
        "workflow_tip": "Next: check the project is ready for the workflow template with validate_migration",
        "message": f"Detected phase '{result.phase}' with {result.confidence:.0%} confidence.",
    }


@mcp.tool()
def validate_migration(root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 2: Run the pre-migration validation rules.
    Critical failures (uncommitted changes, missing git repository) block migration."""

    report = MigrationValidator(_root(root)).run()
    blocked = bool(report.critical_failures)
    return {
        **report.to_dict(),
        "ready": not blocked,
        "next_suggested_step": "validate_migration" if blocked else "analyze_migration",
        "workflow_tip": (
            "Resolve the critical failures, then validate again"
            if blocked else "Next: preview the migration plan with analyze_migration"
        ),
        "message": f"{report.summary()['passed']}/{report.summary()['total']} validation rules passed.",
    }


@mcp.tool()
def analyze_migration(phase: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 3: Analyse which template components are missing or conflicting and plan the migration.
    Read only; run `aiworkflow migrate` to apply the plan."""

    manager = MigrationManager(_root(root))
    analysis = manager.analyze(phase=phase)
    plan = manager.plan(analysis)
    return {
        "analysis": analysis.to_dict(),
        "plan": plan.to_dict(),
        "next_suggested_step": "migration_status",
        "workflow_tip": "Apply the plan with `aiworkflow migrate`, or stage it with `aiworkflow staged --schedule <phase>`",
        "message": f"{len(plan.steps)} migration steps planned ({plan.risk_level} risk, {plan.estimated_time}).",
    }


@mcp.tool()
def migration_status(root: Optional[str] = None) -> Dict[str, Any]:
    """Return the staged migration state, if a migration has been scheduled."""

    state = StagedMigrationManager(_root(root)).load()
    if state is None:
        return {
            "state": None,
            "next_suggested_step": "analyze_migration",
            "workflow_tip": "No staged migration exists; schedule one with `aiworkflow staged --schedule <phase>`",
            "message": "No migration in progress.",
        }
    return {
        "state": state.to_dict(),
        "progress": round(state.progress, 1),
        "remaining_steps": [step.to_dict() for step in state.remaining_steps()],
        "next_suggested_step": "health_check" if state.status == "completed" else "migration_status",
        "workflow_tip": "Resume with `aiworkflow staged --resume`" if state.status != "completed" else "Verify with health_check",
        "message": f"Migration {state.status}: {len(state.completed_steps)}/{state.total_steps} steps done.",
    }


@mcp.tool()
def list_backups(root: Optional[str] = None, backup_dir: Optional[str] = None) -> Dict[str, Any]:
    """List migration backups, newest first."""

    backups = RollbackManager(_root(root), backup_dir).list_backups()
    return {
        "backups": [backup.to_dict() for backup in backups],
        "message": f"{len(backups)} backups found.",
    }


@mcp.tool()
def health_check(root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 4: Post-migration health check of files, commands, GitHub integration, context and metrics."""

    report = HealthChecker(_root(root)).run()
    return {
        **report.to_dict(),
        "healthy": report.healthy,
        "next_suggested_step": "extract_issue_context",
        "workflow_tip": "Record each completed phase from its issue with extract_issue_context",
        "message": f"Health score {report.score:.1f}% ({report.verdict()}).",
    }


@mcp.tool()
def extract_issue_context(
    phase: str,
    body: str,
    issue_number: Optional[str] = None,
    repository: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 5: Extract decisions, constraints and learned patterns from a phase issue body
    and save them as the phase's context document."""

    result = extract_and_save(_root(root), phase, body, issue_number=issue_number, repository=repository)
    return {
        **result,
        "next_suggested_step": "evaluate_context_quality",
        "workflow_tip": f"Next: score the {phase} context with evaluate_context_quality",
        "message": f"Context for {phase} saved to {result['context_path']}.",
    }


@mcp.tool()
def evaluate_context_quality(
    phase: Optional[str] = None,
    context_file: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 6: Score a context document out of 100 and suggest improvements."""

    report = QualityEvaluator(_root(root)).evaluate(phase, context_file)
    return {
        **report.to_dict(),
        "next_suggested_step": "generate_next_phase",
        "workflow_tip": "Improve the context first" if report.needs_improvement else "Next: hand off with generate_next_phase",
        "message": f"Context quality {report.overall_score}/100 ({report.quality_grade}).",
    }


@mcp.tool()
def generate_next_phase(completed: str, repository: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 7: Render the starting context for the phase after `completed` from its saved context."""

    path = generate_next_phase_context(_root(root), completed, repository)
    if path is None:
        return {"path": None, "next_phase": None, "message": f"{completed} is the final phase."}
    upcoming = next_phase(completed)
    return {
        "path": str(path),
        "next_phase": upcoming,
        "content": path.read_text(encoding="utf-8"),
        "next_suggested_step": "detect_project_phase",
        "workflow_tip": f"Open a {PHASE_LABELS[upcoming]} issue with this content as its description",
        "message": f"Next phase context for {upcoming} written to {path}.",
    }


@mcp.resource("aiworkflow://context")
def resource_context() -> str:
    """Resource view of the recorded phase context documents."""

    workspace = ProjectWorkspace(_root(None))
    files = workspace.list_context_files()
    if not files:
        return "No phase context has been recorded yet."
    lines = ["Recorded phase contexts"]
    for path in files:
        lines.append(f"- {workspace.relative(path)}")
    return "\n".join(lines)


@mcp.tool()
def get_workflow_guide() -> Dict[str, Any]:
    """Get guidance on the recommended order of the workflow tools."""
    return {
        "workflow_overview": "Adopt the phase-aware workflow in an existing project, then hand context from phase to phase",
        "steps": [
            {"step": 1, "tool": "detect_project_phase", "purpose": "Know where the project stands"},
            {"step": 2, "tool": "validate_migration", "purpose": "Make sure the migration can run safely"},
            {"step": 3, "tool": "analyze_migration", "purpose": "Preview what the template adds"},
            {"step": 4, "tool": "health_check", "purpose": "Confirm the installation after `aiworkflow migrate`"},
            {"step": 5, "tool": "extract_issue_context", "purpose": "Record what a completed phase decided"},
            {"step": 6, "tool": "evaluate_context_quality", "purpose": "Check the hand-off is complete enough"},
            {"step": 7, "tool": "generate_next_phase", "purpose": "Start the next phase from inherited context"},
        ],
        "tips": [
            "Commit your work before migrating; validation fails on uncommitted changes",
            "Every migration creates a backup; `aiworkflow rollback` restores it",
            "Scores below 70 mean the context needs more decisions or constraints",
        ],
    }


def run() -> None:
    setup_logging_from_env()
    mcp.run(transport="stdio")
