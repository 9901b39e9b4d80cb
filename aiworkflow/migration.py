"""Apply the AI workflow template to an existing project.

The migration runs in three stages: analyse what the project already has,
plan the steps needed to bring in the missing template components, then
execute the plan (backing up conflicting files first).
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from .errors import MigrationStateError
from .models import (
    BackupMetadata,
    MigrationPlan,
    PlanStep,
    PHASES,
    utc_timestamp,
    validate_phase,
)
from .settings import Settings
from .workflow_logging import (
    log_backup_created,
    log_error_with_context,
    log_migration_step,
    log_operation,
    log_performance,
)
from .workspace import ProjectWorkspace, write_json

logger = logging.getLogger("aiworkflow.migration")

MIGRATION_PHASES = {
    "discovery": {"name": "Before development", "description": "Planning and ideation"},
    "requirements": {"name": "Defining requirements", "description": "Requirements work in progress"},
    "poc": {"name": "Building a PoC", "description": "Prototyping and validation"},
    "implementation": {"name": "Implementing", "description": "Main development work"},
    "review": {"name": "In review", "description": "Code review and quality checks"},
    "testing": {"name": "Testing", "description": "Testing and deployment preparation"},
    "production": {"name": "In production", "description": "Serving users in production"},
}

COMPONENT_CATEGORIES = {
    "core-docs": {
        "name": "Core documents",
        "files": [
            "docs/PROJECT_CONTEXT.md",
            "docs/WORKFLOW_GUIDE.md",
            "docs/AI_INTERACTION_LOG.md",
            "docs/CODING_STANDARDS.md",
            "docs/ARCHITECTURE.md",
        ],
        "priority": "high",
        "description": "Foundation documents for running the project",
    },
    "github-templates": {
        "name": "GitHub templates",
        "files": [
            ".github/ISSUE_TEMPLATE/",
            ".github/pull_request_template.md",
        ],
        "priority": "high",
        "description": "Issue and pull request templates",
    },
    "workflows": {
        "name": "GitHub Actions",
        "files": [
            ".github/workflows/auto-context-bridge.yml",
            ".github/workflows/progress-tracker.yml",
        ],
        "priority": "medium",
        "description": "Automation workflows",
    },
    "advanced-docs": {
        "name": "Advanced documents",
        "files": [
            "docs/ADVANCED_FEATURES_GUIDE.md",
            "docs/GITHUB_AUTO_CONTEXT_BRIDGE.md",
            "docs/PROMPT_ENGINEERING_STRATEGY.md",
            "docs/WORKFLOW_METRICS_ANALYSIS.md",
            "docs/USAGE_AND_TESTING_GUIDE.md",
        ],
        "priority": "low",
        "description": "Detailed guides and strategy documents",
    },
    "ai-context": {
        "name": "AI context storage",
        "files": [
            "docs/ai-context/",
            "docs/ai-prompts/",
        ],
        "priority": "medium",
        "description": "Directories holding inherited AI context",
    },
}

MIGRATION_SCRIPTS = {
    "setup": "aiworkflow setup",
    "ai-context": "aiworkflow context complete",
    "context-bridge": "aiworkflow context start",
    "progress-update": "aiworkflow progress",
    "quality-check": "aiworkflow evaluate-quality",
    "collect-metrics": "aiworkflow metrics",
    "notify-team": "aiworkflow notify",
}

PRIORITY_ORDER = ("high", "medium", "low")
CONFLICT_MIN_LENGTH = 100
MISSING_FILES_INFO_THRESHOLD = 10
BACKUP_META_FILE = "_backup_meta.json"

# (source, target, relative path) -> "keep" | "replace" | "manual"
ConflictResolver = Callable[[Path, Path, str], str]
# (step, error) -> continue?
ErrorHandler = Callable[[PlanStep, Exception], bool]
# (step id, step name, "completed" | "failed", error message or None) -> None
ProgressCallback = Callable[[str, str, str, Optional[str]], None]


@dataclass(slots=True)
class CategoryStatus:
    existing: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"existing": list(self.existing), "missing": list(self.missing), "conflicts": list(self.conflicts)}


@dataclass(slots=True)
class Recommendation:
    type: str
    message: str
    action: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "message": self.message, "action": self.action}


@dataclass(slots=True)
class ProjectAnalysis:
    """What the project already has, relative to the template."""

    root: Path
    package_json: Optional[Dict[str, Any]]
    git_repo: bool
    categories: Dict[str, CategoryStatus]
    phase: str = "discovery"
    conflict_files: List[str] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)

    @property
    def missing_count(self) -> int:
        return sum(len(status.missing) for status in self.categories.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectRoot": str(self.root),
            "packageJson": self.package_json is not None,
            "gitRepo": self.git_repo,
            "phase": self.phase,
            "existingFiles": {name: status.to_dict() for name, status in self.categories.items()},
            "conflictFiles": list(self.conflict_files),
            "recommendations": [r.to_dict() for r in self.recommendations],
        }


@dataclass(slots=True)
class MigrationOutcome:
    completed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    backup_path: Optional[Path] = None
    manual_merges: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failed


def estimated_time(steps: List[PlanStep]) -> str:
    minutes = len(steps) * 2
    if minutes < 10:
        return "5-10 min"
    if minutes < 20:
        return "10-20 min"
    if minutes < 40:
        return "20-40 min"
    return "40+ min"


def files_under(root: Path, relative: str) -> List[str]:
    """Expand ``relative`` into the POSIX paths of the files it covers under ``root``."""
    path = root / relative
    if path.is_file():
        return [relative.rstrip("/")]
    if path.is_dir():
        return sorted(p.relative_to(root).as_posix() for p in path.rglob("*") if p.is_file())
    return []


def create_backup(
    workspace: ProjectWorkspace,
    files: List[str],
    *,
    project_phase: Optional[str] = None,
    reason: str = "migration",
) -> Path:
    """Copy ``files`` (and package.json) into ``.backup-<millis>/`` with a metadata file."""
    millis = int(time.time() * 1000)
    while (workspace.root / f"{workspace.BACKUP_PREFIX}{millis}").exists():
        millis += 1
    backup_dir = workspace.root / f"{workspace.BACKUP_PREFIX}{millis}"
    backup_dir.mkdir(parents=True)

    backed_up: List[str] = []
    with log_operation("create_backup", backup=str(backup_dir), requested=len(files)):
        candidates: List[str] = []
        for relative in files:
            candidates.extend(files_under(workspace.root, relative))
        if workspace.package_json_path.exists():
            candidates.append("package.json")

        for relative in dict.fromkeys(candidates):
            target = backup_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(workspace.root / relative, target)
            backed_up.append(relative)

        package_json = workspace.load_package_json()
        metadata = BackupMetadata(
            timestamp=utc_timestamp(),
            project_root=str(workspace.root),
            backed_up_files=backed_up,
            project_phase=project_phase,
            migration_phase=MIGRATION_PHASES.get(project_phase or "", {}).get("name", "Unknown"),
            backup_reason=reason,
            original_package_json=(
                {"name": package_json.get("name"), "version": package_json.get("version")}
                if package_json else None
            ),
        )
        write_json(backup_dir / BACKUP_META_FILE, metadata.to_dict())

    logger.info(f"Backup created at {backup_dir} with {len(backed_up)} files")
    log_backup_created(str(workspace.root), str(backup_dir), len(backed_up))
    return backup_dir


def merge_migration_scripts(package_json: Dict[str, Any]) -> Dict[str, Any]:
    updated = dict(package_json)
    updated["scripts"] = {**(package_json.get("scripts") or {}), **MIGRATION_SCRIPTS}
    return updated


class MigrationManager:
    """Analyse, plan and execute a template migration for one project."""

    def __init__(
        self,
        root: Path | str,
        template_root: Optional[Path | str] = None,
        settings: Optional[Settings] = None,
    ):
        self.workspace = ProjectWorkspace(root)
        self.settings = settings or Settings.from_env()
        self.template_root = self.settings.resolved_template_root(template_root)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def template_path(self, relative: str) -> Path:
        return self.template_root / relative

    def is_conflict(self, existing: Path, relative: str) -> bool:
        """An existing file conflicts when it differs from the template and has real content."""
        template = self.template_path(relative)
        if not template.is_file() or not existing.is_file():
            return False
        try:
            current = existing.read_text(encoding="utf-8")
            source = template.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug(f"Conflict check skipped for {relative}: {exc}")
            return False
        return current != source and len(current) > CONFLICT_MIN_LENGTH

    @log_performance("analyze_project")
    def analyze(self, phase: Optional[str] = None) -> ProjectAnalysis:
        root = self.workspace.root
        categories: Dict[str, CategoryStatus] = {}
        conflicts: List[str] = []

        for category, config in COMPONENT_CATEGORIES.items():
            status = CategoryStatus()
            for relative in config["files"]:
                path = root / relative
                if path.exists():
                    status.existing.append(relative)
                    if self.is_conflict(path, relative):
                        status.conflicts.append(relative)
                        conflicts.append(relative)
                else:
                    status.missing.append(relative)
            categories[category] = status

        analysis = ProjectAnalysis(
            root=root,
            package_json=self.workspace.load_package_json(),
            git_repo=self.workspace.has_git_dir(),
            categories=categories,
            conflict_files=conflicts,
        )
        analysis.phase = validate_phase(phase) if phase else self.estimate_phase(analysis)
        analysis.recommendations = self.recommendations(analysis)
        logger.info(
            f"Analysed {root}: phase={analysis.phase}, missing={analysis.missing_count}, conflicts={len(conflicts)}"
        )
        return analysis

    @staticmethod
    def estimate_phase(analysis: ProjectAnalysis) -> str:
        """Return the most advanced phase whose indicator holds."""
        package = analysis.package_json or {}
        dependencies = package.get("dependencies") or {}
        core_docs = analysis.categories["core-docs"].existing
        version = package.get("version")

        indicators = {
            "discovery": lambda: not analysis.package_json or not dependencies,
            "requirements": lambda: "docs/PROJECT_CONTEXT.md" in core_docs,
            "poc": lambda: "docs/ARCHITECTURE.md" in core_docs,
            "implementation": lambda: len(dependencies) > 5,
            "review": lambda: bool(analysis.categories["workflows"].existing),
            "testing": lambda: "test" in (package.get("scripts") or {}),
            "production": lambda: isinstance(version, str) and "0." not in version,
        }
        for phase in reversed(PHASES):
            if indicators[phase]():
                return phase
        return "discovery"

    @staticmethod
    def recommendations(analysis: ProjectAnalysis) -> List[Recommendation]:
        recommendations = []
        if not analysis.git_repo:
            recommendations.append(Recommendation(
                "critical", "The project is not a Git repository", "Run `git init` first"
            ))
        if analysis.package_json is None:
            recommendations.append(Recommendation(
                "high", "No package.json found", "Run `npm init` if the project uses npm scripts"
            ))
        if analysis.conflict_files:
            recommendations.append(Recommendation(
                "warning",
                f"{len(analysis.conflict_files)} files may conflict with the template",
                "A backup is created before they are touched",
            ))
        if analysis.missing_count > MISSING_FILES_INFO_THRESHOLD:
            recommendations.append(Recommendation(
                "info",
                f"{analysis.missing_count} new files will be added",
                "Consider a staged migration (`aiworkflow staged --schedule <phase>`)",
            ))
        return recommendations

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, analysis: ProjectAnalysis) -> MigrationPlan:
        steps: List[PlanStep] = []
        risk = "low"

        if analysis.conflict_files:
            steps.append(PlanStep(
                id="backup",
                name="Create backup",
                kind="backup",
                priority="high",
                files=list(analysis.conflict_files),
                description="Back up existing files before they are replaced",
            ))
            risk = "medium"

        for priority in PRIORITY_ORDER:
            for category, config in COMPONENT_CATEGORIES.items():
                if config["priority"] != priority:
                    continue
                status = analysis.categories[category]
                if not status.missing and not status.conflicts:
                    continue
                steps.append(PlanStep(
                    id=category,
                    name=config["name"],
                    kind="copy",
                    priority=priority,
                    files=[*status.missing, *status.conflicts],
                    conflicts=list(status.conflicts),
                    description=config["description"],
                ))

        if analysis.package_json is not None:
            steps.append(PlanStep(
                id="package-json",
                name="Update package.json",
                kind="package-json",
                priority="medium",
                files=["package.json"],
                description="Add workflow npm scripts",
            ))

        if len(steps) > 10:
            risk = "medium" if risk == "low" else "high"
        return MigrationPlan(steps=steps, estimated_time=estimated_time(steps), risk_level=risk, phase=analysis.phase)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def copy_template(self, relative: str) -> bool:
        """Copy one template entry (file or directory) into the project. Returns False if the template lacks it."""
        source = self.template_path(relative)
        target = self.workspace.root / relative
        if source.is_dir():
            shutil.copytree(source, target, dirs_exist_ok=True)
            return True
        if source.is_file():
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
            return True
        logger.warning(f"Template has no {relative}; skipped")
        return False

    def copy_category(self, category: str, *, only_missing: bool = True) -> List[str]:
        """Copy a component category, optionally skipping files the project already has."""
        copied = []
        for relative in COMPONENT_CATEGORIES[category]["files"]:
            if only_missing and self.workspace.exists(relative):
                continue
            if self.copy_template(relative):
                copied.append(relative)
        return copied

    def resolve_conflict(self, relative: str, resolver: Optional[ConflictResolver], force: bool) -> str:
        source = self.template_path(relative)
        target = self.workspace.root / relative
        action = "replace" if force or resolver is None else resolver(source, target, relative)
        if action == "replace":
            self.copy_template(relative)
        elif action == "manual":
            logger.warning(f"Manual merge required for {relative} (template: {source})")
        elif action != "keep":
            raise MigrationStateError(f"Unknown conflict action '{action}' for {relative}")
        return action

    def update_package_json(self) -> Path:
        package_json = self.workspace.load_package_json()
        if package_json is None:
            raise MigrationStateError("package.json is missing or unreadable")
        return self.workspace.save_package_json(merge_migration_scripts(package_json))

    def execute_step(
        self,
        step: PlanStep,
        analysis: ProjectAnalysis,
        outcome: MigrationOutcome,
        resolver: Optional[ConflictResolver] = None,
        force: bool = False,
    ) -> None:
        if step.kind == "backup":
            outcome.backup_path = create_backup(self.workspace, step.files, project_phase=analysis.phase)
            return
        if step.kind == "package-json":
            self.update_package_json()
            return

        for relative in step.files:
            if relative in step.conflicts and self.workspace.exists(relative):
                if self.resolve_conflict(relative, resolver, force) == "manual":
                    outcome.manual_merges.append(relative)
            else:
                self.copy_template(relative)

    def execute(
        self,
        plan: MigrationPlan,
        analysis: ProjectAnalysis,
        *,
        resolver: Optional[ConflictResolver] = None,
        on_error: Optional[ErrorHandler] = None,
        on_progress: Optional[ProgressCallback] = None,
        force: bool = False,
    ) -> MigrationOutcome:
        """Run every plan step in order.

        A failing step is reported to ``on_error``; the migration stops with
        MigrationStateError unless the handler returns True.
        """
        outcome = MigrationOutcome()
        root = str(self.workspace.root)

        with log_operation("execute_migration", steps=len(plan.steps), phase=plan.phase):
            for step in plan.steps:
                try:
                    self.execute_step(step, analysis, outcome, resolver=resolver, force=force)
                except Exception as e:
                    logger.error(f"Migration step {step.id} failed: {e}")
                    log_error_with_context(e, {"operation": "execute_migration", "step": step.id})
                    log_migration_step(root, step.id, "failed", error=str(e))
                    outcome.failed.append(step.id)
                    if on_progress:
                        on_progress(step.id, step.name, "failed", str(e))
                    if on_error is None or not on_error(step, e):
                        raise MigrationStateError(
                            f"Migration stopped at step '{step.id}': {e}",
                            details={"completed": list(outcome.completed)},
                        ) from e
                    continue

                outcome.completed.append(step.id)
                log_migration_step(root, step.id, "completed")
                if on_progress:
                    on_progress(step.id, step.name, "completed", None)

        return outcome


# ----------------------------------------------------------------------
# Console rendering
# ----------------------------------------------------------------------

RECOMMENDATION_ICONS = {"critical": "🚨", "high": "❗", "warning": "⚠️", "info": "ℹ️"}


def render_analysis(console: Console, analysis: ProjectAnalysis, plan: Optional[MigrationPlan] = None) -> None:
    console.print("\n[bold]📊 Project analysis[/bold]")
    console.print(f"Current phase: {MIGRATION_PHASES[analysis.phase]['name']} ({analysis.phase})")
    console.print(f"Git repository: {'✅' if analysis.git_repo else '❌'}")
    console.print(f"package.json: {'✅' if analysis.package_json is not None else '❌'}")

    table = Table(title="Template components")
    table.add_column("Category")
    table.add_column("Existing", justify="right")
    table.add_column("Missing", justify="right")
    table.add_column("Conflicts", justify="right")
    for category, status in analysis.categories.items():
        total = len(COMPONENT_CATEGORIES[category]["files"])
        table.add_row(
            COMPONENT_CATEGORIES[category]["name"],
            f"{len(status.existing)}/{total}",
            str(len(status.missing)),
            str(len(status.conflicts)),
        )
    console.print(table)

    if analysis.recommendations:
        console.print("\n[bold]💡 Recommendations[/bold]")
        for rec in analysis.recommendations:
            console.print(f"{RECOMMENDATION_ICONS.get(rec.type, '•')} {rec.message}")
            console.print(f"   {rec.action}")

    if plan is not None:
        render_plan(console, plan)


def render_plan(console: Console, plan: MigrationPlan) -> None:
    console.print("\n[bold yellow]📋 Migration plan[/bold yellow]")
    console.print(f"Phase: {MIGRATION_PHASES[plan.phase]['name']}")
    console.print(f"Steps: {len(plan.steps)}")
    console.print(f"Estimated time: {plan.estimated_time}")
    console.print(f"Risk level: {plan.risk_level}")
    for index, step in enumerate(plan.steps, start=1):
        console.print(f"  {index}. {step.name} [dim]({len(step.files)} files)[/dim]")


def render_post_migration_guide(console: Console) -> None:
    console.print("\n[bold yellow]📖 Next steps[/bold yellow]")
    console.print("1. Check the installation:       aiworkflow health")
    console.print("2. Record the current phase:     aiworkflow context complete --phase <phase>")
    console.print("3. Review progress:              aiworkflow progress")
    console.print("4. Allow GitHub Actions to write: Settings → Actions → General → Workflow permissions")
    console.print("5. Optional team notifications:   set SLACK_WEBHOOK_URL or TEAMS_WEBHOOK_URL")
    console.print("\nGuides: docs/USAGE_AND_TESTING_GUIDE.md, docs/ADVANCED_FEATURES_GUIDE.md")
