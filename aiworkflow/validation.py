"""Pre-migration validation.

Each rule inspects the project and yields a ValidationResult; a rule that
raises is recorded as a failed result instead of aborting the run.
"""

from __future__ import annotations

import logging
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from rich.console import Console

from .errors import GitRepositoryError
from .migration import MIGRATION_SCRIPTS
from .models import ValidationResult, utc_timestamp
from .workflow_logging import log_error_with_context, log_operation, observability_hooks
from .workspace import ProjectWorkspace, write_json

logger = logging.getLogger("aiworkflow.validation")

MIN_PYTHON = (3, 10)
MIN_FREE_BYTES = 5 * 1024 * 1024
REQUIRED_DIRS = ("docs", ".github")
FIX_DIRS = ("docs", ".github", ".github/ISSUE_TEMPLATE", ".github/workflows")
CONFLICT_CANDIDATES = (
    "docs/PROJECT_CONTEXT.md",
    "docs/WORKFLOW_GUIDE.md",
    ".github/pull_request_template.md",
    "package.json",
)
REPORT_BASENAME = "migration-validation-report"


# ----------------------------------------------------------------------
# Rules
# ----------------------------------------------------------------------


def check_git_status(workspace: ProjectWorkspace) -> Dict[str, Any]:
    if not workspace.has_git_dir():
        return {"passed": False, "message": "Not a Git repository", "details": f"No .git in {workspace.root}"}
    try:
        status = workspace.git("status", "--porcelain")
    except GitRepositoryError as exc:
        return {"passed": False, "message": "Not a Git repository", "details": str(exc)}
    clean = status.strip() == ""
    return {
        "passed": clean,
        "message": "Working tree is clean" if clean else "There are uncommitted changes",
        "details": status.strip() or None,
    }


def check_python_version(workspace: ProjectWorkspace) -> Dict[str, Any]:
    current = ".".join(str(part) for part in sys.version_info[:3])
    ok = sys.version_info[:2] >= MIN_PYTHON
    return {
        "passed": ok,
        "message": f"Python {current} (OK)" if ok else f"Python {current} is too old",
        "details": f"Required: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+, current: {current}",
    }


def check_package_json(workspace: ProjectWorkspace) -> Dict[str, Any]:
    if not workspace.package_json_path.exists():
        return {
            "passed": False,
            "message": "package.json not found",
            "details": "Create one with `npm init` or `aiworkflow validate --fix-auto`",
            "auto_fix": True,
            "fix_action": "create-package-json",
        }
    package_json = workspace.load_package_json()
    if package_json is None:
        return {"passed": False, "message": "package.json could not be parsed"}

    missing = [name for name in ("name", "version") if not package_json.get(name)]
    return {
        "passed": not missing,
        "message": "package.json is valid" if not missing else f"Missing required fields: {', '.join(missing)}",
        "details": f"Missing fields: {', '.join(missing)}" if missing else None,
        "auto_fix": bool(missing),
        "fix_action": "fix-package-json",
    }


def check_directory_structure(workspace: ProjectWorkspace) -> Dict[str, Any]:
    existing = [d for d in REQUIRED_DIRS if (workspace.root / d).is_dir()]
    missing = [d for d in REQUIRED_DIRS if d not in existing]
    return {
        "passed": not missing,
        "message": "Recommended directories present" if not missing else f"Missing directories: {', '.join(missing)}",
        "details": f"Existing: {', '.join(existing)} | Missing: {', '.join(missing)}",
        "auto_fix": True,
        "fix_action": "create-directories",
    }


def check_file_conflicts(workspace: ProjectWorkspace) -> Dict[str, Any]:
    conflicts = [f for f in CONFLICT_CANDIDATES if workspace.exists(f)]
    return {
        "passed": not conflicts,
        "message": "No file conflicts" if not conflicts else f"{len(conflicts)} files may conflict",
        "details": f"Possible conflicts: {', '.join(conflicts)}" if conflicts else None,
    }


def check_dependencies(workspace: ProjectWorkspace) -> Dict[str, Any]:
    package_json = workspace.load_package_json()
    if package_json is None:
        return {"passed": False, "message": "package.json not found"}

    scripts = package_json.get("scripts") or {}
    clashes = [
        name for name, command in MIGRATION_SCRIPTS.items()
        if name in scripts and scripts[name] != command
    ]
    return {
        "passed": not clashes,
        "message": "npm scripts OK" if not clashes else f"{len(clashes)} npm scripts would be overwritten",
        "details": f"Existing scripts: {', '.join(clashes)}" if clashes else None,
    }


def check_disk_space(workspace: ProjectWorkspace) -> Dict[str, Any]:
    free = shutil.disk_usage(workspace.root).free
    ok = free >= MIN_FREE_BYTES
    return {
        "passed": ok,
        "message": "Disk space OK" if ok else "Not enough free disk space",
        "details": f"Template files need about 5 MB; {free // (1024 * 1024)} MB free",
    }


def check_github_integration(workspace: ProjectWorkspace) -> Dict[str, Any]:
    config_path = workspace.root / ".git" / "config"
    if not config_path.exists():
        return {
            "passed": False,
            "message": "Not a Git repository",
            "details": "GitHub integration needs a Git repository",
        }
    config = config_path.read_text(encoding="utf-8")
    has_remote = '[remote "origin"]' in config
    has_github = "github.com" in config
    ok = has_remote and has_github
    if ok:
        details = None
    elif has_remote:
        details = "The origin remote is not on GitHub"
    else:
        details = "No origin remote"
    return {
        "passed": ok,
        "message": "GitHub integration ready" if ok else "No GitHub remote configured",
        "details": details,
    }


@dataclass(slots=True)
class ValidationRule:
    rule_id: str
    name: str
    level: str
    check: Callable[[ProjectWorkspace], Dict[str, Any]]


VALIDATION_RULES: List[ValidationRule] = [
    ValidationRule("git-status", "Git working tree", "critical", check_git_status),
    ValidationRule("python-version", "Python version", "high", check_python_version),
    ValidationRule("package-json", "package.json format", "medium", check_package_json),
    ValidationRule("directory-structure", "Directory structure", "low", check_directory_structure),
    ValidationRule("file-conflicts", "File conflicts", "high", check_file_conflicts),
    ValidationRule("dependencies", "npm scripts", "medium", check_dependencies),
    ValidationRule("disk-space", "Disk space", "low", check_disk_space),
    ValidationRule("github-integration", "GitHub integration", "medium", check_github_integration),
]


# ----------------------------------------------------------------------
# Report
# ----------------------------------------------------------------------


@dataclass(slots=True)
class ValidationReport:
    project: str
    results: List[ValidationResult] = field(default_factory=list)
    generated_at: str = field(default_factory=utc_timestamp)

    @property
    def critical_failures(self) -> List[ValidationResult]:
        return [r for r in self.results if not r.passed and r.level == "critical"]

    @property
    def fixable(self) -> List[ValidationResult]:
        return [r for r in self.results if not r.passed and r.auto_fix]

    def summary(self) -> Dict[str, int]:
        failed = [r for r in self.results if not r.passed]
        return {
            "total": len(self.results),
            "passed": len(self.results) - len(failed),
            "failed": len(failed),
            "warnings": len([r for r in failed if r.level != "critical"]),
            "autoFixable": len(self.fixable),
        }

    def recommendations(self) -> List[Dict[str, Any]]:
        recommendations = []
        high = [r for r in self.results if not r.passed and r.level == "high"]
        if self.critical_failures:
            recommendations.append({
                "priority": "critical",
                "message": "These must be fixed before migrating",
                "actions": [f"- {r.name}: {r.message}" for r in self.critical_failures],
            })
        if high:
            recommendations.append({
                "priority": "high",
                "message": "Recommended fixes for a smoother migration",
                "actions": [f"- {r.name}: {r.message}" for r in high],
            })
        if self.fixable:
            recommendations.append({
                "priority": "info",
                "message": "Some issues can be fixed automatically",
                "actions": [f"Run `aiworkflow validate --fix-auto` to fix {len(self.fixable)} issues"],
            })
        if all(r.passed for r in self.results):
            recommendations.append({
                "priority": "success",
                "message": "Ready to migrate",
                "actions": ["Run `aiworkflow migrate` to start the migration"],
            })
        return recommendations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "project": self.project,
            "summary": self.summary(),
            "details": [r.to_dict() for r in self.results],
            "recommendations": self.recommendations(),
        }

    def to_markdown(self) -> str:
        summary = self.summary()
        lines = [
            "# Pre-migration validation report",
            "",
            f"Generated: {self.generated_at}",
            f"Project: {self.project}",
            "",
            "## Summary",
            "",
            "| Item | Count |",
            "|------|-------|",
            f"| Total rules | {summary['total']} |",
            f"| Passed | {summary['passed']} |",
            f"| Failed | {summary['failed']} |",
            f"| Warnings | {summary['warnings']} |",
            f"| Auto-fixable | {summary['autoFixable']} |",
            "",
            "## Results",
            "",
        ]
        for result in self.results:
            icon = "✅" if result.passed else ("❌" if result.level == "critical" else "⚠️")
            lines.append(f"### {icon} {result.name}")
            lines.append("")
            lines.append(f"- **Level**: {result.level}")
            lines.append(f"- **Result**: {result.message}")
            if result.details:
                lines.append(f"- **Details**: {result.details}")
            if result.auto_fix and not result.passed:
                lines.append("- **Auto-fixable**: yes")
            lines.append("")

        recommendations = self.recommendations()
        if recommendations:
            lines.append("## Recommendations")
            lines.append("")
            for rec in recommendations:
                lines.append(f"### {rec['message']}")
                lines.extend(rec["actions"])
                lines.append("")
        return "\n".join(lines)


class MigrationValidator:
    """Run validation rules against a project and apply automatic fixes."""

    def __init__(self, root: Path | str, rules: Optional[List[ValidationRule]] = None):
        self.workspace = ProjectWorkspace(root)
        self.rules = rules if rules is not None else VALIDATION_RULES

    def run_rule(self, rule: ValidationRule) -> ValidationResult:
        try:
            outcome = rule.check(self.workspace)
        except Exception as e:
            logger.error(f"Validation rule {rule.rule_id} raised: {e}")
            log_error_with_context(e, {"operation": "validate", "rule": rule.rule_id})
            return ValidationResult(
                rule_id=rule.rule_id,
                name=rule.name,
                level=rule.level,
                passed=False,
                message=f"Validation error: {e}",
                details=type(e).__name__,
            )
        return ValidationResult(rule_id=rule.rule_id, name=rule.name, level=rule.level, **outcome)

    def run(self) -> ValidationReport:
        report = ValidationReport(project=self.workspace.root.name)
        with log_operation("validate_migration", rules=len(self.rules)):
            for rule in self.rules:
                result = self.run_rule(rule)
                logger.debug(f"{rule.rule_id}: passed={result.passed} ({result.message})")
                report.results.append(result)

        summary = report.summary()
        observability_hooks.log_workflow_event(
            "migration_validated",
            project_root=str(self.workspace.root),
            passed=summary["passed"],
            failed=summary["failed"],
            critical=len(report.critical_failures),
        )
        return report

    # ------------------------------------------------------------------
    # Automatic fixes
    # ------------------------------------------------------------------

    def create_package_json(self) -> None:
        self.workspace.save_package_json({
            "name": self.workspace.root.name,
            "version": "1.0.0",
            "description": "",
            "main": "index.js",
            "scripts": {"test": 'echo "Error: no test specified" && exit 1'},
            "keywords": [],
            "author": "",
            "license": "ISC",
        })

    def fix_package_json(self) -> None:
        package_json = self.workspace.load_package_json() or {}
        package_json["name"] = package_json.get("name") or self.workspace.root.name
        package_json["version"] = package_json.get("version") or "1.0.0"
        self.workspace.save_package_json(package_json)

    def create_directories(self) -> None:
        for relative in FIX_DIRS:
            (self.workspace.root / relative).mkdir(parents=True, exist_ok=True)

    def apply_fixes(self, report: ValidationReport) -> Dict[str, str]:
        """Apply every available automatic fix; returns ``rule_id -> "fixed" | error message``."""
        actions = {
            "create-package-json": self.create_package_json,
            "fix-package-json": self.fix_package_json,
            "create-directories": self.create_directories,
        }
        outcomes: Dict[str, str] = {}
        for result in report.fixable:
            action = actions.get(result.fix_action or "")
            if action is None:
                outcomes[result.rule_id] = "no automatic fix available"
                continue
            try:
                action()
            except OSError as exc:
                logger.error(f"Automatic fix for {result.rule_id} failed: {exc}")
                outcomes[result.rule_id] = str(exc)
                continue
            logger.info(f"Applied automatic fix {result.fix_action}")
            outcomes[result.rule_id] = "fixed"
        return outcomes

    def write_report(self, report: ValidationReport, fmt: str) -> Path:
        if fmt == "json":
            return write_json(self.workspace.root / f"{REPORT_BASENAME}.json", report.to_dict())
        if fmt == "md":
            path = self.workspace.root / f"{REPORT_BASENAME}.md"
            path.write_text(report.to_markdown(), encoding="utf-8")
            return path
        raise ValueError(f"Unsupported report format '{fmt}'")


def render_report(console: Console, report: ValidationReport, detailed: bool = False) -> None:
    for index, result in enumerate(report.results, start=1):
        console.print(f"\n[{index}/{len(report.results)}] {result.name}")
        if result.passed:
            console.print(f"[green]✅ {result.message}[/green]")
        elif result.level == "critical":
            console.print(f"[red]❌ {result.message}[/red]")
        else:
            console.print(f"[yellow]⚠️  {result.message}[/yellow]")
        if result.auto_fix and not result.passed:
            console.print("[blue]   🔧 auto-fixable[/blue]")
        if detailed and result.details:
            console.print(f"[dim]   Details: {result.details}[/dim]")

    summary = report.summary()
    console.print("\n[bold blue]📊 Validation summary[/bold blue]")
    console.print(f"Total rules: {summary['total']}")
    console.print(f"[green]Passed: {summary['passed']}[/green]")
    console.print(f"[red]Failed: {summary['failed']}[/red]")
    console.print(f"[yellow]Warnings: {summary['warnings']}[/yellow]")
    console.print(f"[blue]Auto-fixable: {summary['autoFixable']}[/blue]")

    icons = {"critical": "🚨", "high": "⚠️", "success": "🎉"}
    for rec in report.recommendations():
        console.print(f"\n{icons.get(rec['priority'], 'ℹ️')} {rec['message']}")
        for action in rec["actions"]:
            console.print(f"   {action}")

    console.print("\n[bold blue]📖 Next steps[/bold blue]")
    if report.critical_failures:
        console.print("1. 🚨 Fix the critical issues:")
        for result in report.critical_failures:
            console.print(f"   - {result.name}: {result.message}")
        console.print("2. Run `aiworkflow validate` again")
    else:
        console.print("1. ✅ Ready: aiworkflow migrate")
        console.print("2. 📚 Read docs/USAGE_AND_TESTING_GUIDE.md")
