"""Post-migration health check.

Five checks score the installed workflow from 0 to 100; the overall score is
their mean. A check that raises scores 0 and carries the error message.
"""

from __future__ import annotations

import logging
import re
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from rich.console import Console

from .errors import GitHubAPIError, GitRepositoryError
from .github_client import GitHubClient
from .migration import MigrationManager
from .models import HealthCheckResult, utc_timestamp
from .settings import Settings
from .workflow_logging import log_error_with_context, log_operation, log_performance, observability_hooks
from .workspace import ProjectWorkspace, write_json

logger = logging.getLogger("aiworkflow.health")

REQUIRED_FILES = (
    "docs/PROJECT_CONTEXT.md",
    "docs/WORKFLOW_GUIDE.md",
    "docs/AI_INTERACTION_LOG.md",
    ".github/pull_request_template.md",
)
MIN_FILE_LENGTH = 50

# subcommand -> text its --help output must contain
COMMAND_PROBES = (
    ("context", "usage"),
    ("progress", "progress"),
    ("evaluate-quality", "quality"),
)
COMMAND_TIMEOUT = 5

LOG_ENTRY = re.compile(r"^## \d{4}-\d{2}-\d{2}", re.MULTILINE)
PASS_SCORE = 60
REPORT_BASENAME = "migration-health-report"

# (args) -> (returncode, output)
CommandRunner = Callable[[Sequence[str]], "tuple[int, str]"]


def run_aiworkflow(args: Sequence[str]) -> "tuple[int, str]":
    completed = subprocess.run(
        [sys.executable, "-m", "aiworkflow", *args],
        capture_output=True,
        text=True,
        timeout=COMMAND_TIMEOUT,
        check=False,
    )
    return completed.returncode, completed.stdout + completed.stderr


@dataclass(slots=True)
class HealthReport:
    results: List[HealthCheckResult] = field(default_factory=list)
    timestamp: str = field(default_factory=utc_timestamp)

    @property
    def score(self) -> float:
        if not self.results:
            return 0.0
        return sum(r.score for r in self.results) / len(self.results)

    @property
    def passed_count(self) -> int:
        return len([r for r in self.results if r.passed])

    @property
    def healthy(self) -> bool:
        return self.score >= PASS_SCORE

    @property
    def critical_issues(self) -> List[HealthCheckResult]:
        """Checks that could not run at all."""
        return [r for r in self.results if r.error]

    def categories(self) -> Dict[str, Dict[str, Any]]:
        categories: Dict[str, Dict[str, Any]] = {}
        for result in self.results:
            entry = categories.setdefault(result.category, {"passed": 0, "total": 0, "score": 0.0})
            entry["total"] += 1
            entry["score"] += result.score
            if result.passed:
                entry["passed"] += 1
        for entry in categories.values():
            entry["score"] = entry["score"] / entry["total"]
        return categories

    def recommendations(self) -> List[str]:
        return [rec for r in self.results for rec in r.recommendations]

    def verdict(self) -> str:
        if self.score >= 90:
            return "excellent"
        if self.score >= 75:
            return "good"
        if self.score >= PASS_SCORE:
            return "attention"
        return "action-required"

    def result(self, check_id: str) -> Optional[HealthCheckResult]:
        return next((r for r in self.results if r.check_id == check_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "overall": {"passed": self.passed_count, "total": len(self.results), "score": round(self.score, 1)},
            "verdict": self.verdict(),
            "categories": self.categories(),
            "checks": {r.check_id: r.to_dict() for r in self.results},
            "criticalIssues": [r.check_id for r in self.critical_issues],
            "recommendations": self.recommendations(),
        }

    def to_markdown(self) -> str:
        lines = [
            "# Post-migration health check",
            "",
            f"**Run at**: {self.timestamp}",
            f"**Overall score**: {self.score:.1f}%",
            f"**Passed checks**: {self.passed_count}/{len(self.results)}",
            "",
            "## Categories",
            "",
        ]
        for category, data in self.categories().items():
            lines.append(f"- **{category}**: {data['score']:.1f}% ({data['passed']}/{data['total']})")
        lines += ["", "## Checks", ""]
        for result in self.results:
            lines.append(f"### {result.name}")
            lines.append(f"- **Status**: {'✅ passed' if result.passed else '❌ failed'}")
            lines.append(f"- **Score**: {result.score:.1f}%")
            lines.append(f"- **Category**: {result.category}")
            if result.error:
                lines.append(f"- **Error**: {result.error}")
            lines.append("")
        lines += ["## Recommendations", ""]
        recommendations = self.recommendations()
        if recommendations:
            lines += [f"{i}. {rec}" for i, rec in enumerate(recommendations, start=1)]
        else:
            lines.append("No recommendations.")
        lines += ["", "---", "*Generated by `aiworkflow health`*", ""]
        return "\n".join(lines)


class HealthChecker:
    """Run the post-migration health checks for a project."""

    def __init__(
        self,
        root: Path | str,
        settings: Optional[Settings] = None,
        command_runner: Optional[CommandRunner] = None,
        github: Optional[GitHubClient] = None,
    ):
        self.workspace = ProjectWorkspace(root)
        self.settings = settings or Settings.from_env()
        self.command_runner = command_runner or run_aiworkflow
        self.github = github
        self.checks: List[tuple[str, str, str, Callable[[], HealthCheckResult]]] = [
            ("files-integrity", "File integrity", "system", self.check_files_integrity),
            ("command-functionality", "Command functionality", "functionality", self.check_command_functionality),
            ("github-integration", "GitHub integration", "integration", self.check_github_integration),
            ("ai-context-system", "AI context system", "ai-features", self.check_ai_context_system),
            ("workflow-metrics", "Workflow metrics", "metrics", self.check_workflow_metrics),
        ]

    def _result(self, check_id: str, **kwargs: Any) -> HealthCheckResult:
        _, name, category, _ = next(c for c in self.checks if c[0] == check_id)
        return HealthCheckResult(check_id=check_id, name=name, category=category, **kwargs)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_files_integrity(self) -> HealthCheckResult:
        missing, corrupted = [], []
        for relative in REQUIRED_FILES:
            path = self.workspace.root / relative
            if not path.exists():
                missing.append(relative)
                continue
            try:
                if len(path.read_text(encoding="utf-8")) < MIN_FILE_LENGTH:
                    corrupted.append(relative)
            except (OSError, UnicodeDecodeError):
                corrupted.append(relative)

        healthy = len(REQUIRED_FILES) - len(missing) - len(corrupted)
        return self._result(
            "files-integrity",
            passed=not missing and not corrupted,
            score=healthy / len(REQUIRED_FILES) * 100,
            details={
                "total": len(REQUIRED_FILES),
                "missing": len(missing),
                "corrupted": len(corrupted),
                "missingFiles": missing,
                "corruptedFiles": corrupted,
            },
            recommendations=(
                ["Re-run the migration or restore missing files with `aiworkflow health --fix-issues`"]
                if missing else []
            ),
        )

    def check_command_functionality(self) -> HealthCheckResult:
        results = []
        for command, expected in COMMAND_PROBES:
            try:
                code, output = self.command_runner([command, "--help"])
            except (OSError, subprocess.SubprocessError) as exc:
                results.append({"command": command, "status": "error", "working": False, "error": str(exc)})
                continue
            results.append({
                "command": command,
                "status": "ok" if code == 0 else "error",
                "working": code == 0 and expected in output.lower(),
            })

        working = len([r for r in results if r["working"]])
        return self._result(
            "command-functionality",
            passed=working == len(COMMAND_PROBES),
            score=working / len(COMMAND_PROBES) * 100,
            details={"testResults": results, "workingCommands": working, "totalCommands": len(COMMAND_PROBES)},
            recommendations=(
                ["Reinstall the package (`pip install ai-workflow-kit`) so every subcommand is available"]
                if working < len(COMMAND_PROBES) else []
            ),
        )

    def check_github_integration(self) -> HealthCheckResult:
        root = self.workspace.root
        checks = [
            {"name": "GitHub Actions workflow", "status": "ok" if (root / ".github/workflows/auto-context-bridge.yml").exists() else "missing"},
            {"name": "PR template", "status": "ok" if (root / ".github/pull_request_template.md").exists() else "missing"},
            {"name": "Issue templates", "status": "ok" if (root / ".github/ISSUE_TEMPLATE").exists() else "missing"},
        ]
        try:
            remotes = self.workspace.git("remote", "-v") if self.workspace.has_git_dir() else ""
            checks.append({"name": "GitHub remote", "status": "ok" if "github.com" in remotes else "warning"})
        except GitRepositoryError:
            checks.append({"name": "GitHub remote", "status": "error"})

        ok = len([c for c in checks if c["status"] == "ok"])
        return self._result(
            "github-integration",
            passed=ok >= 3,
            score=ok / len(checks) * 100,
            details={"checks": checks, "okCount": ok, "totalChecks": len(checks)},
            recommendations=(
                ["GitHub configuration files are missing; re-run the migration"] if ok < 3 else []
            ),
        )

    def check_ai_context_system(self) -> HealthCheckResult:
        entries = [
            ("ai-context directory", self.workspace.context_dir),
            ("ai-prompts directory", self.workspace.prompts_dir),
            ("PROJECT_CONTEXT.md", self.workspace.docs_dir / "PROJECT_CONTEXT.md"),
            ("AI_INTERACTION_LOG.md", self.workspace.interaction_log_path),
        ]
        details = [{"name": name, "path": str(path), "status": "ok" if path.exists() else "missing"} for name, path in entries]
        score = 25 * len([d for d in details if d["status"] == "ok"])
        return self._result(
            "ai-context-system",
            passed=score >= 75,
            score=float(score),
            details={"checks": details},
            recommendations=(
                ["The AI context system is incomplete; run `aiworkflow setup`"] if score < 75 else []
            ),
        )

    def count_issues(self) -> int:
        """Issue count from the GitHub API, or 0 when GitHub is not configured."""
        owns_client = self.github is None
        try:
            github = self.github or GitHubClient.from_settings(self.settings)
        except GitHubAPIError:
            return 0
        try:
            return len(github.list_issues(state="all", max_pages=1))
        except GitHubAPIError as exc:
            logger.warning(f"Issue count unavailable: {exc}")
            return 0
        finally:
            if owns_client:
                github.close()

    def check_workflow_metrics(self) -> HealthCheckResult:
        try:
            if not self.workspace.has_git_dir():
                raise GitRepositoryError(f"{self.workspace.root} is not a Git repository")
            commits = int(self.workspace.git("rev-list", "--count", "--since=30 days ago", "HEAD").strip() or 0)
        except (GitRepositoryError, ValueError) as exc:
            return self._result(
                "workflow-metrics",
                passed=False,
                score=0.0,
                details={"error": str(exc)},
                recommendations=["Reading the Git history failed; check the repository state"],
            )

        issues = self.count_issues()
        log_path = self.workspace.interaction_log_path
        entries = len(LOG_ENTRY.findall(log_path.read_text(encoding="utf-8"))) if log_path.exists() else 0
        score = min(100, commits * 2 + issues + entries * 5)
        return self._result(
            "workflow-metrics",
            passed=score > 0,
            score=float(score),
            details={"commitCount": commits, "issueCount": issues, "contextEntries": entries, "calculatedScore": score},
            recommendations=(
                ["Project activity is low; record AI work in docs/AI_INTERACTION_LOG.md and phase contexts"]
                if score < 20 else []
            ),
        )

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    @log_performance("health_check")
    def run(self) -> HealthReport:
        report = HealthReport()
        with log_operation("health_check", checks=len(self.checks)):
            for check_id, name, category, check in self.checks:
                try:
                    result = check()
                except Exception as e:
                    logger.error(f"Health check {check_id} raised: {e}")
                    log_error_with_context(e, {"operation": "health_check", "check": check_id})
                    result = HealthCheckResult(
                        check_id=check_id, name=name, category=category, passed=False, score=0.0, error=str(e)
                    )
                logger.debug(f"{check_id}: {result.score:.1f}% passed={result.passed}")
                report.results.append(result)

        observability_hooks.log_workflow_event(
            "health_checked",
            project_root=str(self.workspace.root),
            score=round(report.score, 1),
            passed=report.passed_count,
        )
        return report

    def fix_issues(self, report: HealthReport, template_root: Optional[Path | str] = None) -> List[str]:
        """Restore missing required files from the template; returns the restored paths."""
        result = report.result("files-integrity")
        if result is None or result.passed:
            return []
        manager = MigrationManager(self.workspace.root, template_root, self.settings)
        restored = [f for f in result.details.get("missingFiles", []) if manager.copy_template(f)]
        logger.info(f"Restored {len(restored)} missing files from the template")
        return restored

    def write_report(self, report: HealthReport, fmt: str) -> Path:
        if fmt == "json":
            return write_json(self.workspace.root / f"{REPORT_BASENAME}.json", report.to_dict())
        if fmt == "md":
            path = self.workspace.root / f"{REPORT_BASENAME}.md"
            path.write_text(report.to_markdown(), encoding="utf-8")
            return path
        raise ValueError(f"Unsupported report format '{fmt}'")


VERDICTS = {
    "excellent": "[green]🎉 Excellent: the migration succeeded and every feature works[/green]",
    "good": "[green]✅ Good: the migration succeeded and the core features work[/green]",
    "attention": "[yellow]⚠️ Attention: some problems were found; see the recommendations[/yellow]",
    "action-required": "[red]❌ Action required: serious problems; review the migration[/red]",
}


def _colour(score: float) -> str:
    return "green" if score >= 80 else "yellow" if score >= 60 else "red"


def render_report(console: Console, report: HealthReport, detailed: bool = False) -> None:
    for result in report.results:
        mark = "[green]✅" if result.passed else "[red]❌"
        suffix = f" - {result.error}" if result.error else ""
        console.print(f"{mark} {result.name}: {result.score:.1f}%{suffix}[/]")
        if detailed:
            console.print(result.details)

    console.print("\n[bold blue]📊 Health check summary[/bold blue]")
    console.print(f"Overall score: [{_colour(report.score)}]{report.score:.1f}%[/]")
    console.print(f"Passed checks: {report.passed_count}/{len(report.results)}")

    console.print("\n📋 Categories:")
    for category, data in report.categories().items():
        console.print(f"  {category}: [{_colour(data['score'])}]{data['score']:.1f}%[/] ({data['passed']}/{data['total']})")

    recommendations = report.recommendations()
    if recommendations:
        console.print("\n[yellow]💡 Recommendations:[/yellow]")
        for index, rec in enumerate(recommendations, start=1):
            console.print(f"  {index}. {rec}")

    console.print("\n🎯 Verdict:")
    console.print(VERDICTS[report.verdict()])
