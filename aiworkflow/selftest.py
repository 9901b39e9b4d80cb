"""End-to-end self test of the migration commands.

Builds a mock existing project, runs the migration subcommands against it in
subprocesses (``python -m aiworkflow``) and reports results and timings.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from rich.console import Console

from .errors import GitRepositoryError
from .workspace import run_git, write_json

logger = logging.getLogger("aiworkflow.selftest")

TEST_PROJECT_NAME = "migration-test-project"
COMMAND_TIMEOUT = 60
FULL_MIGRATION_TIMEOUT = 120
ANALYSIS_BUDGET_MS = 10000
VALIDATION_BUDGET_MS = 5000

MOCK_PROJECT = {
    "package.json": {
        "name": "existing-project",
        "version": "1.0.0",
        "scripts": {"start": "node app.js", "test": 'echo "No tests specified"'},
        "dependencies": {"express": "^4.18.0"},
    },
    "app.js": (
        "const express = require('express');\n"
        "const app = express();\n\n"
        "app.get('/', (req, res) => {\n"
        "  res.send('Hello World!');\n"
        "});\n\n"
        "app.listen(3000, () => {\n"
        "  console.log('Server running on port 3000');\n"
        "});\n"
    ),
    "README.md": "# Existing Project\n\nThis is an existing project for migration testing.\n",
    "docs/old-spec.md": "# Old Specification\n\nLegacy documentation.\n",
}


@dataclass(slots=True)
class TestOutcome:
    name: str
    status: str
    duration_ms: int = 0
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status == "passed"


@dataclass(slots=True)
class PerformanceOutcome:
    name: str
    duration_ms: int
    passed: bool


@dataclass(slots=True)
class SelfTestReport:
    environment: Path
    tests: List[TestOutcome] = field(default_factory=list)
    performance: List[PerformanceOutcome] = field(default_factory=list)
    full_migration: Optional[bool] = None

    @property
    def succeeded(self) -> bool:
        return all(t.passed for t in self.tests) and self.full_migration is not False

    def counts(self) -> Dict[str, int]:
        return {
            "total": len(self.tests),
            "passed": len([t for t in self.tests if t.status == "passed"]),
            "failed": len([t for t in self.tests if t.status == "failed"]),
            "errors": len([t for t in self.tests if t.status == "error"]),
        }


def create_mock_project(path: Path) -> Path:
    """Write the mock project and commit it when git is available."""
    path.mkdir(parents=True, exist_ok=True)
    for relative, content in MOCK_PROJECT.items():
        target = path / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, dict):
            write_json(target, content)
        else:
            target.write_text(content, encoding="utf-8")

    try:
        run_git(path, "init", "-q")
        run_git(path, "remote", "add", "origin", "https://github.com/example/existing-project.git")
        run_git(path, "add", ".")
        run_git(
            path,
            "-c", "user.name=aiworkflow",
            "-c", "user.email=selftest@example.invalid",
            "commit", "-q", "-m", "Initial commit",
        )
    except GitRepositoryError as exc:
        logger.warning(f"Git setup skipped: {exc}")
    return path


class SelfTestRunner:
    def __init__(
        self,
        environment: Optional[Path | str] = None,
        console: Optional[Console] = None,
        verbose: bool = False,
    ):
        if environment is None:
            environment = Path(tempfile.mkdtemp(prefix="aiworkflow-selftest-")) / TEST_PROJECT_NAME
        self.environment = Path(environment).resolve()
        self.console = console or Console()
        self.verbose = verbose

    def aiworkflow(self, *args: str, timeout: int = COMMAND_TIMEOUT) -> subprocess.CompletedProcess:
        return subprocess.run(
            [sys.executable, "-m", "aiworkflow", *args, "--root", str(self.environment)],
            cwd=self.environment,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )

    def run_test(self, name: str, test: Callable[[], bool]) -> TestOutcome:
        self.console.print(f"[yellow]  🔍 {name}...[/yellow]")
        start = time.perf_counter()
        try:
            ok = test()
        except (OSError, subprocess.SubprocessError) as exc:
            self.console.print(f"[red]    ❌ {name} error: {exc}[/red]")
            return TestOutcome(name=name, status="error", error=str(exc))
        duration = int((time.perf_counter() - start) * 1000)
        if ok:
            self.console.print(f"[green]    ✅ {name} passed ({duration}ms)[/green]")
            return TestOutcome(name=name, status="passed", duration_ms=duration)
        self.console.print(f"[red]    ❌ {name} failed[/red]")
        return TestOutcome(name=name, status="failed", duration_ms=duration, error="Test assertion failed")

    def _output_contains(self, args: Sequence[str], *needles: str) -> Callable[[], bool]:
        def test() -> bool:
            completed = self.aiworkflow(*args)
            output = (completed.stdout + completed.stderr).lower()
            if self.verbose:
                self.console.print(completed.stdout + completed.stderr, markup=False)
            return any(needle.lower() in output for needle in needles)
        return test

    def run_test_cases(self) -> List[TestOutcome]:
        self.console.print("\n[bold blue]🧪 Running integration tests[/bold blue]")
        return [
            self.run_test("Phase detection", self._output_contains(["detect-phase"], "phase")),
            self.run_test("Pre-migration validation", self._output_contains(["validate"], "validation summary")),
            self.run_test("Migration analysis", self._output_contains(["migrate", "--analyze-only"], "project analysis")),
            self.run_test("Staged migration status", self._output_contains(["staged", "--status"], "migration")),
            self.run_test("Backup listing", lambda: self.aiworkflow("rollback", "--list-backups").returncode == 0),
        ]

    def _timed(self, name: str, args: Sequence[str], budget_ms: int) -> PerformanceOutcome:
        start = time.perf_counter()
        try:
            completed = self.aiworkflow(*args)
        except subprocess.SubprocessError as exc:
            logger.warning(f"{name} timing failed: {exc}")
            return PerformanceOutcome(name=name, duration_ms=0, passed=False)
        duration = int((time.perf_counter() - start) * 1000)
        # validate exits 1 on critical findings; only a crash counts as failure here
        crashed = completed.returncode not in (0, 1)
        return PerformanceOutcome(name=name, duration_ms=duration, passed=not crashed and duration < budget_ms)

    def run_performance_tests(self) -> List[PerformanceOutcome]:
        self.console.print("\n[bold blue]⚡ Performance tests[/bold blue]")
        results = [
            self._timed("Analysis speed", ["migrate", "--analyze-only"], ANALYSIS_BUDGET_MS),
            self._timed("Validation speed", ["validate"], VALIDATION_BUDGET_MS),
        ]
        for result in results:
            mark = "[green]✅[/green]" if result.passed else "[red]❌[/red]"
            self.console.print(f"  {mark} {result.name}: {result.duration_ms}ms")
        return results

    def run_full_migration(self) -> bool:
        self.console.print("\n[bold blue]🚀 Full migration test[/bold blue]")
        try:
            migrated = self.aiworkflow("migrate", "--force", "--phase", "poc", timeout=FULL_MIGRATION_TIMEOUT)
        except subprocess.SubprocessError as exc:
            self.console.print(f"[red]❌ Migration failed: {exc}[/red]")
            return False
        if migrated.returncode != 0:
            self.console.print(f"[red]❌ Migration failed: {migrated.stderr.strip()}[/red]")
            return False
        self.console.print("[green]✅ Migration succeeded[/green]")

        health = self.aiworkflow("health")
        if health.returncode == 0:
            self.console.print("[green]✅ Post-migration health check passed[/green]")
        else:
            self.console.print("[yellow]⚠️ Health check reported warnings[/yellow]")
        return True

    def run(self, full_migration: bool = False) -> SelfTestReport:
        self.console.print("[blue]🔧 Preparing the test environment...[/blue]")
        create_mock_project(self.environment)
        self.console.print(f"[green]✅ Test environment ready: {self.environment}[/green]")

        report = SelfTestReport(environment=self.environment)
        report.tests = self.run_test_cases()
        report.performance = self.run_performance_tests()
        if full_migration:
            report.full_migration = self.run_full_migration()
        return report

    def cleanup(self) -> None:
        shutil.rmtree(self.environment, ignore_errors=True)
        parent = self.environment.parent
        if parent.name.startswith("aiworkflow-selftest-"):
            shutil.rmtree(parent, ignore_errors=True)


def render_report(console: Console, report: SelfTestReport, verbose: bool = False) -> None:
    counts = report.counts()
    console.print("\n[bold blue]📊 Self test summary[/bold blue]")
    console.print(f"Total: {counts['total']}")
    console.print(f"[green]Passed[/green]: {counts['passed']}")
    console.print(f"[red]Failed[/red]: {counts['failed']}")
    console.print(f"[yellow]Errors[/yellow]: {counts['errors']}")
    if report.full_migration is not None:
        console.print(f"Full migration: {'[green]passed[/green]' if report.full_migration else '[red]failed[/red]'}")

    if verbose or counts["failed"] or counts["errors"]:
        console.print("\n📋 Details:")
        icons = {"passed": "✅", "failed": "❌", "error": "⚠️"}
        for test in report.tests:
            console.print(f"  {icons[test.status]} {test.name} ({test.duration_ms}ms)")
            if test.error and verbose:
                console.print(f"[dim]    {test.error}[/dim]")

    if report.succeeded:
        console.print("\n🎯 Result: [green]✅ all migration commands work[/green]")
    else:
        console.print("\n🎯 Result: [red]❌ some commands have problems; see the details above[/red]")
