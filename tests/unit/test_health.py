"""Unit tests for the post-migration health check."""

import httpx
import pytest
from rich.console import Console

from aiworkflow.github_client import GitHubClient
from aiworkflow.health import (
    COMMAND_PROBES,
    REQUIRED_FILES,
    HealthChecker,
    HealthReport,
    render_report,
)
from aiworkflow.migration import MigrationManager
from aiworkflow.models import HealthCheckResult
from aiworkflow.settings import Settings
from aiworkflow.workflow_logging import performance_monitor


def working_commands(args):
    return 0, f"usage: aiworkflow {args[0]} [-h]\nShow progress and quality information"


def broken_commands(args):
    if args[0] == "context":
        raise OSError("interpreter missing")
    return 1, "error"


def _github(issues):
    def handler(request):
        return httpx.Response(200, json=issues)

    client = httpx.Client(base_url="https://api.github.com", transport=httpx.MockTransport(handler))
    return GitHubClient("acme", "app", client=client)


def _checker(root, **kwargs):
    kwargs.setdefault("command_runner", working_commands)
    return HealthChecker(root, settings=Settings(), **kwargs)


@pytest.fixture
def migrated_project(project_dir):
    manager = MigrationManager(project_dir, settings=Settings())
    analysis = manager.analyze()
    manager.execute(manager.plan(analysis), analysis)
    return project_dir


def _result(check_id, score, passed=True):
    return HealthCheckResult(check_id=check_id, name=check_id, category=check_id, passed=passed, score=score)


class TestHealthChecks:
    """Test cases for the individual checks."""

    def test_files_integrity_missing(self, project_dir):
        """Test missing required files are listed."""
        result = _checker(project_dir).check_files_integrity()

        assert result.passed is False
        assert result.score == 0.0
        assert result.details["missingFiles"] == list(REQUIRED_FILES)
        assert result.recommendations

    def test_files_integrity_short_file(self, migrated_project):
        """Test a file shorter than the minimum counts as corrupted."""
        (migrated_project / "docs" / "WORKFLOW_GUIDE.md").write_text("# Guide\n", encoding="utf-8")

        result = _checker(migrated_project).check_files_integrity()

        assert result.passed is False
        assert result.score == 75.0
        assert result.details["corruptedFiles"] == ["docs/WORKFLOW_GUIDE.md"]

    def test_commands_working(self, project_dir):
        """Test every command check passes when the help text matches."""
        result = _checker(project_dir).check_command_functionality()

        assert result.passed is True
        assert result.score == 100.0
        assert [r["command"] for r in result.details["testResults"]] == [c for c, _ in COMMAND_PROBES]

    def test_commands_broken(self, project_dir):
        """Test failing and raising command checks."""
        result = _checker(project_dir, command_runner=broken_commands).check_command_functionality()

        assert result.passed is False
        assert result.score == 0.0
        assert result.details["testResults"][0]["status"] == "error"
        assert result.details["testResults"][0]["error"] == "interpreter missing"

    def test_commands_missing_expected_text(self, project_dir):
        """Test a zero exit without the expected text is not working."""
        result = _checker(project_dir, command_runner=lambda args: (0, "usage")).check_command_functionality()

        assert result.details["workingCommands"] == 1

    def test_github_integration_without_remote(self, migrated_project):
        """Test three of four checks pass without a Git remote."""
        result = _checker(migrated_project).check_github_integration()

        assert result.passed is True
        assert result.score == 75.0
        assert result.details["checks"][-1] == {"name": "GitHub remote", "status": "warning"}

    def test_ai_context_system(self, migrated_project, tmp_path):
        """Test the context directories and documents are present."""
        assert _checker(migrated_project).check_ai_context_system().score == 100.0
        assert _checker(tmp_path).check_ai_context_system().passed is False

    def test_workflow_metrics_without_git(self, project_dir):
        """Test a directory without Git scores zero."""
        result = _checker(project_dir).check_workflow_metrics()

        assert result.passed is False
        assert result.score == 0.0
        assert "not a Git repository" in result.details["error"]

    @pytest.mark.git
    def test_workflow_metrics(self, git_project):
        """Test commits and log entries are combined."""
        log = git_project / "docs" / "AI_INTERACTION_LOG.md"
        log.parent.mkdir(parents=True)
        log.write_text("# Log\n\n## 2024-05-01 Planning\n\n## 2024-05-02 Review\n", encoding="utf-8")

        result = _checker(git_project).check_workflow_metrics()

        assert result.details["commitCount"] == 1
        assert result.details["issueCount"] == 0
        assert result.details["contextEntries"] == 2
        assert result.score == 12.0
        assert result.passed is True

    def test_count_issues_without_configuration(self, project_dir):
        """Test no GitHub configuration counts zero issues."""
        assert _checker(project_dir).count_issues() == 0

    def test_count_issues_skips_pull_requests(self, project_dir):
        """Test pull requests are not counted as issues."""
        github = _github([{"number": 1}, {"number": 2, "pull_request": {}}, {"number": 3}])

        assert _checker(project_dir, github=github).count_issues() == 2

    def test_count_issues_api_error(self, project_dir):
        """Test API errors count zero issues."""
        client = httpx.Client(
            base_url="https://api.github.com",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        github = GitHubClient("acme", "app", client=client)

        assert _checker(project_dir, github=github).count_issues() == 0

    def test_count_issues_closes_own_client(self, project_dir, monkeypatch):
        """Test a client created from settings is closed afterwards."""
        github = _github([{"number": 1}])
        monkeypatch.setattr(GitHubClient, "from_settings", classmethod(lambda cls, settings: github))

        assert _checker(project_dir).count_issues() == 1
        assert github.client.is_closed

    def test_count_issues_keeps_given_client_open(self, project_dir):
        """Test a client passed in by the caller stays open."""
        github = _github([{"number": 1}])

        _checker(project_dir, github=github).count_issues()

        assert not github.client.is_closed


class TestHealthChecker:
    """Test cases for the full run."""

    def test_run_migrated_project(self, migrated_project):
        """Test a migrated project without Git is healthy."""
        report = _checker(migrated_project).run()

        assert [r.check_id for r in report.results] == [
            "files-integrity", "command-functionality", "github-integration", "ai-context-system", "workflow-metrics",
        ]
        assert report.score == pytest.approx(75.0)
        assert report.passed_count == 4
        assert report.healthy is True
        assert report.verdict() == "good"
        assert performance_monitor.last_value("health_check_duration") is not None

    def test_raising_check_scores_zero(self, migrated_project):
        """Test a check that raises is recorded with its error."""
        checker = _checker(migrated_project)

        def boom():
            raise RuntimeError("disk vanished")

        checker.checks[0] = ("files-integrity", "File integrity", "system", boom)

        result = checker.run().result("files-integrity")

        assert result.passed is False
        assert result.score == 0.0
        assert result.error == "disk vanished"

    def test_fix_issues(self, migrated_project):
        """Test missing required files are restored from the template."""
        (migrated_project / "docs" / "WORKFLOW_GUIDE.md").unlink()
        checker = _checker(migrated_project)

        restored = checker.fix_issues(checker.run())

        assert restored == ["docs/WORKFLOW_GUIDE.md"]
        assert checker.check_files_integrity().passed is True

    def test_fix_issues_nothing_to_do(self, migrated_project):
        """Test a passing report restores nothing."""
        checker = _checker(migrated_project)

        assert checker.fix_issues(checker.run()) == []


class TestHealthReport:
    """Test cases for the report aggregation."""

    @pytest.mark.parametrize("score,verdict", [
        (95, "excellent"), (90, "excellent"), (80, "good"), (60, "attention"), (59.9, "action-required"),
    ])
    def test_verdicts(self, score, verdict):
        """Test verdict thresholds."""
        assert HealthReport(results=[_result("a", score)]).verdict() == verdict

    def test_empty_report(self):
        """Test an empty report scores zero."""
        report = HealthReport()

        assert report.score == 0.0
        assert report.healthy is False

    def test_categories(self):
        """Test per-category averages and pass counts."""
        report = HealthReport(results=[
            HealthCheckResult("a", "A", "system", True, 100.0),
            HealthCheckResult("b", "B", "system", False, 50.0),
        ])

        assert report.categories() == {"system": {"passed": 1, "total": 2, "score": 75.0}}

    def test_to_markdown(self, migrated_project):
        """Test the Markdown report sections."""
        text = _checker(migrated_project).run().to_markdown()

        assert text.startswith("# Post-migration health check")
        assert "**Overall score**: 75.0%" in text
        assert "### Workflow metrics" in text

    def test_render(self, migrated_project):
        """Test the console summary."""
        console = Console(record=True, width=160)

        render_report(console, _checker(migrated_project).run())

        text = console.export_text()
        assert "Health check summary" in text
        assert "Good" in text
