"""Unit tests for pre-migration validation."""

import json

import pytest
from rich.console import Console

from aiworkflow.migration import MIGRATION_SCRIPTS
from aiworkflow.validation import (
    REPORT_BASENAME,
    VALIDATION_RULES,
    MigrationValidator,
    ValidationReport,
    ValidationRule,
    check_dependencies,
    check_directory_structure,
    check_file_conflicts,
    check_git_status,
    check_github_integration,
    check_package_json,
    render_report,
)
from aiworkflow.workflow_logging import observability_hooks
from aiworkflow.workspace import ProjectWorkspace, read_json


def _results(report):
    return {result.rule_id: result for result in report.results}


def _rule(rule_id, level, passed, **extra):
    return ValidationRule(rule_id, rule_id.title(), level, lambda workspace: {
        "passed": passed, "message": "ok" if passed else "broken", **extra,
    })


class TestRules:
    """Test cases for the individual validation rules."""

    def test_git_status_without_repository(self, project_dir):
        """Test a directory without .git fails."""
        outcome = check_git_status(ProjectWorkspace(project_dir))

        assert outcome["passed"] is False
        assert outcome["message"] == "Not a Git repository"

    @pytest.mark.git
    def test_git_status_clean(self, git_project):
        """Test a clean working tree passes."""
        assert check_git_status(ProjectWorkspace(git_project))["passed"] is True

    @pytest.mark.git
    def test_git_status_dirty(self, git_project):
        """Test uncommitted changes fail with the porcelain output."""
        (git_project / "new.txt").write_text("x", encoding="utf-8")

        outcome = check_git_status(ProjectWorkspace(git_project))

        assert outcome["passed"] is False
        assert "new.txt" in outcome["details"]

    def test_package_json_missing(self, tmp_path):
        """Test a missing package.json is auto-fixable."""
        outcome = check_package_json(ProjectWorkspace(tmp_path))

        assert outcome["passed"] is False
        assert outcome["auto_fix"] is True
        assert outcome["fix_action"] == "create-package-json"

    def test_package_json_missing_fields(self, tmp_path):
        """Test missing name and version are reported."""
        (tmp_path / "package.json").write_text(json.dumps({"description": "x"}), encoding="utf-8")

        outcome = check_package_json(ProjectWorkspace(tmp_path))

        assert outcome["passed"] is False
        assert outcome["message"] == "Missing required fields: name, version"
        assert outcome["fix_action"] == "fix-package-json"

    def test_package_json_unparseable(self, tmp_path):
        """Test invalid JSON fails without a fix."""
        (tmp_path / "package.json").write_text("{not json", encoding="utf-8")

        outcome = check_package_json(ProjectWorkspace(tmp_path))

        assert outcome["passed"] is False
        assert "auto_fix" not in outcome

    def test_package_json_valid(self, project_dir):
        """Test a package.json with name and version passes."""
        outcome = check_package_json(ProjectWorkspace(project_dir))

        assert outcome["passed"] is True
        assert outcome["auto_fix"] is False

    def test_directory_structure(self, tmp_path):
        """Test docs and .github are both required."""
        (tmp_path / "docs").mkdir()

        outcome = check_directory_structure(ProjectWorkspace(tmp_path))

        assert outcome["passed"] is False
        assert outcome["message"] == "Missing directories: .github"

    def test_file_conflicts(self, project_dir):
        """Test existing candidate files are listed."""
        outcome = check_file_conflicts(ProjectWorkspace(project_dir))

        assert outcome["passed"] is False
        assert outcome["details"] == "Possible conflicts: package.json"

    def test_dependencies_clash(self, tmp_path):
        """Test a script with a different command would be overwritten."""
        scripts = {"setup": "make setup", "progress-update": MIGRATION_SCRIPTS["progress-update"]}
        (tmp_path / "package.json").write_text(json.dumps({"name": "a", "scripts": scripts}), encoding="utf-8")

        outcome = check_dependencies(ProjectWorkspace(tmp_path))

        assert outcome["passed"] is False
        assert outcome["details"] == "Existing scripts: setup"

    def test_github_integration(self, tmp_path):
        """Test the origin remote must point at GitHub."""
        (tmp_path / ".git").mkdir()
        config = tmp_path / ".git" / "config"

        config.write_text('[remote "origin"]\n\turl = https://gitlab.com/a/b.git\n', encoding="utf-8")
        assert check_github_integration(ProjectWorkspace(tmp_path))["details"] == "The origin remote is not on GitHub"

        config.write_text('[remote "origin"]\n\turl = https://github.com/a/b.git\n', encoding="utf-8")
        assert check_github_integration(ProjectWorkspace(tmp_path))["passed"] is True

    def test_rule_order(self):
        """Test the rules run in a fixed order with fixed levels."""
        assert [(r.rule_id, r.level) for r in VALIDATION_RULES] == [
            ("git-status", "critical"),
            ("python-version", "high"),
            ("package-json", "medium"),
            ("directory-structure", "low"),
            ("file-conflicts", "high"),
            ("dependencies", "medium"),
            ("disk-space", "low"),
            ("github-integration", "medium"),
        ]


class TestMigrationValidator:
    """Test cases for MigrationValidator."""

    def test_run_project_without_git(self, project_dir):
        """Test a project without git has a critical failure."""
        report = MigrationValidator(project_dir).run()

        results = _results(report)
        assert len(report.results) == len(VALIDATION_RULES)
        assert [r.rule_id for r in report.critical_failures] == ["git-status"]
        assert results["python-version"].passed is True
        assert results["package-json"].passed is True
        assert results["directory-structure"].auto_fix is True
        assert report.project == "project"

    def test_run_emits_event(self, project_dir):
        """Test the validation event reaches the hooks."""
        events = []
        observability_hooks.register_hook("migration_validated", lambda **data: events.append(data))

        MigrationValidator(project_dir).run()

        assert len(events) == 1
        assert events[0]["project_root"] == str(project_dir.resolve())
        assert events[0]["critical"] == 1

    def test_raising_rule_is_recorded(self, tmp_path):
        """Test a rule that raises becomes a failed result."""
        def broken(workspace):
            raise RuntimeError("boom")

        report = MigrationValidator(tmp_path, rules=[ValidationRule("broken", "Broken", "high", broken)]).run()

        result = report.results[0]
        assert result.passed is False
        assert result.message == "Validation error: boom"
        assert result.details == "RuntimeError"

    def test_summary_and_recommendations(self, tmp_path):
        """Test counts and recommendation priorities."""
        report = MigrationValidator(tmp_path, rules=[
            _rule("git", "critical", False),
            _rule("conflicts", "high", False),
            _rule("dirs", "low", False, auto_fix=True, fix_action="create-directories"),
            _rule("disk", "low", True),
        ]).run()

        assert report.summary() == {"total": 4, "passed": 1, "failed": 3, "warnings": 2, "autoFixable": 1}
        assert [r["priority"] for r in report.recommendations()] == ["critical", "high", "info"]
        assert report.recommendations()[2]["actions"] == ["Run `aiworkflow validate --fix-auto` to fix 1 issues"]

    def test_all_passing(self, tmp_path):
        """Test a fully passing report recommends migrating."""
        report = MigrationValidator(tmp_path, rules=[_rule("ok", "critical", True)]).run()

        assert report.critical_failures == []
        assert report.recommendations() == [{
            "priority": "success",
            "message": "Ready to migrate",
            "actions": ["Run `aiworkflow migrate` to start the migration"],
        }]

    def test_apply_fixes(self, tmp_path):
        """Test package.json and directories are created."""
        validator = MigrationValidator(tmp_path)
        report = validator.run()

        outcomes = validator.apply_fixes(report)

        assert outcomes["package-json"] == "fixed"
        assert outcomes["directory-structure"] == "fixed"
        package_json = read_json(tmp_path / "package.json")
        assert package_json["name"] == tmp_path.name
        assert package_json["version"] == "1.0.0"
        assert (tmp_path / ".github" / "ISSUE_TEMPLATE").is_dir()
        assert (tmp_path / ".github" / "workflows").is_dir()
        rerun = _results(validator.run())
        assert rerun["package-json"].passed is True
        assert rerun["directory-structure"].passed is True

    def test_fix_package_json_keeps_fields(self, tmp_path):
        """Test only the missing fields are filled in."""
        (tmp_path / "package.json").write_text(json.dumps({"name": "keep-me", "private": True}), encoding="utf-8")
        validator = MigrationValidator(tmp_path)

        validator.apply_fixes(validator.run())

        assert read_json(tmp_path / "package.json") == {"name": "keep-me", "private": True, "version": "1.0.0"}

    def test_unknown_fix_action(self, tmp_path):
        """Test a fixable result without a known action is reported."""
        validator = MigrationValidator(tmp_path, rules=[_rule("odd", "low", False, auto_fix=True, fix_action="dance")])

        assert validator.apply_fixes(validator.run()) == {"odd": "no automatic fix available"}

    def test_write_json_report(self, tmp_path):
        """Test the JSON report layout."""
        validator = MigrationValidator(tmp_path, rules=[_rule("ok", "low", True)])

        path = validator.write_report(validator.run(), "json")

        assert path == tmp_path / f"{REPORT_BASENAME}.json"
        data = read_json(path)
        assert data["summary"]["total"] == 1
        assert data["details"][0]["ruleId"] == "ok"

    def test_write_markdown_report(self, tmp_path):
        """Test the Markdown report lists results."""
        validator = MigrationValidator(tmp_path, rules=[_rule("git", "critical", False)])

        path = validator.write_report(validator.run(), "md")

        text = path.read_text(encoding="utf-8")
        assert text.startswith("# Pre-migration validation report")
        assert "### ❌ Git" in text
        assert "| Failed | 1 |" in text

    def test_write_unknown_format(self, tmp_path):
        """Test unsupported formats are rejected."""
        with pytest.raises(ValueError):
            MigrationValidator(tmp_path).write_report(ValidationReport(project="x"), "html")


class TestRenderReport:
    """Test cases for the console rendering."""

    def test_render_critical(self, tmp_path):
        """Test critical failures are listed in the next steps."""
        console = Console(record=True, width=120)
        report = MigrationValidator(tmp_path, rules=[_rule("git", "critical", False, details="No .git")]).run()

        render_report(console, report, detailed=True)

        text = console.export_text()
        assert "Validation summary" in text
        assert "Details: No .git" in text
        assert "Fix the critical issues" in text
