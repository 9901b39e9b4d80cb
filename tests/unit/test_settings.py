"""Unit tests for environment-driven settings."""

from pathlib import Path

import pytest

from aiworkflow.settings import BUNDLED_TEMPLATE_ROOT, Settings, resolve_project_root


class TestSettings:
    """Test cases for Settings."""

    def test_defaults_from_empty_env(self):
        """Test an empty environment gives defaults."""
        settings = Settings.from_env({})

        assert settings.github_token is None
        assert settings.github_actions is False
        assert settings.log_level == "WARNING"
        assert settings.repository_slug() is None

    def test_from_env_values(self, tmp_path):
        """Test every variable is read."""
        settings = Settings.from_env({
            "GITHUB_TOKEN": "token",
            "GITHUB_ACTIONS": "true",
            "GITHUB_OUTPUT": str(tmp_path / "output"),
            "AIWORKFLOW_LOG_LEVEL": "DEBUG",
            "SLACK_WEBHOOK_URL": "https://hooks.slack.test/x",
            "TEAMS_WEBHOOK_URL": "",
        })

        assert settings.github_token == "token"
        assert settings.github_actions is True
        assert settings.github_output == tmp_path / "output"
        assert settings.log_level == "DEBUG"
        assert settings.slack_webhook_url == "https://hooks.slack.test/x"
        assert settings.teams_webhook_url is None

    def test_repository_slug_from_owner_and_repo(self):
        """Test GITHUB_OWNER and GITHUB_REPO take precedence."""
        settings = Settings.from_env({
            "GITHUB_OWNER": "acme",
            "GITHUB_REPO": "app",
            "GITHUB_REPOSITORY": "other/repo",
        })

        assert settings.repository_slug() == ("acme", "app")

    def test_repository_slug_from_repository(self):
        """Test GITHUB_REPOSITORY is split."""
        assert Settings.from_env({"GITHUB_REPOSITORY": "acme/app"}).repository_slug() == ("acme", "app")

    def test_template_root_resolution(self, tmp_path):
        """Test override, environment and bundled template roots."""
        env_root = tmp_path / "env-template"
        settings = Settings.from_env({"AIWORKFLOW_TEMPLATE_ROOT": str(env_root)})

        assert settings.resolved_template_root(tmp_path) == tmp_path.resolve()
        assert settings.resolved_template_root() == env_root.resolve()
        assert Settings.from_env({}).resolved_template_root() == BUNDLED_TEMPLATE_ROOT

    def test_bundled_template_exists(self):
        """Test the package ships its template."""
        assert (BUNDLED_TEMPLATE_ROOT / "docs").is_dir()


class TestResolveProjectRoot:
    """Test cases for resolve_project_root."""

    def test_explicit_root(self, tmp_path):
        """Test an explicit root wins."""
        assert resolve_project_root(tmp_path, environ={}) == tmp_path.resolve()

    def test_explicit_root_missing(self, tmp_path):
        """Test a missing explicit root raises."""
        with pytest.raises(ValueError):
            resolve_project_root(tmp_path / "missing", environ={})

    def test_env_root(self, tmp_path):
        """Test the environment variable is used next."""
        assert resolve_project_root(environ={"AIWORKFLOW_PROJECT_ROOT": str(tmp_path)}) == tmp_path.resolve()

    def test_env_root_missing(self, tmp_path):
        """Test a missing environment root raises."""
        with pytest.raises(ValueError):
            resolve_project_root(environ={"AIWORKFLOW_PROJECT_ROOT": str(tmp_path / "missing")})

    def test_cwd_fallback(self, tmp_path, monkeypatch):
        """Test the working directory is the fallback."""
        monkeypatch.chdir(tmp_path)

        assert resolve_project_root(environ={}) == Path(tmp_path).resolve()
