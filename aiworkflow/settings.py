"""Environment-driven configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

PROJECT_ROOT_ENV = "AIWORKFLOW_PROJECT_ROOT"
TEMPLATE_ROOT_ENV = "AIWORKFLOW_TEMPLATE_ROOT"
BUNDLED_TEMPLATE_ROOT = Path(__file__).resolve().parent / "template"


@dataclass(frozen=True, slots=True)
class Settings:
    """Snapshot of the environment variables the commands read."""

    github_token: Optional[str] = None
    github_owner: Optional[str] = None
    github_repo: Optional[str] = None
    github_repository: Optional[str] = None
    github_actions: bool = False
    github_output: Optional[Path] = None
    project_root: Optional[Path] = None
    template_root: Optional[Path] = None
    log_level: str = "WARNING"
    log_file: Optional[Path] = None
    slack_webhook_url: Optional[str] = None
    teams_webhook_url: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        def _path(name: str) -> Optional[Path]:
            value = env.get(name)
            return Path(value).expanduser() if value else None

        return cls(
            github_token=env.get("GITHUB_TOKEN") or None,
            github_owner=env.get("GITHUB_OWNER") or None,
            github_repo=env.get("GITHUB_REPO") or None,
            github_repository=env.get("GITHUB_REPOSITORY") or None,
            github_actions=bool(env.get("GITHUB_ACTIONS")),
            github_output=_path("GITHUB_OUTPUT"),
            project_root=_path(PROJECT_ROOT_ENV),
            template_root=_path(TEMPLATE_ROOT_ENV),
            log_level=env.get("AIWORKFLOW_LOG_LEVEL", "WARNING"),
            log_file=_path("AIWORKFLOW_LOG_FILE"),
            slack_webhook_url=env.get("SLACK_WEBHOOK_URL") or None,
            teams_webhook_url=env.get("TEAMS_WEBHOOK_URL") or None,
        )

    def repository_slug(self) -> Optional[tuple[str, str]]:
        """Return ``(owner, repo)`` from GITHUB_OWNER/GITHUB_REPO or GITHUB_REPOSITORY."""
        if self.github_owner and self.github_repo:
            return self.github_owner, self.github_repo
        if self.github_repository and "/" in self.github_repository:
            owner, repo = self.github_repository.split("/", 1)
            return owner, repo
        return None

    def resolved_template_root(self, override: Optional[Path | str] = None) -> Path:
        if override:
            return Path(override).expanduser().resolve()
        if self.template_root:
            return self.template_root.resolve()
        return BUNDLED_TEMPLATE_ROOT


def resolve_project_root(root: Optional[Path | str] = None, environ: Optional[Mapping[str, str]] = None) -> Path:
    """Resolve the project root: explicit argument, then env var, then CWD."""
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env = os.environ if environ is None else environ
    env_root = env.get(PROJECT_ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {PROJECT_ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    return Path.cwd().resolve()
