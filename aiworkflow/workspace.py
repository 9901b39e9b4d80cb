"""Project workspace conventions for the AI workflow kit.

This module owns every on-disk path the commands agree on
(``docs/ai-context``, ``.migration-state.json``, ``temp/`` ...), the
YAML/JSON read-write helpers, and the ``git`` shell-outs.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ContextNotFoundError, GitRepositoryError, MigrationStateError
from .models import ContextDocument, MigrationState
from .workflow_logging import (
    log_context_saved,
    log_error_with_context,
    log_operation,
)

logger = logging.getLogger("aiworkflow.workspace")

GIT_TIMEOUT = 30


def read_yaml(path: Path) -> Any:
    with Path(path).open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def write_yaml(path: Path, data: Any) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return path


def read_json(path: Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def write_json(path: Path, data: Any) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return path


def emit_github_outputs(outputs: Dict[str, Any], output_file: Optional[Path] = None) -> None:
    """Publish step outputs for GitHub Actions.

    Appends ``name=value`` lines to ``$GITHUB_OUTPUT`` when available and
    falls back to the legacy ``::set-output`` workflow command otherwise.
    """
    if output_file:
        with Path(output_file).open("a", encoding="utf-8") as handle:
            for name, value in outputs.items():
                handle.write(f"{name}={value}\n")
        return
    for name, value in outputs.items():
        print(f"::set-output name={name}::{value}")


def run_git(root: Path, *args: str, timeout: int = GIT_TIMEOUT) -> str:
    """Run ``git`` in ``root`` and return stdout, raising GitRepositoryError on failure."""
    command = ["git", *args]
    try:
        completed = subprocess.run(
            command,
            cwd=root,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise GitRepositoryError(f"git {' '.join(args)} failed: {exc}") from exc

    if completed.returncode != 0:
        raise GitRepositoryError(
            f"git {' '.join(args)} exited with {completed.returncode}",
            details={"stderr": completed.stderr.strip()},
        )
    return completed.stdout


class ProjectWorkspace:
    """Path conventions and file I/O for a project using the workflow template."""

    STATE_FILE = ".migration-state.json"
    BACKUP_PREFIX = ".backup-"

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise NotADirectoryError(f"Project root '{self.root}' is not a directory")

        self.docs_dir = self.root / "docs"
        self.context_dir = self.docs_dir / "ai-context"
        self.prompts_dir = self.docs_dir / "ai-prompts"
        self.quality_reports_dir = self.context_dir / "quality-reports"
        self.progress_history_dir = self.context_dir / "progress-history"
        self.metrics_dir = self.docs_dir / "metrics"
        self.temp_dir = self.root / "temp"
        self.github_dir = self.root / ".github"

    # ------------------------------------------------------------------
    # Well-known paths
    # ------------------------------------------------------------------

    @property
    def state_path(self) -> Path:
        return self.root / self.STATE_FILE

    @property
    def package_json_path(self) -> Path:
        return self.root / "package.json"

    @property
    def quality_summary_path(self) -> Path:
        return self.context_dir / "quality-summary.yml"

    @property
    def progress_dashboard_path(self) -> Path:
        return self.context_dir / "progress-dashboard.yml"

    @property
    def interaction_log_path(self) -> Path:
        return self.docs_dir / "AI_INTERACTION_LOG.md"

    def context_path(self, phase: str) -> Path:
        return self.context_dir / f"ai-context-{phase}.yml"

    def handoff_prompt_path(self, phase: str) -> Path:
        return self.context_dir / f"handoff-prompt-{phase}.md"

    def path(self, relative: str) -> Path:
        return self.root / relative

    def relative(self, path: Path) -> str:
        return Path(path).resolve().relative_to(self.root).as_posix()

    def exists(self, relative: str) -> bool:
        return (self.root / relative).exists()

    # ------------------------------------------------------------------
    # package.json
    # ------------------------------------------------------------------

    def load_package_json(self) -> Optional[Dict[str, Any]]:
        """Return the parsed package.json, or None when absent or unreadable."""
        if not self.package_json_path.exists():
            return None
        try:
            data = read_json(self.package_json_path)
        except (OSError, ValueError) as exc:
            logger.warning(f"package.json could not be read: {exc}")
            return None
        return data if isinstance(data, dict) else None

    def save_package_json(self, data: Dict[str, Any]) -> Path:
        return write_json(self.package_json_path, data)

    # ------------------------------------------------------------------
    # Context documents
    # ------------------------------------------------------------------

    def load_context(self, phase: str) -> ContextDocument:
        path = self.context_path(phase)
        if not path.exists():
            raise ContextNotFoundError(
                f"Context file for phase '{phase}' not found: {self.relative(path)}",
                details={"path": str(path)},
            )
        data = read_yaml(path) or {}
        if not isinstance(data, dict):
            raise ContextNotFoundError(f"Context file {path} does not contain a mapping")
        return ContextDocument.from_dict(data)

    def save_context(self, document: ContextDocument) -> Path:
        path = self.context_path(document.phase)
        try:
            with log_operation("save_context", phase=document.phase, path=str(path)):
                write_yaml(path, document.to_dict())
        except OSError as e:
            log_error_with_context(e, {"operation": "save_context", "phase": document.phase})
            raise

        logger.info(f"Context for phase {document.phase} saved to {path}")
        log_context_saved(str(self.root), document.phase, str(path))
        return path

    def list_context_files(self) -> List[Path]:
        if not self.context_dir.exists():
            return []
        return sorted(self.context_dir.glob("ai-context-*.yml"))

    # ------------------------------------------------------------------
    # Git
    # ------------------------------------------------------------------

    def has_git_dir(self) -> bool:
        return (self.root / ".git").exists()

    def git(self, *args: str, timeout: int = GIT_TIMEOUT) -> str:
        return run_git(self.root, *args, timeout=timeout)

    def git_or_default(self, args: Sequence[str], default: str = "") -> str:
        """Run git, logging and returning ``default`` when the command fails."""
        try:
            return self.git(*args)
        except GitRepositoryError as exc:
            logger.debug(f"git {' '.join(args)} unavailable: {exc}")
            return default

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def backup_dirs(self) -> List[Path]:
        return sorted(
            p for p in self.root.glob(f"{self.BACKUP_PREFIX}*") if p.is_dir()
        )

    # ------------------------------------------------------------------
    # Migration state
    # ------------------------------------------------------------------

    def load_migration_state(self) -> Optional[MigrationState]:
        if not self.state_path.exists():
            return None
        try:
            data = read_json(self.state_path)
        except ValueError as exc:
            raise MigrationStateError(f"{self.STATE_FILE} is not valid JSON: {exc}") from exc
        return MigrationState.from_dict(data)

    def save_migration_state(self, state: MigrationState) -> Path:
        return write_json(self.state_path, state.to_dict())
