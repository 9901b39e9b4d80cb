"""Roll a project back to a migration backup."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from .errors import BackupNotFoundError, GitRepositoryError, WorkflowError
from .health import HealthChecker, HealthReport
from .migration import BACKUP_META_FILE, COMPONENT_CATEGORIES, files_under
from .models import BackupInfo, BackupMetadata, format_size
from .settings import Settings
from .workflow_logging import log_error_with_context, log_operation, log_rollback_finished
from .workspace import ProjectWorkspace, read_json

logger = logging.getLogger("aiworkflow.rollback")

COMPONENT_PATHS = {
    "docs": ["docs/"],
    "github": [".github/"],
    "scripts": ["scripts/"],
    "workflows": [".github/workflows/"],
    "package": ["package.json"],
}

PACKAGE_JSON = "package.json"
PACKAGE_JSON_TEMP = "package.json.rollback-backup"


@dataclass(slots=True)
class RollbackResult:
    backup: BackupInfo
    restored: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    committed: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.failures


def directory_size(path: Path) -> int:
    total = 0
    for item in path.rglob("*"):
        try:
            if item.is_file():
                total += item.stat().st_size
        except OSError:
            continue
    return total


def load_backup(path: Path) -> BackupInfo:
    metadata: Optional[BackupMetadata] = None
    meta_path = path / BACKUP_META_FILE
    if meta_path.exists():
        try:
            metadata = BackupMetadata.from_dict(read_json(meta_path))
        except (OSError, ValueError) as exc:
            logger.warning(f"Backup metadata in {path.name} could not be read: {exc}")
    return BackupInfo(
        path=path,
        created=datetime.fromtimestamp(path.stat().st_mtime),
        size=directory_size(path),
        metadata=metadata,
    )


class RollbackManager:
    """Discover backups and restore a project from one of them."""

    def __init__(
        self,
        root: Path | str,
        backup_dir: Optional[Path | str] = None,
        template_root: Optional[Path | str] = None,
        settings: Optional[Settings] = None,
    ):
        self.workspace = ProjectWorkspace(root)
        self.settings = settings or Settings.from_env()
        self.template_root = self.settings.resolved_template_root(template_root)
        self.backup_dir: Optional[Path] = None
        if backup_dir:
            candidate = Path(backup_dir)
            self.backup_dir = candidate if candidate.is_absolute() else self.workspace.root / candidate

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def list_backups(self) -> List[BackupInfo]:
        """All backups, newest first."""
        paths = list(self.workspace.backup_dirs())
        if self.backup_dir and self.backup_dir.is_dir():
            paths.extend(p for p in self.backup_dir.iterdir() if p.is_dir())
        backups = [load_backup(p) for p in dict.fromkeys(paths)]
        backups.sort(key=lambda b: b.created, reverse=True)
        return backups

    def select_backup(self, name: Optional[str] = None) -> BackupInfo:
        backups = self.list_backups()
        if not backups:
            raise BackupNotFoundError(
                "No backups found",
                details={"root": str(self.workspace.root), "backup_dir": str(self.backup_dir or "")},
            )
        if name is None:
            return backups[0]
        for backup in backups:
            if backup.name == name:
                return backup
        raise BackupNotFoundError(f"Backup '{name}' not found", details={"available": [b.name for b in backups]})

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def template_files(self, entries: Sequence[str]) -> List[str]:
        """Project-relative files the template would install for ``entries``."""
        files: List[str] = []
        for entry in entries:
            files.extend(files_under(self.template_root, entry))
        return files

    def migration_entries(self) -> List[str]:
        return [entry for config in COMPONENT_CATEGORIES.values() for entry in config["files"]]

    def backed_up_files(self, backup: BackupInfo) -> List[str]:
        if backup.metadata and backup.metadata.backed_up_files:
            return list(backup.metadata.backed_up_files)
        return [
            p.relative_to(backup.path).as_posix()
            for p in backup.path.rglob("*")
            if p.is_file() and p.name != BACKUP_META_FILE
        ]

    def files_to_restore(self, backup: BackupInfo, prefixes: Optional[Sequence[str]] = None) -> List[str]:
        """Files touched by a rollback: everything in the backup plus template files now present.

        ``prefixes`` limits the set to paths under those entries.
        """
        candidates = [f for f in self.backed_up_files(backup) if f != PACKAGE_JSON]
        candidates += [f for f in self.template_files(self.migration_entries()) if self.workspace.exists(f)]

        if prefixes is not None:
            candidates = [
                f for f in candidates
                if any(f == p.rstrip("/") or (p.endswith("/") and f.startswith(p)) for p in prefixes)
            ]
        return sorted(dict.fromkeys(candidates))

    def restore_files(self, backup: BackupInfo, files: Sequence[str], result: RollbackResult) -> None:
        for relative in files:
            source = backup.path / relative
            target = self.workspace.root / relative
            try:
                if source.is_file():
                    target.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(source, target)
                    result.restored.append(relative)
                elif target.is_file():
                    target.unlink()
                    result.deleted.append(relative)
            except OSError as exc:
                logger.error(f"Restoring {relative} failed: {exc}")
                result.failures[relative] = str(exc)

    def rollback_package_json(self, backup: BackupInfo, reinstall: bool = False) -> bool:
        """Restore package.json from the backup, undoing the copy if reinstalling dependencies fails."""
        source = backup.path / PACKAGE_JSON
        if not source.exists():
            return False

        current = self.workspace.package_json_path
        temp = self.workspace.root / PACKAGE_JSON_TEMP
        had_current = current.exists()
        if had_current:
            shutil.copy2(current, temp)
        try:
            shutil.copy2(source, current)
            if reinstall:
                subprocess.run(["npm", "install"], cwd=self.workspace.root, check=True, timeout=600)
        except (OSError, subprocess.SubprocessError) as exc:
            logger.error(f"package.json rollback failed: {exc}")
            if had_current:
                shutil.copy2(temp, current)
            raise WorkflowError(f"package.json rollback failed: {exc}") from exc
        finally:
            if had_current:
                temp.unlink(missing_ok=True)
        logger.info("package.json restored from backup")
        return True

    def create_rollback_commit(self, backup: BackupInfo) -> bool:
        try:
            self.workspace.git("add", "-A")
            self.workspace.git("commit", "-m", f"Rollback AI workflow template migration (from backup: {backup.name})")
        except GitRepositoryError as exc:
            logger.warning(f"Rollback commit skipped: {exc}")
            return False
        return True

    def rollback(
        self,
        backup: BackupInfo,
        components: Optional[Sequence[str]] = None,
        *,
        reinstall: bool = False,
        commit: bool = False,
    ) -> RollbackResult:
        """Restore ``backup``; ``components`` (docs, github, scripts, workflows, package) limits the scope."""
        result = RollbackResult(backup=backup)
        if components:
            unknown = [c for c in components if c not in COMPONENT_PATHS]
            if unknown:
                raise WorkflowError(
                    f"Unknown rollback components: {', '.join(unknown)}",
                    details={"valid": sorted(COMPONENT_PATHS)},
                )

        with log_operation("rollback", backup=backup.name, components=list(components or [])):
            include_package = not components or "package" in components
            if include_package:
                try:
                    if self.rollback_package_json(backup, reinstall=reinstall):
                        result.restored.append(PACKAGE_JSON)
                except WorkflowError as e:
                    log_error_with_context(e, {"operation": "rollback", "file": PACKAGE_JSON})
                    result.failures[PACKAGE_JSON] = e.message

            prefixes = None
            if components:
                prefixes = [p for c in components if c != "package" for p in COMPONENT_PATHS[c]]
            files = self.files_to_restore(backup, prefixes) if prefixes is None or prefixes else []
            self.restore_files(backup, files, result)

            if commit and self.workspace.has_git_dir():
                result.committed = self.create_rollback_commit(backup)

        logger.info(
            f"Rollback from {backup.name}: {len(result.restored)} restored, "
            f"{len(result.deleted)} removed, {len(result.failures)} failed"
        )
        log_rollback_finished(str(self.workspace.root), str(backup.path), len(result.restored), len(result.failures))
        return result

    def verify(self, checker: Optional[HealthChecker] = None) -> HealthReport:
        """Health-check the project after a rollback.

        A full rollback removes the template, so a low score is expected;
        callers should look at ``critical_issues`` (checks that raised).
        """
        checker = checker or HealthChecker(self.workspace.root, self.settings)
        report = checker.run()
        if report.critical_issues:
            logger.warning(
                f"Post-rollback health check: {len(report.critical_issues)} checks failed to run"
            )
        return report


def render_backups(console: Console, backups: List[BackupInfo]) -> None:
    if not backups:
        console.print("[yellow]No backups found[/yellow]")
        return
    table = Table(title="📦 Available backups")
    table.add_column("#", justify="right")
    table.add_column("Name", style="green")
    table.add_column("Created")
    table.add_column("Size", justify="right")
    table.add_column("Phase")
    table.add_column("Files", justify="right")
    for index, backup in enumerate(backups, start=1):
        meta = backup.metadata
        table.add_row(
            str(index),
            backup.name,
            backup.created.strftime("%Y-%m-%d %H:%M:%S"),
            format_size(backup.size),
            (meta.migration_phase or "-") if meta else "-",
            str(meta.files_count) if meta else "-",
        )
    console.print(table)


def render_result(console: Console, result: RollbackResult) -> None:
    console.print(f"\n[green]🎉 Rollback from {result.backup.name} finished[/green]")
    console.print(f"Restored: {len(result.restored)}  Removed: {len(result.deleted)}")
    if result.committed:
        console.print("📝 Rollback commit created")
    if result.failures:
        console.print(f"[yellow]⚠️ {len(result.failures)} files could not be restored:[/yellow]")
        for path, error in result.failures.items():
            console.print(f"  - {path}: {error}")
