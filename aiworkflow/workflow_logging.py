"""Logging and observability for the AI workflow kit.

Every command logs under the ``aiworkflow`` logger. The console gets a terse
human format; ``--log-file`` / ``AIWORKFLOW_LOG_FILE`` adds a JSON-lines trail
that carries the structured ``extra_fields`` attached by the helpers below.

Workflow events (phase detected, context saved, backup created, migration
steps, rollbacks) go through :data:`observability_hooks` so callers such as
tests or the MCP server can subscribe to them.
"""

from __future__ import annotations

import json
import os
import time
import logging as std_logging
from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

ROOT_LOGGER = "aiworkflow"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Event names published through observability_hooks
PHASE_DETECTED = "phase_detected"
CONTEXT_SAVED = "context_saved"
BACKUP_CREATED = "backup_created"
ROLLBACK_FINISHED = "rollback_finished"


def _console_handler(level: Union[str, int]) -> std_logging.Handler:
    handler = std_logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(std_logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=CONSOLE_DATEFMT))
    return handler


def _json_file_handler(log_file: Path) -> std_logging.Handler:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = std_logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(std_logging.DEBUG)
    handler.setFormatter(JsonFormatter())
    return handler


def setup_logging(log_level: Union[str, int] = std_logging.WARNING, log_file: Optional[Path] = None) -> None:
    """Configure the ``aiworkflow`` logger.

    Console output stays at ``log_level`` (WARNING by default) because every
    command also prints a rich summary. With ``log_file`` the logger itself
    drops to DEBUG so the JSON trail records each operation.
    """
    if isinstance(log_level, str):
        log_level = log_level.upper()

    logger = std_logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(std_logging.DEBUG if log_file else log_level)

    logger.addHandler(_console_handler(log_level))
    if log_file:
        logger.addHandler(_json_file_handler(log_file))

    logger.debug(f"Logging configured (level={log_level}, file={log_file or '-'})")


def setup_logging_from_env() -> None:
    """Configure logging from ``AIWORKFLOW_LOG_LEVEL`` / ``AIWORKFLOW_LOG_FILE``."""
    log_file = os.getenv("AIWORKFLOW_LOG_FILE")
    setup_logging(os.getenv("AIWORKFLOW_LOG_LEVEL", "WARNING"), Path(log_file) if log_file else None)


class JsonFormatter(std_logging.Formatter):
    """One JSON object per record, merged with the record's ``extra_fields``."""

    def format(self, record: std_logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(getattr(record, "extra_fields", None) or {})
        return json.dumps(entry, default=str)


# ----------------------------------------------------------------------
# Timing
# ----------------------------------------------------------------------

class PerformanceMonitor:
    """In-process store of timing samples, keyed by metric name."""

    def __init__(self):
        self.metrics: Dict[str, List[Dict[str, Any]]] = {}

    def record_metric(self, name: str, value: Any, tags: Optional[Dict[str, str]] = None) -> None:
        sample = {
            "timestamp": datetime.utcnow().isoformat(),
            "name": name,
            "value": value,
            "tags": dict(tags or {}),
        }
        self.metrics.setdefault(name, []).append(sample)
        std_logging.getLogger(f"{ROOT_LOGGER}.performance").debug(
            f"{name}={value}", extra={"extra_fields": sample}
        )

    def get_metrics(self, name: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        if name:
            return {name: list(self.metrics.get(name, []))}
        return dict(self.metrics)

    def last_value(self, name: str) -> Optional[Any]:
        samples = self.metrics.get(name)
        return samples[-1]["value"] if samples else None

    def clear(self) -> None:
        self.metrics.clear()


performance_monitor = PerformanceMonitor()


@contextmanager
def _timed(logger: std_logging.Logger, operation_name: str, fields: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """Log start, completion or failure of a block; yields the outcome mapping."""
    outcome: Dict[str, Any] = {"operation": operation_name, **fields}
    logger.debug(f"{operation_name}: started", extra={"extra_fields": {**outcome, "status": "started"}})
    start = time.perf_counter()
    try:
        yield outcome
    except Exception as e:
        outcome.update(
            status="failed",
            duration=time.perf_counter() - start,
            error_type=type(e).__name__,
            error_message=str(e),
        )
        logger.error(
            f"{operation_name}: failed after {outcome['duration']:.3f}s ({e})",
            extra={"extra_fields": outcome},
        )
        raise
    outcome.update(status="completed", duration=time.perf_counter() - start)
    logger.info(f"{operation_name}: completed in {outcome['duration']:.3f}s", extra={"extra_fields": outcome})


def log_performance(operation_name: str):
    """Time every call of the decorated function as ``<operation_name>_duration``."""
    logger = std_logging.getLogger(f"{ROOT_LOGGER}.performance")

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            outcome: Dict[str, Any] = {}
            try:
                with _timed(logger, operation_name, {}) as outcome:
                    return func(*args, **kwargs)
            finally:
                tags = {"status": "success"}
                if outcome.get("status") == "failed":
                    tags = {"status": "error", "error_type": outcome["error_type"]}
                performance_monitor.record_metric(f"{operation_name}_duration", outcome.get("duration"), tags)

        return wrapper
    return decorator


@contextmanager
def log_operation(operation_name: str, **extra_fields) -> Iterator[None]:
    """Log a block as one operation; ``extra_fields`` land in the JSON trail."""
    with _timed(std_logging.getLogger(f"{ROOT_LOGGER}.operations"), operation_name, extra_fields):
        yield


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------

class ObservabilityHooks:
    """Callbacks subscribed to workflow events by name.

    Callbacks receive the event payload as keyword arguments (``timestamp``,
    ``project_root`` and the event's own fields). A failing callback is
    logged and skipped.
    """

    def __init__(self):
        self.hooks: Dict[str, List[Callable[..., Any]]] = {}
        self.logger = std_logging.getLogger(f"{ROOT_LOGGER}.observability")

    def register_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        self.hooks.setdefault(event_type, []).append(callback)
        self.logger.debug(f"Hook registered for {event_type}")

    def unregister_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        callbacks = self.hooks.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def trigger_hooks(self, event_type: str, **data) -> None:
        for hook in list(self.hooks.get(event_type, [])):
            try:
                hook(**data)
            except Exception as e:
                self.logger.error(f"Hook for {event_type} failed: {e}")

    def log_workflow_event(self, event_type: str, project_root: Optional[str] = None, **data) -> None:
        payload = {"timestamp": datetime.utcnow().isoformat(), "project_root": project_root, **data}
        self.logger.info(f"Workflow event: {event_type}", extra={"extra_fields": {"event_type": event_type, **payload}})
        self.trigger_hooks(event_type, **payload)


observability_hooks = ObservabilityHooks()


def log_error_with_context(error: Exception, context: Dict[str, Any], **extra_fields) -> None:
    """Log ``error`` on ``aiworkflow.errors`` with the operation context attached."""
    operation = context.get("operation") or context.get("command") or "unknown operation"
    std_logging.getLogger(f"{ROOT_LOGGER}.errors").error(
        f"Error in {operation}: {error}",
        extra={"extra_fields": {
            "timestamp": datetime.utcnow().isoformat(),
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context,
            **extra_fields,
        }},
    )


def log_phase_detected(project_root: str, phase: str, confidence: float, **extra_fields) -> None:
    observability_hooks.log_workflow_event(
        PHASE_DETECTED, project_root=project_root, phase=phase, confidence=confidence, **extra_fields
    )


def log_context_saved(project_root: str, phase: str, path: str, **extra_fields) -> None:
    observability_hooks.log_workflow_event(
        CONTEXT_SAVED, project_root=project_root, phase=phase, path=path, **extra_fields
    )


def log_backup_created(project_root: str, backup_path: str, files_count: int, **extra_fields) -> None:
    observability_hooks.log_workflow_event(
        BACKUP_CREATED, project_root=project_root, backup_path=backup_path, files_count=files_count, **extra_fields
    )


def log_migration_step(project_root: str, step_id: str, status: str, **extra_fields) -> None:
    """Publish ``migration_step_<status>`` (``completed`` or ``failed``)."""
    observability_hooks.log_workflow_event(
        f"migration_step_{status.lower()}", project_root=project_root, step_id=step_id, **extra_fields
    )


def log_rollback_finished(project_root: str, backup_path: str, restored: int, failed: int, **extra_fields) -> None:
    observability_hooks.log_workflow_event(
        ROLLBACK_FINISHED, project_root=project_root, backup_path=backup_path,
        restored=restored, failed=failed, **extra_fields
    )
