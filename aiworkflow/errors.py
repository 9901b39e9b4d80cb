"""Exception hierarchy for the AI workflow kit."""

from __future__ import annotations

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base error for every failure the CLI reports with exit code 1."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, "details": self.details}


class InvalidPhaseError(WorkflowError, ValueError):
    """Raised when a phase name is not one of the known phases."""


class ContextNotFoundError(WorkflowError):
    """Raised when a phase's context document does not exist."""


class BackupNotFoundError(WorkflowError):
    """Raised when no usable migration backup can be located."""


class GitRepositoryError(WorkflowError):
    """Raised when a git command the caller depends on fails."""


class MigrationStateError(WorkflowError):
    """Raised for disallowed transitions of the staged migration state."""


class GitHubAPIError(WorkflowError):
    """Raised when the GitHub REST API returns an error response."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class NotificationError(WorkflowError):
    """Raised when a webhook delivery fails."""
