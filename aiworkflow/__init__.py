"""AI workflow kit: phase-aware development workflow tooling.

Phase detection, context inheritance between phases, template migration with
backup and rollback, and GitHub-based progress reporting.
"""

__version__ = "0.3.0"

# Submodules are imported where needed; the CLI and the MCP server pull in
# rich and mcp, which library users may not want at import time.

__all__ = [
    "__version__",
    "cli",
    "context_bridge",
    "context_extractor",
    "errors",
    "github_client",
    "health",
    "metrics",
    "migration",
    "models",
    "next_phase",
    "notifications",
    "phase_detection",
    "progress",
    "quality",
    "rollback",
    "scaffold",
    "selftest",
    "settings",
    "staged",
    "validation",
    "workflow_logging",
    "workspace",
]
