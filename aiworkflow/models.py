"""Data models for the AI workflow kit.

This module contains the core data structures shared by the commands:
phase-hand-off context documents, phase detection results, migration
state and backup metadata, and check results for validation and health
reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import InvalidPhaseError

PHASES = (
    "discovery",
    "requirements",
    "poc",
    "implementation",
    "review",
    "testing",
    "production",
)

# Context hand-off chain: completing a phase hands its context to the next one.
PHASE_CHAIN: Dict[str, Optional[str]] = {
    "requirements": "poc",
    "poc": "implementation",
    "implementation": "review",
    "review": "testing",
    "testing": None,
}

PHASE_LABELS = {
    "discovery": "Discovery",
    "requirements": "Requirements",
    "poc": "Proof of Concept",
    "implementation": "Implementation",
    "review": "Review",
    "testing": "Testing",
    "production": "Production",
}

MIGRATION_STATUSES = ("in_progress", "paused", "completed", "failed", "scheduled")


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with a ``Z`` suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def validate_phase(phase: str, allowed: Optional[tuple] = None) -> str:
    allowed = allowed or PHASES
    normalized = (phase or "").strip().lower()
    if normalized not in allowed:
        raise InvalidPhaseError(
            f"Unknown phase '{phase}'. Expected one of: {', '.join(allowed)}"
        )
    return normalized


def next_phase(phase: str) -> Optional[str]:
    """Return the phase that receives ``phase``'s context, if any."""
    return PHASE_CHAIN.get(phase)


def previous_phase(phase: str) -> Optional[str]:
    for prev, nxt in PHASE_CHAIN.items():
        if nxt == phase:
            return prev
    return None


# ----------------------------------------------------------------------
# Context documents
# ----------------------------------------------------------------------


@dataclass(slots=True)
class KeyDecision:
    """A decision taken during a phase together with its rationale."""

    decision: str
    reasoning: str = ""
    impact: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"decision": self.decision, "reasoning": self.reasoning, "impact": self.impact}

    @classmethod
    def from_dict(cls, data: Any) -> "KeyDecision":
        if isinstance(data, str):
            return cls(decision=data)
        return cls(
            decision=str(data.get("decision") or ""),
            reasoning=str(data.get("reasoning") or ""),
            impact=str(data.get("impact") or ""),
        )


@dataclass(slots=True)
class Constraint:
    type: str
    description: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "description": self.description}

    @classmethod
    def from_dict(cls, data: Any) -> "Constraint":
        if isinstance(data, str):
            return cls(type="", description=data)
        return cls(type=str(data.get("type") or ""), description=str(data.get("description") or ""))


@dataclass(slots=True)
class LearnedPattern:
    pattern: str
    evidence: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"pattern": self.pattern, "evidence": self.evidence}

    @classmethod
    def from_dict(cls, data: Any) -> "LearnedPattern":
        if isinstance(data, str):
            return cls(pattern=data)
        return cls(pattern=str(data.get("pattern") or ""), evidence=str(data.get("evidence") or ""))


@dataclass(slots=True)
class TechnicalArtifact:
    """Code block, config file, diagram or reference attached to a context."""

    type: str
    content: str = ""
    language: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "content": self.content}
        if self.language:
            data["language"] = self.language
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "TechnicalArtifact":
        return cls(
            type=str(data.get("type") or ""),
            content=str(data.get("content") or ""),
            language=data.get("language"),
        )


_CONTEXT_KEYS = (
    "phase",
    "completion_date",
    "ai_tools_used",
    "key_decisions",
    "critical_constraints",
    "learned_patterns",
    "next_phase_focus",
    "technical_artifacts",
    "quality_metrics",
    "issue_reference",
    "repository",
)


@dataclass(slots=True)
class ContextDocument:
    """Structured record of one completed phase, handed to the next one."""

    phase: str
    completion_date: str = field(default_factory=utc_timestamp)
    ai_tools_used: List[str] = field(default_factory=list)
    key_decisions: List[KeyDecision] = field(default_factory=list)
    critical_constraints: List[Constraint] = field(default_factory=list)
    learned_patterns: List[LearnedPattern] = field(default_factory=list)
    next_phase_focus: List[str] = field(default_factory=list)
    technical_artifacts: List[TechnicalArtifact] = field(default_factory=list)
    quality_metrics: Dict[str, Any] = field(default_factory=dict)
    issue_reference: Optional[Any] = None
    repository: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the YAML document layout; unknown keys are appended unchanged."""
        data: Dict[str, Any] = {
            "phase": self.phase,
            "completion_date": self.completion_date,
            "ai_tools_used": list(self.ai_tools_used),
            "key_decisions": [d.to_dict() for d in self.key_decisions],
            "critical_constraints": [c.to_dict() for c in self.critical_constraints],
            "learned_patterns": [p.to_dict() for p in self.learned_patterns],
            "next_phase_focus": list(self.next_phase_focus),
            "technical_artifacts": [a.to_dict() for a in self.technical_artifacts],
            "quality_metrics": dict(self.quality_metrics),
        }
        if self.issue_reference is not None:
            data["issue_reference"] = self.issue_reference
        if self.repository is not None:
            data["repository"] = self.repository
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextDocument":
        completion_date = data.get("completion_date") or utc_timestamp()
        if isinstance(completion_date, (date, datetime)):
            completion_date = completion_date.isoformat()
        return cls(
            phase=str(data.get("phase") or ""),
            completion_date=str(completion_date),
            ai_tools_used=[str(t) for t in data.get("ai_tools_used") or []],
            key_decisions=[KeyDecision.from_dict(d) for d in data.get("key_decisions") or []],
            critical_constraints=[Constraint.from_dict(c) for c in data.get("critical_constraints") or []],
            learned_patterns=[LearnedPattern.from_dict(p) for p in data.get("learned_patterns") or []],
            next_phase_focus=[str(f) for f in data.get("next_phase_focus") or []],
            technical_artifacts=[
                TechnicalArtifact.from_dict(a)
                for a in data.get("technical_artifacts") or []
                if isinstance(a, dict)
            ],
            quality_metrics=dict(data.get("quality_metrics") or {}),
            issue_reference=data.get("issue_reference"),
            repository=data.get("repository"),
            extra={k: v for k, v in data.items() if k not in _CONTEXT_KEYS},
        )

    def validate(self) -> List[str]:
        """Validate the document and return any issues."""
        issues = []
        if self.phase not in PHASES:
            issues.append(f"Unknown phase '{self.phase}'")
        if not self.key_decisions:
            issues.append("At least one key decision is recommended")
        if not self.next_phase_focus:
            issues.append("Next phase focus is empty")
        for index, decision in enumerate(self.key_decisions, 1):
            if not decision.decision:
                issues.append(f"Decision #{index} has no text")
        return issues


# ----------------------------------------------------------------------
# Phase detection
# ----------------------------------------------------------------------


@dataclass(slots=True)
class Indicator:
    """A weighted observation that supports a phase."""

    type: str
    weight: float
    target: Optional[str] = None
    check: Optional[str] = None
    keywords: List[str] = field(default_factory=list)


@dataclass(slots=True)
class IndicatorResult:
    indicator: Indicator
    score: float
    confidence: float
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.indicator.type,
            "target": self.indicator.target or self.indicator.check,
            "weight": self.indicator.weight,
            "score": round(self.score, 4),
            "confidence": round(self.confidence, 4),
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass(slots=True)
class PhaseScore:
    phase: str
    score: float
    confidence: float
    indicators: List[IndicatorResult] = field(default_factory=list)

    def to_dict(self, detailed: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "phase": self.phase,
            "score": round(self.score, 4),
            "confidence": round(self.confidence, 4),
        }
        if detailed:
            data["indicators"] = [i.to_dict() for i in self.indicators]
        return data


@dataclass(slots=True)
class PhaseRecommendation:
    primary_phase: str
    certainty: str
    score: float
    confidence: float
    alternatives: List[str] = field(default_factory=list)
    strategy: str = "gradual"
    next_steps: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary_phase": self.primary_phase,
            "certainty": self.certainty,
            "score": round(self.score, 4),
            "confidence": round(self.confidence, 4),
            "alternatives": list(self.alternatives),
            "strategy": self.strategy,
            "next_steps": list(self.next_steps),
        }


@dataclass(slots=True)
class PhaseDetectionResult:
    root: Path
    scores: Dict[str, PhaseScore]
    recommendation: PhaseRecommendation
    analyzed_at: str = field(default_factory=utc_timestamp)

    @property
    def phase(self) -> str:
        return self.recommendation.primary_phase

    @property
    def confidence(self) -> float:
        return self.recommendation.confidence

    def ranked(self) -> List[PhaseScore]:
        return sorted(self.scores.values(), key=lambda s: s.score, reverse=True)

    def to_dict(self, detailed: bool = False) -> Dict[str, Any]:
        return {
            "root": str(self.root),
            "analyzed_at": self.analyzed_at,
            "recommendation": self.recommendation.to_dict(),
            "scores": [s.to_dict(detailed) for s in self.ranked()],
        }


# ----------------------------------------------------------------------
# Checks (validation and health)
# ----------------------------------------------------------------------


@dataclass(slots=True)
class ValidationResult:
    """Outcome of one pre-migration validation rule."""

    rule_id: str
    name: str
    level: str
    passed: bool
    message: str
    details: Optional[str] = None
    auto_fix: bool = False
    fix_action: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "name": self.name,
            "level": self.level,
            "passed": self.passed,
            "message": self.message,
            "details": self.details,
            "autoFix": self.auto_fix,
            "fixAction": self.fix_action,
        }


@dataclass(slots=True)
class HealthCheckResult:
    """Outcome of one post-migration health check."""

    check_id: str
    name: str
    category: str
    passed: bool
    score: float
    details: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "category": self.category,
            "passed": self.passed,
            "score": self.score,
            "details": self.details,
            "recommendations": list(self.recommendations),
        }
        if self.error:
            data["error"] = self.error
        return data


# ----------------------------------------------------------------------
# Migration
# ----------------------------------------------------------------------


@dataclass(slots=True)
class PlanStep:
    """One step of a migration plan."""

    id: str
    name: str
    kind: str
    priority: str = "medium"
    files: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.kind,
            "priority": self.priority,
            "files": list(self.files),
            "conflicts": list(self.conflicts),
            "description": self.description,
        }


@dataclass(slots=True)
class MigrationPlan:
    steps: List[PlanStep]
    estimated_time: str
    risk_level: str
    phase: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "steps": [s.to_dict() for s in self.steps],
            "estimatedTime": self.estimated_time,
            "riskLevel": self.risk_level,
        }


@dataclass(slots=True)
class StagedStep:
    id: str
    name: str
    priority: str = "medium"

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "priority": self.priority}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StagedStep":
        return cls(id=data["id"], name=data.get("name", data["id"]), priority=data.get("priority", "medium"))


@dataclass(slots=True)
class CompletedStep:
    id: str
    name: str
    completed_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "completedAt": self.completed_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompletedStep":
        return cls(id=data["id"], name=data.get("name", data["id"]), completed_at=data.get("completedAt", ""))


@dataclass(slots=True)
class StepError:
    step: str
    message: str
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, str]:
        return {"step": self.step, "message": self.message, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepError":
        return cls(step=data.get("step", ""), message=data.get("message", ""), timestamp=data.get("timestamp", ""))


@dataclass(slots=True)
class MigrationState:
    """Persistent state of a staged migration (``.migration-state.json``)."""

    target_phase: str
    current_phase: str
    status: str = "in_progress"
    start_time: str = field(default_factory=utc_timestamp)
    total_steps: int = 0
    completed_steps: List[CompletedStep] = field(default_factory=list)
    planned_steps: List[StagedStep] = field(default_factory=list)
    errors: List[StepError] = field(default_factory=list)
    last_update: str = field(default_factory=utc_timestamp)
    paused_at: Optional[str] = None
    completed_at: Optional[str] = None
    backup_path: Optional[str] = None

    @property
    def progress(self) -> float:
        if not self.total_steps:
            return 0.0
        return len(self.completed_steps) / self.total_steps * 100

    def completed_ids(self) -> List[str]:
        return [s.id for s in self.completed_steps]

    def remaining_steps(self) -> List[StagedStep]:
        done = set(self.completed_ids())
        return [s for s in self.planned_steps if s.id not in done]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "startTime": self.start_time,
            "targetPhase": self.target_phase,
            "currentPhase": self.current_phase,
            "status": self.status,
            "totalSteps": self.total_steps,
            "completedSteps": [s.to_dict() for s in self.completed_steps],
            "plannedSteps": [s.to_dict() for s in self.planned_steps],
            "errors": [e.to_dict() for e in self.errors],
            "lastUpdate": self.last_update,
        }
        if self.paused_at:
            data["pausedAt"] = self.paused_at
        if self.completed_at:
            data["completedAt"] = self.completed_at
        if self.backup_path:
            data["backupPath"] = self.backup_path
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationState":
        return cls(
            target_phase=data.get("targetPhase", ""),
            current_phase=data.get("currentPhase", ""),
            status=data.get("status", "in_progress"),
            start_time=data.get("startTime", ""),
            total_steps=int(data.get("totalSteps", 0)),
            completed_steps=[CompletedStep.from_dict(s) for s in data.get("completedSteps", [])],
            planned_steps=[StagedStep.from_dict(s) for s in data.get("plannedSteps", [])],
            errors=[StepError.from_dict(e) for e in data.get("errors", [])],
            last_update=data.get("lastUpdate", ""),
            paused_at=data.get("pausedAt"),
            completed_at=data.get("completedAt"),
            backup_path=data.get("backupPath"),
        )


@dataclass(slots=True)
class BackupMetadata:
    """Contents of ``_backup_meta.json`` inside a backup directory."""

    timestamp: str
    project_root: str
    backed_up_files: List[str] = field(default_factory=list)
    project_phase: Optional[str] = None
    migration_phase: Optional[str] = None
    backup_reason: str = "pre-migration"
    original_package_json: Optional[Dict[str, Any]] = None
    version: str = "1.0.0"

    @property
    def files_count(self) -> int:
        return len(self.backed_up_files)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "projectPhase": self.project_phase,
            "migrationPhase": self.migration_phase,
            "filesCount": self.files_count,
            "backedUpFiles": list(self.backed_up_files),
            "projectRoot": self.project_root,
            "backupReason": self.backup_reason,
            "originalPackageJson": self.original_package_json,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupMetadata":
        return cls(
            version=data.get("version", "1.0.0"),
            timestamp=data.get("timestamp", ""),
            project_phase=data.get("projectPhase"),
            migration_phase=data.get("migrationPhase"),
            backed_up_files=list(data.get("backedUpFiles", [])),
            project_root=data.get("projectRoot", ""),
            backup_reason=data.get("backupReason", ""),
            original_package_json=data.get("originalPackageJson"),
        )


@dataclass(slots=True)
class BackupInfo:
    """A backup directory discovered on disk."""

    path: Path
    created: datetime
    size: int
    metadata: Optional[BackupMetadata] = None

    @property
    def name(self) -> str:
        return self.path.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": str(self.path),
            "created": self.created.isoformat(),
            "size": self.size,
            "sizeFormatted": format_size(self.size),
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }


def format_size(num_bytes: int) -> str:
    """Render a byte count as B/KB/MB/GB with one decimal place."""
    size = float(num_bytes)
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
