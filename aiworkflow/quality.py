"""Context document quality evaluation.

Scores a context document out of 100 across five categories, grades it,
writes a timestamped report and keeps a rolling quality summary.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ContextNotFoundError
from .models import utc_timestamp
from .settings import Settings
from .workflow_logging import log_operation, observability_hooks
from .workspace import ProjectWorkspace, emit_github_outputs, read_yaml, write_yaml

logger = logging.getLogger("aiworkflow.quality")

CATEGORY_MAXIMUMS = {
    "key_decisions": 25,
    "constraints": 20,
    "learned_patterns": 20,
    "technical_artifacts": 15,
    "next_phase_focus": 20,
}

ARTIFACT_BONUS = {
    "code_block": 3,
    "config_file": 2,
    "architecture_diagram": 4,
    "api_spec": 3,
    "database_schema": 3,
}

RECOMMENDATION_THRESHOLDS = (
    ("key_decisions", 15, "Describe the reasoning and impact of each key decision in more detail"),
    ("constraints", 12, "Classify constraints by type and add concrete descriptions"),
    ("learned_patterns", 12, "Include evidence for each learned pattern"),
    ("technical_artifacts", 8, "Attach technical artifacts such as code, configuration or diagrams"),
    ("next_phase_focus", 12, "Describe the next phase focus items more concretely"),
)

MAX_ITEMS = 5
HISTORY_LIMIT = 20
NEEDS_IMPROVEMENT_BELOW = 70
HIGH_QUALITY_FROM = 80


def _text(entry: Any, key: str) -> str:
    if not isinstance(entry, dict):
        return ""
    value = entry.get(key)
    return value if isinstance(value, str) else ""


def _items(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def score_key_decisions(decisions: Any) -> int:
    score = 0
    for decision in _items(decisions)[:MAX_ITEMS]:
        if len(_text(decision, "decision")) > 10:
            score += 2
        if len(_text(decision, "reasoning")) > 10:
            score += 2
        if len(_text(decision, "impact")) > 5:
            score += 1
    return score


def score_constraints(constraints: Any) -> int:
    score = 0
    for constraint in _items(constraints)[:MAX_ITEMS]:
        if _text(constraint, "type"):
            score += 1
        if len(_text(constraint, "description")) > 15:
            score += 3
    return score


def score_learned_patterns(patterns: Any) -> int:
    score = 0
    for pattern in _items(patterns)[:MAX_ITEMS]:
        if len(_text(pattern, "pattern")) > 10:
            score += 2
        if len(_text(pattern, "evidence")) > 5:
            score += 2
    return score


def score_technical_artifacts(artifacts: Any) -> int:
    score = 0
    for artifact in _items(artifacts):
        score += ARTIFACT_BONUS.get(_text(artifact, "type"), 0)
        if len(_text(artifact, "content")) > 20:
            score += 1
    return min(score, CATEGORY_MAXIMUMS["technical_artifacts"])


def score_next_phase_focus(items: Any) -> int:
    return sum(4 for item in _items(items)[:MAX_ITEMS] if isinstance(item, str) and len(item) > 10)


def grade_for(score: float) -> str:
    if score >= 90:
        return "A+"
    if score >= 80:
        return "A"
    if score >= 70:
        return "B"
    if score >= 60:
        return "C"
    return "D"


@dataclass(slots=True)
class QualityScore:
    details: Dict[str, int]

    @property
    def total(self) -> int:
        return sum(self.details.values())

    @property
    def maximum(self) -> int:
        return sum(CATEGORY_MAXIMUMS.values())

    @property
    def overall(self) -> int:
        return round(self.total / self.maximum * 100)

    @property
    def grade(self) -> str:
        return grade_for(self.overall)

    def recommendations(self) -> List[str]:
        return [message for key, threshold, message in RECOMMENDATION_THRESHOLDS if self.details[key] < threshold]

    def detailed_scores(self) -> Dict[str, int]:
        return {**self.details, "total_score": self.total, "max_score": self.maximum}


def calculate_quality_score(data: Dict[str, Any]) -> QualityScore:
    """Score a raw context document mapping."""
    data = data if isinstance(data, dict) else {}
    return QualityScore(details={
        "key_decisions": score_key_decisions(data.get("key_decisions")),
        "constraints": score_constraints(data.get("critical_constraints")),
        "learned_patterns": score_learned_patterns(data.get("learned_patterns")),
        "technical_artifacts": score_technical_artifacts(data.get("technical_artifacts")),
        "next_phase_focus": score_next_phase_focus(data.get("next_phase_focus")),
    })


@dataclass(slots=True)
class QualityReport:
    file: str
    phase: str
    score: QualityScore
    evaluated_at: str = field(default_factory=utc_timestamp)
    report_path: Optional[Path] = None

    @property
    def overall_score(self) -> int:
        return self.score.overall

    @property
    def quality_grade(self) -> str:
        return self.score.grade

    @property
    def needs_improvement(self) -> bool:
        return self.overall_score < NEEDS_IMPROVEMENT_BELOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "phase": self.phase,
            "evaluated_at": self.evaluated_at,
            "overall_score": self.overall_score,
            "detailed_scores": self.score.detailed_scores(),
            "recommendations": self.score.recommendations(),
            "quality_grade": self.quality_grade,
        }


def update_quality_summary(summary: Dict[str, Any], report: QualityReport) -> Dict[str, Any]:
    """Fold a report into the summary mapping: latest per phase, capped history, overall stats."""
    summary = dict(summary or {})
    phases = dict(summary.get("phases") or {})
    history = list(summary.get("history") or [])

    phases[report.phase] = {
        "latest_score": report.overall_score,
        "latest_grade": report.quality_grade,
        "last_evaluated": report.evaluated_at,
        "needs_improvement": report.needs_improvement,
    }
    history.insert(0, {
        "phase": report.phase,
        "score": report.overall_score,
        "grade": report.quality_grade,
        "evaluated_at": report.evaluated_at,
    })

    scores = [p["latest_score"] for p in phases.values() if isinstance(p, dict) and "latest_score" in p]
    summary["phases"] = phases
    summary["history"] = history[:HISTORY_LIMIT]
    summary["overall_stats"] = {
        "average_score": round(sum(scores) / len(scores)) if scores else 0,
        "phases_completed": len(scores),
        "high_quality_phases": len([s for s in scores if s >= HIGH_QUALITY_FROM]),
        "needs_improvement_phases": len([s for s in scores if s < NEEDS_IMPROVEMENT_BELOW]),
    }
    return summary


class QualityEvaluator:
    """Evaluate context documents and persist reports for a project."""

    def __init__(self, root: Path | str, settings: Optional[Settings] = None):
        self.workspace = ProjectWorkspace(root)
        self.settings = settings or Settings.from_env()

    def resolve_context_file(self, phase: Optional[str], context_file: Optional[str]) -> Path:
        if context_file:
            path = Path(context_file)
            return path if path.is_absolute() else self.workspace.root / path
        if not phase:
            raise ContextNotFoundError("Either a phase or a context file is required")
        return self.workspace.context_path(phase)

    def evaluate(self, phase: Optional[str] = None, context_file: Optional[str] = None) -> QualityReport:
        path = self.resolve_context_file(phase, context_file)
        if not path.exists():
            raise ContextNotFoundError(f"Context file not found: {path}", details={"path": str(path)})

        with log_operation("evaluate_quality", path=str(path)):
            data = read_yaml(path) or {}
            resolved_phase = phase or (data.get("phase") if isinstance(data, dict) else None) or "unknown"
            report = QualityReport(file=str(path), phase=resolved_phase, score=calculate_quality_score(data))

            millis = int(time.time() * 1000)
            report.report_path = write_yaml(
                self.workspace.quality_reports_dir / f"quality-{resolved_phase}-{millis}.yml",
                report.to_dict(),
            )
            self.save_summary(report)

        logger.info(f"Quality of {resolved_phase} context: {report.overall_score}/100 ({report.quality_grade})")
        observability_hooks.log_workflow_event(
            "quality_evaluated",
            project_root=str(self.workspace.root),
            phase=resolved_phase,
            score=report.overall_score,
        )

        if self.settings.github_actions:
            emit_github_outputs({
                "quality-score": report.overall_score,
                "quality-grade": report.quality_grade,
                "needs-improvement": str(report.needs_improvement).lower(),
            }, self.settings.github_output)
        return report

    def load_summary(self) -> Dict[str, Any]:
        path = self.workspace.quality_summary_path
        if not path.exists():
            return {}
        data = read_yaml(path)
        return data if isinstance(data, dict) else {}

    def save_summary(self, report: QualityReport) -> Dict[str, Any]:
        summary = update_quality_summary(self.load_summary(), report)
        write_yaml(self.workspace.quality_summary_path, summary)
        return summary
