"""Phase detection for existing projects.

Scores every workflow phase from weighted indicators observed in the
project tree, ``package.json`` and git history, then recommends the most
likely phase together with a confidence value and next steps.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from .models import (
    PHASE_LABELS,
    Indicator,
    IndicatorResult,
    PhaseDetectionResult,
    PhaseRecommendation,
    PhaseScore,
)
from .workflow_logging import log_performance, log_phase_detected
from .workspace import ProjectWorkspace

logger = logging.getLogger("aiworkflow.phase_detection")

DEFAULT_CONFIDENCE_THRESHOLD = 0.7
ALTERNATIVE_MARGIN = 0.2

PHASE_INDICATORS: Dict[str, List[Indicator]] = {
    "discovery": [
        Indicator("file_absence", 0.3, target="package.json"),
        Indicator("dir_absence", 0.2, target="src"),
        Indicator("file_absence", 0.1, target="README.md"),
        Indicator("git_history", 0.2, check="commit_count_low"),
        Indicator("file_count", 0.2, check="low_file_count"),
    ],
    "requirements": [
        Indicator("file_presence", 0.3, target="docs/requirements.md"),
        Indicator("file_presence", 0.2, target="docs/specification.md"),
        Indicator("file_presence", 0.1, target="README.md"),
        Indicator("file_content", 0.2, target="package.json", keywords=["name", "description"]),
        Indicator("dir_absence", 0.2, target="src"),
    ],
    "poc": [
        Indicator("file_presence", 0.3, target="prototype"),
        Indicator("file_presence", 0.3, target="poc"),
        Indicator("package_dependencies", 0.2, check="few_dependencies"),
        Indicator("file_content", 0.1, target="README.md", keywords=["poc", "prototype", "proof of concept"]),
        Indicator("git_history", 0.1, check="experimental_commits"),
    ],
    "implementation": [
        Indicator("dir_presence", 0.3, target="src"),
        Indicator("package_dependencies", 0.2, check="substantial_dependencies"),
        Indicator("file_presence", 0.1, target="test"),
        Indicator("git_history", 0.2, check="regular_commits"),
        Indicator("file_content", 0.2, target="package.json", keywords=["scripts", "start", "build"]),
    ],
    "review": [
        Indicator("file_presence", 0.2, target=".github/pull_request_template.md"),
        Indicator("git_history", 0.3, check="pr_history"),
        Indicator("file_presence", 0.1, target=".eslintrc"),
        Indicator("file_presence", 0.1, target=".prettierrc"),
        Indicator("package_dependencies", 0.3, check="quality_tools"),
    ],
    "testing": [
        Indicator("file_presence", 0.3, target=".github/workflows"),
        Indicator("dir_presence", 0.2, target="test"),
        Indicator("package_dependencies", 0.2, check="testing_frameworks"),
        Indicator("file_content", 0.3, target="package.json", keywords=["test", "jest", "mocha", "cypress"]),
    ],
    "production": [
        Indicator("package_version", 0.3, check="stable_version"),
        Indicator("file_presence", 0.2, target="docker"),
        Indicator("file_presence", 0.2, target="deployment"),
        Indicator("git_history", 0.3, check="release_tags"),
    ],
}

QUALITY_TOOLS = ("eslint", "prettier", "husky", "lint-staged")
TESTING_FRAMEWORKS = ("jest", "mocha", "cypress", "testing-library")
EXPERIMENT_KEYWORDS = ("poc", "experiment", "test", "try", "prototype")

TARGETED_NEXT_STEPS = {
    "discovery": [
        "Initialise the project: aiworkflow setup",
        "Apply the full template set",
        "Start with a requirements issue",
    ],
    "requirements": [
        "Apply templates from PoC onwards",
        "Move existing requirements into docs/PROJECT_CONTEXT.md",
        "Introduce the AI context bridge",
    ],
    "poc": [
        "Apply templates from implementation onwards",
        "Record PoC results as a structured context document",
        "Update the architecture document",
    ],
    "implementation": [
        "Strengthen the review process",
        "Introduce the AI context bridge",
        "Adopt code quality tooling",
    ],
    "review": [
        "Introduce test automation",
        "Configure the GitHub Actions workflows",
        "Adopt the context quality evaluator",
    ],
    "testing": [
        "Strengthen the CI/CD pipeline",
        "Evaluate deployment automation",
        "Prepare production monitoring",
    ],
    "production": [
        "Introduce a continuous improvement process",
        "Capture learnings for the next development cycle",
        "Use the team learning support tooling",
    ],
}

GRADUAL_NEXT_STEPS = [
    "Several phases are plausible",
    "Confirm the phase with a manual review",
    "Run the migration analysis: aiworkflow migrate --analyze-only",
    "Plan a staged migration",
]


@dataclass(slots=True)
class GitHistory:
    commit_count: int = 0
    recent_commits: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ProjectSnapshot:
    """Everything the indicators look at, gathered once per run."""

    root: Path
    files: List[str] = field(default_factory=list)
    directories: List[str] = field(default_factory=list)
    file_count: int = 0
    package_json: Optional[Dict[str, Any]] = None
    git: GitHistory = field(default_factory=GitHistory)

    def dependencies(self) -> Dict[str, Any]:
        if not self.package_json:
            return {}
        deps: Dict[str, Any] = {}
        deps.update(self.package_json.get("dependencies") or {})
        deps.update(self.package_json.get("devDependencies") or {})
        return deps


def count_files(directory: Path) -> int:
    """Count files recursively, skipping dot entries and node_modules."""
    count = 0
    try:
        entries = list(os.scandir(directory))
    except OSError:
        return 0
    for entry in entries:
        if entry.name.startswith(".") or entry.name == "node_modules":
            continue
        try:
            if entry.is_file():
                count += 1
            elif entry.is_dir():
                count += count_files(Path(entry.path))
        except OSError:
            continue
    return count


def take_snapshot(root: Path | str) -> ProjectSnapshot:
    workspace = ProjectWorkspace(root)
    snapshot = ProjectSnapshot(root=workspace.root)

    for entry in sorted(workspace.root.iterdir()):
        if entry.is_file():
            snapshot.files.append(entry.name)
        elif entry.is_dir() and not entry.name.startswith(".") and entry.name != "node_modules":
            snapshot.directories.append(entry.name)

    snapshot.file_count = count_files(workspace.root)
    snapshot.package_json = workspace.load_package_json()
    snapshot.git = read_git_history(workspace)
    return snapshot


def read_git_history(workspace: ProjectWorkspace) -> GitHistory:
    """Commit count, last ten one-line commits and tags; empty when not a repository."""
    if not workspace.has_git_dir():
        return GitHistory()

    count_output = workspace.git_or_default(["rev-list", "--all", "--count"], "0").strip()
    try:
        commit_count = int(count_output or 0)
    except ValueError:
        commit_count = 0

    recent = workspace.git_or_default(["log", "--oneline", "-10"]).strip()
    tags = workspace.git_or_default(["tag"]).strip()
    return GitHistory(
        commit_count=commit_count,
        recent_commits=[line for line in recent.splitlines() if line],
        tags=[tag for tag in tags.splitlines() if tag],
    )


class PhaseDetector:
    """Score each phase against a project snapshot."""

    def __init__(
        self,
        indicators: Optional[Dict[str, List[Indicator]]] = None,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ):
        self.indicators = indicators or PHASE_INDICATORS
        self.confidence_threshold = confidence_threshold
        self._evaluators: Dict[str, Callable[[Indicator, ProjectSnapshot], float]] = {
            "file_presence": lambda ind, snap: self.file_presence(ind.target, snap),
            "file_absence": lambda ind, snap: 1.0 - self.file_presence(ind.target, snap),
            "dir_presence": lambda ind, snap: 1.0 if ind.target in snap.directories else 0.0,
            "dir_absence": lambda ind, snap: 0.0 if ind.target in snap.directories else 1.0,
            "package_dependencies": lambda ind, snap: self.package_dependencies(ind.check, snap),
            "file_content": lambda ind, snap: self.file_content(ind.target, ind.keywords, snap),
            "git_history": lambda ind, snap: self.git_history(ind.check, snap),
            "package_version": lambda ind, snap: self.package_version(ind.check, snap),
            "file_count": lambda ind, snap: self.file_count(ind.check, snap),
        }

    @log_performance("detect_phase")
    def detect(self, root: Path | str) -> PhaseDetectionResult:
        snapshot = take_snapshot(root)
        scores = {phase: self.score_phase(phase, indicators, snapshot)
                  for phase, indicators in self.indicators.items()}
        recommendation = self.recommend(scores)
        result = PhaseDetectionResult(root=snapshot.root, scores=scores, recommendation=recommendation)

        logger.info(
            f"Detected phase {recommendation.primary_phase} "
            f"(score {recommendation.score:.2f}, confidence {recommendation.confidence:.2f})"
        )
        log_phase_detected(str(snapshot.root), recommendation.primary_phase, recommendation.confidence)
        return result

    def score_phase(self, phase: str, indicators: List[Indicator], snapshot: ProjectSnapshot) -> PhaseScore:
        results = [self.evaluate(indicator, snapshot) for indicator in indicators]
        total_weight = sum(r.indicator.weight for r in results)
        weighted = sum(r.score * r.indicator.weight for r in results)
        score = weighted / total_weight if total_weight > 0 else 0.0
        return PhaseScore(phase=phase, score=score, confidence=calculate_confidence(results), indicators=results)

    def evaluate(self, indicator: Indicator, snapshot: ProjectSnapshot) -> IndicatorResult:
        evaluator = self._evaluators.get(indicator.type)
        if evaluator is None:
            return IndicatorResult(indicator, 0.0, 0.5, error=f"Unknown indicator type: {indicator.type}")
        try:
            score = float(evaluator(indicator, snapshot))
        except Exception as exc:
            logger.warning(f"Indicator {indicator.type}:{indicator.target or indicator.check} failed: {exc}")
            return IndicatorResult(indicator, 0.0, 0.3, error=str(exc))
        return IndicatorResult(indicator, max(0.0, min(1.0, score)), 1.0)

    # ------------------------------------------------------------------
    # Indicator evaluators
    # ------------------------------------------------------------------

    @staticmethod
    def file_presence(target: str, snapshot: ProjectSnapshot) -> float:
        stem, ext = os.path.splitext(target)
        variations = [target, target.lower(), stem if ext else target, f"{target}.md", f"{target}.txt"]
        for variation in variations:
            if any(variation in name for name in snapshot.files):
                return 1.0
        return 1.0 if (snapshot.root / target).exists() else 0.0

    @staticmethod
    def file_content(target: str, keywords: List[str], snapshot: ProjectSnapshot) -> float:
        path = snapshot.root / target
        if not keywords or not path.is_file():
            return 0.0
        content = path.read_text(encoding="utf-8", errors="replace").lower()
        matches = [k for k in keywords if k.lower() in content]
        return len(matches) / len(keywords)

    @staticmethod
    def package_dependencies(check: str, snapshot: ProjectSnapshot) -> float:
        if snapshot.package_json is None:
            return 0.0
        deps = snapshot.dependencies()
        count = len(deps)

        if check == "few_dependencies":
            return 1.0 if count <= 5 else max(0.0, 1.0 - (count - 5) / 10)
        if check == "substantial_dependencies":
            return min(1.0, count / 15) if count >= 5 else count / 5
        if check == "quality_tools":
            return sum(1 for tool in QUALITY_TOOLS if tool in deps) / len(QUALITY_TOOLS)
        if check == "testing_frameworks":
            return 1.0 if any(tool in dep for dep in deps for tool in TESTING_FRAMEWORKS) else 0.0
        return 0.0

    @staticmethod
    def git_history(check: str, snapshot: ProjectSnapshot) -> float:
        history = snapshot.git
        commits = history.commit_count

        if check == "commit_count_low":
            return 1.0 if commits < 10 else max(0.0, 1.0 - (commits - 10) / 20)
        if check == "regular_commits":
            return 1.0 if commits >= 20 else commits / 20
        if check == "experimental_commits":
            experimental = [
                line for line in history.recent_commits
                if any(k in line.lower() for k in EXPERIMENT_KEYWORDS)
            ]
            return len(experimental) / max(1, len(history.recent_commits))
        if check == "pr_history":
            return 1.0 if any("merge" in line.lower() for line in history.recent_commits) else 0.0
        if check == "release_tags":
            return 1.0 if history.tags else 0.0
        return 0.0

    @staticmethod
    def package_version(check: str, snapshot: ProjectSnapshot) -> float:
        version = (snapshot.package_json or {}).get("version")
        if not version or check != "stable_version":
            return 0.0
        head = str(version).split(".")[0]
        major = int(head) if head.isdigit() else 0
        return 1.0 if major >= 1 else 0.0

    @staticmethod
    def file_count(check: str, snapshot: ProjectSnapshot) -> float:
        if check != "low_file_count":
            return 0.0
        n = snapshot.file_count
        return 1.0 if n < 20 else max(0.0, 1.0 - (n - 20) / 50)

    # ------------------------------------------------------------------
    # Recommendation
    # ------------------------------------------------------------------

    def recommend(self, scores: Dict[str, PhaseScore]) -> PhaseRecommendation:
        ranked = sorted(scores.values(), key=lambda s: s.score, reverse=True)
        top = ranked[0]
        high = top.confidence >= self.confidence_threshold

        return PhaseRecommendation(
            primary_phase=top.phase,
            certainty="high" if high else "medium",
            score=top.score,
            confidence=top.confidence,
            alternatives=[s.phase for s in ranked[1:] if top.score - s.score <= ALTERNATIVE_MARGIN],
            strategy="targeted" if high else "gradual",
            next_steps=list(TARGETED_NEXT_STEPS.get(top.phase, [])) if high else list(GRADUAL_NEXT_STEPS),
        )


def calculate_confidence(results: List[IndicatorResult]) -> float:
    """Mean indicator confidence damped by the variance of indicator scores."""
    if not results:
        return 0.0
    mean_confidence = sum(r.confidence for r in results) / len(results)
    scores = [r.score for r in results]
    mean = sum(scores) / len(scores)
    variance = sum((s - mean) ** 2 for s in scores) / len(scores)
    return mean_confidence * max(0.0, 1.0 - variance * 2)


def detect_phase(root: Path | str, confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD) -> PhaseDetectionResult:
    return PhaseDetector(confidence_threshold=confidence_threshold).detect(root)


def render_detection(console: Console, result: PhaseDetectionResult, detailed: bool = False) -> None:
    rec = result.recommendation
    console.print("[bold blue]Project phase detection[/bold blue]")
    console.print(f"Analysed: {result.root}\n")
    console.print(f"[cyan]Estimated phase:[/cyan] [bold]{PHASE_LABELS[rec.primary_phase]}[/bold]")
    console.print(f"[cyan]Score:[/cyan] {rec.score * 100:.1f}%")
    console.print(f"[cyan]Confidence:[/cyan] {rec.confidence * 100:.1f}%")
    console.print(f"[cyan]Certainty:[/cyan] {rec.certainty}")

    if detailed:
        table = Table(title="Phase scores")
        table.add_column("Phase")
        table.add_column("Score", justify="right")
        table.add_column("Confidence", justify="right")
        table.add_column("")
        for score in result.ranked():
            table.add_row(
                PHASE_LABELS[score.phase],
                f"{score.score * 100:.1f}%",
                f"{score.confidence * 100:.1f}%",
                "█" * round(score.score * 20),
            )
        console.print(table)

        top = result.scores[rec.primary_phase]
        strong = sorted((i for i in top.indicators if i.score > 0.5), key=lambda i: i.score, reverse=True)[:5]
        if strong:
            console.print("[yellow]Main signals:[/yellow]")
            for item in strong:
                label = item.indicator.target or item.indicator.check
                console.print(f"  ✓ {item.indicator.type} {label} ({item.score * 100:.1f}%)")

    if rec.alternatives:
        console.print("\n[yellow]Alternatives:[/yellow]")
        for phase in rec.alternatives:
            console.print(f"  • {PHASE_LABELS[phase]} (score {result.scores[phase].score * 100:.1f}%)")

    console.print(f"\n[cyan]Strategy:[/cyan] {rec.strategy}")
    for index, step in enumerate(rec.next_steps, 1):
        console.print(f"  {index}. {step}")

    console.print("\n[blue]Suggested commands:[/blue]")
    if rec.certainty == "high":
        console.print(f"  aiworkflow migrate --phase {rec.primary_phase}")
    else:
        console.print("  aiworkflow migrate --analyze-only")
    console.print("  aiworkflow validate")
