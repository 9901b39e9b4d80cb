"""AI context bridge.

Records what was learned in a completed phase as a context document and
turns it into a hand-off prompt for the AI assistant working on the next
phase.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console
from rich.prompt import Confirm, Prompt

from .errors import ContextNotFoundError, InvalidPhaseError, WorkflowError
from .models import (
    PHASE_CHAIN,
    PHASE_LABELS,
    Constraint,
    ContextDocument,
    KeyDecision,
    LearnedPattern,
    next_phase,
    previous_phase,
    validate_phase,
)
from .workflow_logging import log_operation, observability_hooks
from .workspace import ProjectWorkspace, read_yaml

logger = logging.getLogger("aiworkflow.context_bridge")

BRIDGE_PHASES = tuple(PHASE_CHAIN)
DEFAULT_AI_TOOLS = "GitHub Copilot, Claude"

PHASE_RESPONSIBILITIES = {
    "poc": [
        "Verify technical feasibility",
        "Present and evaluate architecture options",
        "Surface the main technical risks early",
        "Support prototype design and implementation",
        "Provide the evidence needed to decide on full implementation",
    ],
    "implementation": [
        "Support production-quality implementation",
        "Detail the architecture design",
        "Check adherence to the coding standards",
        "Support test implementation",
        "Keep performance and security in view",
    ],
    "review": [
        "Review code quality comprehensively",
        "Detect security vulnerabilities",
        "Propose performance optimisations",
        "Assess maintainability and extensibility",
        "Share best practices",
    ],
    "testing": [
        "Design and generate test cases",
        "Help create test data",
        "Support test automation",
        "Design performance tests",
        "Evaluate the deployment strategy",
    ],
}

CHECKLIST_ITEMS = (
    "Key decisions are recorded",
    "Constraints are clearly described",
    "Learned patterns are concrete",
    "Next phase focus is clear",
    "Phases are recorded without gaps",
    "Hand-off prompts have been generated",
)

HANDOFF_TEMPLATE = """# AI Context Hand-off Prompt - Starting {next_label}

You are the AI specialist responsible for the "{next_label}" phase.
Carry forward the context established during the previous phase ({prev_label}).

## Previous phase results and context

```yaml
{context_yaml}
```

## Your responsibilities in this phase

{responsibilities}

## Context hand-off confirmation

Confirm the following before starting work:
- [ ] I understand the key decisions of the previous phase
- [ ] I am aware of the constraints
- [ ] I recognise the learned patterns
- [ ] I know the focus areas for this phase

## Let's get started

Start the {next_label} phase with this context in mind.
Ask if anything is unclear or if you need more information.

When ready, reply with "Context received, starting {next_label}".
"""


@dataclass(slots=True)
class ContextCheckReport:
    files: List[Dict[str, Any]] = field(default_factory=list)
    checklist: Dict[str, bool] = field(default_factory=dict)

    @property
    def score(self) -> float:
        if not self.checklist:
            return 0.0
        return sum(1 for ok in self.checklist.values() if ok) / len(self.checklist) * 100

    @property
    def verdict(self) -> str:
        if self.score >= 80:
            return "high"
        if self.score >= 60:
            return "improvable"
        return "needs-work"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": self.files,
            "checklist": dict(self.checklist),
            "score": round(self.score, 1),
            "verdict": self.verdict,
        }


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class ContextBridge:
    """Record phase context and produce hand-off prompts."""

    def __init__(self, root: Path | str):
        self.workspace = ProjectWorkspace(root)

    # ------------------------------------------------------------------
    # complete
    # ------------------------------------------------------------------

    def complete_phase(self, document: ContextDocument, *, generate_prompt: bool = False) -> Dict[str, Any]:
        """Save a completed phase's context and optionally hand it to the next phase."""
        phase = validate_phase(document.phase, BRIDGE_PHASES)
        document.phase = phase
        document.quality_metrics.setdefault("completeness_score", None)
        document.quality_metrics.setdefault("consistency_score", None)
        document.quality_metrics.setdefault("usability_score", None)

        with log_operation("complete_phase", phase=phase):
            context_path = self.workspace.save_context(document)

        result: Dict[str, Any] = {
            "phase": phase,
            "context_path": str(context_path),
            "next_phase": next_phase(phase),
            "handoff_prompt_path": None,
        }
        if generate_prompt and next_phase(phase):
            result["handoff_prompt_path"] = str(self.generate_handoff_prompt(phase, next_phase(phase)))

        observability_hooks.log_workflow_event(
            "phase_completed", project_root=str(self.workspace.root), phase=phase
        )
        return result

    def load_document_file(self, path: Path | str, phase: Optional[str] = None) -> ContextDocument:
        """Read a context document authored as YAML, overriding its phase when given."""
        data = read_yaml(Path(path)) or {}
        if not isinstance(data, dict):
            raise ContextNotFoundError(f"{path} does not contain a YAML mapping")
        if phase:
            data["phase"] = phase
        return ContextDocument.from_dict(data)

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------

    def start_phase(self, phase: str) -> Path:
        """Generate the hand-off prompt for ``phase`` from its predecessor's context."""
        phase = validate_phase(phase, BRIDGE_PHASES)
        previous = previous_phase(phase)
        if previous is None:
            raise InvalidPhaseError(f"Phase '{phase}' has no previous phase to inherit context from")
        return self.generate_handoff_prompt(previous, phase)

    def generate_handoff_prompt(self, completed: str, upcoming: str) -> Path:
        context_path = self.workspace.context_path(completed)
        if not context_path.exists():
            raise ContextNotFoundError(
                f"Context file for phase '{completed}' not found: {context_path}",
                details={"path": str(context_path)},
            )

        prompt = HANDOFF_TEMPLATE.format(
            next_label=PHASE_LABELS[upcoming],
            prev_label=PHASE_LABELS[completed],
            context_yaml=context_path.read_text(encoding="utf-8").rstrip(),
            responsibilities="\n".join(
                f"- {item}" for item in PHASE_RESPONSIBILITIES.get(upcoming, ["Confirm the responsibilities of this phase"])
            ),
        )
        path = self.workspace.handoff_prompt_path(upcoming)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(prompt, encoding="utf-8")
        logger.info(f"Hand-off prompt for {upcoming} written to {path}")
        return path

    # ------------------------------------------------------------------
    # check / metrics
    # ------------------------------------------------------------------

    def load_recorded(self) -> Dict[str, ContextDocument]:
        documents: Dict[str, ContextDocument] = {}
        for phase in BRIDGE_PHASES:
            try:
                documents[phase] = self.workspace.load_context(phase)
            except ContextNotFoundError:
                continue
            except yaml.YAMLError as exc:
                raise WorkflowError(
                    f"Context file for phase '{phase}' is not valid YAML: {exc}",
                    details={"path": str(self.workspace.context_path(phase))},
                ) from exc
        return documents

    def check(self, answers: Optional[Dict[str, bool]] = None) -> ContextCheckReport:
        """List saved context files and score the hand-off checklist.

        Items missing from ``answers`` are evaluated from the saved documents.
        """
        context_files = self.workspace.list_context_files()
        if not context_files:
            raise ContextNotFoundError(
                "No context files found. Record a completed phase first: aiworkflow context complete"
            )

        report = ContextCheckReport()
        for path in context_files:
            text = path.read_text(encoding="utf-8")
            report.files.append({"file": path.name, "lines": len(text.split("\n"))})

        automatic = self._evaluate_checklist(self.load_recorded())
        answers = answers or {}
        for item in CHECKLIST_ITEMS:
            report.checklist[item] = answers.get(item, automatic[item])
        return report

    def _evaluate_checklist(self, documents: Dict[str, ContextDocument]) -> Dict[str, bool]:
        docs = list(documents.values())
        recorded = [p for p in BRIDGE_PHASES if p in documents]
        contiguous = recorded == list(BRIDGE_PHASES[: len(recorded)])
        prompts_ok = all(
            self.workspace.handoff_prompt_path(next_phase(p)).exists()
            for p in recorded
            if next_phase(p)
        )
        return {
            CHECKLIST_ITEMS[0]: bool(docs) and all(d.key_decisions for d in docs),
            CHECKLIST_ITEMS[1]: bool(docs) and all(
                d.critical_constraints and all(c.description for c in d.critical_constraints) for d in docs
            ),
            CHECKLIST_ITEMS[2]: bool(docs) and all(
                d.learned_patterns and all(p.evidence for p in d.learned_patterns) for d in docs
            ),
            CHECKLIST_ITEMS[3]: bool(docs) and all(d.next_phase_focus for d in docs),
            CHECKLIST_ITEMS[4]: bool(recorded) and contiguous,
            CHECKLIST_ITEMS[5]: bool(recorded) and prompts_ok,
        }

    def _quality_summary(self) -> Dict[str, Any]:
        path = self.workspace.quality_summary_path
        if not path.exists():
            return {}
        try:
            summary = read_yaml(path)
        except yaml.YAMLError as exc:
            raise WorkflowError(f"Quality summary is not valid YAML: {exc}", details={"path": str(path)}) from exc
        if summary is None:
            return {}
        if not isinstance(summary, dict):
            raise WorkflowError(
                f"Quality summary {self.workspace.relative(path)} does not contain a mapping",
                details={"path": str(path)},
            )
        return summary

    def metrics(self) -> Dict[str, Any]:
        """Hand-off metrics computed from the saved documents and quality summary."""
        documents = self.load_recorded()
        prompts = [p for p in BRIDGE_PHASES if self.workspace.handoff_prompt_path(p).exists()]
        handoffs_expected = [p for p in documents if next_phase(p)]

        summary_scores: List[float] = []
        summary = self._quality_summary()
        phases = summary.get("phases")
        if isinstance(phases, dict):
            for entry in phases.values():
                if isinstance(entry, dict) and entry.get("latest_score") is not None:
                    summary_scores.append(float(entry["latest_score"]))

        return {
            "phases_recorded": sorted(documents, key=BRIDGE_PHASES.index),
            "phase_completion_rate": round(len(documents) / len(BRIDGE_PHASES) * 100, 1),
            "handoff_prompts": prompts,
            "handoff_rate": round(
                len([p for p in handoffs_expected if next_phase(p) in prompts]) / len(handoffs_expected) * 100, 1
            ) if handoffs_expected else 0.0,
            "total_decisions": sum(len(d.key_decisions) for d in documents.values()),
            "total_constraints": sum(len(d.critical_constraints) for d in documents.values()),
            "average_quality_score": round(sum(summary_scores) / len(summary_scores), 1) if summary_scores else None,
        }


# ----------------------------------------------------------------------
# Interactive entry
# ----------------------------------------------------------------------


def prompt_context_document(console: Console, phase: Optional[str] = None) -> ContextDocument:
    """Collect a context document through rich prompts."""
    if not phase:
        phase = Prompt.ask("Completed phase", choices=list(BRIDGE_PHASES), console=console)

    tools = Prompt.ask("AI tools used (comma separated)", default=DEFAULT_AI_TOOLS, console=console)
    document = ContextDocument(phase=phase, ai_tools_used=_split_csv(tools))

    console.print("\n[yellow]Key decisions[/yellow] (leave the decision empty to finish)")
    while True:
        decision = Prompt.ask("  Decision", default="", console=console)
        if not decision:
            break
        document.key_decisions.append(KeyDecision(
            decision=decision,
            reasoning=Prompt.ask("  Reasoning", default="", console=console),
            impact=Prompt.ask("  Impact", default="", console=console),
        ))

    console.print("\n[yellow]Critical constraints[/yellow] (leave the type empty to finish)")
    while True:
        kind = Prompt.ask("  Type", default="", console=console)
        if not kind:
            break
        document.critical_constraints.append(
            Constraint(type=kind, description=Prompt.ask("  Description", default="", console=console))
        )

    console.print("\n[yellow]Learned patterns[/yellow] (leave the pattern empty to finish)")
    while True:
        pattern = Prompt.ask("  Pattern", default="", console=console)
        if not pattern:
            break
        document.learned_patterns.append(
            LearnedPattern(pattern=pattern, evidence=Prompt.ask("  Evidence", default="", console=console))
        )

    console.print("\n[yellow]Next phase focus[/yellow] (empty line to finish)")
    while True:
        focus = Prompt.ask("  Focus", default="", console=console)
        if not focus:
            break
        document.next_phase_focus.append(focus)

    return document


def prompt_checklist(console: Console, defaults: Dict[str, bool]) -> Dict[str, bool]:
    return {
        item: Confirm.ask(item, default=defaults.get(item, False), console=console)
        for item in CHECKLIST_ITEMS
    }


def render_check(console: Console, report: ContextCheckReport) -> None:
    console.print("\n[cyan]Saved context files:[/cyan]")
    for entry in report.files:
        console.print(f"  ✓ {entry['file']} ({entry['lines']} lines)")
    console.print("\n[cyan]Checklist:[/cyan]")
    for item, ok in report.checklist.items():
        console.print(f"  {'[green]✓[/green]' if ok else '[red]✗[/red]'} {item}")

    passed = sum(1 for ok in report.checklist.values() if ok)
    console.print(f"\n[cyan]Quality score:[/cyan] {report.score:.1f}% ({passed}/{len(report.checklist)})")
    if report.verdict == "high":
        console.print("[green]High-quality context hand-off[/green]")
    elif report.verdict == "improvable":
        console.print("[yellow]Context hand-off has room for improvement[/yellow]")
    else:
        console.print("[red]Context hand-off quality needs work[/red]")
