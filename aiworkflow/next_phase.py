"""Render the next phase's issue body from the previous phase's context."""

from __future__ import annotations

import logging
import textwrap
from pathlib import Path
from typing import Dict, List, Optional

from .models import ContextDocument, PHASE_LABELS, next_phase, validate_phase
from .workflow_logging import log_operation
from .workspace import ProjectWorkspace

logger = logging.getLogger("aiworkflow.next_phase")

PHASE_TITLES = {
    "poc": "🧪 Proof of Concept phase kick-off",
    "implementation": "⚙️ Implementation phase kick-off",
    "review": "🔍 Review phase kick-off",
    "testing": "🧪 Testing and deployment phase kick-off",
}

PHASE_TEMPLATES = {
    "poc": textwrap.dedent("""\
        # Proof of Concept phase

        ## 🎯 Inherited from the previous phase

        ### Key decisions
        {key_decisions}

        ### Constraints
        {critical_constraints}

        ### Learned patterns
        {learned_patterns}

        ## 📋 What the PoC must verify
        {poc_verification_items}

        ## 🏗️ Verification approach
        - [ ] Validate the base architecture
        - [ ] Confirm feasibility of the main features
        - [ ] Initial performance assessment
        - [ ] Feasibility of the security requirements

        ## 🔄 Context hand-off checklist
        - [ ] Previous decisions understood
        - [ ] Constraints understood
        - [ ] Learned patterns acknowledged
        - [ ] PoC responsibilities clarified

        ## 📝 Updates on completion
        - [ ] Update `docs/ARCHITECTURE.md`
        - [ ] Record PoC results
        - [ ] Summarise recommendations for the next phase
        """),
    "implementation": textwrap.dedent("""\
        # Implementation phase

        ## 🎯 Inherited from the previous phase

        ### Technical verification results
        {technical_verification_results}

        ### Recommended architecture
        {recommended_architecture}

        ### Key learnings
        {learned_patterns}

        ## 🏗️ Implementation plan
        {implementation_plan}

        ## 📋 Task breakdown
        - [ ] Foundation components
        - [ ] Main features
        - [ ] Integration tests
        - [ ] Documentation

        ## 🔄 Context hand-off checklist
        - [ ] PoC results understood
        - [ ] Recommended architecture understood
        - [ ] Technical constraints acknowledged
        - [ ] Implementation quality bar confirmed

        ## 📝 Updates on completion
        - [ ] Implementation summary
        - [ ] Review focus areas
        - [ ] Testing focus areas
        """),
    "review": textwrap.dedent("""\
        # Review phase

        ## 🎯 Inherited from the previous phase

        ### Implementation summary
        {implementation_summary}

        ### Review focus areas
        {review_focus_areas}

        ### Quality metrics
        {quality_metrics}

        ## 📋 Review items
        - [ ] Code quality
        - [ ] Architectural consistency
        - [ ] Security requirements
        - [ ] Performance requirements
        - [ ] Test coverage

        ## 🔄 Context hand-off checklist
        - [ ] Implementation understood
        - [ ] Focus areas understood
        - [ ] Quality bar confirmed
        - [ ] Review responsibilities clarified

        ## 📝 Updates on completion
        - [ ] Review summary
        - [ ] Record of fixes
        - [ ] Testing focus hand-off
        """),
    "testing": textwrap.dedent("""\
        # Testing and deployment phase

        ## 🎯 Inherited from the previous phase

        ### Review results
        {review_results}

        ### Fixed issues
        {fixed_issues}

        ### Testing focus areas
        {test_focus_areas}

        ## 📋 AI-assisted test plan
        - [ ] **Test case generation** from the requirements
        - [ ] **Test data generation** covering varied patterns
        - [ ] **Test code assistance**
        - [ ] **Result analysis**
        - [ ] **Exploratory testing** for unknown issues

        ## 🔄 Context hand-off checklist
        - [ ] Review results understood
        - [ ] Fixes understood
        - [ ] Testing focus acknowledged
        - [ ] Quality bar confirmed

        ## 📝 Updates on completion
        - [ ] Test report
        - [ ] Deployment record
        - [ ] Project retrospective
        - [ ] Improvements for next time
        """),
}

RESPONSIBILITIES = {
    "poc": ["Verify technical feasibility", "Present architecture options", "Surface risks early"],
    "implementation": ["Write high-quality code", "Follow the design principles", "Keep code testable"],
    "review": ["Check code quality", "Assess the design", "Check security and performance"],
    "testing": ["Run comprehensive tests", "Check quality indicators", "Prepare the deployment"],
}

ARCHITECTURE_KEYWORDS = ("architecture", "technology", "stack", "framework", "技術", "アーキテクチャ")


def _bullets(items: List[str], empty: str) -> str:
    if not items:
        return empty
    return "\n".join(f"- {item}" for item in items)


def format_decisions(document: ContextDocument) -> str:
    if not document.key_decisions:
        return "- No decisions recorded"
    return "\n".join(
        f"- **{d.decision}**\n  - Reasoning: {d.reasoning}\n  - Impact: {d.impact}"
        for d in document.key_decisions
    )


def format_constraints(document: ContextDocument) -> str:
    if not document.critical_constraints:
        return "- No constraints recorded"
    return "\n".join(f"- **{c.type}**: {c.description}" for c in document.critical_constraints)


def format_patterns(document: ContextDocument) -> str:
    if not document.learned_patterns:
        return "- No learned patterns recorded"
    return "\n".join(f"- {p.pattern}\n  - Evidence: {p.evidence}" for p in document.learned_patterns)


def format_architecture(document: ContextDocument) -> str:
    technical = [
        d for d in document.key_decisions
        if any(k in d.decision.lower() for k in ARCHITECTURE_KEYWORDS)
    ]
    if not technical:
        return "- No architecture recommendations recorded"
    return "\n".join(f"- {d.decision}: {d.reasoning}" for d in technical)


def placeholder_values(document: ContextDocument) -> Dict[str, str]:
    focus = document.next_phase_focus
    return {
        "key_decisions": format_decisions(document),
        "critical_constraints": format_constraints(document),
        "learned_patterns": format_patterns(document),
        "poc_verification_items": _bullets(
            focus, "- Confirm feasibility of the core features\n- Validate the technology stack"
        ),
        "technical_verification_results": "\n".join(
            f"- **{a.type}**: {a.content}" for a in document.technical_artifacts
        ) or "- No technical verification results recorded",
        "recommended_architecture": format_architecture(document),
        "implementation_plan": _bullets(focus, "- The implementation plan needs more detail"),
        "implementation_summary": (
            "- See the previous phase's record for implementation details\n"
            "- Main components and features\n"
            "- Notable implementation techniques"
        ),
        "review_focus_areas": _bullets(focus, "- Code quality\n- Architectural consistency\n- Security requirements"),
        "quality_metrics": "\n".join(
            f"- **{key}**: {value}" for key, value in document.quality_metrics.items() if value is not None
        ) or "- No quality metrics recorded",
        "review_results": (
            "- See the previous phase's record for review details\n"
            "- Findings and their resolution\n"
            "- Quality check results"
        ),
        "fixed_issues": (
            "- See the previous phase's record for fixed issues\n"
            "- Main fixes\n"
            "- Remaining issues, if any"
        ),
        "test_focus_areas": _bullets(focus, "- Functional tests\n- Performance tests\n- Security tests"),
    }


def ai_handoff_prompt(upcoming: str, document: ContextDocument, repository: Optional[str] = None) -> str:
    label = PHASE_LABELS[upcoming]
    owner = f" for {repository}" if repository else ""
    return (
        f"You are the AI responsible for the {label} phase{owner}.\n\n"
        "The previous phase decided and learned the following:\n\n"
        f"## Key decisions\n{format_decisions(document)}\n\n"
        f"## Constraints\n{format_constraints(document)}\n\n"
        f"## Learned patterns\n{format_patterns(document)}\n\n"
        f"## Your responsibilities in this phase\n{_bullets(RESPONSIBILITIES.get(upcoming, []), '- Confirm the phase responsibilities')}\n\n"
        f"Start the {label} phase with this context in mind.\n"
        "Ask if anything is unclear."
    )


def render_next_phase_context(completed: str, document: ContextDocument, repository: Optional[str] = None) -> Optional[str]:
    """Return the Markdown body for the phase after ``completed``, or None at the end of the chain."""
    upcoming = next_phase(completed)
    if upcoming is None:
        return None
    body = PHASE_TEMPLATES[upcoming].format_map(placeholder_values(document))
    prompt = ai_handoff_prompt(upcoming, document, repository)
    return f"# {PHASE_TITLES[upcoming]}\n\n{body}\n\n## 🤖 AI hand-off prompt\n\n```text\n{prompt}\n```\n"


def generate_next_phase_context(
    root: Path | str, completed: str, repository: Optional[str] = None
) -> Optional[Path]:
    """Write ``temp/next-phase-context.md``; returns None when ``completed`` is the final phase."""
    completed = validate_phase(completed)
    workspace = ProjectWorkspace(root)
    upcoming = next_phase(completed)
    if upcoming is None:
        logger.info(f"{completed} is the final phase; no next phase context generated")
        return None

    with log_operation("generate_next_phase_context", completed=completed, upcoming=upcoming):
        document = workspace.load_context(completed)
        content = render_next_phase_context(completed, document, repository)
        path = workspace.temp_dir / "next-phase-context.md"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    logger.info(f"Next phase context for {upcoming} written to {path}")
    return path
