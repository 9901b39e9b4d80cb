"""Extract a context document from a GitHub issue body.

Used by the ``auto-context-bridge`` workflow when a phase issue is closed:
decisions, constraints, learnings and next steps are pulled out of the
issue's markdown and saved as the phase's context document.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

from .models import (
    Constraint,
    ContextDocument,
    KeyDecision,
    LearnedPattern,
    TechnicalArtifact,
    next_phase,
)
from .settings import Settings
from .workflow_logging import log_operation
from .workspace import ProjectWorkspace, emit_github_outputs

logger = logging.getLogger("aiworkflow.context_extractor")


def _section(heading: str) -> re.Pattern:
    return re.compile(rf"^{heading}\s*\n(.*?)(?=\n##|\Z)", re.IGNORECASE | re.MULTILINE | re.DOTALL)


DECISION_SECTIONS = [
    _section(r"## (?:Key )?Decisions"),
    _section(r"## Important Judg(?:e)?ments"),
    _section(r"### Technical Choices"),
    _section(r"## 決定事項"),
    _section(r"## 重要な判断"),
    _section(r"### 技術選択"),
]

NEXT_STEP_SECTIONS = [
    _section(r"## Next Steps"),
    _section(r"## 次のステップ"),
]

CONSTRAINT_KEYWORDS = re.compile(r"constraint|limit|requirement|condition|must|制約|制限|要件|条件", re.IGNORECASE)
PATTERN_KEYWORDS = re.compile(r"learn|insight|discover|pattern|trend|学習|気づき|発見|パターン|トレンド", re.IGNORECASE)

AI_TOOL_PATTERNS = [
    re.compile(r"GitHub Copilot", re.IGNORECASE),
    re.compile(r"Claude", re.IGNORECASE),
    re.compile(r"ChatGPT", re.IGNORECASE),
    re.compile(r"Windsurf", re.IGNORECASE),
    re.compile(r"Cursor", re.IGNORECASE),
    re.compile(r"Gemini", re.IGNORECASE),
]

CODE_BLOCK = re.compile(r"```[\s\S]*?```")
FILE_REFERENCE = re.compile(r"`[^`\n]+\.(?:js|ts|py|md|yml|yaml|json)`")
MARKDOWN_LINK = re.compile(r"\[[^\]]+\]\([^)]+\)")

METRIC_PATTERNS = {
    "coverage": re.compile(r"(?:\bcoverage|カバレッジ)[\s:：]*(\d+(?:\.\d+)?%?)", re.IGNORECASE),
    "test_count": re.compile(r"(?:\btests?|テスト)[\s:：]*(\d+)\s*(?:件|cases?|tests?)?", re.IGNORECASE),
    "bug_count": re.compile(r"(?:\bbugs?|バグ)[\s:：]*(\d+)\s*(?:件)?", re.IGNORECASE),
    "review_count": re.compile(r"(?:\breviews?|レビュー)[\s:：]*(\d+)\s*(?:回|rounds?)?", re.IGNORECASE),
}

DECISION_REASONING = "Extracted from issue description"
DECISION_IMPACT = "To be determined"
PATTERN_EVIDENCE = "Extracted from issue discussion"


def list_items(text: str) -> List[str]:
    items = []
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("- ") or stripped.startswith("* "):
            item = re.sub(r"^[\s\-*]+", "", line).strip()
            if item:
                items.append(item)
    return items


def extract_decisions(text: str) -> List[KeyDecision]:
    decisions = []
    for pattern in DECISION_SECTIONS:
        for match in pattern.finditer(text):
            for item in list_items(match.group(1)):
                decisions.append(KeyDecision(decision=item, reasoning=DECISION_REASONING, impact=DECISION_IMPACT))
    return decisions


def _bullet_text(line: str) -> str:
    return re.sub(r"^\s*[-*]\s+", "", line).strip()


def extract_constraints(text: str) -> List[Constraint]:
    return [
        Constraint(type="requirement", description=_bullet_text(line))
        for line in text.splitlines()
        if "- " in line and CONSTRAINT_KEYWORDS.search(line)
    ]


def extract_patterns(text: str) -> List[LearnedPattern]:
    return [
        LearnedPattern(pattern=_bullet_text(line), evidence=PATTERN_EVIDENCE)
        for line in text.splitlines()
        if "- " in line and PATTERN_KEYWORDS.search(line)
    ]


def extract_next_focus(text: str) -> List[str]:
    focus: List[str] = []
    for pattern in NEXT_STEP_SECTIONS:
        for match in pattern.finditer(text):
            focus.extend(list_items(match.group(1)))
    return focus


def extract_ai_tools(text: str) -> List[str]:
    tools: List[str] = []
    for pattern in AI_TOOL_PATTERNS:
        match = pattern.search(text)
        if match and match.group(0).lower() not in tools:
            tools.append(match.group(0).lower())
    return tools


def extract_technical_artifacts(text: str) -> List[TechnicalArtifact]:
    artifacts = [TechnicalArtifact(type="code_block", content=m) for m in CODE_BLOCK.findall(text)]
    artifacts += [TechnicalArtifact(type="file_reference", content=m) for m in FILE_REFERENCE.findall(text)]
    artifacts += [TechnicalArtifact(type="reference_link", content=m) for m in MARKDOWN_LINK.findall(text)]
    return artifacts


def extract_quality_metrics(text: str) -> Dict[str, str]:
    metrics = {}
    for name, pattern in METRIC_PATTERNS.items():
        matches = pattern.findall(text)
        if matches:
            metrics[name] = matches[-1]
    return metrics


def extract_context(
    phase: str,
    body: str,
    *,
    issue_number: Optional[int | str] = None,
    repository: Optional[str] = None,
) -> ContextDocument:
    """Build a context document from an issue body."""
    body = body or ""
    return ContextDocument(
        phase=phase,
        issue_reference=f"#{issue_number}" if issue_number is not None else None,
        repository=repository,
        ai_tools_used=extract_ai_tools(body),
        key_decisions=extract_decisions(body),
        critical_constraints=extract_constraints(body),
        learned_patterns=extract_patterns(body),
        next_phase_focus=extract_next_focus(body),
        technical_artifacts=extract_technical_artifacts(body),
        quality_metrics=extract_quality_metrics(body),
    )


def extract_and_save(
    root: Path | str,
    phase: str,
    body: str,
    *,
    issue_number: Optional[int | str] = None,
    issue_title: Optional[str] = None,
    repository: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Optional[str]]:
    """Extract and save the context, flagging the next phase for the workflow."""
    settings = settings or Settings.from_env()
    workspace = ProjectWorkspace(root)

    with log_operation("extract_context", phase=phase, issue=issue_number, title=issue_title):
        document = extract_context(phase, body, issue_number=issue_number, repository=repository)
        context_path = workspace.save_context(document)

        upcoming = next_phase(phase)
        marker: Optional[Path] = None
        if upcoming:
            marker = workspace.temp_dir / "next-phase-needed.txt"
            marker.parent.mkdir(parents=True, exist_ok=True)
            marker.write_text(upcoming, encoding="utf-8")

    logger.info(
        f"Extracted {len(document.key_decisions)} decisions and "
        f"{len(document.critical_constraints)} constraints from issue #{issue_number}"
    )

    if settings.github_actions:
        outputs = {"success": "true"}
        if upcoming:
            outputs.update({"next-phase-needed": "true", "next-phase": upcoming})
        emit_github_outputs(outputs, settings.github_output)

    return {
        "context_path": str(context_path),
        "next_phase": upcoming,
        "next_phase_marker": str(marker) if marker else None,
    }
