"""Unit tests for extracting context from issue bodies."""

from pathlib import Path

from aiworkflow.context_extractor import (
    DECISION_IMPACT,
    DECISION_REASONING,
    extract_ai_tools,
    extract_and_save,
    extract_constraints,
    extract_context,
    extract_decisions,
    extract_next_focus,
    extract_patterns,
    extract_quality_metrics,
    extract_technical_artifacts,
    list_items,
)
from aiworkflow.settings import Settings
from aiworkflow.workspace import ProjectWorkspace

ISSUE_BODY = """## Summary
Requirements for the ordering service, drafted with Claude and GitHub Copilot.

## Key Decisions
- Use PostgreSQL for orders
- Expose a REST API first

## Constraints
- Response time must stay under 200ms
- Budget limit of two engineers

## Learnings
- Learned that early load tests catch regressions
- Pattern: small pull requests get reviewed faster

```python
def place_order(order):
    return order
```

See `src/orders.py` and [the design doc](https://example.com/design).

Coverage: 85%
Tests: 42 cases

## Next Steps
- Build the PoC for the order API
- Validate the payment provider integration
"""


class TestExtractors:
    """Test cases for the individual extractors."""

    def test_list_items(self):
        """Test dash and star bullets are collected."""
        assert list_items("- one\n* two\nplain\n  - three\n-\n") == ["one", "two", "three"]

    def test_extract_decisions(self):
        """Test decisions come from the decision section."""
        decisions = extract_decisions(ISSUE_BODY)

        assert [d.decision for d in decisions] == ["Use PostgreSQL for orders", "Expose a REST API first"]
        assert decisions[0].reasoning == DECISION_REASONING
        assert decisions[0].impact == DECISION_IMPACT

    def test_extract_decisions_japanese_heading(self):
        """Test Japanese section headings are recognised."""
        decisions = extract_decisions("## 決定事項\n- Next.jsを採用\n\n## その他\n- 無関係")

        assert [d.decision for d in decisions] == ["Next.jsを採用"]

    def test_extract_decisions_technical_choices(self):
        """Test the technical choices subsection."""
        decisions = extract_decisions("### Technical Choices\n- Redis for sessions\n")

        assert decisions[0].decision == "Redis for sessions"

    def test_extract_constraints(self):
        """Test constraint keywords on bullet lines."""
        constraints = extract_constraints(ISSUE_BODY)

        assert [c.description for c in constraints] == [
            "Response time must stay under 200ms",
            "Budget limit of two engineers",
        ]
        assert all(c.type == "requirement" for c in constraints)

    def test_extract_patterns(self):
        """Test learning keywords on bullet lines."""
        patterns = extract_patterns(ISSUE_BODY)

        assert [p.pattern for p in patterns] == [
            "Learned that early load tests catch regressions",
            "Pattern: small pull requests get reviewed faster",
        ]

    def test_extract_next_focus(self):
        """Test next steps are collected."""
        assert extract_next_focus(ISSUE_BODY) == [
            "Build the PoC for the order API",
            "Validate the payment provider integration",
        ]

    def test_extract_ai_tools(self):
        """Test tool mentions are deduplicated and lowercased."""
        assert extract_ai_tools(ISSUE_BODY + "\nclaude again") == ["github copilot", "claude"]

    def test_extract_technical_artifacts(self):
        """Test code blocks, file references and links."""
        artifacts = extract_technical_artifacts(ISSUE_BODY)

        assert [a.type for a in artifacts] == ["code_block", "file_reference", "reference_link"]
        assert artifacts[0].content.startswith("```python")
        assert artifacts[1].content == "`src/orders.py`"
        assert artifacts[2].content == "[the design doc](https://example.com/design)"

    def test_extract_quality_metrics(self):
        """Test the last match per metric is kept."""
        metrics = extract_quality_metrics(ISSUE_BODY)

        assert metrics["coverage"] == "85%"
        assert metrics["test_count"] == "42"
        assert "bug_count" not in metrics

    def test_empty_body(self):
        """Test an empty body yields an empty document."""
        document = extract_context("poc", "")

        assert document.key_decisions == []
        assert document.issue_reference is None


class TestExtractContext:
    """Test cases for building and saving the document."""

    def test_extract_context(self):
        """Test the document carries the issue reference and repository."""
        document = extract_context("requirements", ISSUE_BODY, issue_number=12, repository="acme/shop")

        assert document.phase == "requirements"
        assert document.issue_reference == "#12"
        assert document.repository == "acme/shop"
        assert len(document.key_decisions) == 2

    def test_extract_and_save(self, tmp_path):
        """Test the context and next phase marker are written."""
        result = extract_and_save(tmp_path, "requirements", ISSUE_BODY, issue_number=7, settings=Settings())

        workspace = ProjectWorkspace(tmp_path)
        assert result["context_path"] == str(workspace.context_path("requirements"))
        assert result["next_phase"] == "poc"
        assert Path(result["next_phase_marker"]).read_text(encoding="utf-8") == "poc"
        assert workspace.load_context("requirements").issue_reference == "#7"

    def test_extract_and_save_final_phase(self, tmp_path):
        """Test the final phase writes no marker."""
        result = extract_and_save(tmp_path, "testing", ISSUE_BODY, settings=Settings())

        assert result["next_phase"] is None
        assert result["next_phase_marker"] is None
        assert not (tmp_path / "temp" / "next-phase-needed.txt").exists()

    def test_github_outputs(self, tmp_path):
        """Test step outputs inside GitHub Actions."""
        output = tmp_path / "github_output"
        settings = Settings(github_actions=True, github_output=output)

        extract_and_save(tmp_path, "poc", ISSUE_BODY, settings=settings)

        assert output.read_text(encoding="utf-8").splitlines() == [
            "success=true",
            "next-phase-needed=true",
            "next-phase=implementation",
        ]
