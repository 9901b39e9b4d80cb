"""Integration tests for context inheritance between phases."""

import pytest

from aiworkflow.context_bridge import ContextBridge
from aiworkflow.context_extractor import extract_and_save
from aiworkflow.next_phase import generate_next_phase_context
from aiworkflow.quality import QualityEvaluator
from aiworkflow.settings import Settings
from aiworkflow.workspace import ProjectWorkspace, read_yaml

ISSUE_BODY = """Requirements were agreed with Claude and GitHub Copilot.

## Key Decisions
- Use PostgreSQL for persistence
- Expose a REST API behind the gateway

## Constraints
- Response time must stay under 200ms
- Personal data must not leave the EU region

## Learnings
- We discovered that the batch import pattern halves load time

## Next Steps
- Build the PoC for the order search
- Measure the import throughput

See `src/orders.py` and [the design](https://example.test/design).
"""


@pytest.fixture
def settings(clean_env):
    return Settings.from_env()


class TestIssueToNextPhase:
    """Integration tests for an issue flowing into the next phase."""

    def test_extract_evaluate_handoff(self, tmp_path, settings):
        """Test extraction, scoring, the next phase context and the hand-off prompt."""
        result = extract_and_save(tmp_path, "requirements", ISSUE_BODY, issue_number=12, settings=settings)

        assert result["next_phase"] == "poc"
        assert (tmp_path / "temp" / "next-phase-needed.txt").read_text(encoding="utf-8") == "poc"

        document = ProjectWorkspace(tmp_path).load_context("requirements")
        assert [d.decision for d in document.key_decisions] == [
            "Use PostgreSQL for persistence",
            "Expose a REST API behind the gateway",
        ]
        assert document.next_phase_focus == ["Build the PoC for the order search", "Measure the import throughput"]

        report = QualityEvaluator(tmp_path, settings).evaluate("requirements")
        assert 0 <= report.overall_score <= 100
        summary = read_yaml(ProjectWorkspace(tmp_path).quality_summary_path)
        assert "requirements" in summary["phases"]

        path = generate_next_phase_context(tmp_path, "requirements", "acme/app")
        text = path.read_text(encoding="utf-8")
        assert "Use PostgreSQL for persistence" in text

        bridge = ContextBridge(tmp_path)
        prompt = bridge.start_phase("poc")
        assert "Use PostgreSQL for persistence" in prompt.read_text(encoding="utf-8")

        metrics = bridge.metrics()
        assert metrics["phases_recorded"] == ["requirements"]
        assert metrics["handoff_prompts"] == ["poc"]
        assert metrics["handoff_rate"] == 100.0
        assert metrics["total_decisions"] == 2

    def test_final_phase_has_no_successor(self, tmp_path, settings):
        """Test the last phase stops the chain."""
        result = extract_and_save(tmp_path, "testing", ISSUE_BODY, settings=settings)

        assert result["next_phase"] is None
        assert result["next_phase_marker"] is None
        assert generate_next_phase_context(tmp_path, "testing") is None

    def test_github_actions_outputs(self, tmp_path, clean_env):
        """Test step outputs are written when running inside Actions."""
        output = tmp_path / "github_output"
        clean_env.setenv("GITHUB_ACTIONS", "true")
        clean_env.setenv("GITHUB_OUTPUT", str(output))

        extract_and_save(tmp_path, "poc", ISSUE_BODY, settings=Settings.from_env())

        lines = output.read_text(encoding="utf-8").splitlines()
        assert "success=true" in lines
        assert "next-phase=implementation" in lines


class TestRecordedChain:
    """Integration tests for recording several phases in order."""

    def test_chain_metrics(self, tmp_path, context_factory):
        """Test hand-off metrics across recorded phases."""
        bridge = ContextBridge(tmp_path)
        for phase in ("requirements", "poc"):
            bridge.complete_phase(context_factory(phase), generate_prompt=True)

        metrics = bridge.metrics()

        assert metrics["phases_recorded"] == ["requirements", "poc"]
        assert metrics["handoff_prompts"] == ["poc", "implementation"]
        assert metrics["total_decisions"] == 10
        assert bridge.check().verdict == "high"
