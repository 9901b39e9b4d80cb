"""Unit tests for next phase context generation."""

import pytest

from aiworkflow.errors import ContextNotFoundError, InvalidPhaseError
from aiworkflow.models import ContextDocument, KeyDecision
from aiworkflow.next_phase import (
    PHASE_TITLES,
    ai_handoff_prompt,
    format_architecture,
    format_constraints,
    format_decisions,
    generate_next_phase_context,
    placeholder_values,
    render_next_phase_context,
)
from aiworkflow.workspace import ProjectWorkspace


class TestFormatting:
    """Test cases for the section formatters."""

    def test_empty_document_defaults(self):
        """Test empty sections render their defaults."""
        document = ContextDocument(phase="requirements")

        assert format_decisions(document) == "- No decisions recorded"
        assert format_constraints(document) == "- No constraints recorded"
        assert format_architecture(document) == "- No architecture recommendations recorded"

    def test_format_decisions(self, context_factory):
        """Test decisions include reasoning and impact."""
        text = format_decisions(context_factory())

        assert "- **Decision number 1 about the architecture**" in text
        assert "  - Reasoning: Because the team measured the alternatives" in text
        assert "  - Impact: Shapes the implementation" in text

    def test_format_architecture_filters_keywords(self):
        """Test only architecture-related decisions are recommended."""
        document = ContextDocument(phase="poc", key_decisions=[
            KeyDecision(decision="Pick the React framework", reasoning="Team skills"),
            KeyDecision(decision="Weekly demos", reasoning="Stakeholder feedback"),
        ])

        assert format_architecture(document) == "- Pick the React framework: Team skills"

    def test_placeholders_use_focus(self, context_factory):
        """Test next phase focus fills the plan placeholders."""
        values = placeholder_values(context_factory())

        assert values["implementation_plan"].startswith("- Focus item number 1")
        assert "- **architecture_diagram**:" in values["technical_verification_results"]

    def test_quality_metrics_skip_empty_values(self):
        """Test unset quality metrics are not listed."""
        document = ContextDocument(phase="implementation", quality_metrics={"coverage": "85%", "usability_score": None})

        assert placeholder_values(document)["quality_metrics"] == "- **coverage**: 85%"

    def test_handoff_prompt(self, context_factory):
        """Test the AI hand-off prompt names the phase and repository."""
        prompt = ai_handoff_prompt("review", context_factory(), "acme/app")

        assert prompt.startswith("You are the AI responsible for the Review phase for acme/app.")
        assert "- Check code quality" in prompt


class TestRenderNextPhase:
    """Test cases for rendering the next phase body."""

    @pytest.mark.parametrize("completed,upcoming,heading", [
        ("requirements", "poc", "# Proof of Concept phase"),
        ("poc", "implementation", "# Implementation phase"),
        ("implementation", "review", "# Review phase"),
        ("review", "testing", "# Testing and deployment phase"),
    ])
    def test_render_each_phase(self, context_factory, completed, upcoming, heading):
        """Test every hand-off renders without leftover placeholders."""
        content = render_next_phase_context(completed, context_factory(completed))

        assert content.startswith(f"# {PHASE_TITLES[upcoming]}")
        assert heading in content
        assert "{" not in content.split("## 🤖 AI hand-off prompt")[0]
        assert "## 🤖 AI hand-off prompt" in content

    def test_render_final_phase(self, context_factory):
        """Test nothing follows testing."""
        assert render_next_phase_context("testing", context_factory("testing")) is None


class TestGenerateNextPhaseContext:
    """Test cases for writing the next phase context file."""

    def test_generate(self, tmp_path, context_factory):
        """Test the file is written under temp/."""
        ProjectWorkspace(tmp_path).save_context(context_factory("requirements"))

        path = generate_next_phase_context(tmp_path, "requirements", "acme/app")

        assert path == ProjectWorkspace(tmp_path).temp_dir / "next-phase-context.md"
        content = path.read_text(encoding="utf-8")
        assert "Proof of Concept phase kick-off" in content
        assert "- Focus item number 2 for the next phase" in content

    def test_generate_final_phase(self, tmp_path):
        """Test the final phase produces no file."""
        assert generate_next_phase_context(tmp_path, "testing") is None
        assert not (tmp_path / "temp").exists()

    def test_generate_missing_context(self, tmp_path):
        """Test a missing completed context raises."""
        with pytest.raises(ContextNotFoundError):
            generate_next_phase_context(tmp_path, "poc")

    def test_generate_unknown_phase(self, tmp_path):
        """Test unknown phases are rejected."""
        with pytest.raises(InvalidPhaseError):
            generate_next_phase_context(tmp_path, "shipping")
