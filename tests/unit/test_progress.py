"""Unit tests for the progress dashboard."""

import json
from datetime import datetime, timezone

import httpx
import pytest
import yaml
from rich.console import Console

from aiworkflow.github_client import GitHubClient
from aiworkflow.progress import (
    TIMELINE_DAYS,
    ProgressTracker,
    analyze_bottlenecks,
    analyze_progress,
    analyze_timeline,
    format_progress,
    is_blocked,
    render_progress,
)
from aiworkflow.workflow_logging import performance_monitor
from aiworkflow.workspace import ProjectWorkspace, read_yaml, write_yaml

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


def _issue(number, phase=None, state="open", labels=(), created="2024-06-29T10:00:00Z", closed=None):
    names = [*labels, *([f"phase:{phase}"] if phase else [])]
    return {
        "number": number,
        "title": f"Issue {number}",
        "html_url": f"https://github.com/acme/app/issues/{number}",
        "state": state,
        "labels": [{"name": name} for name in names],
        "created_at": created,
        "closed_at": closed,
    }


ISSUES = [
    _issue(1, "requirements", state="closed", closed="2024-06-30T09:00:00Z"),
    _issue(2, "requirements", state="closed"),
    _issue(3, "poc", labels=["blocked-by-vendor"], created="2024-05-01T00:00:00Z"),
    _issue(4, "poc"),
    _issue(5, labels=["question"]),
    _issue(6, "deployment"),
]
PULLS = [
    {"number": 10, "state": "closed", "merged_at": "2024-06-29T11:00:00Z", "created_at": "2024-06-28T11:00:00Z"},
    {"number": 11, "state": "closed", "merged_at": None, "created_at": "2024-06-01T11:00:00Z"},
    {
        "number": 12, "state": "open", "merged_at": None, "created_at": "2024-06-30T08:00:00Z",
        "title": "Add search", "html_url": "https://github.com/acme/app/pull/12",
        "requested_reviewers": [{"login": "octocat"}],
    },
]


class TestAnalyzeProgress:
    """Test cases for per-phase progress."""

    def test_phase_counts(self):
        """Test phase labels, closed and blocked issues."""
        data = analyze_progress(ISSUES, PULLS)

        assert data["project_phases"]["requirements"] == {"total": 2, "completed": 2, "in_progress": 0, "blocked": 0}
        assert data["project_phases"]["poc"] == {"total": 2, "completed": 0, "in_progress": 1, "blocked": 1}
        assert data["overall_progress"] == {
            "total_issues": 4,
            "completed_issues": 2,
            "in_progress_issues": 1,
            "blocked_issues": 1,
            "completion_rate": 50,
            "block_rate": 25,
        }

    def test_pull_request_stats(self):
        """Test merged, open and closed-unmerged pull requests."""
        assert analyze_progress([], PULLS)["pull_request_stats"] == {"total": 3, "merged": 1, "open": 1, "closed": 1}

    def test_no_issues(self):
        """Test rates are zero without tracked issues."""
        overall = analyze_progress([], [])["overall_progress"]

        assert overall["completion_rate"] == 0
        assert overall["block_rate"] == 0

    def test_is_blocked(self):
        """Test blocked and waiting labels."""
        assert is_blocked(_issue(1, labels=["waiting-for-review"]))
        assert not is_blocked(_issue(1, labels=["bug"]))


class TestTimeline:
    """Test cases for the daily timeline."""

    def test_window(self):
        """Test thirty days, oldest first, ending today."""
        timeline = analyze_timeline([], [], today=NOW)

        days = list(timeline)
        assert len(days) == TIMELINE_DAYS
        assert days[-1] == "2024-06-30"
        assert days[0] == "2024-06-01"

    def test_counts(self):
        """Test events are bucketed by day and old events ignored."""
        timeline = analyze_timeline(ISSUES, PULLS, today=NOW)

        assert timeline["2024-06-29"]["issues_opened"] == 5
        assert timeline["2024-06-30"]["issues_closed"] == 1
        assert timeline["2024-06-29"]["prs_merged"] == 1
        assert timeline["2024-06-01"]["prs_opened"] == 1
        assert sum(day["issues_opened"] for day in timeline.values()) == 5


class TestBottlenecks:
    """Test cases for bottleneck detection."""

    def test_bottlenecks(self):
        """Test long open, blocked and review pending items."""
        bottlenecks = analyze_bottlenecks(ISSUES, PULLS, now=NOW)

        assert [b["type"] for b in bottlenecks] == ["long_open_issues", "blocked_issues", "review_pending_prs"]
        assert bottlenecks[0]["items"][0]["days_open"] == 60
        assert bottlenecks[1]["severity"] == "high"
        assert bottlenecks[1]["items"][0]["block_labels"] == ["blocked-by-vendor"]
        assert bottlenecks[2]["items"][0]["requested_reviewers"] == ["octocat"]

    def test_no_bottlenecks(self):
        """Test a quiet project has none."""
        assert analyze_bottlenecks([_issue(1, "poc", created="2024-06-29T00:00:00Z")], [], now=NOW) == []


class TestProgressTracker:
    """Test cases for tracking and saving progress."""

    @pytest.fixture
    def tracker(self, tmp_path):
        def handler(request):
            if request.url.path.endswith("/issues"):
                return httpx.Response(200, json=ISSUES)
            return httpx.Response(200, json=PULLS)

        client = httpx.Client(base_url="https://api.github.com", transport=httpx.MockTransport(handler))
        return ProgressTracker(GitHubClient("acme", "app", client=client), tmp_path)

    def test_track(self, tracker):
        """Test the dashboard sections."""
        data = tracker.track()

        assert set(data) == {
            "updated_at", "project_phases", "pull_request_stats", "overall_progress",
            "quality_metrics", "timeline", "bottlenecks",
        }
        assert data["quality_metrics"]["overall_stats"]["average_score"] == 0
        assert performance_monitor.last_value("track_progress_duration") is not None

    def test_track_reads_quality_summary(self, tracker, tmp_path):
        """Test the quality summary is embedded."""
        write_yaml(ProjectWorkspace(tmp_path).quality_summary_path, {"overall_stats": {"average_score": 88}})

        assert tracker.track()["quality_metrics"]["overall_stats"]["average_score"] == 88

    def test_save(self, tracker, tmp_path):
        """Test the dashboard and dated history copy are written."""
        data = tracker.track()

        dashboard, history = tracker.save(data)

        assert dashboard == ProjectWorkspace(tmp_path).progress_dashboard_path
        assert history.parent == ProjectWorkspace(tmp_path).progress_history_dir
        assert history.name.startswith("progress-")
        assert read_yaml(dashboard)["overall_progress"]["completion_rate"] == 50


class TestFormatting:
    """Test cases for output formats and rendering."""

    def test_formats(self):
        """Test JSON and YAML output."""
        data = analyze_progress(ISSUES, PULLS)

        assert json.loads(format_progress(data, "json"))["overall_progress"]["total_issues"] == 4
        assert yaml.safe_load(format_progress(data, "yaml"))["pull_request_stats"]["merged"] == 1
        with pytest.raises(ValueError):
            format_progress(data, "xml")

    def test_render(self):
        """Test the console report."""
        data = analyze_progress(ISSUES, PULLS)
        data["bottlenecks"] = analyze_bottlenecks(ISSUES, PULLS, now=NOW)
        data["quality_metrics"] = {"overall_stats": {"average_score": 72}}
        console = Console(record=True, width=120)

        render_progress(console, data)

        text = console.export_text()
        assert "Overall: 50%" in text
        assert "requirements: 100% (2/2)" in text
        assert "blocked: 1" in text
        assert "Average score: 72/100" in text
        assert "1 issues are blocked" in text
