"""Workflow metrics collected from the GitHub REST API.

Four sections are gathered for a reporting window: phase durations from issue
labels, pull request throughput, AI tool usage in commit messages and bug fix
turnaround. A section whose API calls fail is logged and left out of the
report instead of aborting the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import GitHubAPIError
from .github_client import GitHubClient, days_between
from .workflow_logging import log_error_with_context, log_operation
from .workspace import ProjectWorkspace

logger = logging.getLogger("aiworkflow.metrics")

DEFAULT_PERIOD_DAYS = 30

# Label substrings that attribute an issue to a phase; first match wins.
PHASE_LABEL_KEYWORDS = ("requirements", "poc", "implementation", "review", "testing")

AI_COMMIT_MARKERS = ("[ai", "copilot", "generated", "ai:")
AI_TOOLS = ("copilot", "claude", "chatgpt", "windsurf", "cursor")


def _average(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def format_duration(days: Optional[float]) -> str:
    if not days:
        return "not measured"
    if days < 1:
        return f"{days * 24:.1f} hours"
    return f"{days:.1f} days"


@dataclass(slots=True)
class MetricsReport:
    start: datetime
    end: datetime
    phases: Optional[Dict[str, Dict[str, Any]]] = None
    pull_requests: Optional[Dict[str, Any]] = None
    ai_usage: Optional[Dict[str, Any]] = None
    quality: Optional[Dict[str, Any]] = None

    @property
    def ai_rate(self) -> float:
        if not self.ai_usage or not self.ai_usage["totalCommits"]:
            return 0.0
        return self.ai_usage["aiGeneratedCommits"] / self.ai_usage["totalCommits"] * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": {"start": self.start.isoformat(), "end": self.end.isoformat()},
            "phaseMetrics": self.phases,
            "prMetrics": self.pull_requests,
            "aiUsage": self.ai_usage,
            "qualityMetrics": self.quality,
        }

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def strengths(self) -> List[str]:
        items = []
        requirements = (self.phases or {}).get("requirements")
        if requirements and requirements["count"] and requirements["avgDuration"] <= 3:
            items.append("Requirements definition turns around quickly (3 days or less on average)")
        if self.ai_usage and self.ai_rate >= 30:
            items.append(f"AI tools are used actively ({self.ai_rate:.1f}% of commits)")
        if self.quality and self.quality["totalBugs"] and self.quality["avgBugFixTime"] <= 2:
            items.append("Bugs are fixed quickly (2 days or less on average)")
        return items

    def improvements(self) -> List[str]:
        items = []
        requirements = (self.phases or {}).get("requirements")
        if requirements and requirements["avgDuration"] > 5:
            items.append("Requirements definition takes long; consider tightening its scope")
        if self.ai_usage and self.ai_rate < 15:
            items.append("AI tool usage is low; share effective prompts with the team")
        if self.quality and self.quality["avgBugFixTime"] > 5:
            items.append("Bug fixes take long; review the triage and fix process")
        return items

    def action_items(self) -> List[str]:
        items = [
            "Hold a team review of this report",
            "Keep the context documents up to date at every phase transition",
        ]
        if self.ai_usage and self.ai_usage["contextInheritanceFiles"] < 3:
            items.append("Record more phase contexts under docs/ai-context")
        if self.ai_usage and self.ai_rate < 20:
            items.append("Run an AI tooling session to raise adoption")
        if self.quality and self.quality["openBugs"] > 5:
            items.append("Schedule time to burn down open bugs")
        return items

    def to_markdown(self) -> str:
        lines = [
            "# Workflow Metrics Report",
            "",
            f"**Period**: {self.start:%Y-%m-%d} to {self.end:%Y-%m-%d}",
            f"**Generated**: {datetime.now(timezone.utc):%Y-%m-%d %H:%M UTC}",
            "",
            "## Phase metrics",
            "",
        ]
        if self.phases is None:
            lines.append("_Phase metrics could not be collected._")
        else:
            lines += ["| Phase | Issues | Completed | Avg. duration |", "|---|---|---|---|"]
            for phase, data in self.phases.items():
                lines.append(f"| {phase} | {data['count']} | {data['completed']} | {format_duration(data['avgDuration'])} |")

        lines += ["", "## Pull requests", ""]
        if self.pull_requests is None:
            lines.append("_Pull request metrics could not be collected._")
        else:
            pr = self.pull_requests
            lines += [
                f"- Total PRs: {pr['totalPRs']}",
                f"- Merged PRs: {pr['mergedPRs']}",
                f"- Avg. review time: {format_duration(pr['avgReviewTime'])}",
                f"- Avg. lines changed: {pr['avgLinesChanged']:.0f}",
                f"- Avg. commits per PR: {pr['avgCommits']:.1f}",
                f"- Avg. reviews per PR: {pr['reviewEfficiency']:.1f}",
            ]

        lines += ["", "## AI usage", ""]
        if self.ai_usage is None:
            lines.append("_AI usage could not be collected._")
        else:
            ai = self.ai_usage
            lines += [
                f"- AI-assisted commits: {ai['aiGeneratedCommits']}/{ai['totalCommits']} ({self.ai_rate:.1f}%)",
                f"- Context inheritance files: {ai['contextInheritanceFiles']}",
                "- Tool mentions:",
            ]
            lines += [f"  - {tool}: {count}" for tool, count in ai["aiToolMentions"].items()]

        lines += ["", "## Quality", ""]
        if self.quality is None:
            lines.append("_Quality metrics could not be collected._")
        else:
            q = self.quality
            lines += [
                f"- Bugs: {q['totalBugs']} ({q['openBugs']} open, {q['closedBugs']} closed)",
                f"- Avg. bug fix time: {format_duration(q['avgBugFixTime'])}",
            ]

        lines += ["", "## Analysis", "", "### Strengths", ""]
        lines += [f"- {s}" for s in self.strengths()] or ["- None identified yet"]
        lines += ["", "### Areas to improve", ""]
        lines += [f"- {s}" for s in self.improvements()] or ["- None identified"]
        lines += ["", "### Action items", ""]
        lines += [f"- [ ] {s}" for s in self.action_items()]
        return "\n".join(lines) + "\n"


class WorkflowMetricsCollector:
    def __init__(self, github: GitHubClient, root: Path | str):
        self.github = github
        self.workspace = ProjectWorkspace(root)

    def _section(self, name: str, collect, *args) -> Optional[Dict[str, Any]]:
        try:
            return collect(*args)
        except GitHubAPIError as e:
            logger.error(f"Collecting {name} metrics failed: {e}")
            log_error_with_context(e, {"operation": "collect_metrics", "section": name})
            return None

    def collect_phase_metrics(self, start: datetime) -> Dict[str, Dict[str, Any]]:
        issues = self.github.list_issues(state="all", since=start.isoformat())
        durations: Dict[str, List[float]] = {phase: [] for phase in PHASE_LABEL_KEYWORDS}
        counts = {phase: {"count": 0, "completed": 0} for phase in PHASE_LABEL_KEYWORDS}

        for issue in issues:
            names = [label.get("name", "").lower() for label in issue.get("labels", [])]
            phase = next((p for p in PHASE_LABEL_KEYWORDS if any(p in name for name in names)), None)
            if phase is None:
                continue
            counts[phase]["count"] += 1
            if issue.get("state") == "closed" and issue.get("closed_at"):
                counts[phase]["completed"] += 1
                durations[phase].append(days_between(issue.get("created_at"), issue.get("closed_at")))

        return {
            phase: {**counts[phase], "avgDuration": _average(durations[phase])}
            for phase in PHASE_LABEL_KEYWORDS
        }

    def collect_pr_metrics(self, start: datetime) -> Dict[str, Any]:
        pulls = [
            pr for pr in self.github.list_pulls(state="all")
            if pr.get("created_at") and pr["created_at"] >= start.strftime("%Y-%m-%dT%H:%M:%SZ")
        ]
        merged = [pr for pr in pulls if pr.get("merged_at")]
        review_times = [days_between(pr["created_at"], pr["merged_at"]) for pr in merged]

        lines_changed: List[float] = []
        commits: List[float] = []
        reviews: List[float] = []
        for pr in pulls:
            detail = self.github.get_pull(pr["number"])
            lines_changed.append(detail.get("additions", 0) + detail.get("deletions", 0))
            commits.append(detail.get("commits", 0))
            reviews.append(len(self.github.list_reviews(pr["number"])))

        return {
            "totalPRs": len(pulls),
            "mergedPRs": len(merged),
            "avgReviewTime": _average(review_times),
            "avgLinesChanged": _average(lines_changed),
            "avgCommits": _average(commits),
            "reviewEfficiency": _average(reviews),
        }

    def collect_ai_usage(self, start: datetime, end: datetime) -> Dict[str, Any]:
        commits = self.github.list_commits(since=start.isoformat(), until=end.isoformat())
        mentions = {tool: 0 for tool in AI_TOOLS}
        ai_commits = 0
        for commit in commits:
            message = commit.get("commit", {}).get("message", "").lower()
            if any(marker in message for marker in AI_COMMIT_MARKERS):
                ai_commits += 1
            for tool in AI_TOOLS:
                if tool in message:
                    mentions[tool] += 1

        context_files = len(self.workspace.list_context_files())
        return {
            "aiGeneratedCommits": ai_commits,
            "aiToolMentions": mentions,
            "totalCommits": len(commits),
            "contextInheritanceFiles": context_files,
        }

    def collect_quality_metrics(self, start: datetime) -> Dict[str, Any]:
        bugs = self.github.list_issues(state="all", since=start.isoformat(), labels="bug")
        closed = [bug for bug in bugs if bug.get("state") == "closed"]
        fix_times = [days_between(bug.get("created_at"), bug.get("closed_at")) for bug in closed if bug.get("closed_at")]
        return {
            "totalBugs": len(bugs),
            "openBugs": len(bugs) - len(closed),
            "closedBugs": len(closed),
            "avgBugFixTime": _average(fix_times),
        }

    def collect(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> MetricsReport:
        end = end or datetime.now(timezone.utc)
        start = start or end - timedelta(days=DEFAULT_PERIOD_DAYS)
        with log_operation("collect_metrics", start=start.isoformat(), end=end.isoformat()):
            return MetricsReport(
                start=start,
                end=end,
                phases=self._section("phase", self.collect_phase_metrics, start),
                pull_requests=self._section("pull request", self.collect_pr_metrics, start),
                ai_usage=self._section("AI usage", self.collect_ai_usage, start, end),
                quality=self._section("quality", self.collect_quality_metrics, start),
            )

    def write_report(self, report: MetricsReport) -> Path:
        path = self.workspace.metrics_dir / f"workflow-metrics-{report.end:%Y-%m-%d}.md"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(report.to_markdown(), encoding="utf-8")
        logger.info(f"Metrics report written to {path}")
        return path
