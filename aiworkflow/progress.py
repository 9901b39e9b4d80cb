"""Project progress dashboard built from GitHub issues and pull requests."""

from __future__ import annotations

import copy
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

from .github_client import GitHubClient, parse_github_time
from .workflow_logging import log_performance
from .workspace import ProjectWorkspace, read_yaml, write_yaml

logger = logging.getLogger("aiworkflow.progress")

TRACKED_PHASES = ("requirements", "poc", "implementation", "review", "testing")
BLOCKED_MARKERS = ("blocked", "waiting")
TIMELINE_DAYS = 30
LONG_OPEN_DAYS = 14
BOTTLENECK_SAMPLE = 5

EMPTY_QUALITY_SUMMARY = {
    "phases": {},
    "overall_stats": {
        "average_score": 0,
        "phases_completed": 0,
        "high_quality_phases": 0,
        "needs_improvement_phases": 0,
    },
}


def _label_names(item: Dict[str, Any]) -> List[str]:
    return [label.get("name", "") for label in item.get("labels", [])]


def is_blocked(issue: Dict[str, Any]) -> bool:
    return any(marker in name for name in _label_names(issue) for marker in BLOCKED_MARKERS)


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def _day(value: Optional[str]) -> Optional[str]:
    parsed = parse_github_time(value)
    return parsed.date().isoformat() if parsed else None


def analyze_progress(issues: List[Dict[str, Any]], pulls: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Per-phase issue totals, pull request stats and overall completion."""
    phases = {p: {"total": 0, "completed": 0, "in_progress": 0, "blocked": 0} for p in TRACKED_PHASES}
    for issue in issues:
        phase = next(
            (name.split(":", 1)[1] for name in _label_names(issue)
             if name.startswith("phase:") and name.split(":", 1)[1] in phases),
            None,
        )
        if phase is None:
            continue
        counts = phases[phase]
        counts["total"] += 1
        if issue.get("state") == "closed":
            counts["completed"] += 1
        elif is_blocked(issue):
            counts["blocked"] += 1
        else:
            counts["in_progress"] += 1

    total = sum(p["total"] for p in phases.values())
    completed = sum(p["completed"] for p in phases.values())
    blocked = sum(p["blocked"] for p in phases.values())
    return {
        "updated_at": datetime.now(timezone.utc).isoformat(),
        "project_phases": phases,
        "pull_request_stats": {
            "total": len(pulls),
            "merged": len([pr for pr in pulls if pr.get("merged_at")]),
            "open": len([pr for pr in pulls if pr.get("state") == "open"]),
            "closed": len([pr for pr in pulls if pr.get("state") == "closed" and not pr.get("merged_at")]),
        },
        "overall_progress": {
            "total_issues": total,
            "completed_issues": completed,
            "in_progress_issues": total - completed - blocked,
            "blocked_issues": blocked,
            "completion_rate": _percent(completed, total),
            "block_rate": _percent(blocked, total),
        },
    }


def analyze_timeline(
    issues: List[Dict[str, Any]],
    pulls: List[Dict[str, Any]],
    today: Optional[datetime] = None,
) -> Dict[str, Dict[str, int]]:
    """Daily opened/closed/merged counts for the last 30 days, oldest first."""
    today = today or datetime.now(timezone.utc)
    timeline = {
        (today - timedelta(days=offset)).date().isoformat(): {
            "issues_opened": 0,
            "issues_closed": 0,
            "prs_opened": 0,
            "prs_merged": 0,
        }
        for offset in range(TIMELINE_DAYS - 1, -1, -1)
    }

    def bump(day: Optional[str], key: str) -> None:
        if day in timeline:
            timeline[day][key] += 1

    for issue in issues:
        bump(_day(issue.get("created_at")), "issues_opened")
        bump(_day(issue.get("closed_at")), "issues_closed")
    for pr in pulls:
        bump(_day(pr.get("created_at")), "prs_opened")
        bump(_day(pr.get("merged_at")), "prs_merged")
    return timeline


def analyze_bottlenecks(
    issues: List[Dict[str, Any]],
    pulls: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    bottlenecks: List[Dict[str, Any]] = []

    def days_open(issue: Dict[str, Any]) -> int:
        created = parse_github_time(issue.get("created_at"))
        return (now - created).days if created else 0

    open_issues = [i for i in issues if i.get("state") == "open"]

    long_open = [i for i in open_issues if days_open(i) > LONG_OPEN_DAYS]
    if long_open:
        bottlenecks.append({
            "type": "long_open_issues",
            "severity": "medium",
            "count": len(long_open),
            "description": f"{len(long_open)} issues have been open for more than {LONG_OPEN_DAYS} days",
            "items": [
                {"title": i.get("title"), "url": i.get("html_url"), "days_open": days_open(i)}
                for i in long_open[:BOTTLENECK_SAMPLE]
            ],
        })

    blocked = [i for i in open_issues if is_blocked(i)]
    if blocked:
        bottlenecks.append({
            "type": "blocked_issues",
            "severity": "high",
            "count": len(blocked),
            "description": f"{len(blocked)} issues are blocked",
            "items": [
                {
                    "title": i.get("title"),
                    "url": i.get("html_url"),
                    "block_labels": [n for n in _label_names(i) if any(m in n for m in BLOCKED_MARKERS)],
                }
                for i in blocked[:BOTTLENECK_SAMPLE]
            ],
        })

    awaiting_review = [pr for pr in pulls if pr.get("state") == "open" and pr.get("requested_reviewers")]
    if awaiting_review:
        bottlenecks.append({
            "type": "review_pending_prs",
            "severity": "medium",
            "count": len(awaiting_review),
            "description": f"{len(awaiting_review)} pull requests are waiting for review",
            "items": [
                {
                    "title": pr.get("title"),
                    "url": pr.get("html_url"),
                    "requested_reviewers": [r.get("login") for r in pr["requested_reviewers"]],
                }
                for pr in awaiting_review[:BOTTLENECK_SAMPLE]
            ],
        })
    return bottlenecks


class ProgressTracker:
    def __init__(self, github: GitHubClient, root: Path | str):
        self.github = github
        self.workspace = ProjectWorkspace(root)

    def load_quality_data(self) -> Dict[str, Any]:
        path = self.workspace.quality_summary_path
        data = read_yaml(path) if path.exists() else None
        return data if isinstance(data, dict) else copy.deepcopy(EMPTY_QUALITY_SUMMARY)

    @log_performance("track_progress")
    def track(self) -> Dict[str, Any]:
        issues = self.github.list_issues(state="all")
        pulls = self.github.list_pulls(state="all")
        logger.info(f"Tracking progress over {len(issues)} issues and {len(pulls)} pull requests")

        data = analyze_progress(issues, pulls)
        data["quality_metrics"] = self.load_quality_data()
        data["timeline"] = analyze_timeline(issues, pulls)
        data["bottlenecks"] = analyze_bottlenecks(issues, pulls)
        return data

    def save(self, data: Dict[str, Any]) -> List[Path]:
        """Write the dashboard and a dated copy under progress-history/."""
        dashboard = write_yaml(self.workspace.progress_dashboard_path, data)
        history = self.workspace.progress_history_dir / f"progress-{datetime.now(timezone.utc):%Y-%m-%d}.yml"
        write_yaml(history, data)
        logger.info(f"Progress saved to {dashboard} and {history}")
        return [dashboard, history]


def format_progress(data: Dict[str, Any], output_format: str) -> str:
    if output_format == "json":
        return json.dumps(data, indent=2, ensure_ascii=False)
    if output_format == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    raise ValueError(f"Unsupported output format '{output_format}'")


def render_progress(console: Console, data: Dict[str, Any]) -> None:
    overall = data["overall_progress"]
    console.print("\n[bold blue]📊 Project progress report[/bold blue]")
    console.print(f"\n🎯 Overall: [bold]{overall['completion_rate']}%[/bold]")
    console.print(f"   Completed: {overall['completed_issues']}/{overall['total_issues']}")
    console.print(f"   In progress: {overall['in_progress_issues']}")
    console.print(f"   Blocked: {overall['blocked_issues']} ({overall['block_rate']}%)")

    console.print("\n📋 By phase:")
    for phase, counts in data["project_phases"].items():
        rate = _percent(counts["completed"], counts["total"])
        status = "✅" if rate == 100 else "🔄" if rate > 0 else "⏸️"
        console.print(f"   {status} {phase}: {rate}% ({counts['completed']}/{counts['total']})")
        if counts["blocked"]:
            console.print(f"      [yellow]⚠️ blocked: {counts['blocked']}[/yellow]")

    prs = data["pull_request_stats"]
    console.print("\n🔄 Pull requests:")
    console.print(f"   Total: {prs['total']}  Merged: {prs['merged']}  Open: {prs['open']}  Closed: {prs['closed']}")

    stats = (data.get("quality_metrics") or {}).get("overall_stats")
    if stats:
        console.print("\n🤖 Context quality:")
        console.print(f"   Average score: {stats.get('average_score', 0)}/100")
        console.print(f"   Phases completed: {stats.get('phases_completed', 0)}")
        console.print(f"   High quality: {stats.get('high_quality_phases', 0)}")
        console.print(f"   Needs improvement: {stats.get('needs_improvement_phases', 0)}")

    if data["bottlenecks"]:
        console.print("\n[yellow]⚠️ Bottlenecks:[/yellow]")
        for bottleneck in data["bottlenecks"]:
            marker = "🔴" if bottleneck["severity"] == "high" else "🟡"
            console.print(f"   {marker} {bottleneck['description']}")

    console.print(f"\n[dim]Updated: {data['updated_at']}[/dim]")
