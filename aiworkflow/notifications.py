"""Slack and Microsoft Teams notifications for phase completion and progress."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .errors import NotificationError
from .settings import Settings
from .workspace import ProjectWorkspace, read_yaml

logger = logging.getLogger("aiworkflow.notifications")

CHANNELS = ("slack", "teams")
KINDS = ("phase-complete", "progress")
HIGHLIGHT_LIMIT = 3

PHASE_EMOJI = {
    "requirements": "📋",
    "poc": "🧪",
    "implementation": "⚡",
    "review": "👀",
    "testing": "🚀",
}


def quality_emoji(score: int) -> str:
    if score >= 90:
        return "🏆"
    if score >= 80:
        return "⭐"
    if score >= 70:
        return "✅"
    if score >= 60:
        return "⚠️"
    return "🔴"


def theme_color(score: int) -> str:
    """MessageCard accent colour for a quality score."""
    if score >= 80:
        return "28a745"
    if score >= 70:
        return "ffc107"
    if score >= 60:
        return "fd7e14"
    return "dc3545"


@dataclass(slots=True)
class NotificationContent:
    """What a notification says, independent of the chat service."""

    title: str
    repository: str
    facts: Dict[str, str]
    sections: Dict[str, List[str]]
    links: Dict[str, str]
    score: int = 0


# ----------------------------------------------------------------------
# Payloads
# ----------------------------------------------------------------------

def slack_payload(content: NotificationContent) -> Dict[str, Any]:
    blocks: List[Dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": f"{content.title} - {content.repository}"}},
        {
            "type": "section",
            "fields": [{"type": "mrkdwn", "text": f"*{name}:* {value}"} for name, value in content.facts.items()],
        },
    ]
    for heading, items in content.sections.items():
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*{heading}:*\n" + "\n".join(f"• {item}" for item in items)},
        })
    if content.links:
        blocks.append({
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": label},
                    "url": url,
                    "action_id": f"link_{index}",
                }
                for index, (label, url) in enumerate(content.links.items())
            ],
        })
    return {"text": content.title, "blocks": blocks}


def teams_payload(content: NotificationContent) -> Dict[str, Any]:
    sections: List[Dict[str, Any]] = [{
        "activityTitle": content.title,
        "activitySubtitle": f"Project: {content.repository}",
        "facts": [{"name": name, "value": value} for name, value in content.facts.items()],
        "markdown": True,
    }]
    for heading, items in content.sections.items():
        sections.append({
            "activityTitle": heading,
            "text": "\n\n".join(f"• {item}" for item in items),
            "markdown": True,
        })
    return {
        "@type": "MessageCard",
        "@context": "http://schema.org/extensions",
        "themeColor": theme_color(content.score),
        "summary": f"{content.title} - {content.repository}",
        "sections": sections,
        "potentialAction": [
            {"@type": "OpenUri", "name": label, "targets": [{"os": "default", "uri": url}]}
            for label, url in content.links.items()
        ],
    }


PAYLOAD_BUILDERS = {"slack": slack_payload, "teams": teams_payload}


def send_webhook(url: str, payload: Dict[str, Any], client: Optional[httpx.Client] = None) -> None:
    """POST ``payload`` as JSON; any non-2xx answer raises NotificationError."""
    owns_client = client is None
    client = client or httpx.Client(timeout=10.0)
    try:
        response = client.post(url, json=payload)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        raise NotificationError(
            f"Webhook returned HTTP {status}",
            details={"status_code": status, "body": exc.response.text[:500]},
        ) from exc
    except httpx.HTTPError as exc:
        raise NotificationError(f"Webhook request failed: {exc}") from exc
    finally:
        if owns_client:
            client.close()


class TeamNotifier:
    def __init__(
        self,
        root: Path | str,
        repository: str,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.workspace = ProjectWorkspace(root)
        self.repository = repository
        self.settings = settings or Settings.from_env()
        self.client = client

    @property
    def dashboard_url(self) -> str:
        return f"https://github.com/{self.repository}/tree/main/docs/ai-context"

    def _load(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        data = read_yaml(path)
        return data if isinstance(data, dict) else {}

    def completion_rate(self) -> int:
        progress = self._load(self.workspace.progress_dashboard_path)
        return (progress.get("overall_progress") or {}).get("completion_rate", 0)

    def phase_complete_content(self, phase: str, quality_score: int = 0, issue_url: Optional[str] = None) -> NotificationContent:
        context = self._load(self.workspace.context_path(phase))
        emoji = PHASE_EMOJI.get(phase, "✨")

        sections: Dict[str, List[str]] = {}
        decisions = [
            d.get("decision", "") if isinstance(d, dict) else str(d)
            for d in (context.get("key_decisions") or [])[:HIGHLIGHT_LIMIT]
        ]
        if decisions:
            sections["🎯 Key decisions"] = decisions
        focus = [str(item) for item in (context.get("next_phase_focus") or [])[:HIGHLIGHT_LIMIT]]
        if focus:
            sections["📋 Next phase focus"] = focus

        links = {"📄 Issue": issue_url} if issue_url else {}
        links["📊 Progress dashboard"] = self.dashboard_url
        return NotificationContent(
            title=f"{emoji} {phase} phase completed",
            repository=self.repository,
            facts={
                "Project": self.repository,
                "Completed phase": phase,
                "Quality score": f"{quality_emoji(quality_score)} {quality_score}/100",
                "Overall progress": f"{self.completion_rate()}%",
            },
            sections=sections,
            links=links,
            score=quality_score,
        )

    def progress_content(self) -> NotificationContent:
        progress = self._load(self.workspace.progress_dashboard_path)
        overall = progress.get("overall_progress") or {}
        stats = (progress.get("quality_metrics") or {}).get("overall_stats") or {}
        score = int(stats.get("average_score", 0) or 0)

        sections: Dict[str, List[str]] = {}
        bottlenecks = [b.get("description", "") for b in progress.get("bottlenecks") or []]
        if bottlenecks:
            sections["⚠️ Bottlenecks"] = bottlenecks
        return NotificationContent(
            title="📊 Project progress update",
            repository=self.repository,
            facts={
                "Overall progress": f"{overall.get('completion_rate', 0)}%",
                "Completed issues": f"{overall.get('completed_issues', 0)}/{overall.get('total_issues', 0)}",
                "Blocked issues": str(overall.get("blocked_issues", 0)),
                "Context quality": f"{quality_emoji(score)} {score}/100",
            },
            sections=sections,
            links={"📊 Progress dashboard": self.dashboard_url},
            score=score,
        )

    def webhook_for(self, channel: str) -> Optional[str]:
        if channel == "slack":
            return self.settings.slack_webhook_url
        if channel == "teams":
            return self.settings.teams_webhook_url
        raise NotificationError(f"Unknown channel '{channel}'", details={"valid": list(CHANNELS)})

    def send(self, channel: str, content: NotificationContent, webhook_url: Optional[str] = None) -> Dict[str, Any]:
        url = webhook_url or self.webhook_for(channel)
        if not url:
            raise NotificationError(f"No webhook URL configured for {channel}")
        payload = PAYLOAD_BUILDERS[channel](content)
        send_webhook(url, payload, self.client)
        logger.info(f"{channel} notification sent: {content.title}")
        return payload
