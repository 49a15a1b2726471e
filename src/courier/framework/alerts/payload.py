"""Canonical notification payload.

Every sender formats its message from one :class:`NotificationPayload`
rendered from the alert, so the title, severity, deep link and context
fields are identical across Slack, PagerDuty, Jira and the rest.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from courier.framework.alerts.protocol import Alert, AlertSeverity, AlertSourceType

DEFAULT_ALERT_URL_PREFIX = "https://app.example.com/log-analysis/alerts/"
DEFAULT_POLICY_URL_PREFIX = "https://app.example.com/cloud-security/policies/"


@dataclass(frozen=True)
class NotificationPayload:
    """Destination-neutral rendering of an alert."""

    alert_id: str
    title: str
    severity: AlertSeverity
    link: str
    source_type: AlertSourceType
    source_id: str
    source_name: str | None
    created_at: str
    description: str | None = None
    runbook: str | None = None
    tags: tuple[str, ...] = ()
    context: dict[str, Any] = field(default_factory=dict)

    def summary(self) -> str:
        """One-line summary used by ticket titles and incident summaries."""
        return f"[{self.severity.value}] {self.title}"

    def body_text(self) -> str:
        """Plain-text body shared by the ticketing senders."""
        lines = [
            f"Severity: {self.severity.value}",
            f"{self.source_type.value.title()}: {self.source_name or self.source_id}",
            f"Created: {self.created_at}",
            f"Link: {self.link}",
        ]
        if self.description:
            lines += ["", self.description]
        if self.runbook:
            lines += ["", f"Runbook: {self.runbook}"]
        if self.tags:
            lines += ["", "Tags: " + ", ".join(self.tags)]
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.alert_id,
            "title": self.title,
            "severity": self.severity.value,
            "link": self.link,
            "type": self.source_type.value,
            "sourceId": self.source_id,
            "sourceName": self.source_name,
            "createdAt": self.created_at,
            "tags": list(self.tags),
        }
        if self.description:
            result["description"] = self.description
        if self.runbook:
            result["runbook"] = self.runbook
        if self.context:
            result["context"] = self.context
        return result


def generate_title(alert: Alert) -> str:
    """Alert title, falling back to the rule/policy name."""
    if alert.title:
        return alert.title
    return f"New Alert: {alert.source_name or alert.source_id}"


def generate_link(
    alert: Alert,
    *,
    alert_url_prefix: str = DEFAULT_ALERT_URL_PREFIX,
    policy_url_prefix: str = DEFAULT_POLICY_URL_PREFIX,
) -> str:
    """Deep link back to the alert (rules) or the policy (policies) in the product UI."""
    if alert.source_type is AlertSourceType.POLICY:
        return policy_url_prefix + alert.source_id
    return alert_url_prefix + alert.alert_id


def render_payload(
    alert: Alert,
    *,
    alert_url_prefix: str = DEFAULT_ALERT_URL_PREFIX,
    policy_url_prefix: str = DEFAULT_POLICY_URL_PREFIX,
) -> NotificationPayload:
    """Render the canonical payload for an alert."""
    return NotificationPayload(
        alert_id=alert.alert_id,
        title=generate_title(alert),
        severity=alert.severity,
        link=generate_link(alert, alert_url_prefix=alert_url_prefix, policy_url_prefix=policy_url_prefix),
        source_type=alert.source_type,
        source_id=alert.source_id,
        source_name=alert.source_name,
        created_at=alert.created_at.isoformat(),
        description=alert.description,
        runbook=alert.runbook,
        tags=alert.tags,
        context=dict(alert.context),
    )


__all__ = [
    "NotificationPayload",
    "generate_title",
    "generate_link",
    "render_payload",
]
