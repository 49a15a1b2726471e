"""Slack incoming-webhook sender."""

from __future__ import annotations

from typing import Any

from courier.framework.alerts.base import HttpRequest, HttpSender
from courier.framework.alerts.protocol import (
    Alert,
    AlertSeverity,
    Destination,
    DestinationType,
)

SEVERITY_COLOR = {
    AlertSeverity.INFO: "#47b881",
    AlertSeverity.LOW: "#6badf2",
    AlertSeverity.MEDIUM: "#f2c94c",
    AlertSeverity.HIGH: "#ef9a3b",
    AlertSeverity.CRITICAL: "#d63f3f",
}


class SlackSender(HttpSender):
    """
    Slack webhook sender.

    Config keys: ``webhook_url``.
    """

    destination_type = DestinationType.SLACK

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        """Build Slack message payload."""
        payload = self.render(alert)

        fields = [
            {"title": "Severity", "value": payload.severity.value, "short": True},
            {"title": payload.source_type.value.title(), "value": payload.source_name or payload.source_id, "short": True},
        ]
        if payload.runbook:
            fields.append({"title": "Runbook", "value": payload.runbook, "short": False})

        attachment = {
            "color": SEVERITY_COLOR.get(payload.severity, "#808080"),
            "fallback": payload.summary(),
            "title": payload.title,
            "title_link": payload.link,
            "text": payload.description or "",
            "fields": fields,
            "ts": int(alert.created_at.timestamp()),
        }
        return {
            "text": f"*{payload.summary()}*\n<{payload.link}|Click here to view in the UI>",
            "attachments": [attachment],
        }

    def build_request(self, alert: Alert, destination: Destination) -> HttpRequest:
        (webhook_url,) = self.require(destination, "webhook_url")
        return HttpRequest(url=webhook_url, json=self.build_payload(alert))
