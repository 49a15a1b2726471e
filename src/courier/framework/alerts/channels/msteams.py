"""Microsoft Teams incoming-webhook sender."""

from __future__ import annotations

from typing import Any

from courier.framework.alerts.base import HttpRequest, HttpSender
from courier.framework.alerts.protocol import Alert, Destination, DestinationType


class MsTeamsSender(HttpSender):
    """
    Teams connector sender (MessageCard format).

    Config keys: ``webhook_url``.
    """

    destination_type = DestinationType.MSTEAMS

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        payload = self.render(alert)
        facts = [
            {"name": "Severity", "value": payload.severity.value},
            {"name": payload.source_type.value.title(), "value": payload.source_name or payload.source_id},
            {"name": "Created", "value": payload.created_at},
        ]
        if payload.runbook:
            facts.append({"name": "Runbook", "value": payload.runbook})
        return {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "summary": payload.summary(),
            "title": payload.summary(),
            "text": payload.description or "",
            "sections": [{"facts": facts}],
            "potentialAction": [
                {
                    "@type": "OpenUri",
                    "name": "Click here to view in the UI",
                    "targets": [{"os": "default", "uri": payload.link}],
                }
            ],
        }

    def build_request(self, alert: Alert, destination: Destination) -> HttpRequest:
        (webhook_url,) = self.require(destination, "webhook_url")
        return HttpRequest(url=webhook_url, json=self.build_payload(alert))
