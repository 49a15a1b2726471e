"""PagerDuty Events API v2 sender.

The event's ``dedup_key`` is the alert/destination idempotency key, so a
re-sent alert updates the open incident instead of paging twice.
"""

from __future__ import annotations

from typing import Any

from courier.core.hashing import idempotency_key
from courier.framework.alerts.base import HttpRequest, HttpSender
from courier.framework.alerts.protocol import (
    Alert,
    AlertSeverity,
    Destination,
    DestinationType,
)

PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"

PAGERDUTY_SEVERITY = {
    AlertSeverity.INFO: "info",
    AlertSeverity.LOW: "info",
    AlertSeverity.MEDIUM: "warning",
    AlertSeverity.HIGH: "error",
    AlertSeverity.CRITICAL: "critical",
}


class PagerDutySender(HttpSender):
    """
    PagerDuty sender.

    Config keys: ``integration_key``.
    """

    destination_type = DestinationType.PAGERDUTY

    def __init__(self, *, events_url: str = PAGERDUTY_EVENTS_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self._events_url = events_url

    def build_payload(self, alert: Alert, destination: Destination) -> dict[str, Any]:
        (integration_key,) = self.require(destination, "integration_key")
        payload = self.render(alert)
        return {
            "routing_key": integration_key,
            "event_action": "trigger",
            "dedup_key": idempotency_key(alert.alert_id, destination.destination_id),
            "payload": {
                "summary": payload.summary(),
                "severity": PAGERDUTY_SEVERITY[payload.severity],
                "source": payload.source_name or payload.source_id,
                "timestamp": payload.created_at,
                "custom_details": payload.to_dict(),
            },
            "links": [{"href": payload.link, "text": "View alert"}],
        }

    def build_request(self, alert: Alert, destination: Destination) -> HttpRequest:
        return HttpRequest(url=self._events_url, json=self.build_payload(alert, destination))
