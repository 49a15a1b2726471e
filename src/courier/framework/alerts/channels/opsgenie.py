"""Opsgenie Alert API sender."""

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

OPSGENIE_URLS = {
    "US": "https://api.opsgenie.com/v2/alerts",
    "EU": "https://api.eu.opsgenie.com/v2/alerts",
}

OPSGENIE_PRIORITY = {
    AlertSeverity.INFO: "P5",
    AlertSeverity.LOW: "P4",
    AlertSeverity.MEDIUM: "P3",
    AlertSeverity.HIGH: "P2",
    AlertSeverity.CRITICAL: "P1",
}


class OpsgenieSender(HttpSender):
    """
    Opsgenie sender.

    Config keys: ``api_key``, optional ``service_region`` (``US`` or ``EU``).
    Opsgenie de-duplicates open alerts by ``alias``.
    """

    destination_type = DestinationType.OPSGENIE

    def build_payload(self, alert: Alert, destination: Destination) -> dict[str, Any]:
        payload = self.render(alert)
        return {
            "message": payload.summary()[:130],
            "alias": idempotency_key(alert.alert_id, destination.destination_id),
            "description": payload.body_text(),
            "priority": OPSGENIE_PRIORITY[payload.severity],
            "tags": list(payload.tags),
            "details": {"link": payload.link, "alertId": payload.alert_id},
            "source": "courier",
        }

    def build_request(self, alert: Alert, destination: Destination) -> HttpRequest:
        (api_key,) = self.require(destination, "api_key")
        region = str(destination.config.get("service_region") or "US").upper()
        return HttpRequest(
            url=OPSGENIE_URLS.get(region, OPSGENIE_URLS["US"]),
            json=self.build_payload(alert, destination),
            headers={"Authorization": f"GenieKey {api_key}"},
        )
