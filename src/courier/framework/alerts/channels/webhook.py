"""Generic webhook sender.

Any HTTP endpoint is a valid destination: the canonical payload is POSTed
as JSON with an ``Idempotency-Key`` header so receivers can drop repeats.
"""

from __future__ import annotations

from courier.core.hashing import idempotency_key
from courier.framework.alerts.base import HttpRequest, HttpSender
from courier.framework.alerts.protocol import Alert, Destination, DestinationType


class WebhookSender(HttpSender):
    """
    Generic webhook sender.

    Config keys: ``url``; optional ``headers`` mapping.
    """

    destination_type = DestinationType.WEBHOOK

    def build_request(self, alert: Alert, destination: Destination) -> HttpRequest:
        (url,) = self.require(destination, "url")
        headers = {str(k): str(v) for k, v in (destination.config.get("headers") or {}).items()}
        headers["Idempotency-Key"] = idempotency_key(alert.alert_id, destination.destination_id)
        return HttpRequest(url=url, json=self.render(alert).to_dict(), headers=headers)
