"""Jira issue sender (REST API v2)."""

from __future__ import annotations

from typing import Any

from courier.core.hashing import idempotency_key
from courier.framework.alerts.base import HttpRequest, HttpSender
from courier.framework.alerts.protocol import Alert, Destination, DestinationType


class JiraSender(HttpSender):
    """
    Opens a Jira issue per alert.

    Config keys: ``org_domain``, ``project_key``, ``user_name``, ``api_key``;
    optional ``issue_type`` (default ``Task``), ``assignee_id``, ``labels``.
    Jira has no idempotency keys; the derived key is added as a label so a
    duplicate issue can be traced to its twin.
    """

    destination_type = DestinationType.JIRA

    def build_payload(self, alert: Alert, destination: Destination) -> dict[str, Any]:
        (project_key,) = self.require(destination, "project_key")
        payload = self.render(alert)
        labels = list(destination.config.get("labels") or [])
        labels.append("courier-" + idempotency_key(alert.alert_id, destination.destination_id)[:16])
        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "summary": payload.summary(),
            "description": payload.body_text(),
            "issuetype": {"name": destination.config.get("issue_type") or "Task"},
            "labels": labels,
        }
        if destination.config.get("assignee_id"):
            fields["assignee"] = {"id": destination.config["assignee_id"]}
        return {"fields": fields}

    def build_request(self, alert: Alert, destination: Destination) -> HttpRequest:
        org_domain, user_name, api_key = self.require(destination, "org_domain", "user_name", "api_key")
        return HttpRequest(
            url=org_domain.rstrip("/") + "/rest/api/latest/issue/",
            json=self.build_payload(alert, destination),
            auth=(user_name, api_key),
        )
