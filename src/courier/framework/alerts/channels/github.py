"""GitHub issue sender."""

from __future__ import annotations

from typing import Any

from courier.core.hashing import idempotency_key
from courier.framework.alerts.base import HttpRequest, HttpSender
from courier.framework.alerts.protocol import Alert, Destination, DestinationType

GITHUB_API_URL = "https://api.github.com"


class GithubSender(HttpSender):
    """
    Opens a GitHub issue per alert.

    Config keys: ``repo_name`` (``owner/repo``), ``token``. The issue carries a
    ``courier-<key>`` label and a hidden marker with the full idempotency key.
    """

    destination_type = DestinationType.GITHUB

    def __init__(self, *, api_url: str = GITHUB_API_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self._api_url = api_url.rstrip("/")

    def build_request(self, alert: Alert, destination: Destination) -> HttpRequest:
        repo_name, token = self.require(destination, "repo_name", "token")
        payload = self.render(alert)
        key = idempotency_key(alert.alert_id, destination.destination_id)
        return HttpRequest(
            url=f"{self._api_url}/repos/{repo_name}/issues",
            json={
                "title": payload.summary(),
                "body": f"{payload.body_text()}\n\n<!-- courier:{key} -->",
                "labels": [f"courier-{key[:16]}"],
            },
            headers={
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github+json",
            },
        )
