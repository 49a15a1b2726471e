"""Sender registry: one sender per destination type."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from courier.core.errors import UnsupportedDestinationError
from courier.framework.alerts.protocol import DestinationType, Sender

if TYPE_CHECKING:
    from courier.core.settings import CourierSettings


class SenderRegistry:
    """
    Registry of destination senders keyed by :class:`DestinationType`.

    Design Principle: Registry-Driven Discovery. The dispatcher looks
    senders up here and never branches on the destination type itself.
    """

    def __init__(self, senders: list[Sender] | None = None):
        self._senders: dict[DestinationType, Sender] = {}
        for sender in senders or []:
            self.register(sender)

    def register(self, sender: Sender) -> None:
        """Register a sender, replacing any sender for the same type."""
        self._senders[sender.destination_type] = sender

    def unregister(self, destination_type: DestinationType) -> None:
        self._senders.pop(destination_type, None)

    def get(self, destination_type: DestinationType) -> Sender:
        """Get the sender for a type, raising UnsupportedDestinationError if none."""
        sender = self._senders.get(destination_type)
        if sender is None:
            raise UnsupportedDestinationError(destination_type.value)
        return sender

    def supports(self, destination_type: DestinationType) -> bool:
        return destination_type in self._senders

    def senders(self) -> list[Sender]:
        """Registered senders, in registration order."""
        return list(self._senders.values())

    def list_types(self) -> list[DestinationType]:
        """List registered destination types."""
        return sorted(self._senders, key=lambda t: t.value)

    def __len__(self) -> int:
        return len(self._senders)


def default_sender_registry(
    settings: CourierSettings,
    *,
    client: httpx.AsyncClient | None = None,
) -> SenderRegistry:
    """
    Registry with every built-in sender wired from settings.

    Pass a shared ``client`` to pool HTTP connections across sends.
    """
    from courier.framework.alerts.channels import (
        GithubSender,
        JiraSender,
        MsTeamsSender,
        OpsgenieSender,
        PagerDutySender,
        QueueSender,
        SlackSender,
        TopicSender,
        WebhookSender,
    )

    common = {
        "timeout": settings.send_timeout_secs,
        "alert_url_prefix": settings.alert_url_prefix,
        "policy_url_prefix": settings.policy_url_prefix,
    }
    http_senders = [
        SlackSender(client=client, **common),
        MsTeamsSender(client=client, **common),
        PagerDutySender(client=client, **common),
        OpsgenieSender(client=client, **common),
        JiraSender(client=client, **common),
        GithubSender(client=client, **common),
        WebhookSender(client=client, **common),
    ]
    redis_senders = [
        QueueSender(redis_url=settings.redis_url, **common),
        TopicSender(redis_url=settings.redis_url, **common),
    ]
    return SenderRegistry(http_senders + redis_senders)


__all__ = ["SenderRegistry", "default_sender_registry"]
