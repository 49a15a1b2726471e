"""Generic topic sender (Redis Pub/Sub)."""

from __future__ import annotations

from typing import Any

from courier.framework.alerts.channels.queue import RedisSender
from courier.framework.alerts.protocol import (
    Alert,
    DeliveryOutcome,
    Destination,
    DestinationType,
)


class TopicSender(RedisSender):
    """
    Publishes the alert to a Redis channel.

    Config keys: ``topic``; optional ``redis_url``. Publishing to a topic
    nobody subscribes to is still a success: fan-out is the subscribers'
    concern.
    """

    destination_type = DestinationType.TOPIC

    async def _push(self, client: Any, alert: Alert, destination: Destination) -> DeliveryOutcome:
        (topic,) = self.require(destination, "topic")
        receivers = await client.publish(topic, self.build_message(alert, destination))
        return DeliveryOutcome.success(reason=f"published to {receivers} subscriber(s)")
