"""Generic queue sender (Redis list).

Pushes the canonical payload onto a Redis list so downstream consumers
(SOAR tooling, archivers) can pull alerts at their own pace. The message
carries the idempotency key so consumers can drop duplicates.
"""

from __future__ import annotations

import json
from abc import abstractmethod
from collections.abc import Callable
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from courier.core.errors import NetworkError, PermanentDeliveryError
from courier.core.hashing import idempotency_key
from courier.framework.alerts.base import BaseSender
from courier.framework.alerts.protocol import (
    Alert,
    DeliveryOutcome,
    Destination,
    DestinationType,
)

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


class RedisSender(BaseSender):
    """
    Shared plumbing for Redis-backed destinations.

    Clients are created lazily per Redis URL and reused across sends.
    ``client_factory`` replaces ``redis.asyncio.from_url`` (tests).
    """

    def __init__(
        self,
        *,
        redis_url: str = DEFAULT_REDIS_URL,
        client_factory: Callable[[str], Any] | None = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self._redis_url = redis_url
        self._client_factory = client_factory
        self._clients: dict[str, Any] = {}

    def client_for(self, destination: Destination) -> Any:
        url = destination.config.get("redis_url") or self._redis_url
        if url not in self._clients:
            if self._client_factory is not None:
                self._clients[url] = self._client_factory(url)
            else:
                self._clients[url] = aioredis.from_url(url, socket_timeout=self._timeout)
        return self._clients[url]

    def build_message(self, alert: Alert, destination: Destination) -> str:
        return json.dumps(
            {
                "idempotencyKey": idempotency_key(alert.alert_id, destination.destination_id),
                "alert": self.render(alert).to_dict(),
            },
            default=str,
        )

    async def _deliver(self, alert: Alert, destination: Destination) -> DeliveryOutcome:
        try:
            return await self._push(self.client_for(destination), alert, destination)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise NetworkError(f"redis unavailable: {e}", cause=e) from e
        except RedisError as e:
            raise PermanentDeliveryError(f"redis rejected message: {e}", cause=e) from e

    @abstractmethod
    async def _push(self, client: Any, alert: Alert, destination: Destination) -> DeliveryOutcome:
        """Write the message to Redis."""
        ...

    async def aclose(self) -> None:
        """Close all cached Redis clients."""
        clients, self._clients = self._clients, {}
        for client in clients.values():
            await client.aclose()


class QueueSender(RedisSender):
    """
    Generic queue sender.

    Config keys: ``queue_name``; optional ``redis_url``.
    """

    destination_type = DestinationType.QUEUE

    async def _push(self, client: Any, alert: Alert, destination: Destination) -> DeliveryOutcome:
        (queue_name,) = self.require(destination, "queue_name")
        length = await client.rpush(queue_name, self.build_message(alert, destination))
        return DeliveryOutcome.success(reason=f"queued at position {length}")
