"""Tests for the Redis-backed queue and topic senders."""

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from courier.core.hashing import idempotency_key
from courier.framework.alerts.channels import QueueSender, TopicSender
from courier.framework.alerts.protocol import DestinationType, OutcomeStatus
from tests._support.delivery import make_alert, make_destination


@pytest.fixture()
def redis_client():
    client = AsyncMock()
    client.rpush.return_value = 3
    client.publish.return_value = 2
    return client


@pytest.fixture()
def factory(redis_client):
    urls: list[str] = []

    def _factory(url: str):
        urls.append(url)
        return redis_client

    _factory.urls = urls
    return _factory


def _queue_destination(**config):
    return make_destination("out-queue", DestinationType.QUEUE, config={"queue_name": "soar", **config})


class TestQueueSender:
    @pytest.mark.asyncio
    async def test_pushes_message_with_idempotency_key(self, redis_client, factory):
        sender = QueueSender(client_factory=factory)
        outcome = await sender.send(make_alert(), _queue_destination())

        assert outcome.succeeded
        assert outcome.reason == "queued at position 3"
        queue_name, body = redis_client.rpush.await_args.args
        assert queue_name == "soar"
        message = json.loads(body)
        assert message["idempotencyKey"] == idempotency_key("alert-1", "out-queue")
        assert message["alert"]["id"] == "alert-1"

    @pytest.mark.asyncio
    async def test_client_is_reused_per_url(self, factory):
        sender = QueueSender(redis_url="redis://default:6379/0", client_factory=factory)
        await sender.send(make_alert("a1"), _queue_destination())
        await sender.send(make_alert("a2"), _queue_destination())
        await sender.send(make_alert("a3"), _queue_destination(redis_url="redis://other:6379/1"))
        assert factory.urls == ["redis://default:6379/0", "redis://other:6379/1"]

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self, redis_client, factory):
        redis_client.rpush.side_effect = RedisConnectionError("Connection refused")
        outcome = await QueueSender(client_factory=factory).send(make_alert(), _queue_destination())
        assert outcome.retryable
        assert outcome.reason.startswith("redis unavailable")

    @pytest.mark.asyncio
    async def test_rejected_command_is_permanent(self, redis_client, factory):
        redis_client.rpush.side_effect = ResponseError("WRONGTYPE Operation against a key")
        outcome = await QueueSender(client_factory=factory).send(make_alert(), _queue_destination())
        assert outcome.status is OutcomeStatus.PERMANENT

    @pytest.mark.asyncio
    async def test_missing_queue_name_is_permanent(self, redis_client, factory):
        destination = make_destination("out-queue", DestinationType.QUEUE, config={})
        outcome = await QueueSender(client_factory=factory).send(make_alert(), destination)
        assert outcome.status is OutcomeStatus.PERMANENT
        redis_client.rpush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_aclose_closes_cached_clients(self, redis_client, factory):
        sender = QueueSender(client_factory=factory)
        await sender.send(make_alert(), _queue_destination())
        await sender.aclose()
        redis_client.aclose.assert_awaited_once()


class TestTopicSender:
    @pytest.mark.asyncio
    async def test_publishes_to_topic(self, redis_client, factory):
        destination = make_destination("out-topic", DestinationType.TOPIC, config={"topic": "alerts.high"})
        outcome = await TopicSender(client_factory=factory).send(make_alert(), destination)

        assert outcome.succeeded
        assert outcome.reason == "published to 2 subscriber(s)"
        assert redis_client.publish.await_args.args[0] == "alerts.high"

    @pytest.mark.asyncio
    async def test_no_subscribers_is_still_success(self, redis_client, factory):
        redis_client.publish.return_value = 0
        destination = make_destination("out-topic", DestinationType.TOPIC, config={"topic": "quiet"})
        outcome = await TopicSender(client_factory=factory).send(make_alert(), destination)
        assert outcome.succeeded
