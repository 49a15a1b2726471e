"""
Tests for the inbound alert queues.

Both implementations share one contract, so most tests run against the
in-memory and the SQLite queue alike:
- Delayed visibility and the visibility timeout
- Receipt handles (stale ack / release are no-ops)
- Transport redrive to the dead-letter store
"""

import json

import pytest

from courier.execution.dlq import DeadLetterStore
from courier.execution.models import DeadLetterSource, DeliveryTask
from courier.execution.queue import AlertQueue, InMemoryAlertQueue, SqliteAlertQueue
from tests._support.delivery import T0, FakeClock, make_alert


def _task(alert_id="alert-1") -> DeliveryTask:
    return DeliveryTask(alert=make_alert(alert_id), first_seen=T0)


def _size(queue) -> int:
    return queue.count() if isinstance(queue, SqliteAlertQueue) else len(queue)


@pytest.fixture()
def dead_letters(conn):
    return DeadLetterStore(conn)


@pytest.fixture(params=["memory", "sqlite"])
def queue_factory(request, conn, dead_letters, clock):
    def _factory(**kwargs):
        kwargs.setdefault("visibility_timeout_seconds", 60)
        kwargs.setdefault("max_receive_count", 3)
        if request.param == "memory":
            return InMemoryAlertQueue(dead_letters=dead_letters, clock=clock, **kwargs)
        return SqliteAlertQueue(conn, dead_letters=dead_letters, clock=clock, **kwargs)

    return _factory


@pytest.fixture()
def queue(queue_factory):
    return queue_factory()


# =============================================================================
# Contract
# =============================================================================


class TestQueueContract:
    def test_implements_protocol(self, queue):
        assert isinstance(queue, AlertQueue)

    @pytest.mark.asyncio
    async def test_send_then_receive(self, queue):
        message_id = await queue.send(_task())
        (message,) = await queue.receive(10)

        assert message.message_id == message_id
        assert message.receive_count == 1
        assert DeliveryTask.from_dict(message.body) == _task()

    @pytest.mark.asyncio
    async def test_delayed_message_invisible_until_due(self, queue, clock):
        await queue.send(_task(), delay_seconds=30)
        assert await queue.receive(10) == []
        clock.advance(30)
        assert len(await queue.receive(10)) == 1

    @pytest.mark.asyncio
    async def test_receive_respects_max_messages(self, queue):
        for i in range(5):
            await queue.send(_task(f"alert-{i}"))
        assert len(await queue.receive(2)) == 2
        assert len(await queue.receive(10)) == 3

    @pytest.mark.asyncio
    async def test_unacked_message_redelivered_after_visibility_timeout(self, queue, clock):
        await queue.send(_task())
        (first,) = await queue.receive(10)
        clock.advance(59)
        assert await queue.receive(10) == []
        clock.advance(1)

        (second,) = await queue.receive(10)
        assert second.message_id == first.message_id
        assert second.receive_count == 2
        assert second.receipt_handle != first.receipt_handle

    @pytest.mark.asyncio
    async def test_ack_deletes(self, queue):
        await queue.send(_task())
        (message,) = await queue.receive(10)
        await queue.ack(message)
        assert _size(queue) == 0

    @pytest.mark.asyncio
    async def test_ack_with_stale_receipt_is_ignored(self, queue, clock):
        await queue.send(_task())
        (stale,) = await queue.receive(10)
        clock.advance(60)
        (current,) = await queue.receive(10)

        await queue.ack(stale)
        assert _size(queue) == 1
        await queue.ack(current)
        assert _size(queue) == 0

    @pytest.mark.asyncio
    async def test_release_makes_message_visible_now(self, queue):
        await queue.send(_task())
        (message,) = await queue.receive(10)
        await queue.release(message)

        (again,) = await queue.receive(10)
        assert again.receive_count == 2

    @pytest.mark.asyncio
    async def test_redrive_after_max_receive_count(self, queue, clock, dead_letters):
        await queue.send(_task("alert-poison"))
        for _ in range(3):
            assert len(await queue.receive(10)) == 1
            clock.advance(60)

        assert await queue.receive(10) == []
        assert _size(queue) == 0
        (entry,) = dead_letters.list_unresolved()
        assert entry.alert_id == "alert-poison"
        assert entry.source is DeadLetterSource.TRANSPORT
        assert "received 3 times" in entry.reason


# =============================================================================
# SQLite specifics
# =============================================================================


class TestSqliteAlertQueue:
    @pytest.mark.asyncio
    async def test_undecodable_body_is_wrapped(self, conn, clock):
        conn.execute(
            "INSERT INTO courier_alert_queue (message_id, body, visible_at, receive_count, sent_at) "
            "VALUES ('m1', 'not json', 0, 0, '2026-03-01T12:00:00+00:00')"
        )
        conn.commit()
        (message,) = await SqliteAlertQueue(conn, clock=clock).receive(10)
        assert message.body == {"raw": "not json"}

    @pytest.mark.asyncio
    async def test_body_stored_as_json(self, conn, clock):
        queue = SqliteAlertQueue(conn, clock=clock)
        message_id = await queue.send(_task())
        (raw,) = conn.execute("SELECT body FROM courier_alert_queue WHERE message_id = ?", (message_id,)).fetchone()
        assert json.loads(raw)["alert"]["alert_id"] == "alert-1"


class TestInMemoryAlertQueue:
    @pytest.mark.asyncio
    async def test_visible_at_tracks_delay(self, clock):
        queue = InMemoryAlertQueue(clock=clock)
        message_id = await queue.send(_task(), delay_seconds=45)
        assert queue.visible_at(message_id) == clock.now + 45
        assert queue.visible_at("missing") is None
