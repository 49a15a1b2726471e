"""
End-to-end delivery scenarios.

Each test drives the full engine (queue → directory → dispatcher →
retry controller → queue / dead letters) with fake senders and clocks.
"""

from collections import Counter
from datetime import timedelta

import pytest

from courier.execution.intake import enqueue_alert
from courier.execution.models import DeadLetterSource, DeliveryTask
from courier.framework.alerts.protocol import DeliveryOutcome, DestinationType, OutcomeStatus
from tests._support.delivery import T0, FakeSender, make_alert, make_destination, make_engine

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_all_destinations_succeed_first_time(conn, settings):
    sender = FakeSender()
    destinations = [make_destination(f"out-{i}") for i in range(3)]
    engine = make_engine(conn, destinations, [sender], settings=settings)
    await enqueue_alert(engine.queue, make_alert(destination_ids=("out-0", "out-1", "out-2")))

    report = await engine.run_batch()

    assert len(report.delivered) == 1
    assert len(engine.queue) == 0
    attempts = engine.ledger.list_for_alert("alert-1")
    assert len(attempts) == 3
    assert {a.outcome for a in attempts} == {OutcomeStatus.SUCCESS}


@pytest.mark.asyncio
async def test_transient_failure_retries_only_failed_destination(conn, settings):
    sender = FakeSender()
    sender.script("out-flaky", DeliveryOutcome.retry("network error: connection reset"))
    engine = make_engine(
        conn, [make_destination("out-ok"), make_destination("out-flaky")], [sender], settings=settings
    )
    await enqueue_alert(engine.queue, make_alert(destination_ids=("out-ok", "out-flaky")))

    report = await engine.run_batch()

    assert len(report.retried) == 1
    (body,) = engine.queue.bodies()
    task = DeliveryTask.from_dict(body)
    assert task.pending_destination_ids == ("out-flaky",)
    assert task.succeeded_destination_ids == {"out-ok"}
    assert task.last_delay_seconds == settings.min_retry_delay_secs


@pytest.mark.asyncio
async def test_not_found_is_permanent_and_alert_is_delivered(conn, settings):
    sender = FakeSender()
    sender.script("out-gone", DeliveryOutcome.permanent("HTTP 404: destination not found", status_code=404))
    engine = make_engine(conn, [make_destination("out-gone")], [sender], settings=settings)
    await enqueue_alert(engine.queue, make_alert(destination_ids=("out-gone",)))

    report = await engine.run_batch()

    assert len(report.delivered) == 1
    assert len(engine.queue) == 0
    assert engine.dead_letters.count_unresolved() == 0
    (attempt,) = engine.ledger.list_for_alert("alert-1")
    assert attempt.outcome is OutcomeStatus.PERMANENT
    assert attempt.status_code == 404


@pytest.mark.asyncio
async def test_still_failing_after_retry_window_is_abandoned(conn, settings):
    sender = FakeSender(default=DeliveryOutcome.retry("HTTP 503", status_code=503))
    engine = make_engine(conn, [make_destination("out-down")], [sender], settings=settings)
    await engine.queue.send(
        DeliveryTask(
            alert=make_alert(destination_ids=("out-down",)),
            first_seen=T0,
            attempt=6,
            pending_destination_ids=("out-down",),
        )
    )
    engine.wall_clock.advance(minutes=31)

    report = await engine.run_batch()

    assert len(report.abandoned) == 1
    assert len(engine.queue) == 0
    (entry,) = engine.dead_letters.list_unresolved()
    assert entry.source is DeadLetterSource.ENGINE
    assert entry.pending_destination_ids == ["out-down"]
    assert DeliveryTask.from_dict(entry.task).attempt == 7


@pytest.mark.asyncio
async def test_replay_skips_already_delivered_destinations(conn, settings):
    sender = FakeSender(DestinationType.WEBHOOK)
    sender.script("out-down", DeliveryOutcome.retry("HTTP 503"), DeliveryOutcome.success(200))
    engine = make_engine(
        conn, [make_destination("out-up"), make_destination("out-down")], [sender], settings=settings
    )
    await engine.queue.send(
        DeliveryTask(alert=make_alert(destination_ids=("out-up", "out-down")), first_seen=T0)
    )
    engine.wall_clock.advance(minutes=31)

    report = await engine.run_batch()
    assert len(report.abandoned) == 1
    (entry,) = engine.dead_letters.list_unresolved()

    fresh = await engine.dead_letters.replay(entry.id, engine.queue, replayed_by="oncall")
    assert fresh.first_seen > T0 + timedelta(minutes=31)
    engine.wall_clock.now = fresh.first_seen

    report = await engine.run_batch()

    assert len(report.delivered) == 1
    assert Counter(sender.called_ids()) == {"out-up": 1, "out-down": 2}
    assert sender.called_ids()[-1] == "out-down"
    assert engine.dead_letters.count_unresolved() == 0
