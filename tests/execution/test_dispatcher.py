"""
Tests for the delivery dispatcher.

Covers:
- Fan-out, outcome aggregation and audit records
- Skipping previously succeeded destinations
- Configuration errors (unknown id, no sender) as permanent failures
- Concurrency ceiling, per-send timeout and processing deadline
- Audit write failures propagating
"""

import time

import pytest

from courier.core.errors import AuditWriteError
from courier.execution.dispatcher import DEADLINE_EXCEEDED, DeliveryDispatcher
from courier.execution.ledger import AuditLedger
from courier.framework.alerts.protocol import DeliveryOutcome, DestinationType, OutcomeStatus
from courier.framework.alerts.registry import SenderRegistry
from tests._support.delivery import FakeSender, make_alert, make_destination


class RaisingSender:
    destination_type = DestinationType.JIRA

    async def send(self, alert, destination):
        raise RuntimeError("adapter bug")


class BrokenAudit:
    def record(self, attempts):
        raise AuditWriteError("disk full")


@pytest.fixture()
def ledger(conn):
    return AuditLedger(conn)


@pytest.fixture()
def sender():
    return FakeSender(DestinationType.WEBHOOK)


def _dispatcher(ledger, *senders, **kwargs):
    return DeliveryDispatcher(SenderRegistry(list(senders)), ledger, **kwargs)


# =============================================================================
# Aggregation
# =============================================================================


class TestAggregation:
    @pytest.mark.asyncio
    async def test_all_succeed(self, ledger, sender):
        destinations = [make_destination(f"out-{i}") for i in range(3)]
        result = await _dispatcher(ledger, sender).dispatch(make_alert(), destinations, set(), cycle=2)

        assert result.succeeded == {"out-0", "out-1", "out-2"}
        assert result.all_succeeded
        attempts = ledger.list_for_alert("alert-1")
        assert len(attempts) == 3
        assert {a.dispatch_cycle for a in attempts} == {2}

    @pytest.mark.asyncio
    async def test_permanent_failure_does_not_stop_others(self, ledger, sender):
        sender.script("out-bad", DeliveryOutcome.permanent("HTTP 404: not found", status_code=404))
        sender.script("out-slow", DeliveryOutcome.retry("HTTP 503", status_code=503))
        destinations = [make_destination("out-bad"), make_destination("out-ok"), make_destination("out-slow")]

        result = await _dispatcher(ledger, sender).dispatch(make_alert(), destinations, set())

        assert result.succeeded == {"out-ok"}
        assert result.retryable == {"out-slow"}
        assert result.permanent == {"out-bad"}
        assert sorted(sender.called_ids()) == ["out-bad", "out-ok", "out-slow"]
        assert ledger.summary("alert-1") == {"success": 1, "retryable": 1, "permanent": 1}

    @pytest.mark.asyncio
    async def test_previously_succeeded_are_not_invoked(self, ledger, sender):
        destinations = [make_destination("out-1"), make_destination("out-2")]
        result = await _dispatcher(ledger, sender).dispatch(make_alert(), destinations, {"out-1"})

        assert sender.called_ids() == ["out-2"]
        assert result.succeeded == {"out-2"}
        assert [a.destination_id for a in ledger.list_for_alert("alert-1")] == ["out-2"]

    @pytest.mark.asyncio
    async def test_duplicate_destinations_sent_once(self, ledger, sender):
        destination = make_destination("out-1")
        await _dispatcher(ledger, sender).dispatch(make_alert(), [destination, destination], set())
        assert sender.called_ids() == ["out-1"]

    @pytest.mark.asyncio
    async def test_largest_retry_after_hint_wins(self, ledger, sender):
        sender.script("out-1", DeliveryOutcome.retry("HTTP 429", status_code=429, retry_after=30))
        sender.script("out-2", DeliveryOutcome.retry("HTTP 429", status_code=429, retry_after=90))
        destinations = [make_destination("out-1"), make_destination("out-2")]

        result = await _dispatcher(ledger, sender).dispatch(make_alert(), destinations, set())
        assert result.retry_after_hint == 90


# =============================================================================
# Configuration errors
# =============================================================================


class TestConfigurationErrors:
    @pytest.mark.asyncio
    async def test_unknown_destination_is_permanent(self, ledger, sender):
        result = await _dispatcher(ledger, sender).dispatch(make_alert(), [], set(), unresolved=["ghost"])

        assert result.permanent == {"ghost"}
        (attempt,) = ledger.list_for_alert("alert-1")
        assert attempt.outcome is OutcomeStatus.PERMANENT
        assert attempt.destination_type is None
        assert attempt.message == "unknown destination: ghost"

    @pytest.mark.asyncio
    async def test_unknown_but_already_succeeded_is_skipped(self, ledger, sender):
        result = await _dispatcher(ledger, sender).dispatch(make_alert(), [], {"gone"}, unresolved=["gone"])
        assert result.permanent == set()
        assert ledger.list_for_alert("alert-1") == []

    @pytest.mark.asyncio
    async def test_no_registered_sender_is_permanent(self, ledger, sender):
        destination = make_destination("out-gh", DestinationType.GITHUB)
        result = await _dispatcher(ledger, sender).dispatch(make_alert(), [destination], set())

        assert result.permanent == {"out-gh"}
        (attempt,) = ledger.list_for_alert("alert-1")
        assert attempt.message == "no sender registered for destination type: github"

    @pytest.mark.asyncio
    async def test_sender_that_raises_is_permanent(self, ledger, sender):
        destinations = [make_destination("out-jira", DestinationType.JIRA), make_destination("out-1")]
        result = await _dispatcher(ledger, sender, RaisingSender()).dispatch(make_alert(), destinations, set())

        assert result.permanent == {"out-jira"}
        assert result.succeeded == {"out-1"}


# =============================================================================
# Timing
# =============================================================================


class TestTiming:
    @pytest.mark.asyncio
    async def test_concurrency_ceiling(self, ledger):
        sender = FakeSender(delay=0.01)
        destinations = [make_destination(f"out-{i}") for i in range(6)]

        result = await _dispatcher(ledger, sender, max_concurrency=2).dispatch(make_alert(), destinations, set())

        assert len(result.succeeded) == 6
        assert sender.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_send_timeout_is_retryable(self, ledger):
        slow = FakeSender(delay=1.0)
        dispatcher = _dispatcher(ledger, slow, send_timeout_seconds=0.2)

        result = await dispatcher.dispatch(make_alert(), [make_destination("out-1")], set())

        assert result.retryable == {"out-1"}
        assert ledger.list_for_alert("alert-1")[0].message == "send timed out after 0.2s"

    @pytest.mark.asyncio
    async def test_processing_deadline_cancels_unfinished_sends(self, ledger):
        fast = FakeSender(DestinationType.SLACK)
        slow = FakeSender(DestinationType.WEBHOOK, delay=1.0)
        destinations = [
            make_destination("out-fast", DestinationType.SLACK),
            make_destination("out-slow", DestinationType.WEBHOOK),
        ]
        dispatcher = _dispatcher(ledger, fast, slow, send_timeout_seconds=5.0)

        result = await dispatcher.dispatch(
            make_alert(), destinations, set(), deadline=time.monotonic() + 0.05
        )

        assert result.succeeded == {"out-fast"}
        assert result.retryable == {"out-slow"}
        assert slow.in_flight == 0
        messages = {a.destination_id: a.message for a in ledger.list_for_alert("alert-1")}
        assert messages["out-slow"] == DEADLINE_EXCEEDED


# =============================================================================
# Audit
# =============================================================================


class TestAudit:
    @pytest.mark.asyncio
    async def test_audit_failure_propagates(self, sender):
        dispatcher = DeliveryDispatcher(SenderRegistry([sender]), BrokenAudit())
        with pytest.raises(AuditWriteError):
            await dispatcher.dispatch(make_alert(), [make_destination("out-1")], set())
        assert sender.called_ids() == ["out-1"]
