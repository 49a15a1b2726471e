"""Tests for delivery domain models."""

from datetime import timedelta

import pytest

from courier.core.errors import PayloadError
from courier.execution.models import Decision, DecisionKind, DeliveryTask, DispatchResult
from tests._support.delivery import T0, make_alert


class TestDeliveryTask:
    def test_dict_round_trip_keeps_retry_state(self):
        task = DeliveryTask(
            alert=make_alert(destination_ids=("out-1", "out-2")),
            first_seen=T0,
            attempt=2,
            pending_destination_ids=("out-2",),
            succeeded_destination_ids=frozenset({"out-1"}),
            permanent_destination_ids=frozenset({"out-9"}),
            last_delay_seconds=60.0,
            next_retry_at=T0 + timedelta(minutes=3),
        )
        assert DeliveryTask.from_dict(task.to_dict()) == task

    def test_unresolved_task_has_no_pending_list(self):
        task = DeliveryTask(alert=make_alert(), first_seen=T0)
        data = task.to_dict()
        assert data["pending_destination_ids"] is None
        assert DeliveryTask.from_dict(data).pending_destination_ids is None

    def test_retry_deadline(self):
        task = DeliveryTask(alert=make_alert(), first_seen=T0)
        assert task.retry_deadline(1800) == T0 + timedelta(minutes=30)

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"alert": "not-a-dict"},
            {"alert": {"alert_id": "a", "severity": "SEVERE", "source_id": "r"}},
            {"alert": {"alert_id": "a", "severity": "HIGH", "source_id": "r"}, "attempt": "twice"},
        ],
    )
    def test_malformed_body_raises_payload_error(self, body):
        with pytest.raises(PayloadError):
            DeliveryTask.from_dict(body)


class TestDecision:
    def test_retry_after_is_not_terminal(self):
        decision = Decision.retry_after(30.0, pending=frozenset({"a"}), permanent=frozenset())
        assert decision.kind is DecisionKind.RETRY_AFTER
        assert not decision.is_terminal

    def test_delivered_with_permanent_is_partial_failure(self):
        assert Decision.delivered(permanent=frozenset({"a"})).partial_failure
        assert not Decision.delivered().partial_failure

    def test_abandoned_to_dict(self):
        decision = Decision.abandoned(pending=frozenset({"b", "a"}), permanent=frozenset(), reason="window")
        assert decision.is_terminal
        assert decision.to_dict()["pending"] == ["a", "b"]


class TestDispatchResult:
    def test_all_succeeded(self):
        assert DispatchResult(succeeded={"a"}).all_succeeded
        assert not DispatchResult(succeeded={"a"}, permanent={"b"}).all_succeeded
