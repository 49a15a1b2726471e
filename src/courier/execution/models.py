"""Delivery domain models.

Defines the records the delivery engine passes between its stages:
- DeliveryAttempt: append-only audit record, one per send invocation
- DeliveryTask: queue message body carrying all retry state for one alert
- DispatchResult: aggregated per-destination outcome of one dispatch cycle
- Decision: the retry controller's verdict for one cycle
- DeadLetter: abandoned task awaiting operator attention

DeliveryTask is the persisted state machine context. The engine keeps no
per-alert memory between cycles; everything the next decision needs
travels inside the re-enqueued message.

State graph per alert::

    PENDING → PENDING   (RETRY_AFTER, re-enqueued with delay)
    PENDING → DELIVERED (terminal)
    PENDING → ABANDONED (terminal, dead-lettered)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from courier.core.errors import PayloadError
from courier.core.timestamps import from_iso8601, to_iso8601, utc_now
from courier.framework.alerts.protocol import Alert, DestinationType, OutcomeStatus


@dataclass(frozen=True)
class DeliveryAttempt:
    """One send invocation (or configuration error) for one alert–destination pair."""

    alert_id: str
    destination_id: str
    outcome: OutcomeStatus
    destination_type: DestinationType | None = None
    attempted_at: datetime = field(default_factory=utc_now)
    status_code: int | None = None
    message: str | None = None
    dispatch_cycle: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "destination_id": self.destination_id,
            "destination_type": self.destination_type.value if self.destination_type else None,
            "attempted_at": self.attempted_at.isoformat(),
            "outcome": self.outcome.value,
            "status_code": self.status_code,
            "message": self.message,
            "dispatch_cycle": self.dispatch_cycle,
        }


@dataclass(frozen=True)
class DeliveryTask:
    """
    Queue message body for one in-flight alert.

    ``pending_destination_ids`` is None until the first cycle resolves the
    alert's targets; afterwards it holds only the ids still to be retried.
    ``attempt`` counts completed dispatch cycles.
    """

    alert: Alert
    first_seen: datetime = field(default_factory=utc_now)
    attempt: int = 0
    pending_destination_ids: tuple[str, ...] | None = None
    succeeded_destination_ids: frozenset[str] = frozenset()
    permanent_destination_ids: frozenset[str] = frozenset()
    last_delay_seconds: float = 0.0
    next_retry_at: datetime | None = None

    @property
    def alert_id(self) -> str:
        return self.alert.alert_id

    def retry_deadline(self, max_retry_duration_seconds: float) -> datetime:
        """Latest time a retry may be scheduled for."""
        return self.first_seen + timedelta(seconds=max_retry_duration_seconds)

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert": self.alert.to_dict(),
            "first_seen": self.first_seen.isoformat(),
            "attempt": self.attempt,
            "pending_destination_ids": (
                list(self.pending_destination_ids) if self.pending_destination_ids is not None else None
            ),
            "succeeded_destination_ids": sorted(self.succeeded_destination_ids),
            "permanent_destination_ids": sorted(self.permanent_destination_ids),
            "last_delay_seconds": self.last_delay_seconds,
            "next_retry_at": to_iso8601(self.next_retry_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeliveryTask:
        """
        Decode a queue message body.

        Raises:
            PayloadError: If the body is not a well-formed task.
        """
        try:
            pending = data.get("pending_destination_ids")
            return cls(
                alert=Alert.from_dict(data["alert"]),
                first_seen=from_iso8601(data.get("first_seen")) or utc_now(),
                attempt=int(data.get("attempt", 0)),
                pending_destination_ids=tuple(pending) if pending is not None else None,
                succeeded_destination_ids=frozenset(data.get("succeeded_destination_ids") or ()),
                permanent_destination_ids=frozenset(data.get("permanent_destination_ids") or ()),
                last_delay_seconds=float(data.get("last_delay_seconds") or 0.0),
                next_retry_at=from_iso8601(data.get("next_retry_at")),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise PayloadError(f"Malformed delivery task: {e!r}", cause=e) from e


@dataclass
class DispatchResult:
    """Per-destination outcome of one dispatch cycle."""

    succeeded: set[str] = field(default_factory=set)
    retryable: set[str] = field(default_factory=set)
    permanent: set[str] = field(default_factory=set)
    attempts: list[DeliveryAttempt] = field(default_factory=list)
    retry_after_hint: int | None = None

    @property
    def all_succeeded(self) -> bool:
        return not self.retryable and not self.permanent

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": sorted(self.succeeded),
            "retryable": sorted(self.retryable),
            "permanent": sorted(self.permanent),
            "attempts": len(self.attempts),
            "retry_after_hint": self.retry_after_hint,
        }


class DecisionKind(str, Enum):
    """Retry controller verdicts."""

    DELIVERED = "delivered"
    RETRY_AFTER = "retry_after"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class Decision:
    """
    Outcome of one retry decision.

    ``pending`` is the retry set for RETRY_AFTER and the still-pending set
    for ABANDONED. ``permanent`` annotates destinations that failed hard
    in any cycle so far, so a DELIVERED decision can carry a partial failure.
    """

    kind: DecisionKind
    delay_seconds: float = 0.0
    pending: frozenset[str] = frozenset()
    permanent: frozenset[str] = frozenset()
    reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind is not DecisionKind.RETRY_AFTER

    @property
    def partial_failure(self) -> bool:
        return self.kind is DecisionKind.DELIVERED and bool(self.permanent)

    @classmethod
    def delivered(cls, permanent: frozenset[str] = frozenset(), reason: str | None = None) -> Decision:
        return cls(DecisionKind.DELIVERED, permanent=permanent, reason=reason)

    @classmethod
    def retry_after(cls, delay_seconds: float, pending: frozenset[str], permanent: frozenset[str]) -> Decision:
        return cls(DecisionKind.RETRY_AFTER, delay_seconds=delay_seconds, pending=pending, permanent=permanent)

    @classmethod
    def abandoned(cls, pending: frozenset[str], permanent: frozenset[str], reason: str) -> Decision:
        return cls(DecisionKind.ABANDONED, pending=pending, permanent=permanent, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "delay_seconds": self.delay_seconds,
            "pending": sorted(self.pending),
            "permanent": sorted(self.permanent),
            "reason": self.reason,
        }


class DeadLetterSource(str, Enum):
    """Where a dead letter came from."""

    ENGINE = "engine"  # retry window exhausted
    TRANSPORT = "transport"  # redelivery exhausted or unreadable payload


@dataclass
class DeadLetter:
    """
    A task that will not be retried automatically.

    ``task`` holds the full DeliveryTask dict (or the raw body when the
    payload could not be decoded) so replay can rebuild it exactly.
    """

    alert_id: str
    task: dict[str, Any]
    reason: str
    source: DeadLetterSource = DeadLetterSource.ENGINE
    pending_destination_ids: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    replay_count: int = 0
    last_replayed_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "alert_id": self.alert_id,
            "reason": self.reason,
            "source": self.source.value,
            "pending_destination_ids": list(self.pending_destination_ids),
            "created_at": self.created_at.isoformat(),
            "replay_count": self.replay_count,
            "last_replayed_at": to_iso8601(self.last_replayed_at),
            "resolved_at": to_iso8601(self.resolved_at),
            "resolved_by": self.resolved_by,
            "task": self.task,
        }


__all__ = [
    "DeliveryAttempt",
    "DeliveryTask",
    "DispatchResult",
    "DecisionKind",
    "Decision",
    "DeadLetterSource",
    "DeadLetter",
]
