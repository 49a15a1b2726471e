"""Delivery Dispatcher — fan one alert out to its resolved destinations.

WHY
───
Destinations are independent: a permanent failure at one must never stop
attempts to the others, and a slow one must not stall the rest. The
dispatcher invokes every pending sender concurrently under a semaphore,
bounds each send by its own timeout and the whole cycle by the processing
deadline, and aggregates the three-way outcomes into one DispatchResult.

ARCHITECTURE
────────────
::

    DeliveryDispatcher(registry, audit)
      └── .dispatch(alert, destinations, previously_succeeded,
                    unresolved=..., cycle=..., deadline=...)
            ├── skip previously_succeeded         (never re-invoked)
            ├── unresolved ids / no sender        → PERMANENT (config error)
            ├── asyncio.Semaphore(min(n, max))    → sender.send() per destination
            │     └── asyncio.wait_for(send_timeout)  → RETRYABLE on timeout
            ├── processing deadline passed        → cancel, RETRYABLE
            └── audit.record(attempts)            → before returning

Related modules:
    retry.py    — decides what happens after the cycle
    ledger.py   — the audit sink
    framework/alerts/registry.py — sender lookup by destination type

Example::

    dispatcher = DeliveryDispatcher(registry, AuditLedger(conn), max_concurrency=10)
    result = await dispatcher.dispatch(alert, resolution.destinations, set())
    result.succeeded, result.retryable, result.permanent
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Collection, Iterable, Sequence
from typing import Protocol

from courier.core.logging import get_logger
from courier.core.timestamps import utc_now
from courier.framework.alerts.protocol import (
    Alert,
    DeliveryOutcome,
    Destination,
    DestinationType,
    OutcomeStatus,
)
from courier.framework.alerts.registry import SenderRegistry

from .models import DeliveryAttempt, DispatchResult

logger = get_logger(__name__)

DEADLINE_EXCEEDED = "processing deadline exceeded"


class AuditSink(Protocol):
    """Append-only destination for delivery attempts."""

    def record(self, attempts: Iterable[DeliveryAttempt]) -> int: ...


class DeliveryDispatcher:
    """Concurrent, non-short-circuiting fan-out of one alert.

    Parameters
    ----------
    registry : SenderRegistry
        Sender lookup keyed by destination type.
    audit : AuditSink
        Receives every attempt before ``dispatch`` returns. A failing write
        raises AuditWriteError, which propagates.
    max_concurrency : int
        Ceiling on simultaneous sends for one alert.
    send_timeout_seconds : float
        Per-send timeout; must be shorter than the processing deadline.
    clock : callable
        Monotonic clock used to interpret ``deadline``.
    """

    def __init__(
        self,
        registry: SenderRegistry,
        audit: AuditSink,
        *,
        max_concurrency: int = 10,
        send_timeout_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._audit = audit
        self._max_concurrency = max(1, max_concurrency)
        self._send_timeout = send_timeout_seconds
        self._clock = clock

    async def dispatch(
        self,
        alert: Alert,
        destinations: Sequence[Destination],
        previously_succeeded: Collection[str],
        *,
        unresolved: Iterable[str] | None = None,
        cycle: int = 1,
        deadline: float | None = None,
    ) -> DispatchResult:
        """Run one dispatch cycle.

        Args:
            alert: The alert being delivered.
            destinations: Resolved destinations for this cycle.
            previously_succeeded: Destination ids already delivered; skipped.
            unresolved: Ids the directory could not resolve; recorded as
                permanent configuration errors.
            cycle: Dispatch cycle number, stored on each attempt.
            deadline: Monotonic time by which the cycle must finish.

        Returns:
            DispatchResult with succeeded / retryable / permanent id sets.

        Raises:
            AuditWriteError: If the attempts cannot be recorded.
        """
        result = DispatchResult()
        done = set(previously_succeeded)

        for destination_id in dict.fromkeys(unresolved or ()):
            if destination_id in done:
                continue
            self._record(
                result,
                alert,
                destination_id,
                None,
                DeliveryOutcome.permanent(f"unknown destination: {destination_id}"),
                cycle,
            )

        pending: dict[str, Destination] = {}
        for destination in destinations:
            if destination.destination_id in done or destination.destination_id in pending:
                continue
            if not self._registry.supports(destination.destination_type):
                self._record(
                    result,
                    alert,
                    destination.destination_id,
                    destination.destination_type,
                    DeliveryOutcome.permanent(
                        f"no sender registered for destination type: {destination.destination_type.value}"
                    ),
                    cycle,
                )
                continue
            pending[destination.destination_id] = destination

        if pending:
            outcomes = await self._send_all(alert, list(pending.values()), deadline)
            for destination in pending.values():
                self._record(
                    result,
                    alert,
                    destination.destination_id,
                    destination.destination_type,
                    outcomes[destination.destination_id],
                    cycle,
                )

        self._audit.record(result.attempts)

        logger.info(
            "dispatch.complete",
            alert_id=alert.alert_id,
            cycle=cycle,
            skipped=len(done),
            succeeded=len(result.succeeded),
            retryable=len(result.retryable),
            permanent=len(result.permanent),
        )
        return result

    async def _send_all(
        self,
        alert: Alert,
        destinations: list[Destination],
        deadline: float | None,
    ) -> dict[str, DeliveryOutcome]:
        sem = asyncio.Semaphore(min(len(destinations), self._max_concurrency))

        async def _send_one(destination: Destination) -> DeliveryOutcome:
            async with sem:
                return await self._send(alert, destination)

        tasks = {
            asyncio.create_task(_send_one(d), name=f"send:{d.destination_id}"): d
            for d in destinations
        }

        timeout = None if deadline is None else max(0.0, deadline - self._clock())
        finished, unfinished = await asyncio.wait(tasks, timeout=timeout)

        for task in unfinished:
            task.cancel()
        if unfinished:
            await asyncio.gather(*unfinished, return_exceptions=True)
            logger.warning(
                "dispatch.deadline_exceeded",
                alert_id=alert.alert_id,
                unfinished=sorted(tasks[t].destination_id for t in unfinished),
            )

        outcomes: dict[str, DeliveryOutcome] = {}
        for task, destination in tasks.items():
            if task in finished:
                outcomes[destination.destination_id] = task.result()
            else:
                outcomes[destination.destination_id] = DeliveryOutcome.retry(DEADLINE_EXCEEDED)
        return outcomes

    async def _send(self, alert: Alert, destination: Destination) -> DeliveryOutcome:
        sender = self._registry.get(destination.destination_type)
        try:
            return await asyncio.wait_for(sender.send(alert, destination), timeout=self._send_timeout)
        except TimeoutError:
            return DeliveryOutcome.retry(f"send timed out after {self._send_timeout:.1f}s")
        except Exception as e:
            # Senders normalise their own failures; this catches one that did not.
            logger.exception(
                "dispatch.sender_raised",
                alert_id=alert.alert_id,
                destination_id=destination.destination_id,
            )
            return DeliveryOutcome.permanent(f"sender raised: {e!r}")

    def _record(
        self,
        result: DispatchResult,
        alert: Alert,
        destination_id: str,
        destination_type: DestinationType | None,
        outcome: DeliveryOutcome,
        cycle: int,
    ) -> None:
        if outcome.status is OutcomeStatus.SUCCESS:
            result.succeeded.add(destination_id)
        elif outcome.status is OutcomeStatus.RETRYABLE:
            result.retryable.add(destination_id)
            if outcome.retry_after is not None:
                result.retry_after_hint = max(result.retry_after_hint or 0, outcome.retry_after)
        else:
            result.permanent.add(destination_id)

        result.attempts.append(
            DeliveryAttempt(
                alert_id=alert.alert_id,
                destination_id=destination_id,
                destination_type=destination_type,
                attempted_at=utc_now(),
                outcome=outcome.status,
                status_code=outcome.status_code,
                message=outcome.reason,
                dispatch_cycle=cycle,
            )
        )
        logger.debug(
            "dispatch.attempt",
            alert_id=alert.alert_id,
            destination_id=destination_id,
            outcome=outcome.status.value,
            status_code=outcome.status_code,
            reason=outcome.reason,
        )


__all__ = ["AuditSink", "DeliveryDispatcher", "DEADLINE_EXCEEDED"]
