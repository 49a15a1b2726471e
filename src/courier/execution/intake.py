"""Intake/requeue boundary — turn queue batches into dispatch cycles.

WHY
───
The engine is re-invoked with no memory between cycles. Each queue
message carries a DeliveryTask; this module decodes it, runs one cycle
(resolve → dispatch → decide) and then does exactly one of three things
with the message: acknowledge it, re-enqueue the advanced task with the
backoff as visibility delay, or dead-letter it. Messages in one batch are
independent: a catastrophic failure on one leaves that message un-acked
for the queue to redeliver and never affects its siblings.

ARCHITECTURE
────────────
::

    DeliveryProcessor.process_batch(messages)
      └── per message (semaphore-bounded, concurrent)
            decode DeliveryTask ── PayloadError ──→ dead-letter (transport), ack
            first cycle? targets = alert.destination_ids or severity defaults
            directory.resolve(targets)
            dispatcher.dispatch(..., deadline)
            controller.decide(task, result)
              DELIVERED   → ack
              RETRY_AFTER → queue.send(advanced task, delay), ack
              ABANDONED   → dead_letters.add(advanced task), ack
            catastrophic error (audit write, directory, queue) → release

Example::

    processor = DeliveryProcessor(directory, dispatcher, controller, queue, dead_letters)
    report = await processor.process_batch(await queue.receive(10))
    report.failed   # message ids left for redelivery
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from courier.core.errors import CourierError, PayloadError
from courier.core.logging import LogContext, get_logger
from courier.core.settings import CourierSettings
from courier.core.timestamps import utc_now
from courier.framework.alerts.protocol import Alert
from courier.framework.destinations.directory import DestinationDirectory

from .dispatcher import DeliveryDispatcher
from .dlq import DeadLetterStore
from .models import DeadLetterSource, DecisionKind, DeliveryTask
from .queue import AlertQueue, QueueMessage
from .retry import RetryController

logger = get_logger(__name__)


class MessageOutcome(str, Enum):
    """What happened to one queue message."""

    DELIVERED = "delivered"
    RETRIED = "retried"
    ABANDONED = "abandoned"
    REJECTED = "rejected"  # unreadable payload, dead-lettered
    FAILED = "failed"  # left un-acked for redelivery


@dataclass
class BatchReport:
    """Per-message results of one batch."""

    delivered: list[str] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)
    abandoned: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            len(self.delivered)
            + len(self.retried)
            + len(self.abandoned)
            + len(self.rejected)
            + len(self.failed)
        )

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    def add(self, message_id: str, outcome: MessageOutcome) -> None:
        getattr(self, outcome.value).append(message_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "delivered": list(self.delivered),
            "retried": list(self.retried),
            "abandoned": list(self.abandoned),
            "rejected": list(self.rejected),
            "failed": list(self.failed),
        }


class DeliveryProcessor:
    """Runs one dispatch cycle per queue message and settles the message."""

    def __init__(
        self,
        directory: DestinationDirectory,
        dispatcher: DeliveryDispatcher,
        controller: RetryController,
        queue: AlertQueue,
        dead_letters: DeadLetterStore,
        settings: CourierSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = settings or CourierSettings()
        self._directory = directory
        self._dispatcher = dispatcher
        self._controller = controller
        self._queue = queue
        self._dead_letters = dead_letters
        self._max_concurrency = settings.max_alert_concurrency
        self._processing_deadline = settings.processing_deadline_secs
        self._clock = clock

    async def process_batch(self, messages: Sequence[QueueMessage]) -> BatchReport:
        """Process a batch concurrently; never raises for a single message."""
        report = BatchReport()
        if not messages:
            return report

        deadline = self._clock() + self._processing_deadline
        sem = asyncio.Semaphore(min(len(messages), self._max_concurrency))

        async def _run(message: QueueMessage) -> MessageOutcome:
            async with sem:
                return await self.process_message(message, deadline=deadline)

        outcomes = await asyncio.gather(*(_run(m) for m in messages))
        for message, outcome in zip(messages, outcomes):
            report.add(message.message_id, outcome)

        logger.info(
            "intake.batch_complete",
            messages=len(messages),
            delivered=len(report.delivered),
            retried=len(report.retried),
            abandoned=len(report.abandoned),
            rejected=len(report.rejected),
            failed=len(report.failed),
        )
        return report

    async def process_message(self, message: QueueMessage, *, deadline: float | None = None) -> MessageOutcome:
        """Process one message and settle it with the queue."""
        try:
            task = DeliveryTask.from_dict(message.body)
        except PayloadError as e:
            return await self._reject(message, e)

        async with LogContext(alert_id=task.alert_id, message_id=message.message_id):
            try:
                return await self._run_cycle(task, message, deadline)
            except CourierError as e:
                logger.error(
                    "intake.failed",
                    error=e.message,
                    error_type=type(e).__name__,
                    category=e.category.value,
                    receive_count=message.receive_count,
                )
            except Exception:
                logger.exception("intake.unexpected_error", receive_count=message.receive_count)

            await self._release(message)
            return MessageOutcome.FAILED

    async def _run_cycle(
        self,
        task: DeliveryTask,
        message: QueueMessage,
        deadline: float | None,
    ) -> MessageOutcome:
        alert = task.alert

        if task.pending_destination_ids is None:
            target_ids = list(alert.destination_ids) or await self._directory.defaults_for(alert.severity)
            if not target_ids:
                logger.warning("intake.no_destinations", severity=alert.severity.value)
                await self._queue.ack(message)
                return MessageOutcome.DELIVERED
        else:
            target_ids = list(task.pending_destination_ids)

        resolution = await self._directory.resolve(
            i for i in target_ids if i not in task.succeeded_destination_ids
        )
        if resolution.degraded:
            logger.warning("intake.directory_degraded", snapshot_version=resolution.snapshot_version)

        result = await self._dispatcher.dispatch(
            alert,
            resolution.destinations,
            task.succeeded_destination_ids,
            unresolved=resolution.unknown,
            cycle=task.attempt + 1,
            deadline=deadline,
        )
        decision = self._controller.decide(task, result)

        if decision.kind is DecisionKind.DELIVERED:
            if decision.partial_failure:
                logger.warning("intake.partial_failure", permanent=sorted(decision.permanent))
            await self._queue.ack(message)
            return MessageOutcome.DELIVERED

        next_task = self._controller.advance(task, result, decision)

        if decision.kind is DecisionKind.RETRY_AFTER:
            await self._queue.send(next_task, delay_seconds=decision.delay_seconds)
            await self._queue.ack(message)
            logger.info(
                "intake.requeued",
                delay_seconds=round(decision.delay_seconds, 3),
                pending=sorted(decision.pending),
            )
            return MessageOutcome.RETRIED

        self._dead_letters.add(
            next_task,
            decision.reason or "retry window elapsed",
            source=DeadLetterSource.ENGINE,
            pending_destination_ids=sorted(decision.pending),
        )
        await self._queue.ack(message)
        logger.error("intake.abandoned", pending=sorted(decision.pending), reason=decision.reason)
        return MessageOutcome.ABANDONED

    async def _reject(self, message: QueueMessage, error: PayloadError) -> MessageOutcome:
        logger.error("intake.unreadable_payload", message_id=message.message_id, error=error.message)
        try:
            self._dead_letters.add_raw(message.body, error.message, source=DeadLetterSource.TRANSPORT)
            await self._queue.ack(message)
        except Exception:
            logger.exception("intake.reject_failed", message_id=message.message_id)
            await self._release(message)
            return MessageOutcome.FAILED
        return MessageOutcome.REJECTED

    async def _release(self, message: QueueMessage) -> None:
        try:
            await self._queue.release(message)
        except CourierError as e:
            # Visibility timeout still returns the message.
            logger.warning("intake.release_failed", message_id=message.message_id, error=e.message)


async def enqueue_alert(queue: AlertQueue, alert: Alert, delay_seconds: float = 0.0) -> str:
    """Enqueue a fresh Pending task for ``alert``; returns the message id."""
    task = DeliveryTask(alert=alert, first_seen=utc_now())
    message_id = await queue.send(task, delay_seconds=delay_seconds)
    logger.info("intake.enqueued", alert_id=alert.alert_id, message_id=message_id)
    return message_id


__all__ = ["BatchReport", "DeliveryProcessor", "MessageOutcome", "enqueue_alert"]
