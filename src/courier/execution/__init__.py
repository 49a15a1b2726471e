"""Delivery execution: dispatch, retry decisions, queue, audit and dead letters.

Data flow::

    AlertQueue.receive() → DeliveryProcessor → DestinationDirectory.resolve()
        → DeliveryDispatcher.dispatch() → RetryController.decide()
        → ack | re-enqueue with delay | DeadLetterStore.add()
"""

from courier.execution.dispatcher import DeliveryDispatcher
from courier.execution.dlq import DeadLetterStore
from courier.execution.intake import BatchReport, DeliveryProcessor, MessageOutcome, enqueue_alert
from courier.execution.ledger import AuditLedger
from courier.execution.models import (
    DeadLetter,
    DeadLetterSource,
    Decision,
    DecisionKind,
    DeliveryAttempt,
    DeliveryTask,
    DispatchResult,
)
from courier.execution.queue import AlertQueue, InMemoryAlertQueue, QueueMessage, SqliteAlertQueue
from courier.execution.retry import ExponentialBackoff, RetryController
from courier.execution.worker import DeliveryWorker, WorkerStats, build_worker

__all__ = [
    # Models
    "DeadLetter",
    "DeadLetterSource",
    "Decision",
    "DecisionKind",
    "DeliveryAttempt",
    "DeliveryTask",
    "DispatchResult",
    # Engine
    "DeliveryDispatcher",
    "ExponentialBackoff",
    "RetryController",
    "DeliveryProcessor",
    "BatchReport",
    "MessageOutcome",
    "enqueue_alert",
    # Storage / transport
    "AuditLedger",
    "DeadLetterStore",
    "AlertQueue",
    "InMemoryAlertQueue",
    "SqliteAlertQueue",
    "QueueMessage",
    # Worker
    "DeliveryWorker",
    "WorkerStats",
    "build_worker",
]
