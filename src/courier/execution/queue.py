"""Inbound alert queue — delayed visibility, redelivery, transport dead-lettering.

WHY
───
The queue is the engine's only scheduler. A retry is a re-enqueue whose
visibility is delayed by the backoff; an un-acknowledged message becomes
visible again after the visibility timeout, so a crashed or failed worker
never loses an alert. A message received more than ``max_receive_count``
times is moved to the dead-letter store by the transport itself,
independent of the engine's retry window.

ARCHITECTURE
────────────
::

    AlertQueue (Protocol)
      ├── .send(task, delay_seconds)    ─ enqueue, visible after delay
      ├── .receive(max_messages)        ─ claim visible messages
      ├── .ack(message)                 ─ delete
      └── .release(message)             ─ make visible again now

    InMemoryAlertQueue   ─ single process, injectable clock (tests)
    SqliteAlertQueue     ─ durable, courier_alert_queue table

Each receive issues a new receipt handle; ``ack`` with a stale handle (the
message was redelivered to someone else) is a no-op.

Example::

    queue = SqliteAlertQueue(conn, dead_letters=DeadLetterStore(conn))
    await queue.send(DeliveryTask(alert=alert))
    for message in await queue.receive(10):
        ...
        await queue.ack(message)
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from courier.core.errors import QueueError
from courier.core.logging import get_logger
from courier.core.timestamps import utc_now

from .models import DeadLetterSource, DeliveryTask

logger = get_logger(__name__)

DEFAULT_VISIBILITY_TIMEOUT = 60.0
DEFAULT_MAX_RECEIVE_COUNT = 10


@dataclass(frozen=True)
class QueueMessage:
    """One received message. ``body`` is the DeliveryTask dict."""

    message_id: str
    body: dict[str, Any]
    receive_count: int = 1
    received_at: datetime = field(default_factory=utc_now)
    receipt_handle: str = field(default_factory=lambda: uuid.uuid4().hex)


class DeadLetterSink(Protocol):
    """Where the transport puts messages it gives up on."""

    def add_raw(self, body: dict[str, Any], reason: str, *, source: DeadLetterSource = ...) -> Any: ...


@runtime_checkable
class AlertQueue(Protocol):
    """Contract of the inbound delivery queue."""

    async def send(self, task: DeliveryTask, delay_seconds: float = 0.0) -> str:
        """Enqueue a task; returns the message id."""
        ...

    async def receive(self, max_messages: int = 10) -> list[QueueMessage]:
        """Claim up to ``max_messages`` visible messages."""
        ...

    async def ack(self, message: QueueMessage) -> None:
        """Delete a fully processed message."""
        ...

    async def release(self, message: QueueMessage) -> None:
        """Give a message back for immediate redelivery."""
        ...


def _redrive_reason(receive_count: int, max_receive_count: int) -> str:
    return f"message received {receive_count} times (max_receive_count={max_receive_count})"


# =============================================================================
# IN-MEMORY
# =============================================================================


@dataclass
class _Entry:
    message_id: str
    body: dict[str, Any]
    visible_at: float
    receive_count: int = 0
    receipt_handle: str | None = None


class InMemoryAlertQueue:
    """
    Process-local queue with the same visibility semantics as the durable one.

    ``clock`` returns seconds; tests advance a fake clock to make delayed
    and timed-out messages visible.
    """

    def __init__(
        self,
        *,
        visibility_timeout_seconds: float = DEFAULT_VISIBILITY_TIMEOUT,
        max_receive_count: int = DEFAULT_MAX_RECEIVE_COUNT,
        dead_letters: DeadLetterSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._visibility_timeout = visibility_timeout_seconds
        self._max_receive_count = max_receive_count
        self._dead_letters = dead_letters
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def bodies(self) -> list[dict[str, Any]]:
        """Bodies of every message still in the queue, visible or not."""
        return [e.body for e in self._entries.values()]

    def visible_at(self, message_id: str) -> float | None:
        entry = self._entries.get(message_id)
        return entry.visible_at if entry else None

    async def send(self, task: DeliveryTask, delay_seconds: float = 0.0) -> str:
        return await self.send_body(task.to_dict(), delay_seconds)

    async def send_body(self, body: dict[str, Any], delay_seconds: float = 0.0) -> str:
        message_id = uuid.uuid4().hex
        async with self._lock:
            self._entries[message_id] = _Entry(
                message_id=message_id,
                body=body,
                visible_at=self._clock() + max(0.0, delay_seconds),
            )
        return message_id

    async def receive(self, max_messages: int = 10) -> list[QueueMessage]:
        now = self._clock()
        received: list[QueueMessage] = []
        async with self._lock:
            for entry in sorted(self._entries.values(), key=lambda e: e.visible_at):
                if len(received) >= max_messages:
                    break
                if entry.visible_at > now:
                    continue
                if entry.receive_count >= self._max_receive_count:
                    self._redrive(entry)
                    continue
                entry.receive_count += 1
                entry.visible_at = now + self._visibility_timeout
                entry.receipt_handle = uuid.uuid4().hex
                received.append(
                    QueueMessage(
                        message_id=entry.message_id,
                        body=entry.body,
                        receive_count=entry.receive_count,
                        receipt_handle=entry.receipt_handle,
                    )
                )
        return received

    async def ack(self, message: QueueMessage) -> None:
        async with self._lock:
            entry = self._entries.get(message.message_id)
            if entry is not None and entry.receipt_handle == message.receipt_handle:
                del self._entries[message.message_id]

    async def release(self, message: QueueMessage) -> None:
        async with self._lock:
            entry = self._entries.get(message.message_id)
            if entry is not None and entry.receipt_handle == message.receipt_handle:
                entry.visible_at = self._clock()

    def _redrive(self, entry: _Entry) -> None:
        del self._entries[entry.message_id]
        reason = _redrive_reason(entry.receive_count, self._max_receive_count)
        logger.warning("queue.redrive", message_id=entry.message_id, receive_count=entry.receive_count)
        if self._dead_letters is not None:
            self._dead_letters.add_raw(entry.body, reason, source=DeadLetterSource.TRANSPORT)


# =============================================================================
# SQLITE
# =============================================================================


class SqliteAlertQueue:
    """
    Durable queue on the ``courier_alert_queue`` table.

    ``visible_at`` is stored as epoch seconds from ``clock``. Every
    sqlite3 failure is raised as QueueError.
    """

    def __init__(
        self,
        conn,
        *,
        visibility_timeout_seconds: float = DEFAULT_VISIBILITY_TIMEOUT,
        max_receive_count: int = DEFAULT_MAX_RECEIVE_COUNT,
        dead_letters: DeadLetterSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._conn = conn
        self._visibility_timeout = visibility_timeout_seconds
        self._max_receive_count = max_receive_count
        self._dead_letters = dead_letters
        self._clock = clock

    async def send(self, task: DeliveryTask, delay_seconds: float = 0.0) -> str:
        return await self.send_body(task.to_dict(), delay_seconds)

    async def send_body(self, body: dict[str, Any], delay_seconds: float = 0.0) -> str:
        message_id = uuid.uuid4().hex
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO courier_alert_queue (message_id, body, visible_at, receive_count, sent_at)
                    VALUES (?, ?, ?, 0, ?)
                    """,
                    (
                        message_id,
                        json.dumps(body, default=str),
                        self._clock() + max(0.0, delay_seconds),
                        utc_now().isoformat(),
                    ),
                )
        except sqlite3.Error as e:
            raise QueueError(f"Failed to enqueue message: {e}", cause=e) from e
        return message_id

    async def receive(self, max_messages: int = 10) -> list[QueueMessage]:
        now = self._clock()
        received: list[QueueMessage] = []
        try:
            with self._conn:
                cursor = self._conn.execute(
                    """
                    SELECT message_id, body, receive_count
                    FROM courier_alert_queue
                    WHERE visible_at <= ?
                    ORDER BY visible_at ASC
                    """,
                    (now,),
                )
                for message_id, raw_body, receive_count in cursor.fetchall():
                    if len(received) >= max_messages:
                        break
                    body = self._decode(raw_body)
                    if receive_count >= self._max_receive_count:
                        self._redrive(message_id, body, receive_count)
                        continue
                    receipt = uuid.uuid4().hex
                    received_at = utc_now()
                    self._conn.execute(
                        """
                        UPDATE courier_alert_queue
                        SET receive_count = receive_count + 1,
                            visible_at = ?,
                            receipt_handle = ?,
                            received_at = ?
                        WHERE message_id = ?
                        """,
                        (now + self._visibility_timeout, receipt, received_at.isoformat(), message_id),
                    )
                    received.append(
                        QueueMessage(
                            message_id=message_id,
                            body=body,
                            receive_count=receive_count + 1,
                            received_at=received_at,
                            receipt_handle=receipt,
                        )
                    )
        except sqlite3.Error as e:
            raise QueueError(f"Failed to receive messages: {e}", cause=e) from e
        return received

    async def ack(self, message: QueueMessage) -> None:
        try:
            with self._conn:
                self._conn.execute(
                    "DELETE FROM courier_alert_queue WHERE message_id = ? AND receipt_handle = ?",
                    (message.message_id, message.receipt_handle),
                )
        except sqlite3.Error as e:
            raise QueueError(f"Failed to ack message {message.message_id}: {e}", cause=e) from e

    async def release(self, message: QueueMessage) -> None:
        try:
            with self._conn:
                self._conn.execute(
                    """
                    UPDATE courier_alert_queue SET visible_at = ?
                    WHERE message_id = ? AND receipt_handle = ?
                    """,
                    (self._clock(), message.message_id, message.receipt_handle),
                )
        except sqlite3.Error as e:
            raise QueueError(f"Failed to release message {message.message_id}: {e}", cause=e) from e

    def count(self) -> int:
        """Messages in the queue, visible or not."""
        row = self._conn.execute("SELECT COUNT(*) FROM courier_alert_queue").fetchone()
        return row[0] if row else 0

    @staticmethod
    def _decode(raw_body: str) -> dict[str, Any]:
        try:
            body = json.loads(raw_body)
        except (TypeError, ValueError):
            return {"raw": raw_body}
        return body if isinstance(body, dict) else {"raw": body}

    def _redrive(self, message_id: str, body: dict[str, Any], receive_count: int) -> None:
        self._conn.execute("DELETE FROM courier_alert_queue WHERE message_id = ?", (message_id,))
        logger.warning("queue.redrive", message_id=message_id, receive_count=receive_count)
        if self._dead_letters is not None:
            self._dead_letters.add_raw(
                body,
                _redrive_reason(receive_count, self._max_receive_count),
                source=DeadLetterSource.TRANSPORT,
            )


__all__ = [
    "AlertQueue",
    "DeadLetterSink",
    "InMemoryAlertQueue",
    "QueueMessage",
    "SqliteAlertQueue",
]
