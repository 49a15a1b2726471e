"""Background worker loop — polls the inbound queue and processes batches.

The DeliveryWorker bridges the queue to the DeliveryProcessor. It
periodically receives up to ``batch_size`` visible messages, hands them
to the processor and keeps running totals. When the queue is empty it
sleeps for the poll interval.

Usage (programmatic)::

    from courier.execution.worker import build_worker

    worker = build_worker(get_settings())
    worker.start()  # blocking — runs until SIGINT/SIGTERM

Usage (CLI)::

    courier worker start --poll-interval 2
"""

from __future__ import annotations

import asyncio
import os
import signal
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from courier.core.errors import CourierError
from courier.core.logging import get_logger
from courier.core.schema import create_core_tables
from courier.core.settings import CourierSettings
from courier.core.timestamps import utc_now

from .intake import BatchReport, DeliveryProcessor
from .queue import AlertQueue

logger = get_logger(__name__)


@dataclass
class WorkerStats:
    """Running totals for a worker."""

    batches: int = 0
    processed: int = 0
    delivered: int = 0
    retried: int = 0
    abandoned: int = 0
    rejected: int = 0
    failed: int = 0
    poll_errors: int = 0
    last_poll_at: datetime | None = None

    def record(self, report: BatchReport) -> None:
        self.batches += 1
        self.processed += report.total
        self.delivered += len(report.delivered)
        self.retried += len(report.retried)
        self.abandoned += len(report.abandoned)
        self.rejected += len(report.rejected)
        self.failed += len(report.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "batches": self.batches,
            "processed": self.processed,
            "delivered": self.delivered,
            "retried": self.retried,
            "abandoned": self.abandoned,
            "rejected": self.rejected,
            "failed": self.failed,
            "poll_errors": self.poll_errors,
            "last_poll_at": self.last_poll_at.isoformat() if self.last_poll_at else None,
        }


class DeliveryWorker:
    """Long-running queue consumer.

    Lifecycle:
        ``run()`` loops until ``stop()`` is called. ``start()`` wraps it in
        ``asyncio.run`` and installs SIGINT/SIGTERM handlers for graceful
        shutdown; the batch in progress is finished before exiting.
    """

    def __init__(
        self,
        queue: AlertQueue,
        processor: DeliveryProcessor,
        *,
        poll_interval_seconds: float = 1.0,
        batch_size: int = 10,
        worker_id: str | None = None,
        on_close: Any | None = None,
    ):
        self._queue = queue
        self._processor = processor
        self._poll_interval = poll_interval_seconds
        self._batch_size = batch_size
        self._worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self._on_close = on_close
        self._stop_event: asyncio.Event | None = None
        self._stop_requested = False
        self._stats = WorkerStats()

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def stats(self) -> WorkerStats:
        return self._stats

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Run the poll loop (blocking) until SIGINT / SIGTERM."""
        asyncio.run(self._main())

    async def _main(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                pass  # Windows / not main thread
        try:
            await self.run()
        finally:
            await self.close()

    def stop(self) -> None:
        """Request graceful shutdown."""
        logger.info("worker.stopping", worker_id=self._worker_id)
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()

    async def close(self) -> None:
        """Release resources handed to the worker by ``build_worker``."""
        if self._on_close is not None:
            result = self._on_close()
            if asyncio.iscoroutine(result):
                await result
            self._on_close = None

    # ------------------------------------------------------------------ #
    # Main loop
    # ------------------------------------------------------------------ #

    async def run(self) -> None:
        """Poll until ``stop()`` is called."""
        self._stop_event = asyncio.Event()
        if self._stop_requested:
            self._stop_event.set()

        logger.info(
            "worker.started",
            worker_id=self._worker_id,
            pid=os.getpid(),
            poll_interval=self._poll_interval,
            batch_size=self._batch_size,
        )

        while not self._stop_event.is_set():
            try:
                report = await self.run_once()
            except CourierError as e:
                self._stats.poll_errors += 1
                logger.error("worker.poll_error", worker_id=self._worker_id, error=e.message)
                report = None

            if report is not None and report.total:
                continue  # drain without sleeping while there is work
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval)
            except TimeoutError:
                pass

        logger.info("worker.stopped", worker_id=self._worker_id, **self._stats.to_dict())

    async def run_once(self) -> BatchReport:
        """Receive and process one batch."""
        messages = await self._queue.receive(self._batch_size)
        self._stats.last_poll_at = utc_now()
        if not messages:
            return BatchReport()

        report = await self._processor.process_batch(messages)
        self._stats.record(report)
        return report


def open_database(path: str | Path) -> sqlite3.Connection:
    """Open (creating if needed) the courier SQLite database."""
    if str(path) != ":memory:":
        Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        path = Path(path).expanduser()
    conn = sqlite3.connect(str(path), check_same_thread=False)
    create_core_tables(conn)
    return conn


def build_worker(settings: CourierSettings, conn: sqlite3.Connection | None = None) -> DeliveryWorker:
    """Wire a worker from settings: SQLite stores, directory, default senders."""
    import httpx

    from courier.framework.alerts.registry import default_sender_registry
    from courier.framework.destinations import DestinationDirectory, SqliteDestinationStore

    from .dispatcher import DeliveryDispatcher
    from .dlq import DeadLetterStore
    from .ledger import AuditLedger
    from .queue import SqliteAlertQueue
    from .retry import ExponentialBackoff, RetryController

    owns_conn = conn is None
    if conn is None:
        conn = open_database(settings.database_path)

    dead_letters = DeadLetterStore(conn)
    queue = SqliteAlertQueue(
        conn,
        visibility_timeout_seconds=settings.visibility_timeout_secs,
        max_receive_count=settings.max_receive_count,
        dead_letters=dead_letters,
    )
    directory = DestinationDirectory(
        SqliteDestinationStore(conn),
        refresh_interval_seconds=settings.refresh_interval_seconds,
        staleness_ceiling_seconds=settings.staleness_ceiling_seconds,
        miss_refresh_cooldown_seconds=settings.outputs_miss_cooldown_secs,
    )
    client = httpx.AsyncClient(timeout=settings.send_timeout_secs)
    registry = default_sender_registry(settings, client=client)
    dispatcher = DeliveryDispatcher(
        registry,
        AuditLedger(conn),
        max_concurrency=settings.max_destination_concurrency,
        send_timeout_seconds=settings.send_timeout_secs,
    )
    controller = RetryController(
        ExponentialBackoff(
            min_delay=settings.min_retry_delay_secs,
            max_delay=settings.max_retry_delay_secs,
            jitter_ratio=settings.retry_jitter_ratio,
        ),
        max_retry_duration_seconds=settings.max_retry_duration_seconds,
    )
    processor = DeliveryProcessor(directory, dispatcher, controller, queue, dead_letters, settings)

    async def _close() -> None:
        await client.aclose()
        for sender in registry.senders():
            aclose = getattr(sender, "aclose", None)
            if aclose is not None:
                await aclose()
        if owns_conn:
            conn.close()

    return DeliveryWorker(
        queue,
        processor,
        poll_interval_seconds=settings.poll_interval_secs,
        batch_size=settings.batch_size,
        on_close=_close,
    )


__all__ = ["DeliveryWorker", "WorkerStats", "build_worker", "open_database"]
