"""Tests for the background worker loop and its wiring."""

import asyncio

import pytest

from courier.core.errors import QueueError
from courier.execution.intake import enqueue_alert
from courier.execution.worker import DeliveryWorker, build_worker, open_database
from tests._support.delivery import FakeSender, make_alert, make_destination, make_engine


@pytest.fixture()
def engine(conn, settings):
    return make_engine(conn, [make_destination("out-1")], [FakeSender()], settings=settings)


class FailingQueue:
    """Queue whose receive always fails; stops the worker on first use."""

    def __init__(self):
        self.worker: DeliveryWorker | None = None

    async def receive(self, max_messages=10):
        self.worker.stop()
        raise QueueError("database is locked")


class TestDeliveryWorker:
    @pytest.mark.asyncio
    async def test_run_once(self, engine):
        await enqueue_alert(engine.queue, make_alert(destination_ids=("out-1",)))
        worker = DeliveryWorker(engine.queue, engine.processor, worker_id="w-1")

        report = await worker.run_once()

        assert len(report.delivered) == 1
        assert worker.worker_id == "w-1"
        assert worker.stats.delivered == 1
        assert worker.stats.last_poll_at is not None

    @pytest.mark.asyncio
    async def test_run_drains_queue_until_stopped(self, engine):
        for i in range(3):
            await enqueue_alert(engine.queue, make_alert(f"alert-{i}", destination_ids=("out-1",)))
        worker = DeliveryWorker(engine.queue, engine.processor, poll_interval_seconds=0.01, batch_size=2)

        running = asyncio.create_task(worker.run())
        await asyncio.sleep(0.05)
        worker.stop()
        await asyncio.wait_for(running, timeout=1)

        assert worker.stats.batches == 2
        assert worker.stats.delivered == 3
        assert len(engine.queue) == 0

    @pytest.mark.asyncio
    async def test_poll_errors_are_counted(self, engine):
        queue = FailingQueue()
        worker = DeliveryWorker(queue, engine.processor, poll_interval_seconds=0.01)
        queue.worker = worker

        await asyncio.wait_for(worker.run(), timeout=1)

        assert worker.stats.poll_errors == 1

    @pytest.mark.asyncio
    async def test_close_runs_hook_once(self, engine):
        calls = []

        async def on_close():
            calls.append("closed")

        worker = DeliveryWorker(engine.queue, engine.processor, on_close=on_close)
        await worker.close()
        await worker.close()
        assert calls == ["closed"]


class TestWiring:
    def test_open_database_creates_parent_directory(self, tmp_path):
        conn = open_database(tmp_path / "nested" / "courier.db")
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        conn.close()
        assert "courier_alert_queue" in tables
        assert (tmp_path / "nested" / "courier.db").exists()

    @pytest.mark.asyncio
    async def test_build_worker_processes_sqlite_queue(self, settings, tmp_path):
        settings = settings.model_copy(update={"database_path": tmp_path / "courier.db"})
        worker = build_worker(settings)
        try:
            report = await worker.run_once()
        finally:
            await worker.close()
        assert report.total == 0
