"""Dead-letter path — capture, inspect, and replay abandoned alerts.

WHY
───
Abandonment must never look like silent success. Every alert that leaves
the automatic retry path lands here with its full DeliveryTask, the
destinations still pending and the reason, so operators can inspect it,
replay it as a fresh alert, or mark it handled.

ARCHITECTURE
────────────
::

    DeadLetterStore(conn)
      ├── .add(task, reason, source)     ─ engine: retry window exhausted
      ├── .add_raw(body, reason)         ─ transport: redelivery exhausted / unreadable
      ├── .replay(id, queue)             ─ fresh Pending task, first_seen reset
      ├── .resolve(id, by)               ─ mark as handled
      ├── .list_unresolved() / .list_all()
      ├── .count_unresolved()
      └── .cleanup_resolved(days)        ─ delete old resolved entries

    DeadLetter (models.py)     ─ row-level data model

Replay keeps already-delivered destinations excluded; only the pending and
permanently failed destinations are attempted again.

Example::

    dead_letters = DeadLetterStore(conn)
    entry = dead_letters.add(task, "retry window elapsed", pending_destination_ids=["out-pd"])
    await dead_letters.replay(entry.id, queue, replayed_by="oncall@example.com")
"""

import json
from dataclasses import replace
from datetime import timedelta
from typing import Any

from courier.core.logging import get_logger
from courier.core.timestamps import from_iso8601, utc_now

from .models import DeadLetter, DeadLetterSource, DeliveryTask

logger = get_logger(__name__)

_COLUMNS = """
    id, alert_id, task, reason, source, pending_destination_ids,
    created_at, replay_count, last_replayed_at, resolved_at, resolved_by
"""


class DeadLetterStore:
    """Durable store for abandoned delivery tasks (``courier_dead_letters``)."""

    def __init__(self, conn):
        """Initialize with a database connection.

        Args:
            conn: sqlite3.Connection with the courier schema created
        """
        self._conn = conn

    def add(
        self,
        task: DeliveryTask,
        reason: str,
        *,
        source: DeadLetterSource = DeadLetterSource.ENGINE,
        pending_destination_ids: list[str] | None = None,
    ) -> DeadLetter:
        """Dead-letter a decoded task.

        Args:
            task: Task as it stood after its final cycle
            reason: Why it was abandoned
            source: ENGINE for retry-window exhaustion
            pending_destination_ids: Destinations still failing (defaults to the task's)

        Returns:
            Created DeadLetter entry
        """
        if pending_destination_ids is None:
            pending_destination_ids = list(task.pending_destination_ids or ())
        entry = DeadLetter(
            alert_id=task.alert_id,
            task=task.to_dict(),
            reason=reason,
            source=source,
            pending_destination_ids=sorted(pending_destination_ids),
        )
        self._insert(entry)
        return entry

    def add_raw(
        self,
        body: dict[str, Any],
        reason: str,
        *,
        source: DeadLetterSource = DeadLetterSource.TRANSPORT,
    ) -> DeadLetter:
        """Dead-letter a queue body that may not decode as a task."""
        alert = body.get("alert") if isinstance(body, dict) else None
        alert_id = alert.get("alert_id") if isinstance(alert, dict) else None
        pending = body.get("pending_destination_ids") if isinstance(body, dict) else None
        entry = DeadLetter(
            alert_id=str(alert_id or "unknown"),
            task=body if isinstance(body, dict) else {"raw": body},
            reason=reason,
            source=source,
            pending_destination_ids=sorted(pending) if isinstance(pending, list) else [],
        )
        self._insert(entry)
        return entry

    def _insert(self, entry: DeadLetter) -> None:
        cursor = self._conn.cursor()
        cursor.execute(
            f"""
            INSERT INTO courier_dead_letters ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.alert_id,
                json.dumps(entry.task, default=str),
                entry.reason,
                entry.source.value,
                json.dumps(entry.pending_destination_ids),
                entry.created_at.isoformat(),
                entry.replay_count,
                None,
                None,
                None,
            ),
        )
        self._conn.commit()
        logger.warning(
            "dlq.added",
            dlq_id=entry.id,
            alert_id=entry.alert_id,
            source=entry.source.value,
            reason=entry.reason,
            pending=entry.pending_destination_ids,
        )

    def get(self, dlq_id: str) -> DeadLetter | None:
        """Get a dead letter entry by ID.

        Args:
            dlq_id: DLQ entry ID

        Returns:
            DeadLetter or None if not found
        """
        cursor = self._conn.cursor()
        cursor.execute(f"SELECT {_COLUMNS} FROM courier_dead_letters WHERE id = ?", (dlq_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_dead_letter(row)

    def list_unresolved(self, limit: int = 100) -> list[DeadLetter]:
        """List unresolved entries, newest first."""
        return self.list_all(include_resolved=False, limit=limit)

    def list_all(self, include_resolved: bool = True, limit: int = 100) -> list[DeadLetter]:
        """List dead letter entries.

        Args:
            include_resolved: Include resolved entries
            limit: Max results

        Returns:
            List of DeadLetter entries, newest first
        """
        query = f"SELECT {_COLUMNS} FROM courier_dead_letters WHERE 1=1"
        if not include_resolved:
            query += " AND resolved_at IS NULL"
        query += " ORDER BY created_at DESC LIMIT ?"

        cursor = self._conn.cursor()
        cursor.execute(query, (limit,))
        return [self._row_to_dead_letter(row) for row in cursor.fetchall()]

    def count_unresolved(self) -> int:
        cursor = self._conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM courier_dead_letters WHERE resolved_at IS NULL")
        row = cursor.fetchone()
        return row[0] if row else 0

    def resolve(self, dlq_id: str, resolved_by: str | None = None) -> bool:
        """Mark a dead letter as resolved.

        Args:
            dlq_id: DLQ entry ID
            resolved_by: Who resolved it (email, system name, etc.)

        Returns:
            True if resolved, False if not found or already resolved
        """
        cursor = self._conn.cursor()
        cursor.execute(
            """
            UPDATE courier_dead_letters
            SET resolved_at = ?, resolved_by = ?
            WHERE id = ? AND resolved_at IS NULL
            """,
            (utc_now().isoformat(), resolved_by, dlq_id),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    async def replay(self, dlq_id: str, queue, replayed_by: str | None = None) -> DeliveryTask | None:
        """Re-inject a dead-lettered alert as a fresh Pending task.

        ``first_seen`` is reset so the alert gets a full retry window.
        Destinations that already succeeded stay excluded; pending and
        permanently failed ones are attempted again.

        Args:
            dlq_id: DLQ entry ID
            queue: AlertQueue to send the fresh task to
            replayed_by: Operator identity recorded on the entry

        Returns:
            The enqueued task, or None if the entry is missing or resolved

        Raises:
            PayloadError: If the stored body cannot be decoded as a task
        """
        entry = self.get(dlq_id)
        if entry is None or entry.is_resolved:
            return None

        task = DeliveryTask.from_dict(entry.task)
        retry_ids = set(entry.pending_destination_ids) | set(task.permanent_destination_ids)
        if task.pending_destination_ids is not None:
            retry_ids |= set(task.pending_destination_ids)
        retry_ids -= task.succeeded_destination_ids

        fresh = replace(
            task,
            first_seen=utc_now(),
            attempt=0,
            pending_destination_ids=(
                tuple(sorted(retry_ids)) if task.pending_destination_ids is not None else None
            ),
            permanent_destination_ids=frozenset(),
            last_delay_seconds=0.0,
            next_retry_at=None,
        )
        await queue.send(fresh)

        now = utc_now().isoformat()
        cursor = self._conn.cursor()
        cursor.execute(
            """
            UPDATE courier_dead_letters
            SET replay_count = replay_count + 1,
                last_replayed_at = ?,
                resolved_at = ?,
                resolved_by = ?
            WHERE id = ?
            """,
            (now, now, replayed_by or "replay", dlq_id),
        )
        self._conn.commit()
        logger.info(
            "dlq.replayed",
            dlq_id=dlq_id,
            alert_id=entry.alert_id,
            destinations=sorted(retry_ids),
            replayed_by=replayed_by,
        )
        return fresh

    def cleanup_resolved(self, days: int = 90) -> int:
        """Delete resolved entries older than N days.

        Returns:
            Number of entries deleted
        """
        cutoff = utc_now() - timedelta(days=days)
        cursor = self._conn.cursor()
        cursor.execute(
            """
            DELETE FROM courier_dead_letters
            WHERE resolved_at IS NOT NULL AND created_at < ?
            """,
            (cutoff.isoformat(),),
        )
        self._conn.commit()
        return cursor.rowcount

    def _row_to_dead_letter(self, row: tuple) -> DeadLetter:
        """Convert a database row to a DeadLetter object."""
        return DeadLetter(
            id=row[0],
            alert_id=row[1],
            task=json.loads(row[2]) if row[2] else {},
            reason=row[3],
            source=DeadLetterSource(row[4]),
            pending_destination_ids=json.loads(row[5]) if row[5] else [],
            created_at=from_iso8601(row[6]),
            replay_count=row[7] or 0,
            last_replayed_at=from_iso8601(row[8]),
            resolved_at=from_iso8601(row[9]),
            resolved_by=row[10],
        )


__all__ = ["DeadLetterStore"]
