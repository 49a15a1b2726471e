"""Audit ledger - append-only record of every delivery attempt.

Every send invocation (and every configuration error that prevented one)
is written here before the dispatcher returns, independent of the retry
decision that follows. Operators query it to see exactly what happened to
an alert.

Architecture:

    .. code-block:: text

        AuditLedger — append-only
        ┌───────────────────────────────────────────────────────────┐
        │  record(attempts)        one transaction per cycle        │
        │  list_for_alert(id)      full trail for one alert         │
        │  list_recent(limit)      newest first, optional outcome   │
        │  summary(id)             counts by outcome                │
        ├───────────────────────────────────────────────────────────┤
        │  Table: courier_delivery_attempts                         │
        └───────────────────────────────────────────────────────────┘

Example:
    >>> ledger = AuditLedger(conn)
    >>> ledger.record(result.attempts)
    >>> [a.outcome for a in ledger.list_for_alert("alert-1")]
"""

import sqlite3
from collections.abc import Iterable
from typing import Any

from courier.core.errors import AuditWriteError
from courier.core.logging import get_logger
from courier.core.timestamps import from_iso8601
from courier.framework.alerts.protocol import DestinationType, OutcomeStatus

from .models import DeliveryAttempt

logger = get_logger(__name__)

_COLUMNS = """
    alert_id, destination_id, destination_type, attempted_at,
    outcome, status_code, message, dispatch_cycle
"""


class AuditLedger:
    """Stores DeliveryAttempt records in ``courier_delivery_attempts``."""

    def __init__(self, conn):
        """Initialize with a database connection.

        Args:
            conn: sqlite3.Connection with the courier schema created
        """
        self._conn = conn

    def record(self, attempts: Iterable[DeliveryAttempt]) -> int:
        """Append attempts in a single transaction.

        Args:
            attempts: Attempts from one dispatch cycle

        Returns:
            Number of records written

        Raises:
            AuditWriteError: If the write fails. Nothing is written in that case.
        """
        rows = [
            (
                a.alert_id,
                a.destination_id,
                a.destination_type.value if a.destination_type else None,
                a.attempted_at.isoformat(),
                a.outcome.value,
                a.status_code,
                a.message,
                a.dispatch_cycle,
            )
            for a in attempts
        ]
        if not rows:
            return 0

        try:
            with self._conn:
                self._conn.executemany(
                    f"INSERT INTO courier_delivery_attempts ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as e:
            logger.error("audit.write_failed", records=len(rows), error=str(e))
            raise AuditWriteError(f"Failed to write {len(rows)} delivery attempt(s): {e}", cause=e) from e
        return len(rows)

    def list_for_alert(self, alert_id: str) -> list[DeliveryAttempt]:
        """All attempts for one alert, oldest first."""
        cursor = self._conn.cursor()
        cursor.execute(
            f"""
            SELECT {_COLUMNS}
            FROM courier_delivery_attempts
            WHERE alert_id = ?
            ORDER BY attempted_at ASC, id ASC
            """,
            (alert_id,),
        )
        return [self._row_to_attempt(row) for row in cursor.fetchall()]

    def list_recent(self, limit: int = 100, outcome: OutcomeStatus | None = None) -> list[DeliveryAttempt]:
        """Most recent attempts, optionally filtered by outcome."""
        query = f"SELECT {_COLUMNS} FROM courier_delivery_attempts"
        params: list[Any] = []
        if outcome is not None:
            query += " WHERE outcome = ?"
            params.append(outcome.value)
        query += " ORDER BY attempted_at DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor = self._conn.cursor()
        cursor.execute(query, params)
        return [self._row_to_attempt(row) for row in cursor.fetchall()]

    def summary(self, alert_id: str) -> dict[str, int]:
        """Attempt counts by outcome for one alert."""
        cursor = self._conn.cursor()
        cursor.execute(
            """
            SELECT outcome, COUNT(*)
            FROM courier_delivery_attempts
            WHERE alert_id = ?
            GROUP BY outcome
            """,
            (alert_id,),
        )
        counts = {status.value: 0 for status in OutcomeStatus}
        for outcome, count in cursor.fetchall():
            counts[outcome] = count
        return counts

    def _row_to_attempt(self, row: tuple) -> DeliveryAttempt:
        """Convert a database row to a DeliveryAttempt."""
        return DeliveryAttempt(
            alert_id=row[0],
            destination_id=row[1],
            destination_type=DestinationType(row[2]) if row[2] else None,
            attempted_at=from_iso8601(row[3]),
            outcome=OutcomeStatus(row[4]),
            status_code=row[5],
            message=row[6],
            dispatch_cycle=row[7] or 1,
        )


__all__ = ["AuditLedger"]
