"""Destination configuration store interface.

The configuration service owns destination records (create, update,
delete, credential encryption). The delivery engine only reads them,
through the two calls below.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Protocol, runtime_checkable

from courier.core.errors import StorageError
from courier.core.logging import get_logger
from courier.core.timestamps import from_iso8601
from courier.framework.alerts.protocol import AlertSeverity, Destination, DestinationType

logger = get_logger(__name__)


@runtime_checkable
class DestinationStore(Protocol):
    """Read-only access to configured destinations."""

    async def list_destinations(self) -> list[Destination]:
        """Return every configured destination."""
        ...

    async def get_destination(self, destination_id: str) -> Destination | None:
        """Return one destination, or None if it does not exist."""
        ...


class InMemoryDestinationStore:
    """Destination store backed by a dict. For tests and embedded use."""

    def __init__(self, destinations: list[Destination] | None = None) -> None:
        self._destinations: dict[str, Destination] = {}
        for destination in destinations or []:
            self.put(destination)

    def put(self, destination: Destination) -> None:
        self._destinations[destination.destination_id] = destination

    def remove(self, destination_id: str) -> None:
        self._destinations.pop(destination_id, None)

    async def list_destinations(self) -> list[Destination]:
        return list(self._destinations.values())

    async def get_destination(self, destination_id: str) -> Destination | None:
        return self._destinations.get(destination_id)


class SqliteDestinationStore:
    """Reads destinations from the ``courier_destinations`` table."""

    _COLUMNS = """
        destination_id, display_name, destination_type, config,
        default_for_severities, verified, last_modified
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    async def list_destinations(self) -> list[Destination]:
        try:
            cursor = self._conn.execute(
                f"SELECT {self._COLUMNS} FROM courier_destinations ORDER BY display_name"
            )
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list destinations: {e}", cause=e) from e
        destinations = []
        for row in rows:
            destination = self._decode(row)
            if destination is not None:
                destinations.append(destination)
        return destinations

    async def get_destination(self, destination_id: str) -> Destination | None:
        try:
            cursor = self._conn.execute(
                f"SELECT {self._COLUMNS} FROM courier_destinations WHERE destination_id = ?",
                (destination_id,),
            )
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read destination {destination_id}: {e}", cause=e) from e
        return self._decode(row) if row else None

    def _decode(self, row: tuple) -> Destination | None:
        """Decode one row; a malformed row is skipped so its id resolves as unknown."""
        try:
            return self._row_to_destination(row)
        except (ValueError, TypeError) as e:
            logger.warning("directory.bad_destination", destination_id=row[0], error=str(e))
            return None

    def _row_to_destination(self, row: tuple) -> Destination:
        return Destination(
            destination_id=row[0],
            display_name=row[1],
            destination_type=DestinationType(row[2]),
            config=json.loads(row[3]) if row[3] else {},
            default_for_severities=frozenset(AlertSeverity(s) for s in json.loads(row[4] or "[]")),
            verified=bool(row[5]),
            last_modified=from_iso8601(row[6]),
        )


__all__ = [
    "DestinationStore",
    "InMemoryDestinationStore",
    "SqliteDestinationStore",
]
