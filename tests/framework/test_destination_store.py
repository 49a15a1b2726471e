"""Tests for the destination stores."""

from datetime import UTC, datetime

import pytest

from courier.core.errors import StorageError
from courier.framework.alerts.protocol import AlertSeverity, DestinationType
from courier.framework.destinations import (
    DestinationDirectory,
    InMemoryDestinationStore,
    SqliteDestinationStore,
)
from tests._support.delivery import make_destination, save_destination


class TestSqliteDestinationStore:
    @pytest.mark.asyncio
    async def test_list_orders_by_display_name(self, conn):
        save_destination(conn, make_destination("out-b", display_name="Bravo"))
        save_destination(conn, make_destination("out-a", display_name="Alpha"))

        destinations = await SqliteDestinationStore(conn).list_destinations()
        assert [d.destination_id for d in destinations] == ["out-a", "out-b"]

    @pytest.mark.asyncio
    async def test_round_trips_fields(self, conn):
        modified = datetime(2026, 2, 1, 9, 30, tzinfo=UTC)
        original = make_destination(
            "out-pd",
            DestinationType.PAGERDUTY,
            config={"integration_key": "rk"},
            default_for_severities=frozenset({AlertSeverity.HIGH, AlertSeverity.CRITICAL}),
            verified=False,
            last_modified=modified,
        )
        save_destination(conn, original)

        loaded = await SqliteDestinationStore(conn).get_destination("out-pd")
        assert loaded == original
        assert loaded.is_default_for(AlertSeverity.CRITICAL)
        assert not loaded.is_default_for(AlertSeverity.LOW)

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, conn):
        assert await SqliteDestinationStore(conn).get_destination("nope") is None

    @pytest.mark.asyncio
    async def test_database_error_raises_storage_error(self, conn):
        conn.execute("DROP TABLE courier_destinations")
        with pytest.raises(StorageError):
            await SqliteDestinationStore(conn).list_destinations()


class TestMalformedRows:
    @pytest.fixture()
    def conn_with_bad_rows(self, conn):
        save_destination(conn, make_destination("out-good"))
        _insert_raw(conn, "out-asana", destination_type="asana")
        _insert_raw(conn, "out-sev", default_for_severities='["urgent"]')
        _insert_raw(conn, "out-json", config="{not json")
        return conn

    @pytest.mark.asyncio
    async def test_list_skips_undecodable_rows(self, conn_with_bad_rows):
        destinations = await SqliteDestinationStore(conn_with_bad_rows).list_destinations()
        assert [d.destination_id for d in destinations] == ["out-good"]

    @pytest.mark.asyncio
    async def test_get_undecodable_row_returns_none(self, conn_with_bad_rows):
        assert await SqliteDestinationStore(conn_with_bad_rows).get_destination("out-asana") is None

    @pytest.mark.asyncio
    async def test_directory_resolves_bad_rows_as_unknown(self, conn_with_bad_rows):
        directory = DestinationDirectory(SqliteDestinationStore(conn_with_bad_rows))

        resolution = await directory.resolve(["out-good", "out-asana", "out-sev"])

        assert resolution.resolved_ids == ["out-good"]
        assert resolution.unknown == ["out-asana", "out-sev"]
        assert not resolution.degraded


class TestInMemoryDestinationStore:
    @pytest.mark.asyncio
    async def test_put_and_remove(self):
        store = InMemoryDestinationStore([make_destination("out-1")])
        store.put(make_destination("out-2"))
        store.remove("out-1")
        store.remove("missing")

        assert [d.destination_id for d in await store.list_destinations()] == ["out-2"]
        assert await store.get_destination("out-1") is None


def _insert_raw(conn, destination_id, *, destination_type="webhook", config="{}", default_for_severities="[]"):
    conn.execute(
        """
        INSERT INTO courier_destinations (
            destination_id, display_name, destination_type, config,
            default_for_severities, verified, last_modified
        ) VALUES (?, ?, ?, ?, ?, 1, NULL)
        """,
        (destination_id, destination_id, destination_type, config, default_for_severities),
    )
    conn.commit()
