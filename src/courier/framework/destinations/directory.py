"""Destination Directory — bounded-staleness cache of destination configuration.

WHY
───
Every dispatch needs the configuration of the alert's destinations.
Destination volume is small and reads are latency-insensitive, so the
directory keeps the *whole* configuration in memory as one immutable
snapshot and reloads it from the store no more often than the refresh
interval. Configuration changes therefore take effect within one
interval; there is no push invalidation.

ARCHITECTURE
────────────
::

    DestinationDirectory(store)
      ├── .resolve(ids)          ─ Resolution(destinations, unknown, degraded)
      ├── .defaults_for(sev)     ─ ids configured as severity defaults
      └── .invalidate()          ─ drop the snapshot

    DestinationSnapshot (frozen)  ─ version, fetched_at, destinations

    refresh rules
      snapshot missing / older than refresh interval  → full reload
      unknown id and snapshot older than miss cooldown → full reload
      reload in progress                              → readers keep the old snapshot
      store failure                                   → serve old snapshot (degraded)
                                                         until it is older than the
                                                         staleness ceiling, then
                                                         DirectoryUnavailableError

Example::

    directory = DestinationDirectory(store, refresh_interval_seconds=300)
    resolution = await directory.resolve(["out-slack", "out-pd"])
    for destination in resolution.destinations:
        ...
    resolution.unknown   # ids the store does not know
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

from courier.core.errors import DirectoryUnavailableError
from courier.core.logging import get_logger
from courier.core.timestamps import utc_now
from courier.framework.alerts.protocol import AlertSeverity, Destination
from courier.framework.destinations.store import DestinationStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class DestinationSnapshot:
    """One consistent view of all destinations. Never mutated after creation."""

    version: int
    fetched_at: float  # directory clock (monotonic seconds)
    destinations: Mapping[str, Destination]
    loaded_at: datetime = field(default_factory=utc_now)

    def age(self, now: float) -> float:
        return now - self.fetched_at


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a set of destination ids."""

    destinations: list[Destination]
    unknown: list[str]
    degraded: bool = False
    snapshot_version: int = 0

    @property
    def resolved_ids(self) -> list[str]:
        return [d.destination_id for d in self.destinations]


class DestinationDirectory:
    """Read-through, whole-snapshot cache over a :class:`DestinationStore`."""

    def __init__(
        self,
        store: DestinationStore,
        *,
        refresh_interval_seconds: float = 300.0,
        staleness_ceiling_seconds: float = 900.0,
        miss_refresh_cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._refresh_interval = refresh_interval_seconds
        self._staleness_ceiling = staleness_ceiling_seconds
        self._miss_cooldown = miss_refresh_cooldown_seconds
        self._clock = clock
        self._snapshot: DestinationSnapshot | None = None
        self._lock = asyncio.Lock()
        self._last_failure_at: float | None = None
        self._degraded = False

    # ── Inspection ───────────────────────────────────────────────────

    @property
    def snapshot(self) -> DestinationSnapshot | None:
        return self._snapshot

    @property
    def degraded(self) -> bool:
        """True while serving a snapshot the store could not refresh."""
        return self._degraded

    def invalidate(self) -> None:
        """Drop the cached snapshot; the next read reloads from the store."""
        self._snapshot = None
        self._last_failure_at = None
        self._degraded = False

    # ── Reads ────────────────────────────────────────────────────────

    async def resolve(self, destination_ids: Iterable[str]) -> Resolution:
        """
        Resolve ids to destinations, in request order.

        Unknown ids are reported in ``Resolution.unknown`` and never fail
        the call. Raises DirectoryUnavailableError only when no snapshot
        within the staleness ceiling can be produced.
        """
        wanted = list(dict.fromkeys(destination_ids))
        snapshot = await self._current()

        missing = [i for i in wanted if i not in snapshot.destinations]
        if missing and self._miss_refresh_allowed(snapshot):
            logger.debug("directory.miss", unknown=missing, snapshot_version=snapshot.version)
            snapshot = await self._refresh(force=True)

        destinations = [snapshot.destinations[i] for i in wanted if i in snapshot.destinations]
        unknown = [i for i in wanted if i not in snapshot.destinations]
        return Resolution(
            destinations=destinations,
            unknown=unknown,
            degraded=self._degraded,
            snapshot_version=snapshot.version,
        )

    async def defaults_for(self, severity: AlertSeverity) -> list[str]:
        """Ids of destinations configured as defaults for ``severity``."""
        snapshot = await self._current()
        return [d.destination_id for d in snapshot.destinations.values() if d.is_default_for(severity)]

    # ── Refresh ──────────────────────────────────────────────────────

    def _expired(self, snapshot: DestinationSnapshot) -> bool:
        return snapshot.age(self._clock()) >= self._refresh_interval

    def _miss_refresh_allowed(self, snapshot: DestinationSnapshot) -> bool:
        if self._degraded:
            return False
        return snapshot.age(self._clock()) >= self._miss_cooldown

    async def _current(self) -> DestinationSnapshot:
        snapshot = self._snapshot
        if snapshot is not None and not self._expired(snapshot):
            return snapshot
        return await self._refresh()

    async def _refresh(self, *, force: bool = False) -> DestinationSnapshot:
        previous = self._snapshot

        # Single writer: while another task reloads, keep reading the old snapshot.
        if (
            self._lock.locked()
            and previous is not None
            and previous.age(self._clock()) <= self._staleness_ceiling
        ):
            return previous

        async with self._lock:
            current = self._snapshot
            if current is not None and current is not previous and not self._expired(current):
                return current
            if not force and current is not None and not self._expired(current):
                return current

            now = self._clock()
            if (
                current is not None
                and self._last_failure_at is not None
                and now - self._last_failure_at < self._refresh_interval
            ):
                return self._serve_stale(current)

            try:
                destinations = await self._store.list_destinations()
            except Exception as e:
                self._last_failure_at = now
                logger.warning(
                    "directory.refresh_failed",
                    error=str(e),
                    snapshot_version=current.version if current else None,
                    snapshot_age_seconds=current.age(now) if current else None,
                )
                if current is None:
                    raise DirectoryUnavailableError(
                        f"Destination store unavailable and no cached snapshot: {e}", cause=e
                    ) from e
                return self._serve_stale(current)

            snapshot = DestinationSnapshot(
                version=(current.version + 1) if current else 1,
                fetched_at=now,
                destinations=MappingProxyType({d.destination_id: d for d in destinations}),
            )
            self._snapshot = snapshot
            self._last_failure_at = None
            if self._degraded:
                logger.info("directory.recovered", snapshot_version=snapshot.version)
            self._degraded = False
            logger.info(
                "directory.refreshed",
                snapshot_version=snapshot.version,
                destinations=len(destinations),
                forced=force,
            )
            return snapshot

    def _serve_stale(self, snapshot: DestinationSnapshot) -> DestinationSnapshot:
        age = snapshot.age(self._clock())
        if age > self._staleness_ceiling:
            self._degraded = True
            raise DirectoryUnavailableError(
                f"Destination snapshot v{snapshot.version} is {age:.0f}s old, "
                f"past the {self._staleness_ceiling:.0f}s staleness ceiling"
            )
        if not self._degraded:
            logger.warning("directory.degraded", snapshot_version=snapshot.version, age_seconds=age)
        self._degraded = True
        return snapshot


__all__ = ["DestinationDirectory", "DestinationSnapshot", "Resolution"]
