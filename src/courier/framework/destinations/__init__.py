"""
Destination configuration: the read-only store interface and the
bounded-staleness directory the delivery engine resolves ids through.
"""

from courier.framework.destinations.directory import (
    DestinationDirectory,
    DestinationSnapshot,
    Resolution,
)
from courier.framework.destinations.store import (
    DestinationStore,
    InMemoryDestinationStore,
    SqliteDestinationStore,
)

__all__ = [
    "DestinationDirectory",
    "DestinationSnapshot",
    "DestinationStore",
    "InMemoryDestinationStore",
    "Resolution",
    "SqliteDestinationStore",
]
