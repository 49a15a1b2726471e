"""
Deterministic hashing for delivery idempotency.

The engine may re-send an alert to a destination after a timeout whose
outcome is unknown. Destinations that support idempotency keys (PagerDuty
``dedup_key``, Opsgenie ``alias``, webhook ``Idempotency-Key``) receive a
key derived from the alert and destination ids, so the second send
collapses into the first instead of opening a second incident.

Examples:
    >>> compute_hash("alert-1", "out-1") == compute_hash("alert-1", "out-1")
    True
    >>> compute_hash("a", "b") != compute_hash("b", "a")
    True

Tags:
    hashing, idempotency, deduplication, courier-core
"""

import hashlib
from typing import Any


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute deterministic hash from values.

    Joins the string form of every value with ``|`` and returns the first
    ``length`` hex characters of its SHA-256 digest.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def idempotency_key(alert_id: str, destination_id: str) -> str:
    """Idempotency key for one alert–destination pair."""
    return compute_hash("courier", alert_id, destination_id)


__all__ = ["compute_hash", "idempotency_key"]
