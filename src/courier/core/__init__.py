"""
Core primitives shared by every courier component: errors, logging,
settings, hashing, timestamps and the SQLite schema.
"""

from courier.core.errors import (
    AuditWriteError,
    ConfigError,
    CourierError,
    DirectoryUnavailableError,
    ErrorCategory,
    PermanentDeliveryError,
    TransientError,
)
from courier.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "AuditWriteError",
    "ConfigError",
    "CourierError",
    "DirectoryUnavailableError",
    "ErrorCategory",
    "PermanentDeliveryError",
    "TransientError",
    "LogContext",
    "configure_logging",
    "get_logger",
]
