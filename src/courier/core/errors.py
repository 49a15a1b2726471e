"""
Structured error types for the courier delivery engine.

Every error raised inside courier carries the metadata the retry
controller and the operators need: a category, an explicit retryable
flag, an optional retry-after hint and structured context (alert id,
destination id, HTTP status). Senders raise these at the transport
edge and the adapter boundary folds them into a three-way
:class:`~courier.framework.alerts.protocol.DeliveryOutcome`.

Manifesto:
    - **Typed hierarchy:** one subclass per failure domain
    - **Explicit retry semantics:** each error knows if it is retryable
    - **Rich context:** errors carry the alert/destination they concern
    - **Error chaining:** the original exception is kept as ``cause``

Architecture:
    ::

        CourierError (category, retryable, retry_after, context, cause)
        ├── TransientError            retryable=True
        │   ├── NetworkError
        │   └── TimeoutError
        ├── DeliveryError
        │   └── PermanentDeliveryError  (HTTP 4xx, malformed payload)
        ├── ConfigError
        │   ├── MissingConfigError
        │   └── UnsupportedDestinationError
        ├── DirectoryUnavailableError   (store down past staleness ceiling)
        ├── PayloadError                (unreadable queue message)
        └── StorageError
            ├── AuditWriteError
            └── QueueError

Guardrails:
    ❌ DON'T: raise bare Exception from a sender
    ✅ DO: raise TransientError for anything worth retrying

    ❌ DON'T: swallow AuditWriteError; the batch item must fail
    ✅ DO: let it propagate so the queue redelivers the message

Tags:
    error-handling, exception-hierarchy, retry-logic, courier-core

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
Categories group errors by how the engine reacts to them:
    NETWORK errors drive backoff, DELIVERY and CONFIG errors are terminal
    for one destination, DIRECTORY and STORAGE errors fail the batch item.
    """

    NETWORK = "NETWORK"
    DELIVERY = "DELIVERY"
    CONFIG = "CONFIG"
    DIRECTORY = "DIRECTORY"
    PAYLOAD = "PAYLOAD"
    STORAGE = "STORAGE"
    QUEUE = "QUEUE"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured context attached to a :class:`CourierError`.

    Known fields cover the delivery domain; anything else lands in
    ``metadata`` so ``with_context()`` never loses information.
    """

    alert_id: str | None = None
    destination_id: str | None = None
    destination_type: str | None = None
    status_code: int | None = None
    url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, dropping empty fields."""
        result: dict[str, Any] = {}
        if self.alert_id:
            result["alert_id"] = self.alert_id
        if self.destination_id:
            result["destination_id"] = self.destination_id
        if self.destination_type:
            result["destination_type"] = self.destination_type
        if self.status_code is not None:
            result["status_code"] = self.status_code
        if self.url:
            result["url"] = self.url
        if self.metadata:
            result["metadata"] = self.metadata
        return result


class CourierError(Exception):
    """
    Base exception for all courier errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may override both per instance.

    Examples:
        >>> error = CourierError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False

        >>> error = TransientError("503 from hooks.slack.com", retry_after=30)
        >>> error.retryable, error.retry_after
        (True, 30)

        >>> error = PermanentDeliveryError("401 Unauthorized").with_context(
        ...     destination_id="out-1", status_code=401
        ... )
        >>> error.context.status_code
        401
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CourierError:
        """
        Attach delivery context and return self, so it chains onto ``raise``.

        Usage:
            raise PermanentDeliveryError("404").with_context(
                destination_id="out-1",
                status_code=404,
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Flatten into a dict suitable for structlog fields and audit rows."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Retryable)
# =============================================================================


class TransientError(CourierError):
    """
    Temporary error that may succeed on retry.

    Timeouts, connection resets, HTTP 5xx and rate limiting. The retry
    controller keeps a destination pending while its failures are
    transient and the retry window is open.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NetworkError(TransientError):
    """Connection refused, reset or DNS failure."""

    default_category = ErrorCategory.NETWORK


class TimeoutError(TransientError):
    """Send timed out before the destination acknowledged."""

    default_category = ErrorCategory.NETWORK


# =============================================================================
# DELIVERY ERRORS
# =============================================================================


class DeliveryError(CourierError):
    """Destination rejected the notification."""

    default_category = ErrorCategory.DELIVERY
    default_retryable = False


class PermanentDeliveryError(DeliveryError):
    """Rejection that will not change on retry (bad credentials, 404, 400)."""

    pass


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(CourierError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """A destination lacks a config key its sender needs."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class UnsupportedDestinationError(ConfigError):
    """No sender is registered for a destination type."""

    def __init__(self, destination_type: str):
        self.destination_type = destination_type
        super().__init__(f"No sender registered for destination type: {destination_type}")
        self.context.destination_type = destination_type


# =============================================================================
# DIRECTORY / PAYLOAD ERRORS
# =============================================================================


class DirectoryUnavailableError(CourierError):
    """
    Destination configuration could not be loaded within the staleness ceiling.

    Fatal for the dispatch that hit it; the queue redelivers the message.
    """

    default_category = ErrorCategory.DIRECTORY
    default_retryable = True


class PayloadError(CourierError):
    """Queue message body is not a readable delivery task."""

    default_category = ErrorCategory.PAYLOAD
    default_retryable = False


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(CourierError):
    """Storage-related error (audit ledger, dead letters, queue tables)."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class AuditWriteError(StorageError):
    """Delivery attempts could not be written to the audit ledger."""

    pass


class QueueError(StorageError):
    """Inbound queue operation failed."""

    default_category = ErrorCategory.QUEUE


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """True for CourierErrors flagged retryable and for OS-level connection failures."""
    if isinstance(error, CourierError):
        return error.retryable
    # asyncio.TimeoutError is the builtin TimeoutError on 3.11+, itself an OSError
    return isinstance(error, (ConnectionError, OSError))


def get_retry_after(error: BaseException) -> int | None:
    """Retry-after hint in seconds carried by a CourierError, else None."""
    if isinstance(error, CourierError):
        return error.retry_after
    return None


def categorize_error(error: BaseException) -> ErrorCategory:
    """Map any exception onto an ErrorCategory for logging."""
    if isinstance(error, CourierError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    if isinstance(error, (KeyError, AttributeError)):
        return ErrorCategory.CONFIG
    if isinstance(error, ValueError):
        return ErrorCategory.PAYLOAD
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CourierError",
    # Transient
    "TransientError",
    "NetworkError",
    "TimeoutError",
    # Delivery
    "DeliveryError",
    "PermanentDeliveryError",
    # Config
    "ConfigError",
    "MissingConfigError",
    "UnsupportedDestinationError",
    # Directory / payload
    "DirectoryUnavailableError",
    "PayloadError",
    # Storage
    "StorageError",
    "AuditWriteError",
    "QueueError",
    # Utilities
    "is_retryable",
    "get_retry_after",
    "categorize_error",
]
