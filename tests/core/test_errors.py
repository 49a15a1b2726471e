"""Tests for the courier error hierarchy."""

import pytest

from courier.core.errors import (
    AuditWriteError,
    ConfigError,
    CourierError,
    DirectoryUnavailableError,
    ErrorCategory,
    MissingConfigError,
    NetworkError,
    PayloadError,
    PermanentDeliveryError,
    QueueError,
    StorageError,
    TimeoutError,
    TransientError,
    UnsupportedDestinationError,
    categorize_error,
    get_retry_after,
    is_retryable,
)


class TestCourierError:
    def test_defaults(self):
        error = CourierError("boom")
        assert error.message == "boom"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.retry_after is None

    def test_overrides(self):
        error = CourierError("boom", category=ErrorCategory.NETWORK, retryable=True, retry_after=5)
        assert error.category == ErrorCategory.NETWORK
        assert error.retryable is True
        assert error.retry_after == 5

    def test_cause_is_chained(self):
        cause = ValueError("inner")
        error = CourierError("outer", cause=cause)
        assert error.cause is cause
        assert error.__cause__ is cause

    def test_with_context_known_and_extra_fields(self):
        error = PermanentDeliveryError("404").with_context(
            destination_id="out-1", status_code=404, region="us-east-1"
        )
        assert error.context.destination_id == "out-1"
        assert error.context.status_code == 404
        assert error.context.metadata == {"region": "us-east-1"}

    def test_to_dict(self):
        error = TransientError("busy", retry_after=30).with_context(alert_id="a-1")
        data = error.to_dict()
        assert data["error_type"] == "TransientError"
        assert data["retryable"] is True
        assert data["retry_after"] == 30
        assert data["context"] == {"alert_id": "a-1"}


class TestHierarchy:
    @pytest.mark.parametrize("cls", [TransientError, NetworkError, TimeoutError])
    def test_transient_errors_are_retryable(self, cls):
        assert cls("x").retryable is True

    @pytest.mark.parametrize("cls", [PermanentDeliveryError, ConfigError, PayloadError, StorageError])
    def test_terminal_errors_are_not_retryable(self, cls):
        assert cls("x").retryable is False

    def test_missing_config_records_key(self):
        error = MissingConfigError("webhook_url")
        assert error.key == "webhook_url"
        assert "webhook_url" in error.message
        assert isinstance(error, ConfigError)

    def test_unsupported_destination(self):
        error = UnsupportedDestinationError("carrier-pigeon")
        assert "carrier-pigeon" in error.message
        assert error.context.destination_type == "carrier-pigeon"

    def test_directory_unavailable_category(self):
        assert DirectoryUnavailableError("down").category == ErrorCategory.DIRECTORY

    def test_storage_subclasses(self):
        assert isinstance(AuditWriteError("x"), StorageError)
        assert QueueError("x").category == ErrorCategory.QUEUE


class TestHelpers:
    def test_is_retryable(self):
        assert is_retryable(NetworkError("reset"))
        assert not is_retryable(PermanentDeliveryError("400"))
        assert is_retryable(ConnectionResetError())
        assert not is_retryable(KeyError("x"))

    def test_get_retry_after(self):
        assert get_retry_after(TransientError("busy", retry_after=12)) == 12
        assert get_retry_after(RuntimeError()) is None

    def test_categorize_error(self):
        assert categorize_error(PayloadError("x")) == ErrorCategory.PAYLOAD
        assert categorize_error(ConnectionRefusedError()) == ErrorCategory.NETWORK
        assert categorize_error(KeyError("k")) == ErrorCategory.CONFIG
        assert categorize_error(ValueError("v")) == ErrorCategory.PAYLOAD
        assert categorize_error(RuntimeError()) == ErrorCategory.UNKNOWN
