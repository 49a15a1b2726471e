"""
Sender base classes.

Provides the adapter boundary every destination sender goes through:
- Rendering the canonical notification payload
- Required-config checks
- Normalising every exception into a three-way DeliveryOutcome
- HTTP status classification (HttpSender)
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from courier.core.errors import (
    CourierError,
    MissingConfigError,
    NetworkError,
    TimeoutError,
    categorize_error,
    get_retry_after,
    is_retryable,
)
from courier.core.logging import get_logger
from courier.framework.alerts.payload import (
    DEFAULT_ALERT_URL_PREFIX,
    DEFAULT_POLICY_URL_PREFIX,
    NotificationPayload,
    render_payload,
)
from courier.framework.alerts.protocol import (
    Alert,
    DeliveryOutcome,
    Destination,
    DestinationType,
)

logger = get_logger(__name__)

DEFAULT_SEND_TIMEOUT = 10.0


class BaseSender(ABC):
    """
    Base class for destination senders.

    Subclasses implement :meth:`_deliver`, which may raise freely;
    :meth:`send` turns whatever happens into a DeliveryOutcome so the
    dispatcher never sees transport-specific exceptions.
    """

    destination_type: DestinationType

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_SEND_TIMEOUT,
        alert_url_prefix: str = DEFAULT_ALERT_URL_PREFIX,
        policy_url_prefix: str = DEFAULT_POLICY_URL_PREFIX,
    ):
        self._timeout = timeout
        self._alert_url_prefix = alert_url_prefix
        self._policy_url_prefix = policy_url_prefix

    @property
    def timeout(self) -> float:
        return self._timeout

    def render(self, alert: Alert) -> NotificationPayload:
        return render_payload(
            alert,
            alert_url_prefix=self._alert_url_prefix,
            policy_url_prefix=self._policy_url_prefix,
        )

    @staticmethod
    def require(destination: Destination, *keys: str) -> list[Any]:
        """Return the config values for ``keys``, raising MissingConfigError if any is blank."""
        values = []
        for key in keys:
            value = destination.config.get(key)
            if value in (None, ""):
                raise MissingConfigError(
                    key, f"{destination.destination_type.value} destination is missing '{key}'"
                ).with_context(destination_id=destination.destination_id)
            values.append(value)
        return values

    async def send(self, alert: Alert, destination: Destination) -> DeliveryOutcome:
        """Deliver the alert, classifying any failure."""
        try:
            return await self._deliver(alert, destination)
        except httpx.TimeoutException as e:
            error: BaseException = TimeoutError(f"timeout: {e!r}", cause=e)
        except httpx.TransportError as e:
            error = NetworkError(f"network error: {e!r}", cause=e)
        except Exception as e:
            error = e
        return self._failure_outcome(error, destination)

    def _failure_outcome(self, error: BaseException, destination: Destination) -> DeliveryOutcome:
        if isinstance(error, CourierError):
            reason, status_code = error.message, error.context.status_code
        else:
            reason, status_code = f"network error: {error!r}", None

        # builtin TimeoutError (asyncio.wait_for) is an OSError, so it lands here too
        if is_retryable(error):
            return DeliveryOutcome.retry(reason, status_code=status_code, retry_after=get_retry_after(error))
        if isinstance(error, CourierError):
            return DeliveryOutcome.permanent(reason, status_code=status_code)

        logger.error(
            "sender.unexpected_error",
            destination_id=destination.destination_id,
            destination_type=self.destination_type.value,
            category=categorize_error(error).value,
            exc_info=error,
        )
        return DeliveryOutcome.permanent(f"unexpected error: {error!r}")

    @abstractmethod
    async def _deliver(self, alert: Alert, destination: Destination) -> DeliveryOutcome:
        """Perform the delivery. May raise."""
        ...


@dataclass
class HttpRequest:
    """Outbound HTTP call built by an HttpSender."""

    url: str
    json: Any
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    auth: tuple[str, str] | None = None


def parse_retry_after(value: str | None) -> int | None:
    """Parse a ``Retry-After`` header given in seconds."""
    if not value:
        return None
    try:
        return max(0, int(float(value)))
    except ValueError:
        return None


def classify_response(response: httpx.Response) -> DeliveryOutcome:
    """
    Map an HTTP response onto the three-way outcome.

    2xx → success; 408, 429 and 5xx → retryable; everything else → permanent.
    """
    status = response.status_code
    if 200 <= status < 300:
        return DeliveryOutcome.success(status_code=status)

    reason = f"HTTP {status}: {_response_excerpt(response)}"
    if status == 429:
        return DeliveryOutcome.retry(
            reason,
            status_code=status,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    if status == 408 or status >= 500:
        return DeliveryOutcome.retry(reason, status_code=status)
    return DeliveryOutcome.permanent(reason, status_code=status)


def _response_excerpt(response: httpx.Response, limit: int = 200) -> str:
    try:
        text = response.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return response.reason_phrase
    return text[:limit] if text else response.reason_phrase


class HttpSender(BaseSender):
    """
    Sender for HTTP/JSON destinations.

    Subclasses build one :class:`HttpRequest`; posting, timeouts and status
    classification are shared. Pass ``client`` to reuse a connection pool
    (or a ``httpx.MockTransport`` in tests).
    """

    def __init__(self, *, client: httpx.AsyncClient | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self._client = client

    @abstractmethod
    def build_request(self, alert: Alert, destination: Destination) -> HttpRequest:
        """Build the HTTP request for this destination."""
        ...

    async def _deliver(self, alert: Alert, destination: Destination) -> DeliveryOutcome:
        request = self.build_request(alert, destination)
        headers = {"Content-Type": "application/json"}
        headers.update(request.headers)
        content = json.dumps(request.json, default=str).encode("utf-8")

        if self._client is not None:
            response = await self._client.request(
                request.method,
                request.url,
                content=content,
                headers=headers,
                auth=request.auth,
                timeout=self._timeout,
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(
                    request.method,
                    request.url,
                    content=content,
                    headers=headers,
                    auth=request.auth,
                )

        outcome = classify_response(response)
        logger.debug(
            "sender.http_response",
            destination_id=destination.destination_id,
            destination_type=self.destination_type.value,
            status_code=response.status_code,
            outcome=outcome.status.value,
        )
        return outcome


__all__ = [
    "BaseSender",
    "HttpSender",
    "HttpRequest",
    "classify_response",
    "parse_retry_after",
]
