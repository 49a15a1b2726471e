"""
Delivery protocol and data classes.

Defines the alert and destination records the engine works with, the
three-way :class:`DeliveryOutcome` every sender returns, and the
:class:`Sender` protocol. Concrete senders live in ``channels/``.

Design Principles:
- Protocol over Inheritance: Sender defines the interface
- Closed variants: DestinationType is the lookup key for the sender registry
- Separation of concerns: protocol.py has contracts, channels/ has implementations
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from courier.core.timestamps import from_iso8601, utc_now


class AlertSeverity(str, Enum):
    """Alert severity levels, ordered INFO < LOW < MEDIUM < HIGH < CRITICAL."""

    INFO = "INFO"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    def _order(self) -> list[AlertSeverity]:
        return [
            AlertSeverity.INFO,
            AlertSeverity.LOW,
            AlertSeverity.MEDIUM,
            AlertSeverity.HIGH,
            AlertSeverity.CRITICAL,
        ]

    def __lt__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) < self._order().index(other)

    def __le__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) <= self._order().index(other)

    def __ge__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) >= self._order().index(other)

    def __gt__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) > self._order().index(other)


class AlertSourceType(str, Enum):
    """What produced the alert: a log-analysis rule or a cloud-security policy."""

    RULE = "RULE"
    POLICY = "POLICY"


class DestinationFamily(str, Enum):
    """Protocol families a destination type belongs to."""

    CHAT_WEBHOOK = "chat-webhook"
    INCIDENT_MANAGEMENT = "incident-management"
    TICKETING = "ticketing"
    GENERIC_WEBHOOK = "generic-webhook"
    GENERIC_QUEUE = "generic-queue"
    GENERIC_TOPIC = "generic-topic"


class DestinationType(str, Enum):
    """Destination protocol types. One sender is registered per member."""

    SLACK = "slack"
    MSTEAMS = "msteams"
    PAGERDUTY = "pagerduty"
    OPSGENIE = "opsgenie"
    JIRA = "jira"
    GITHUB = "github"
    WEBHOOK = "webhook"
    QUEUE = "queue"
    TOPIC = "topic"

    @property
    def family(self) -> DestinationFamily:
        return _FAMILIES[self]


_FAMILIES = {
    DestinationType.SLACK: DestinationFamily.CHAT_WEBHOOK,
    DestinationType.MSTEAMS: DestinationFamily.CHAT_WEBHOOK,
    DestinationType.PAGERDUTY: DestinationFamily.INCIDENT_MANAGEMENT,
    DestinationType.OPSGENIE: DestinationFamily.INCIDENT_MANAGEMENT,
    DestinationType.JIRA: DestinationFamily.TICKETING,
    DestinationType.GITHUB: DestinationFamily.TICKETING,
    DestinationType.WEBHOOK: DestinationFamily.GENERIC_WEBHOOK,
    DestinationType.QUEUE: DestinationFamily.GENERIC_QUEUE,
    DestinationType.TOPIC: DestinationFamily.GENERIC_TOPIC,
}


@dataclass(frozen=True)
class Alert:
    """
    A triggered alert to be delivered to its destinations.

    Immutable once created. ``destination_ids`` holds explicit overrides;
    when empty the destinations configured as defaults for the alert's
    severity are used.
    """

    # Required
    alert_id: str
    severity: AlertSeverity
    source_id: str  # Rule or policy id

    # Rendering
    title: str | None = None
    description: str | None = None
    runbook: str | None = None
    source_name: str | None = None
    source_type: AlertSourceType = AlertSourceType.RULE
    tags: tuple[str, ...] = ()
    context: dict[str, Any] = field(default_factory=dict)

    # Routing
    destination_ids: tuple[str, ...] = ()

    created_at: datetime = field(default_factory=utc_now)
    version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "alert_id": self.alert_id,
            "severity": self.severity.value,
            "source_id": self.source_id,
            "source_type": self.source_type.value,
            "created_at": self.created_at.isoformat(),
            "tags": list(self.tags),
            "destination_ids": list(self.destination_ids),
        }
        for key in ("title", "description", "runbook", "source_name", "version"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.context:
            result["context"] = self.context
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Alert:
        """Build an alert from its ``to_dict()`` form."""
        created_at = from_iso8601(data.get("created_at"))
        return cls(
            alert_id=data["alert_id"],
            severity=AlertSeverity(data["severity"]),
            source_id=data["source_id"],
            title=data.get("title"),
            description=data.get("description"),
            runbook=data.get("runbook"),
            source_name=data.get("source_name"),
            source_type=AlertSourceType(data.get("source_type", AlertSourceType.RULE.value)),
            tags=tuple(data.get("tags") or ()),
            context=dict(data.get("context") or {}),
            destination_ids=tuple(data.get("destination_ids") or ()),
            created_at=created_at or utc_now(),
            version=data.get("version"),
        )


@dataclass(frozen=True)
class Destination:
    """
    A configured delivery target.

    Owned by the configuration store; the engine only holds cached copies.
    ``config`` is the type-specific mapping (URL, keys, project), already
    decrypted by the store.
    """

    destination_id: str
    display_name: str
    destination_type: DestinationType
    config: dict[str, Any] = field(default_factory=dict)
    default_for_severities: frozenset[AlertSeverity] = frozenset()
    verified: bool = True
    last_modified: datetime | None = None

    def is_default_for(self, severity: AlertSeverity) -> bool:
        return severity in self.default_for_severities

    def to_dict(self) -> dict[str, Any]:
        return {
            "destination_id": self.destination_id,
            "display_name": self.display_name,
            "destination_type": self.destination_type.value,
            "config": self.config,
            "default_for_severities": sorted(s.value for s in self.default_for_severities),
            "verified": self.verified,
            "last_modified": self.last_modified.isoformat() if self.last_modified else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Destination:
        return cls(
            destination_id=data["destination_id"],
            display_name=data.get("display_name") or data["destination_id"],
            destination_type=DestinationType(data["destination_type"]),
            config=dict(data.get("config") or {}),
            default_for_severities=frozenset(
                AlertSeverity(s) for s in data.get("default_for_severities") or ()
            ),
            verified=bool(data.get("verified", True)),
            last_modified=from_iso8601(data.get("last_modified")),
        )


class OutcomeStatus(str, Enum):
    """Three-way classification of one send."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one send to one destination."""

    status: OutcomeStatus
    reason: str | None = None
    status_code: int | None = None
    retry_after: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @property
    def retryable(self) -> bool:
        return self.status is OutcomeStatus.RETRYABLE

    @classmethod
    def success(cls, status_code: int | None = None, reason: str | None = None) -> DeliveryOutcome:
        return cls(OutcomeStatus.SUCCESS, reason=reason, status_code=status_code)

    @classmethod
    def retry(
        cls,
        reason: str,
        *,
        status_code: int | None = None,
        retry_after: int | None = None,
    ) -> DeliveryOutcome:
        return cls(OutcomeStatus.RETRYABLE, reason=reason, status_code=status_code, retry_after=retry_after)

    @classmethod
    def permanent(cls, reason: str, *, status_code: int | None = None) -> DeliveryOutcome:
        return cls(OutcomeStatus.PERMANENT, reason=reason, status_code=status_code)


@runtime_checkable
class Sender(Protocol):
    """
    Protocol for destination senders.

    Implementations must provide:
    - destination_type: the DestinationType they handle
    - send(): deliver an alert, never raising; every failure is an outcome
    """

    @property
    def destination_type(self) -> DestinationType:
        """Destination type handled by this sender."""
        ...

    async def send(self, alert: Alert, destination: Destination) -> DeliveryOutcome:
        """Deliver the alert to the destination."""
        ...


__all__ = [
    "AlertSeverity",
    "AlertSourceType",
    "DestinationFamily",
    "DestinationType",
    "OutcomeStatus",
    "Alert",
    "Destination",
    "DeliveryOutcome",
    "Sender",
]
