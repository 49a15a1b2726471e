"""
Alert delivery framework package.

Provides the alert/destination model, the uniform sender contract and the
registry that maps destination types to senders.
"""

from courier.framework.alerts.base import BaseSender, HttpSender
from courier.framework.alerts.payload import NotificationPayload, render_payload
from courier.framework.alerts.protocol import (
    Alert,
    AlertSeverity,
    AlertSourceType,
    DeliveryOutcome,
    Destination,
    DestinationFamily,
    DestinationType,
    OutcomeStatus,
    Sender,
)
from courier.framework.alerts.registry import SenderRegistry, default_sender_registry

__all__ = [
    # Enums
    "AlertSeverity",
    "AlertSourceType",
    "DestinationFamily",
    "DestinationType",
    "OutcomeStatus",
    # Data classes
    "Alert",
    "Destination",
    "DeliveryOutcome",
    "NotificationPayload",
    # Protocols / base classes
    "Sender",
    "BaseSender",
    "HttpSender",
    # Registry
    "SenderRegistry",
    "default_sender_registry",
    # Functions
    "render_payload",
]
