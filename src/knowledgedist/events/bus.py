"""
Event bus used as the distribution notification sink.

Settlement and announcement events are emitted here with glob-style
subscription matching; delivering them to users is the subscribers' concern.
"""

from __future__ import annotations

import fnmatch
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


# Standard event types
EVENT_DISTRIBUTION_ANNOUNCED = "distribution.announced"
EVENT_DISTRIBUTION_CREDITED = "distribution.credited"
EVENT_TREASURY_CREDITED = "distribution.treasury_credited"
EVENT_DISTRIBUTION_SETTLED = "distribution.settled"
EVENT_DISTRIBUTION_SKIPPED = "distribution.skipped"
EVENT_DISTRIBUTION_FAILED = "distribution.failed"

ALL_EVENT_TYPES = [
    EVENT_DISTRIBUTION_ANNOUNCED,
    EVENT_DISTRIBUTION_CREDITED,
    EVENT_TREASURY_CREDITED,
    EVENT_DISTRIBUTION_SETTLED,
    EVENT_DISTRIBUTION_SKIPPED,
    EVENT_DISTRIBUTION_FAILED,
]


@dataclass
class Event:
    """An event emitted by the distribution engine.

    ``source`` is the domain id the event concerns.
    """

    event_type: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: f"evt-{time.monotonic_ns()}")


EventHandler = Callable[[Event], Any]


def credit_event(domain_id: str, recipient_id: str, amount: Decimal, distribution_id: str) -> Event:
    """Notification that *recipient_id* was credited *amount* points."""
    return Event(
        event_type=EVENT_DISTRIBUTION_CREDITED,
        source=domain_id,
        payload={
            "recipient_id": recipient_id,
            "amount": amount,
            "domain_id": domain_id,
            "distribution_id": distribution_id,
        },
    )


def treasury_event(domain_id: str, alliance_id: str, amount: Decimal, distribution_id: str) -> Event:
    return Event(
        event_type=EVENT_TREASURY_CREDITED,
        source=domain_id,
        payload={
            "alliance_id": alliance_id,
            "amount": amount,
            "domain_id": domain_id,
            "distribution_id": distribution_id,
        },
    )


def announcement_event(
    domain_id: str,
    recipient_id: str,
    distribution_id: str,
    estimated_max: Decimal,
    projected_percent: Decimal,
    requires_arrival: bool,
    entry_deadline: datetime,
) -> Event:
    """Pre-distribution notice of what *recipient_id* could receive at best."""
    return Event(
        event_type=EVENT_DISTRIBUTION_ANNOUNCED,
        source=domain_id,
        payload={
            "recipient_id": recipient_id,
            "domain_id": domain_id,
            "distribution_id": distribution_id,
            "estimated_max": estimated_max,
            "projected_percent": projected_percent,
            "requires_arrival": requires_arrival,
            "entry_deadline": entry_deadline.isoformat(),
        },
    )


def outcome_event(
    event_type: str,
    domain_id: str,
    distribution_id: Optional[str],
    **details: Any,
) -> Event:
    """Settled / skipped / failed notifications for a whole distribution."""
    return Event(
        event_type=event_type,
        source=domain_id,
        payload={"domain_id": domain_id, "distribution_id": distribution_id, **details},
    )


class EventBus(ABC):
    """Abstract base class for event bus implementations."""

    @abstractmethod
    def emit(self, event: Event) -> None:
        """Emit an event to all matching subscribers."""

    @abstractmethod
    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        """Subscribe a handler to events matching a glob-style pattern.

        Args:
            pattern: Glob-style pattern (e.g., ``distribution.*``, ``*``).
            handler: Callable invoked with the matching Event.
        """

    @abstractmethod
    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove a handler from all subscriptions."""


class InMemoryEventBus(EventBus):
    """Synchronous in-process event bus.

    A failing subscriber is logged and skipped; notification delivery must
    never undo or interrupt a settlement that has already been written.
    """

    def __init__(self) -> None:
        self._subscriptions: list[tuple[str, EventHandler]] = []

    def emit(self, event: Event) -> None:
        for pattern, handler in list(self._subscriptions):
            if not fnmatch.fnmatch(event.event_type, pattern):
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Notification handler failed for %s (domain=%s)",
                    event.event_type,
                    event.source,
                )

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        self._subscriptions.append((pattern, handler))

    def unsubscribe(self, handler: EventHandler) -> None:
        self._subscriptions = [
            (p, h) for p, h in self._subscriptions if h is not handler
        ]
