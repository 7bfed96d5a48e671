"""Event bus for distribution notifications."""

from .bus import (
    ALL_EVENT_TYPES,
    EVENT_DISTRIBUTION_ANNOUNCED,
    EVENT_DISTRIBUTION_CREDITED,
    EVENT_DISTRIBUTION_FAILED,
    EVENT_DISTRIBUTION_SETTLED,
    EVENT_DISTRIBUTION_SKIPPED,
    EVENT_TREASURY_CREDITED,
    Event,
    EventBus,
    EventHandler,
    InMemoryEventBus,
    announcement_event,
    credit_event,
    outcome_event,
    treasury_event,
)

__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
    "InMemoryEventBus",
    "announcement_event",
    "credit_event",
    "treasury_event",
    "outcome_event",
    "EVENT_DISTRIBUTION_ANNOUNCED",
    "EVENT_DISTRIBUTION_CREDITED",
    "EVENT_TREASURY_CREDITED",
    "EVENT_DISTRIBUTION_SETTLED",
    "EVENT_DISTRIBUTION_SKIPPED",
    "EVENT_DISTRIBUTION_FAILED",
    "ALL_EVENT_TYPES",
]
