"""Shared fixtures for the distribution engine tests."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from knowledgedist.config import EngineConfig
from knowledgedist.engine import DistributionEngine
from knowledgedist.events import InMemoryEventBus
from knowledgedist.models import (
    DistributionRule,
    Domain,
    RecipientCandidate,
    ScheduledDistribution,
)
from knowledgedist.services import InMemoryDirectory, LocationPresenceOracle
from knowledgedist.storage import MemoryStorageProvider

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
DOMAIN_ID = "keep"


def make_rule(**overrides) -> DistributionRule:
    values = {"master_percent": 10}
    values.update(overrides)
    return DistributionRule(**values)


def make_schedule(rule: DistributionRule | None = None, **overrides) -> ScheduledDistribution:
    values = {
        "due_at": NOW - timedelta(minutes=1),
        "rule_snapshot": rule or make_rule(),
    }
    values.update(overrides)
    return ScheduledDistribution(**values)


def make_domain(
    point_balance: str = "100.00",
    schedule: ScheduledDistribution | None = None,
    **overrides,
) -> Domain:
    values = {
        "domain_id": DOMAIN_ID,
        "name": "Old Keep",
        "master_id": "lord",
        "point_balance": Decimal(point_balance),
        "points_last_accrued_at": NOW,
        "scheduled": schedule,
    }
    values.update(overrides)
    return Domain(**values)


@pytest.fixture
async def provider():
    """Create and connect a memory storage provider."""
    provider = MemoryStorageProvider()
    await provider.connect()
    yield provider
    await provider.disconnect()


@pytest.fixture
def directory():
    """Master and deputy in "gold", three unaffiliated users, one "red", one "blue"."""
    return InMemoryDirectory(
        [
            RecipientCandidate(user_id="lord", alliance_id="gold"),
            RecipientCandidate(user_id="steward", alliance_id="gold"),
            RecipientCandidate(user_id="ann"),
            RecipientCandidate(user_id="bob"),
            RecipientCandidate(user_id="cid"),
            RecipientCandidate(user_id="dan", alliance_id="red"),
            RecipientCandidate(user_id="eve", alliance_id="blue"),
        ]
    )


@pytest.fixture
def presence():
    """Everyone except the master and deputy is on site at the domain."""
    oracle = LocationPresenceOracle()
    for user_id in ("ann", "bob", "cid", "dan", "eve"):
        oracle.update(user_id, DOMAIN_ID)
    return oracle


@pytest.fixture
def event_bus():
    return InMemoryEventBus()


@pytest.fixture
def events(event_bus):
    """Every event emitted on the bus, in order."""
    received = []
    event_bus.subscribe("*", received.append)
    return received


@pytest.fixture
def engine_config():
    return EngineConfig(instance_id="test-node")


@pytest.fixture
def engine(provider, directory, presence, event_bus, engine_config):
    return DistributionEngine.build(
        provider,
        engine_config,
        directory=directory,
        presence=presence,
        event_bus=event_bus,
    )
