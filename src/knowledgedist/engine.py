"""
Engine assembly.

Wires the stores, collaborators and distribution components over a single
storage provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import EngineConfig
from .distribution import (
    AccrualTracker,
    Allocator,
    AnnouncementPlanner,
    DistributionExecutor,
    DistributionScheduler,
    EligibilityFilter,
    RuleEngine,
    SettlementWriter,
)
from .events import EventBus, InMemoryEventBus
from .observability import DistributionMetrics
from .services import (
    IdentityDirectory,
    ParticipantRoster,
    PresenceOracle,
    StorageDirectory,
    StoredLocationOracle,
)
from .storage import (
    AbstractStorageProvider,
    BalanceLedger,
    DomainStore,
    LeaseManager,
    SettlementJournal,
    TreasuryLedger,
)


@dataclass
class DistributionEngine:
    """A fully wired distribution engine."""

    config: EngineConfig
    provider: AbstractStorageProvider
    domains: DomainStore
    balances: BalanceLedger
    treasury: TreasuryLedger
    journal: SettlementJournal
    leases: LeaseManager
    directory: IdentityDirectory
    presence: PresenceOracle
    event_bus: EventBus
    rules: RuleEngine
    allocator: Allocator
    writer: SettlementWriter
    executor: DistributionExecutor
    scheduler: DistributionScheduler
    announcer: AnnouncementPlanner
    metrics: Optional[DistributionMetrics] = None

    @classmethod
    def build(
        cls,
        provider: AbstractStorageProvider,
        config: Optional[EngineConfig] = None,
        directory: Optional[IdentityDirectory] = None,
        presence: Optional[PresenceOracle] = None,
        event_bus: Optional[EventBus] = None,
        metrics: Optional[DistributionMetrics] = None,
    ) -> "DistributionEngine":
        """Build an engine; directory and presence default to storage-backed ones."""
        config = config or EngineConfig()
        prefix = config.key_prefix
        directory = directory or StorageDirectory(provider, prefix)
        presence = presence or StoredLocationOracle(provider, prefix)
        event_bus = event_bus or InMemoryEventBus()
        if isinstance(presence, ParticipantRoster):
            presence.bind(event_bus)

        domains = DomainStore(provider, prefix)
        balances = BalanceLedger(provider, prefix)
        treasury = TreasuryLedger(provider, prefix)
        journal = SettlementJournal(provider, prefix)
        leases = LeaseManager(provider, prefix)

        accrual = AccrualTracker()
        rules = RuleEngine(
            directory,
            EligibilityFilter(presence),
            exclusive_conditional_pools=config.exclusive_conditional_pools,
        )
        allocator = Allocator(config.over_allocation_policy)
        writer = SettlementWriter(domains, balances, treasury, journal, event_bus, metrics)
        executor = DistributionExecutor(domains, journal, rules, allocator, writer, accrual)
        scheduler = DistributionScheduler(
            executor, domains, leases, config, event_bus=event_bus, metrics=metrics
        )
        announcer = AnnouncementPlanner(
            rules,
            directory,
            event_bus,
            accrual,
            entry_window_seconds=config.entry_window_seconds,
        )
        return cls(
            config=config,
            provider=provider,
            domains=domains,
            balances=balances,
            treasury=treasury,
            journal=journal,
            leases=leases,
            directory=directory,
            presence=presence,
            event_bus=event_bus,
            rules=rules,
            allocator=allocator,
            writer=writer,
            executor=executor,
            scheduler=scheduler,
            announcer=announcer,
            metrics=metrics,
        )
