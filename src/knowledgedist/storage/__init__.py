"""
Storage for the distribution engine.

Async providers (memory, Redis) and the typed stores built on them.
"""

from .provider import AbstractStorageProvider, StorageConfig
from .memory_provider import MemoryStorageProvider
from .redis_provider import RedisStorageProvider
from .factory import create_provider
from .stores import (
    BalanceLedger,
    DomainStore,
    LeaseManager,
    SettlementJournal,
    TreasuryLedger,
)

__all__ = [
    "AbstractStorageProvider",
    "StorageConfig",
    "MemoryStorageProvider",
    "RedisStorageProvider",
    "create_provider",
    "DomainStore",
    "BalanceLedger",
    "TreasuryLedger",
    "SettlementJournal",
    "LeaseManager",
]
