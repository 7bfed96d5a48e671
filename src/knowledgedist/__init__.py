"""
Knowledge distribution engine.

Accrues knowledge points on domains and distributes them on schedule to
masters, deputies, named users, alliance groups and alliance treasuries,
with exact minor-unit arithmetic and replay-safe settlement.
"""

__version__ = "0.4.0"

from .config import EngineConfig, OverAllocationPolicy
from .engine import DistributionEngine
from .exceptions import (
    KnowledgeDistError,
    MasterUnavailableError,
    RuleConfigurationError,
    SchedulerError,
    SettlementError,
    StorageError,
)
from .models import (
    DistributionRule,
    DistributionScope,
    Domain,
    RecipientCandidate,
    RuleSnapshot,
    ScheduledDistribution,
    SettlementPlan,
)

__all__ = [
    "__version__",
    "EngineConfig",
    "OverAllocationPolicy",
    "DistributionEngine",
    "KnowledgeDistError",
    "MasterUnavailableError",
    "RuleConfigurationError",
    "SchedulerError",
    "SettlementError",
    "StorageError",
    "DistributionRule",
    "DistributionScope",
    "Domain",
    "RecipientCandidate",
    "RuleSnapshot",
    "ScheduledDistribution",
    "SettlementPlan",
]
