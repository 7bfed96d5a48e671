"""
Knowledge distribution core.

accrual -> rule resolution -> allocation -> settlement, driven by the
periodic scheduler.
"""

from .accrual import AccrualTracker, elapsed_minutes
from .allocator import AllocationResult, Allocator, split_evenly
from .announcement import Announcement, AnnouncementPlanner
from .eligibility import (
    CONDITIONAL_CLASSES,
    FIXED_CLASSES,
    EligibilityFilter,
    RuleClass,
    RuleContext,
)
from .executor import DistributionExecutor, ExecutionOutcome, ExecutionStatus
from .rules import ConditionalOption, RuleClassAllocation, RuleEngine
from .scheduler import (
    DistributionPhase,
    DistributionScheduler,
    SchedulerState,
    TickReport,
    phase_of,
)
from .settlement import SettlementWriter, build_plan

__all__ = [
    "AccrualTracker",
    "elapsed_minutes",
    "AllocationResult",
    "Allocator",
    "split_evenly",
    "Announcement",
    "AnnouncementPlanner",
    "CONDITIONAL_CLASSES",
    "FIXED_CLASSES",
    "EligibilityFilter",
    "RuleClass",
    "RuleContext",
    "DistributionExecutor",
    "ExecutionOutcome",
    "ExecutionStatus",
    "ConditionalOption",
    "RuleClassAllocation",
    "RuleEngine",
    "DistributionPhase",
    "DistributionScheduler",
    "SchedulerState",
    "TickReport",
    "phase_of",
    "SettlementWriter",
    "build_plan",
]
