# Copyright (c) Knowledge-Dist Contributors. All rights reserved.
# Licensed under the MIT License.
"""Centralized exception hierarchy for the knowledge distribution engine.

All engine exceptions inherit from KnowledgeDistError, enabling
consistent error handling at the scheduler boundary.
"""


class KnowledgeDistError(Exception):
    """Base exception for all knowledge distribution errors."""


class RuleConfigurationError(KnowledgeDistError):
    """A distribution rule cannot be evaluated as configured."""


class MasterUnavailableError(KnowledgeDistError):
    """The domain master no longer resolves to a valid, active recipient."""

    def __init__(self, domain_id: str, master_id: str | None) -> None:
        super().__init__(
            f"Domain {domain_id} has no resolvable master (master_id={master_id!r})"
        )
        self.domain_id = domain_id
        self.master_id = master_id


class SettlementError(KnowledgeDistError):
    """Errors while applying a settlement plan."""


class SchedulerError(KnowledgeDistError):
    """Errors related to the distribution scheduler lifecycle."""


class StorageError(KnowledgeDistError):
    """Errors related to storage backend operations."""


__all__ = [
    "KnowledgeDistError",
    "RuleConfigurationError",
    "MasterUnavailableError",
    "SettlementError",
    "SchedulerError",
    "StorageError",
]
