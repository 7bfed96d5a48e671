"""
External collaborators consumed by the engine.

- Identity directory: users and alliance membership
- Presence oracles: location feed and participation roster
"""

from .directory import IdentityDirectory, InMemoryDirectory, StorageDirectory
from .presence import (
    LocationFix,
    LocationPresenceOracle,
    ParticipantRoster,
    ParticipationRecord,
    PresenceOracle,
    StoredLocationOracle,
)

__all__ = [
    "IdentityDirectory",
    "InMemoryDirectory",
    "StorageDirectory",
    "PresenceOracle",
    "LocationFix",
    "LocationPresenceOracle",
    "ParticipantRoster",
    "ParticipationRecord",
    "StoredLocationOracle",
]
