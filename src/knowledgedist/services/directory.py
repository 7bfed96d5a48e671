"""
Identity Directory

Read-only view of users and their alliance membership, as consumed by the
rule engine. The authentication and alliance systems own this data; the
in-memory directory stands in for them in tests and local runs.
"""

import asyncio
from typing import Iterable, Optional, Protocol, runtime_checkable

from knowledgedist.constants import DEFAULT_KEY_PREFIX
from knowledgedist.models import RecipientCandidate, is_valid_identity
from knowledgedist.storage.provider import AbstractStorageProvider


@runtime_checkable
class IdentityDirectory(Protocol):
    """Source of recipient candidates."""

    async def get_candidate(self, user_id: str) -> Optional[RecipientCandidate]:
        """Return the candidate for *user_id*, or None if unknown."""
        ...

    async def list_candidates(self) -> list[RecipientCandidate]:
        """Return every currently known candidate."""
        ...


class InMemoryDirectory:
    """Dictionary-backed identity directory."""

    def __init__(self, candidates: Iterable[RecipientCandidate] = ()):
        self._candidates: dict[str, RecipientCandidate] = {}
        self._lock = asyncio.Lock()
        for candidate in candidates:
            self._candidates[candidate.user_id] = candidate

    async def upsert(self, candidate: RecipientCandidate) -> None:
        """
        Add or replace a candidate.

        Raises:
            ValueError: If the user id is not a valid identity
        """
        if not is_valid_identity(candidate.user_id):
            raise ValueError(f"Invalid user id: {candidate.user_id!r}")
        async with self._lock:
            self._candidates[candidate.user_id] = candidate

    async def set_alliance(self, user_id: str, alliance_id: Optional[str]) -> None:
        async with self._lock:
            current = self._candidates.get(user_id)
            if current is None:
                raise ValueError(f"Unknown user {user_id}")
            self._candidates[user_id] = current.model_copy(update={"alliance_id": alliance_id})

    async def deactivate(self, user_id: str) -> None:
        async with self._lock:
            current = self._candidates.get(user_id)
            if current is not None:
                self._candidates[user_id] = current.model_copy(update={"active": False})

    async def get_candidate(self, user_id: str) -> Optional[RecipientCandidate]:
        return self._candidates.get(user_id)

    async def list_candidates(self) -> list[RecipientCandidate]:
        return [self._candidates[uid] for uid in sorted(self._candidates)]


class StorageDirectory:
    """Directory kept in a storage hash, one JSON record per user.

    Lets a separate process (the CLI, another engine instance) see the
    same candidates.
    """

    def __init__(self, provider: AbstractStorageProvider, prefix: str = DEFAULT_KEY_PREFIX):
        self._provider = provider
        self._key = f"{prefix}users"

    async def upsert(self, candidate: RecipientCandidate) -> None:
        if not is_valid_identity(candidate.user_id):
            raise ValueError(f"Invalid user id: {candidate.user_id!r}")
        await self._provider.hset(self._key, candidate.user_id, candidate.model_dump_json())

    async def get_candidate(self, user_id: str) -> Optional[RecipientCandidate]:
        raw = await self._provider.hget(self._key, user_id)
        if raw is None:
            return None
        return RecipientCandidate.model_validate_json(raw)

    async def list_candidates(self) -> list[RecipientCandidate]:
        rows = await self._provider.hgetall(self._key)
        return [RecipientCandidate.model_validate_json(rows[uid]) for uid in sorted(rows)]
