"""
Engine configuration.

Controls scheduler cadence, the over-allocation policy applied by the
allocator, and how conditional recipient classes are resolved.
"""

from __future__ import annotations

import os
import socket
from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_ENTRY_WINDOW_SECONDS,
    DEFAULT_KEY_PREFIX,
    DEFAULT_LEASE_TTL_SECONDS,
    DEFAULT_TICK_INTERVAL_SECONDS,
)


class OverAllocationPolicy(str, Enum):
    """How to treat user-side rule percents that sum above 100."""

    PROPORTIONAL = "proportional"
    PERMISSIVE = "permissive"
    REJECT = "reject"


class EngineConfig(BaseModel):
    """Configuration for the distribution engine."""

    tick_interval_seconds: float = Field(
        default=DEFAULT_TICK_INTERVAL_SECONDS, gt=0, description="Scheduler tick interval"
    )
    over_allocation_policy: OverAllocationPolicy = OverAllocationPolicy.PROPORTIONAL
    exclusive_conditional_pools: bool = Field(
        default=False,
        description="Place each conditional recipient in its single best class only",
    )
    lease_ttl_seconds: int = Field(default=DEFAULT_LEASE_TTL_SECONDS, ge=1)
    entry_window_seconds: int = Field(default=DEFAULT_ENTRY_WINDOW_SECONDS, ge=0)
    key_prefix: str = DEFAULT_KEY_PREFIX
    instance_id: Optional[str] = Field(
        default=None, description="Lease owner id; defaults to host:pid"
    )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineConfig":
        """Build a config from ``KDIST_*`` environment variables."""
        env = os.environ if environ is None else environ
        fields = {
            "tick_interval_seconds": "KDIST_TICK_INTERVAL_SECONDS",
            "over_allocation_policy": "KDIST_OVER_ALLOCATION_POLICY",
            "exclusive_conditional_pools": "KDIST_EXCLUSIVE_CONDITIONAL_POOLS",
            "lease_ttl_seconds": "KDIST_LEASE_TTL_SECONDS",
            "entry_window_seconds": "KDIST_ENTRY_WINDOW_SECONDS",
            "key_prefix": "KDIST_KEY_PREFIX",
            "instance_id": "KDIST_INSTANCE_ID",
        }
        values = {name: env[var] for name, var in fields.items() if env.get(var)}
        return cls.model_validate(values)

    def owner_id(self) -> str:
        """Identity used when acquiring per-domain leases."""
        if self.instance_id:
            return self.instance_id
        return f"{socket.gethostname()}:{os.getpid()}"


__all__ = ["EngineConfig", "OverAllocationPolicy"]
