"""Engine-wide constants."""

from decimal import Decimal

# Minor units per knowledge point (balances are tracked in hundredths)
MINOR_UNITS_PER_POINT = 100
POINT_QUANTUM = Decimal("0.01")

PERCENT_MIN = Decimal(0)
PERCENT_MAX = Decimal(100)
DEFAULT_MASTER_PERCENT = Decimal(10)

# Scheduler
DEFAULT_TICK_INTERVAL_SECONDS = 60
DEFAULT_LEASE_TTL_SECONDS = 300
DEFAULT_ENTRY_WINDOW_SECONDS = 60

DEFAULT_KEY_PREFIX = "kdist:"
