"""Pool statistics models."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class PoolStats:
    """Point-in-time snapshot of pool occupancy."""

    configured_size: int
    available_capacity: int
    queue_depth: int
    live_units: int
    idle_units: int
    running_tasks: int
    units_accepting_work: int

    @property
    def saturated(self) -> bool:
        """True when no unit can take work and no new unit can be created."""
        return self.available_capacity == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class PoolCounters:
    """Cumulative pool counters."""

    tasks_submitted: int = 0
    tasks_succeeded: int = 0
    tasks_failed: int = 0
    units_created: int = 0
    units_evicted: int = 0
    units_replaced: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary."""
        return asdict(self)
