"""Execution unit registry."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

    from relaypool.core.interfaces.unit import UnitHandle
    from relaypool.core.models.task import Task

logger = structlog.get_logger(__name__)


@dataclass(eq=False)
class ExecutionUnit:
    """Represents a single execution unit in the pool."""

    id: int
    handle: UnitHandle
    interface: Any
    created_at: float = field(default_factory=time.monotonic)
    completed_tasks: int = 0
    running_tasks: int = 0
    marked_for_termination: bool = False
    crashed: bool = False

    # Remote calls in flight, keyed by the asyncio task driving them
    inflight: dict[asyncio.Task[None], Task] = field(default_factory=dict, repr=False)

    @property
    def age_ms(self) -> float:
        """Milliseconds since the unit was created."""
        return (time.monotonic() - self.created_at) * 1000

    @property
    def is_idle(self) -> bool:
        """Check if the unit has no work and is not being retired."""
        return self.running_tasks == 0 and not self.marked_for_termination

    def can_accept(self, max_concurrent: int) -> bool:
        """Check if the unit can take another concurrent task."""
        return not self.marked_for_termination and self.running_tasks < max_concurrent

    def is_expired(self, max_lifetime_ms: float | None) -> bool:
        """Check if the unit has outlived its lifetime limit."""
        return max_lifetime_ms is not None and self.age_ms >= max_lifetime_ms

    def has_reached_task_limit(self, max_tasks: int | None) -> bool:
        """Check if the unit has completed its task quota."""
        return max_tasks is not None and self.completed_tasks >= max_tasks


class UnitRegistry:
    """
    Authoritative list of live execution units.

    Units keep their slot for their whole life; a crash replacement takes
    over the slot of the unit it replaces.
    """

    def __init__(self, max_units: int) -> None:
        self._max_units = max_units
        self._units: list[ExecutionUnit] = []
        self._idle: dict[int, ExecutionUnit] = {}

    def __len__(self) -> int:
        return len(self._units)

    def __iter__(self) -> Iterator[ExecutionUnit]:
        return iter(list(self._units))

    def __contains__(self, unit: object) -> bool:
        return any(u is unit for u in self._units)

    @property
    def max_units(self) -> int:
        """Get maximum unit count."""
        return self._max_units

    @property
    def has_headroom(self) -> bool:
        """Check if another unit may be created."""
        return len(self._units) < self._max_units

    @property
    def idle_units(self) -> list[ExecutionUnit]:
        """Units currently classified idle."""
        return list(self._idle.values())

    def get(self, unit_id: int) -> ExecutionUnit | None:
        """Look up a live unit by id."""
        for unit in self._units:
            if unit.id == unit_id:
                return unit
        return None

    def add(self, unit: ExecutionUnit) -> None:
        """
        Register a newly created unit.

        Raises:
            RuntimeError: If the registry is already at capacity
        """
        if not self.has_headroom:
            raise RuntimeError(f"Registry full ({self._max_units} units)")
        self._units.append(unit)

        logger.debug(
            "[REGISTRY] Unit registered",
            unit_id=unit.id,
            total_units=len(self._units),
        )

    def replace(self, old: ExecutionUnit, new: ExecutionUnit) -> bool:
        """
        Put a replacement unit into the slot of an existing one.

        Returns:
            True if the old unit was found and replaced
        """
        for index, unit in enumerate(self._units):
            if unit is old:
                self._units[index] = new
                self._idle.pop(old.id, None)
                logger.debug(
                    "[REGISTRY] Unit replaced",
                    old_unit_id=old.id,
                    new_unit_id=new.id,
                    slot=index,
                )
                return True
        return False

    def remove(self, unit: ExecutionUnit) -> bool:
        """
        Remove a unit from the registry and idle set.

        Returns:
            True if the unit was registered
        """
        self._idle.pop(unit.id, None)
        for index, existing in enumerate(self._units):
            if existing is unit:
                del self._units[index]
                return True
        return False

    def mark_idle(self, unit: ExecutionUnit) -> None:
        """Classify a unit as idle."""
        if unit.is_idle and unit in self:
            self._idle[unit.id] = unit

    def mark_busy(self, unit: ExecutionUnit) -> None:
        """Remove a unit from the idle classification."""
        self._idle.pop(unit.id, None)

    def is_idle(self, unit: ExecutionUnit) -> bool:
        """Check if a unit is in the idle set."""
        return unit.id in self._idle

    def clear(self) -> list[ExecutionUnit]:
        """
        Drop every unit.

        Returns:
            The units that were registered
        """
        units = self._units
        self._units = []
        self._idle.clear()
        return units
