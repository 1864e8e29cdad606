"""Execution unit lifecycle management.

Decides when a unit is retired (task quota, lifetime, idle timeout) and
releases its handle once nothing is running on it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from relaypool.core.engine.registry import ExecutionUnit, UnitRegistry
    from relaypool.core.models.config import PoolConfig

logger = structlog.get_logger(__name__)


class EvictionReason(str, Enum):
    """Why a unit was retired."""

    TASK_LIMIT = "task_limit"
    LIFETIME = "lifetime"
    IDLE_TIMEOUT = "idle_timeout"


# Hook invoked after a unit has been evicted
EvictionHook = Callable[["ExecutionUnit", EvictionReason], None]


class LifecycleManager:
    """Owns idle timers and unit eviction."""

    def __init__(
        self,
        config: PoolConfig,
        registry: UnitRegistry,
        on_evicted: EvictionHook | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._on_evicted = on_evicted

        self._idle_timers: dict[int, asyncio.TimerHandle] = {}
        self._pending_terminations: dict[int, tuple[asyncio.TimerHandle, ExecutionUnit]] = {}

    @property
    def idle_timer_count(self) -> int:
        """Number of armed idle timers."""
        return len(self._idle_timers)

    @property
    def pending_termination_count(self) -> int:
        """Number of evicted units whose handle is not yet terminated."""
        return len(self._pending_terminations)

    def limit_reached(self, unit: ExecutionUnit) -> EvictionReason | None:
        """Return the first lifecycle limit the unit has hit, if any."""
        if unit.has_reached_task_limit(self._config.max_tasks_per_unit):
            return EvictionReason.TASK_LIMIT
        if unit.is_expired(self._config.max_unit_lifetime_ms):
            return EvictionReason.LIFETIME
        return None

    def check(self, unit: ExecutionUnit) -> EvictionReason | None:
        """
        Decide the disposition of a unit after one of its tasks completed.

        A unit past a limit is marked for termination; it is evicted once
        it has no running tasks. A unit within its limits and with no
        running tasks is classified idle and its idle timer is armed.

        Returns:
            The eviction reason, or None if the unit stays in the pool
        """
        reason = self.limit_reached(unit)

        if reason is None:
            if unit.running_tasks == 0:
                self._registry.mark_idle(unit)
                self.start_idle_timer(unit)
            return None

        if unit.running_tasks > 0:
            if not unit.marked_for_termination:
                unit.marked_for_termination = True
                logger.debug(
                    "[LIFECYCLE] Unit marked for termination",
                    unit_id=unit.id,
                    reason=reason.value,
                    running_tasks=unit.running_tasks,
                )
            return None

        self.evict(unit, reason, grace=True)
        return reason

    def start_idle_timer(self, unit: ExecutionUnit) -> None:
        """Arm the idle timer for a unit, replacing any existing one."""
        if self._config.idle_timeout_ms is None:
            return

        self.clear_idle_timer(unit.id)
        loop = asyncio.get_running_loop()
        self._idle_timers[unit.id] = loop.call_later(
            self._config.idle_timeout_ms / 1000,
            self._on_idle_timeout,
            unit,
        )

    def clear_idle_timer(self, unit_id: int) -> None:
        """Cancel a unit's idle timer if armed."""
        timer = self._idle_timers.pop(unit_id, None)
        if timer is not None:
            timer.cancel()

    def evict(self, unit: ExecutionUnit, reason: EvictionReason, grace: bool = False) -> None:
        """
        Retire a unit with no running tasks.

        The unit leaves the registry at once. With ``grace`` its handle is
        terminated after ``eviction_grace_ms`` so the last remote call can
        finish settling.
        """
        if unit.running_tasks > 0:
            raise RuntimeError(f"Unit {unit.id} still has {unit.running_tasks} running tasks")

        unit.marked_for_termination = True
        self.clear_idle_timer(unit.id)
        self._registry.remove(unit)

        logger.info(
            "[LIFECYCLE] Evicting unit",
            unit_id=unit.id,
            reason=reason.value,
            completed_tasks=unit.completed_tasks,
            age_ms=round(unit.age_ms, 1),
        )

        if grace:
            loop = asyncio.get_running_loop()
            timer = loop.call_later(
                self._config.eviction_grace_ms / 1000,
                self._finish_termination,
                unit.id,
            )
            self._pending_terminations[unit.id] = (timer, unit)
        else:
            self.terminate_handle(unit)

        if self._on_evicted is not None:
            self._on_evicted(unit, reason)

    def terminate_handle(self, unit: ExecutionUnit) -> None:
        """Release a unit's underlying resource."""
        try:
            unit.handle.terminate()
            logger.debug("[LIFECYCLE] Unit terminated", unit_id=unit.id)
        except Exception as e:
            logger.warning(
                "[LIFECYCLE] Error terminating unit",
                unit_id=unit.id,
                error=str(e),
            )

    def shutdown(self) -> None:
        """Cancel all timers and terminate evicted units immediately."""
        for timer in self._idle_timers.values():
            timer.cancel()
        self._idle_timers.clear()

        pending = list(self._pending_terminations.values())
        self._pending_terminations.clear()
        for timer, unit in pending:
            timer.cancel()
            self.terminate_handle(unit)

    def _finish_termination(self, unit_id: int) -> None:
        entry = self._pending_terminations.pop(unit_id, None)
        if entry is not None:
            self.terminate_handle(entry[1])

    def _on_idle_timeout(self, unit: ExecutionUnit) -> None:
        self._idle_timers.pop(unit.id, None)

        if unit not in self._registry or not unit.is_idle:
            return

        self.evict(unit, EvictionReason.IDLE_TIMEOUT)
