"""Worker pool coordinator.

Schedules remote calls across a bounded set of isolated execution units.
All coordinator state is mutated synchronously on the event loop; the
units themselves run their work externally.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
from collections.abc import Callable
from typing import Any

import structlog

from relaypool.core.engine.lifecycle import EvictionReason, LifecycleManager
from relaypool.core.engine.queue import TaskQueue
from relaypool.core.engine.registry import ExecutionUnit, UnitRegistry
from relaypool.core.errors import PoolConfigError, UnitCrashedError
from relaypool.core.interfaces.unit import InterfaceFactory, UnitFactory, UnitSignal
from relaypool.core.models.config import PoolConfig
from relaypool.core.models.stats import PoolCounters, PoolStats
from relaypool.core.models.task import Task

logger = structlog.get_logger(__name__)

# Observer receiving a stats snapshot after every state change
StatsObserver = Callable[[PoolStats], None]


class PoolApi:
    """Call-through proxy: ``api.method(*args)`` submits ``method`` to the pool."""

    def __init__(self, pool: WorkerPool) -> None:
        self._pool = pool

    def __getattr__(self, method: str) -> Callable[..., asyncio.Future[Any]]:
        if method.startswith("_"):
            raise AttributeError(method)

        def call(*args: Any) -> asyncio.Future[Any]:
            return self._pool.submit(method, *args)

        call.__name__ = method
        return call


class WorkerPool:
    """
    Manages a pool of isolated execution units.

    Units are created lazily up to ``max_units``. Each unit runs at most
    ``max_concurrent_per_unit`` tasks at once. Tasks are dispatched in
    submission order to the first unit with spare capacity.
    """

    def __init__(
        self,
        create_unit: UnitFactory,
        wrap: InterfaceFactory,
        *,
        config: PoolConfig | None = None,
        on_stats_update: StatsObserver | None = None,
        **limits: Any,
    ) -> None:
        """
        Initialize worker pool.

        Args:
            create_unit: Factory creating one raw execution unit
            wrap: Factory producing the call interface for a unit
            config: Pool limits; mutually exclusive with ``limits``
            on_stats_update: Optional observer for stats snapshots
            **limits: PoolConfig fields (max_units, max_concurrent_per_unit, ...)

        Raises:
            PoolConfigError: If the limits are invalid
        """
        if config is not None and limits:
            raise PoolConfigError("Pass either config or individual limits, not both")

        self._config = config if config is not None else PoolConfig.create(**limits)
        self._create_unit = create_unit
        self._wrap = wrap
        self._on_stats_update = on_stats_update

        self._queue = TaskQueue()
        self._registry = UnitRegistry(self._config.max_units)
        self._lifecycle = LifecycleManager(
            self._config,
            self._registry,
            on_evicted=self._on_unit_evicted,
        )
        self._unit_ids = itertools.count()
        self._counters = PoolCounters()

        logger.info(
            "[POOL] Worker pool created",
            max_units=self._config.max_units,
            max_concurrent_per_unit=self._config.max_concurrent_per_unit,
        )
        self._update_stats()

    async def __aenter__(self) -> WorkerPool:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.terminate_all()

    @property
    def config(self) -> PoolConfig:
        """Get pool configuration."""
        return self._config

    @property
    def counters(self) -> dict[str, int]:
        """Get cumulative pool counters."""
        return self._counters.to_dict()

    @property
    def api(self) -> PoolApi:
        """Get a call-through proxy for the pool."""
        return PoolApi(self)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, method: str, *args: Any) -> asyncio.Future[Any]:
        """
        Queue a remote call and run a scheduling pass.

        Args:
            method: Name of the method to call on a unit's interface
            *args: Positional arguments for the call

        Returns:
            Future settled with the call's result or failure

        Raises:
            TypeError: If method is not a string
            ValueError: If method is empty
        """
        if not isinstance(method, str):
            raise TypeError(f"method must be a string, got {type(method).__name__}")
        if not method:
            raise ValueError("method must not be empty")

        loop = asyncio.get_running_loop()
        task = Task(method=method, args=args, future=loop.create_future())
        self._queue.push(task)
        self._counters.tasks_submitted += 1

        self._schedule()
        self._update_stats()
        return task.future

    async def call(self, method: str, *args: Any) -> Any:
        """Submit a remote call and wait for its result."""
        return await self.submit(method, *args)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _schedule(self) -> None:
        """Dispatch queued tasks while an eligible unit exists."""
        while not self._queue.is_empty:
            try:
                unit = self._find_eligible_unit()
            except Exception as e:
                # The head task demanded the unit that could not be created
                task = self._queue.pop()
                task.reject(e)
                self._counters.tasks_failed += 1
                logger.error(
                    "[POOL] Failed to create unit",
                    task_id=task.id,
                    method=task.method,
                    error=str(e),
                )
                continue

            if unit is None:
                break

            self._dispatch(unit, self._queue.pop())

    def _find_eligible_unit(self) -> ExecutionUnit | None:
        max_concurrent = self._config.max_concurrent_per_unit

        for unit in self._registry:
            if unit.is_idle and unit.is_expired(self._config.max_unit_lifetime_ms):
                self._lifecycle.evict(unit, EvictionReason.LIFETIME)
                continue
            if unit.can_accept(max_concurrent):
                return unit

        if self._registry.has_headroom:
            unit = self._spawn_unit()
            self._registry.add(unit)
            return unit

        return None

    def _dispatch(self, unit: ExecutionUnit, task: Task) -> None:
        if unit.running_tasks == 0:
            self._registry.mark_busy(unit)
            self._lifecycle.clear_idle_timer(unit.id)

        unit.running_tasks += 1
        execution = asyncio.get_running_loop().create_task(self._execute(unit, task))
        unit.inflight[execution] = task

        logger.debug(
            "[POOL] Task dispatched",
            task_id=task.id,
            method=task.method,
            unit_id=unit.id,
            running_tasks=unit.running_tasks,
        )
        self._update_stats()

    async def _execute(self, unit: ExecutionUnit, task: Task) -> None:
        try:
            result = getattr(unit.interface, task.method)(*task.args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self._complete(unit, task, error=e)
        else:
            self._complete(unit, task, result=result)

    def _complete(
        self,
        unit: ExecutionUnit,
        task: Task,
        result: Any = None,
        error: Exception | None = None,
    ) -> None:
        unit.inflight.pop(asyncio.current_task(), None)  # type: ignore[arg-type]

        if unit.crashed:
            # Already rejected by the crash handler
            return
        if unit.marked_for_termination and unit not in self._registry:
            # Abandoned by terminate_all while this call was running
            return

        unit.running_tasks -= 1
        unit.completed_tasks += 1

        if error is None:
            task.resolve(result)
            self._counters.tasks_succeeded += 1
        else:
            task.reject(error)
            self._counters.tasks_failed += 1
            logger.debug(
                "[POOL] Task failed",
                task_id=task.id,
                method=task.method,
                unit_id=unit.id,
                error=str(error),
                error_type=type(error).__name__,
            )

        if unit in self._registry:
            self._lifecycle.check(unit)

        self._schedule()
        self._update_stats()

    # ------------------------------------------------------------------
    # Unit creation and crash recovery
    # ------------------------------------------------------------------

    def _spawn_unit(self) -> ExecutionUnit:
        """Create and wrap a new unit with failure listeners attached."""
        unit_id = next(self._unit_ids)
        handle = self._create_unit()
        try:
            interface = self._wrap(handle)
        except Exception:
            handle.terminate()
            raise

        unit = ExecutionUnit(id=unit_id, handle=handle, interface=interface)
        self._watch(unit)
        self._counters.units_created += 1

        logger.debug("[POOL] Unit created", unit_id=unit_id)
        return unit

    def _watch(self, unit: ExecutionUnit) -> None:
        loop = asyncio.get_running_loop()

        def on_failure(signal: UnitSignal) -> None:
            try:
                current = asyncio.get_running_loop()
            except RuntimeError:
                current = None

            if current is loop:
                self._handle_crash(unit, signal)
            else:
                loop.call_soon_threadsafe(self._handle_crash, unit, signal)

        for signal in UnitSignal:
            unit.handle.add_listener(signal, on_failure)

    def _handle_crash(self, unit: ExecutionUnit, signal: UnitSignal) -> None:
        if unit.crashed or unit not in self._registry:
            return

        unit.crashed = True
        unit.marked_for_termination = True

        logger.warning(
            "[POOL] Unit crashed",
            unit_id=unit.id,
            signal=signal.value,
            running_tasks=unit.running_tasks,
        )

        self._lifecycle.clear_idle_timer(unit.id)
        self._registry.mark_busy(unit)

        current = asyncio.current_task()
        inflight = list(unit.inflight.items())
        unit.inflight.clear()
        unit.running_tasks = 0

        for execution, task in inflight:
            task.reject(UnitCrashedError(unit.id, signal, task.method))
            self._counters.tasks_failed += 1
            if execution is not current:
                execution.cancel()

        self._lifecycle.terminate_handle(unit)

        try:
            replacement = self._spawn_unit()
        except Exception as e:
            self._registry.remove(unit)
            logger.error(
                "[POOL] Failed to create replacement unit",
                unit_id=unit.id,
                error=str(e),
            )
        else:
            self._registry.replace(unit, replacement)
            self._counters.units_replaced += 1
            self._registry.mark_idle(replacement)
            self._lifecycle.start_idle_timer(replacement)

            logger.info(
                "[POOL] Unit replaced",
                crashed_unit_id=unit.id,
                unit_id=replacement.id,
            )

        self._update_stats()
        self._schedule()

    def _on_unit_evicted(self, unit: ExecutionUnit, reason: EvictionReason) -> None:
        self._counters.units_evicted += 1
        self._update_stats()

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> PoolStats:
        """Compute a snapshot of current pool occupancy."""
        max_concurrent = self._config.max_concurrent_per_unit
        units = list(self._registry)
        live = len(units)
        accepting = sum(1 for u in units if u.can_accept(max_concurrent))

        return PoolStats(
            configured_size=self._config.max_units,
            available_capacity=accepting + (self._config.max_units - live),
            queue_depth=len(self._queue),
            live_units=live,
            idle_units=len(self._registry.idle_units),
            running_tasks=sum(u.running_tasks for u in units),
            units_accepting_work=accepting,
        )

    def get_unit_stats(self) -> list[dict[str, Any]]:
        """Get statistics for all live units."""
        return [
            {
                "id": u.id,
                "running_tasks": u.running_tasks,
                "completed_tasks": u.completed_tasks,
                "age_ms": u.age_ms,
                "idle": self._registry.is_idle(u),
                "marked_for_termination": u.marked_for_termination,
            }
            for u in self._registry
        ]

    def _update_stats(self) -> None:
        if self._on_stats_update is None:
            return

        try:
            self._on_stats_update(self.get_stats())
        except Exception as e:
            logger.warning("[POOL] on_stats_update callback failed", error=str(e))

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def terminate_all(self) -> None:
        """
        Terminate every unit and drop all queued work.

        Running and queued tasks are abandoned: their futures are never
        settled. Safe to call repeatedly; the pool creates fresh units on
        the next submission.
        """
        units = self._registry.clear()
        current = asyncio.current_task() if _loop_running() else None

        for unit in units:
            unit.marked_for_termination = True
            for execution in unit.inflight:
                if execution is not current:
                    execution.cancel()
            unit.inflight.clear()
            unit.running_tasks = 0
            self._lifecycle.terminate_handle(unit)

        self._lifecycle.shutdown()
        dropped = self._queue.clear()

        if units or dropped:
            logger.info(
                "[POOL] Worker pool terminated",
                units_terminated=len(units),
                tasks_dropped=dropped,
            )
        self._update_stats()


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
