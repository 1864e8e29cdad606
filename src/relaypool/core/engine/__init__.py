"""Engine layer - task scheduling across execution units."""

from relaypool.core.engine.lifecycle import EvictionReason, LifecycleManager
from relaypool.core.engine.pool import PoolApi, WorkerPool
from relaypool.core.engine.queue import TaskQueue
from relaypool.core.engine.registry import ExecutionUnit, UnitRegistry

__all__ = [
    "EvictionReason",
    "ExecutionUnit",
    "LifecycleManager",
    "PoolApi",
    "TaskQueue",
    "UnitRegistry",
    "WorkerPool",
]
