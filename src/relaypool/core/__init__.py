"""Core module - coordinator, models and interfaces."""

from relaypool.core.engine.pool import WorkerPool
from relaypool.core.errors import PoolConfigError, PoolError, UnitCrashedError
from relaypool.core.interfaces.unit import UnitSignal
from relaypool.core.models.config import PoolConfig, PoolSettings
from relaypool.core.models.stats import PoolStats

__all__ = [
    "PoolConfig",
    "PoolConfigError",
    "PoolError",
    "PoolSettings",
    "PoolStats",
    "UnitCrashedError",
    "UnitSignal",
    "WorkerPool",
]
