"""relaypool - schedule async tasks across a bounded pool of isolated execution units."""

from relaypool.core import (
    PoolConfig,
    PoolConfigError,
    PoolError,
    PoolSettings,
    PoolStats,
    UnitCrashedError,
    UnitSignal,
    WorkerPool,
)

__version__ = "0.1.0"

__all__ = [
    "PoolConfig",
    "PoolConfigError",
    "PoolError",
    "PoolSettings",
    "PoolStats",
    "UnitCrashedError",
    "UnitSignal",
    "WorkerPool",
    "__version__",
]
