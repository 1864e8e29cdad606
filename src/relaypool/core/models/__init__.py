"""Core data models."""

from relaypool.core.models.config import PoolConfig, PoolSettings
from relaypool.core.models.stats import PoolCounters, PoolStats
from relaypool.core.models.task import Task

__all__ = [
    # Config
    "PoolConfig",
    "PoolSettings",
    # Stats
    "PoolCounters",
    "PoolStats",
    # Task
    "Task",
]
