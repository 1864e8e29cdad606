"""Global test fixtures for relaypool."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from relaypool.core.engine.pool import WorkerPool
from relaypool.core.models.stats import PoolStats

# Import pytest plugins
from tests.pytest_plugins.markers import (
    pytest_addoption,
    pytest_collection_modifyitems,
    pytest_configure,
)
from tests.pytest_plugins.mock_units import MockUnitFactory

# Re-export for pytest discovery
__all__ = [
    "pytest_addoption",
    "pytest_collection_modifyitems",
    "pytest_configure",
]


@pytest.fixture
def unit_factory() -> MockUnitFactory:
    """Factory producing in-memory mock units."""
    return MockUnitFactory()


@pytest.fixture
def stats_history() -> list[PoolStats]:
    """Collects every stats snapshot a pool publishes."""
    return []


@pytest.fixture
def make_pool(
    unit_factory: MockUnitFactory,
    stats_history: list[PoolStats],
) -> Callable[..., WorkerPool]:
    """Build a WorkerPool on mock units that records its stats."""

    def _make(**limits: Any) -> WorkerPool:
        return WorkerPool(
            unit_factory.create_unit,
            unit_factory.wrap,
            on_stats_update=stats_history.append,
            **limits,
        )

    return _make
