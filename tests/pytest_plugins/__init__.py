"""Pytest plugins for relaypool tests."""

from tests.pytest_plugins.markers import (
    pytest_addoption,
    pytest_collection_modifyitems,
    pytest_configure,
)
from tests.pytest_plugins.mock_units import (
    ConcurrencyTracker,
    MockInterface,
    MockUnit,
    MockUnitFactory,
)

__all__ = [
    "ConcurrencyTracker",
    "MockInterface",
    "MockUnit",
    "MockUnitFactory",
    "pytest_addoption",
    "pytest_collection_modifyitems",
    "pytest_configure",
]
