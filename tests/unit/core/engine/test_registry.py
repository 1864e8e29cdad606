"""Tests for ExecutionUnit and UnitRegistry."""

from __future__ import annotations

import pytest

from relaypool.core.engine.registry import ExecutionUnit, UnitRegistry
from tests.pytest_plugins.mock_units import MockUnit


def make_unit(unit_id: int, **kwargs) -> ExecutionUnit:
    return ExecutionUnit(id=unit_id, handle=MockUnit(unit_id), interface=None, **kwargs)


# ============================================================================
# EXECUTION UNIT
# ============================================================================


class TestExecutionUnit:
    """Tests for ExecutionUnit state helpers."""

    def test_new_unit_is_idle(self):
        """Test defaults."""
        unit = make_unit(0)
        assert unit.running_tasks == 0
        assert unit.completed_tasks == 0
        assert unit.is_idle
        assert not unit.marked_for_termination
        assert not unit.crashed

    def test_running_unit_not_idle(self):
        """Test that a unit with work is not idle."""
        assert not make_unit(0, running_tasks=1).is_idle

    def test_marked_unit_not_idle(self):
        """Test that a unit being retired is not idle."""
        assert not make_unit(0, marked_for_termination=True).is_idle

    @pytest.mark.parametrize(
        ("running", "marked", "expected"),
        [
            (0, False, True),
            (1, False, True),
            (2, False, False),
            (0, True, False),
        ],
    )
    def test_can_accept(self, running, marked, expected):
        """Test admission against a ceiling of 2."""
        unit = make_unit(0, running_tasks=running, marked_for_termination=marked)
        assert unit.can_accept(2) is expected

    def test_task_limit(self):
        """Test task quota helper."""
        unit = make_unit(0, completed_tasks=3)
        assert unit.has_reached_task_limit(3)
        assert not unit.has_reached_task_limit(4)
        assert not unit.has_reached_task_limit(None)

    def test_expiry(self):
        """Test lifetime helper."""
        unit = make_unit(0)
        assert not unit.is_expired(None)
        assert not unit.is_expired(60_000)
        unit.created_at -= 120
        assert unit.is_expired(60_000)
        assert unit.age_ms >= 120_000


# ============================================================================
# REGISTRY
# ============================================================================


class TestUnitRegistry:
    """Tests for UnitRegistry."""

    def test_add_respects_capacity(self):
        """Test that the registry never exceeds max_units."""
        registry = UnitRegistry(max_units=1)
        registry.add(make_unit(0))
        assert not registry.has_headroom

        with pytest.raises(RuntimeError):
            registry.add(make_unit(1))
        assert len(registry) == 1

    def test_lookup_and_membership(self):
        """Test get and containment."""
        registry = UnitRegistry(max_units=2)
        unit = make_unit(7)
        registry.add(unit)

        assert registry.get(7) is unit
        assert registry.get(8) is None
        assert unit in registry
        assert make_unit(7) not in registry

    def test_replace_keeps_slot(self):
        """Test that a replacement takes the old unit's position."""
        registry = UnitRegistry(max_units=3)
        units = [make_unit(i) for i in range(3)]
        for unit in units:
            registry.add(unit)
        registry.mark_idle(units[1])

        replacement = make_unit(9)
        assert registry.replace(units[1], replacement)
        assert [u.id for u in registry] == [0, 9, 2]
        assert not registry.is_idle(units[1])

    def test_replace_unknown_unit(self):
        """Test replacing a unit that is not registered."""
        registry = UnitRegistry(max_units=1)
        assert not registry.replace(make_unit(0), make_unit(1))
        assert len(registry) == 0

    def test_idle_classification(self):
        """Test idle set bookkeeping."""
        registry = UnitRegistry(max_units=2)
        unit = make_unit(0)
        registry.add(unit)

        registry.mark_idle(unit)
        assert registry.idle_units == [unit]

        registry.mark_busy(unit)
        assert registry.idle_units == []

    def test_busy_unit_cannot_be_marked_idle(self):
        """Test that only units with no work join the idle set."""
        registry = UnitRegistry(max_units=1)
        unit = make_unit(0, running_tasks=1)
        registry.add(unit)

        registry.mark_idle(unit)
        assert not registry.is_idle(unit)

    def test_unregistered_unit_cannot_be_marked_idle(self):
        """Test that the idle set is a subset of the registry."""
        registry = UnitRegistry(max_units=1)
        registry.mark_idle(make_unit(0))
        assert registry.idle_units == []

    def test_remove(self):
        """Test removing a unit clears its idle entry."""
        registry = UnitRegistry(max_units=2)
        unit = make_unit(0)
        registry.add(unit)
        registry.mark_idle(unit)

        assert registry.remove(unit)
        assert not registry.remove(unit)
        assert len(registry) == 0
        assert registry.idle_units == []

    def test_clear_returns_units(self):
        """Test clearing the registry."""
        registry = UnitRegistry(max_units=2)
        units = [make_unit(0), make_unit(1)]
        for unit in units:
            registry.add(unit)
            registry.mark_idle(unit)

        assert registry.clear() == units
        assert len(registry) == 0
        assert registry.idle_units == []
        assert registry.has_headroom
