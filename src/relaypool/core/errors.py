"""Pool error types."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from relaypool.core.interfaces.unit import UnitSignal


class PoolError(Exception):
    """Base class for worker pool errors."""

    pass


class PoolConfigError(PoolError, ValueError):
    """Raised when a pool is constructed with invalid limits."""

    pass


class UnitCrashedError(PoolError):
    """Raised into a caller whose task was running on a unit that crashed."""

    def __init__(self, unit_id: int, signal: UnitSignal, method: str) -> None:
        self.unit_id = unit_id
        self.signal = signal
        self.method = method
        super().__init__(
            f"Execution unit {unit_id} crashed ({signal.value}) while running {method!r}"
        )
