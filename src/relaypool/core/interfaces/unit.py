"""Execution unit interface definitions."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class UnitSignal(str, Enum):
    """Failure signals an execution unit can raise."""

    ERROR = "error"  # Abnormal termination
    CLOSE = "close"  # Unexpected close


# Listener invoked with the signal that fired
SignalListener = Callable[[UnitSignal], None]


@runtime_checkable
class UnitHandle(Protocol):
    """Contract for a raw, isolated execution unit."""

    def terminate(self) -> None:
        """Release the unit's underlying resource."""
        ...

    def add_listener(self, signal: UnitSignal, listener: SignalListener) -> None:
        """Register a failure listener."""
        ...


# Creates one raw execution unit
UnitFactory = Callable[[], UnitHandle]

# Produces the method-call surface for a unit
InterfaceFactory = Callable[[UnitHandle], Any]
