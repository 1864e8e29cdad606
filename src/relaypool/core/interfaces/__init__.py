"""Interfaces for injected collaborators."""

from relaypool.core.interfaces.unit import (
    InterfaceFactory,
    SignalListener,
    UnitFactory,
    UnitHandle,
    UnitSignal,
)

__all__ = [
    "InterfaceFactory",
    "SignalListener",
    "UnitFactory",
    "UnitHandle",
    "UnitSignal",
]
