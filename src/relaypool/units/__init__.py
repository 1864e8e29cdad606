"""Concrete execution unit implementations."""

from relaypool.units.process import ProcessInterface, ProcessUnit, process_unit_factory

__all__ = [
    "ProcessInterface",
    "ProcessUnit",
    "process_unit_factory",
]
