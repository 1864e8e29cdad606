"""In-memory execution units for testing the pool without real workers."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from relaypool.core.interfaces.unit import SignalListener, UnitSignal

# ============================================================================
# CONCURRENCY TRACKING
# ============================================================================


@dataclass
class ConcurrencyTracker:
    """Records call order and peak concurrency across mock units."""

    running: int = 0
    max_running: int = 0
    running_per_unit: dict[int, int] = field(default_factory=lambda: defaultdict(int))
    max_per_unit: dict[int, int] = field(default_factory=lambda: defaultdict(int))
    calls: list[tuple[int, str, tuple[Any, ...]]] = field(default_factory=list)

    def enter(self, unit_no: int, method: str, args: tuple[Any, ...]) -> None:
        self.calls.append((unit_no, method, args))
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        self.running_per_unit[unit_no] += 1
        self.max_per_unit[unit_no] = max(
            self.max_per_unit[unit_no], self.running_per_unit[unit_no]
        )

    def exit(self, unit_no: int) -> None:
        self.running -= 1
        self.running_per_unit[unit_no] -= 1

    @property
    def dispatch_order(self) -> list[Any]:
        """First argument of every call, in the order calls started."""
        return [args[0] for _, _, args in self.calls if args]


# ============================================================================
# MOCK UNIT
# ============================================================================


class MockUnit:
    """Mock raw execution unit."""

    def __init__(self, unit_no: int) -> None:
        self.unit_no = unit_no
        self.listeners: dict[UnitSignal, list[SignalListener]] = defaultdict(list)
        self.terminate_calls = 0

    @property
    def terminated(self) -> bool:
        return self.terminate_calls > 0

    def add_listener(self, signal: UnitSignal, listener: SignalListener) -> None:
        self.listeners[signal].append(listener)

    def terminate(self) -> None:
        self.terminate_calls += 1

    def crash(self, signal: UnitSignal = UnitSignal.ERROR) -> None:
        """Fire a failure signal as a dying worker would."""
        for listener in list(self.listeners[signal]):
            listener(signal)


class MockInterface:
    """Mock call surface for a MockUnit."""

    def __init__(self, unit: MockUnit, factory: MockUnitFactory) -> None:
        self._unit = unit
        self._factory = factory

    async def _track(self, method: str, args: tuple[Any, ...], coro: Any) -> Any:
        tracker = self._factory.tracker
        tracker.enter(self._unit.unit_no, method, args)
        try:
            return await coro
        finally:
            tracker.exit(self._unit.unit_no)

    async def echo(self, value: Any) -> Any:
        async def run() -> Any:
            await asyncio.sleep(0.005)
            return value

        return await self._track("echo", (value,), run())

    async def fail(self, message: str = "fail") -> Any:
        async def run() -> Any:
            await asyncio.sleep(0)
            raise ValueError(message)

        return await self._track("fail", (message,), run())

    async def delay_and_return(self, ms: float, value: Any) -> Any:
        async def run() -> Any:
            await asyncio.sleep(ms / 1000)
            return value

        return await self._track("delay_and_return", (ms, value), run())

    async def hold(self, key: str) -> str:
        """Block until the test releases ``key``."""

        async def run() -> str:
            await self._factory.gate(key).wait()
            return key

        return await self._track("hold", (key,), run())

    async def crash(self) -> Any:
        """Kill the unit mid-call; the call never returns on its own."""

        async def run() -> Any:
            asyncio.get_running_loop().call_soon(self._unit.crash)
            await asyncio.Event().wait()

        return await self._track("crash", (), run())

    def sync_echo(self, value: Any) -> Any:
        return value

    def unit_no(self) -> int:
        return self._unit.unit_no

    def call_hook(self) -> Any:
        """Run the factory hook synchronously inside the call."""
        return self._factory.hook()


class MockUnitFactory:
    """Creates mock units and records what it created."""

    def __init__(self) -> None:
        self.units: list[MockUnit] = []
        self.tracker = ConcurrencyTracker()
        self.fail_creation = False
        self.hook: Callable[[], Any] = lambda: None
        self._gates: dict[str, asyncio.Event] = {}

    @property
    def created(self) -> int:
        return len(self.units)

    def create_unit(self) -> MockUnit:
        if self.fail_creation:
            raise OSError("cannot start unit")
        unit = MockUnit(len(self.units))
        self.units.append(unit)
        return unit

    def wrap(self, unit: MockUnit) -> MockInterface:
        return MockInterface(unit, self)

    def gate(self, key: str) -> asyncio.Event:
        if key not in self._gates:
            self._gates[key] = asyncio.Event()
        return self._gates[key]

    def release(self, key: str) -> None:
        self.gate(key).set()
