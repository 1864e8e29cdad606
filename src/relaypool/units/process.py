"""Process-backed execution units.

Each unit owns one worker process. The call surface is the set of
attributes of an importable module, resolved inside the worker process.
"""

from __future__ import annotations

import asyncio
import importlib
import os
import threading
from collections import defaultdict
from collections.abc import Callable
from concurrent.futures import Future, ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from typing import TYPE_CHECKING, Any

import psutil
import structlog

from relaypool.core.interfaces.unit import SignalListener, UnitSignal

if TYPE_CHECKING:
    from multiprocessing.context import BaseContext

logger = structlog.get_logger(__name__)


# Seconds between liveness checks of an idle worker
MONITOR_INTERVAL = 0.05


def _run(target: str, method: str, args: tuple[Any, ...]) -> Any:
    """Worker-side entry point: call ``target.method(*args)``."""
    module = importlib.import_module(target)
    func = getattr(module, method)
    return func(*args)


class ProcessUnit:
    """
    An execution unit backed by a single worker process.

    The worker is started when the unit is created. A call that observes
    the worker's death fails with ``BrokenProcessPool`` and fires
    ``UnitSignal.ERROR``; a worker that dies between calls is noticed by a
    monitor thread, which fires ``UnitSignal.CLOSE``. Listeners are
    notified at most once, and never after ``terminate()``.
    """

    def __init__(self, target: str, mp_context: BaseContext | None = None) -> None:
        """
        Initialize process unit and start its worker.

        Args:
            target: Importable module whose attributes are callable remotely
            mp_context: Optional multiprocessing context for the worker
        """
        self.target = target
        self._executor = ProcessPoolExecutor(max_workers=1, mp_context=mp_context)
        self._listeners: dict[UnitSignal, list[SignalListener]] = defaultdict(list)
        self._terminated = False
        self._failed = False
        self._lock = threading.Lock()
        self._stopped = threading.Event()

        # First job on the worker: report its pid
        self._started: Future[int] = self._executor.submit(os.getpid)
        self._started.add_done_callback(self._on_started)

    @property
    def pid(self) -> int | None:
        """Worker process id, known once the worker has started."""
        if not self._started.done() or self._started.cancelled():
            return None
        if self._started.exception() is not None:
            return None
        return self._started.result()

    @property
    def is_alive(self) -> bool:
        """Check if the unit can still run calls."""
        return not (self._terminated or self._failed)

    def add_listener(self, signal: UnitSignal, listener: SignalListener) -> None:
        """Register a failure listener."""
        self._listeners[signal].append(listener)

    async def run(self, method: str, *args: Any) -> Any:
        """
        Run ``target.method(*args)`` in the worker process.

        Raises:
            RuntimeError: If the unit has been terminated
            BrokenProcessPool: If the worker process died
        """
        if self._terminated:
            raise RuntimeError("Process unit has been terminated")

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, _run, self.target, method, args)
        except BrokenProcessPool:
            self._fail(UnitSignal.ERROR)
            raise

    def memory_mb(self) -> float:
        """Resident memory of the worker process in MB (0 if unknown)."""
        pid = self.pid
        if pid is None:
            return 0
        try:
            return psutil.Process(pid).memory_info().rss / (1024 * 1024)
        except psutil.Error:
            return 0

    def terminate(self) -> None:
        """Shut down the executor and kill the worker, busy or not."""
        with self._lock:
            if self._terminated:
                return
            self._terminated = True

        self._stopped.set()
        self._executor.shutdown(wait=False, cancel_futures=True)

        pid = self.pid
        if pid is not None:
            try:
                process = psutil.Process(pid)
                if process.is_running():
                    process.kill()
            except psutil.NoSuchProcess:
                pass
            except psutil.Error as e:
                logger.warning(
                    "[PROCESS_UNIT] Error killing worker process",
                    pid=pid,
                    error=str(e),
                )

        logger.debug("[PROCESS_UNIT] Unit terminated", target=self.target, pid=pid)

    def _on_started(self, started: Future[int]) -> None:
        if started.cancelled() or started.exception() is not None:
            return

        threading.Thread(
            target=self._monitor,
            args=(started.result(),),
            name=f"relaypool-monitor-{started.result()}",
            daemon=True,
        ).start()

    def _monitor(self, pid: int) -> None:
        """Watch the worker and fire ``CLOSE`` if it exits on its own."""
        try:
            process = psutil.Process(pid)
            while not self._stopped.wait(MONITOR_INTERVAL):
                if process.status() == psutil.STATUS_ZOMBIE:
                    break
        except psutil.NoSuchProcess:
            pass
        except psutil.Error as e:
            logger.warning("[PROCESS_UNIT] Worker monitor failed", pid=pid, error=str(e))
            return

        self._fail(UnitSignal.CLOSE)

    def _fail(self, signal: UnitSignal) -> None:
        with self._lock:
            if self._failed or self._terminated:
                return
            self._failed = True

        self._stopped.set()
        logger.warning(
            "[PROCESS_UNIT] Worker process died",
            target=self.target,
            pid=self.pid,
            signal=signal.value,
        )
        for listener in list(self._listeners[signal]):
            listener(signal)


class ProcessInterface:
    """Call surface of a process unit: ``iface.name(*args)`` runs ``target.name``."""

    def __init__(self, unit: ProcessUnit) -> None:
        self._unit = unit

    def __getattr__(self, method: str) -> Callable[..., Any]:
        if method.startswith("_"):
            raise AttributeError(method)

        async def call(*args: Any) -> Any:
            return await self._unit.run(method, *args)

        call.__name__ = method
        return call


def process_unit_factory(
    target: str,
    mp_context: BaseContext | None = None,
) -> tuple[Callable[[], ProcessUnit], Callable[[ProcessUnit], ProcessInterface]]:
    """
    Build the ``create_unit`` and ``wrap`` factories for a WorkerPool.

    Args:
        target: Importable module whose attributes are callable remotely
        mp_context: Optional multiprocessing context for the workers

    Returns:
        Tuple of (create_unit, wrap)
    """

    def create_unit() -> ProcessUnit:
        return ProcessUnit(target, mp_context=mp_context)

    return create_unit, ProcessInterface
