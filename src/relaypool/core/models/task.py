"""Task data models."""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from typing import Any

_task_ids = itertools.count(1)


@dataclass(frozen=True)
class Task:
    """A queued remote call and the future its caller awaits."""

    method: str
    args: tuple[Any, ...]
    future: asyncio.Future[Any] = field(repr=False, compare=False)
    id: int = field(default_factory=lambda: next(_task_ids))
    submitted_at: float = field(default_factory=time.monotonic, compare=False)

    @property
    def settled(self) -> bool:
        """Whether the caller's future already holds an outcome."""
        return self.future.done()

    def resolve(self, result: Any) -> None:
        """Settle the caller with a result."""
        if not self.future.done():
            self.future.set_result(result)

    def reject(self, error: BaseException) -> None:
        """Settle the caller with a failure."""
        if not self.future.done():
            self.future.set_exception(error)
