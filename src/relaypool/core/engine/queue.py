"""FIFO task queue."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

    from relaypool.core.models.task import Task

logger = structlog.get_logger(__name__)


class TaskQueue:
    """
    Unbounded first-in, first-out backlog of undispatched tasks.

    Dispatch order equals submission order. Capacity is bounded only by
    the callers.
    """

    def __init__(self) -> None:
        self._queue: deque[Task] = deque()

        # Stats
        self._stats = {
            "tasks_queued": 0,
            "tasks_dequeued": 0,
            "tasks_abandoned": 0,
        }

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self) -> Iterator[Task]:
        return iter(self._queue)

    @property
    def is_empty(self) -> bool:
        """Check if queue is empty."""
        return not self._queue

    @property
    def stats(self) -> dict[str, int]:
        """Get queue statistics."""
        return self._stats.copy()

    def push(self, task: Task) -> None:
        """Append a task to the tail of the queue."""
        self._queue.append(task)
        self._stats["tasks_queued"] += 1

        logger.debug(
            "Task enqueued",
            task_id=task.id,
            method=task.method,
            queue_size=len(self._queue),
        )

    def peek(self) -> Task | None:
        """Return the head task without removing it."""
        if self._queue:
            return self._queue[0]
        return None

    def pop(self) -> Task:
        """
        Remove and return the head task.

        Raises:
            IndexError: If the queue is empty
        """
        task = self._queue.popleft()
        self._stats["tasks_dequeued"] += 1
        return task

    def clear(self) -> int:
        """
        Drop every queued task without settling it.

        Returns:
            Number of tasks dropped
        """
        count = len(self._queue)
        self._queue.clear()
        self._stats["tasks_abandoned"] += count
        return count
