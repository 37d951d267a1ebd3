"""TrackedQueue: FIFO container that records enqueues and dequeues."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from typing import Any

from .base import InvalidIndex, TrackedContainer, copy_values
from .steps import Clock, ObserverLike


class TrackedQueue(TrackedContainer):
    target = "queue"

    def __init__(
        self,
        initial_data: Iterable[Any] | None = None,
        observer: ObserverLike | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(observer=observer, clock=clock)
        self._items: deque[Any] = deque(copy_values(initial_data))

    def to_list(self) -> list[Any]:
        return list(self._items)

    def _replace(self, values: list[Any]) -> None:
        self._items = deque(values)

    def __len__(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def peek(self) -> Any:
        return self._items[0] if self._items else None

    def enqueue(self, value: Any) -> TrackedQueue:
        self._items.append(value)
        self._emit("enqueue", [value], {"index": len(self._items) - 1, "value": value})
        return self

    def dequeue(self) -> Any:
        if not self._items:
            raise InvalidIndex("dequeue: queue is empty")
        value = self._items.popleft()
        self._emit("dequeue", [], {"index": 0, "value": value})
        return value

    def clear(self) -> TrackedQueue:
        previous_size = len(self._items)
        self._items = deque()
        self._emit("clear", [], {"previous_size": previous_size})
        return self
