"""TrackedStack: LIFO container that records pushes and pops."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .base import InvalidIndex, TrackedContainer, copy_values
from .steps import Clock, ObserverLike


class TrackedStack(TrackedContainer):
    target = "stack"

    def __init__(
        self,
        initial_data: Iterable[Any] | None = None,
        observer: ObserverLike | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(observer=observer, clock=clock)
        self._items: list[Any] = copy_values(initial_data)

    def to_list(self) -> list[Any]:
        return list(self._items)

    def _replace(self, values: list[Any]) -> None:
        self._items = values

    def __len__(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def peek(self) -> Any:
        return self._items[-1] if self._items else None

    def push(self, value: Any) -> TrackedStack:
        self._items.append(value)
        self._emit("push", [value], {"index": len(self._items) - 1, "value": value})
        return self

    def pop(self) -> Any:
        if not self._items:
            raise InvalidIndex("pop: stack is empty")
        value = self._items.pop()
        self._emit("pop", [], {"index": len(self._items), "value": value})
        return value

    def clear(self) -> TrackedStack:
        previous_size = len(self._items)
        self._items = []
        self._emit("clear", [], {"previous_size": previous_size})
        return self
