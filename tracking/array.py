"""TrackedArray: an indexable sequence that records every mutation as a Step."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from .base import InvalidIndex, InvalidRange, TrackedContainer, copy_values
from .steps import Clock, ObserverLike


class TrackedArray(TrackedContainer):
    """
    Array wrapper exposing named accessors and mutators.

    Plain item assignment is unsupported; writes go through
    ``set`` so that every mutation path reaches the observer. Reads
    (``get``, ``[]``, ``compare``, ``equals``, iteration) never emit.
    """

    target = "array"

    def __init__(
        self,
        initial_data: Iterable[Any] | None = None,
        observer: ObserverLike | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(observer=observer, clock=clock)
        self._data: list[Any] = copy_values(initial_data)

    def to_list(self) -> list[Any]:
        return list(self._data)

    def _replace(self, values: list[Any]) -> None:
        self._data = values

    def __len__(self) -> int:
        return len(self._data)

    @property
    def length(self) -> int:
        return len(self._data)

    def get(self, index: int) -> Any:
        return self._data[self._check_index(index, len(self._data), "get")]

    def __getitem__(self, index: int) -> Any:
        return self.get(index)

    def compare(self, i: int, j: int) -> int:
        """Three-way comparison of two elements; -1, 0 or 1."""
        a = self.get(i)
        b = self.get(j)
        return -1 if a < b else 1 if a > b else 0

    def equals(self, i: int, j: int) -> bool:
        return self.get(i) == self.get(j)

    def set(self, index: int, value: Any) -> None:
        index = self._check_index(index, len(self._data), "set")
        old_value = self._data[index]
        self._data[index] = value
        self._emit("set", [index, value], {"index": index, "value": value, "old_value": old_value})

    def push(self, value: Any) -> int:
        self._data.append(value)
        index = len(self._data) - 1
        self._emit("push", [value], {"index": index, "value": value})
        return len(self._data)

    def pop(self) -> Any:
        if not self._data:
            raise InvalidIndex("pop: array is empty")
        value = self._data.pop()
        self._emit("pop", [], {"index": len(self._data), "value": value})
        return value

    def shift(self) -> Any:
        if not self._data:
            raise InvalidIndex("shift: array is empty")
        value = self._data.pop(0)
        self._emit("shift", [], {"index": 0, "value": value})
        return value

    def unshift(self, value: Any) -> int:
        self._data.insert(0, value)
        self._emit("unshift", [value], {"index": 0, "value": value})
        return len(self._data)

    def swap(self, i: int, j: int) -> None:
        size = len(self._data)
        i = self._check_index(i, size, "swap")
        j = self._check_index(j, size, "swap")
        self._data[i], self._data[j] = self._data[j], self._data[i]
        self._emit(
            "swap",
            [i, j],
            {"indices": [i, j], "values": [self._data[i], self._data[j]]},
        )

    def reverse(self) -> None:
        self._data.reverse()
        self._emit("reverse", [], {})

    def sort(
        self,
        key: Callable[[Any], Any] | None = None,
        reverse: bool = False,
    ) -> None:
        # sorted() leaves the buffer untouched if a comparison raises.
        ordered = sorted(self._data, key=key, reverse=reverse)
        self._data = ordered
        self._emit("sort", [bool(reverse)], {"sorted": True})

    def splice(self, start: int, delete_count: int = 0, *items: Any) -> list[Any]:
        """Remove up to ``delete_count`` elements at ``start`` and insert ``items`` there."""
        size = len(self._data)
        if isinstance(start, bool) or not isinstance(start, int) or start < 0 or start > size:
            raise InvalidRange(f"splice: start {start!r} out of range for size {size}")
        if isinstance(delete_count, bool) or not isinstance(delete_count, int) or delete_count < 0:
            raise InvalidRange(f"splice: delete_count must be a non-negative integer, got {delete_count!r}")
        end = min(start + delete_count, size)
        deleted = self._data[start:end]
        self._data[start:end] = list(items)
        self._emit(
            "splice",
            [start, delete_count, *items],
            {
                "start": start,
                "delete_count": len(deleted),
                "insert_count": len(items),
                "items": list(items),
                "deleted": deleted,
            },
        )
        return deleted
