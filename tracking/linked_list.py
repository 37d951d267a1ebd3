"""TrackedLinkedList: a singly linked list that records mutations as Steps."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from .base import InvalidIndex, TrackedContainer, copy_values
from .steps import Clock, ObserverLike


class _Node:
    __slots__ = ("value", "next")

    def __init__(self, value: Any, next: _Node | None = None) -> None:
        self.value = value
        self.next = next


class TrackedLinkedList(TrackedContainer):
    target = "linkedList"

    def __init__(
        self,
        initial_data: Iterable[Any] | None = None,
        observer: ObserverLike | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(observer=observer, clock=clock)
        self._head: _Node | None = None
        self._tail: _Node | None = None
        self._size = 0
        self._replace(copy_values(initial_data))

    def _replace(self, values: list[Any]) -> None:
        self._head = None
        self._tail = None
        self._size = 0
        for value in values:
            self._link_tail(value)

    def _link_tail(self, value: Any) -> None:
        node = _Node(value)
        if self._tail is None:
            self._head = node
        else:
            self._tail.next = node
        self._tail = node
        self._size += 1

    def _nodes(self) -> Iterator[_Node]:
        current = self._head
        while current is not None:
            yield current
            current = current.next

    def _node_at(self, index: int) -> _Node:
        current = self._head
        for _ in range(index):
            assert current is not None
            current = current.next
        assert current is not None
        return current

    def to_list(self) -> list[Any]:
        return [node.value for node in self._nodes()]

    def __len__(self) -> int:
        return self._size

    @property
    def head(self) -> Any:
        return None if self._head is None else self._head.value

    @property
    def tail(self) -> Any:
        return None if self._tail is None else self._tail.value

    def get(self, index: int) -> Any:
        index = self._check_index(index, self._size, "get")
        return self._node_at(index).value

    def find(self, value: Any) -> int:
        """Index of the first node holding ``value``, or -1."""
        for index, node in enumerate(self._nodes()):
            if node.value == value:
                return index
        return -1

    def append(self, value: Any) -> TrackedLinkedList:
        self._link_tail(value)
        self._emit("append", [value], {"index": self._size - 1, "value": value})
        return self

    def prepend(self, value: Any) -> TrackedLinkedList:
        self._head = _Node(value, self._head)
        if self._tail is None:
            self._tail = self._head
        self._size += 1
        self._emit("prepend", [value], {"index": 0, "value": value})
        return self

    def insert_at(self, index: int, value: Any) -> TrackedLinkedList:
        # insertion accepts index == size (append position)
        index = self._check_index(index, self._size + 1, "insert_at")
        if index == 0:
            self._head = _Node(value, self._head)
            if self._tail is None:
                self._tail = self._head
            self._size += 1
        elif index == self._size:
            self._link_tail(value)
        else:
            previous = self._node_at(index - 1)
            previous.next = _Node(value, previous.next)
            self._size += 1
        self._emit("insertAt", [index, value], {"index": index, "value": value})
        return self

    def delete(self, value: Any) -> bool:
        """Unlink the first node holding ``value``; no step when absent."""
        index = self.find(value)
        if index < 0:
            return False
        self._unlink(index)
        self._emit("delete", [value], {"index": index, "value": value, "deleted": True})
        return True

    def delete_at(self, index: int) -> Any:
        index = self._check_index(index, self._size, "delete_at")
        value = self._unlink(index)
        self._emit("deleteAt", [index], {"index": index, "value": value})
        return value

    def _unlink(self, index: int) -> Any:
        if index == 0:
            assert self._head is not None
            removed = self._head
            self._head = removed.next
            if self._head is None:
                self._tail = None
        else:
            previous = self._node_at(index - 1)
            removed = previous.next
            if removed is None:
                raise InvalidIndex(f"delete_at: index {index} out of range for size {self._size}")
            previous.next = removed.next
            if previous.next is None:
                self._tail = previous
        self._size -= 1
        return removed.value

    def reverse(self) -> TrackedLinkedList:
        previous: _Node | None = None
        current = self._head
        self._tail = self._head
        while current is not None:
            following = current.next
            current.next = previous
            previous = current
            current = following
        self._head = previous
        self._emit("reverse", [], {"completed": True})
        return self

    def clear(self) -> TrackedLinkedList:
        previous_size = self._size
        self._replace([])
        self._emit("clear", [], {"previous_size": previous_size})
        return self
