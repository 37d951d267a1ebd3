"""Explicit registry of tracked container kinds."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .array import TrackedArray
from .base import TrackedContainer
from .binary_tree import TrackedBinaryTree
from .graph import TrackedGraph
from .hash_map import TrackedHashMap
from .linked_list import TrackedLinkedList
from .queue import TrackedQueue
from .stack import TrackedStack
from .steps import Clock, ObserverLike


class ContainerRegistry:
    """Maps container kind names to tracked container classes.

    The registry is an ordinary object: build one, hand it to whatever needs
    to create containers, and ``clear()`` it between tests.
    """

    def __init__(self) -> None:
        self._kinds: dict[str, type[TrackedContainer]] = {}

    def register(self, kind: str, container_cls: type[TrackedContainer]) -> None:
        key = kind.lower()
        if key in self._kinds:
            raise ValueError(f"Container kind already registered: {kind}")
        self._kinds[key] = container_cls

    def unregister(self, kind: str) -> None:
        self._kinds.pop(kind.lower(), None)

    def get(self, kind: str) -> type[TrackedContainer]:
        try:
            return self._kinds[kind.lower()]
        except KeyError:
            known = ", ".join(sorted(self._kinds)) or "none"
            raise KeyError(f"Unknown container kind '{kind}' (known: {known})") from None

    def create(
        self,
        kind: str,
        data: Iterable[Any] | None = None,
        observer: ObserverLike | None = None,
        clock: Clock | None = None,
    ) -> TrackedContainer:
        return self.get(kind)(data, observer=observer, clock=clock)

    def kinds(self) -> list[str]:
        return sorted(self._kinds)

    def __contains__(self, kind: object) -> bool:
        return isinstance(kind, str) and kind.lower() in self._kinds

    def clear(self) -> None:
        self._kinds.clear()


def create_default_registry() -> ContainerRegistry:
    registry = ContainerRegistry()
    registry.register("array", TrackedArray)
    registry.register("linkedlist", TrackedLinkedList)
    registry.register("stack", TrackedStack)
    registry.register("queue", TrackedQueue)
    registry.register("hashmap", TrackedHashMap)
    registry.register("binarytree", TrackedBinaryTree)
    registry.register("graph", TrackedGraph)
    return registry
