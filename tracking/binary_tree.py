"""TrackedBinaryTree: a binary search tree that records insertions and deletions."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from typing import Any

from .base import TrackedContainer, copy_values
from .steps import Clock, ObserverLike


class _Node:
    __slots__ = ("value", "left", "right")

    def __init__(self, value: Any) -> None:
        self.value = value
        self.left: _Node | None = None
        self.right: _Node | None = None


class TrackedBinaryTree(TrackedContainer):
    """
    Unbalanced binary search tree over mutually comparable values.

    Duplicates are ignored: ``insert`` of a value already present returns
    False and emits nothing. ``to_list`` is the in-order traversal, so the
    step ``result`` is always the sorted contents. Every step also carries a
    ``structure`` entry: the tree in level order as ``{value, left, right}``
    records, where ``left``/``right`` are child values or None.

    All walks are iterative, so tree height is bounded only by memory.
    """

    target = "binaryTree"

    def __init__(
        self,
        initial_data: Iterable[Any] | None = None,
        observer: ObserverLike | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(observer=observer, clock=clock)
        self._root: _Node | None = None
        self._count = 0
        self._replace(copy_values(initial_data))

    def _replace(self, values: list[Any]) -> None:
        previous = self._root, self._count
        self._root, self._count = None, 0
        try:
            for value in values:
                self._attach(value)
        except TypeError:
            self._root, self._count = previous
            raise

    def to_list(self) -> list[Any]:
        return self.inorder()

    def __len__(self) -> int:
        return self._count

    def __contains__(self, value: object) -> bool:
        return self.search(value)

    @property
    def root(self) -> Any:
        return None if self._root is None else self._root.value

    def _attach(self, value: Any) -> tuple[bool, list[Any], str | None]:
        """Place ``value``; returns (inserted, path of visited values, direction)."""
        path: list[Any] = []
        if self._root is None:
            self._root = _Node(value)
            self._count += 1
            return True, path, None
        node = self._root
        while True:
            path.append(node.value)
            if value < node.value:
                if node.left is None:
                    node.left = _Node(value)
                    self._count += 1
                    return True, path, "left"
                node = node.left
            elif value > node.value:
                if node.right is None:
                    node.right = _Node(value)
                    self._count += 1
                    return True, path, "right"
                node = node.right
            else:
                return False, path, None

    def insert(self, value: Any) -> bool:
        inserted, path, direction = self._attach(value)
        if not inserted:
            return False
        self._emit(
            "insert",
            [value],
            {
                "value": value,
                "parent": path[-1] if path else None,
                "direction": direction,
                "path": path,
                "is_root": not path,
                "structure": self.structure(),
            },
        )
        return True

    def delete(self, value: Any) -> bool:
        """Remove ``value``; returns False, with no step, when it is absent."""
        parent: _Node | None = None
        node = self._root
        path: list[Any] = []
        while node is not None and node.value != value:
            path.append(node.value)
            parent = node
            node = node.left if value < node.value else node.right
        if node is None:
            return False

        successor = None
        if node.left is not None and node.right is not None:
            case = "two_children"
            successor_parent = node
            child = node.right
            while child.left is not None:
                successor_parent = child
                child = child.left
            successor = child.value
            node.value = child.value
            if successor_parent is node:
                successor_parent.right = child.right
            else:
                successor_parent.left = child.right
        else:
            case = "leaf" if node.left is None and node.right is None else "one_child"
            replacement = node.left if node.left is not None else node.right
            if parent is None:
                self._root = replacement
            elif parent.left is node:
                parent.left = replacement
            else:
                parent.right = replacement
        self._count -= 1

        self._emit(
            "delete",
            [value],
            {
                "value": value,
                "case": case,
                "successor": successor,
                "path": path,
                "structure": self.structure(),
            },
        )
        return True

    def clear(self) -> None:
        cleared = self._count
        self._root = None
        self._count = 0
        self._emit("clear", [], {"cleared": cleared, "structure": []})

    def search(self, value: Any) -> bool:
        node = self._root
        while node is not None:
            if value == node.value:
                return True
            node = node.left if value < node.value else node.right
        return False

    def path_to(self, value: Any) -> list[Any]:
        """Values visited looking for ``value``, ending at it when present."""
        path = []
        node = self._root
        while node is not None:
            path.append(node.value)
            if value == node.value:
                break
            node = node.left if value < node.value else node.right
        return path

    def inorder(self) -> list[Any]:
        out, stack, node = [], [], self._root
        while stack or node is not None:
            while node is not None:
                stack.append(node)
                node = node.left
            node = stack.pop()
            out.append(node.value)
            node = node.right
        return out

    def preorder(self) -> list[Any]:
        out, stack = [], [self._root] if self._root is not None else []
        while stack:
            node = stack.pop()
            out.append(node.value)
            if node.right is not None:
                stack.append(node.right)
            if node.left is not None:
                stack.append(node.left)
        return out

    def postorder(self) -> list[Any]:
        out, stack = [], [self._root] if self._root is not None else []
        while stack:
            node = stack.pop()
            out.append(node.value)
            if node.left is not None:
                stack.append(node.left)
            if node.right is not None:
                stack.append(node.right)
        out.reverse()
        return out

    def level_order(self) -> list[Any]:
        return [record["value"] for record in self.structure()]

    def structure(self) -> list[dict[str, Any]]:
        records = []
        queue = deque([self._root] if self._root is not None else [])
        while queue:
            node = queue.popleft()
            records.append(
                {
                    "value": node.value,
                    "left": None if node.left is None else node.left.value,
                    "right": None if node.right is None else node.right.value,
                }
            )
            queue.extend(child for child in (node.left, node.right) if child is not None)
        return records

    def height(self) -> int:
        """Number of levels; 0 for an empty tree."""
        levels = 0
        queue = deque([self._root] if self._root is not None else [])
        while queue:
            levels += 1
            for _ in range(len(queue)):
                node = queue.popleft()
                queue.extend(child for child in (node.left, node.right) if child is not None)
        return levels

    def is_valid_bst(self) -> bool:
        values = self.inorder()
        return all(a < b for a, b in zip(values, values[1:]))
