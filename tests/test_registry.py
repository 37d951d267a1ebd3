"""Tests for the container registry."""

from __future__ import annotations

import pytest

from tracking import (
    ContainerRegistry,
    StepRecorder,
    TrackedArray,
    TrackedBinaryTree,
    TrackedGraph,
    TrackedHashMap,
    TrackedLinkedList,
    TrackedQueue,
    TrackedStack,
    create_default_registry,
)


def test_default_registry_kinds() -> None:
    registry = create_default_registry()
    assert registry.kinds() == [
        "array",
        "binarytree",
        "graph",
        "hashmap",
        "linkedlist",
        "queue",
        "stack",
    ]
    assert registry.get("array") is TrackedArray
    assert registry.get("LinkedList") is TrackedLinkedList
    assert registry.get("stack") is TrackedStack
    assert registry.get("queue") is TrackedQueue
    assert registry.get("HashMap") is TrackedHashMap
    assert registry.get("binaryTree") is TrackedBinaryTree
    assert registry.get("graph") is TrackedGraph


def test_create_wires_observer() -> None:
    registry = create_default_registry()
    recorder = StepRecorder()

    arr = registry.create("array", [2, 1], observer=recorder)
    arr.swap(0, 1)

    assert isinstance(arr, TrackedArray)
    assert recorder.types() == ["swap"]


def test_unknown_kind_lists_known_kinds() -> None:
    registry = create_default_registry()
    with pytest.raises(KeyError, match="known: array"):
        registry.get("heap")


def test_duplicate_registration_rejected() -> None:
    registry = ContainerRegistry()
    registry.register("array", TrackedArray)
    with pytest.raises(ValueError):
        registry.register("Array", TrackedArray)


def test_registries_are_independent() -> None:
    first = create_default_registry()
    second = create_default_registry()

    first.unregister("queue")
    assert "queue" not in first
    assert "queue" in second

    second.clear()
    assert second.kinds() == []
    assert "array" in first


def test_create_accepts_non_sequence_kinds() -> None:
    registry = create_default_registry()

    table = registry.create("hashmap", {"a": 1})
    tree = registry.create("binarytree", [2, 1, 3])
    graph = registry.create("graph", [{"vertex": "a", "neighbors": ["b"]}])

    assert table.to_list() == [["a", 1]]
    assert tree.to_list() == [1, 2, 3]
    assert graph.neighbors("b") == ["a"]
