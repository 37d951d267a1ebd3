"""
Tracking Module

Operation-tracking containers that turn mutations into an ordered step log.

This module provides:
- The immutable Step record and step observers
- Tracked array, linked list, stack and queue wrappers
- Tracked hash map, binary search tree and graph
- An explicit container registry used by the sandbox host
"""

__version__ = "0.1.0"

from .array import TrackedArray
from .base import ContainerError, InvalidIndex, InvalidRange, TrackedContainer
from .binary_tree import TrackedBinaryTree
from .graph import TrackedGraph
from .hash_map import TrackedHashMap
from .linked_list import TrackedLinkedList
from .queue import TrackedQueue
from .registry import ContainerRegistry, create_default_registry
from .schemas import BaseSchema, Step
from .stack import TrackedStack
from .steps import StepObserver, StepRecorder

__all__ = [
    "BaseSchema",
    "ContainerError",
    "ContainerRegistry",
    "InvalidIndex",
    "InvalidRange",
    "Step",
    "StepObserver",
    "StepRecorder",
    "TrackedArray",
    "TrackedBinaryTree",
    "TrackedContainer",
    "TrackedGraph",
    "TrackedHashMap",
    "TrackedLinkedList",
    "TrackedQueue",
    "TrackedStack",
    "create_default_registry",
]
