"""
Shared machinery for tracked containers.

Every mutator on a tracked container validates first, mutates second and
emits exactly one Step last. A failed validation raises before any state is
touched, so a container never ends up partially mutated and the step log
never contains a step for an operation that did not happen.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

from .schemas import Step
from .steps import Clock, ObserverLike, as_callback, wall_clock_ms


class ContainerError(Exception):
    """Base class for tracked container failures."""


class InvalidIndex(ContainerError, IndexError):
    pass


class InvalidRange(ContainerError, ValueError):
    pass


class TrackedContainer:
    """Base class wiring a container to its step observer."""

    target: str = "container"

    def __init__(
        self,
        observer: ObserverLike | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._callback = as_callback(observer)
        self._clock: Clock = clock or wall_clock_ms

    def to_list(self) -> list[Any]:
        raise NotImplementedError

    def _replace(self, values: list[Any]) -> None:
        raise NotImplementedError

    @property
    def size(self) -> int:
        return len(self)

    def __len__(self) -> int:
        return len(self.to_list())

    def __iter__(self) -> Iterator[Any]:
        return iter(self.to_list())

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.to_list()!r})"

    @staticmethod
    def _coerce(values: Any) -> list[Any]:
        """Normalize constructor or ``reset`` input into the ``_replace`` form."""
        return copy_values(values)

    def reset(self, new_data: Iterable[Any]) -> None:
        """Replace the whole contents in one atomic ``reset`` step."""
        values = self._coerce(new_data)
        previous_size = len(self)
        self._replace(values)
        self._emit("reset", [values], {"previous_size": previous_size})

    def _emit(
        self,
        operation: str,
        args: Sequence[Any],
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        if self._callback is None:
            return
        step = Step(
            type=operation,
            target=self.target,
            args=copy.deepcopy(list(args)),
            result=copy.deepcopy(self.to_list()),
            timestamp=int(self._clock()),
            metadata=copy.deepcopy(dict(metadata or {})),
        )
        self._callback(step)

    def _check_index(self, index: object, upper: int, operation: str) -> int:
        """Validate ``index`` against ``[0, upper)`` and return it."""
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidIndex(f"{operation}: index must be an integer, got {index!r}")
        if index < 0 or index >= upper:
            raise InvalidIndex(f"{operation}: index {index} out of range for size {len(self)}")
        return index


def copy_values(values: Iterable[Any] | None) -> list[Any]:
    if values is None:
        return []
    if isinstance(values, TrackedContainer):
        return copy.deepcopy(values.to_list())
    return copy.deepcopy(list(values))
