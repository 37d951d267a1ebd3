"""Step observers and the default wall clock used by tracked containers."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from typing import Protocol, Union, runtime_checkable

from .schemas import Step

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


@runtime_checkable
class StepObserver(Protocol):
    def on_step(self, step: Step) -> None: ...


ObserverLike = Union[StepObserver, Callable[[Step], None]]


def as_callback(observer: ObserverLike | None) -> Callable[[Step], None] | None:
    """Normalize an observer object or plain callable into a callback."""
    if observer is None:
        return None
    if isinstance(observer, StepObserver):
        return observer.on_step
    if callable(observer):
        return observer
    raise TypeError(f"Step observer must be callable or define on_step(), got {type(observer).__name__}")


class StepRecorder:
    """Collects emitted steps in emission order."""

    def __init__(self) -> None:
        self._steps: list[Step] = []

    def on_step(self, step: Step) -> None:
        self._steps.append(step)

    def __call__(self, step: Step) -> None:
        self.on_step(step)

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[Step]:
        return iter(list(self._steps))

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    def types(self) -> list[str]:
        return [step.type for step in self._steps]

    def to_jsonl(self) -> str:
        return "\n".join(step.to_json() for step in self._steps)

    def clear(self) -> None:
        self._steps.clear()
