"""
Host-side counters referenced by instrumented source.

Instrumented code calls into these objects through reserved names bound in
the user namespace (see ``sandbox.instrument``). Limit faults derive from
``BaseException`` so a blanket ``except Exception`` in submitted code cannot
swallow them.
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Iterable, Iterator
from typing import Any, TypeVar

from sandbox.timeouts import Fault

T = TypeVar("T")


class HostFault(BaseException):
    """A limit fault raised inside the host."""

    fault: Fault

    def __init__(self, fault: Fault, message: str) -> None:
        super().__init__(message)
        self.fault = fault


class LoopLimitExceeded(HostFault):
    def __init__(self, iterations: int) -> None:
        super().__init__(Fault.loop(iterations), f"Infinite loop detected after {iterations} iterations")


class RecursionLimitExceeded(HostFault):
    def __init__(self, depth: int) -> None:
        super().__init__(Fault.recursion(depth), f"Maximum recursion depth exceeded ({depth})")


class LoopCounter:
    __slots__ = ("limit", "count")

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.count = 0

    def tick(self) -> None:
        self.count += 1
        if self.count > self.limit:
            raise LoopLimitExceeded(self.limit)


class LoopGuard:
    """Hands out one counter per loop execution."""

    def __init__(self, max_iterations: int) -> None:
        self.max_iterations = max_iterations

    def enter(self) -> LoopCounter:
        return LoopCounter(self.max_iterations)

    def wrap(self, iterable: Iterable[T]) -> Iterator[T]:
        """Count iterations of a comprehension's source iterable."""
        counter = self.enter()
        for item in iterable:
            counter.tick()
            yield item


class RecursionGuard:
    """Tracks the live call depth of instrumented functions."""

    def __init__(self, max_depth: int) -> None:
        self.max_depth = max_depth
        self.depth = 0

    def track(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def tracked_async(*args: Any, **kwargs: Any) -> Any:
                self.depth += 1
                try:
                    if self.depth > self.max_depth:
                        raise RecursionLimitExceeded(self.max_depth)
                    return await fn(*args, **kwargs)
                finally:
                    self.depth -= 1

            return tracked_async

        @functools.wraps(fn)
        def tracked(*args: Any, **kwargs: Any) -> Any:
            self.depth += 1
            try:
                if self.depth > self.max_depth:
                    raise RecursionLimitExceeded(self.max_depth)
                return fn(*args, **kwargs)
            finally:
                self.depth -= 1

        return tracked
