"""
Sandbox policy definitions and import/builtin guards.

The guards are installed into the user namespace's ``__builtins__`` mapping
rather than the interpreter-wide ``builtins`` module, so host machinery
(pydantic, json, the message channel) keeps its normal imports while the
submitted code sees only the restricted view.
"""

from __future__ import annotations

import builtins
from collections.abc import Callable, Iterable, Mapping, Sequence
from types import ModuleType
from typing import cast

BLOCKED_MODULES = [
    "os",
    "sys",
    "subprocess",
    "socket",
    "urllib",
    "requests",
    "http",
    "ctypes",
    "importlib",
    "builtins",
    "pathlib",
    "shutil",
    "threading",
    "multiprocessing",
    "signal",
    "sandbox",
]

BLOCKED_BUILTINS = [
    "eval",
    "exec",
    "compile",
    "open",
    "input",
    "breakpoint",
    "globals",
    "locals",
    "vars",
    "memoryview",
    "exit",
    "quit",
    "help",
]

ALLOWED_MODULES = [
    "math",
    "random",
    "itertools",
    "functools",
    "collections",
    "typing",
    "dataclasses",
    "heapq",
    "bisect",
    "string",
]

ImportHook = Callable[
    [str, Mapping[str, object] | None, Mapping[str, object] | None, Sequence[str], int],
    ModuleType,
]


def _normalize_modules(modules: Iterable[str] | None) -> set[str]:
    return {name for name in (modules or [])}


def build_import_guard(
    allowed_modules: Iterable[str] | None = None,
    blocked_modules: Iterable[str] | None = None,
) -> ImportHook:
    """
    Build a restricted __import__ hook that only allows allowlisted modules
    and explicitly blocks denied modules.
    """
    allowed = _normalize_modules(allowed_modules or ALLOWED_MODULES)
    blocked = _normalize_modules(blocked_modules or BLOCKED_MODULES)
    original_import = cast(ImportHook, builtins.__import__)

    def guarded_import(
        name: str,
        globals: Mapping[str, object] | None = None,
        locals: Mapping[str, object] | None = None,
        fromlist: Sequence[str] = (),
        level: int = 0,
    ) -> ModuleType:
        if level != 0:
            raise ImportError("Relative imports are blocked by sandbox policy")
        root = name.split(".")[0]
        if root in blocked or name in blocked:
            raise ImportError(f"Import of '{root}' blocked by sandbox policy")
        if root not in allowed:
            raise ImportError(f"Import of '{root}' is not allowlisted")
        return original_import(name, globals, locals, fromlist, level)

    return guarded_import


def _blocked(*_args: object, **_kwargs: object) -> None:
    raise RuntimeError("Blocked by sandbox policy")


def build_restricted_builtins(
    allowed_modules: Iterable[str] | None = None,
    blocked_modules: Iterable[str] | None = None,
    blocked_builtins: Iterable[str] | None = None,
) -> dict[str, object]:
    """Copy of the builtins namespace with imports guarded and dangerous names disabled."""
    namespace: dict[str, object] = dict(vars(builtins))
    namespace["__import__"] = build_import_guard(allowed_modules, blocked_modules)
    for name in _normalize_modules(blocked_builtins or BLOCKED_BUILTINS):
        if name in namespace:
            namespace[name] = _blocked
    return namespace
