"""
Source instrumentation for loop and recursion protection.

The submitted source is parsed with ``ast`` and rewritten so that:

- each ``for``/``while`` loop gets a fresh counter bound to a reserved local
  right before the loop, ticked as the first statement of its body;
- each comprehension iterates through ``__loop_guard__.wrap(...)``;
- each ``def`` and ``async def`` gets ``__recursion_guard__.track`` as its
  innermost decorator, and each ``lambda`` is wrapped in a ``track`` call.

The reserved names are bound by the host before the code runs.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass

from sandbox.timeouts import DEFAULT_TIMEOUT_CONFIG, TimeoutConfig

LOOP_GUARD_NAME = "__loop_guard__"
RECURSION_GUARD_NAME = "__recursion_guard__"
_COUNTER_PATTERN = re.compile(r"^__loop_\d+__$")
RESERVED_NAMES = frozenset({LOOP_GUARD_NAME, RECURSION_GUARD_NAME})


@dataclass(frozen=True)
class InstrumentationResult:
    code: str
    error: str | None = None
    loops: int = 0
    functions: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def _format_syntax_error(exc: SyntaxError) -> str:
    location = f" (line {exc.lineno})" if exc.lineno else ""
    return f"SyntaxError: {exc.msg}{location}"


def is_reserved_name(name: str) -> bool:
    return name in RESERVED_NAMES or bool(_COUNTER_PATTERN.match(name))


def _find_reserved_name(tree: ast.AST) -> str | None:
    for node in ast.walk(tree):
        names: list[str] = []
        if isinstance(node, ast.Name):
            names.append(node.id)
        elif isinstance(node, ast.arg):
            names.append(node.arg)
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.append(node.name)
        elif isinstance(node, (ast.Global, ast.Nonlocal)):
            names.extend(node.names)
        elif isinstance(node, ast.alias):
            names.append(node.asname or node.name)
        for name in names:
            if is_reserved_name(name):
                return name
    return None


def _guard_call(guard: str, method: str, args: list[ast.expr]) -> ast.Call:
    return ast.Call(
        func=ast.Attribute(value=ast.Name(id=guard, ctx=ast.Load()), attr=method, ctx=ast.Load()),
        args=args,
        keywords=[],
    )


class _Instrumenter(ast.NodeTransformer):
    def __init__(self, inject_loops: bool, track_recursion: bool) -> None:
        self.inject_loops = inject_loops
        self.track_recursion = track_recursion
        self.loops = 0
        self.functions = 0

    def _guard_loop(self, node: ast.While | ast.For | ast.AsyncFor) -> list[ast.stmt]:
        counter = f"__loop_{self.loops}__"
        self.loops += 1
        setup = ast.Assign(
            targets=[ast.Name(id=counter, ctx=ast.Store())],
            value=_guard_call(LOOP_GUARD_NAME, "enter", []),
        )
        tick = ast.Expr(
            value=ast.Call(
                func=ast.Attribute(
                    value=ast.Name(id=counter, ctx=ast.Load()), attr="tick", ctx=ast.Load()
                ),
                args=[],
                keywords=[],
            )
        )
        ast.copy_location(setup, node)
        ast.copy_location(tick, node)
        node.body.insert(0, tick)
        return [setup, node]

    def visit_While(self, node: ast.While) -> ast.AST | list[ast.stmt]:
        self.generic_visit(node)
        return self._guard_loop(node) if self.inject_loops else node

    def visit_For(self, node: ast.For) -> ast.AST | list[ast.stmt]:
        self.generic_visit(node)
        return self._guard_loop(node) if self.inject_loops else node

    def visit_AsyncFor(self, node: ast.AsyncFor) -> ast.AST | list[ast.stmt]:
        self.generic_visit(node)
        return self._guard_loop(node) if self.inject_loops else node

    def _guard_comprehension(self, node: ast.ListComp | ast.SetComp | ast.DictComp | ast.GeneratorExp) -> ast.AST:
        self.generic_visit(node)
        if not self.inject_loops:
            return node
        for generator in node.generators:
            if generator.is_async:
                continue
            generator.iter = ast.copy_location(
                _guard_call(LOOP_GUARD_NAME, "wrap", [generator.iter]), generator.iter
            )
            self.loops += 1
        return node

    visit_ListComp = _guard_comprehension
    visit_SetComp = _guard_comprehension
    visit_DictComp = _guard_comprehension
    visit_GeneratorExp = _guard_comprehension

    def _track_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> ast.AST:
        self.generic_visit(node)
        if self.track_recursion:
            decorator = ast.Attribute(
                value=ast.Name(id=RECURSION_GUARD_NAME, ctx=ast.Load()), attr="track", ctx=ast.Load()
            )
            node.decorator_list.append(ast.copy_location(decorator, node))
            self.functions += 1
        return node

    visit_FunctionDef = _track_function
    visit_AsyncFunctionDef = _track_function

    def visit_Lambda(self, node: ast.Lambda) -> ast.AST:
        self.generic_visit(node)
        if not self.track_recursion:
            return node
        self.functions += 1
        return ast.copy_location(_guard_call(RECURSION_GUARD_NAME, "track", [node]), node)


def validate_syntax(source: str) -> tuple[bool, str | None]:
    try:
        ast.parse(source)
    except SyntaxError as exc:
        return False, _format_syntax_error(exc)
    return True, None


def instrument_source(
    source: str,
    config: TimeoutConfig = DEFAULT_TIMEOUT_CONFIG,
) -> InstrumentationResult:
    """Rewrite ``source`` with loop counters and recursion tracking.

    Syntax errors and uses of reserved names are reported through
    ``InstrumentationResult.error`` rather than raised.
    """
    try:
        tree = ast.parse(source)
    except SyntaxError as exc:
        return InstrumentationResult(code="", error=_format_syntax_error(exc))
    except ValueError as exc:
        # e.g. source containing null bytes
        return InstrumentationResult(code="", error=f"SyntaxError: {exc}")

    reserved = _find_reserved_name(tree)
    if reserved is not None:
        return InstrumentationResult(code="", error=f"Reserved name '{reserved}' cannot be used")

    transformer = _Instrumenter(
        inject_loops=config.enable_loop_injection,
        track_recursion=config.enable_recursion_tracking,
    )
    tree = transformer.visit(tree)
    ast.fix_missing_locations(tree)
    return InstrumentationResult(
        code=ast.unparse(tree),
        loops=transformer.loops,
        functions=transformer.functions,
    )


def extract_entry_function(source: str) -> str | None:
    """Name of the first top-level function defined in ``source``."""
    try:
        tree = ast.parse(source)
    except (SyntaxError, ValueError):
        return None
    for node in tree.body:
        if isinstance(node, ast.FunctionDef):
            return node.name
    return None
