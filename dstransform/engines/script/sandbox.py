"""
RestrictedPython sandbox for transformation scripts.

Allowed: dict, list, str, int, float, bool, range, enumerate, zip, sorted,
len, round, min, max, sum, any, all, map, filter, json.loads/dumps,
datetime/date/time/timedelta, the host namespaces bound for the current
phase, and ``import`` of those namespaces by name.

Blocked: open, exec, eval, compile, real imports, underscore attributes, etc.
Dialect switches (float literals, sets, lambda, nested def) are enforced by
an AST pass before RestrictedPython compiles the source.
"""

import ast
import functools
import json
import operator
import warnings
from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timedelta
from types import SimpleNamespace
from typing import Any, TextIO

from RestrictedPython import compile_restricted
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safe_builtins,
    safer_getattr,
)

from dstransform.engines.script.options import ExecOptions

_INPLACE_OPS: dict[str, Callable[[Any, Any], Any]] = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "|=": operator.ior,
    "&=": operator.iand,
    "^=": operator.ixor,
}


class _DialectChecker(ast.NodeVisitor):
    """Collects dialect violations; the caller raises them as one SyntaxError."""

    def __init__(self, options: ExecOptions) -> None:
        self.options = options
        self.errors: list[str] = []
        self._depth = 0

    def _reject(self, node: ast.AST, what: str) -> None:
        self.errors.append(f"Line {getattr(node, 'lineno', '?')}: {what} are not allowed")

    def visit_Constant(self, node: ast.Constant) -> None:
        if isinstance(node.value, float) and not self.options.allow_float:
            self._reject(node, "floating-point numbers")

    def visit_Lambda(self, node: ast.Lambda) -> None:
        if not self.options.allow_lambda:
            self._reject(node, "lambda expressions")
        self.generic_visit(node)

    def visit_Set(self, node: ast.Set) -> None:
        if not self.options.allow_set:
            self._reject(node, "sets")
        self.generic_visit(node)

    visit_SetComp = visit_Set

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        if self._depth and not self.options.allow_nested_def:
            self._reject(node, "nested def statements")
        self._depth += 1
        try:
            self.generic_visit(node)
        finally:
            self._depth -= 1

    visit_AsyncFunctionDef = visit_FunctionDef


def check_dialect(script: str, options: ExecOptions, filename: str = "<transform>") -> None:
    tree = ast.parse(script, filename, "exec")
    checker = _DialectChecker(options)
    checker.visit(tree)
    if checker.errors:
        raise SyntaxError("; ".join(checker.errors))


def compile_script(
    script: str,
    filename: str = "<transform>",
    options: ExecOptions | None = None,
) -> Any:
    """
    Check the dialect, then compile with RestrictedPython. Raises SyntaxError.

    Returns a code object suitable for exec(bytecode, globals).
    """
    check_dialect(script, options or ExecOptions(), filename)
    # print() output goes to the run stream, never to ``printed``.
    with warnings.catch_warnings():
        warnings.filterwarnings(
            "ignore", message=r".*Prints, but never reads 'printed'", category=SyntaxWarning
        )
        code = compile_restricted(script, filename, "exec")
    if code is None:
        raise SyntaxError("RestrictedPython: compile failed")
    return code


def _inplacevar(op: str, x: Any, y: Any) -> Any:
    fn = _INPLACE_OPS.get(op)
    if fn is None:
        raise SyntaxError(f"operator {op} is not allowed")
    return fn(x, y)


def _apply(f: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    return f(*args, **kwargs)


class StreamPrinter:
    """
    ``_print_`` target for RestrictedPython: print() in a script writes to the
    run's diagnostic stream instead of stdout.
    """

    def __init__(self, stream: TextIO, _getattr_: Any = None) -> None:
        self._stream = stream
        self._getattr_ = _getattr_

    def write(self, text: str) -> None:
        self._stream.write(text)

    def __call__(self) -> str:
        # ``printed`` is not collected; output goes straight to the stream.
        return ""

    def _call_print(self, *objects: Any, **kwargs: Any) -> None:
        if kwargs.get("file") is None:
            kwargs["file"] = self
        else:
            self._getattr_(kwargs["file"], "write")
        print(*objects, **kwargs)


def make_module_loader(g: dict[str, Any], names: Iterable[str]) -> Callable[..., Any]:
    """
    ``__import__`` replacement: only the host namespaces in ``names`` can be
    imported, and they resolve to whatever is bound in ``g`` at import time.
    """
    allowed = frozenset(names)

    def _load(
        name: str,
        globals: Any = None,
        locals: Any = None,
        fromlist: Any = (),
        level: int = 0,
    ) -> Any:
        if level != 0 or name not in allowed or name not in g:
            raise ImportError(f"module {name!r} is not available to transformation scripts")
        return g[name]

    return _load


def _make_safe_builtins(options: ExecOptions) -> dict[str, Any]:
    """safe_builtins plus container helpers, trimmed by the dialect options."""
    b = dict(safe_builtins)
    for obj in (list, dict, enumerate, min, max, sum, any, all, map, filter, reversed):
        b.setdefault(obj.__name__, obj)
    if options.allow_set:
        b["set"] = set
        b["frozenset"] = frozenset
    else:
        b.pop("set", None)
        b.pop("frozenset", None)
    if not options.allow_float:
        b.pop("float", None)
    return b


def _make_guard_globals() -> dict[str, Any]:
    """Guards required by RestrictedPython's rewritten bytecode."""
    return {
        "_getattr_": safer_getattr,
        "_getiter_": default_guarded_getiter,
        "_getitem_": default_guarded_getitem,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_apply_": _apply,
    }


def _make_extra_globals() -> dict[str, Any]:
    """
    Extra safe symbols. ``json`` is a namespace of its two functions, not the
    module: module attributes reach other modules (json.codecs.sys).
    """
    return {
        "json": SimpleNamespace(loads=json.loads, dumps=json.dumps),
        "datetime": datetime,
        "date": date,
        "time": time,
        "timedelta": timedelta,
    }


def build_restricted_globals(
    context_dict: dict[str, Any],
    *,
    output: TextIO,
    options: ExecOptions | None = None,
    module_names: Iterable[str] = (),
) -> dict[str, Any]:
    """
    Build the globals dict for exec(compiled, globals): safe builtins with the
    module loader, guards, print routing, extras and the host namespaces.
    """
    opts = options or ExecOptions()
    b = _make_safe_builtins(opts)
    g: dict[str, Any] = {
        "__builtins__": b,
        "__name__": "transform",
        "__metaclass__": type,
    }
    g.update(_make_guard_globals())
    g["_print_"] = functools.partial(StreamPrinter, output)
    g.update(_make_extra_globals())
    g.update(context_dict)
    b["__import__"] = make_module_loader(g, module_names)
    return g
