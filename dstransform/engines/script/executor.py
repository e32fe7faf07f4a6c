"""
ScriptExecutor: load(script, namespaces) -> LoadedScript, call(fn, *args).

Compiles with RestrictedPython, runs the top level once in the sandbox and
hands back the resulting globals so the orchestrator can look up and call
phase functions. Optional: SCRIPT_EXEC_TIMEOUT (signal.SIGALRM on Unix, main
thread only) aborts a single long-running call.
"""

import logging
import signal
import threading
import traceback
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TextIO

from dstransform.core.errors import ScriptLoadError, ScriptTimeoutError
from dstransform.engines.script.options import ExecOptions
from dstransform.engines.script.sandbox import build_restricted_globals, compile_script

_log = logging.getLogger(__name__)

SCRIPT_FILENAME = "<transform>"


def _call_with_timeout(fn: Callable[..., Any], args: tuple[Any, ...], timeout_sec: int) -> Any:
    """Run fn(*args) with signal.SIGALRM. Unix only; requires hasattr(signal, 'SIGALRM')."""

    def _handler(signum: int, frame: Any) -> None:
        raise ScriptTimeoutError(f"script call timed out after {timeout_sec}s")

    old = signal.signal(signal.SIGALRM, _handler)
    try:
        signal.alarm(timeout_sec)
        try:
            return fn(*args)
        finally:
            signal.alarm(0)
    finally:
        signal.signal(signal.SIGALRM, old)


def format_backtrace(exc: BaseException, script: str, filename: str = SCRIPT_FILENAME) -> str | None:
    """
    Traceback limited to frames in the script itself, with the script's own
    source lines. None when the error never passed through script code.
    """
    lines = script.splitlines()
    frames = [f for f in traceback.extract_tb(exc.__traceback__) if f.filename == filename]
    if isinstance(exc, SyntaxError) and exc.filename == filename and exc.lineno:
        frames.append(traceback.FrameSummary(filename, exc.lineno, "<module>", lookup_line=False))
    if not frames:
        return None
    out = ["Traceback (most recent call last):"]
    for f in frames:
        out.append(f'  File "{f.filename}", line {f.lineno}, in {f.name}')
        if f.lineno and 0 < f.lineno <= len(lines):
            out.append(f"    {lines[f.lineno - 1].strip()}")
    return "\n".join(out)


class LoadedScript:
    """A script whose top level has run; its globals hold the phase functions."""

    def __init__(self, script: str, g: dict[str, Any]) -> None:
        self.script = script
        self.globals = g

    def lookup(self, name: str) -> Callable[..., Any] | None:
        """The function bound to ``name``, or None when the script does not define it."""
        value = self.globals.get(name)
        if value is None:
            return None
        if not callable(value):
            raise ScriptLoadError(f"{name} must be a function, got {type(value).__name__}")
        return value

    def bind(self, namespaces: Mapping[str, Any]) -> None:
        """Rebind host namespaces; functions defined by the script see them on their next call."""
        self.globals.update(namespaces)


class ScriptExecutor:
    """
    Run a transformation script in a RestrictedPython sandbox. One executor can
    serve many runs; all run state lives in the LoadedScript it returns.
    """

    def __init__(self, options: ExecOptions | None = None) -> None:
        self.options = options or ExecOptions()

    def call(self, fn: Callable[..., Any], *args: Any) -> Any:
        timeout = self.options.call_timeout
        use_signal = (
            timeout is not None
            and timeout > 0
            and hasattr(signal, "SIGALRM")
            and threading.current_thread() is threading.main_thread()
        )
        if use_signal:
            return _call_with_timeout(fn, args, timeout)
        return fn(*args)

    def load(
        self,
        script: str,
        namespaces: Mapping[str, Any],
        *,
        output: TextIO,
        module_names: Iterable[str] | None = None,
        filename: str = SCRIPT_FILENAME,
    ) -> LoadedScript:
        """
        Compile and run the top level of ``script`` with ``namespaces`` bound.
        SyntaxError (including dialect violations) becomes ScriptLoadError;
        anything the top level raises propagates to the caller.
        """
        try:
            code = compile_script(script, filename, self.options)
        except SyntaxError as e:
            raise ScriptLoadError(
                f"SyntaxError: {e.msg if e.msg else e}",
                backtrace=format_backtrace(e, script, filename),
            ) from e
        g = build_restricted_globals(
            dict(namespaces),
            output=output,
            options=self.options,
            module_names=namespaces.keys() if module_names is None else module_names,
        )
        self.call(exec, code, g)
        _log.debug("script loaded: %d top-level names", len(g))
        return LoadedScript(script, g)
