"""
Top-level builtins for transformation scripts: commit, error.

``commit(data)`` is the single-shot body assignment older scripts use instead
of phase functions; it can be called once per run.
"""

from typing import Any

from dstransform.core.errors import ScriptRuntimeError
from dstransform.engines.script.modules.dataset import DatasetGateway


class Commit:
    def __init__(self, gateway: DatasetGateway) -> None:
        self._gateway = gateway
        self.called = False

    def __call__(self, data: Any) -> bool:
        if self.called:
            raise ScriptRuntimeError("commit can only be called once per transformation")
        self._gateway.set_body(data)
        self.called = True
        return True


def error(message: Any) -> None:
    """Abort the run with a script-supplied message."""
    raise ScriptRuntimeError(f"transform error: {message}")
