"""
Error taxonomy for transformation runs.

Every error is fatal to the run. The executor stamps ``phase`` (and, for
failures raised while guest code was on the stack, ``backtrace``) before the
error leaves ``TransformExecutor.execute``.
"""

from __future__ import annotations

from typing import Any


class TransformError(Exception):
    """Base class: message plus the phase it happened in and an optional backtrace."""

    def __init__(
        self,
        message: str,
        *,
        phase: str | None = None,
        backtrace: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.phase = phase
        self.backtrace = backtrace

    def __str__(self) -> str:
        s = self.message
        if self.phase:
            s = f"{self.phase}: {s}"
        if self.backtrace:
            s = f"{s}\n{self.backtrace}"
        return s


class ScriptLoadError(TransformError):
    """Syntax or binding failure before any phase runs."""

    pass


class ScriptRuntimeError(TransformError):
    """Guest-raised error or evaluator exception during a phase call."""

    pass


class ScriptTimeoutError(TransformError, TimeoutError):
    """Raised when a phase call or the whole run exceeds its time budget."""

    pass


class TransformCancelledError(TransformError):
    """Raised between phases when the host cancelled the run."""

    pass


class PolicyViolationError(TransformError, PermissionError):
    """A host callable was invoked in a phase whose rules deny it."""

    def __init__(self, phase: str | None, method: str) -> None:
        super().__init__(f"{method} cannot be called in {phase} step", phase=phase)
        self.method = method


class NetworkDisabledError(TransformError, PermissionError):
    """A network-capable callable ran while the network guard was off."""

    pass


class HostNotAllowedError(TransformError, PermissionError):
    """Outbound request target rejected by the host allow-list."""

    pass


class MutationRejectedError(TransformError, PermissionError):
    """The mutation-veto hook declined a dataset write."""

    def __init__(self, fields: tuple[str, ...], reason: str | None = None) -> None:
        msg = f"cannot mutate dataset field: {'.'.join(fields)}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.fields = fields


class MarshalError(TransformError, ValueError):
    """Unsupported value kind, type mismatch, out-of-range int or non-string key."""

    def __init__(self, message: str, *, path: str = "", value: Any = None) -> None:
        if path:
            message = f"{message} (at {path})"
        super().__init__(message)
        self.path = path
        self.value = value


class SchemaInferenceError(TransformError, ValueError):
    """Root value or schema is neither array- nor object-shaped where one is required."""

    pass
