"""
RunContext: per-run state shared between phases.

config and secrets are read-only snapshots; results holds each finished
phase's marshalled return value; scratch values are set and read by the
script through ``ctx.get`` / ``ctx.set``. One RunContext per run, discarded
when the run ends.
"""

from collections.abc import Mapping
from types import MappingProxyType, SimpleNamespace
from typing import Any

from dstransform.marshal import marshal

_MISSING = object()


class RunContext:
    def __init__(
        self,
        *,
        config: Mapping[str, Any] | None = None,
        secrets: Mapping[str, Any] | None = None,
    ) -> None:
        self.config: Mapping[str, Any] = MappingProxyType(marshal(dict(config or {})))
        self.secrets: Mapping[str, Any] = MappingProxyType(marshal(dict(secrets or {})))
        self._results: dict[str, Any] = {}
        self._values: dict[str, Any] = {}

    @property
    def results(self) -> Mapping[str, Any]:
        return MappingProxyType(self._results)

    def set_result(self, phase: str, value: Any) -> Any:
        self._results[phase] = marshal(value)
        return self._results[phase]

    def get(self, key: str, default: Any = _MISSING) -> Any:
        if key in self._values:
            return self._values[key]
        if default is not _MISSING:
            return default
        raise LookupError(f"value {key} not set in context")

    def set(self, key: str, value: Any) -> None:
        if not isinstance(key, str):
            raise TypeError(f"context key must be a string, got {type(key).__name__}")
        self._values[key] = marshal(value)


def make_context_module(run: RunContext) -> SimpleNamespace:
    """Build the ``ctx`` object scripts receive: get, set, results."""
    return SimpleNamespace(get=run.get, set=run.set, results=run.results)
