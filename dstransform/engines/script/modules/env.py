"""
Env module for transformation scripts: get_config, get_secret.

Values come from the run's read-only config and secrets mappings and are
handed out as fresh copies, so scripts cannot mutate host state through them.
Secrets are gated separately by policy (denied in ``transform`` by default).
"""

from collections.abc import Mapping
from types import SimpleNamespace
from typing import Any

from dstransform.marshal import marshal


def _lookup(source: Mapping[str, Any] | None, key: Any, what: str, default: Any) -> Any:
    if not isinstance(key, str):
        raise TypeError(f"{what} key must be a string, got {type(key).__name__}")
    if source is None or key not in source:
        return default
    return marshal(source[key])


def make_env_module(
    *,
    config: Mapping[str, Any] | None = None,
    secrets: Mapping[str, Any] | None = None,
) -> SimpleNamespace:
    """Build the ``env`` object: get_config, get_secret. Missing keys return ``default``."""

    def get_config(key: str, default: Any = None) -> Any:
        return _lookup(config, key, "config", default)

    def get_secret(key: str, default: Any = None) -> Any:
        return _lookup(secrets, key, "secret", default)

    return SimpleNamespace(get_config=get_config, get_secret=get_secret)
