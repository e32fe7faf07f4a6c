"""
Per-run execution options. Defaults come from ``settings``; hosts may build
their own to tighten or relax a single run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from dstransform.core.config import settings as default_settings
from dstransform.core.policy import DEFAULT_RULES, Rule, parse_rules

PHASES: tuple[str, ...] = ("download", "transform")
LOAD_PHASE = "load"


@dataclass
class ExecOptions:
    # dialect
    allow_float: bool = True
    allow_set: bool = True
    allow_lambda: bool = False
    allow_nested_def: bool = False

    # phases and capabilities
    rules: tuple[Rule, ...] = DEFAULT_RULES
    network_phases: frozenset[str] = frozenset({"download"})

    # time budget
    timeout: float | None = None
    call_timeout: int | None = None

    # outbound http
    http_timeout: float = 30.0
    http_allowed_hosts: frozenset[str] = frozenset({"*"})
    http_block_private: bool = True
    http_transport: Any = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: Any = None, **overrides: Any) -> ExecOptions:
        s = settings or default_settings
        specs = s.policy_rule_specs
        opts = cls(
            allow_float=s.SCRIPT_ALLOW_FLOAT,
            allow_set=s.SCRIPT_ALLOW_SET,
            allow_lambda=s.SCRIPT_ALLOW_LAMBDA,
            allow_nested_def=s.SCRIPT_ALLOW_NESTED_DEF,
            rules=tuple(parse_rules(specs)) if specs else DEFAULT_RULES,
            network_phases=s.network_phases,
            timeout=s.TRANSFORM_TIMEOUT,
            call_timeout=s.SCRIPT_EXEC_TIMEOUT,
            http_timeout=s.SCRIPT_HTTP_TIMEOUT,
            http_allowed_hosts=s.http_allowed_hosts,
            http_block_private=s.SCRIPT_HTTP_BLOCK_PRIVATE,
        )
        for k, v in overrides.items():
            if not hasattr(opts, k):
                raise TypeError(f"unknown exec option: {k}")
            setattr(opts, k, v)
        return opts
