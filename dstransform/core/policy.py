"""
Capability policy: which host callables a script may call in which phase.

Rules are evaluated in order and the last matching rule wins; when nothing
matches the call is denied. ``*`` matches any phase or method. Method names
are qualified as ``namespace.method``; a rule naming only ``method`` also
matches any namespace.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any

from dstransform.core.errors import PolicyViolationError

_log = logging.getLogger(__name__)

WILDCARD = "*"

_ALLOW_WORDS = {"allow": True, "true": True, "1": True, "deny": False, "false": False, "0": False}


@dataclass(frozen=True)
class Rule:
    """Allow or deny ``method`` in ``phase``; either may be ``*``."""

    phase: str
    method: str
    allow: bool

    @classmethod
    def parse(cls, spec: str) -> Rule:
        """Parse ``phase:method:allow|deny``."""
        parts = [p.strip() for p in spec.split(":")]
        if len(parts) != 3 or not parts[0] or not parts[1]:
            raise ValueError(f"invalid policy rule {spec!r}; expected 'phase:method:allow|deny'")
        word = parts[2].lower()
        if word not in _ALLOW_WORDS:
            raise ValueError(f"invalid policy rule {spec!r}; decision must be allow or deny")
        return cls(parts[0], parts[1], _ALLOW_WORDS[word])

    def matches(self, phase: str | None, method: str) -> bool:
        if self.phase != WILDCARD and self.phase != phase:
            return False
        if self.method == WILDCARD or self.method == method:
            return True
        return self.method == method.rpartition(".")[2]


DEFAULT_RULES: tuple[Rule, ...] = (
    Rule(WILDCARD, WILDCARD, True),
    Rule("transform", "get_secret", False),
)


def parse_rules(specs: Iterable[str]) -> list[Rule]:
    return [Rule.parse(s) for s in specs]


class PolicyEngine:
    """
    Per-run rule evaluator. Holds the current phase; never share one
    instance between concurrent runs.
    """

    def __init__(self, rules: Iterable[Rule] | None = None) -> None:
        self._rules: tuple[Rule, ...] = tuple(DEFAULT_RULES if rules is None else rules)
        self._phase: str | None = None

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    @property
    def phase(self) -> str | None:
        return self._phase

    def set_phase(self, phase: str) -> None:
        self._phase = phase

    def allowed(self, phase: str | None, method: str) -> bool:
        allow = False
        for r in self._rules:
            if r.matches(phase, method):
                allow = r.allow
        return allow

    def check(self, method: str) -> None:
        """Raise PolicyViolationError when ``method`` is denied in the current phase."""
        if not self.allowed(self._phase, method):
            _log.warning("policy denied %s in phase %s", method, self._phase)
            raise PolicyViolationError(self._phase, method)

    def protect(self, method: str, fn: Callable[..., Any]) -> Callable[..., Any]:
        """
        Wrap ``fn`` so each call is checked first. A method already denied in
        the current phase gets a stub that never references ``fn``.
        """
        if not self.allowed(self._phase, method):
            phase = self._phase

            def denied(*args: Any, **kwargs: Any) -> Any:
                _log.warning("policy denied %s in phase %s", method, phase)
                raise PolicyViolationError(phase, method)

            denied.__name__ = method.rpartition(".")[2]
            return denied

        @functools.wraps(fn)
        def protected(*args: Any, **kwargs: Any) -> Any:
            self.check(method)
            return fn(*args, **kwargs)

        return protected

    def protect_namespace(self, name: str, namespace: Any) -> SimpleNamespace:
        """
        Build a fresh namespace mirroring ``namespace`` (a SimpleNamespace or a
        dict) with every callable protected. Nested namespaces are protected
        recursively; plain values are copied by reference.
        """
        members = namespace if isinstance(namespace, dict) else vars(namespace)
        out: dict[str, Any] = {}
        for key, member in members.items():
            qualified = f"{name}.{key}" if name else key
            if isinstance(member, SimpleNamespace):
                out[key] = self.protect_namespace(qualified, member)
            elif callable(member):
                out[key] = self.protect(qualified, member)
            else:
                out[key] = member
        return SimpleNamespace(**out)
