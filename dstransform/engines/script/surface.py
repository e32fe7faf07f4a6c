"""
HostSurface: the host namespaces a run exposes to its script.

The underlying modules are created once per run; ``for_phase`` builds a fresh
policy-wrapped copy of all of them for the phase about to run, so a denied
callable is already a stub before the script can reach it.
"""

import logging
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any

from dstransform.core.network import NetworkGuard
from dstransform.core.policy import PolicyEngine
from dstransform.engines.script.context import RunContext, make_context_module
from dstransform.engines.script.modules import (
    Commit,
    DatasetGateway,
    DatasetLoader,
    error,
    make_dataset_module,
    make_env_module,
    make_http_module,
    make_log_module,
    make_repo_module,
)
from dstransform.engines.script.options import ExecOptions

_log = logging.getLogger(__name__)

MODULE_NAMES: tuple[str, ...] = ("dataset", "env", "http", "repo", "log")


@dataclass
class PhaseSurface:
    phase: str
    globals: dict[str, Any]
    ctx: SimpleNamespace

    @property
    def dataset(self) -> SimpleNamespace:
        return self.globals["dataset"]


class HostSurface:
    def __init__(
        self,
        *,
        policy: PolicyEngine,
        guard: NetworkGuard,
        gateway: DatasetGateway,
        context: RunContext,
        options: ExecOptions,
        loader: DatasetLoader | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._policy = policy
        self._context = context
        self._commit = Commit(gateway)
        self._http = make_http_module(
            guard=guard,
            timeout=options.http_timeout,
            allowed_hosts=options.http_allowed_hosts,
            block_private=options.http_block_private,
            transport=options.http_transport,
        )
        self._modules: dict[str, SimpleNamespace] = {
            "dataset": make_dataset_module(gateway),
            "env": make_env_module(config=context.config, secrets=context.secrets),
            "http": self._http.namespace(),
            "repo": make_repo_module(loader=loader, target=gateway.dataset),
            "log": make_log_module(logger_instance=logger, extra=self._log_extra),
        }

    @property
    def commit_called(self) -> bool:
        return self._commit.called

    def _log_extra(self) -> dict[str, Any]:
        return {"phase": self._policy.phase}

    def for_phase(self, phase: str) -> PhaseSurface:
        """Switch the policy to ``phase`` and build that phase's namespaces."""
        self._policy.set_phase(phase)
        g: dict[str, Any] = {
            name: self._policy.protect_namespace(name, ns) for name, ns in self._modules.items()
        }
        g["commit"] = self._policy.protect("commit", self._commit.__call__)
        g["error"] = self._policy.protect("error", error)
        ctx = self._policy.protect_namespace("ctx", make_context_module(self._context))
        _log.debug("built surface for phase %s", phase)
        return PhaseSurface(phase=phase, globals=g, ctx=ctx)

    def close(self) -> None:
        self._http.close()
