"""
TransformExecutor: execute(script, dataset, ...) -> TransformResult.

Loads the script once, then runs the phase functions it defines in fixed
order (download, then transform). Each run owns its policy engine, network
guard, context and HTTP client; nothing is shared between runs.
"""

import io
import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TextIO

from dstransform import __version__
from dstransform.core.errors import (
    ScriptLoadError,
    ScriptRuntimeError,
    ScriptTimeoutError,
    TransformCancelledError,
    TransformError,
)
from dstransform.core.network import NetworkGuard
from dstransform.core.policy import PolicyEngine
from dstransform.engines.script import (
    LOAD_PHASE,
    MODULE_NAMES,
    PHASES,
    ExecOptions,
    HostSurface,
    LoadedScript,
    RunContext,
    ScriptExecutor,
)
from dstransform.engines.script.executor import format_backtrace
from dstransform.engines.script.modules import DatasetGateway, DatasetLoader
from dstransform.engines.script.modules.dataset import CheckFunc
from dstransform.marshal import EntryReader, decode_body, from_dynamic
from dstransform.models import Dataset, TransformInfo

_log = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TransformResult:
    """What a completed run leaves behind. ``dataset`` is the host's own handle."""

    dataset: Dataset
    results: dict[str, Any] = field(default_factory=dict)
    phases: list[str] = field(default_factory=list)
    output: str = ""

    def body(self) -> Any:
        if self.dataset.body is None or self.dataset.structure is None:
            return None
        return decode_body(self.dataset.body, self.dataset.structure)

    def entries(self) -> EntryReader:
        return from_dynamic(self.body(), self.dataset.structure)


def _annotate(e: TransformError, phase: str, script: str) -> TransformError:
    e.phase = phase
    if e.backtrace is None:
        e.backtrace = format_backtrace(e, script)
    return e


class _TransformRun:
    """State for a single execution. Built and discarded by TransformExecutor.execute."""

    def __init__(
        self,
        executor: ScriptExecutor,
        script: str,
        dataset: Dataset,
        *,
        config: Mapping[str, Any] | None,
        secrets: Mapping[str, Any] | None,
        check: CheckFunc | None,
        output: TextIO,
        loader: DatasetLoader | None,
        cancel: threading.Event | None,
    ) -> None:
        self.executor = executor
        self.options = executor.options
        self.script = script
        self.dataset = dataset
        self.output = output
        self.cancel = cancel
        self.state = RunState.IDLE
        self.phases: list[str] = []

        self.policy = PolicyEngine(self.options.rules)
        self.guard = NetworkGuard()
        self.context = RunContext(config=config, secrets=secrets)
        self.gateway = DatasetGateway(dataset, check)
        self.surface = HostSurface(
            policy=self.policy,
            guard=self.guard,
            gateway=self.gateway,
            context=self.context,
            options=self.options,
            loader=loader,
        )
        self.loaded: LoadedScript | None = None
        self._deadline = (
            time.monotonic() + self.options.timeout if self.options.timeout else None
        )

    def _stamp(self) -> None:
        info = self.dataset.transform or TransformInfo()
        info.syntax = "python"
        info.syntax_version = __version__
        info.script = self.script
        info.config = dict(self.context.config)
        self.dataset.transform = info

    def _check_budget(self, phase: str) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise TransformCancelledError(f"run cancelled before {phase}", phase=phase)
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise ScriptTimeoutError(
                f"run exceeded its {self.options.timeout}s deadline before {phase}",
                phase=phase,
            )

    def _wrap(self, e: Exception, phase: str, wrap: type[TransformError]) -> TransformError:
        return wrap(
            f"{type(e).__name__}: {e}",
            phase=phase,
            backtrace=format_backtrace(e, self.script),
        )

    def load(self) -> None:
        surface = self.surface.for_phase(LOAD_PHASE)
        try:
            self.loaded = self.executor.load(
                self.script,
                surface.globals,
                output=self.output,
                module_names=MODULE_NAMES,
            )
        except TransformError as e:
            raise _annotate(e, LOAD_PHASE, self.script)
        except Exception as e:
            raise self._wrap(e, LOAD_PHASE, ScriptLoadError) from e
        self.state = RunState.LOADED

    def run_phase(self, phase: str) -> tuple[bool, Any]:
        """Run ``phase`` if the script defines it. Returns (ran, marshalled return value)."""
        assert self.loaded is not None
        try:
            fn = self.loaded.lookup(phase)
        except ScriptLoadError as e:
            raise _annotate(e, LOAD_PHASE, self.script)
        if fn is None:
            _log.debug("phase %s not defined, skipping", phase)
            return False, None

        self._check_budget(phase)
        self.state = RunState.RUNNING
        surface = self.surface.for_phase(phase)
        self.loaded.bind(surface.globals)
        args: tuple[Any, ...] = (surface.ctx,)
        if phase == "transform":
            args = (surface.dataset, surface.ctx)

        _log.info("transform phase %s started", phase)
        started = time.monotonic()
        try:
            if phase in self.options.network_phases:
                with self.guard.enabled():
                    value = self.executor.call(fn, *args)
            else:
                value = self.executor.call(fn, *args)
            value = self.context.set_result(phase, value)
        except TransformError as e:
            raise _annotate(e, phase, self.script)
        except Exception as e:
            raise self._wrap(e, phase, ScriptRuntimeError) from e
        self.phases.append(phase)
        _log.info("transform phase %s finished in %.3fs", phase, time.monotonic() - started)
        return True, value

    def run(self) -> TransformResult:
        phase = LOAD_PHASE
        try:
            self._stamp()
            self.load()
            last: Any = None
            for phase in PHASES:
                ran, value = self.run_phase(phase)
                if ran:
                    last = value
            if not self.phases and not self.surface.commit_called:
                raise ScriptLoadError("no transform functions defined", phase=LOAD_PHASE)
            if self.phases and isinstance(last, (list, dict)):
                phase = self.phases[-1]
                try:
                    self.gateway.set_body(last)
                except TransformError as e:
                    raise _annotate(e, phase, self.script)
                except Exception as e:
                    raise self._wrap(e, phase, ScriptRuntimeError) from e
        except TransformError as e:
            self.state = RunState.FAILED
            _log.error("transform failed in %s: %s", e.phase or phase, e.message, exc_info=True)
            raise
        finally:
            self.guard.disable()
            self.surface.close()

        self.state = RunState.COMPLETED
        _log.info("transform completed: phases=%s", ",".join(self.phases) or "(commit)")
        out = self.output.getvalue() if isinstance(self.output, io.StringIO) else ""
        return TransformResult(
            dataset=self.dataset,
            results=dict(self.context.results),
            phases=list(self.phases),
            output=out,
        )


class TransformExecutor:
    """
    execute(script, dataset, *, config, secrets, check, output, loader, options, cancel)
    -> TransformResult

    Raises a TransformError subclass naming the failed phase; the dataset may
    hold writes made before the failure.
    """

    def __init__(self, options: ExecOptions | None = None) -> None:
        self.options = options

    def execute(
        self,
        script: str,
        dataset: Dataset | None = None,
        *,
        config: Mapping[str, Any] | None = None,
        secrets: Mapping[str, Any] | None = None,
        check: CheckFunc | None = None,
        output: TextIO | None = None,
        loader: DatasetLoader | None = None,
        options: ExecOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> TransformResult:
        opts = options or self.options or ExecOptions.from_settings()
        run = _TransformRun(
            ScriptExecutor(opts),
            script,
            dataset if dataset is not None else Dataset(),
            config=config,
            secrets=secrets,
            check=check,
            output=output if output is not None else io.StringIO(),
            loader=loader,
            cancel=cancel,
        )
        return run.run()
