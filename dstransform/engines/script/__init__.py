"""
Script engine (Python, RestrictedPython) for transformation scripts.

Exports: ScriptExecutor, LoadedScript, HostSurface, RunContext, ExecOptions,
compile_script, build_restricted_globals.
"""

from .context import RunContext
from .executor import LoadedScript, ScriptExecutor
from .options import LOAD_PHASE, PHASES, ExecOptions
from .sandbox import build_restricted_globals, compile_script
from .surface import MODULE_NAMES, HostSurface

__all__ = [
    "ExecOptions",
    "HostSurface",
    "LOAD_PHASE",
    "LoadedScript",
    "MODULE_NAMES",
    "PHASES",
    "RunContext",
    "ScriptExecutor",
    "compile_script",
    "build_restricted_globals",
]
