"""
Transformation engines: the orchestrator and the RestrictedPython script engine.
"""

from dstransform.engines.executor import RunState, TransformExecutor, TransformResult
from dstransform.engines.script import ExecOptions

__all__ = [
    "ExecOptions",
    "RunState",
    "TransformExecutor",
    "TransformResult",
]
