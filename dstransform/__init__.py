"""
dstransform: run sandboxed Python transformation scripts against a dataset.

Exports: TransformExecutor, TransformResult, ExecOptions, Dataset, Structure.
"""

__version__ = "0.1.0"

from dstransform.engines import ExecOptions, TransformExecutor, TransformResult
from dstransform.models import Dataset, Structure

__all__ = [
    "__version__",
    "TransformExecutor",
    "TransformResult",
    "ExecOptions",
    "Dataset",
    "Structure",
]
