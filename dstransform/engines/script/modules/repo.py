"""
Repo module for transformation scripts: list_datasets, load_dataset_head,
load_dataset_body.

Storage and retrieval belong to the host; it passes a DatasetLoader. Every
dataset a script loads is recorded in the running dataset's
``transform.resources``.
"""

import logging
from types import SimpleNamespace
from typing import Any, Protocol

from dstransform.marshal import decode_body, marshal
from dstransform.models import Dataset, TransformInfo

_log = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 1000


class DatasetLoader(Protocol):
    def list_datasets(self, limit: int, offset: int) -> list[str]: ...

    def load_dataset(self, ref: str) -> Dataset: ...


class RepoUnavailableError(RuntimeError):
    """Raised when a script loads datasets but the host supplied no loader."""

    pass


def make_repo_module(
    *,
    loader: DatasetLoader | None,
    target: Dataset,
) -> SimpleNamespace:
    """Build the ``repo`` object over the host's loader."""

    def _require(ref: Any) -> DatasetLoader:
        if loader is None:
            raise RepoUnavailableError(f"no dataset loader available to load dataset: {ref}")
        return loader

    def _load(ref: Any) -> Dataset:
        if not isinstance(ref, str) or not ref:
            raise TypeError("dataset reference must be a non-empty string")
        ds = _require(ref).load_dataset(ref)
        if target.transform is None:
            target.transform = TransformInfo()
        target.transform.resources[ref] = {"path": ref}
        _log.info("loaded dataset %s", ref)
        return ds

    def list_datasets(limit: int = DEFAULT_LIST_LIMIT, offset: int = 0) -> list[str]:
        refs = _require("*").list_datasets(limit, offset)
        return [str(r) for r in refs]

    def load_dataset_head(ref: str) -> dict[str, Any]:
        ds = _load(ref)
        return marshal({
            "meta": ds.meta,
            "structure": ds.structure.to_value() if ds.structure is not None else None,
        })

    def load_dataset_body(ref: str) -> Any:
        ds = _load(ref)
        if ds.body is None:
            return None
        if ds.structure is None:
            raise ValueError(f"dataset {ref} has a body but no structure")
        return decode_body(ds.body, ds.structure)

    return SimpleNamespace(
        list_datasets=list_datasets,
        load_dataset_head=load_dataset_head,
        load_dataset_body=load_dataset_body,
    )
