"""
Dataset module for transformation scripts: set_meta, get_meta, get_structure,
set_structure, get_body, set_body.

Every write asks the run's mutation-veto hook first. The hook raises to
veto; its exception propagates unchanged and the dataset is left untouched.
"""

import json
import logging
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

from dstransform.core.errors import MarshalError, MutationRejectedError, SchemaInferenceError
from dstransform.marshal import (
    check_schema,
    decode_body,
    encode_body,
    marshal,
    root_kind,
    schema_kind_of,
)
from dstransform.models import DataFormat, Dataset, SchemaKind, Structure, base_schema

_log = logging.getLogger(__name__)

CheckFunc = Callable[..., None]

_MISSING = object()


def allow_all(*fields: str) -> None:
    """Mutation hook that never vetoes."""
    return None


def reject_fields(*names: str) -> CheckFunc:
    """Mutation hook vetoing writes whose first field is one of ``names``."""
    blocked = frozenset(names)

    def check(*fields: str) -> None:
        if fields and fields[0] in blocked:
            raise MutationRejectedError(fields)

    return check


def _parse_format(value: Any) -> DataFormat:
    if isinstance(value, DataFormat):
        return value
    if not isinstance(value, str):
        raise MarshalError(f"format must be a string, got {type(value).__name__}")
    try:
        return DataFormat(value.lower())
    except ValueError as e:
        raise MarshalError(f"unknown data format: {value!r}") from e


def _raw_json_kind(data: str) -> SchemaKind:
    try:
        parsed = json.loads(data)
    except ValueError as e:
        raise MarshalError(f"raw json body is not valid JSON: {e}") from e
    return schema_kind_of(parsed)


def _root_kind_or_none(schema: dict[str, Any]) -> SchemaKind | None:
    try:
        return root_kind(schema)
    except SchemaInferenceError:
        return None


class DatasetGateway:
    """
    The only path by which a script changes the host's dataset. The decoded
    body is cached for the rest of the run and refreshed on set_body.
    """

    def __init__(self, dataset: Dataset, check: CheckFunc | None = None) -> None:
        self._ds = dataset
        self._check = check or allow_all
        self._body: Any = _MISSING

    @property
    def dataset(self) -> Dataset:
        return self._ds

    def set_meta(self, key: str, value: Any) -> None:
        if not isinstance(key, str):
            raise MarshalError(f"expected key to be a string, got {type(key).__name__}")
        self._check("meta", key)
        self._ds.meta[key] = marshal(value)

    def get_meta(self, key: str | None = None, default: Any = None) -> Any:
        if key is None:
            return marshal(self._ds.meta)
        return marshal(self._ds.meta.get(key, default))

    def get_structure(self) -> dict[str, Any] | None:
        if self._ds.structure is None:
            return None
        return marshal(self._ds.structure.to_value())

    def set_structure(self, value: Any) -> None:
        """Replace the structure from {"format": ..., "schema": {...}}."""
        self._check("structure")
        data = marshal(value)
        if not isinstance(data, dict):
            raise SchemaInferenceError(
                f"structure must be a dict with 'format' and 'schema', got {type(value).__name__}"
            )
        unknown = set(data) - {"format", "schema"}
        if unknown:
            raise MarshalError(f"unknown structure fields: {', '.join(sorted(unknown))}")
        schema = data.get("schema")
        if schema is not None:
            check_schema(schema)
            root_kind(schema)
        fmt = _parse_format(data.get("format", DataFormat.JSON.value))
        self._ds.structure = Structure(format=fmt, schema=schema)
        self._body = _MISSING

    def get_body(self, default: Any = None) -> Any:
        if self._body is not _MISSING:
            return self._body
        if self._ds.body is None:
            return default
        if self._ds.structure is None:
            raise SchemaInferenceError("no structure for dataset body")
        self._body = decode_body(self._ds.body, self._ds.structure)
        return self._body

    def set_body(self, data: Any, raw: bool = False, format: str = "json") -> None:
        """
        Raw: ``data`` is a string stored verbatim, tagged with ``format``. A raw
        JSON body on a dataset without a schema gets the base schema of its
        root; bodies in other formats are opaque to get_body.
        Otherwise ``data`` must be a list or dict; the structure's schema is
        inferred from it (an existing schema of the same root kind is kept)
        and the body is encoded as JSON.
        """
        self._check("body")
        fmt = _parse_format(format)
        st = self._ds.structure
        if raw:
            if not isinstance(data, str):
                raise MarshalError("expected raw data for body to be a string")
            schema = st.json_schema if st is not None else None
            if schema is None and fmt == DataFormat.JSON:
                schema = base_schema(_raw_json_kind(data))
            self._ds.structure = Structure(format=fmt, schema=schema)
            self._ds.body = data.encode("utf-8")
            self._body = _MISSING
            return

        kind = schema_kind_of(data)
        value = marshal(data)
        schema = st.json_schema if st is not None else None
        if schema is None or _root_kind_or_none(schema) != kind:
            schema = base_schema(kind)
        new_st = Structure(format=DataFormat.JSON, schema=schema)
        body = encode_body(value, new_st)
        self._ds.structure = new_st
        self._ds.body = body
        self._body = value
        _log.debug("body set: %s with %d bytes", kind.value, len(body))

    def namespace(self) -> SimpleNamespace:
        return SimpleNamespace(
            set_meta=self.set_meta,
            get_meta=self.get_meta,
            get_structure=self.get_structure,
            set_structure=self.set_structure,
            get_body=self.get_body,
            set_body=self.set_body,
        )


def make_dataset_module(gateway: DatasetGateway) -> SimpleNamespace:
    """Build the ``dataset`` object over a run's gateway."""
    return gateway.namespace()
