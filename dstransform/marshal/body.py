"""
Body codec: dataset body bytes <-> dynamic values, through the entry stream.

Only JSON is decodable (``unknown`` is read as JSON). Other formats may be
stored raw by scripts but cannot be turned back into values here.
"""

import io
import json
from collections.abc import Iterable
from typing import Any

from dstransform.core.errors import MarshalError, SchemaInferenceError
from dstransform.marshal.entries import EntryReader, to_dynamic
from dstransform.marshal.schema import schema_kind, schema_kind_of
from dstransform.models import DataFormat, Entry, SchemaKind, Structure

_DECODABLE = (DataFormat.JSON, DataFormat.UNKNOWN)


def _dumps(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    except ValueError as e:
        raise MarshalError(f"cannot encode value as JSON: {e}") from e


class JSONEntryWriter:
    """Streams entries into a JSON array or object."""

    def __init__(self, structure: Structure) -> None:
        self._kind = schema_kind(structure)
        self._buf = io.StringIO()
        self._count = 0
        self._buf.write("{" if self._kind == SchemaKind.OBJECT else "[")

    def write_entry(self, entry: Entry) -> None:
        if self._count:
            self._buf.write(",")
        if self._kind == SchemaKind.OBJECT:
            if entry.key is None:
                raise MarshalError(f"entry at index {entry.index} has no key for object body")
            self._buf.write(_dumps(entry.key))
            self._buf.write(":")
        elif entry.key is not None:
            raise MarshalError(f"entry with key {entry.key!r} cannot be written to an array body")
        self._buf.write(_dumps(entry.value))
        self._count += 1

    def close(self) -> None:
        self._buf.write("}" if self._kind == SchemaKind.OBJECT else "]")

    def bytes(self) -> bytes:
        return self._buf.getvalue().encode("utf-8")


def write_entries(entries: Iterable[Entry], structure: Structure) -> bytes:
    w = JSONEntryWriter(structure)
    for ent in entries:
        w.write_entry(ent)
    w.close()
    return w.bytes()


def read_entries(data: bytes, structure: Structure) -> EntryReader:
    """Parse a body and return its entries, checking the root against the structure."""
    if structure.format not in _DECODABLE:
        raise MarshalError(f"cannot decode body with format '{structure.format.value}'")
    try:
        parsed = json.loads(data.decode("utf-8") if isinstance(data, bytes) else data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MarshalError(f"invalid JSON body: {e}") from e
    declared = schema_kind(structure)
    actual = schema_kind_of(parsed)
    if declared != actual:
        raise SchemaInferenceError(
            f"body root is an {actual.value} but structure declares an {declared.value}"
        )
    return EntryReader(parsed, structure)


def encode_body(value: Any, structure: Structure) -> bytes:
    """Value -> entries -> JSON bytes. The value's root kind must match the structure."""
    return write_entries(EntryReader(value, structure), structure)


def decode_body(data: bytes, structure: Structure) -> dict[str, Any] | list[Any]:
    """JSON bytes -> entries -> value, accumulated per the structure's schema kind."""
    return to_dynamic(read_entries(data, structure), structure)
