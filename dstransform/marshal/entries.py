"""
Entry readers and writers: the bridge between dynamic values and the
canonical entry stream.

EntryReader (from_dynamic) walks a sequence or mapping and yields Entry
objects. EntryWriter (to_dynamic) accumulates entries back into the container
the Structure declares.
"""

from collections.abc import Iterable, Iterator
from typing import Any

from dstransform.core.errors import MarshalError, SchemaInferenceError
from dstransform.marshal.schema import schema_kind, schema_kind_of
from dstransform.marshal.values import ValueKind, as_key, kind_of, marshal, type_name
from dstransform.models import DataFormat, Entry, SchemaKind, Structure, base_schema


class EntryReader:
    """
    Iterable of entries over a sequence or mapping.

    The item order is snapshotted at construction: mutating the source
    afterwards does not change what the reader yields, and every iteration
    of the same reader yields the same entries in the same order.
    """

    def __init__(self, value: Any, structure: Structure | None = None) -> None:
        kind = schema_kind_of(value)
        if structure is None:
            structure = Structure(format=DataFormat.JSON, schema=base_schema(kind))
        elif structure.json_schema is not None and schema_kind(structure) != kind:
            raise SchemaInferenceError(
                f"structure declares an {schema_kind(structure).value} body but value is {type_name(value)}"
            )
        self._structure = structure
        self._kind = kind
        if kind == SchemaKind.OBJECT:
            self._items: list[tuple[Any, Any]] = list(value.items())
        else:
            self._items = list(enumerate(value))

    @property
    def structure(self) -> Structure:
        return self._structure

    @property
    def kind(self) -> SchemaKind:
        return self._kind

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Entry]:
        if self._kind == SchemaKind.OBJECT:
            for k, v in self._items:
                key = as_key(k)
                yield Entry(index=0, key=key, value=marshal(v))
        else:
            for i, v in self._items:
                yield Entry(index=i, value=marshal(v))


class EntryWriter:
    """Accumulates entries into a dict (OBJECT schema) or a list (ARRAY schema)."""

    def __init__(self, structure: Structure) -> None:
        self._structure = structure
        self._kind = schema_kind(structure)
        self._object: dict[str, Any] | list[Any] = {} if self._kind == SchemaKind.OBJECT else []

    @property
    def structure(self) -> Structure:
        return self._structure

    def write_entry(self, entry: Entry) -> None:
        if self._kind == SchemaKind.OBJECT:
            if entry.key is None:
                raise MarshalError(
                    f"entry at index {entry.index} has no key; object body requires keyed entries"
                )
            # Re-assigned keys keep their first position and take the last value.
            self._object[as_key(entry.key)] = marshal(entry.value)  # type: ignore[index]
        else:
            if entry.key is not None:
                raise MarshalError(
                    f"entry with key {entry.key!r} cannot be written to an array body"
                )
            self._object.append(marshal(entry.value))  # type: ignore[union-attr]

    def value(self) -> dict[str, Any] | list[Any]:
        return self._object

    def close(self) -> None:
        pass


def from_dynamic(value: Any, structure: Structure | None = None) -> EntryReader:
    """Entry stream for a sequence or mapping value."""
    if kind_of(value) not in (ValueKind.SEQUENCE, ValueKind.MAPPING):
        raise SchemaInferenceError(
            f"expected a list or dict to read entries from, got {type_name(value)}"
        )
    return EntryReader(value, structure)


def to_dynamic(entries: Iterable[Entry], structure: Structure) -> dict[str, Any] | list[Any]:
    """Rebuild a dynamic value from an entry stream using the declared schema kind."""
    w = EntryWriter(structure)
    for ent in entries:
        w.write_entry(ent)
    w.close()
    return w.value()
