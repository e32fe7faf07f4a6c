"""
Value marshalling: dynamic values <-> entry streams <-> body bytes.
"""

from dstransform.marshal.body import decode_body, encode_body, read_entries, write_entries
from dstransform.marshal.entries import EntryReader, EntryWriter, from_dynamic, to_dynamic
from dstransform.marshal.schema import check_schema, root_kind, schema_kind, schema_kind_of
from dstransform.marshal.values import INT_MAX, INT_MIN, ValueKind, kind_of, marshal

__all__ = [
    "INT_MAX",
    "INT_MIN",
    "ValueKind",
    "kind_of",
    "marshal",
    "EntryReader",
    "EntryWriter",
    "from_dynamic",
    "to_dynamic",
    "check_schema",
    "root_kind",
    "schema_kind",
    "schema_kind_of",
    "encode_body",
    "decode_body",
    "read_entries",
    "write_entries",
]
