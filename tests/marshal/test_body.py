"""Unit tests for marshal.body and marshal.schema."""

import pytest

from dstransform.core.errors import MarshalError, SchemaInferenceError
from dstransform.marshal import (
    check_schema,
    decode_body,
    encode_body,
    read_entries,
    root_kind,
    schema_kind,
    schema_kind_of,
)
from dstransform.models import DataFormat, Entry, SchemaKind, Structure


class TestSchemaKind:
    def test_object_and_array(self) -> None:
        assert root_kind({"type": "object"}) == SchemaKind.OBJECT
        assert root_kind({"type": "array", "items": {"type": "integer"}}) == SchemaKind.ARRAY

    def test_permissive_schema_is_object(self) -> None:
        assert root_kind({}) == SchemaKind.OBJECT

    @pytest.mark.parametrize(
        "schema, kind",
        [
            ({"type": "object", "required": ["id"]}, SchemaKind.OBJECT),
            ({"type": "object", "minProperties": 2}, SchemaKind.OBJECT),
            ({"type": "array", "minItems": 1}, SchemaKind.ARRAY),
            ({"type": "array", "contains": {"type": "integer"}}, SchemaKind.ARRAY),
            ({"type": ["array", "null"]}, SchemaKind.ARRAY),
        ],
    )
    def test_only_root_type_decides(self, schema: dict, kind: SchemaKind) -> None:
        assert root_kind(schema) == kind
        assert schema_kind(Structure(schema=schema)) == kind

    def test_scalar_root_raises(self) -> None:
        with pytest.raises(SchemaInferenceError, match="root must be either an array or object"):
            root_kind({"type": "string"})

    def test_structure_without_schema(self) -> None:
        with pytest.raises(SchemaInferenceError):
            schema_kind(Structure())

    def test_value_kinds(self) -> None:
        assert schema_kind_of({"a": 1}) == SchemaKind.OBJECT
        assert schema_kind_of((1, 2)) == SchemaKind.ARRAY
        with pytest.raises(SchemaInferenceError):
            schema_kind_of("text")

    def test_check_schema_rejects_malformed(self) -> None:
        with pytest.raises(SchemaInferenceError, match="invalid schema"):
            check_schema({"type": 5})
        with pytest.raises(SchemaInferenceError):
            check_schema(["type", "object"])


class TestBodyCodec:
    def test_encode_object(self) -> None:
        st = Structure(schema={"type": "object"})
        assert encode_body({"a": 1, "b": "ü"}, st) == '{"a":1,"b":"ü"}'.encode()

    def test_encode_array(self) -> None:
        st = Structure(schema={"type": "array"})
        assert encode_body([1, [2, 3], None], st) == b"[1,[2,3],null]"

    def test_decode(self) -> None:
        st = Structure(schema={"type": "array"})
        assert decode_body(b'[1, "two", {"three": 3}]', st) == [1, "two", {"three": 3}]

    def test_decode_with_constrained_schema(self) -> None:
        st = Structure(schema={"type": "object", "required": ["id"]})
        assert decode_body(b'{"id": 7}', st) == {"id": 7}

    def test_read_entries(self) -> None:
        st = Structure(schema={"type": "object"})
        assert list(read_entries(b'{"k": true}', st)) == [Entry(key="k", value=True)]

    def test_unknown_format_read_as_json(self) -> None:
        st = Structure(format=DataFormat.UNKNOWN, schema={"type": "array"})
        assert decode_body(b"[1]", st) == [1]

    def test_csv_not_decodable(self) -> None:
        st = Structure(format=DataFormat.CSV, schema={"type": "array"})
        with pytest.raises(MarshalError, match="cannot decode body with format 'csv'"):
            decode_body(b"a,b\n1,2\n", st)

    def test_root_mismatch(self) -> None:
        st = Structure(schema={"type": "object"})
        with pytest.raises(SchemaInferenceError, match="body root is an array"):
            decode_body(b"[1, 2]", st)

    def test_invalid_json(self) -> None:
        st = Structure(schema={"type": "object"})
        with pytest.raises(MarshalError, match="invalid JSON body"):
            decode_body(b"{nope", st)

    def test_nan_cannot_be_encoded(self) -> None:
        st = Structure(schema={"type": "array"})
        with pytest.raises(MarshalError, match="cannot encode value as JSON"):
            encode_body([float("nan")], st)
