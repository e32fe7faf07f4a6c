"""
Schema-kind inference.

Reading: the Structure's JSON schema decides whether a body is an object or
an array. Only the root ``type`` keyword is consulted: it is asked whether
it accepts ``{}`` first, then ``[]``. Other root keywords (required,
minItems, ...) constrain the entries, not the kind. Writing: the kind of the
root value decides.
"""

from typing import Any

from jsonschema.exceptions import SchemaError
from jsonschema.validators import Draft7Validator, validator_for

from dstransform.core.errors import SchemaInferenceError
from dstransform.marshal.values import ValueKind, kind_of, type_name
from dstransform.models import SchemaKind, Structure


def check_schema(schema: Any) -> dict[str, Any]:
    """Raise SchemaInferenceError unless ``schema`` is a well-formed JSON schema object."""
    if not isinstance(schema, dict):
        raise SchemaInferenceError(f"schema must be a dict, got {type_name(schema)}")
    cls = validator_for(schema, default=Draft7Validator)
    try:
        cls.check_schema(schema)
    except SchemaError as e:
        raise SchemaInferenceError(f"invalid schema: {e.message}") from e
    return schema


def root_kind(schema: dict[str, Any]) -> SchemaKind:
    """Object or array, as accepted by the root ``type`` of ``schema``."""
    type_only = {"type": schema["type"]} if "type" in schema else {}
    validator = validator_for(schema, default=Draft7Validator)(type_only)
    if validator.is_valid({}):
        return SchemaKind.OBJECT
    if validator.is_valid([]):
        return SchemaKind.ARRAY
    raise SchemaInferenceError("invalid schema. root must be either an array or object type")


def schema_kind(structure: Structure | None) -> SchemaKind:
    """Root kind declared by a structure. No structure or no schema is an error."""
    if structure is None or structure.json_schema is None:
        raise SchemaInferenceError("no schema declared for dataset body")
    return root_kind(structure.json_schema)


def schema_kind_of(value: Any) -> SchemaKind:
    """Mapping -> OBJECT, sequence -> ARRAY; anything else cannot be a body root."""
    kind = kind_of(value)
    if kind == ValueKind.MAPPING:
        return SchemaKind.OBJECT
    if kind == ValueKind.SEQUENCE:
        return SchemaKind.ARRAY
    raise SchemaInferenceError(
        f"body must be a list or dict, got {type_name(value)}"
    )
