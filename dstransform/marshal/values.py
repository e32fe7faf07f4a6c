"""
Dynamic value kinds and canonicalisation of guest values.

A guest value is classified into exactly one ValueKind; ``marshal`` then
dispatches through a table that has one converter per kind, so an
unclassified value can only ever land on UNSUPPORTED and fail loudly.

Integers are signed 64-bit. Anything outside that range raises MarshalError
instead of wrapping.
"""

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from dstransform.core.errors import MarshalError

INT_BITS = 64
INT_MIN = -(2 ** (INT_BITS - 1))
INT_MAX = 2 ** (INT_BITS - 1) - 1


class ValueKind(str, Enum):
    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    UNSUPPORTED = "unsupported"


def kind_of(value: Any) -> ValueKind:
    """Classify a guest value. bool is checked before int (bool subclasses int)."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, int):
        return ValueKind.INT
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (list, tuple)):
        return ValueKind.SEQUENCE
    if isinstance(value, Mapping):
        return ValueKind.MAPPING
    return ValueKind.UNSUPPORTED


def type_name(value: Any) -> str:
    return type(value).__name__


def check_int(value: int, path: str = "") -> int:
    if value < INT_MIN or value > INT_MAX:
        raise MarshalError(
            f"integer {value} out of range for signed {INT_BITS}-bit value",
            path=path,
            value=value,
        )
    return int(value)


def as_key(key: Any, path: str = "") -> str:
    """Mapping keys must already be strings; nothing is coerced."""
    if not isinstance(key, str):
        raise MarshalError(
            f"mapping keys must be strings, got {type_name(key)}",
            path=path,
            value=key,
        )
    return key


def _join(path: str, part: str | int) -> str:
    if isinstance(part, int):
        return f"{path}[{part}]"
    return f"{path}.{part}" if path else part


def _null(value: Any, path: str, active: frozenset[int]) -> None:
    return None


def _bool(value: Any, path: str, active: frozenset[int]) -> bool:
    return bool(value)


def _int(value: Any, path: str, active: frozenset[int]) -> int:
    return check_int(value, path)


def _float(value: Any, path: str, active: frozenset[int]) -> float:
    return float(value)


def _string(value: Any, path: str, active: frozenset[int]) -> str:
    return str(value)


def _enter(value: Any, path: str, active: frozenset[int]) -> frozenset[int]:
    """Ids of the containers on the path from the root down to ``value``."""
    if id(value) in active:
        raise MarshalError("cyclic value", path=path)
    return active | {id(value)}


def _sequence(value: Any, path: str, active: frozenset[int]) -> list[Any]:
    inner = _enter(value, path, active)
    return [_marshal(v, _join(path, i), inner) for i, v in enumerate(value)]


def _mapping(value: Any, path: str, active: frozenset[int]) -> dict[str, Any]:
    inner = _enter(value, path, active)
    out: dict[str, Any] = {}
    for k, v in list(value.items()):
        key = as_key(k, path)
        out[key] = _marshal(v, _join(path, key), inner)
    return out


def _unsupported(value: Any, path: str, active: frozenset[int]) -> Any:
    raise MarshalError(
        f"unsupported value type: {type_name(value)}",
        path=path,
        value=value,
    )


_CONVERTERS: dict[ValueKind, Callable[[Any, str, frozenset[int]], Any]] = {
    ValueKind.NULL: _null,
    ValueKind.BOOL: _bool,
    ValueKind.INT: _int,
    ValueKind.FLOAT: _float,
    ValueKind.STRING: _string,
    ValueKind.SEQUENCE: _sequence,
    ValueKind.MAPPING: _mapping,
    ValueKind.UNSUPPORTED: _unsupported,
}


def _marshal(value: Any, path: str, active: frozenset[int] = frozenset()) -> Any:
    return _CONVERTERS[kind_of(value)](value, path, active)


def marshal(value: Any) -> Any:
    """
    Return a canonical copy of ``value``: None, bool, int, float, str,
    list or dict (str keys, insertion order kept). Containers are always
    copied, so the caller can hand the result to the other side freely.
    Raises MarshalError for sets, bytes, arbitrary objects, non-string
    mapping keys, out-of-range integers and containers that contain
    themselves.
    """
    return _marshal(value, "")
