"""
Dataset document model shared by the marshaller, the gateway and the executor.

Entities: Entry, Structure, TransformInfo, Dataset.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DataFormat(str, Enum):
    """Body encodings a Structure can declare."""

    UNKNOWN = "unknown"
    JSON = "json"
    CSV = "csv"
    CBOR = "cbor"


class SchemaKind(str, Enum):
    """Root shape of a dataset body."""

    ARRAY = "array"
    OBJECT = "object"


BASE_SCHEMA_ARRAY: dict[str, Any] = {"type": "array"}
BASE_SCHEMA_OBJECT: dict[str, Any] = {"type": "object"}


def base_schema(kind: SchemaKind) -> dict[str, Any]:
    """Fresh minimal JSON schema for a root kind."""
    if kind == SchemaKind.OBJECT:
        return dict(BASE_SCHEMA_OBJECT)
    return dict(BASE_SCHEMA_ARRAY)


# ---------------------------------------------------------------------------
# Entry stream
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Entry:
    """One (index-or-key, value) pair. Mapping entries keep index=0."""

    index: int = 0
    key: str | None = None
    value: Any = None


# ---------------------------------------------------------------------------
# Dataset document
# ---------------------------------------------------------------------------


class Structure(BaseModel):
    """Body format plus the JSON schema describing its root."""

    model_config = ConfigDict(populate_by_name=True)

    format: DataFormat = DataFormat.JSON
    json_schema: dict[str, Any] | None = Field(default=None, alias="schema")

    def to_value(self) -> dict[str, Any]:
        """Plain dict as scripts see it: {"format": ..., "schema": ...}."""
        return {"format": self.format.value, "schema": self.json_schema}


class TransformInfo(BaseModel):
    """Provenance of the run that produced (or is producing) a dataset."""

    syntax: str = "python"
    syntax_version: str = ""
    script: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    resources: dict[str, dict[str, Any]] = Field(default_factory=dict)


class Dataset(BaseModel):
    """
    Dataset handle owned by the host. Scripts only change it through the
    dataset gateway, which consults the run's mutation-veto hook first.
    """

    meta: dict[str, Any] = Field(default_factory=dict)
    structure: Structure | None = None
    body: bytes | None = None
    transform: TransformInfo | None = None
