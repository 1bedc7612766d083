from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class SchemaKind(Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    UNRESOLVED = "unresolved"


# Order used to pick a node's primary kind when several are declared.
KIND_PRIORITY: list[SchemaKind] = [
    SchemaKind.STRING,
    SchemaKind.INTEGER,
    SchemaKind.NUMBER,
    SchemaKind.BOOLEAN,
    SchemaKind.ARRAY,
    SchemaKind.OBJECT,
]


def primary_kind(types: frozenset[SchemaKind]) -> SchemaKind:
    for kind in KIND_PRIORITY:
        if kind in types:
            return kind
    return SchemaKind.UNRESOLVED


def enum_text(value: Any) -> str:
    """Render an enum member the same way regardless of its JSON type."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(eq=False)
class SchemaNode:
    """A single schema in the loaded graph.

    Nodes are compared and hashed by identity: two properties that point at
    the same node share it, and cycles are plain reference cycles.
    """

    types: frozenset[SchemaKind] = frozenset()
    properties: dict[str, SchemaNode] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)
    all_of: list[SchemaNode] = field(default_factory=list)
    items: SchemaNode | None = None
    additional_properties: SchemaNode | None = None
    min_length: int | None = None
    max_length: int | None = None
    minimum: float | None = None
    maximum: float | None = None
    exclusive_minimum: bool = False
    exclusive_maximum: bool = False
    multiple_of: float | None = None
    min_items: int | None = None
    max_items: int | None = None
    unique_items: bool = False
    enum: list[Any] = field(default_factory=list)
    format: str = ""
    read_only: bool = False
    write_only: bool = False
    description: str = ""
    title: str = ""
    extensions: dict[str, Any] = field(default_factory=dict)
    ref: str | None = None

    @property
    def kind(self) -> SchemaKind:
        return primary_kind(self.types)

    def has_type(self, kind: SchemaKind) -> bool:
        return kind in self.types

    @property
    def is_object(self) -> bool:
        return SchemaKind.OBJECT in self.types

    @property
    def is_array(self) -> bool:
        return SchemaKind.ARRAY in self.types

    @property
    def label(self) -> str:
        return self.ref or f"<{self.kind.value}>"


@dataclass(frozen=True)
class EffectiveShape:
    """Merged view of a node and everything it composes via allOf."""

    node: SchemaNode
    properties: dict[str, SchemaNode]
    required: tuple[str, ...]
    origins: dict[str, SchemaNode] = field(default_factory=dict)
    types: frozenset[SchemaKind] = frozenset()
    description: str = ""
    read_only: bool = False
    write_only: bool = False
    format: str = ""
    enum: tuple[Any, ...] = ()
    items: SchemaNode | None = None
    additional_properties: SchemaNode | None = None
    extensions: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> SchemaKind:
        return primary_kind(self.types)

    def has_type(self, kind: SchemaKind) -> bool:
        return kind in self.types

    @property
    def is_object(self) -> bool:
        if SchemaKind.OBJECT in self.types:
            return True
        # Azure specs often omit "type: object" on definitions with properties.
        return not self.types and bool(self.properties)

    @property
    def is_array(self) -> bool:
        return SchemaKind.ARRAY in self.types


@dataclass
class SecretField:
    path: str
    var_name: str
    node: SchemaNode


@dataclass
class TerraformVariable:
    name: str
    var_type: str = "string"
    description: str = ""
    required: bool = True
    ephemeral: bool = False
    validations: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class TerraformOutput:
    name: str
    value: str
    description: str = ""


@dataclass
class GeneratedModule:
    files: dict[str, str] = field(default_factory=dict)
    variables: list[TerraformVariable] = field(default_factory=list)
    outputs: list[TerraformOutput] = field(default_factory=list)
    secrets: list[SecretField] = field(default_factory=list)
    supports_tags: bool = False
    supports_location: bool = False


@dataclass
class GeneratorConfig:
    spec_source: str
    resource_type: str
    output_dir: Path = Path(".")
    root_path: str = ""
    local_name: str = "resource_body"
    api_version: str | None = None
    terraform_version: str = "~> 1.12"
    azapi_version: str = "~> 2.7"
    validate_output: bool = True


@dataclass
class GenerationResult:
    success: bool
    output_path: Path
    files: list[Path] = field(default_factory=list)
    variables_generated: int = 0
    secrets: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
