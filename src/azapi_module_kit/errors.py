from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from azapi_module_kit.models import SchemaNode


class AzapiModuleKitError(Exception):
    pass


class SpecLoadError(AzapiModuleKitError):
    pass


class ResourceNotFoundError(AzapiModuleKitError):
    pass


class SchemaPathError(AzapiModuleKitError):
    pass


class GenerationError(AzapiModuleKitError):
    pass


class TerraformWriteError(AzapiModuleKitError):
    pass


class SchemaResolutionError(AzapiModuleKitError):
    pass


def describe_kind(node: SchemaNode | None) -> str:
    if node is None or not node.types:
        return "unknown"
    return node.kind.value


class ConflictError(SchemaResolutionError):
    def __init__(
        self,
        property_name: str,
        index: int,
        first: SchemaNode,
        conflicting: SchemaNode,
    ) -> None:
        self.property_name = property_name
        self.index = index
        self.first = first
        self.conflicting = conflicting
        super().__init__(
            f"conflicting definitions for property {property_name!r} in allOf: "
            f"component {index} defines it differently than previous definition. "
            f"First defined with type={describe_kind(first)}, "
            f"description={first.description!r}; "
            f"conflicting definition has type={describe_kind(conflicting)}, "
            f"description={conflicting.description!r}"
        )


class CycleError(SchemaResolutionError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"circular reference detected while resolving {path}")
