"""Most-restrictive-wins merging of validation constraints across allOf components.

The walk reads the declared, unflattened node and every component it
composes, independent of property merging: a bound declared by a later
component tightens the result even when the property itself was taken from an
earlier one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from azapi_module_kit.errors import CycleError
from azapi_module_kit.models import SchemaNode, enum_text

X_MS_ENUM = "x-ms-enum"


@dataclass(frozen=True)
class ConstraintRecord:
    minimum: float | None = None
    exclusive_minimum: bool = False
    maximum: float | None = None
    exclusive_maximum: bool = False
    min_length: int | None = None
    max_length: int | None = None
    min_items: int | None = None
    max_items: int | None = None
    multiple_of: tuple[float, ...] = ()
    enum: tuple[Any, ...] | None = None

    @property
    def is_empty(self) -> bool:
        return not self.active()

    def active(self) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if self.minimum is not None:
            fields["minimum"] = self.minimum
            if self.exclusive_minimum:
                fields["exclusive_minimum"] = True
        if self.maximum is not None:
            fields["maximum"] = self.maximum
            if self.exclusive_maximum:
                fields["exclusive_maximum"] = True
        for name in ("min_length", "max_length", "min_items", "max_items"):
            value = getattr(self, name)
            if value is not None:
                fields[name] = value
        if self.multiple_of:
            fields["multiple_of"] = self.multiple_of
        if self.enum is not None:
            fields["enum"] = self.enum
        return fields


def enum_values(node: SchemaNode) -> list[Any]:
    """Enum members a single node declares, falling back to x-ms-enum values."""
    if node.enum:
        return list(node.enum)

    raw = node.extensions.get(X_MS_ENUM)
    if not isinstance(raw, dict):
        return []
    values: list[Any] = []
    for item in raw.get("values") or []:
        if isinstance(item, dict) and "value" in item:
            values.append(item["value"])
    return values


class _Accumulator:
    def __init__(self) -> None:
        self.minimum: float | None = None
        self.exclusive_minimum = False
        self.maximum: float | None = None
        self.exclusive_maximum = False
        self.min_length: int | None = None
        self.max_length: int | None = None
        self.min_items: int | None = None
        self.max_items: int | None = None
        self.multiple_of: list[float] = []
        self.enum: list[Any] | None = None

    def add(self, node: SchemaNode) -> None:
        if node.minimum is not None:
            if self.minimum is None or node.minimum > self.minimum:
                self.minimum = node.minimum
                self.exclusive_minimum = node.exclusive_minimum
            elif node.minimum == self.minimum and node.exclusive_minimum:
                self.exclusive_minimum = True

        if node.maximum is not None:
            if self.maximum is None or node.maximum < self.maximum:
                self.maximum = node.maximum
                self.exclusive_maximum = node.exclusive_maximum
            elif node.maximum == self.maximum and node.exclusive_maximum:
                self.exclusive_maximum = True

        self.min_length = _largest(self.min_length, node.min_length)
        self.max_length = _smallest(self.max_length, node.max_length)
        self.min_items = _largest(self.min_items, node.min_items)
        self.max_items = _smallest(self.max_items, node.max_items)

        if node.multiple_of is not None and node.multiple_of not in self.multiple_of:
            self.multiple_of.append(node.multiple_of)

        declared = enum_values(node)
        if declared:
            if self.enum is None:
                self.enum = list(dict.fromkeys(declared))
            else:
                allowed = {enum_text(value) for value in declared}
                self.enum = [value for value in self.enum if enum_text(value) in allowed]

    def record(self) -> ConstraintRecord:
        return ConstraintRecord(
            minimum=self.minimum,
            exclusive_minimum=self.exclusive_minimum if self.minimum is not None else False,
            maximum=self.maximum,
            exclusive_maximum=self.exclusive_maximum if self.maximum is not None else False,
            min_length=self.min_length,
            max_length=self.max_length,
            min_items=self.min_items,
            max_items=self.max_items,
            multiple_of=tuple(self.multiple_of),
            enum=tuple(self.enum) if self.enum is not None else None,
        )


def _largest(current: int | None, candidate: int | None) -> int | None:
    if candidate is None:
        return current
    if current is None:
        return candidate
    return max(current, candidate)


def _smallest(current: int | None, candidate: int | None) -> int | None:
    if candidate is None:
        return current
    if current is None:
        return candidate
    return min(current, candidate)


def resolve_constraints(node: SchemaNode) -> ConstraintRecord:
    """Merge every constraint declared by ``node`` and its allOf chain.

    Enum sets from several components are intersected, keeping the order of
    the first component that declares one.
    """
    accumulator = _Accumulator()
    _walk(node, accumulator, [], set())
    return accumulator.record()


def _walk(
    node: SchemaNode,
    accumulator: _Accumulator,
    path: list[str],
    visiting: set[SchemaNode],
) -> None:
    if node in visiting:
        raise CycleError(" -> ".join([*path, node.label]))
    visiting.add(node)
    path.append(node.label)
    try:
        accumulator.add(node)
        for index, component in enumerate(node.all_of):
            path.append(f"allOf[{index}]")
            _walk(component, accumulator, path, visiting)
            path.pop()
    finally:
        path.pop()
        visiting.discard(node)
