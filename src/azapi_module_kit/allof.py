"""allOf composition: effective shapes and the equivalence relation used to merge them.

Resolution is non-destructive. The loaded graph is never rewritten; every
derived shape lives in the resolver's side table, keyed by node identity, for
the lifetime of one resolver (one generation run).
"""

from __future__ import annotations

import logging
from typing import Any

from azapi_module_kit.constraints import resolve_constraints
from azapi_module_kit.errors import ConflictError, CycleError, SchemaPathError
from azapi_module_kit.models import EffectiveShape, SchemaNode, enum_text
from azapi_module_kit.secrets import is_writable

logger = logging.getLogger(__name__)


class SchemaResolver:
    def __init__(self) -> None:
        self._cache: dict[SchemaNode, EffectiveShape] = {}
        self._in_progress: set[SchemaNode] = set()
        self._stack: list[str] = []
        self.merge_count = 0

    def resolve(self, node: SchemaNode) -> EffectiveShape:
        """Return the effective properties, required set and metadata of ``node``.

        Raises ConflictError when two allOf components disagree on a property
        and CycleError when the allOf chain re-enters a node being resolved.
        """
        cached = self._cache.get(node)
        if cached is not None:
            return cached

        if node in self._in_progress:
            raise CycleError(self._cycle_path(node))

        self._in_progress.add(node)
        self._stack.append(node.label)
        try:
            shape = self._merge(node)
        finally:
            self._in_progress.discard(node)
            self._stack.pop()

        self._cache[node] = shape
        return shape

    def effective_properties(self, node: SchemaNode) -> dict[str, SchemaNode]:
        return self.resolve(node).properties

    def effective_required(self, node: SchemaNode) -> tuple[str, ...]:
        return self.resolve(node).required

    def navigate(self, node: SchemaNode, path: str) -> SchemaNode | None:
        """Follow a dot-separated property path through effective properties.

        Returns None when a segment on the path is read-only.
        """
        if not path:
            return node

        current = node
        for segment in path.split("."):
            properties = self.resolve(current).properties
            if not properties:
                raise SchemaPathError(
                    f"path segment {segment} not found: schema has no properties"
                )
            child = properties.get(segment)
            if child is None:
                raise SchemaPathError(f"property {segment} not found")
            if self.resolve(child).read_only:
                return None
            current = child
        return current

    def has_writable_property(self, node: SchemaNode | None, path: str) -> bool:
        if node is None or not path:
            return False

        current = node
        for segment in path.split("."):
            child = self.resolve(current).properties.get(segment)
            if child is None or not is_writable(self.resolve(child)):
                return False
            current = child
        return True

    def equivalent(self, a: SchemaNode | None, b: SchemaNode | None) -> bool:
        """Like are_equivalent, but each side is compared with its own allOf applied.

        A property wrapped as ``{"allOf": [{"$ref": ...}], "description": ...}`` is
        equivalent to a plain reference to the same definition.
        """
        return _equivalent(a, b, set(), self)

    def _composed(self, node: SchemaNode) -> SchemaNode | EffectiveShape:
        # A node whose chain reaches one still being merged is compared as declared.
        if node in self._in_progress:
            return node
        try:
            return self.resolve(node)
        except CycleError:
            logger.debug("Comparing %s as declared: its allOf chain is being merged", node.label)
            return node

    def _merge(self, node: SchemaNode) -> EffectiveShape:
        self.merge_count += 1

        properties: dict[str, SchemaNode] = dict(node.properties)
        origins: dict[str, SchemaNode] = {name: node for name in node.properties}
        required: list[str] = list(dict.fromkeys(node.required))

        if not node.all_of:
            return EffectiveShape(
                node=node,
                properties=properties,
                required=tuple(sorted(required)),
                origins=origins,
                types=node.types,
                description=node.description,
                read_only=node.read_only,
                write_only=node.write_only,
                format=node.format,
                enum=tuple(node.enum),
                items=node.items,
                additional_properties=node.additional_properties,
                extensions=dict(node.extensions),
            )

        logger.debug("Merging %d allOf components of %s", len(node.all_of), node.label)

        types = node.types
        description = node.description
        read_only = node.read_only
        write_only = node.write_only
        fmt = node.format
        enum: tuple[Any, ...] = tuple(node.enum)
        items = node.items
        additional_properties = node.additional_properties
        extensions = dict(node.extensions)

        for index, component in enumerate(node.all_of):
            self._stack.append(f"allOf[{index}]")
            try:
                resolved = self.resolve(component)
            finally:
                self._stack.pop()

            for name, prop in resolved.properties.items():
                existing = properties.get(name)
                if existing is None:
                    properties[name] = prop
                    origins[name] = component
                    continue
                if not self.equivalent(existing, prop):
                    raise ConflictError(name, index, existing, prop)

            for name in resolved.required:
                if name not in required:
                    required.append(name)

            if not types:
                types = resolved.types
            if not description:
                description = resolved.description
            if not fmt:
                fmt = resolved.format
            if not enum:
                enum = resolved.enum
            if items is None:
                items = resolved.items
            if additional_properties is None:
                additional_properties = resolved.additional_properties
            read_only = read_only or resolved.read_only
            write_only = write_only or resolved.write_only
            for key, value in resolved.extensions.items():
                extensions.setdefault(key, value)

        return EffectiveShape(
            node=node,
            properties=properties,
            required=tuple(sorted(required)),
            origins=origins,
            types=types,
            description=description,
            read_only=read_only,
            write_only=write_only,
            format=fmt,
            enum=enum,
            items=items,
            additional_properties=additional_properties,
            extensions=extensions,
        )

    def _cycle_path(self, node: SchemaNode) -> str:
        return " -> ".join([*self._stack, node.label])


def are_equivalent(a: SchemaNode | None, b: SchemaNode | None) -> bool:
    """Structural equality for merge purposes, on nodes as declared.

    Strict on shape, format, flags and constraints; documentation (description,
    title) and vendor extensions never make two definitions differ.
    """
    return _equivalent(a, b, set(), None)


def _equivalent(
    a: SchemaNode | None,
    b: SchemaNode | None,
    assumed: set[tuple[int, int]],
    resolver: SchemaResolver | None,
) -> bool:
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    if a is b:
        return True

    # Pairs already under comparison are assumed equal so recursive schemas terminate.
    pair = (id(a), id(b))
    if pair in assumed:
        return True
    assumed.add(pair)

    if resolver is None:
        left: SchemaNode | EffectiveShape = a
        right: SchemaNode | EffectiveShape = b
        if not _constraints_equal(a, b):
            return False
    else:
        left, right = resolver._composed(a), resolver._composed(b)
        if resolve_constraints(a) != resolve_constraints(b):
            return False

    if left.types != right.types:
        return False
    if left.read_only != right.read_only or left.write_only != right.write_only:
        return False
    if left.format != right.format:
        return False
    if {enum_text(v) for v in left.enum} != {enum_text(v) for v in right.enum}:
        return False

    if _is_object(left) or _is_object(right):
        if set(left.properties) != set(right.properties):
            return False
        for name, left_prop in left.properties.items():
            if not _equivalent(left_prop, right.properties[name], assumed, resolver):
                return False
        if set(left.required) != set(right.required):
            return False

    if left.is_array or right.is_array:
        if not _equivalent(left.items, right.items, assumed, resolver):
            return False

    return True


def _is_object(view: SchemaNode | EffectiveShape) -> bool:
    return view.is_object or (not view.types and bool(view.properties))


def _constraints_equal(a: SchemaNode, b: SchemaNode) -> bool:
    return (
        a.min_length == b.min_length
        and a.max_length == b.max_length
        and a.minimum == b.minimum
        and a.maximum == b.maximum
        and a.exclusive_minimum == b.exclusive_minimum
        and a.exclusive_maximum == b.exclusive_maximum
        and a.multiple_of == b.multiple_of
        and a.min_items == b.min_items
        and a.max_items == b.max_items
        and a.unique_items == b.unique_items
    )
