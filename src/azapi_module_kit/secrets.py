from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from azapi_module_kit.models import EffectiveShape, SchemaNode, SecretField
from azapi_module_kit.naming import to_snake_case

if TYPE_CHECKING:
    from azapi_module_kit.allof import SchemaResolver

MUTABILITY_EXTENSION = "x-ms-mutability"
SECRET_EXTENSION = "x-ms-secret"
NEVER_RETURNED_PHRASE = "never be returned"


def _mutabilities(raw: Any) -> list[str]:
    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    if not isinstance(raw, (list, tuple)):
        return []

    values: list[str] = []
    for item in raw:
        if isinstance(item, str):
            item = item.strip().lower()
            if item:
                values.append(item)
    return values


def is_writable(schema: SchemaNode | EffectiveShape | None) -> bool:
    if schema is None:
        return False
    if schema.read_only:
        return False

    # A present but empty or unparseable annotation keeps the property writable.
    if MUTABILITY_EXTENSION in schema.extensions:
        mutabilities = _mutabilities(schema.extensions[MUTABILITY_EXTENSION])
        if mutabilities:
            return "create" in mutabilities or "update" in mutabilities

    return True


def is_secret(schema: SchemaNode | EffectiveShape | None) -> bool:
    if schema is None:
        return False
    if schema.write_only:
        return True

    # Some specs only document that a value is never returned.
    if schema.description and NEVER_RETURNED_PHRASE in schema.description.lower():
        return True

    return schema.extensions.get(SECRET_EXTENSION) is True


def collect_secret_fields(
    resolver: SchemaResolver,
    node: SchemaNode | None,
    path_prefix: str = "",
) -> list[SecretField]:
    return _collect(resolver, node, path_prefix, set())


def _collect(
    resolver: SchemaResolver,
    node: SchemaNode | None,
    path_prefix: str,
    visiting: set[SchemaNode],
) -> list[SecretField]:
    secrets: list[SecretField] = []
    if node is None or node in visiting:
        return secrets
    visiting.add(node)

    properties = resolver.effective_properties(node)
    for name in sorted(properties):
        prop = properties[name]
        shape = resolver.resolve(prop)
        if not is_writable(shape):
            continue

        current_path = f"{path_prefix}.{name}" if path_prefix else name

        if is_secret(shape):
            secrets.append(SecretField(path=current_path, var_name=to_snake_case(name), node=prop))

        if shape.is_object and shape.properties:
            secrets.extend(_collect(resolver, prop, current_path, visiting))

        if shape.is_array and shape.items is not None:
            item_shape = resolver.resolve(shape.items)
            if item_shape.is_object and item_shape.properties:
                secrets.extend(_collect(resolver, shape.items, f"{current_path}[]", visiting))

    visiting.discard(node)
    return secrets
