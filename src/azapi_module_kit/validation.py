from __future__ import annotations

from typing import Any

from azapi_module_kit.constraints import ConstraintRecord, resolve_constraints
from azapi_module_kit.hcl import format_number, quote
from azapi_module_kit.models import EffectiveShape, SchemaKind, SchemaNode, enum_text

NUMERIC_KINDS = {SchemaKind.INTEGER, SchemaKind.NUMBER}


def _enum_literal(value: Any, shape: EffectiveShape) -> str:
    if shape.types & NUMERIC_KINDS and isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_number(value)
    if shape.has_type(SchemaKind.BOOLEAN) and isinstance(value, bool):
        return "true" if value else "false"
    return quote(enum_text(value))


def constraint_checks(
    ref: str,
    record: ConstraintRecord,
    shape: EffectiveShape,
) -> list[tuple[str, str]]:
    """Pair each active constraint with its HCL check and message fragment.

    Order is fixed: lower bound, upper bound, length bounds, multipleOf, enum.
    """
    checks: list[tuple[str, str]] = []
    numeric = bool(shape.types & NUMERIC_KINDS)

    if numeric and record.minimum is not None:
        op = ">" if record.exclusive_minimum else ">="
        bound = format_number(record.minimum)
        checks.append((f"{ref} {op} {bound}", f"{op} {bound}"))

    if numeric and record.maximum is not None:
        op = "<" if record.exclusive_maximum else "<="
        bound = format_number(record.maximum)
        checks.append((f"{ref} {op} {bound}", f"{op} {bound}"))

    if shape.has_type(SchemaKind.STRING):
        min_len, max_len = record.min_length, record.max_length
    elif shape.is_array:
        min_len, max_len = record.min_items, record.max_items
    else:
        min_len = max_len = None
    if min_len is not None and min_len > 0:
        checks.append((f"length({ref}) >= {min_len}", f"of length >= {min_len}"))
    if max_len is not None:
        checks.append((f"length({ref}) <= {max_len}", f"of length <= {max_len}"))

    if numeric:
        for multiple in record.multiple_of:
            divisor = format_number(multiple)
            checks.append((f"{ref} % {divisor} == 0", f"multiple of {divisor}"))

    if record.enum is not None and not shape.is_object and not shape.is_array:
        if record.enum:
            literals = ", ".join(_enum_literal(value, shape) for value in record.enum)
            readable = ", ".join(enum_text(value) for value in record.enum)
            checks.append((f"contains([{literals}], {ref})", f"one of: {readable}"))
        else:
            # Disjoint enums across allOf components: no value is accepted.
            checks.append((f"contains([], {ref})", "one of the values shared by its allOf enums (none)"))

    return checks


def build_validation(
    var_name: str,
    node: SchemaNode,
    shape: EffectiveShape,
    required: bool,
) -> tuple[str, str] | None:
    """Return (condition, error_message) for a variable, or None when unconstrained."""
    ref = f"var.{var_name}"
    checks = constraint_checks(ref, resolve_constraints(node), shape)
    if not checks:
        return None

    condition = " && ".join(check for check, _ in checks)
    if not required:
        condition = f"{ref} == null || ({condition})" if len(checks) > 1 else f"{ref} == null || {condition}"
    message = f"{var_name} must be {' and '.join(phrase for _, phrase in checks)}."
    return condition, message
