from __future__ import annotations

from azapi_module_kit.naming import is_hcl_identifier

HEREDOC_MARKER = "DESCRIPTION"


def escape_template(value: str) -> str:
    return value.replace("${", "$${").replace("%{", "%%{")


def quote(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\r", "\\r")
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )
    return f'"{escape_template(escaped)}"'


def format_number(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_key(key: str) -> str:
    """Object keys that are not identifiers (e.g. "foo.bar") must be quoted."""
    if is_hcl_identifier(key):
        return key
    return quote(key)


def render_object(attrs: list[tuple[str, str]], indent: int) -> str:
    """Render a multi-line object expression whose closing brace sits at ``indent``."""
    if not attrs:
        return "{}"
    inner = " " * (indent + 2)
    lines = ["{"]
    for key, value in attrs:
        lines.append(f"{inner}{format_key(key)} = {value}")
    lines.append(" " * indent + "}")
    return "\n".join(lines)


def render_attributes(attrs: list[tuple[str, str]], indent: int) -> list[str]:
    """Render block attributes with the equals signs aligned, as terraform fmt does."""
    if not attrs:
        return []
    width = max(len(name) for name, _ in attrs)
    prefix = " " * indent
    return [f"{prefix}{name.ljust(width)} = {value}" for name, value in attrs]


def heredoc(text: str, indent: int) -> str:
    prefix = " " * (indent + 2)
    body = [f"{prefix}{line}" if line else "" for line in escape_template(text).rstrip("\n").split("\n")]
    return "\n".join([f"<<-{HEREDOC_MARKER}", *body, " " * indent + HEREDOC_MARKER])
