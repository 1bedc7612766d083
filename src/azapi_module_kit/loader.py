from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urljoin, urlparse

import requests
import yaml

from azapi_module_kit.errors import ResourceNotFoundError, SpecLoadError
from azapi_module_kit.models import SchemaKind, SchemaNode

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 30

KIND_BY_NAME: dict[str, SchemaKind] = {
    kind.value: kind for kind in SchemaKind if kind is not SchemaKind.UNRESOLVED
}


def is_url(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https")


def load_document(source: str) -> dict[str, Any]:
    try:
        if is_url(source):
            response = requests.get(source, timeout=HTTP_TIMEOUT_SECONDS)
            response.raise_for_status()
            text = response.text
        else:
            text = Path(source).read_text(encoding="utf-8")
    except (requests.RequestException, OSError) as e:
        raise SpecLoadError(f"Failed to read {source}: {e}") from e

    try:
        if text.lstrip().startswith("{"):
            document = json.loads(text)
        else:
            document = yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        raise SpecLoadError(f"Failed to parse {source}: {e}") from e

    if not isinstance(document, dict):
        raise SpecLoadError(f"{source} is not an OpenAPI document")
    return document


def _decode_pointer_token(token: str) -> str:
    return unquote(token).replace("~1", "/").replace("~0", "~")


def json_pointer_get(document: Any, pointer: str) -> Any:
    if pointer in ("", "#"):
        return document
    if pointer.startswith("#"):
        pointer = pointer[1:]
    if not pointer.startswith("/"):
        raise KeyError(f"Invalid JSON pointer (must start with '/'): {pointer!r}")

    current = document
    for raw_token in pointer.split("/")[1:]:
        token = _decode_pointer_token(raw_token)
        if isinstance(current, list):
            current = current[int(token)]
        elif isinstance(current, dict):
            current = current[token]
        else:
            raise KeyError(f"Cannot traverse into {type(current).__name__} at {token!r}")
    return current


def is_path_param(segment: str) -> bool:
    return segment.startswith("{") and segment.endswith("}")


def arm_instance_resource_type(path: str) -> str | None:
    """Derive "Namespace/type[/child]" from an ARM instance path ending in {name}."""
    trimmed = path.strip("/")
    if not trimmed:
        return None
    segments = trimmed.split("/")
    providers_idx = next(
        (i for i, segment in enumerate(segments) if segment.lower() == "providers"),
        -1,
    )
    if providers_idx == -1 or providers_idx + 1 >= len(segments):
        return None

    provider = segments[providers_idx + 1]
    if not provider:
        return None

    type_segments: list[str] = []
    i = providers_idx + 2
    while i < len(segments):
        segment = segments[i]
        if is_path_param(segment):
            return None
        if i + 1 >= len(segments) or not is_path_param(segments[i + 1]):
            break
        type_segments.append(segment)
        i += 2

    if providers_idx + 2 + 2 * len(type_segments) != len(segments):
        return None
    if not type_segments:
        return None
    return f"{provider}/{'/'.join(type_segments)}"


def clean_resource_type(resource_type: str) -> str:
    return "/".join(segment for segment in resource_type.split("/") if not is_path_param(segment))


class SpecLoader:
    def __init__(self, document: dict[str, Any], source: str = "") -> None:
        self.document = document
        self.source = source
        self._documents: dict[str, dict[str, Any]] = {self._document_key(source): document}
        self._nodes: dict[tuple[str, str], SchemaNode] = {}

    @classmethod
    def from_source(cls, source: str) -> SpecLoader:
        logger.info("Loading specification from %s", source)
        return cls(load_document(source), source)

    @property
    def api_version(self) -> str | None:
        info = self.document.get("info")
        if isinstance(info, dict) and info.get("version"):
            return str(info["version"])
        return None

    def find_resource(self, resource_type: str) -> SchemaNode:
        raw, base = self._find_resource_schema(resource_type)
        return self.build(raw, base)

    def build(self, raw: dict[str, Any], base: str | None = None) -> SchemaNode:
        return self._build(raw, self._document_key(self.source) if base is None else base)

    def _find_resource_schema(self, resource_type: str) -> tuple[dict[str, Any], str]:
        search_type = resource_type
        if search_type.endswith("}"):
            idx = search_type.rfind("/{")
            if idx != -1:
                search_type = search_type[:idx]

        base = self._document_key(self.source)
        best: dict[str, Any] | None = None

        for path, path_item in (self.document.get("paths") or {}).items():
            if not isinstance(path_item, dict) or not isinstance(path_item.get("put"), dict):
                continue
            if not self._path_matches(path, search_type):
                continue

            schema = self._put_body_schema(path_item["put"])
            if schema is None:
                continue

            best = schema
            if path.endswith("}"):
                logger.debug("Matched %s to path %s", resource_type, path)
                return best, base

        if best is not None:
            return best, base

        name = search_type.split("/")[-1]
        candidates = [name, name[:-1] if name.endswith("s") else name]
        schemas: dict[str, Any] = dict(self.document.get("definitions") or {})
        schemas.update((self.document.get("components") or {}).get("schemas") or {})
        for schema_name, raw in schemas.items():
            for candidate in candidates:
                if schema_name.lower() == candidate.lower() and isinstance(raw, dict):
                    logger.debug("Falling back to schema %s for %s", schema_name, resource_type)
                    return raw, base

        raise ResourceNotFoundError(
            f"resource type {resource_type} not found in {self.source or 'the document'}"
        )

    def _path_matches(self, path: str, search_type: str) -> bool:
        derived = arm_instance_resource_type(path)
        if derived is not None:
            return derived.lower() == search_type.lower()

        lower_path = path.lower()
        lower_type = search_type.lower()
        idx = lower_path.find(lower_type)
        if idx == -1:
            return False
        if idx > 0 and lower_path[idx - 1] != "/":
            return False
        suffix = lower_path[idx + len(lower_type) :]
        if suffix and suffix[0] != "/":
            return False
        trimmed = suffix[1:]
        segments = trimmed.count("/") + 1 if trimmed else 0
        return segments <= 1

    def _put_body_schema(self, operation: dict[str, Any]) -> dict[str, Any] | None:
        request_body = self._deref(operation.get("requestBody"))
        if isinstance(request_body, dict):
            media = (request_body.get("content") or {}).get("application/json")
            if isinstance(media, dict) and isinstance(media.get("schema"), dict):
                return media["schema"]

        # Swagger 2.0 models the request body as an "in: body" parameter.
        for parameter in operation.get("parameters") or []:
            parameter = self._deref(parameter)
            if (
                isinstance(parameter, dict)
                and parameter.get("in") == "body"
                and isinstance(parameter.get("schema"), dict)
            ):
                return parameter["schema"]
        return None

    def _deref(self, raw: Any) -> Any:
        seen: set[str] = set()
        while isinstance(raw, dict) and isinstance(raw.get("$ref"), str):
            ref = raw["$ref"]
            if ref in seen or not ref.startswith("#"):
                return raw
            seen.add(ref)
            try:
                raw = json_pointer_get(self.document, ref)
            except (KeyError, IndexError, ValueError) as e:
                raise SpecLoadError(f"Unresolvable reference {ref}: {e}") from e
        return raw

    def _document_key(self, source: str) -> str:
        if not source or is_url(source):
            return source
        return str(Path(source).resolve())

    def _load_referenced(self, key: str) -> dict[str, Any]:
        document = self._documents.get(key)
        if document is None:
            logger.debug("Loading referenced document %s", key)
            document = load_document(key)
            self._documents[key] = document
        return document

    def _split_ref(self, ref: str, base: str) -> tuple[str, str]:
        file_part, _, pointer = ref.partition("#")
        if not file_part:
            return base, pointer
        if is_url(file_part):
            return file_part, pointer
        if not base:
            raise SpecLoadError(f"Cannot resolve relative reference {ref} without a source location")
        if is_url(base):
            return urljoin(base, file_part), pointer
        return str((Path(base).parent / file_part).resolve()), pointer

    def _build(self, raw: Any, base: str) -> SchemaNode:
        if not isinstance(raw, dict):
            return SchemaNode()

        ref = raw.get("$ref")
        if isinstance(ref, str):
            doc_key, pointer = self._split_ref(ref, base)
            key = (doc_key, pointer)
            node = self._nodes.get(key)
            if node is not None:
                return node

            document = self._load_referenced(doc_key)
            try:
                target = json_pointer_get(document, pointer)
            except (KeyError, IndexError, ValueError) as e:
                raise SpecLoadError(f"Unresolvable reference {ref}: {e}") from e

            # Register before populating so cyclic references land on this node.
            node = SchemaNode(ref=pointer.rsplit("/", 1)[-1] or ref)
            self._nodes[key] = node
            self._populate(node, target, doc_key)
            return node

        node = SchemaNode()
        self._populate(node, raw, base)
        return node

    def _populate(self, node: SchemaNode, raw: Any, base: str) -> None:
        if not isinstance(raw, dict):
            return
        if isinstance(raw.get("$ref"), str):
            # A definition that is itself only a reference behaves like a one-element allOf.
            node.all_of = [self._build(raw, base)]
            return

        declared = raw.get("type")
        names = declared if isinstance(declared, list) else [declared]
        node.types = frozenset(KIND_BY_NAME[name] for name in names if name in KIND_BY_NAME)

        node.properties = {
            str(name): self._build(value, base)
            for name, value in (raw.get("properties") or {}).items()
        }
        node.required = [str(name) for name in raw.get("required") or []]
        node.all_of = [self._build(component, base) for component in raw.get("allOf") or []]

        if isinstance(raw.get("items"), dict):
            node.items = self._build(raw["items"], base)
        if isinstance(raw.get("additionalProperties"), dict):
            node.additional_properties = self._build(raw["additionalProperties"], base)

        node.min_length = _int_or_none(raw.get("minLength"))
        node.max_length = _int_or_none(raw.get("maxLength"))
        node.min_items = _int_or_none(raw.get("minItems"))
        node.max_items = _int_or_none(raw.get("maxItems"))
        node.minimum = _float_or_none(raw.get("minimum"))
        node.maximum = _float_or_none(raw.get("maximum"))
        node.multiple_of = _float_or_none(raw.get("multipleOf"))

        exclusive_min = raw.get("exclusiveMinimum")
        if isinstance(exclusive_min, bool):
            node.exclusive_minimum = exclusive_min
        elif isinstance(exclusive_min, (int, float)):
            node.minimum = float(exclusive_min)
            node.exclusive_minimum = True

        exclusive_max = raw.get("exclusiveMaximum")
        if isinstance(exclusive_max, bool):
            node.exclusive_maximum = exclusive_max
        elif isinstance(exclusive_max, (int, float)):
            node.maximum = float(exclusive_max)
            node.exclusive_maximum = True

        node.unique_items = raw.get("uniqueItems") is True
        node.enum = list(raw.get("enum") or [])
        node.format = str(raw.get("format") or "")
        node.read_only = raw.get("readOnly") is True
        node.write_only = raw.get("writeOnly") is True
        node.description = str(raw.get("description") or "")
        node.title = str(raw.get("title") or "")
        node.extensions = {
            key: value for key, value in raw.items() if isinstance(key, str) and key.startswith("x-")
        }


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _float_or_none(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)
