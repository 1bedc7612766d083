from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from azapi_module_kit.allof import SchemaResolver
from azapi_module_kit.models import GeneratorConfig

WIDGET_PATH = (
    "/subscriptions/{subscriptionId}/resourceGroups/{resourceGroupName}"
    "/providers/Microsoft.Widgets/widgets/{widgetName}"
)


def widget_document() -> dict[str, Any]:
    return {
        "swagger": "2.0",
        "info": {"title": "WidgetsClient", "version": "2024-01-01"},
        "paths": {
            WIDGET_PATH: {
                "put": {
                    "parameters": [
                        {"name": "subscriptionId", "in": "path", "type": "string"},
                        {
                            "name": "parameters",
                            "in": "body",
                            "schema": {"$ref": "#/definitions/Widget"},
                        },
                    ]
                }
            },
        },
        "definitions": {
            "Resource": {
                "properties": {
                    "id": {"type": "string", "readOnly": True},
                    "name": {"type": "string", "readOnly": True},
                    "type": {"type": "string", "readOnly": True},
                }
            },
            "TrackedResource": {
                "allOf": [{"$ref": "#/definitions/Resource"}],
                "properties": {
                    "location": {
                        "type": "string",
                        "x-ms-mutability": ["read", "create"],
                    },
                    "tags": {
                        "type": "object",
                        "additionalProperties": {"type": "string"},
                    },
                },
                "required": ["location"],
            },
            "Widget": {
                "allOf": [{"$ref": "#/definitions/TrackedResource"}],
                "properties": {
                    "properties": {"$ref": "#/definitions/WidgetProperties"},
                },
            },
            "WidgetProperties": {
                "type": "object",
                "properties": {
                    "displayName": {
                        "type": "string",
                        "minLength": 1,
                        "maxLength": 63,
                        "description": "Display name of the widget.",
                    },
                    "replicaCount": {"type": "integer", "minimum": 1, "maximum": 10},
                    "sku": {"type": "string", "enum": ["Basic", "Premium"]},
                    "adminPassword": {"type": "string", "x-ms-secret": True},
                    "provisioningState": {"type": "string", "readOnly": True},
                    "network": {"$ref": "#/definitions/NetworkProfile"},
                    "labels": {
                        "type": "object",
                        "additionalProperties": {"type": "string"},
                    },
                },
                "required": ["displayName"],
            },
            "NetworkProfile": {
                "type": "object",
                "description": "Network settings.",
                "properties": {
                    "subnetId": {"type": "string", "description": "Subnet resource ID."},
                    "dns.prefix": {"type": "string"},
                },
            },
        },
    }


@pytest.fixture
def resolver() -> SchemaResolver:
    return SchemaResolver()


@pytest.fixture
def widget_doc() -> dict[str, Any]:
    return widget_document()


@pytest.fixture
def widget_spec(tmp_path: Path, widget_doc: dict[str, Any]) -> Path:
    path = tmp_path / "widgets.json"
    path.write_text(json.dumps(widget_doc))
    return path


@pytest.fixture
def config(widget_spec: Path, tmp_path: Path) -> GeneratorConfig:
    return GeneratorConfig(
        spec_source=str(widget_spec),
        resource_type="Microsoft.Widgets/widgets",
        output_dir=tmp_path / "module",
    )
