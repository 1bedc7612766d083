from __future__ import annotations

from typing import Any

import hcl2
import pytest

from azapi_module_kit.allof import SchemaResolver
from azapi_module_kit.errors import CycleError, GenerationError
from azapi_module_kit.generator import ModuleGenerator
from azapi_module_kit.loader import SpecLoader
from azapi_module_kit.models import GeneratedModule, GeneratorConfig, TerraformVariable


def find_variable(module: GeneratedModule, name: str) -> TerraformVariable:
    return next(variable for variable in module.variables if variable.name == name)


def wrap_properties(properties: dict[str, Any], **extra: Any) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {"properties": {"type": "object", "properties": properties, **extra}},
    }


class TestModuleGenerator:
    @pytest.fixture
    def loader(self, widget_doc: dict[str, Any]) -> SpecLoader:
        return SpecLoader(widget_doc)

    @pytest.fixture
    def generator(self, config: GeneratorConfig) -> ModuleGenerator:
        return ModuleGenerator(config)

    @pytest.fixture
    def module(self, generator: ModuleGenerator, loader: SpecLoader) -> GeneratedModule:
        schema = loader.find_resource("Microsoft.Widgets/widgets")
        return generator.generate(schema, loader.api_version)

    def test_generates_all_files(self, module: GeneratedModule) -> None:
        assert set(module.files) == {
            "terraform.tf",
            "variables.tf",
            "locals.tf",
            "main.tf",
            "outputs.tf",
        }

    def test_files_are_valid_hcl(self, module: GeneratedModule) -> None:
        for name, content in module.files.items():
            assert isinstance(hcl2.loads(content), dict), name  # type: ignore[attr-defined]

    def test_variable_order(self, module: GeneratedModule) -> None:
        assert [variable.name for variable in module.variables] == [
            "name",
            "parent_id",
            "location",
            "tags",
            "admin_password",
            "display_name",
            "labels",
            "network",
            "replica_count",
            "sku",
            "admin_password_version",
        ]
        assert module.supports_tags
        assert module.supports_location

    def test_variable_types_and_requiredness(self, module: GeneratedModule) -> None:
        display_name = find_variable(module, "display_name")
        assert display_name.var_type == "string"
        assert display_name.required

        replica_count = find_variable(module, "replica_count")
        assert replica_count.var_type == "number"
        assert not replica_count.required

        assert find_variable(module, "labels").var_type == "map(string)"
        assert find_variable(module, "tags").var_type == "map(string)"
        assert find_variable(module, "network").var_type == (
            "object({\n    dns_prefix = optional(string)\n    subnet_id = optional(string)\n  })"
        )

    def test_validations_follow_constraints(self, module: GeneratedModule) -> None:
        assert find_variable(module, "display_name").validations == [
            (
                "length(var.display_name) >= 1 && length(var.display_name) <= 63",
                "display_name must be of length >= 1 and of length <= 63.",
            )
        ]
        assert find_variable(module, "replica_count").validations == [
            (
                "var.replica_count == null || (var.replica_count >= 1 && var.replica_count <= 10)",
                "replica_count must be >= 1 and <= 10.",
            )
        ]
        assert find_variable(module, "sku").validations == [
            (
                'var.sku == null || contains(["Basic", "Premium"], var.sku)',
                "sku must be one of: Basic, Premium.",
            )
        ]
        assert find_variable(module, "labels").validations == []

    def test_secret_variables(self, module: GeneratedModule) -> None:
        password = find_variable(module, "admin_password")
        assert password.ephemeral
        assert not password.required

        version = find_variable(module, "admin_password_version")
        assert version.var_type == "number"
        assert version.validations == [
            (
                "var.admin_password == null || var.admin_password_version != null",
                "When admin_password is set, admin_password_version must also be set.",
            )
        ]

        variables_tf = module.files["variables.tf"]
        assert "ephemeral   = true" in variables_tf

    def test_nested_description(self, module: GeneratedModule) -> None:
        description = find_variable(module, "network").description

        assert description.startswith("Network settings.\n\n")
        assert "- `dns_prefix` - The dns.prefix property.\n" in description
        assert "- `subnet_id` - Subnet resource ID.\n" in description
        assert "<<-DESCRIPTION" in module.files["variables.tf"]

    def test_locals_map_api_names(self, module: GeneratedModule) -> None:
        locals_tf = module.files["locals.tf"]

        assert locals_tf.startswith("locals {\n  resource_body = {\n    properties = {\n")
        assert "displayName = var.display_name" in locals_tf
        assert "replicaCount = var.replica_count" in locals_tf
        assert "network = var.network == null ? null : {" in locals_tf
        assert '"dns.prefix" = var.network.dns_prefix' in locals_tf
        assert "labels = var.labels == null ? null : { for k, value in var.labels : k => value }" in locals_tf

    def test_locals_omit_secrets_and_resource_attributes(self, module: GeneratedModule) -> None:
        locals_tf = module.files["locals.tf"]

        assert "adminPassword" not in locals_tf
        assert "provisioningState" not in locals_tf
        assert "location" not in locals_tf
        assert "tags" not in locals_tf

    def test_main_resource(self, module: GeneratedModule) -> None:
        main_tf = module.files["main.tf"]

        assert main_tf.startswith('resource "azapi_resource" "this" {\n')
        assert '"Microsoft.Widgets/widgets@2024-01-01"' in main_tf
        assert "= local.resource_body\n" in main_tf
        assert "= var.location\n" in main_tf
        assert "= var.tags\n" in main_tf
        assert "ignore_null_property   = true" in main_tf
        assert "adminPassword = var.admin_password" in main_tf
        assert '"properties.adminPassword" = var.admin_password_version' in main_tf
        assert "response_export_values = []" in main_tf

    def test_terraform_and_outputs(self, module: GeneratedModule) -> None:
        assert 'required_version = "~> 1.12"' in module.files["terraform.tf"]
        assert 'source  = "azure/azapi"' in module.files["terraform.tf"]
        assert 'version = "~> 2.7"' in module.files["terraform.tf"]
        assert [output.name for output in module.outputs] == ["resource_id", "name"]
        assert "azapi_resource.this.id" in module.files["outputs.tf"]

    def test_missing_api_version_uses_placeholder(
        self, generator: ModuleGenerator, loader: SpecLoader
    ) -> None:
        module = generator.generate(loader.find_resource("Microsoft.Widgets/widgets"), None)

        assert '"Microsoft.Widgets/widgets@apiVersion"' in module.files["main.tf"]

    def test_without_schema(self, generator: ModuleGenerator) -> None:
        module = generator.generate(None, "2024-01-01")

        assert [variable.name for variable in module.variables] == ["name", "parent_id"]
        assert "locals.tf" not in module.files
        assert "= {}\n" in module.files["main.tf"]
        assert hcl2.loads(module.files["main.tf"])  # type: ignore[attr-defined]

    def test_nested_root_wraps_properties(
        self, config: GeneratorConfig, loader: SpecLoader
    ) -> None:
        resolver = SchemaResolver()
        generator = ModuleGenerator(config, resolver)
        widget = loader.find_resource("Microsoft.Widgets/widgets")
        root = resolver.navigate(widget, "properties")
        assert root is not None

        module = generator.generate(root, "2024-01-01", widget)

        main_tf = module.files["main.tf"]
        assert "properties = local.resource_body" in main_tf
        assert '"properties.adminPassword" = var.admin_password_version' in main_tf
        assert module.supports_tags
        assert "display_name" in [variable.name for variable in module.variables]
        assert hcl2.loads(main_tf)  # type: ignore[attr-defined]

    def test_arrays_of_objects(self, generator: ModuleGenerator) -> None:
        schema = SpecLoader({}).build(
            wrap_properties(
                {
                    "rules": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {"port": {"type": "integer"}},
                            "required": ["port"],
                        },
                    }
                }
            )
        )

        module = generator.generate(schema, "v1")

        assert find_variable(module, "rules").var_type == (
            "list(object({\n    port = number\n  }))"
        )
        assert "rules = var.rules == null ? null : [for item in var.rules : item == null ? null : {" in (
            module.files["locals.tf"]
        )
        assert "port = item.port" in module.files["locals.tf"]
        assert hcl2.loads(module.files["locals.tf"])  # type: ignore[attr-defined]

    def test_map_of_objects_description(self, generator: ModuleGenerator) -> None:
        schema = SpecLoader({}).build(
            wrap_properties(
                {
                    "pools": {
                        "type": "object",
                        "description": "Pools by name.",
                        "additionalProperties": {
                            "type": "object",
                            "properties": {"size": {"type": "integer", "description": "Pool size."}},
                        },
                    }
                }
            )
        )

        module = generator.generate(schema, "v1")
        pools = find_variable(module, "pools")

        assert pools.var_type == "map(object({\n    size = optional(number)\n  }))"
        assert pools.description == "Pools by name.\n\nMap values:\n- `size` - Pool size.\n"
        assert "{ for k, value in var.pools : k => value == null ? null : {" in module.files["locals.tf"]

    def test_template_sequences_are_escaped(self, generator: ModuleGenerator) -> None:
        schema = SpecLoader({}).build(
            wrap_properties({"script": {"type": "string", "description": "Runs ${command}."}})
        )

        module = generator.generate(schema, "v1")

        assert '"Runs $${command}."' in module.files["variables.tf"]

    def test_variable_name_collision(self, generator: ModuleGenerator) -> None:
        schema = SpecLoader({}).build(
            wrap_properties({"fooBar": {"type": "string"}, "foo_bar": {"type": "string"}})
        )

        with pytest.raises(GenerationError, match="foo_bar"):
            generator.generate(schema, "v1")

    def test_attribute_name_collision(self, generator: ModuleGenerator) -> None:
        schema = SpecLoader({}).build(
            wrap_properties(
                {
                    "settings": {
                        "type": "object",
                        "properties": {"maxSize": {"type": "integer"}, "max_size": {"type": "integer"}},
                    }
                }
            )
        )

        with pytest.raises(GenerationError, match="max_size"):
            generator.generate(schema, "v1")

    def test_recursive_property_type_raises(self, generator: ModuleGenerator) -> None:
        loader = SpecLoader(
            {
                "definitions": {
                    "Folder": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string"},
                            "parent": {"$ref": "#/definitions/Folder"},
                        },
                    }
                }
            }
        )
        schema = loader.build(wrap_properties({"folder": {"$ref": "#/definitions/Folder"}}))

        with pytest.raises(CycleError, match="properties.folder.parent"):
            generator.generate(schema, "v1")

    def test_untyped_object_with_properties(self, generator: ModuleGenerator) -> None:
        schema = SpecLoader({}).build(
            wrap_properties({"profile": {"properties": {"tier": {"type": "string"}}}})
        )

        module = generator.generate(schema, "v1")

        assert find_variable(module, "profile").var_type == (
            "object({\n    tier = optional(string)\n  })"
        )

    def test_free_form_values(self, generator: ModuleGenerator) -> None:
        schema = SpecLoader({}).build(
            wrap_properties({"settings": {"type": "object"}, "anything": {}})
        )

        module = generator.generate(schema, "v1")

        assert find_variable(module, "settings").var_type == "map(string)"
        assert find_variable(module, "anything").var_type == "any"
