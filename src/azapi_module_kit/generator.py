from __future__ import annotations

import logging

from azapi_module_kit.allof import SchemaResolver
from azapi_module_kit.errors import CycleError, GenerationError
from azapi_module_kit.hcl import heredoc, quote, render_attributes, render_object
from azapi_module_kit.loader import clean_resource_type
from azapi_module_kit.models import (
    GeneratedModule,
    GeneratorConfig,
    SchemaKind,
    SchemaNode,
    SecretField,
    TerraformOutput,
    TerraformVariable,
)
from azapi_module_kit.naming import to_snake_case
from azapi_module_kit.secrets import collect_secret_fields, is_secret, is_writable
from azapi_module_kit.validation import build_validation

logger = logging.getLogger(__name__)

PROPERTIES_BAG = "properties"
API_VERSION_PLACEHOLDER = "apiVersion"


class ModuleGenerator:
    def __init__(self, config: GeneratorConfig, resolver: SchemaResolver | None = None) -> None:
        self.config = config
        self.resolver = resolver or SchemaResolver()

    def generate(
        self,
        schema: SchemaNode | None,
        api_version: str | None = None,
        resource_schema: SchemaNode | None = None,
    ) -> GeneratedModule:
        """Render the module files for ``schema``.

        ``resource_schema`` is the full PUT body when ``schema`` is a nested
        root; tags and location support is always detected on the full body.
        """
        module = GeneratedModule()
        envelope = resource_schema if resource_schema is not None else schema
        module.supports_tags = self.resolver.has_writable_property(envelope, "tags")
        module.supports_location = self.resolver.has_writable_property(envelope, "location")
        if schema is not None:
            module.secrets = collect_secret_fields(self.resolver, schema)

        module.variables = self._build_variables(schema, module)
        module.outputs = [
            TerraformOutput(
                name="resource_id",
                value="azapi_resource.this.id",
                description="The ID of the created resource.",
            ),
            TerraformOutput(
                name="name",
                value="azapi_resource.this.name",
                description="The name of the created resource.",
            ),
        ]

        module.files["terraform.tf"] = self._render_terraform()
        module.files["variables.tf"] = self._render_variables(module.variables)
        if schema is not None:
            module.files["locals.tf"] = self._render_locals(schema, module)
        module.files["main.tf"] = self._render_main(schema, api_version, module)
        module.files["outputs.tf"] = self._render_outputs(module.outputs)

        logger.debug(
            "Generated %d variables (%d secrets) using %d schema merges",
            len(module.variables),
            len(module.secrets),
            self.resolver.merge_count,
        )
        return module

    # Variables

    def _build_variables(
        self, schema: SchemaNode | None, module: GeneratedModule
    ) -> list[TerraformVariable]:
        variables = [
            TerraformVariable(name="name", description="The name of the resource."),
            TerraformVariable(
                name="parent_id", description="The parent resource ID for this resource."
            ),
        ]
        if module.supports_location:
            variables.append(
                TerraformVariable(name="location", description="The location of the resource.")
            )
        if module.supports_tags:
            variables.append(
                TerraformVariable(
                    name="tags",
                    var_type="map(string)",
                    description="Tags to apply to the resource.",
                    required=False,
                )
            )

        seen = {variable.name for variable in variables}
        secret_names = {secret.var_name for secret in module.secrets}

        if schema is not None:
            root = self.resolver.resolve(schema)
            for name in sorted(root.properties):
                if module.supports_tags and name == "tags":
                    continue
                if module.supports_location and name == "location":
                    continue
                prop = root.properties[name]
                shape = self.resolver.resolve(prop)
                if not is_writable(shape):
                    continue

                # The top-level "properties" bag is flattened into individual variables.
                if name == PROPERTIES_BAG and shape.is_object and shape.properties:
                    for child_name in sorted(shape.properties):
                        child = shape.properties[child_name]
                        if not is_writable(self.resolver.resolve(child)):
                            continue
                        variables.append(
                            self._schema_variable(
                                child_name,
                                child,
                                child_name in shape.required,
                                seen,
                                secret_names,
                                f"{PROPERTIES_BAG}.{child_name}",
                            )
                        )
                    continue

                variables.append(
                    self._schema_variable(
                        name, prop, name in root.required, seen, secret_names, name
                    )
                )

        ephemeral = {variable.name for variable in variables if variable.ephemeral}
        for secret in module.secrets:
            if secret.var_name in ephemeral:
                continue
            if secret.var_name in seen:
                raise GenerationError(
                    f"terraform variable name collision: {secret.var_name!r} (from secret {secret.path})"
                )
            seen.add(secret.var_name)
            ephemeral.add(secret.var_name)
            shape = self.resolver.resolve(secret.node)
            variables.append(
                TerraformVariable(
                    name=secret.var_name,
                    var_type=self._map_type(secret.node, 2, secret.path, set()),
                    description=shape.description or f"The {secret.var_name} of the resource.",
                    required=False,
                    ephemeral=True,
                )
            )

        for secret in module.secrets:
            version_name = f"{secret.var_name}_version"
            if version_name in seen:
                raise GenerationError(
                    f"terraform variable name collision: {version_name!r} (from secret version var)"
                )
            seen.add(version_name)
            variables.append(
                TerraformVariable(
                    name=version_name,
                    var_type="number",
                    description=(
                        f"Version tracker for {secret.var_name}. "
                        f"Must be set when {secret.var_name} is provided."
                    ),
                    required=False,
                    validations=[
                        (
                            f"var.{secret.var_name} == null || var.{version_name} != null",
                            f"When {secret.var_name} is set, {version_name} must also be set.",
                        )
                    ],
                )
            )

        return variables

    def _schema_variable(
        self,
        api_name: str,
        node: SchemaNode,
        required: bool,
        seen: set[str],
        secret_names: set[str],
        path: str,
    ) -> TerraformVariable:
        tf_name = to_snake_case(api_name)
        if not tf_name:
            raise GenerationError(f"could not derive terraform variable name for {path}")
        if tf_name in seen:
            raise GenerationError(f"terraform variable name collision: {tf_name!r} (from {path})")
        seen.add(tf_name)

        shape = self.resolver.resolve(node)
        variable = TerraformVariable(
            name=tf_name,
            var_type=self._map_type(node, 2, path, set()),
            description=self._variable_description(api_name, node),
            required=required,
            ephemeral=tf_name in secret_names and is_secret(shape),
        )
        validation = build_validation(tf_name, node, shape, required)
        if validation is not None:
            variable.validations.append(validation)
        return variable

    def _variable_description(self, api_name: str, node: SchemaNode) -> str:
        shape = self.resolver.resolve(node)
        description = shape.description or f"The {api_name} of the resource."

        nested: SchemaNode | None = None
        if shape.is_object:
            if shape.properties:
                nested = node
            elif shape.additional_properties is not None:
                value_shape = self.resolver.resolve(shape.additional_properties)
                if value_shape.is_object and value_shape.properties:
                    nested = shape.additional_properties

        if nested is None:
            return description

        text = description + "\n\n"
        if nested is not node:
            text += "Map values:\n"
        text += self.build_nested_description(nested)
        return text

    def build_nested_description(
        self, node: SchemaNode, indent: str = "", visiting: set[SchemaNode] | None = None
    ) -> str:
        visiting = set() if visiting is None else visiting
        if node in visiting:
            return ""
        visiting.add(node)

        properties = self.resolver.effective_properties(node)
        lines: list[str] = []
        for name in sorted(properties, key=to_snake_case):
            child = properties[name]
            shape = self.resolver.resolve(child)
            if not is_writable(shape):
                continue
            child_description = (shape.description or f"The {name} property.").replace("\n", " ")
            lines.append(f"{indent}- `{to_snake_case(name)}` - {child_description}\n")
            if shape.is_object and shape.properties:
                lines.append(self.build_nested_description(child, indent + "  ", visiting))

        visiting.discard(node)
        return "".join(lines)

    def terraform_type(self, node: SchemaNode, path: str = "") -> str:
        return self._map_type(node, 2, path or node.label, set())

    def _map_type(self, node: SchemaNode, indent: int, path: str, visiting: set[SchemaNode]) -> str:
        if node in visiting:
            raise CycleError(f"{path} (a Terraform type cannot contain itself)")
        shape = self.resolver.resolve(node)

        if shape.has_type(SchemaKind.STRING):
            return "string"
        if shape.has_type(SchemaKind.INTEGER) or shape.has_type(SchemaKind.NUMBER):
            return "number"
        if shape.has_type(SchemaKind.BOOLEAN):
            return "bool"

        visiting.add(node)
        try:
            if shape.is_array:
                if shape.items is None:
                    return "list(any)"
                return f"list({self._map_type(shape.items, indent, f'{path}[]', visiting)})"

            if shape.is_object:
                if not shape.properties:
                    if shape.additional_properties is not None:
                        value_type = self._map_type(
                            shape.additional_properties, indent, f"{path}{{}}", visiting
                        )
                        return f"map({value_type})"
                    return "map(string)"

                fields: list[tuple[str, str]] = []
                used: dict[str, str] = {}
                for name in sorted(shape.properties):
                    child = shape.properties[name]
                    if not is_writable(self.resolver.resolve(child)):
                        continue
                    field_name = to_snake_case(name)
                    if field_name in used:
                        raise GenerationError(
                            f"attribute name collision in {path}: {name!r} and "
                            f"{used[field_name]!r} both map to {field_name!r}"
                        )
                    used[field_name] = name
                    field_type = self._map_type(child, indent + 2, f"{path}.{name}", visiting)
                    if name not in shape.required:
                        field_type = f"optional({field_type})"
                    fields.append((field_name, field_type))

                if not fields:
                    return "object({})"
                inner = " " * (indent + 2)
                body = "\n".join(f"{inner}{name} = {value}" for name, value in fields)
                return f"object({{\n{body}\n{' ' * indent}}})"
        finally:
            visiting.discard(node)

        return "any"

    def _render_variables(self, variables: list[TerraformVariable]) -> str:
        blocks: list[str] = []
        for variable in variables:
            lines = [f'variable "{variable.name}" {{']
            description = variable.description.strip()
            if "\n" in description:
                rendered_description = heredoc(description, 2)
            else:
                rendered_description = quote(description)
            attrs = [("description", rendered_description), ("type", variable.var_type)]
            if not variable.required:
                attrs.append(("default", "null"))
            if variable.ephemeral:
                attrs.append(("ephemeral", "true"))
            lines.extend(render_attributes(attrs, 2))

            for condition, message in variable.validations:
                lines.append("")
                lines.append("  validation {")
                lines.extend(
                    render_attributes(
                        [("condition", condition), ("error_message", quote(message))], 4
                    )
                )
                lines.append("  }")
            lines.append("}")
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks) + "\n"

    # Locals

    def _render_locals(self, schema: SchemaNode, module: GeneratedModule) -> str:
        # Secrets go through sensitive_body; tags and location are resource attributes.
        omit_paths = {secret.path for secret in module.secrets if secret.path.strip()}
        if module.supports_tags:
            omit_paths.add("tags")
        if module.supports_location:
            omit_paths.add("location")
        value = self.construct_value(schema, "var", True, omit_paths, "", 2)
        return f"locals {{\n  {self.config.local_name} = {value}\n}}\n"

    def construct_value(
        self,
        node: SchemaNode,
        access: str,
        is_root: bool,
        omit_paths: set[str],
        path_prefix: str,
        indent: int,
    ) -> str:
        shape = self.resolver.resolve(node)

        if shape.is_object:
            if not shape.properties:
                if shape.additional_properties is None:
                    return access
                mapped = self.construct_value(
                    shape.additional_properties, "value", False, omit_paths, path_prefix, indent
                )
                expression = f"{{ for k, value in {access} : k => {mapped} }}"
                return expression if is_root else f"{access} == null ? null : {expression}"

            attrs: list[tuple[str, str]] = []
            for name in sorted(shape.properties):
                child = shape.properties[name]
                child_shape = self.resolver.resolve(child)
                if not is_writable(child_shape):
                    continue
                child_path = f"{path_prefix}.{name}" if path_prefix else name
                if child_path in omit_paths:
                    continue

                if (
                    is_root
                    and name == PROPERTIES_BAG
                    and child_shape.is_object
                    and child_shape.properties
                ):
                    attrs.append(
                        (name, self._construct_flattened_bag(child, access, omit_paths, indent + 2))
                    )
                    continue

                child_access = f"{access}.{to_snake_case(name)}"
                attrs.append(
                    (
                        name,
                        self.construct_value(
                            child, child_access, False, omit_paths, child_path, indent + 2
                        ),
                    )
                )

            rendered = render_object(attrs, indent)
            return rendered if is_root else f"{access} == null ? null : {rendered}"

        if shape.is_array and shape.items is not None:
            item = self.construct_value(
                shape.items, "item", False, omit_paths, f"{path_prefix}[]", indent
            )
            expression = f"[for item in {access} : {item}]"
            return expression if is_root else f"{access} == null ? null : {expression}"

        return access

    def _construct_flattened_bag(
        self, node: SchemaNode, access: str, omit_paths: set[str], indent: int
    ) -> str:
        # Children of the bag are exposed as var.<child>, not var.properties.<child>.
        shape = self.resolver.resolve(node)
        attrs: list[tuple[str, str]] = []
        for name in sorted(shape.properties):
            child = shape.properties[name]
            if not is_writable(self.resolver.resolve(child)):
                continue
            child_path = f"{PROPERTIES_BAG}.{name}"
            if child_path in omit_paths:
                continue
            child_access = f"{access}.{to_snake_case(name)}"
            attrs.append(
                (
                    name,
                    self.construct_value(
                        child, child_access, False, omit_paths, child_path, indent + 2
                    ),
                )
            )
        return render_object(attrs, indent)

    # main.tf / terraform.tf / outputs.tf

    def _render_terraform(self) -> str:
        return (
            "terraform {\n"
            f"  required_version = {quote(self.config.terraform_version)}\n"
            "\n"
            "  required_providers {\n"
            "    azapi = {\n"
            '      source  = "azure/azapi"\n'
            f"      version = {quote(self.config.azapi_version)}\n"
            "    }\n"
            "  }\n"
            "}\n"
        )

    def _render_main(
        self, schema: SchemaNode | None, api_version: str | None, module: GeneratedModule
    ) -> str:
        version = (api_version or "").strip() or API_VERSION_PLACEHOLDER
        type_with_version = f"{clean_resource_type(self.config.resource_type)}@{version}"

        attrs: list[tuple[str, str]] = [
            ("type", quote(type_with_version)),
            ("name", "var.name"),
            ("parent_id", "var.parent_id"),
            ("ignore_null_property", "true"),
        ]
        if module.supports_location:
            attrs.append(("location", "var.location"))

        local_ref = f"local.{self.config.local_name}"
        secret_prefix = ""
        if schema is None:
            body = "{}"
        elif PROPERTIES_BAG in self.resolver.effective_properties(schema):
            body = local_ref
        else:
            # The schema is the properties object itself (a sub-schema root).
            body = render_object([(PROPERTIES_BAG, local_ref)], 2)
            secret_prefix = f"{PROPERTIES_BAG}."
        attrs.append(("body", body))

        if module.secrets:
            attrs.append(("sensitive_body", self._sensitive_body(module.secrets, secret_prefix)))
            versions = [
                (secret_prefix + secret.path, f"var.{secret.var_name}_version") for secret in module.secrets
            ]
            attrs.append(
                (
                    "sensitive_body_version",
                    "{\n"
                    + "\n".join(f"    {quote(path)} = {value}" for path, value in versions)
                    + "\n  }",
                )
            )

        if module.supports_tags:
            attrs.append(("tags", "var.tags"))
        attrs.append(("response_export_values", "[]"))

        lines = ['resource "azapi_resource" "this" {', *render_attributes(attrs, 2), "}"]
        return "\n".join(lines) + "\n"

    def _sensitive_body(self, secrets: list[SecretField], prefix: str = "") -> str:
        tree: dict[str, dict | str] = {}
        for secret in secrets:
            segments = [segment.strip() for segment in (prefix + secret.path).split(".") if segment.strip()]
            if not segments:
                continue
            current = tree
            for segment in segments[:-1]:
                child = current.setdefault(segment, {})
                if not isinstance(child, dict):
                    child = {}
                    current[segment] = child
                current = child
            current.setdefault(segments[-1], f"var.{secret.var_name}")

        def render(node: dict | str, indent: int) -> str:
            if isinstance(node, str):
                return node
            return render_object([(key, render(node[key], indent + 2)) for key in sorted(node)], indent)

        return render(tree, 2)

    def _render_outputs(self, outputs: list[TerraformOutput]) -> str:
        blocks = []
        for output in outputs:
            lines = [f'output "{output.name}" {{']
            lines.extend(
                render_attributes(
                    [("description", quote(output.description)), ("value", output.value)], 2
                )
            )
            lines.append("}")
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks) + "\n"
