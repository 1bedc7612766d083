from __future__ import annotations

import logging

from azapi_module_kit.allof import SchemaResolver
from azapi_module_kit.errors import AzapiModuleKitError, SchemaPathError
from azapi_module_kit.generator import ModuleGenerator
from azapi_module_kit.loader import SpecLoader
from azapi_module_kit.models import GenerationResult, GeneratorConfig
from azapi_module_kit.writer import ModuleWriter

logger = logging.getLogger(__name__)


class ModuleBuilder:
    def __init__(self, config: GeneratorConfig) -> None:
        self.config = config
        self.resolver = SchemaResolver()
        self.generator = ModuleGenerator(config, self.resolver)
        self.writer = ModuleWriter(validate=config.validate_output)

    def run(self) -> GenerationResult:
        warnings: list[str] = []

        try:
            loader = SpecLoader.from_source(self.config.spec_source)
            logger.info("Looking up %s", self.config.resource_type)
            resource_schema = loader.find_resource(self.config.resource_type)

            schema = resource_schema
            if self.config.root_path:
                schema = self.resolver.navigate(resource_schema, self.config.root_path)
                if schema is None:
                    raise SchemaPathError(
                        f"root path {self.config.root_path} is read-only and cannot be generated"
                    )

            api_version = self.config.api_version or loader.api_version
            if api_version is None:
                warnings.append("No API version found in the specification; using a placeholder.")

            logger.info("Generating module for %s", self.config.resource_type)
            module = self.generator.generate(schema, api_version, resource_schema)

            logger.info("Writing files to %s", self.config.output_dir)
            files = self.writer.write(module, self.config.output_dir)
        except AzapiModuleKitError as e:
            logger.debug("Generation failed", exc_info=True)
            return GenerationResult(
                success=False,
                output_path=self.config.output_dir,
                errors=[str(e)],
                warnings=warnings,
            )

        if module.secrets:
            warnings.append(
                f"{len(module.secrets)} secret field(s) are sent via sensitive_body "
                "and require a *_version variable to trigger updates."
            )

        return GenerationResult(
            success=True,
            output_path=self.config.output_dir,
            files=files,
            variables_generated=len(module.variables),
            secrets=[secret.path for secret in module.secrets],
            warnings=warnings,
        )
