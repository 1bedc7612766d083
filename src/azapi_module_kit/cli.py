from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from azapi_module_kit.allof import SchemaResolver
from azapi_module_kit.builder import ModuleBuilder
from azapi_module_kit.errors import AzapiModuleKitError
from azapi_module_kit.generator import ModuleGenerator
from azapi_module_kit.loader import SpecLoader
from azapi_module_kit.models import GeneratorConfig
from azapi_module_kit.naming import to_snake_case
from azapi_module_kit.secrets import is_secret, is_writable
from azapi_module_kit.version import __version__

app = typer.Typer(
    name="azapi-module-kit",
    help="Generate azapi Terraform modules from Azure OpenAPI specifications",
    no_args_is_help=True,
)
console = Console()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def version_callback(value: bool) -> None:
    if value:
        console.print(f"azapi-module-kit version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = False,
) -> None:
    pass


@app.command()
def generate(
    spec: Annotated[
        str,
        typer.Argument(help="Path or URL of the OpenAPI specification"),
    ],
    resource_type: Annotated[
        str,
        typer.Argument(help="Resource type, e.g. Microsoft.ContainerService/managedClusters"),
    ],
    root_path: Annotated[
        str,
        typer.Option("--root", help="Dotted path of the schema to use as the module root"),
    ] = "",
    local_name: Annotated[
        str,
        typer.Option("--local-name", help="Name of the local value holding the request body"),
    ] = "resource_body",
    output_dir: Annotated[
        Path,
        typer.Option("--output", "-o", help="Output directory for Terraform files"),
    ] = Path("."),
    api_version: Annotated[
        str | None,
        typer.Option("--api-version", help="Override the API version from the specification"),
    ] = None,
    no_validate: Annotated[
        bool,
        typer.Option("--no-validate", help="Skip parsing the generated HCL back"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging"),
    ] = False,
) -> None:
    """Generate an azapi module (terraform, variables, locals, main, outputs)."""
    configure_logging(verbose)
    config = GeneratorConfig(
        spec_source=spec,
        resource_type=resource_type,
        output_dir=output_dir,
        root_path=root_path,
        local_name=local_name,
        api_version=api_version,
        validate_output=not no_validate,
    )

    console.print(
        Panel(
            f"[bold blue]azapi Module Kit[/]\n"
            f"Specification: {spec}\n"
            f"Resource Type: {resource_type}\n"
            f"Output: {output_dir}",
            title="Generation Configuration",
        )
    )

    builder = ModuleBuilder(config)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task("Generating module...", total=None)
        result = builder.run()

    if result.success:
        console.print(f"\n[green]✓[/] Generated {result.variables_generated} variables")
        for path in result.files:
            console.print(f"[green]✓[/] Wrote {path}")

        if result.warnings:
            console.print("\n[yellow]Warnings:[/]")
            for warning in result.warnings:
                console.print(f"  • {warning}")
    else:
        console.print("\n[red]✗ Generation failed[/]")
        for error in result.errors:
            console.print(f"  [red]•[/] {error}")
        sys.exit(1)


@app.command()
def inspect(
    spec: Annotated[
        str,
        typer.Argument(help="Path or URL of the OpenAPI specification"),
    ],
    resource_type: Annotated[
        str,
        typer.Argument(help="Resource type to inspect"),
    ],
    root_path: Annotated[
        str,
        typer.Option("--root", help="Dotted path of the schema to inspect"),
    ] = "",
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging"),
    ] = False,
) -> None:
    """Show the effective (allOf-merged) properties of a resource."""
    configure_logging(verbose)
    resolver = SchemaResolver()
    generator = ModuleGenerator(GeneratorConfig(spec_source=spec, resource_type=resource_type), resolver)

    try:
        schema = SpecLoader.from_source(spec).find_resource(resource_type)
        if root_path:
            schema = resolver.navigate(schema, root_path)
            if schema is None:
                console.print(f"[red]Error: {root_path} is read-only[/]")
                sys.exit(1)
        shape = resolver.resolve(schema)

        table = Table(title=f"{resource_type} ({len(shape.properties)} properties)")
        table.add_column("Property")
        table.add_column("Terraform name")
        table.add_column("Type")
        table.add_column("Required")
        table.add_column("Writable")
        table.add_column("Secret")

        for name in sorted(shape.properties):
            prop = shape.properties[name]
            prop_shape = resolver.resolve(prop)
            table.add_row(
                name,
                to_snake_case(name),
                generator.terraform_type(prop, name).split("\n", 1)[0],
                "yes" if name in shape.required else "",
                "yes" if is_writable(prop_shape) else "",
                "yes" if is_secret(prop_shape) else "",
            )
    except AzapiModuleKitError as e:
        console.print(f"[red]Error: {e}[/]")
        sys.exit(1)

    console.print(table)


if __name__ == "__main__":
    app()
