"""
Command-line interface for the OpenAPI to MCP bridge.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import typer
import yaml

from .config import BridgeConfig, load_config
from .dereferencer import SpecDereferencer
from .exceptions import MCPSwaggerError
from .extractor import extract_operations
from .filters import EndpointFilter
from .loader import is_url, load_and_parse
from .models import (
    AuthConfig,
    BearerConfig,
    OperationFilter,
    PatternRule,
    ServerConfig,
    TransformOptions,
)
from .registry import MCPRegistry
from .tool_manager import ToolManager
from .transformer import Transformer

app = typer.Typer(help="Expose OpenAPI operations as MCP tools")


@app.callback()
def configure(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_yaml(path: Path) -> dict:
    try:
        with open(path) as f:
            return yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        typer.echo(f"Error loading {path}: {str(e)}", err=True)
        raise typer.Exit(1)


def _save(content, path: Optional[Path]) -> None:
    """Write content as JSON or YAML depending on the suffix, or print JSON."""
    if path is None:
        typer.echo(json.dumps(content, indent=2, default=str))
        return
    try:
        with open(path, "w") as f:
            if path.suffix in (".yaml", ".yml"):
                yaml.dump(content, f, sort_keys=False)
            else:
                json.dump(content, f, indent=2, default=str)
    except OSError as e:
        typer.echo(f"Error saving to {path}: {str(e)}", err=True)
        raise typer.Exit(1)


def _resolve(
    source: Optional[str],
    config_file: Optional[Path],
    base_url: Optional[str],
    include_deprecated: bool,
    tags: Optional[List[str]],
    methods: Optional[List[str]],
    token_env: Optional[str],
) -> Tuple[str, TransformOptions, ServerConfig]:
    if config_file is not None:
        config = load_config(config_file)
    elif source:
        config = BridgeConfig(spec=source)
    else:
        typer.echo("Error: either a spec source or --config is required", err=True)
        raise typer.Exit(1)

    options = config.to_transform_options()
    update = {}
    if base_url:
        update["base_url"] = base_url
    if include_deprecated:
        update["include_deprecated"] = True
    if tags:
        update["include_tags"] = tags
    if methods:
        current = options.operation_filter or OperationFilter()
        update["operation_filter"] = current.model_copy(
            update={"methods": PatternRule(include=[method.upper() for method in methods])}
        )
    if token_env:
        update["auth"] = AuthConfig(type="bearer", bearer=BearerConfig(source="env", env_name=token_env))
    return config.spec, options.model_copy(update=update), config.server


def _transform(source: str, options: TransformOptions):
    transformer = Transformer()
    if is_url(source):
        tools = asyncio.run(transformer.transform_from_url(source, options))
    else:
        tools = asyncio.run(transformer.transform_from_file(source, options))
    return transformer, tools


SOURCE = typer.Argument(None, help="Path or URL of the OpenAPI specification")
CONFIG = typer.Option(None, "--config", "-c", help="Bridge configuration YAML file")
BASE_URL = typer.Option(None, "--base-url", help="Override the API base URL")
DEPRECATED = typer.Option(False, "--include-deprecated", help="Include deprecated operations")
TAGS = typer.Option(None, "--tag", "-t", help="Only include operations with this tag")
METHODS = typer.Option(None, "--method", "-m", help="Only include operations with this HTTP method")
TOKEN_ENV = typer.Option(None, "--token-env", help="Environment variable holding a bearer token")


@app.command()
def convert(
    source: Optional[str] = SOURCE,
    output_file: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Where to write the tool list (.json or .yaml). Prints JSON if omitted"
    ),
    config_file: Optional[Path] = CONFIG,
    base_url: Optional[str] = BASE_URL,
    include_deprecated: bool = DEPRECATED,
    tags: Optional[List[str]] = TAGS,
    methods: Optional[List[str]] = METHODS,
) -> None:
    """Convert an OpenAPI specification into MCP tool definitions."""
    try:
        spec, options, _ = _resolve(source, config_file, base_url, include_deprecated, tags, methods, None)
        _, tools = _transform(spec, options)
    except MCPSwaggerError as e:
        typer.echo(f"Error: {str(e)}", err=True)
        raise typer.Exit(1)

    _save([tool.describe() for tool in tools], output_file)
    if output_file is not None:
        typer.echo(f"Successfully converted {spec} to {output_file} ({len(tools)} tools)")


@app.command()
def analyze(
    source: Optional[str] = SOURCE,
    config_file: Optional[Path] = CONFIG,
    include_deprecated: bool = DEPRECATED,
) -> None:
    """Summarize the tools an OpenAPI specification produces."""
    try:
        spec, options, _ = _resolve(source, config_file, None, include_deprecated, None, None, None)
        transformer, tools = _transform(spec, options)
    except MCPSwaggerError as e:
        typer.echo(f"Error: {str(e)}", err=True)
        raise typer.Exit(1)

    analysis = transformer.analyze_tools(tools)
    typer.echo(f"Tools: {analysis.total_tools}")
    typer.echo(f"Deprecated: {analysis.deprecated_count}")
    typer.echo(f"Tags ({analysis.unique_tags}):")
    for tag, count in sorted(analysis.tag_distribution.items()):
        typer.echo(f"  {tag}: {count}")

    validation = transformer.last_validation
    if validation is not None:
        for issue in validation.errors:
            typer.echo(f"ERROR {issue.field}: {issue.message} ({issue.code})")
        for issue in validation.warnings:
            typer.echo(f"WARNING {issue.field}: {issue.message} ({issue.code})")


@app.command()
def endpoints(
    source: Optional[str] = SOURCE,
    config_file: Optional[Path] = CONFIG,
    include_deprecated: bool = DEPRECATED,
    tags: Optional[List[str]] = TAGS,
    methods: Optional[List[str]] = METHODS,
) -> None:
    """List the operations that survive filtering."""
    try:
        spec, options, _ = _resolve(source, config_file, None, include_deprecated, tags, methods, None)
        parsed = asyncio.run(load_and_parse(spec))
    except MCPSwaggerError as e:
        typer.echo(f"Error: {str(e)}", err=True)
        raise typer.Exit(1)

    for operation in EndpointFilter.filter_endpoints(extract_operations(parsed.spec), options):
        marker = " (deprecated)" if operation.deprecated else ""
        typer.echo(f"{operation.method.value:<7} {operation.path}  {operation.operation_id or '-'}{marker}")


@app.command()
def dereference(
    input_file: Path = typer.Argument(..., help="Path to the input OpenAPI spec"),
    output_file: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Path to save the dereferenced spec. If not provided, will use input filename with .dereferenced.yaml suffix",
    ),
) -> None:
    """Expand all references in an OpenAPI specification."""
    if not input_file.exists():
        typer.echo(f"Input file not found: {input_file}", err=True)
        raise typer.Exit(1)

    if output_file is None:
        output_file = input_file.parent / f"{input_file.stem}.dereferenced.yaml"

    spec = _load_yaml(input_file)

    try:
        result = SpecDereferencer(spec, base_path=input_file.parent).dereference()
    except MCPSwaggerError as e:
        typer.echo(f"Error dereferencing spec: {str(e)}", err=True)
        raise typer.Exit(1)

    _save(result, output_file)
    typer.echo(f"Successfully dereferenced {input_file} to {output_file}")


async def _serve(spec: str, options: TransformOptions, server_config: ServerConfig) -> None:
    transformer = Transformer()
    if is_url(spec):
        tools = await transformer.transform_from_url(spec, options)
    else:
        tools = await transformer.transform_from_file(spec, options)

    tool_manager = ToolManager()
    registry = MCPRegistry(tool_manager=tool_manager)
    try:
        await tool_manager.register_tools(tools)
        server_id = registry.create_server(server_config)
        results = await registry.bind_tools_to_server(server_id, tool_manager.get_tools())
        failed = [result for result in results if not result.success]
        for result in failed:
            logging.getLogger(__name__).warning("Tool %s was not bound: %s", result.id, result.error)
        await registry.get_server(server_id).run_stdio()
    finally:
        await registry.destroy_all_servers()
        tool_manager.dispose()


@app.command()
def serve(
    source: Optional[str] = SOURCE,
    config_file: Optional[Path] = CONFIG,
    base_url: Optional[str] = BASE_URL,
    include_deprecated: bool = DEPRECATED,
    tags: Optional[List[str]] = TAGS,
    methods: Optional[List[str]] = METHODS,
    token_env: Optional[str] = TOKEN_ENV,
    name: Optional[str] = typer.Option(None, "--name", help="Server name announced to clients"),
) -> None:
    """Serve the specification's operations as MCP tools over stdio."""
    try:
        spec, options, server_config = _resolve(
            source, config_file, base_url, include_deprecated, tags, methods, token_env
        )
        if name:
            server_config = server_config.model_copy(update={"name": name})
        asyncio.run(_serve(spec, options, server_config))
    except MCPSwaggerError as e:
        typer.echo(f"Error: {str(e)}", err=True)
        raise typer.Exit(1)


def main():
    """Entry point for the CLI."""
    app()
