"""
OpenAPI specification to MCP tool transformation.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from . import validation
from .auth import resolve_auth_headers
from .dispatcher import RequestDispatcher
from .exceptions import MCPSwaggerError, SpecLoadError, TransformError
from .extractor import extract_operations
from .filters import EndpointFilter
from .loader import load_and_parse
from .models import (
    NormalizedOperation,
    OpenAPISpec,
    ParameterLocation,
    ParseResult,
    ToolAnalysis,
    ToolDescriptor,
    ToolMetadata,
    TransformOptions,
    ValidationResult,
)
from .schema import openapi_to_json_schema

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost"

METHOD_ACTIONS = {
    "GET": "Retrieve",
    "POST": "Create",
    "PUT": "Update",
    "PATCH": "Partially update",
    "DELETE": "Delete",
    "HEAD": "Get headers for",
    "OPTIONS": "Get options for",
}

PLACEHOLDER_PATTERN = re.compile(r"\{([^}]+)\}")
INVALID_ID_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def path_placeholders(path: str) -> List[str]:
    return PLACEHOLDER_PATTERN.findall(path)


def generate_tool_name(operation: NormalizedOperation) -> str:
    """Derive a tool name from the operationId or from method and path."""
    if operation.operation_id:
        return INVALID_ID_CHARS.sub("_", operation.operation_id)

    segments = [s for s in operation.path.split("/") if s and not s.startswith("{")]
    clean_path = re.sub(r"[^a-zA-Z0-9_]", "_", "_".join(segments))
    method = operation.method.value.lower()
    return f"{method}_{clean_path}".lower() if clean_path else method


def generate_description(operation: NormalizedOperation) -> str:
    if operation.summary and operation.description:
        return f"{operation.summary}: {operation.description}"
    if operation.summary or operation.description:
        return operation.summary or operation.description

    method = operation.method.value
    segments = [s for s in operation.path.split("/") if s and not s.startswith("{") and s != "api"]
    resource = " ".join(segments) if segments else "resource"
    return f"{METHOD_ACTIONS.get(method, 'Execute')} {resource} via {method} {operation.path}"


def generate_input_schema(operation: NormalizedOperation) -> Dict[str, Any]:
    """Build the tool input schema.

    Properties are ordered path parameters first, then the remaining declared
    parameters in spec order, then ``requestBody``.
    """
    properties: Dict[str, Any] = {}
    required: List[str] = []

    declared_path = {p.name: p for p in operation.parameters if p.location == ParameterLocation.PATH}
    for name in path_placeholders(operation.path):
        if name in properties:
            continue
        prop: Dict[str, Any] = {"type": "string"}
        if name in declared_path and declared_path[name].description:
            prop["description"] = declared_path[name].description
        properties[name] = prop
        required.append(name)

    for param in operation.parameters:
        if param.location == ParameterLocation.PATH or param.name in properties:
            continue
        prop = openapi_to_json_schema(param.value_schema)
        prop["description"] = param.description or f"{param.location.value} parameter: {param.name}"
        properties[param.name] = prop
        if param.required:
            required.append(param.name)

    body = operation.request_body
    if body is not None:
        properties["requestBody"] = _request_body_schema(body.content, body.description)
        if body.required:
            required.append("requestBody")

    return {"type": "object", "properties": properties, "required": required}


def _request_body_schema(content: Dict[str, Dict[str, Any]], description: Optional[str]) -> Dict[str, Any]:
    if content.get("application/json"):
        schema = openapi_to_json_schema(content["application/json"])
    else:
        schema = None
        for media_type, media_schema in content.items():
            if media_schema:
                schema = openapi_to_json_schema(media_schema)
                schema.setdefault("description", f"Request body ({media_type})")
                break
    if schema is None:
        return {"type": "object", "description": description or "Request body"}
    if description and "description" not in schema:
        schema["description"] = description
    return schema


def add_auth_to_tools(tools: Sequence[ToolDescriptor], auth_headers: Dict[str, str]) -> List[ToolDescriptor]:
    """Wrap each handler so the given headers are merged into every request."""

    def wrap(handler):
        async def with_auth(arguments=None, headers=None):
            return await handler(arguments, headers={**dict(headers or {}), **auth_headers})

        return with_auth

    return [tool.model_copy(update={"handler": wrap(tool.handler)}) for tool in tools]


class Transformer:
    """Converts OpenAPI specifications into MCP tool descriptors."""

    def __init__(self, default_options: Optional[TransformOptions] = None):
        self.default_options = default_options or TransformOptions()
        self.last_validation: Optional[ValidationResult] = None

    async def transform_from_file(
        self, file_path: Union[str, Path], options: Optional[TransformOptions] = None
    ) -> List[ToolDescriptor]:
        """Load a specification file and transform it.

        Raises:
            TransformError: If the file cannot be loaded or transformed
        """
        logger.info("Loading OpenAPI specification from %s", file_path)
        try:
            result = await load_and_parse(Path(file_path))
        except SpecLoadError as e:
            raise TransformError(f"File transformation failed: {e}") from e
        return self._transform_parsed(result, options)

    async def transform_from_url(self, url: str, options: Optional[TransformOptions] = None) -> List[ToolDescriptor]:
        """Fetch a specification from a URL and transform it.

        Raises:
            TransformError: If the URL cannot be loaded or transformed
        """
        logger.info("Loading OpenAPI specification from URL %s", url)
        try:
            result = await load_and_parse(url)
        except SpecLoadError as e:
            raise TransformError(f"URL transformation failed: {e}") from e
        return self._transform_parsed(result, options)

    def _transform_parsed(self, result: ParseResult, options: Optional[TransformOptions]) -> List[ToolDescriptor]:
        if not result.validation.valid:
            logger.warning("OpenAPI spec validation warnings:")
            for issue in result.validation.errors:
                logger.warning("  - %s: %s (%s)", issue.path, issue.message, issue.code)
        logger.info("Loaded OpenAPI spec: %s v%s", result.spec.info.title, result.spec.info.version)
        return self.transform(result.spec, options)

    def transform(
        self, spec: Union[OpenAPISpec, Dict[str, Any]], options: Optional[TransformOptions] = None
    ) -> List[ToolDescriptor]:
        """Transform a parsed specification into tool descriptors.

        Args:
            spec: Parsed specification, as a model or a plain dictionary
            options: Transform options; defaults to the transformer's defaults

        Returns:
            Tools in path order, then method order

        Raises:
            TransformError: If the specification or options are unusable
        """
        options = options or self.default_options
        if not isinstance(spec, OpenAPISpec):
            try:
                spec = OpenAPISpec.model_validate(spec)
            except ValueError as e:
                raise TransformError(f"OpenAPI transformation failed: {e}") from e

        logger.info("Transforming OpenAPI spec: %s v%s", spec.info.title, spec.info.version)
        logger.info("Found %d API paths", len(spec.paths))

        try:
            auth_headers = resolve_auth_headers(options.auth)
        except MCPSwaggerError as e:
            raise TransformError(f"OpenAPI transformation failed: {e}") from e

        base_url = options.base_url or spec.server_url() or DEFAULT_BASE_URL
        if not base_url.startswith(("http://", "https://")):
            logger.warning("Base URL %s is not absolute; requests will fail until base_url is set", base_url)

        operations = EndpointFilter.filter_endpoints(extract_operations(spec), options)

        tools: List[ToolDescriptor] = []
        for operation in operations:
            try:
                tools.append(self._build_tool(operation, options, base_url, auth_headers, spec.info.version))
            except (MCPSwaggerError, ValueError, KeyError, TypeError) as e:
                logger.warning(
                    "Failed to create tool for %s %s: %s", operation.method.value, operation.path, e
                )

        if options.tag_filter:
            tools = [
                tool
                for tool in tools
                if tool.metadata and any(tag in options.tag_filter for tag in tool.metadata.tags)
            ]

        if options.operation_id_prefix:
            prefix = options.operation_id_prefix
            tools = [
                tool.model_copy(update={"id": f"{prefix}{tool.id}", "name": f"{prefix}{tool.name}"})
                for tool in tools
            ]

        if options.enable_auth and options.auth_headers:
            tools = add_auth_to_tools(tools, options.auth_headers)

        tools = self.normalize_tools(tools)

        result = self.validate_tools(tools)
        self.last_validation = result
        if not result.valid:
            logger.warning("Some tools have validation issues:")
            for issue in result.errors:
                logger.warning("  - %s: %s", issue.field, issue.message)
        if result.warnings:
            logger.warning("Tool validation warnings:")
            for issue in result.warnings:
                logger.warning("  - %s: %s", issue.field, issue.message)

        logger.info("Generated %d MCP tools", len(tools))
        return tools

    def _build_tool(
        self,
        operation: NormalizedOperation,
        options: TransformOptions,
        base_url: str,
        auth_headers: Dict[str, str],
        version: str,
    ) -> ToolDescriptor:
        name = generate_tool_name(operation)
        handler = RequestDispatcher(
            method=operation.method,
            path=operation.path,
            base_url=base_url,
            parameters=operation.parameters,
            path_prefix=options.path_prefix,
            strip_path_prefix=options.strip_path_prefix,
            timeout=options.request_timeout,
            custom_headers=options.custom_headers,
            auth_headers=auth_headers,
            allow_auth_override=options.allow_auth_override,
            transport=options.http_transport,
        )
        return ToolDescriptor(
            id=name,
            name=name,
            description=generate_description(operation),
            input_schema=generate_input_schema(operation),
            handler=handler,
            metadata=ToolMetadata(
                tags=list(operation.tags) or ["api"],
                deprecated=operation.deprecated,
                http_method=operation.method.value,
                endpoint=operation.path,
                version=version,
                operation_id=operation.operation_id,
            ),
        )

    def validate_tools(self, tools: Sequence[ToolDescriptor]) -> ValidationResult:
        return validation.validate_tools(tools)

    def normalize_tools(self, tools: Sequence[ToolDescriptor]) -> List[ToolDescriptor]:
        """Trim names and descriptions and make ids identifier-safe."""
        return [
            tool.model_copy(
                update={
                    "id": INVALID_ID_CHARS.sub("_", tool.id),
                    "name": tool.name.strip(),
                    "description": tool.description.strip(),
                    "metadata": tool.metadata or ToolMetadata(),
                }
            )
            for tool in tools
        ]

    def analyze_tools(self, tools: Sequence[ToolDescriptor]) -> ToolAnalysis:
        """Summarize tag distribution and deprecated tools."""
        distribution: Dict[str, int] = {}
        deprecated = 0
        for tool in tools:
            tags = tool.metadata.tags if tool.metadata and tool.metadata.tags else ["uncategorized"]
            for tag in tags:
                distribution[tag] = distribution.get(tag, 0) + 1
            if tool.metadata and tool.metadata.deprecated:
                deprecated += 1
        return ToolAnalysis(
            total_tools=len(tools),
            deprecated_count=deprecated,
            tag_distribution=distribution,
            unique_tags=len(distribution),
        )
