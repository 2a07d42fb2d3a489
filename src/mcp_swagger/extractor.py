"""
Operation extraction from a parsed OpenAPI specification.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .models import (
    HttpMethod,
    NormalizedOperation,
    OpenAPISpec,
    Parameter,
    ParameterLocation,
    RequestBody,
)

logger = logging.getLogger(__name__)

OPERATION_METHODS = ["get", "post", "put", "delete", "patch", "head", "options"]


def _resolve_local_ref(spec: OpenAPISpec, ref: str) -> Optional[Dict[str, Any]]:
    """Resolve a local ``#/components/...`` reference left in the spec."""
    if not ref.startswith("#/"):
        return None
    current: Any = spec.model_dump(by_alias=True)
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current if isinstance(current, dict) else None


def _parameter_schema(raw: Dict[str, Any]) -> Dict[str, Any]:
    if "schema" in raw:
        return raw["schema"] or {}
    # Swagger 2.0 keeps the type on the parameter itself
    return {
        key: raw[key]
        for key in ("type", "format", "enum", "items", "default", "minimum", "maximum", "pattern")
        if key in raw
    }


def _collect_parameters(
    spec: OpenAPISpec, path_item: Dict[str, Any], operation: Dict[str, Any]
) -> List[Dict[str, Any]]:
    merged: Dict[tuple, Dict[str, Any]] = {}
    for raw in list(path_item.get("parameters", [])) + list(operation.get("parameters", [])):
        if not isinstance(raw, dict):
            continue
        if "$ref" in raw:
            resolved = _resolve_local_ref(spec, raw["$ref"])
            if resolved is None:
                logger.warning("Skipping unresolved parameter reference %s", raw["$ref"])
                continue
            raw = {**resolved, "$ref": raw["$ref"]}
        if "name" not in raw or "in" not in raw:
            continue
        # Operation-level parameters override path-level ones
        merged[(raw["name"], raw["in"])] = raw
    return list(merged.values())


def _request_body(operation: Dict[str, Any], raw_params: List[Dict[str, Any]]) -> Optional[RequestBody]:
    body = operation.get("requestBody")
    if isinstance(body, dict):
        content = {
            media_type: (media or {}).get("schema", {}) or {}
            for media_type, media in (body.get("content") or {}).items()
        }
        return RequestBody(
            required=bool(body.get("required", False)),
            content=content,
            description=body.get("description"),
        )

    for raw in raw_params:
        if raw.get("in") == "body":
            media_types = operation.get("consumes") or ["application/json"]
            return RequestBody(
                required=bool(raw.get("required", False)),
                content={media_types[0]: raw.get("schema", {}) or {}},
                description=raw.get("description"),
            )
    return None


def extract_operation(
    spec: OpenAPISpec, path: str, method: str, path_item: Dict[str, Any], operation: Dict[str, Any]
) -> NormalizedOperation:
    """Normalize one (path, method) operation.

    Raises:
        pydantic.ValidationError: If the operation cannot be normalized
    """
    raw_params = _collect_parameters(spec, path_item, operation)
    locations = {loc.value for loc in ParameterLocation}
    parameters = [
        Parameter(
            name=raw["name"],
            location=raw["in"],
            required=bool(raw.get("required", raw["in"] == "path")),
            value_schema=_parameter_schema(raw),
            description=raw.get("description"),
            ref=raw.get("$ref"),
        )
        for raw in raw_params
        if raw["in"] in locations
    ]

    tags: List[str] = []
    for tag in operation.get("tags") or []:
        if tag not in tags:
            tags.append(tag)

    responses = {
        str(code): (response or {}).get("description", "") if isinstance(response, dict) else ""
        for code, response in (operation.get("responses") or {}).items()
    }

    return NormalizedOperation(
        method=HttpMethod(method.upper()),
        path=path,
        operation_id=operation.get("operationId"),
        summary=operation.get("summary"),
        description=operation.get("description"),
        tags=tags,
        deprecated=bool(operation.get("deprecated", False)),
        parameters=parameters,
        request_body=_request_body(operation, raw_params),
        responses=responses,
    )


def extract_operations(spec: OpenAPISpec) -> List[NormalizedOperation]:
    """Extract every operation in path order, then method order.

    Malformed operations are skipped with a warning.
    """
    operations: List[NormalizedOperation] = []
    for path, path_item in spec.paths.items():
        if not isinstance(path_item, dict):
            continue
        for method in OPERATION_METHODS:
            operation = path_item.get(method)
            if not isinstance(operation, dict):
                continue
            try:
                operations.append(extract_operation(spec, path, method, path_item, operation))
            except (ValidationError, ValueError, KeyError, TypeError) as e:
                logger.warning("Skipping malformed operation %s %s: %s", method.upper(), path, e)
    return operations
