"""
Loading, dereferencing and basic validation of OpenAPI documents.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
import yaml
from pydantic import ValidationError

from .dereferencer import SpecDereferencer, parse_document
from .exceptions import DereferenceError, SpecLoadError
from .models import OpenAPISpec, ParseResult, SpecIssue, SpecValidation

logger = logging.getLogger(__name__)


def is_url(source: Union[str, Path]) -> bool:
    return isinstance(source, str) and source.startswith(("http://", "https://"))


async def fetch_text(
    url: str, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None
) -> str:
    async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
        response = await client.get(url)
        response.raise_for_status()
        return response.text


def validate_document(document: Dict[str, Any]) -> SpecValidation:
    """Check the structural basics of an OpenAPI 3.x or Swagger 2.0 document."""
    errors: List[SpecIssue] = []

    openapi = document.get("openapi")
    swagger = document.get("swagger")
    if openapi is None and swagger is None:
        errors.append(SpecIssue(path="openapi", message="Missing openapi or swagger version", code="MISSING_VERSION"))
    elif openapi is not None and not str(openapi).startswith("3."):
        errors.append(
            SpecIssue(path="openapi", message=f"Unsupported OpenAPI version: {openapi}", code="UNSUPPORTED_VERSION")
        )
    elif openapi is None and str(swagger) != "2.0":
        errors.append(
            SpecIssue(path="swagger", message=f"Unsupported Swagger version: {swagger}", code="UNSUPPORTED_VERSION")
        )

    info = document.get("info")
    if not isinstance(info, dict):
        errors.append(SpecIssue(path="info", message="Missing info object", code="MISSING_INFO"))
    else:
        if not info.get("title"):
            errors.append(SpecIssue(path="info.title", message="Missing API title", code="MISSING_TITLE"))
        if not info.get("version"):
            errors.append(SpecIssue(path="info.version", message="Missing API version", code="MISSING_API_VERSION"))

    paths = document.get("paths")
    if not isinstance(paths, dict):
        errors.append(SpecIssue(path="paths", message="Missing paths object", code="MISSING_PATHS"))
    else:
        for path, item in paths.items():
            if not str(path).startswith("/"):
                errors.append(
                    SpecIssue(path=f"paths.{path}", message="Path must start with '/'", code="INVALID_PATH")
                )
            elif not isinstance(item, dict):
                errors.append(
                    SpecIssue(path=f"paths.{path}", message="Path item must be an object", code="INVALID_PATH_ITEM")
                )

    return SpecValidation(valid=not errors, errors=errors)


async def load_and_parse(
    source: Union[str, Path],
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    ref_transport: Optional[httpx.BaseTransport] = None,
) -> ParseResult:
    """Load an OpenAPI document from a file path or URL.

    The document may be JSON or YAML. References are expanded and the result
    is checked for structural problems; problems are reported in the
    returned validation rather than raised.

    Raises:
        SpecLoadError: If the document cannot be read, parsed or dereferenced
    """
    label = str(source)
    try:
        if is_url(source):
            text = await fetch_text(str(source), timeout=timeout, transport=transport)
            dereferencer_args = {"base_url": str(source)}
        else:
            path = Path(source)
            text = path.read_text(encoding="utf-8")
            dereferencer_args = {"base_path": path.parent}
    except (OSError, httpx.HTTPError) as e:
        raise SpecLoadError(label, str(e)) from e

    try:
        document = parse_document(text, label)
    except (ValueError, yaml.YAMLError) as e:
        raise SpecLoadError(label, f"Invalid JSON or YAML: {e}") from e
    if not isinstance(document, dict):
        raise SpecLoadError(label, "Document is not a mapping")

    # Dereferencing does blocking file and network reads
    dereferencer = SpecDereferencer(document, timeout=timeout, transport=ref_transport, **dereferencer_args)
    try:
        document = await asyncio.to_thread(dereferencer.dereference)
    except DereferenceError as e:
        raise SpecLoadError(label, str(e)) from e

    validation = validate_document(document)
    paths = document.get("paths")
    document["paths"] = (
        {path: item for path, item in paths.items() if isinstance(item, dict)} if isinstance(paths, dict) else {}
    )
    try:
        spec = OpenAPISpec.model_validate(document)
    except ValidationError as e:
        raise SpecLoadError(label, str(e)) from e

    logger.debug("Loaded %s with %d issues", label, len(validation.errors))
    return ParseResult(spec=spec, validation=validation, source=label)
