"""
Reference dereferencer for OpenAPI specifications.

Resolves ``$ref`` references across the whole document:
- Local references (e.g. "#/components/schemas/Pet")
- Relative file references (e.g. "./common.yaml#/components/schemas/Error")
- Remote references (e.g. "https://example.com/common.json#/Error")

A reference that points back into itself is replaced by a
``{"$$circular_ref": ref}`` marker instead of being expanded forever.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
import yaml

from .exceptions import DereferenceError

logger = logging.getLogger(__name__)

CIRCULAR_MARKER = "$$circular_ref"


def parse_document(content: str, hint: str = "") -> Any:
    """Parse JSON or YAML text, preferring the format suggested by ``hint``."""
    if hint.endswith((".yaml", ".yml")):
        return yaml.safe_load(content)
    try:
        return json.loads(content)
    except ValueError:
        return yaml.safe_load(content)


class SpecDereferencer:
    """Resolves references in an OpenAPI document."""

    def __init__(
        self,
        spec: Dict[str, Any],
        base_path: Optional[Union[str, Path]] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the dereferencer.

        Args:
            spec: The OpenAPI specification dictionary
            base_path: Directory for resolving relative file references.
                      Defaults to the current working directory.
            base_url: URL the spec was fetched from, used to resolve relative
                      references in remote specs
            timeout: Timeout in seconds for fetching remote references
            transport: Optional httpx transport for remote references
        """
        self.spec = copy.deepcopy(spec)
        self.base_path = Path(base_path) if base_path else Path.cwd()
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport
        self._cache: Dict[str, Any] = {}
        self._ref_stack: List[str] = []

    def _resolve_json_pointer(self, obj: Any, pointer: str) -> Any:
        if not pointer.startswith("/"):
            raise DereferenceError(f"Invalid JSON pointer: {pointer}")

        current = obj
        for part in pointer[1:].split("/"):
            part = part.replace("~1", "/").replace("~0", "~")
            if isinstance(current, list) and part.isdigit():
                part = int(part)
            try:
                current = current[part]
            except (KeyError, TypeError, IndexError):
                raise DereferenceError(f"Could not resolve pointer {pointer}")
        return current

    def _fetch(self, url: str) -> Any:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport, follow_redirects=True) as client:
                response = client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise DereferenceError(f"Failed to load external reference {url}: {e}") from e
        return parse_document(response.text, url)

    def _locate(self, ref_path: str, source: Optional[str]) -> str:
        """Turn a reference's file part into an absolute path or URL.

        ``source`` is the location of the document containing the reference,
        or None for the root document.
        """
        if ref_path.startswith(("http://", "https://")):
            return ref_path
        if source is None:
            if self.base_url is not None:
                return str(httpx.URL(self.base_url).join(ref_path))
            return str(self.base_path / ref_path)
        if source.startswith(("http://", "https://")):
            return str(httpx.URL(source).join(ref_path))
        return str(Path(source).parent / ref_path)

    def _load_external_ref(self, location: str) -> Any:
        if location in self._cache:
            return self._cache[location]

        if location.startswith(("http://", "https://")):
            data = self._fetch(location)
        else:
            try:
                data = parse_document(Path(location).read_text(), location)
            except (OSError, ValueError, yaml.YAMLError) as e:
                raise DereferenceError(f"Failed to load external reference {location}: {e}") from e

        logger.debug("Loaded external reference %s", location)
        self._cache[location] = data
        return data

    def _resolve_ref(self, ref: str, document: Any, source: Optional[str]) -> Tuple[Any, Any, Optional[str]]:
        """Resolve ``ref`` relative to the document that contains it.

        Returns the target value together with the document and location
        that references inside the target are resolved against.
        """
        file_path, _, pointer = ref.partition("#")
        if file_path:
            source = self._locate(file_path, source)
            document = self._load_external_ref(source)
        if pointer:
            return self._resolve_json_pointer(document, pointer), document, source
        return document, document, source

    def _dereference(self, value: Any, document: Any, source: Optional[str]) -> Any:
        if isinstance(value, list):
            return [self._dereference(item, document, source) for item in value]
        if not isinstance(value, dict):
            return value

        if "$ref" in value and isinstance(value["$ref"], str):
            ref = value["$ref"]
            file_path, _, pointer = ref.partition("#")
            key = f"{self._locate(file_path, source) if file_path else source or ''}#{pointer}"
            if key in self._ref_stack:
                logger.debug("Circular reference %s", ref)
                return {CIRCULAR_MARKER: ref}

            self._ref_stack.append(key)
            try:
                target, target_document, target_source = self._resolve_ref(ref, document, source)
                resolved = self._dereference(target, target_document, target_source)
            finally:
                self._ref_stack.pop()

            # Sibling keys next to $ref are kept
            result = {k: self._dereference(v, document, source) for k, v in value.items() if k != "$ref"}
            if isinstance(resolved, dict):
                result.update(resolved)
                return result
            return resolved

        return {key: self._dereference(item, document, source) for key, item in value.items()}

    def dereference(self) -> Dict[str, Any]:
        """Dereference all references in the specification.

        Returns:
            A new specification with references expanded

        Raises:
            DereferenceError: If any reference cannot be resolved
        """
        self._ref_stack.clear()
        return self._dereference(copy.deepcopy(self.spec), self.spec, None)
