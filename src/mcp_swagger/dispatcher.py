"""
Per-tool HTTP request dispatch.

Every tool produced by the transformer carries a ``RequestDispatcher`` as its
handler. An invocation goes through three steps: the request is built from
the invocation arguments, sent with httpx and the HTTP outcome is mapped into
an MCP ``CallToolResult``. HTTP failures never raise out of the handler; they
come back as results with ``isError`` set.
"""

import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote

import httpx
from mcp.types import CallToolResult, TextContent

from .models import HttpMethod, Parameter, ParameterLocation

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{([^}]+)\}")
BODY_METHODS = {HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH}
DEFAULT_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


def text_result(text: str, is_error: bool = False) -> CallToolResult:
    """Wrap text in a single-block tool result."""
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=is_error)


def _format_body(response: httpx.Response) -> str:
    try:
        return json.dumps(response.json(), indent=2, ensure_ascii=False)
    except ValueError:
        return response.text


class RequestDispatcher:
    """Turns tool arguments into an HTTP call against one API operation."""

    def __init__(
        self,
        method: HttpMethod,
        path: str,
        base_url: str,
        parameters: Optional[List[Parameter]] = None,
        path_prefix: str = "",
        strip_path_prefix: str = "",
        timeout: float = 30.0,
        custom_headers: Optional[Dict[str, str]] = None,
        auth_headers: Optional[Dict[str, str]] = None,
        allow_auth_override: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.method = HttpMethod(method)
        self.path = path
        self.base_url = base_url.rstrip("/")
        self.parameters = list(parameters or [])
        self.path_prefix = path_prefix
        self.strip_path_prefix = strip_path_prefix
        self.timeout = timeout
        self.custom_headers = dict(custom_headers or {})
        self.auth_headers = dict(auth_headers or {})
        self.allow_auth_override = allow_auth_override
        self.transport = transport

    def _names_in(self, location: ParameterLocation) -> List[str]:
        return [param.name for param in self.parameters if param.location == location]

    def build_url(self, arguments: Mapping[str, Any]) -> str:
        """Build the request URL, substituting URL-encoded path parameters."""
        path = self.path
        if self.strip_path_prefix and path.startswith(self.strip_path_prefix):
            path = path[len(self.strip_path_prefix):] or "/"
            if not path.startswith("/"):
                path = f"/{path}"

        def substitute(match: "re.Match[str]") -> str:
            value = arguments.get(match.group(1))
            if value is None:
                return match.group(0)
            return quote(str(value), safe="")

        return f"{self.base_url}{self.path_prefix}{PLACEHOLDER_PATTERN.sub(substitute, path)}"

    def build_headers(
        self, arguments: Mapping[str, Any], injected: Optional[Mapping[str, str]] = None
    ) -> httpx.Headers:
        """Merge default, custom, per-call and auth headers.

        Auth headers are applied last and win over everything else unless the
        dispatcher allows auth overrides, in which case custom and per-call
        headers are applied after them.
        """
        per_call = {
            name: str(arguments[name])
            for name in self._names_in(ParameterLocation.HEADER)
            if arguments.get(name) is not None
        }
        auth = {**self.auth_headers, **dict(injected or {})}

        if self.allow_auth_override:
            layers = [auth, self.custom_headers, per_call]
        else:
            layers = [self.custom_headers, per_call, auth]

        headers = httpx.Headers(DEFAULT_HEADERS)
        for layer in layers:
            headers.update(layer)
        return headers

    def build_request(
        self, arguments: Mapping[str, Any], injected: Optional[Mapping[str, str]] = None
    ) -> Dict[str, Any]:
        query = {
            name: arguments[name]
            for name in self._names_in(ParameterLocation.QUERY)
            if arguments.get(name) is not None
        }
        cookies = {
            name: str(arguments[name])
            for name in self._names_in(ParameterLocation.COOKIE)
            if arguments.get(name) is not None
        }
        request: Dict[str, Any] = {
            "method": self.method.value,
            "url": self.build_url(arguments),
            "params": query,
            "headers": self.build_headers(arguments, injected),
            "cookies": cookies,
        }
        if self.method in BODY_METHODS and arguments.get("requestBody") is not None:
            request["json"] = arguments["requestBody"]
        return request

    async def _send(self, request: Dict[str, Any]) -> httpx.Response:
        cookies = request.pop("cookies")
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport, cookies=cookies or None
        ) as client:
            return await client.request(**request)

    async def __call__(
        self, arguments: Optional[Mapping[str, Any]] = None, headers: Optional[Mapping[str, str]] = None
    ) -> CallToolResult:
        arguments = arguments or {}
        request = self.build_request(arguments, headers)
        logger.info("Calling %s %s", request["method"], request["url"])

        try:
            response = await self._send(request)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            failed = e.response
            body = _format_body(failed)
            logger.warning("%s %s returned %s", request["method"], request["url"], failed.status_code)
            text = f"Request failed ({failed.status_code} {failed.reason_phrase})"
            if body:
                text = f"{text}\n\nError details:\n{body}"
            return text_result(text, is_error=True)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", request["method"], request["url"], e)
            return text_result(f"Request failed: {str(e) or type(e).__name__}", is_error=True)

        return text_result(
            f"Request succeeded ({response.status_code} {response.reason_phrase})\n\n"
            f"Response data:\n{_format_body(response)}"
        )
