"""
Live MCP server handle built on the SDK's low-level ``Server``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, TextContent, Tool, ToolAnnotations
from pydantic import BaseModel, ValidationError

from .dispatcher import text_result
from .exceptions import BindingError

logger = logging.getLogger(__name__)

DEPRECATED_PREFIX = "[DEPRECATED] "


class ToolCallFailed(Exception):
    """Raised inside the SDK call handler so the session reports ``isError``."""


@dataclass
class RegisteredTool:
    name: str
    description: str
    input_schema: Dict[str, Any]
    input_model: Optional[Type[BaseModel]]
    annotations: Optional[ToolAnnotations]
    handler: Callable[[Dict[str, Any]], Awaitable[CallToolResult]]
    deprecated: bool = False

    def to_tool(self) -> Tool:
        description = self.description
        if self.deprecated and not description.startswith(DEPRECATED_PREFIX):
            description = f"{DEPRECATED_PREFIX}{description}"
        return Tool(
            name=self.name,
            description=description,
            inputSchema=self.input_schema,
            annotations=self.annotations,
        )


class ServerHandle:
    """A named MCP server that routes ``tools/list`` and ``tools/call`` to registered tools."""

    def __init__(self, name: str, version: str = "1.0.0", instructions: Optional[str] = None):
        self.name = name
        self.version = version
        self.server = Server(name, version=version, instructions=instructions)
        self._tools: Dict[str, RegisteredTool] = {}
        self._closed = False

        @self.server.list_tools()
        async def list_tools() -> List[Tool]:
            return self.list_tools()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
            logger.debug("Calling tool %s", name)
            result = await self.call_tool(name, arguments)
            if result.isError:
                raise ToolCallFailed("\n".join(_texts(result)))
            return list(result.content)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def tool_names(self) -> List[str]:
        return list(self._tools)

    def register_tool(
        self,
        name: str,
        description: str,
        input_schema: Dict[str, Any],
        handler: Callable[[Dict[str, Any]], Awaitable[CallToolResult]],
        input_model: Optional[Type[BaseModel]] = None,
        annotations: Optional[ToolAnnotations] = None,
        deprecated: bool = False,
    ):
        """Expose a tool on this server, replacing any tool with the same name.

        Raises:
            BindingError: If the server is closed or the handler is not callable
        """
        if self._closed:
            raise BindingError(f"Server {self.name} is closed")
        if not callable(handler):
            raise BindingError(f"Handler for tool {name} is not callable")
        self._tools[name] = RegisteredTool(
            name=name,
            description=description,
            input_schema=input_schema,
            input_model=input_model,
            annotations=annotations,
            handler=handler,
            deprecated=deprecated,
        )
        logger.debug("Server %s registered tool %s", self.name, name)

    def remove_tool(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def list_tools(self) -> List[Tool]:
        return [registered.to_tool() for registered in self._tools.values()]

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> CallToolResult:
        """Invoke a registered tool in-process.

        Arguments are validated against the tool's input model when it has one.
        Unknown tools and invalid arguments produce ``isError`` results.
        """
        registered = self._tools.get(name)
        if registered is None:
            return text_result(f"Unknown tool: {name}", is_error=True)

        arguments = dict(arguments or {})
        if registered.input_model is not None:
            try:
                validated = registered.input_model.model_validate(arguments)
            except ValidationError as e:
                return text_result(f"Invalid arguments for tool {name}: {e}", is_error=True)
            arguments = validated.model_dump(by_alias=True, exclude_none=True)

        return await registered.handler(arguments)

    async def run_stdio(self):
        """Serve this handle over stdin/stdout until the client disconnects."""
        async with stdio_server() as (read_stream, write_stream):
            logger.info("MCP server %s starting on stdio", self.name)
            await self.server.run(read_stream, write_stream, self.server.create_initialization_options())

    def close(self):
        if self._closed:
            return
        self._tools.clear()
        self._closed = True
        logger.info("MCP server %s closed", self.name)


def _texts(result: CallToolResult) -> List[str]:
    return [block.text for block in result.content if isinstance(block, TextContent)]
