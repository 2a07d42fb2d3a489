"""
Registry of live MCP servers and the tools bound to them.
"""

import asyncio
import atexit
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import psutil
from mcp.types import CallToolResult, TextContent, ToolAnnotations

from .dispatcher import text_result
from .exceptions import BindingError, LifecycleError, MCPSwaggerError
from .models import (
    HealthReport,
    OperationResult,
    RegistryStats,
    ServerConfig,
    ServerHealth,
    ServerStatus,
    ToolDescriptor,
)
from .schema import build_input_model
from .server import ServerHandle
from .tool_manager import ToolManager

logger = logging.getLogger(__name__)


@dataclass
class ServerRecord:
    id: str
    config: ServerConfig
    handle: Optional[ServerHandle]
    created_at: datetime = field(default_factory=datetime.now)
    bound_tool_ids: set = field(default_factory=set)
    tool_handlers: Optional[Dict[str, Any]] = field(default_factory=dict)
    tool_names: Dict[str, str] = field(default_factory=dict)
    last_error: Optional[str] = None


def _memory_usage() -> Dict[str, int]:
    info = psutil.Process().memory_info()
    return {"rss": info.rss, "vms": info.vms}


def _as_result(value: Any) -> CallToolResult:
    if isinstance(value, CallToolResult):
        return value
    if isinstance(value, str):
        return text_result(value)
    return text_result(json.dumps(value, indent=2, default=str))


def _error_text(result: CallToolResult) -> str:
    texts = [block.text for block in result.content if isinstance(block, TextContent)]
    return texts[0] if texts else "Tool returned an error"


class MCPRegistry:
    """Owns live server handles and the bookkeeping of tools bound to them.

    Execution outcomes are reported to the optional ``ToolManager`` passed in
    by the host.
    """

    def __init__(self, tool_manager: Optional[ToolManager] = None):
        self.tool_manager = tool_manager
        self._servers: Dict[str, ServerRecord] = {}

    def create_server(self, config: ServerConfig) -> str:
        """Create a server handle and return its id.

        Raises:
            LifecycleError: If a server with the requested id already exists
        """
        server_id = config.id or str(uuid.uuid4())
        if server_id in self._servers:
            raise LifecycleError(f"Server with ID {server_id} already exists")

        handle = ServerHandle(config.name, version=config.version, instructions=config.description)
        self._servers[server_id] = ServerRecord(id=server_id, config=config, handle=handle)
        atexit.register(handle.close)

        logger.info("Created MCP server %s (%s v%s)", server_id, config.name, config.version)
        return server_id

    def get_server(self, server_id: str) -> Optional[ServerHandle]:
        record = self._servers.get(server_id)
        return record.handle if record else None

    def _require(self, server_id: str) -> ServerRecord:
        record = self._servers.get(server_id)
        if record is None or record.handle is None:
            raise LifecycleError(f"Server {server_id} not found")
        return record

    async def bind_tools_to_server(self, server_id: str, tools: Sequence[ToolDescriptor]) -> List[OperationResult]:
        """Register tools with a live server.

        Binding is best effort: a tool that fails to convert or register is
        reported in the results and left out of the server's bookkeeping.

        Raises:
            LifecycleError: If the server does not exist
        """
        record = self._require(server_id)
        results: List[OperationResult] = []

        for tool in tools:
            try:
                owner = next((i for i, name in record.tool_names.items() if name == tool.name and i != tool.id), None)
                if owner is not None:
                    raise BindingError(f"Tool name {tool.name} is already bound to {owner} on server {server_id}")
                input_model = build_input_model(tool.name, tool.input_schema)
                annotations = None
                metadata = tool.metadata
                if metadata is not None and metadata.http_method and metadata.endpoint:
                    annotations = ToolAnnotations(title=f"{metadata.http_method} {metadata.endpoint}")
                handler = self._wrap_handler(record, tool)
                record.handle.register_tool(
                    name=tool.name,
                    description=tool.description,
                    input_schema=tool.input_schema,
                    handler=handler,
                    input_model=input_model,
                    annotations=annotations,
                    deprecated=bool(metadata and metadata.deprecated),
                )
            except (MCPSwaggerError, ValueError, TypeError) as e:
                logger.error("Failed to bind tool %s to server %s: %s", tool.id, server_id, e)
                record.last_error = str(e)
                results.append(OperationResult(id=tool.id, success=False, error=str(e)))
                continue

            previous_name = record.tool_names.get(tool.id)
            if previous_name is not None and previous_name != tool.name:
                record.handle.remove_tool(previous_name)
            record.bound_tool_ids.add(tool.id)
            record.tool_handlers[tool.id] = handler
            record.tool_names[tool.id] = tool.name
            results.append(OperationResult(id=tool.id, success=True))

        bound = sum(1 for result in results if result.success)
        logger.info("Bound %d/%d tools to server %s", bound, len(results), server_id)
        return results

    def _wrap_handler(self, record: ServerRecord, tool: ToolDescriptor):
        if tool.handler is None:
            raise TypeError(f"Tool {tool.id} has no handler")
        handler = tool.handler

        async def timed(arguments: Dict[str, Any]) -> CallToolResult:
            start = time.perf_counter()
            try:
                result = _as_result(await handler(arguments))
            except Exception as e:  # handler bugs become error results
                elapsed = (time.perf_counter() - start) * 1000
                logger.exception("Tool %s failed on server %s", tool.id, record.id)
                record.last_error = str(e)
                self._record(tool.id, elapsed, False, str(e))
                return text_result(f"Tool execution failed: {e}", is_error=True)

            elapsed = (time.perf_counter() - start) * 1000
            error = None
            if result.isError:
                error = _error_text(result)
                record.last_error = error
            self._record(tool.id, elapsed, not result.isError, error)
            return result

        return timed

    def _record(self, tool_id: str, elapsed_ms: float, success: bool, error: Optional[str]):
        if self.tool_manager is None or self.tool_manager.disposed:
            return
        self.tool_manager.record_execution(tool_id, elapsed_ms, success, error)

    async def unbind_tools_from_server(self, server_id: str, tool_ids: Sequence[str]) -> List[OperationResult]:
        """Drop tools from a server's bookkeeping and stop routing them in-process.

        Connected clients are not notified of the change.
        """
        record = self._servers.get(server_id)
        if record is None:
            logger.warning("Cannot unbind tools: server %s not found", server_id)
            return [OperationResult(id=tool_id, success=False, error="Server not found") for tool_id in tool_ids]

        results = []
        for tool_id in tool_ids:
            if tool_id not in record.bound_tool_ids:
                logger.warning("Tool %s is not bound to server %s", tool_id, server_id)
                results.append(OperationResult(id=tool_id, success=False, error="Tool not bound"))
                continue
            record.bound_tool_ids.discard(tool_id)
            record.tool_handlers.pop(tool_id, None)
            name = record.tool_names.pop(tool_id, tool_id)
            if record.handle is not None:
                record.handle.remove_tool(name)
            results.append(OperationResult(id=tool_id, success=True))
        return results

    async def destroy_server(self, server_id: str) -> bool:
        record = self._servers.pop(server_id, None)
        if record is None:
            logger.warning("Cannot destroy server %s: not found", server_id)
            return False

        if record.handle is not None:
            atexit.unregister(record.handle.close)
            try:
                record.handle.close()
            except Exception:  # the record is gone either way
                logger.exception("Error closing server %s", server_id)
        logger.info("Destroyed MCP server %s", server_id)
        return True

    async def destroy_all_servers(self) -> List[OperationResult]:
        server_ids = list(self._servers)
        outcomes = await asyncio.gather(
            *(self.destroy_server(server_id) for server_id in server_ids), return_exceptions=True
        )
        return [
            OperationResult(id=server_id, success=False, error=str(outcome))
            if isinstance(outcome, BaseException)
            else OperationResult(id=server_id, success=bool(outcome))
            for server_id, outcome in zip(server_ids, outcomes)
        ]

    def _status(self, record: ServerRecord, memory: Dict[str, int]) -> ServerStatus:
        running = record.handle is not None and not record.handle.closed
        return ServerStatus(
            id=record.id,
            name=record.config.name,
            status="running" if running else "stopped",
            uptime_ms=(datetime.now() - record.created_at).total_seconds() * 1000,
            tool_count=len(record.bound_tool_ids),
            last_error=record.last_error,
            created_at=record.created_at,
            memory_usage=memory,
        )

    def get_server_status(self, server_id: str) -> Optional[ServerStatus]:
        record = self._servers.get(server_id)
        if record is None:
            return None
        return self._status(record, _memory_usage())

    def get_all_servers_status(self) -> List[ServerStatus]:
        memory = _memory_usage()
        return [self._status(record, memory) for record in self._servers.values()]

    def perform_health_check(self) -> HealthReport:
        servers = []
        for record in self._servers.values():
            error = None
            if record.handle is None or record.handle.closed:
                error = "Server handle is not available"
            elif record.config is None:
                error = "Server configuration is missing"
            elif record.tool_handlers is None:
                error = "Tool bookkeeping is missing"
            servers.append(
                ServerHealth(id=record.id, name=record.config.name, healthy=error is None, error=error)
            )
        return HealthReport(healthy=all(server.healthy for server in servers), servers=servers)

    def get_stats(self) -> RegistryStats:
        records = list(self._servers.values())
        return RegistryStats(
            total_servers=len(records),
            running_servers=sum(1 for r in records if r.handle is not None and not r.handle.closed),
            total_bound_tools=sum(len(r.bound_tool_ids) for r in records),
            servers_with_errors=sum(1 for r in records if r.last_error),
            tool_manager=self.tool_manager.get_stats() if self.tool_manager and not self.tool_manager.disposed else None,
        )
