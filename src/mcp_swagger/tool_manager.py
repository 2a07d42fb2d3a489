"""
In-memory tool catalog with tag index, execution statistics and lifecycle events.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from . import validation
from .exceptions import ToolManagerDisposedError, ToolValidationError
from .models import (
    ExecutionRollup,
    ExecutionStats,
    OperationResult,
    ToolDescriptor,
    ToolEventType,
    ToolManagerEvent,
    ToolManagerStats,
    ValidationIssue,
    ValidationResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TAG = "uncategorized"

Listener = Callable[[ToolManagerEvent], Any]


def _tags_of(tool: ToolDescriptor) -> List[str]:
    if tool.metadata is not None and tool.metadata.tags:
        return list(tool.metadata.tags)
    return [DEFAULT_TAG]


class ToolManager:
    """Catalog of registered tools.

    The manager is constructed by the host and passed to whatever needs it.
    After ``dispose()`` every mutating call raises ``ToolManagerDisposedError``.
    """

    def __init__(self):
        self._tools: Dict[str, ToolDescriptor] = {}
        self._tags: Dict[str, Set[str]] = {}
        self._stats: Dict[str, ExecutionStats] = {}
        self._listeners: Dict[ToolEventType, List[Listener]] = {}
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _ensure_active(self):
        if self._disposed:
            raise ToolManagerDisposedError()

    def on(self, event: ToolEventType, callback: Listener):
        """Subscribe ``callback`` to an event kind."""
        self._ensure_active()
        self._listeners.setdefault(ToolEventType(event), []).append(callback)

    def off(self, event: ToolEventType, callback: Listener):
        listeners = self._listeners.get(ToolEventType(event), [])
        if callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: ToolEventType, tool: ToolDescriptor, metadata: Optional[Dict[str, Any]] = None):
        payload = ToolManagerEvent(type=event, tool=tool, metadata=metadata)
        for callback in list(self._listeners.get(event, [])):
            callback(payload)

    def validate_tool(self, tool: ToolDescriptor) -> ValidationResult:
        return validation.validate_tool(tool)

    async def register_tool(self, tool: ToolDescriptor):
        """Validate and add a tool, replacing any tool with the same id.

        Raises:
            ToolValidationError: If the tool fails validation
            ToolManagerDisposedError: If the manager has been disposed
        """
        self._ensure_active()

        result = self.validate_tool(tool)
        errors = list(result.errors)
        for existing in self._tools.values():
            if existing.name == tool.name and existing.id != tool.id:
                errors.append(
                    ValidationIssue(
                        field="name", message=f"Duplicate tool name: {tool.name}", code="DUPLICATE_NAME"
                    )
                )
                break

        if errors:
            message = "; ".join(issue.message for issue in errors)
            self._emit(ToolEventType.TOOL_ERROR, tool, {"errors": [issue.model_dump() for issue in errors]})
            raise ToolValidationError(f"Tool validation failed: {message}", errors)

        for issue in result.warnings:
            logger.warning("Tool %s: %s", tool.id, issue.message)

        if tool.id in self._tools:
            logger.info("Replacing existing tool %s", tool.id)
            await self.unregister_tool(tool.id)

        self._tools[tool.id] = tool
        for tag in _tags_of(tool):
            self._tags.setdefault(tag, set()).add(tool.id)
        self._stats[tool.id] = ExecutionStats()

        logger.debug("Registered tool %s", tool.id)
        self._emit(ToolEventType.TOOL_REGISTERED, tool)

    async def register_tools(self, tools: Sequence[ToolDescriptor]) -> List[OperationResult]:
        """Register several tools; each outcome is independent of the others."""
        self._ensure_active()
        outcomes = await asyncio.gather(*(self.register_tool(tool) for tool in tools), return_exceptions=True)
        results = []
        for tool, outcome in zip(tools, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Failed to register tool %s: %s", tool.id, outcome)
                results.append(OperationResult(id=tool.id, success=False, error=str(outcome)))
            else:
                results.append(OperationResult(id=tool.id, success=True))
        return results

    async def unregister_tool(self, tool_id: str):
        self._ensure_active()
        tool = self._tools.pop(tool_id, None)
        if tool is None:
            logger.warning("Tool %s is not registered", tool_id)
            return

        for tag in _tags_of(tool):
            ids = self._tags.get(tag)
            if ids is None:
                continue
            ids.discard(tool_id)
            if not ids:
                del self._tags[tag]
        self._stats.pop(tool_id, None)

        logger.debug("Unregistered tool %s", tool_id)
        self._emit(ToolEventType.TOOL_UNREGISTERED, tool)

    async def unregister_tools(self, tool_ids: Sequence[str]) -> List[OperationResult]:
        self._ensure_active()
        outcomes = await asyncio.gather(
            *(self.unregister_tool(tool_id) for tool_id in tool_ids), return_exceptions=True
        )
        return [
            OperationResult(id=tool_id, success=False, error=str(outcome))
            if isinstance(outcome, BaseException)
            else OperationResult(id=tool_id, success=True)
            for tool_id, outcome in zip(tool_ids, outcomes)
        ]

    def get_tool(self, tool_id: str) -> Optional[ToolDescriptor]:
        return self._tools.get(tool_id)

    def get_tools(self) -> List[ToolDescriptor]:
        return list(self._tools.values())

    def get_tools_by_tag(self, tag: str) -> List[ToolDescriptor]:
        return [self._tools[tool_id] for tool_id in self._tags.get(tag, ()) if tool_id in self._tools]

    def get_execution_stats(self, tool_id: str) -> Optional[ExecutionStats]:
        return self._stats.get(tool_id)

    def record_execution(self, tool_id: str, elapsed_ms: float, success: bool, error: Optional[str] = None):
        """Record one execution of a registered tool.

        Unknown ids are ignored so late results never resurrect a removed tool.
        """
        self._ensure_active()
        stats = self._stats.get(tool_id)
        if stats is None:
            return

        stats.count += 1
        stats.total_time_ms += elapsed_ms
        if not success:
            stats.error_count += 1
        stats.last_executed_at = datetime.now()

        self._emit(
            ToolEventType.TOOL_EXECUTED,
            self._tools[tool_id],
            {"success": success, "execution_time": elapsed_ms, "error": error},
        )

    def get_stats(self) -> ToolManagerStats:
        total = sum(stats.count for stats in self._stats.values())
        failed = sum(stats.error_count for stats in self._stats.values())
        total_time = sum(stats.total_time_ms for stats in self._stats.values())
        return ToolManagerStats(
            total_tools=len(self._tools),
            tag_count=len(self._tags),
            tools_by_tag={tag: len(ids) for tag, ids in self._tags.items()},
            execution_stats=ExecutionRollup(
                total_executions=total,
                successful_executions=total - failed,
                failed_executions=failed,
                average_execution_time=total_time / total if total else 0.0,
            ),
        )

    def dispose(self):
        if self._disposed:
            return
        self._tools.clear()
        self._tags.clear()
        self._stats.clear()
        self._listeners.clear()
        self._disposed = True
        logger.debug("ToolManager disposed")
