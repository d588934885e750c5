"""
Tool registry for managing available tools.
"""

import json
import threading
from typing import Any

import structlog

from ..config import Settings, get_settings
from ..errors import ToolNotFoundError
from .base import BaseTool, ToolDefinition, ToolResult

logger = structlog.get_logger()


class ToolRegistry:
    """Name-keyed registry of tools. Read-mostly after startup."""

    def __init__(self):
        self._tools: dict[str, BaseTool] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def register(self, tool: BaseTool) -> None:
        """Register a tool. A later registration under the same name wins."""
        name = tool.definition().name
        with self._lock:
            replaced = name in self._tools
            self._tools[name] = tool
        logger.info("Tool registered", tool_name=name, replaced=replaced)

    def unregister(self, name: str) -> None:
        """Unregister a tool."""
        with self._lock:
            removed = self._tools.pop(name, None)
        if removed is not None:
            logger.info("Tool unregistered", tool_name=name)

    def get(self, name: str) -> BaseTool:
        """Get a tool by name."""
        with self._lock:
            tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        with self._lock:
            return list(self._tools.keys())

    async def execute(self, name: str, params: dict[str, Any]) -> ToolResult:
        """Execute a tool by name. No retry or timeout is added here."""
        tool = self.get(name)

        logger.info("Executing tool", tool_name=name, params=params)
        result = await tool.execute(params)
        logger.info("Tool executed", tool_name=name, success=result.success)
        return result

    def export_for_model(self) -> list[dict[str, Any]]:
        """Function-calling schemas for every registered tool."""
        return [definition.to_schema() for definition in self.list()]

    def to_openai_format(self) -> list[dict[str, Any]]:
        """Schemas wrapped in the OpenAI ``tools`` envelope."""
        return [{"type": "function", "function": schema} for schema in self.export_for_model()]

    def to_json(self) -> str:
        """Tool definitions as pretty-printed JSON."""
        return json.dumps([d.to_dict() for d in self.list()], indent=2, ensure_ascii=False)

    # Defined last so the builtin `list` stays usable in annotations above.
    def list(self) -> "list[ToolDefinition]":
        """List the definitions of all registered tools."""
        with self._lock:
            tools = [*self._tools.values()]
        return [tool.definition() for tool in tools]


def create_default_registry(settings: Settings | None = None) -> ToolRegistry:
    """Build a registry with the diagnostic tools whose backends are configured."""
    settings = settings or get_settings()
    registry = ToolRegistry()

    if settings.log_api_url:
        from .log_query import HTTPLogClient, LogQueryTool
        registry.register(LogQueryTool(
            HTTPLogClient(settings.log_api_url, timeout=settings.tool_timeout_seconds)
        ))
    else:
        logger.warning("Log backend not configured, log_query disabled")

    if settings.monitor_api_url:
        from .monitor import AlertQueryTool, HTTPMonitorClient, MetricsQueryTool
        client = HTTPMonitorClient(settings.monitor_api_url, timeout=settings.tool_timeout_seconds)
        registry.register(MetricsQueryTool(client))
        registry.register(AlertQueryTool(client))
    else:
        logger.warning("Monitor backend not configured, monitor_metrics and alert_query disabled")

    return registry
