"""
Tools module for agent capabilities.
"""

from .base import BaseTool, FunctionTool, ToolDefinition, ToolParameter, ToolResult
from .registry import ToolRegistry, create_default_registry
from .log_query import HTTPLogClient, LogQueryTool
from .monitor import AlertQueryTool, HTTPMonitorClient, MetricsQueryTool

__all__ = [
    "BaseTool",
    "FunctionTool",
    "ToolDefinition",
    "ToolParameter",
    "ToolResult",
    "ToolRegistry",
    "create_default_registry",
    "HTTPLogClient",
    "LogQueryTool",
    "AlertQueryTool",
    "HTTPMonitorClient",
    "MetricsQueryTool",
]
