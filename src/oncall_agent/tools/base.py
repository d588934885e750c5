"""
Base classes for tools.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine


@dataclass
class ToolResult:
    """Result from a tool execution."""

    success: bool
    data: Any = None
    error: str | None = None
    output: str = ""

    def text(self) -> str:
        """Render the result as text for plan steps and prompts."""
        if self.output:
            return self.output
        if self.data is None:
            return ""
        if isinstance(self.data, str):
            return self.data
        try:
            return json.dumps(self.data, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(self.data)


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    type: str  # string, integer, number, boolean, array, object
    description: str
    required: bool = False


@dataclass
class ToolDefinition:
    """Name, description and parameters advertised for a tool."""

    name: str
    description: str
    parameters: list[ToolParameter] = field(default_factory=list)

    def to_schema(self) -> dict[str, Any]:
        """Convert to a provider-neutral function-calling schema."""
        properties: dict[str, Any] = {}
        required: list[str] = []

        for param in self.parameters:
            properties[param.name] = {
                "type": param.type,
                "description": param.description,
            }
            if param.required:
                required.append(param.name)

        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": [
                {
                    "name": p.name,
                    "type": p.type,
                    "description": p.description,
                    "required": p.required,
                }
                for p in self.parameters
            ],
        }


class BaseTool(ABC):
    """Base class for all tools."""

    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Get the tool definition."""
        pass

    @abstractmethod
    async def execute(self, params: dict[str, Any]) -> ToolResult:
        """Execute the tool with the given parameters."""
        pass

    @property
    def name(self) -> str:
        return self.definition().name


@dataclass
class FunctionTool(BaseTool):
    """
    Simple tool wrapper that can be created from a function.

    The handler receives the parameters as keyword arguments.
    """

    tool_name: str
    description: str
    parameters: list[ToolParameter]
    handler: Callable[..., Coroutine[Any, Any, ToolResult]]

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.tool_name,
            description=self.description,
            parameters=list(self.parameters),
        )

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        """Execute the tool handler."""
        return await self.handler(**params)
