"""
Tool building blocks.

A tool is either a ``Tool`` built from an async handler and a list of
``ToolParameter``s, or a ``BaseTool`` subclass that declares its own input
schema. Both describe themselves to the model with ``to_definition()`` and
answer every call with a ``ToolResult``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from ..llm.base import ToolDefinition


@dataclass
class ToolResult:
    """Outcome of one tool call."""

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def to_json(self) -> Any:
        """The JSON value handed back to the model."""
        if self.success:
            return self.data
        return {"error": self.error or "Tool execution failed"}


@dataclass
class ToolParameter:
    """One argument of a function-built tool."""

    name: str
    param_type: str  # JSON Schema type name
    description: str
    required: bool = True


@dataclass
class Tool:
    """A tool made from an async handler taking its parameters as keywords."""

    name: str
    description: str
    parameters: list[ToolParameter]
    handler: Callable[..., Coroutine[Any, Any, ToolResult]]

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                param.name: {"type": param.param_type, "description": param.description}
                for param in self.parameters
            },
            "required": [param.name for param in self.parameters if param.required],
        }

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(name=self.name, description=self.description, parameters=self.input_schema)

    async def execute(self, **kwargs: Any) -> ToolResult:
        return await self.handler(**kwargs)


class BaseTool(ABC):
    """A tool implemented as a class.

    Subclasses set ``name``, ``description`` and ``input_schema`` and
    implement ``execute``.
    """

    name: str
    description: str
    input_schema: dict[str, Any]

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(name=self.name, description=self.description, parameters=self.input_schema)

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Run the tool with the model's arguments."""
