"""
Tool registry for managing the tools available to one agent session.
"""

from typing import Any, Callable, Union

import structlog

from ..llm.base import ToolDefinition
from ..modes.base import ExecutionMode
from .base import BaseTool, Tool, ToolResult

logger = structlog.get_logger()


class ToolRegistry:
    """Registry for managing tools."""

    def __init__(self):
        self._tools: dict[str, Union[BaseTool, Tool]] = {}

    def register(self, tool: Union[BaseTool, Tool]) -> None:
        """Register a tool."""
        self._tools[tool.name] = tool
        logger.debug("Tool registered", tool_name=tool.name)

    def get(self, name: str) -> Union[BaseTool, Tool, None]:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for LLM."""
        return [tool.to_definition() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool by name."""
        tool = self.get(name)
        if tool is None:
            return ToolResult.fail(f"Tool '{name}' not found")

        try:
            logger.info("Executing tool", tool_name=name)
            result = await tool.execute(**arguments)
            logger.info("Tool executed", tool_name=name, success=result.success)
            return result
        except Exception as e:
            logger.error("Tool execution error", tool_name=name, error=str(e))
            return ToolResult.fail(str(e))


def create_agent_tools(
    mode: ExecutionMode,
    report_callback: Callable[[Any, str | None], None] | None = None,
) -> ToolRegistry:
    """Build the tool set for an agent session.

    The bash tool runs against the execution mode; the report tool is only
    registered when there is a client to receive reports.
    """
    from .bash import BashTool
    from .report import create_report_tool

    registry = ToolRegistry()
    registry.register(BashTool(mode))
    if report_callback is not None:
        registry.register(create_report_tool(report_callback))
    return registry
