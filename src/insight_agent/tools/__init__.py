"""
Tools module for agent capabilities.
"""

from .base import BaseTool, Tool, ToolParameter, ToolResult
from .registry import ToolRegistry, create_agent_tools
from .bash import BashTool
from .report import create_report_tool, validate_report_content

__all__ = [
    "BaseTool",
    "Tool",
    "ToolParameter",
    "ToolResult",
    "ToolRegistry",
    "create_agent_tools",
    "BashTool",
    "create_report_tool",
    "validate_report_content",
]
