"""
Report tool - pushes structured reports to the client's report panel.

The agent calls ``generate_report`` with an optional title and a render
tree. The tree's structure is validated here; rendering and per-component
prop schemas belong to the UI.
"""

from typing import Any, Callable, Literal

import structlog
from pydantic import BaseModel, ValidationError

from ..agent.wire import REPORT_TOOL_NAME
from .base import Tool, ToolParameter, ToolResult

logger = structlog.get_logger()

ComponentType = Literal[
    "Card",
    "Chart",
    "Text",
    "Heading",
    "List",
    "Table",
    "Metric",
    "Badge",
    "Alert",
    "Separator",
    "Code",
]

ReportCallback = Callable[[Any, str | None], None]


class UIElement(BaseModel):
    """A single element in the render tree."""

    key: str
    type: ComponentType
    props: dict[str, Any]
    children: list[str] | None = None
    parentKey: str | None = None


class UITree(BaseModel):
    """The full render tree: a root key and a map of elements."""

    root: str
    elements: dict[str, UIElement]


def validate_report_content(content: Any) -> str | None:
    """Validate a render tree. Returns an error message, or None if valid."""
    try:
        tree = UITree.model_validate(content)
    except ValidationError as e:
        return f"Invalid tree structure: {e.errors()[0]['msg']}"

    if tree.root not in tree.elements:
        return f'Root element "{tree.root}" not found in elements'

    for key, element in tree.elements.items():
        for child in element.children or []:
            if child not in tree.elements:
                return f'Child element "{child}" not found for parent "{key}"'
        if element.parentKey and element.parentKey not in tree.elements:
            return f'Parent element "{element.parentKey}" not found for element "{key}"'

    return None


def create_report_tool(callback: ReportCallback) -> Tool:
    """Create the generate_report tool bound to a report callback."""

    async def generate_report(content: Any, title: str | None = None) -> ToolResult:
        error = validate_report_content(content)
        if error:
            return ToolResult.fail(error)

        try:
            callback(content, title)
        except Exception as e:
            logger.error("Failed to deliver report", error=str(e))
            return ToolResult.fail(f"Failed to deliver report: {e}")

        message = f'Report "{title}" generated successfully' if title else "Report generated successfully"
        return ToolResult.ok({"success": True, "message": message})

    return Tool(
        name=REPORT_TOOL_NAME,
        description=(
            "Generate or update a structured report displayed in the UI report panel. "
            "The report is a render tree: 'root' names the root element and 'elements' "
            "maps keys to {key, type, props, children?}. Component types: "
            "Card, Chart, Text, Heading, List, Table, Metric, Badge, Alert, Separator, Code. "
            "Use it to present analysis results, metrics and tables."
        ),
        parameters=[
            ToolParameter(
                name="title",
                param_type="string",
                description="Optional title displayed in the report header",
                required=False,
            ),
            ToolParameter(
                name="content",
                param_type="object",
                description="The render tree structure",
                required=True,
            ),
        ],
        handler=generate_report,
    )
