"""
Tests for tools module.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from insight_agent.modes.base import ExecResult, ExecutionMode
from insight_agent.modes.local import LocalMode
from insight_agent.llm.base import ToolDefinition
from insight_agent.tools.base import Tool, ToolParameter, ToolResult
from insight_agent.tools.bash import BashTool
from insight_agent.tools.registry import ToolRegistry, create_agent_tools
from insight_agent.tools.report import create_report_tool, validate_report_content


def _tree(**elements) -> dict:
    return {"root": "root", "elements": {"root": {"key": "root", "type": "Card", "props": {}}, **elements}}


def test_tool_result_constructors():
    """Test the success and failure constructors."""
    result = ToolResult.ok({"key": "value"})
    failed = ToolResult.fail("boom")

    assert result.success is True
    assert result.data == {"key": "value"}
    assert result.error is None
    assert failed.success is False
    assert failed.data is None
    assert failed.error == "boom"


def test_tool_result_to_json():
    """Test the value handed back to the model."""
    assert ToolResult.ok({"n": 1}).to_json() == {"n": 1}
    assert ToolResult.ok("plain").to_json() == "plain"
    assert ToolResult.fail("boom").to_json() == {"error": "boom"}
    assert ToolResult(success=False).to_json() == {"error": "Tool execution failed"}


def test_bash_tool_properties():
    """Test BashTool properties."""
    tool = BashTool(MagicMock(spec=ExecutionMode))

    assert tool.name == "bash"
    assert "snapshot" in tool.description.lower()
    assert tool.to_definition() == ToolDefinition(
        name="bash",
        description=tool.description,
        parameters=tool.input_schema,
    )
    assert tool.input_schema["required"] == ["command"]


@pytest.mark.asyncio
async def test_bash_tool_reports_exit_code():
    """Test that a failing command is still a successful tool result."""
    mode = MagicMock(spec=ExecutionMode)
    mode.exec = AsyncMock(return_value=ExecResult(stdout="", stderr="No such file", exit_code=2))

    result = await BashTool(mode).execute(command="cat missing.json")

    mode.exec.assert_awaited_once_with("cat missing.json")
    assert result.success is True
    assert result.data == {"stdout": "", "stderr": "No such file", "exitCode": 2}


@pytest.mark.asyncio
async def test_bash_tool_execution_error():
    """Test that a broken execution mode becomes a failed result."""
    mode = MagicMock(spec=ExecutionMode)
    mode.exec = AsyncMock(side_effect=OSError("sandbox gone"))

    result = await BashTool(mode).execute(command="ls")

    assert result.success is False
    assert "sandbox gone" in result.error


def test_validate_report_content_valid():
    """Test a well-formed render tree."""
    tree = _tree(text={"key": "text", "type": "Text", "props": {"content": "hi"}, "parentKey": "root"})
    tree["elements"]["root"]["children"] = ["text"]

    assert validate_report_content(tree) is None


@pytest.mark.parametrize(
    "content,expected",
    [
        ({"elements": {}}, "Invalid tree structure"),
        ({"root": "missing", "elements": {}}, 'Root element "missing" not found'),
        (_tree(root={"key": "root", "type": "Card", "props": {}, "children": ["ghost"]}), 'Child element "ghost"'),
        (_tree(x={"key": "x", "type": "Badge", "props": {}, "parentKey": "nobody"}), 'Parent element "nobody"'),
        (_tree(x={"key": "x", "type": "Marquee", "props": {}}), "Invalid tree structure"),
        ("not a tree", "Invalid tree structure"),
    ],
)
def test_validate_report_content_errors(content, expected):
    """Test structural validation failures."""
    assert expected in validate_report_content(content)


@pytest.mark.asyncio
async def test_report_tool_calls_back():
    """Test that a valid report is handed to the callback."""
    callback = MagicMock()
    tool = create_report_tool(callback)
    tree = _tree()

    result = await tool.execute(content=tree, title="Latency")

    callback.assert_called_once_with(tree, "Latency")
    assert result.success is True
    assert result.data == {"success": True, "message": 'Report "Latency" generated successfully'}


@pytest.mark.asyncio
async def test_report_tool_rejects_invalid_tree():
    """Test that invalid content never reaches the callback."""
    callback = MagicMock()
    tool = create_report_tool(callback)

    result = await tool.execute(content={"root": "nope", "elements": {}})

    callback.assert_not_called()
    assert result.success is False
    assert result.to_json() == {"error": 'Root element "nope" not found in elements'}


def test_report_tool_schema():
    """Test the report tool's parameter schema."""
    schema = create_report_tool(MagicMock()).to_definition().parameters

    assert schema["required"] == ["content"]
    assert schema["properties"]["content"]["type"] == "object"
    assert schema["properties"]["title"] == {
        "type": "string",
        "description": "Optional title displayed in the report header",
    }


@pytest.mark.asyncio
async def test_function_tool_builds_schema_and_runs_handler():
    """Test a function-built tool end to end through the registry."""
    async def count(pattern: str, limit: int = 10) -> ToolResult:
        return ToolResult.ok({"pattern": pattern, "limit": limit})

    registry = ToolRegistry()
    registry.register(Tool(
        name="count",
        description="Count matches",
        parameters=[
            ToolParameter(name="pattern", param_type="string", description="What to match"),
            ToolParameter(name="limit", param_type="integer", description="Cap", required=False),
        ],
        handler=count,
    ))

    definition = registry.get_definitions()[0]
    result = await registry.execute("count", {"pattern": "error"})

    assert definition.parameters["required"] == ["pattern"]
    assert definition.parameters["properties"]["limit"]["type"] == "integer"
    assert result.to_json() == {"pattern": "error", "limit": 10}


@pytest.mark.asyncio
async def test_registry_unknown_tool():
    """Test executing a tool that isn't registered."""
    result = await ToolRegistry().execute("nope", {})

    assert result.success is False
    assert "not found" in result.error


@pytest.mark.asyncio
async def test_registry_contains_handler_errors():
    """Test that a raising handler becomes a failed result."""
    mode = MagicMock(spec=ExecutionMode)
    registry = create_agent_tools(mode)

    result = await registry.execute("bash", {"unexpected": "argument"})

    assert result.success is False


def test_create_agent_tools_without_callback():
    """Test that the report tool needs a callback."""
    registry = create_agent_tools(MagicMock(spec=ExecutionMode))

    assert registry.list_tools() == ["bash"]
    definitions = registry.get_definitions()
    assert definitions[0].name == "bash"
    assert definitions[0].parameters["required"] == ["command"]


@pytest.mark.asyncio
async def test_local_mode_runs_in_snapshot(tmp_path):
    """Test that commands run with the snapshot as working directory."""
    (tmp_path / "_context.md").write_text("hello snapshot")
    mode = LocalMode(tmp_path)

    result = await mode.exec("cat _context.md && echo oops >&2 && exit 3")

    assert result.stdout == "hello snapshot"
    assert result.stderr.strip() == "oops"
    assert result.exit_code == 3


@pytest.mark.asyncio
async def test_local_mode_blocks_dangerous_commands(tmp_path):
    """Test that blocked patterns never execute."""
    mode = LocalMode(tmp_path)

    result = await mode.exec("rm -rf / --no-preserve-root")

    assert result.exit_code == -1
    assert "blocked" in result.stderr.lower()


@pytest.mark.asyncio
async def test_local_mode_truncates_output(tmp_path):
    """Test output truncation."""
    mode = LocalMode(tmp_path, max_output_chars=10)

    result = await mode.exec("printf '%0100d' 0")

    assert result.stdout.startswith("0" * 10)
    assert result.stdout.endswith("(truncated)")
