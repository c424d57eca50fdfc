"""
Bash tool - lets the agent explore the telemetry snapshot with shell commands.
"""

from typing import Any

import structlog

from ..modes.base import ExecutionMode
from .base import BaseTool, ToolResult

logger = structlog.get_logger()


class BashTool(BaseTool):
    """Runs a bash command through the session's execution mode."""

    name = "bash"
    description = (
        "Execute a bash command inside the telemetry snapshot directory. "
        "Use standard tools (ls, cat, grep, jq, head, wc) to explore "
        "projects, spans and traces."
    )
    input_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The bash command to execute",
            },
        },
        "required": ["command"],
    }

    def __init__(self, mode: ExecutionMode):
        self.mode = mode

    async def execute(self, command: str) -> ToolResult:
        try:
            result = await self.mode.exec(command)
        except Exception as e:
            logger.error("Command execution failed", command=command, error=str(e))
            return ToolResult.fail(f"Execution failed: {e}")

        # A non-zero exit is still a result the model should read
        return ToolResult.ok({
            "stdout": result.stdout,
            "stderr": result.stderr,
            "exitCode": result.exit_code,
        })
