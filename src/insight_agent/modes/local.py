"""
Local execution mode - runs agent commands on the host, inside the snapshot.
"""

import asyncio
import os
import re
from pathlib import Path

import structlog

from .base import ExecResult, ExecutionMode

logger = structlog.get_logger()

BLOCKED_PATTERNS = [
    r"rm\s+-rf\s+/",
    r"rm\s+-rf\s+~",
    r">\s*/dev/sd",
    r"mkfs",
    r"dd\s+if=",
    r":\(\)\s*\{\s*:\|:&\s*\};:",
    r"curl.*\|\s*sh",
    r"wget.*\|\s*sh",
]


class LocalMode(ExecutionMode):
    """Executes bash commands with the snapshot directory as working dir."""

    def __init__(
        self,
        snapshot_dir: str | Path,
        timeout_seconds: int = 60,
        max_output_chars: int = 20000,
    ):
        self.snapshot_dir = Path(snapshot_dir).expanduser()
        self.timeout_seconds = timeout_seconds
        self.max_output_chars = max_output_chars
        self.snapshot_dir.mkdir(parents=True, exist_ok=True)

    def get_snapshot_root(self) -> str:
        return str(self.snapshot_dir.resolve())

    def _blocked_reason(self, command: str) -> str | None:
        if not command.strip():
            return "Empty command"
        for pattern in BLOCKED_PATTERNS:
            if re.search(pattern, command, re.IGNORECASE):
                return "Command contains blocked pattern"
        return None

    def _truncate_output(self, output: str) -> str:
        if len(output) > self.max_output_chars:
            return output[:self.max_output_chars] + "\n\n... (truncated)"
        return output

    async def exec(self, command: str) -> ExecResult:
        reason = self._blocked_reason(command)
        if reason:
            return ExecResult(stdout="", stderr=f"Command blocked: {reason}", exit_code=-1)

        env = os.environ.copy()
        env["INSIGHT_SNAPSHOT_ROOT"] = self.get_snapshot_root()

        process = await asyncio.create_subprocess_exec(
            "bash",
            "-c",
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self.snapshot_dir),
            env=env,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("Command timed out", command=command, timeout=self.timeout_seconds)
            return ExecResult(
                stdout="",
                stderr=f"Command timed out after {self.timeout_seconds} seconds",
                exit_code=-1,
            )

        return ExecResult(
            stdout=self._truncate_output(stdout.decode("utf-8", errors="replace")),
            stderr=self._truncate_output(stderr.decode("utf-8", errors="replace")),
            exit_code=process.returncode if process.returncode is not None else -1,
        )
