"""
Execution mode interface.

An execution mode is where the agent's shell commands run and where the
telemetry snapshot lives. Sandboxed implementations live outside this
package; ``LocalMode`` runs commands on the host.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class ExecResult:
    """Outcome of a shell command."""

    stdout: str
    stderr: str
    exit_code: int


class ExecutionMode(ABC):
    """Where agent commands execute."""

    @abstractmethod
    async def exec(self, command: str) -> ExecResult:
        """Execute a bash command and return its output."""
        pass

    @abstractmethod
    def get_snapshot_root(self) -> str:
        """Absolute path of the snapshot directory as seen by commands."""
        pass

    async def cleanup(self) -> None:
        """Release resources held by the mode."""
        return None
