"""
Execution modes for agent shell commands.
"""

from .base import ExecResult, ExecutionMode
from .local import LocalMode

__all__ = [
    "ExecResult",
    "ExecutionMode",
    "LocalMode",
]
