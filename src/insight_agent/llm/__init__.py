"""
LLM module: the backend invocation contract and its Anthropic implementation.
"""

from .base import (
    AgentStream,
    BaseLLM,
    LLMResponse,
    StepEvent,
    StreamEvent,
    ToolCall,
    ToolDefinition,
    ToolOutcome,
)
from .anthropic import AnthropicLLM
from .factory import create_llm

__all__ = [
    "AgentStream",
    "BaseLLM",
    "LLMResponse",
    "StepEvent",
    "StreamEvent",
    "ToolCall",
    "ToolDefinition",
    "ToolOutcome",
    "AnthropicLLM",
    "create_llm",
]
