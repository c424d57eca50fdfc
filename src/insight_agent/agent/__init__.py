"""
Agent module - conversation state and query execution.

Includes:
- Messages: the conversation message model
- Wire: conversion to the backend's message format
- Token errors: context-window overflow detection
- Compaction: shrinking history to fit the context window
- Sessions: per-client execution lifecycle and the session manager
"""

from .messages import (
    AssistantMessage,
    ConversationMessage,
    TextPart,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    UserMessage,
    create_assistant_message,
    create_user_message,
    from_ui_messages,
    get_assistant_text,
)
from .wire import to_model_messages, truncate_report_tool_calls
from .token_errors import get_token_limit_error_description, is_token_limit_error
from .compaction import CompactionConfig, compact_conversation
from .session import AgentSession, SessionManager, SessionState

__all__ = [
    "AssistantMessage",
    "ConversationMessage",
    "TextPart",
    "ToolCallPart",
    "ToolMessage",
    "ToolResultPart",
    "UserMessage",
    "create_assistant_message",
    "create_user_message",
    "from_ui_messages",
    "get_assistant_text",
    "to_model_messages",
    "truncate_report_tool_calls",
    "get_token_limit_error_description",
    "is_token_limit_error",
    "CompactionConfig",
    "compact_conversation",
    "AgentSession",
    "SessionManager",
    "SessionState",
]
