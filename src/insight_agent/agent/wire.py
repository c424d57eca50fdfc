"""
Conversion between conversation messages and the backend wire format.

The wire format is what the backend invocation contract consumes:
- tool-call arguments travel under ``input``
- tool results carry a tagged outcome (``json`` or ``error-json``)

Wire messages are plain dicts and are only ever built in this module.
"""

from typing import Any

from .messages import (
    AssistantContentPart,
    AssistantMessage,
    ConversationMessage,
    TextPart,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    UserMessage,
)

WireMessage = dict[str, Any]

REPORT_TOOL_NAME = "generate_report"
TRUNCATED_REPORT_PLACEHOLDER = "[Report content truncated to save tokens]"


def _convert_assistant(message: AssistantMessage) -> WireMessage:
    if isinstance(message.content, str):
        return {"role": "assistant", "content": message.content}

    content: list[dict[str, Any]] = []
    for part in message.content:
        if isinstance(part, TextPart):
            content.append({"type": "text", "text": part.text})
        else:
            content.append({
                "type": "tool-call",
                "tool_call_id": part.tool_call_id,
                "tool_name": part.tool_name,
                "input": part.args,
            })
    return {"role": "assistant", "content": content}


def _convert_tool(message: ToolMessage) -> WireMessage:
    content = [
        {
            "type": "tool-result",
            "tool_call_id": part.tool_call_id,
            "tool_name": part.tool_name,
            "output": {
                "type": "error-json" if part.is_error else "json",
                "value": part.result,
            },
        }
        for part in message.content
    ]
    return {"role": "tool", "content": content}


def to_model_message(message: ConversationMessage) -> WireMessage:
    """Convert a single conversation message to the wire format."""
    if isinstance(message, UserMessage):
        return {"role": "user", "content": message.content}
    if isinstance(message, AssistantMessage):
        return _convert_assistant(message)
    if isinstance(message, ToolMessage):
        return _convert_tool(message)
    raise TypeError(f"Unsupported message type: {type(message).__name__}")


def to_model_messages(history: list[ConversationMessage]) -> list[WireMessage]:
    """Convert a conversation history, preserving order."""
    return [to_model_message(message) for message in history]


def from_model_message(message: WireMessage) -> ConversationMessage:
    """Convert a wire message back to the conversation model."""
    role = message.get("role")
    content = message.get("content")

    if role == "user":
        if isinstance(content, str):
            return UserMessage(content=content)
        text = "".join(p.get("text", "") for p in content or [] if p.get("type") == "text")
        return UserMessage(content=text)

    if role == "assistant":
        if isinstance(content, str):
            return AssistantMessage(content=content)
        parts: list[AssistantContentPart] = []
        for part in content or []:
            if part.get("type") == "text":
                parts.append(TextPart(text=part["text"]))
            elif part.get("type") == "tool-call":
                parts.append(ToolCallPart(
                    tool_call_id=part["tool_call_id"],
                    tool_name=part["tool_name"],
                    args=part.get("input"),
                ))
        return AssistantMessage(content=parts)

    if role == "tool":
        results = []
        for part in content or []:
            output = part.get("output") or {}
            results.append(ToolResultPart(
                tool_call_id=part["tool_call_id"],
                tool_name=part["tool_name"],
                result=output.get("value"),
                is_error=output.get("type") == "error-json",
            ))
        return ToolMessage(content=results)

    raise ValueError(f"Unknown wire message role: {role!r}")


def from_model_messages(messages: list[WireMessage]) -> list[ConversationMessage]:
    return [from_model_message(message) for message in messages]


def _truncate_report_input(original: Any) -> dict[str, Any]:
    truncated: dict[str, Any] = {}
    if isinstance(original, dict) and original.get("title"):
        truncated["title"] = original["title"]
    truncated["content"] = TRUNCATED_REPORT_PLACEHOLDER
    return truncated


def truncate_report_tool_calls(messages: list[WireMessage]) -> list[WireMessage]:
    """Replace the payload of report tool calls with a placeholder.

    A report call's structured content is only useful once, when it is
    rendered. Later turns only need to know that a report was produced and
    what it was titled, so the title is kept and the content is dropped.

    Returns a new list; the input messages are never mutated.
    """
    truncated: list[WireMessage] = []

    for message in messages:
        content = message.get("content")
        if message.get("role") != "assistant" or isinstance(content, str):
            truncated.append(message)
            continue

        new_content = []
        for part in content or []:
            if part.get("type") == "tool-call" and part.get("tool_name") == REPORT_TOOL_NAME:
                part = {**part, "input": _truncate_report_input(part.get("input"))}
            new_content.append(part)

        truncated.append({**message, "content": new_content})

    return truncated
