"""
Conversation message model.

The internal history format for multi-turn, tool-augmented conversations.
Three message roles exist:
- user: plain text from the client
- assistant: text, or an ordered list of text and tool-call parts
- tool: results for the tool calls of the preceding assistant message

Every tool-result's ``tool_call_id`` must match a tool call emitted by the
immediately preceding assistant message. The converters rely on callers
keeping that discipline; nothing here enforces it.
"""

from dataclasses import dataclass, field
from typing import Any, Literal, Union

# Arbitrary JSON value (dict, list, str, int, float, bool, None)
JSONValue = Any


@dataclass
class TextPart:
    """A text content part in an assistant message."""

    text: str
    type: Literal["text"] = field(default="text", init=False)


@dataclass
class ToolCallPart:
    """A tool call issued by the assistant."""

    tool_call_id: str
    tool_name: str
    args: JSONValue = None
    type: Literal["tool-call"] = field(default="tool-call", init=False)


@dataclass
class ToolResultPart:
    """The result of executing a tool call."""

    tool_call_id: str
    tool_name: str
    result: JSONValue = None
    is_error: bool = False
    type: Literal["tool-result"] = field(default="tool-result", init=False)


AssistantContentPart = Union[TextPart, ToolCallPart]


@dataclass
class UserMessage:
    """A message from the user."""

    content: str
    role: Literal["user"] = field(default="user", init=False)


@dataclass
class AssistantMessage:
    """A response from the model, possibly carrying tool calls."""

    content: str | list[AssistantContentPart]
    role: Literal["assistant"] = field(default="assistant", init=False)


@dataclass
class ToolMessage:
    """Results of the tool calls made by the preceding assistant message."""

    content: list[ToolResultPart]
    role: Literal["tool"] = field(default="tool", init=False)


ConversationMessage = Union[UserMessage, AssistantMessage, ToolMessage]


def is_user_message(message: Any) -> bool:
    return isinstance(message, UserMessage)


def is_assistant_message(message: Any) -> bool:
    return isinstance(message, AssistantMessage)


def is_tool_message(message: Any) -> bool:
    return isinstance(message, ToolMessage)


def is_text_part(part: Any) -> bool:
    return isinstance(part, TextPart)


def is_tool_call_part(part: Any) -> bool:
    return isinstance(part, ToolCallPart)


def get_assistant_text(message: AssistantMessage) -> str:
    """Concatenate the text parts of an assistant message.

    Tool-call parts never contribute. Returns an empty string when the
    message has no text parts.
    """
    if isinstance(message.content, str):
        return message.content
    return "".join(part.text for part in message.content if is_text_part(part))


def get_assistant_tool_calls(message: AssistantMessage) -> list[ToolCallPart]:
    """Get the tool-call parts of an assistant message, in order."""
    if isinstance(message.content, str):
        return []
    return [part for part in message.content if is_tool_call_part(part)]


def has_tool_calls(message: AssistantMessage) -> bool:
    return len(get_assistant_tool_calls(message)) > 0


def create_user_message(content: str) -> UserMessage:
    return UserMessage(content=content)


def create_assistant_message(content: str) -> AssistantMessage:
    return AssistantMessage(content=content)


def create_assistant_message_with_parts(
    parts: list[AssistantContentPart],
) -> AssistantMessage:
    return AssistantMessage(content=list(parts))


def create_tool_message(results: list[ToolResultPart]) -> ToolMessage:
    return ToolMessage(content=list(results))


# ---------------------------------------------------------------------- #
# Client (UI) JSON history
# ---------------------------------------------------------------------- #

def _part_from_dict(data: dict[str, Any]) -> AssistantContentPart | None:
    part_type = data.get("type")
    if part_type == "text":
        return TextPart(text=str(data.get("text", "")))
    if part_type == "tool-call":
        return ToolCallPart(
            tool_call_id=str(data.get("toolCallId", "")),
            tool_name=str(data.get("toolName", "")),
            args=data.get("args"),
        )
    return None


def message_from_dict(data: Any) -> ConversationMessage | None:
    """Convert one client-supplied JSON message into the internal model.

    Returns None for anything that isn't an object with a known role.
    """
    if not isinstance(data, dict):
        return None

    role = data.get("role")
    content = data.get("content")

    if role == "user":
        return UserMessage(content=content if isinstance(content, str) else "")

    if role == "assistant":
        if isinstance(content, str):
            return AssistantMessage(content=content)
        parts = [
            part
            for part in (_part_from_dict(p) for p in content or [] if isinstance(p, dict))
            if part is not None
        ]
        return AssistantMessage(content=parts)

    if role == "tool":
        results = [
            ToolResultPart(
                tool_call_id=str(p.get("toolCallId", "")),
                tool_name=str(p.get("toolName", "")),
                result=p.get("result"),
                is_error=bool(p.get("isError", False)),
            )
            for p in content or []
            if isinstance(p, dict)
        ]
        return ToolMessage(content=results)

    return None


def from_ui_messages(items: Any) -> list[ConversationMessage]:
    """Convert a client-supplied history list, skipping invalid entries."""
    if not isinstance(items, list):
        return []
    messages = (message_from_dict(item) for item in items)
    return [m for m in messages if m is not None]


def message_to_dict(message: ConversationMessage) -> dict[str, Any]:
    """Serialize a message into the client JSON shape."""
    if isinstance(message, UserMessage):
        return {"role": "user", "content": message.content}

    if isinstance(message, AssistantMessage):
        if isinstance(message.content, str):
            return {"role": "assistant", "content": message.content}
        parts: list[dict[str, Any]] = []
        for part in message.content:
            if isinstance(part, TextPart):
                parts.append({"type": "text", "text": part.text})
            else:
                parts.append({
                    "type": "tool-call",
                    "toolCallId": part.tool_call_id,
                    "toolName": part.tool_name,
                    "args": part.args,
                })
        return {"role": "assistant", "content": parts}

    results = []
    for part in message.content:
        item: dict[str, Any] = {
            "type": "tool-result",
            "toolCallId": part.tool_call_id,
            "toolName": part.tool_name,
            "result": part.result,
        }
        if part.is_error:
            item["isError"] = True
        results.append(item)
    return {"role": "tool", "content": results}
