"""
Tests for the conversation message model.
"""

from insight_agent.agent.messages import (
    AssistantMessage,
    TextPart,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    UserMessage,
    create_assistant_message,
    create_assistant_message_with_parts,
    create_tool_message,
    create_user_message,
    from_ui_messages,
    get_assistant_text,
    get_assistant_tool_calls,
    has_tool_calls,
    is_assistant_message,
    is_tool_message,
    is_user_message,
    message_from_dict,
    message_to_dict,
)


def test_factories_set_roles():
    """Test that factories produce messages with the right role."""
    assert create_user_message("hi").role == "user"
    assert create_assistant_message("hello").role == "assistant"
    assert create_tool_message([]).role == "tool"


def test_predicates():
    """Test role predicates."""
    user = create_user_message("hi")
    assistant = create_assistant_message("hello")
    tool = create_tool_message([])

    assert is_user_message(user) and not is_user_message(assistant)
    assert is_assistant_message(assistant) and not is_assistant_message(tool)
    assert is_tool_message(tool) and not is_tool_message(user)


def test_get_assistant_text_skips_tool_calls():
    """Test that tool-call parts never contribute to the text."""
    message = create_assistant_message_with_parts([
        TextPart(text="A"),
        ToolCallPart(tool_call_id="c1", tool_name="bash", args={"command": "ls"}),
        TextPart(text="B"),
    ])

    assert get_assistant_text(message) == "AB"


def test_get_assistant_text_plain_and_empty():
    """Test text extraction from plain and part-less messages."""
    assert get_assistant_text(create_assistant_message("plain")) == "plain"
    assert get_assistant_text(AssistantMessage(content=[])) == ""


def test_tool_calls_accessors():
    """Test tool-call extraction keeps order."""
    message = create_assistant_message_with_parts([
        ToolCallPart(tool_call_id="c1", tool_name="bash"),
        TextPart(text="between"),
        ToolCallPart(tool_call_id="c2", tool_name="generate_report"),
    ])

    calls = get_assistant_tool_calls(message)

    assert [c.tool_call_id for c in calls] == ["c1", "c2"]
    assert has_tool_calls(message) is True
    assert has_tool_calls(create_assistant_message("no tools")) is False


def test_create_assistant_message_with_parts_copies_list():
    """Test that the parts list is not shared with the caller."""
    parts = [TextPart(text="x")]
    message = create_assistant_message_with_parts(parts)
    parts.append(TextPart(text="y"))

    assert len(message.content) == 1


def test_message_from_dict_tool_message():
    """Test parsing a client tool message with camelCase keys."""
    message = message_from_dict({
        "role": "tool",
        "content": [{
            "type": "tool-result",
            "toolCallId": "c1",
            "toolName": "bash",
            "result": {"stdout": "a.txt"},
            "isError": True,
        }],
    })

    assert isinstance(message, ToolMessage)
    part = message.content[0]
    assert part.tool_call_id == "c1"
    assert part.tool_name == "bash"
    assert part.result == {"stdout": "a.txt"}
    assert part.is_error is True


def test_message_from_dict_rejects_unknown():
    """Test that unknown roles and non-objects are rejected."""
    assert message_from_dict({"role": "system", "content": "x"}) is None
    assert message_from_dict("not a message") is None


def test_from_ui_messages_skips_invalid_entries():
    """Test that invalid history entries are dropped."""
    messages = from_ui_messages([
        {"role": "user", "content": "hi"},
        42,
        {"role": "bogus"},
        {"role": "assistant", "content": [{"type": "text", "text": "hello"}, {"type": "image"}]},
    ])

    assert len(messages) == 2
    assert isinstance(messages[0], UserMessage)
    assert isinstance(messages[1], AssistantMessage)
    assert get_assistant_text(messages[1]) == "hello"
    assert from_ui_messages(None) == []


def test_message_to_dict_shapes():
    """Test serialization to the client JSON shape."""
    assistant = create_assistant_message_with_parts([
        TextPart(text="Let me look"),
        ToolCallPart(tool_call_id="c1", tool_name="bash", args={"command": "ls"}),
    ])
    tool = create_tool_message([
        ToolResultPart(tool_call_id="c1", tool_name="bash", result="a.txt"),
    ])

    assert message_to_dict(create_user_message("hi")) == {"role": "user", "content": "hi"}
    assert message_to_dict(assistant)["content"][1] == {
        "type": "tool-call",
        "toolCallId": "c1",
        "toolName": "bash",
        "args": {"command": "ls"},
    }
    assert "isError" not in message_to_dict(tool)["content"][0]
    assert message_from_dict(message_to_dict(tool)) == tool
