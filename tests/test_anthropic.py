"""
Tests for the Anthropic backend.
"""

from unittest.mock import MagicMock

import anthropic
import httpx
import pytest

from insight_agent.llm.anthropic import STEP_SEPARATOR, AnthropicLLM
from insight_agent.llm.base import StepEvent, ToolCall
from insight_agent.tools.registry import create_agent_tools

from conftest import FakeMessageStream, final_message, text_block, tool_block


@pytest.fixture
def llm():
    backend = AnthropicLLM(api_key="sk-test", model="claude-test")
    backend.client = MagicMock()
    return backend


def test_convert_messages_tool_results_become_user_turn(llm):
    """Test conversion of a tool exchange to Anthropic blocks."""
    converted = llm._convert_messages([
        {"role": "user", "content": "List files"},
        {"role": "assistant", "content": [
            {"type": "text", "text": "Checking"},
            {"type": "tool-call", "tool_call_id": "c1", "tool_name": "bash", "input": {"command": "ls"}},
        ]},
        {"role": "tool", "content": [
            {"type": "tool-result", "tool_call_id": "c1", "tool_name": "bash",
             "output": {"type": "error-json", "value": {"error": "denied"}}},
        ]},
        {"role": "user", "content": "Try again"},
    ])

    assert [m["role"] for m in converted] == ["user", "assistant", "user"]
    assert converted[1]["content"][1] == {
        "type": "tool_use", "id": "c1", "name": "bash", "input": {"command": "ls"},
    }
    tool_result, follow_up = converted[2]["content"]
    assert tool_result["type"] == "tool_result"
    assert tool_result["tool_use_id"] == "c1"
    assert tool_result["is_error"] is True
    assert tool_result["content"] == '{"error": "denied"}'
    assert follow_up == {"type": "text", "text": "Try again"}


def test_convert_messages_skips_empty_text(llm):
    """Test that empty text turns are dropped."""
    converted = llm._convert_messages([
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": ""},
        {"role": "user", "content": "still there?"},
    ])

    assert len(converted) == 1
    assert [b["text"] for b in converted[0]["content"]] == ["hi", "still there?"]


def test_stream_requires_input(llm):
    """Test that a run needs messages or a prompt."""
    with pytest.raises(ValueError):
        llm.stream()


@pytest.mark.asyncio
async def test_stream_runs_tool_loop(llm, mode):
    """Test a two-step run: tool call, tool result, final answer."""
    llm.client.messages.stream = MagicMock(side_effect=[
        FakeMessageStream(["Let me look"], final_message([text_block("Let me look"), tool_block("tu1", "ls")], "tool_use")),
        FakeMessageStream(["Found 2 files."], final_message([text_block("Found 2 files.")], "end_turn")),
    ])

    run = llm.stream(prompt="List files", tools=create_agent_tools(mode), system_prompt="sys")
    steps = [step async for step in run.steps]
    text = [fragment async for fragment in run.text_stream]
    events = [event async for event in run.events]
    response = await run.response

    assert steps[0] == StepEvent(tool_calls=[ToolCall(id="tu1", name="bash", arguments={"command": "ls"})])
    outcome = steps[1].tool_results[0]
    assert outcome.tool_call_id == "tu1"
    assert outcome.output == {"stdout": "a.txt\nb.txt\n", "stderr": "", "exitCode": 0}
    assert outcome.is_error is False

    assert text == ["Let me look", STEP_SEPARATOR, "Found 2 files."]
    assert events == ["Let me look", steps[0], steps[1], STEP_SEPARATOR, "Found 2 files."]
    assert response.content == "Let me look\n\nFound 2 files."
    assert response.steps == 2
    assert response.input_tokens == 20
    assert response.stop_reason == "end_turn"

    first_call = llm.client.messages.stream.call_args_list[0].kwargs
    assert first_call["system"] == "sys"
    assert first_call["tools"][0]["name"] == "bash"
    messages = first_call["messages"]
    assert messages[2]["role"] == "user"
    assert messages[2]["content"][0]["type"] == "tool_result"
    mode.exec.assert_awaited_once_with("ls")


@pytest.mark.asyncio
async def test_stream_stops_at_max_steps(llm, mode):
    """Test that the step limit ends the loop even if tools are requested."""
    llm.client.messages.stream = MagicMock(side_effect=[
        FakeMessageStream([], final_message([tool_block("tu1", "ls")], "tool_use")),
    ])

    run = llm.stream(prompt="Loop forever", tools=create_agent_tools(mode), max_steps=1)
    steps = [step async for step in run.steps]
    response = await run.response

    assert len(steps) == 2
    assert response.steps == 1
    assert llm.client.messages.stream.call_count == 1


@pytest.mark.asyncio
async def test_stream_surfaces_api_errors(llm):
    """Test that backend failures reach every consumer."""
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    error = anthropic.BadRequestError(
        "prompt is too long: 210000 tokens > 200000 maximum",
        response=httpx.Response(400, request=request),
        body=None,
    )
    llm.client.messages.stream = MagicMock(side_effect=error)

    run = llm.stream(prompt="Huge")

    with pytest.raises(anthropic.BadRequestError):
        async for _ in run.steps:
            pass
    with pytest.raises(anthropic.BadRequestError):
        async for _ in run.text_stream:
            pass
    with pytest.raises(anthropic.BadRequestError):
        async for _ in run.events:
            pass
    with pytest.raises(anthropic.BadRequestError):
        await run.response
