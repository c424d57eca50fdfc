"""
Shared test fixtures: a scripted model backend and a stub execution mode.
"""

import asyncio
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest

from insight_agent.llm.base import AgentStream, BaseLLM, LLMResponse, StepEvent, StreamEvent
from insight_agent.modes.base import ExecResult, ExecutionMode


@dataclass
class Run:
    """One scripted backend invocation.

    ``events`` gives the production order of steps and text; when left
    empty it is every step followed by every text fragment.
    """

    steps: list[StepEvent] = field(default_factory=list)
    text: list[str] = field(default_factory=list)
    error: Exception | None = None
    gate: asyncio.Event | None = None
    events: list[StreamEvent] = field(default_factory=list)

    def __post_init__(self):
        if self.events:
            self.steps = [e for e in self.events if isinstance(e, StepEvent)]
            self.text = [e for e in self.events if isinstance(e, str)]
        else:
            self.events = [*self.steps, *self.text]


class _Deferred:
    """Awaitable that only builds its coroutine when awaited."""

    def __init__(self, factory):
        self._factory = factory

    def __await__(self):
        return self._factory().__await__()


class ScriptedLLM(BaseLLM):
    """Backend double that replays one scripted run per invocation."""

    def __init__(self, *runs: Run):
        super().__init__(api_key="test-key", model="scripted-model")
        self.runs = list(runs)
        self.calls: list[dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    def stream(self, *, messages=None, prompt=None, tools=None, max_steps=25, system_prompt=None):
        self.calls.append({
            "messages": messages,
            "prompt": prompt,
            "tools": tools,
            "max_steps": max_steps,
            "system_prompt": system_prompt,
        })
        run = self.runs.pop(0)

        async def steps():
            if run.gate is not None:
                await run.gate.wait()
            if run.error is not None:
                raise run.error
            for step in run.steps:
                yield step

        async def text_stream():
            if run.gate is not None:
                await run.gate.wait()
            if run.error is not None:
                raise run.error
            for fragment in run.text:
                yield fragment

        async def events():
            if run.gate is not None:
                await run.gate.wait()
            if run.error is not None:
                raise run.error
            for event in run.events:
                yield event

        async def response():
            if run.error is not None:
                raise run.error
            return LLMResponse(content="".join(run.text), steps=len(run.steps) + 1, model=self.model)

        return AgentStream(
            steps=steps(),
            text_stream=text_stream(),
            events=events(),
            response=_Deferred(response),
        )


class FakeMessageStream:
    """Stands in for the Anthropic SDK's streaming context manager."""

    def __init__(self, texts: list[str], final: SimpleNamespace):
        self.texts = texts
        self.final = final

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    @property
    def text_stream(self):
        async def generate():
            for text in self.texts:
                yield text
        return generate()

    async def get_final_message(self):
        return self.final


def final_message(content: list, stop_reason: str) -> SimpleNamespace:
    return SimpleNamespace(
        content=content,
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        stop_reason=stop_reason,
        model="claude-test",
    )


def text_block(text: str) -> SimpleNamespace:
    return SimpleNamespace(type="text", text=text)


def tool_block(block_id: str, command: str) -> SimpleNamespace:
    return SimpleNamespace(type="tool_use", id=block_id, name="bash", input={"command": command})


@pytest.fixture
def mode():
    """Execution mode stub rooted at a fixed snapshot path."""
    stub = MagicMock(spec=ExecutionMode)
    stub.get_snapshot_root.return_value = "/tmp/insight-snapshot"

    async def exec_command(command: str) -> ExecResult:
        return ExecResult(stdout="a.txt\nb.txt\n", stderr="", exit_code=0)

    stub.exec.side_effect = exec_command
    return stub


@pytest.fixture
def sent():
    """Collects the notifications a session emits."""
    return []
