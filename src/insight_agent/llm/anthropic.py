"""
Anthropic Claude backend.

Runs the agent loop against the Messages API: stream one model turn, run
the tool calls it asks for, feed the results back, and repeat until the
model answers without tools or the step limit is reached. Text deltas,
tool activity and the final response are published through an
``AgentStream``.
"""

import asyncio
import json
from typing import TYPE_CHECKING, Any, AsyncIterator

import anthropic
import structlog

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

if TYPE_CHECKING:
    from ..tools.registry import ToolRegistry

logger = structlog.get_logger()

STEP_SEPARATOR = "\n\n"

_END = object()


class _Failure:
    """Marks a failed run inside the event queues."""

    def __init__(self, error: BaseException):
        self.error = error


class _ResponseHandle:
    """Awaitable that starts the run on first await and yields its response."""

    def __init__(self, run: "_AgentRun"):
        self._run = run

    def __await__(self):
        return self._run.wait_response().__await__()


class _AgentRun:
    """One streaming invocation; started lazily by its first consumer."""

    def __init__(self, llm: "AnthropicLLM", request: dict[str, Any], messages: list[dict[str, Any]],
                 tools: "ToolRegistry | None", max_steps: int):
        self.llm = llm
        self.request = request
        self.messages = messages
        self.tools = tools
        self.max_steps = max_steps
        self._step_queue: asyncio.Queue = asyncio.Queue()
        self._text_queue: asyncio.Queue = asyncio.Queue()
        self._event_queue: asyncio.Queue = asyncio.Queue()
        self._future: asyncio.Future | None = None
        self._task: asyncio.Task | None = None

    def _ensure_started(self) -> None:
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        # A cancelled consumer may never await the response
        self._future.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._task = loop.create_task(self._pump())

    async def _iterate(self, queue: asyncio.Queue) -> AsyncIterator[Any]:
        self._ensure_started()
        while True:
            item = await queue.get()
            if item is _END:
                return
            if isinstance(item, _Failure):
                raise item.error
            yield item

    def steps(self) -> AsyncIterator[StepEvent]:
        return self._iterate(self._step_queue)

    def text_stream(self) -> AsyncIterator[str]:
        return self._iterate(self._text_queue)

    def events(self) -> AsyncIterator[StreamEvent]:
        return self._iterate(self._event_queue)

    async def wait_response(self) -> LLMResponse:
        self._ensure_started()
        assert self._future is not None
        return await asyncio.shield(self._future)

    def _publish_text(self, text: str) -> None:
        self._text_queue.put_nowait(text)
        self._event_queue.put_nowait(text)

    def _publish_step(self, step: StepEvent) -> None:
        self._step_queue.put_nowait(step)
        self._event_queue.put_nowait(step)

    def _finish(self, item: Any) -> None:
        self._step_queue.put_nowait(item)
        self._text_queue.put_nowait(item)
        self._event_queue.put_nowait(item)

    async def _pump(self) -> None:
        assert self._future is not None
        full_text = ""
        step_count = 0
        input_tokens = 0
        output_tokens = 0
        stop_reason = None
        model = self.llm.model

        try:
            while step_count < self.max_steps:
                step_count += 1
                step_text = ""

                async with self.llm.client.messages.stream(
                    messages=self.messages, **self.request
                ) as stream:
                    async for text in stream.text_stream:
                        if not step_text and full_text and text.strip():
                            self._publish_text(STEP_SEPARATOR)
                            full_text += STEP_SEPARATOR
                        step_text += text
                        full_text += text
                        self._publish_text(text)
                    final = await stream.get_final_message()

                input_tokens += final.usage.input_tokens
                output_tokens += final.usage.output_tokens
                stop_reason = final.stop_reason
                model = final.model

                tool_uses = [block for block in final.content if block.type == "tool_use"]
                self.messages.append({
                    "role": "assistant",
                    "content": _assistant_blocks(final.content),
                })

                if not tool_uses:
                    break

                calls = [
                    ToolCall(id=block.id, name=block.name, arguments=block.input)
                    for block in tool_uses
                ]
                self._publish_step(StepEvent(tool_calls=calls))

                outcomes = [await self._run_tool(call) for call in calls]
                self._publish_step(StepEvent(tool_results=outcomes))

                self.messages.append({
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": outcome.tool_call_id,
                            "content": _tool_result_content(outcome.output),
                            "is_error": outcome.is_error,
                        }
                        for outcome in outcomes
                    ],
                })

        except asyncio.CancelledError:
            self._future.cancel()
            self._finish(_END)
            raise
        except Exception as e:
            logger.error("Anthropic streaming error", error=str(e), step=step_count)
            self._future.set_exception(e)
            self._finish(_Failure(e))
            return

        self._future.set_result(LLMResponse(
            content=full_text,
            steps=step_count,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=model,
            stop_reason=stop_reason,
        ))
        self._finish(_END)

    async def _run_tool(self, call: ToolCall) -> ToolOutcome:
        if self.tools is None:
            return ToolOutcome(
                tool_call_id=call.id,
                name=call.name,
                output={"error": f"Tool '{call.name}' not available"},
                is_error=True,
            )
        arguments = call.arguments if isinstance(call.arguments, dict) else {}
        result = await self.tools.execute(call.name, arguments)
        return ToolOutcome(
            tool_call_id=call.id,
            name=call.name,
            output=result.to_json(),
            is_error=not result.success,
        )


def _assistant_blocks(content: list[Any]) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    for block in content:
        if block.type == "text" and block.text:
            blocks.append({"type": "text", "text": block.text})
        elif block.type == "tool_use":
            blocks.append({
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.input,
            })
    return blocks


def _tool_result_content(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


class AnthropicLLM(BaseLLM):
    """Anthropic Claude LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5",
        base_url: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key or None,
            base_url=base_url,
        )

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _convert_messages(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Convert wire messages to Anthropic format.

        Tool results travel in a user turn, and consecutive turns with the
        same role are merged since the API expects them to alternate.
        """
        converted: list[dict[str, Any]] = []

        for msg in messages:
            role = msg["role"]
            content = msg["content"]
            blocks: list[dict[str, Any]] = []

            if role == "tool":
                role = "user"
                for part in content:
                    output = part.get("output") or {}
                    blocks.append({
                        "type": "tool_result",
                        "tool_use_id": part["tool_call_id"],
                        "content": _tool_result_content(output.get("value")),
                        "is_error": output.get("type") == "error-json",
                    })
            elif isinstance(content, str):
                if content:
                    blocks.append({"type": "text", "text": content})
            else:
                for part in content:
                    if part["type"] == "text":
                        if part["text"]:
                            blocks.append({"type": "text", "text": part["text"]})
                    elif part["type"] == "tool-call":
                        tool_input = part.get("input")
                        blocks.append({
                            "type": "tool_use",
                            "id": part["tool_call_id"],
                            "name": part["tool_name"],
                            "input": tool_input if isinstance(tool_input, dict) else {"value": tool_input},
                        })

            if not blocks:
                continue

            if converted and converted[-1]["role"] == role:
                converted[-1]["content"].extend(blocks)
            else:
                converted.append({"role": role, "content": blocks})

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to Anthropic format."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in tools
        ]

    def stream(
        self,
        *,
        messages: list[dict[str, Any]] | None = None,
        prompt: str | None = None,
        tools: "ToolRegistry | None" = None,
        max_steps: int = 25,
        system_prompt: str | None = None,
    ) -> AgentStream:
        """Stream a multi-step, tool-calling response from Claude."""
        if messages:
            converted = self._convert_messages(messages)
        elif prompt is not None:
            converted = [{"role": "user", "content": [{"type": "text", "text": prompt}]}]
        else:
            raise ValueError("Either messages or prompt is required")

        request: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if system_prompt:
            request["system"] = system_prompt
        if tools is not None:
            definitions = tools.get_definitions()
            if definitions:
                request["tools"] = self._convert_tools(definitions)

        run = _AgentRun(self, request, converted, tools, max_steps)
        return AgentStream(
            steps=run.steps(),
            text_stream=run.text_stream(),
            events=run.events(),
            response=_ResponseHandle(run),
        )
