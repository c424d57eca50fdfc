"""
Base classes for the model backend.

A backend invocation streams a multi-step, tool-calling run. It hands back
four views of the same run:
- ``steps``: step events carrying tool-call and tool-result batches
- ``text_stream``: text fragments as the model produces them
- ``events``: step events and text fragments interleaved in the order the
  run produced them
- ``response``: the finalized response, available once the run ends

The iterators are lazy, finite and single-pass. Each one sees every item
of its kind; consuming one view does not drain the others.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Union

if TYPE_CHECKING:
    from ..tools.registry import ToolRegistry


@dataclass
class ToolDefinition:
    """Definition of a tool that the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ToolCall:
    """A tool call made by the LLM."""

    id: str
    name: str
    arguments: Any


@dataclass
class ToolOutcome:
    """The result of executing one tool call."""

    tool_call_id: str
    name: str
    output: Any
    is_error: bool = False


@dataclass
class StepEvent:
    """A batch of tool activity within one agent step."""

    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolOutcome] = field(default_factory=list)


# A text fragment or a step event, as found in ``AgentStream.events``
StreamEvent = Union[StepEvent, str]


@dataclass
class LLMResponse:
    """Finalized response of a backend invocation."""

    content: str
    steps: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    stop_reason: str | None = None


@dataclass
class AgentStream:
    """Handle on a running backend invocation."""

    steps: AsyncIterator[StepEvent]
    text_stream: AsyncIterator[str]
    events: AsyncIterator[StreamEvent]
    response: Awaitable[LLMResponse]


class BaseLLM(ABC):
    """Base class for model backends."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    def stream(
        self,
        *,
        messages: list[dict[str, Any]] | None = None,
        prompt: str | None = None,
        tools: "ToolRegistry | None" = None,
        max_steps: int = 25,
        system_prompt: str | None = None,
    ) -> AgentStream:
        """Start a streaming, tool-calling run.

        Either ``messages`` (wire format) or ``prompt`` must be given.
        Failures surface as backend exceptions when the streams are consumed.
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass
