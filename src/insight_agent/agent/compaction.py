"""
Conversation Compaction - lossy history reduction after an overflow.

When the backend rejects a request because the conversation no longer fits
its context window, the history is shrunk under a keep-first/keep-last
policy:

- The first N messages (framing context: the original question and answer)
  are kept verbatim.
- The last N messages (the active exchange) are kept verbatim.
- Everything in between collapses into a single summary message. Tool-call
  arguments and tool-result payloads in that region are dropped entirely;
  only tool names survive.

This is strictly lossier than report truncation and is used only as a last
resort, right before retrying a failed request.
"""

import json
from dataclasses import dataclass

import structlog

from .messages import (
    AssistantMessage,
    ConversationMessage,
    ToolMessage,
    UserMessage,
    get_assistant_text,
    get_assistant_tool_calls,
    has_tool_calls,
)

logger = structlog.get_logger()

# Approximate tokens per character (conservative estimate)
CHARS_PER_TOKEN = 4

DEFAULT_KEEP_FIRST = 2
DEFAULT_KEEP_LAST = 6

SUMMARY_MARKER = "[Earlier conversation compacted]"
PREVIEW_CHARS = 150
MAX_PREVIEW_LINES = 12


@dataclass
class CompactionConfig:
    """Configuration for conversation compaction."""

    keep_first_n: int = DEFAULT_KEEP_FIRST
    keep_last_n: int = DEFAULT_KEEP_LAST


@dataclass
class CompactionResult:
    """Result of a compaction operation."""

    original_message_count: int
    compacted_message_count: int
    removed_message_count: int
    tokens_saved_estimate: int

    @property
    def compacted(self) -> bool:
        return self.removed_message_count > 0


def _message_chars(message: ConversationMessage) -> int:
    if isinstance(message, UserMessage):
        return len(message.content)
    if isinstance(message, AssistantMessage):
        args = sum(len(json.dumps(tc.args, default=str)) for tc in get_assistant_tool_calls(message))
        return len(get_assistant_text(message)) + args
    return sum(len(json.dumps(part.result, default=str)) for part in message.content)


def estimate_tokens(messages: list[ConversationMessage]) -> int:
    """Estimate token count for a list of messages."""
    total_chars = sum(_message_chars(m) for m in messages)
    # Add overhead for role markers and formatting
    overhead = len(messages) * 20
    return (total_chars + overhead) // CHARS_PER_TOKEN


def is_summary_message(message: ConversationMessage) -> bool:
    return isinstance(message, UserMessage) and message.content.startswith(SUMMARY_MARKER)


def _preview(text: str) -> str:
    text = " ".join(text.split())
    if len(text) > PREVIEW_CHARS:
        return text[:PREVIEW_CHARS] + "..."
    return text


def _build_summary(messages: list[ConversationMessage]) -> UserMessage:
    """Build a coarse summary of the compacted region, without tool payloads."""
    user_count = sum(1 for m in messages if isinstance(m, UserMessage))
    assistant_count = sum(1 for m in messages if isinstance(m, AssistantMessage))
    tool_names: list[str] = []
    lines: list[str] = []

    for msg in messages:
        if is_summary_message(msg):
            # Carry an earlier summary forward without its header
            lines.extend(msg.content.splitlines()[2:])
        elif isinstance(msg, UserMessage):
            lines.append(f"- User: {_preview(msg.content)}")
        elif isinstance(msg, AssistantMessage):
            text = get_assistant_text(msg)
            if text.strip():
                lines.append(f"- Assistant: {_preview(text)}")
            for call in get_assistant_tool_calls(msg):
                if call.tool_name not in tool_names:
                    tool_names.append(call.tool_name)

    parts = [
        SUMMARY_MARKER,
        f"{len(messages)} messages removed to fit the model context "
        f"({user_count} user, {assistant_count} assistant).",
    ]
    parts.extend(lines[-MAX_PREVIEW_LINES:])
    if tool_names:
        parts.append(f"- Tools used: {', '.join(tool_names)}")

    return UserMessage(content="\n".join(parts))


def _boundaries(
    messages: list[ConversationMessage], keep_first_n: int, keep_last_n: int
) -> tuple[int, int]:
    """Find the [start, end) range of the middle region.

    The prefix is widened to keep a trailing tool call together with its
    results, and the suffix is widened so it never opens with tool results
    whose call was compacted away.
    """
    total = len(messages)
    start = min(max(keep_first_n, 0), total)
    end = max(total - max(keep_last_n, 0), start)

    if 0 < start < total and isinstance(messages[start - 1], AssistantMessage):
        if has_tool_calls(messages[start - 1]) and isinstance(messages[start], ToolMessage):
            start += 1
    end = max(end, start)

    while start < end < total and isinstance(messages[end], ToolMessage):
        end -= 1

    return start, end


def compact_with_result(
    messages: list[ConversationMessage],
    config: CompactionConfig | None = None,
) -> tuple[list[ConversationMessage], CompactionResult]:
    """Compact a conversation and report what changed."""
    config = config or CompactionConfig()
    start, end = _boundaries(messages, config.keep_first_n, config.keep_last_n)
    middle = messages[start:end]

    # Nothing to remove, or only an earlier summary sits in the middle
    if not middle or (len(middle) == 1 and is_summary_message(middle[0])):
        return list(messages), CompactionResult(
            original_message_count=len(messages),
            compacted_message_count=len(messages),
            removed_message_count=0,
            tokens_saved_estimate=0,
        )

    compacted = messages[:start] + [_build_summary(middle)] + messages[end:]
    tokens_saved = estimate_tokens(messages) - estimate_tokens(compacted)

    result = CompactionResult(
        original_message_count=len(messages),
        compacted_message_count=len(compacted),
        removed_message_count=len(middle),
        tokens_saved_estimate=max(0, tokens_saved),
    )

    logger.info(
        "Conversation compacted",
        original=result.original_message_count,
        compacted=result.compacted_message_count,
        tokens_saved=result.tokens_saved_estimate,
    )

    return compacted, result


def compact_conversation(
    messages: list[ConversationMessage],
    config: CompactionConfig | None = None,
    *,
    keep_first_n: int | None = None,
    keep_last_n: int | None = None,
) -> list[ConversationMessage]:
    """Compact a conversation history under a keep-first/keep-last policy.

    Args:
        messages: Full message history
        config: Compaction configuration
        keep_first_n: Overrides ``config.keep_first_n``
        keep_last_n: Overrides ``config.keep_last_n``

    Returns:
        A new list. When the middle region is empty it holds the same
        messages as the input.
    """
    config = config or CompactionConfig()
    if keep_first_n is not None or keep_last_n is not None:
        config = CompactionConfig(
            keep_first_n=config.keep_first_n if keep_first_n is None else keep_first_n,
            keep_last_n=config.keep_last_n if keep_last_n is None else keep_last_n,
        )
    compacted, _ = compact_with_result(messages, config)
    return compacted
