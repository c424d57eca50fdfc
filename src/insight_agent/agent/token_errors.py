"""
Detection of context-window overflow errors.

The backend reports an oversized prompt in several shapes: an API status
error with a 400/413/422 code, a status error with no code, or a plain
exception re-raised by an intermediate layer. The message text is the only
reliable signal, so classification is done on the message. The status code
is recorded for logging but never decides the outcome: auth and validation
errors share the same codes.
"""

import re
from typing import Any

import anthropic
import structlog

logger = structlog.get_logger()

TOKEN_LIMIT_ERROR_PATTERNS = (
    # Anthropic
    "prompt is too long",
    "context window",
    "context length",
    "max tokens",
    "max_tokens",
    "maximum context",
    "token limit",
    "tokens exceed",
    "exceeds the maximum",
    "too many tokens",
    # Other providers behind the same gateway
    "context limit",
    "input too long",
    "request too large",
)

_TOKEN_COUNT_RE = re.compile(r"\d+\s*tokens", re.IGNORECASE)

GENERIC_DESCRIPTION = (
    "Request exceeded the model's context window. Conversation will be compacted."
)


def _body_message(body: Any) -> str:
    """Pull the nested ``error.message`` out of an API error body."""
    if not isinstance(body, dict):
        return ""
    error = body.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or "")
    return str(body.get("message") or "")


def _error_message(error: BaseException) -> str:
    if isinstance(error, anthropic.APIError):
        parts = [error.message or "", _body_message(error.body)]
        return " ".join(p for p in parts if p)
    return str(error)


def _status_code(error: BaseException) -> int | None:
    if isinstance(error, anthropic.APIStatusError):
        return error.status_code
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def message_contains_token_limit_pattern(message: str) -> bool:
    lower = message.lower()
    return any(pattern in lower for pattern in TOKEN_LIMIT_ERROR_PATTERNS)


def is_token_limit_error(error: Any) -> bool:
    """Check whether a failure means the prompt exceeded the context window.

    Anything that is not an exception (None, strings, numbers, plain dicts)
    is never classified as an overflow.
    """
    if not isinstance(error, BaseException):
        return False

    matched = message_contains_token_limit_pattern(_error_message(error))
    if matched:
        logger.debug(
            "Token limit error detected",
            error_type=type(error).__name__,
            status_code=_status_code(error),
        )
    return matched


def get_token_limit_error_description(error: Any) -> str | None:
    """Human-readable description of an overflow error, or None."""
    if not is_token_limit_error(error):
        return None

    match = _TOKEN_COUNT_RE.search(_error_message(error))
    if match:
        return f"Request exceeded token limit ({match.group(0)}). Conversation will be compacted."
    return GENERIC_DESCRIPTION
