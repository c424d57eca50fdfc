"""
WebSocket protocol: inbound envelope validation and outbound envelopes.

Client -> server::

    {"type": "query", "payload": {"content": "...", "sessionId": "...", "history": [...]}}
    {"type": "cancel", "payload": {"sessionId": "..."}}

Server -> client envelopes are built by ``AgentSession``; ``error_message``
covers transport-level errors that happen before a session is known.
"""

import json
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

CLIENT_MESSAGE_TYPES = ("query", "cancel")


class ProtocolError(Exception):
    """An inbound message that cannot be handled."""


class QueryPayload(BaseModel):
    """Payload of a query message."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    content: str
    session_id: str | None = Field(default=None, alias="sessionId")
    history: list[dict[str, Any]] | None = None


class CancelPayload(BaseModel):
    """Payload of a cancel message."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    session_id: str | None = Field(default=None, alias="sessionId")


class QueryMessage(BaseModel):
    type: Literal["query"]
    payload: QueryPayload


class CancelMessage(BaseModel):
    type: Literal["cancel"]
    payload: CancelPayload = Field(default_factory=CancelPayload)


ClientMessage = Union[QueryMessage, CancelMessage]


def parse_client_message(raw: str | bytes) -> ClientMessage:
    """Parse and validate a raw inbound message.

    Raises:
        ProtocolError: with a client-facing message describing the problem
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Invalid message structure: expected object")

    message_type = data.get("type")
    if not isinstance(message_type, str):
        raise ProtocolError("Invalid message structure: missing type field")

    if message_type not in CLIENT_MESSAGE_TYPES:
        raise ProtocolError(f"Unknown message type: {message_type}")

    model = QueryMessage if message_type == "query" else CancelMessage
    try:
        return model.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        raise ProtocolError(f"Invalid {message_type} message: {location}: {error['msg']}") from e


def error_message(message: str, session_id: str | None = None) -> dict[str, Any]:
    """Build an error envelope."""
    payload: dict[str, Any] = {"message": message}
    if session_id is not None:
        payload["sessionId"] = session_id
    return {"type": "error", "payload": payload}
