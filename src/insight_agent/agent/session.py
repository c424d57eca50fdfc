"""
Session management for agent conversations.

An ``AgentSession`` owns one client's conversation: its in-memory history
and the lifecycle of the query currently running against the backend.
At most one query runs per session; a second one is rejected with a
"busy" error while the first keeps going.

A ``SessionManager`` multiplexes sessions by id and tracks which
connection is bound to which session. History lives in memory only and is
dropped when a session is removed.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Hashable

import structlog

from ..llm.base import AgentStream, BaseLLM, StepEvent
from ..modes.base import ExecutionMode
from ..tools.registry import create_agent_tools
from .compaction import CompactionConfig, compact_conversation
from .messages import (
    ConversationMessage,
    create_assistant_message,
    create_user_message,
    from_ui_messages,
)
from .prompts import build_system_prompt
from .token_errors import get_token_limit_error_description, is_token_limit_error
from .wire import to_model_messages, truncate_report_tool_calls

logger = structlog.get_logger()

ServerMessage = dict[str, Any]
Sink = Callable[[ServerMessage], None]
ReportCallback = Callable[[Any, str | None], None]

DEFAULT_MAX_STEPS = 25
BUSY_ERROR = "A query is already being executed"

_EXHAUSTED = object()


class SessionState(str, Enum):
    """Lifecycle state of an agent session."""
    IDLE = "idle"
    EXECUTING = "executing"


class CancellationHandle:
    """Cooperative cancellation flag for one query execution."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


async def _next_item(iterator: Any) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _EXHAUSTED


class AgentSession:
    """Manages a single client's agent interaction.

    - Runs queries against the backend and streams text, tool calls and
      tool results to the client as they happen
    - Keeps the conversation history for multi-turn context
    - Compacts the history and retries once when the backend rejects a
      request for exceeding its context window
    - Supports cancellation of the running query
    """

    def __init__(
        self,
        session_id: str,
        mode: ExecutionMode,
        llm: BaseLLM,
        sink: Sink,
        max_steps: int = DEFAULT_MAX_STEPS,
        compaction: CompactionConfig | None = None,
        system_prompt: str | None = None,
    ):
        self._session_id = session_id
        self.mode = mode
        self.llm = llm
        self.max_steps = max_steps
        self.compaction = compaction or CompactionConfig()
        self.system_prompt = system_prompt
        self._sink = sink
        self._state = SessionState.IDLE
        self._history: list[ConversationMessage] = []
        self._cancellation: CancellationHandle | None = None

    @property
    def id(self) -> str:
        return self._session_id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def executing(self) -> bool:
        return self._state is SessionState.EXECUTING

    @property
    def history(self) -> list[ConversationMessage]:
        """A copy of the conversation history."""
        return list(self._history)

    def bind_sink(self, sink: Sink) -> None:
        """Deliver this session's notifications to a new observer."""
        self._sink = sink

    # ------------------------------------------------------------------ #
    # Outbound notifications
    # ------------------------------------------------------------------ #

    def _send(self, message: ServerMessage, handle: CancellationHandle | None = None) -> None:
        if handle is not None and handle.cancelled:
            return
        try:
            self._sink(message)
        except Exception as e:
            logger.error(
                "Failed to deliver message",
                session_id=self.id,
                message_type=message.get("type"),
                error=str(e),
            )

    def _send_text(self, content: str, handle: CancellationHandle) -> None:
        self._send({"type": "text", "payload": {"content": content, "sessionId": self.id}}, handle)

    def _send_tool_call(self, tool_name: str, args: Any, handle: CancellationHandle) -> None:
        self._send({
            "type": "tool_call",
            "payload": {"toolName": tool_name, "args": args, "sessionId": self.id},
        }, handle)

    def _send_tool_result(self, tool_name: str, result: Any, handle: CancellationHandle) -> None:
        self._send({
            "type": "tool_result",
            "payload": {"toolName": tool_name, "result": result, "sessionId": self.id},
        }, handle)

    def _send_context_compacted(self, description: str, handle: CancellationHandle) -> None:
        self._send({
            "type": "context_compacted",
            "payload": {"description": description, "sessionId": self.id},
        }, handle)

    def _send_error(self, message: str, handle: CancellationHandle | None = None) -> None:
        self._send({"type": "error", "payload": {"message": message, "sessionId": self.id}}, handle)

    def _send_done(self, handle: CancellationHandle | None = None) -> None:
        self._send({"type": "done", "payload": {"sessionId": self.id}}, handle)

    def send_report(self, content: Any, title: str | None = None) -> None:
        """Relay a report to the client, independent of the text stream."""
        logger.info("Report generated", session_id=self.id, title=title)
        self._send({"type": "report", "payload": {"content": content, "sessionId": self.id}})

    def get_report_callback(self) -> ReportCallback:
        """Callback for the tool layer to push reports to this session's client."""
        return self.send_report

    def _report_callback_for(self, handle: CancellationHandle) -> ReportCallback:
        def report(content: Any, title: str | None = None) -> None:
            if not handle.cancelled:
                self.send_report(content, title)
        return report

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def execute_query(self, query: str, history: list[Any] | None = None) -> None:
        """Execute a query and stream the response to the client.

        The user message is appended to history up front; the assistant's
        text is appended once the response completes. On a context-window
        overflow the prior history is compacted and the query is retried
        once.

        Args:
            query: The user's query
            history: Optional client-managed history (UI JSON format). When
                given it is used instead of the server-side history for this
                query, and the server-side history is left untouched.
        """
        if self.executing:
            logger.info("Query rejected, session busy", session_id=self.id)
            self._send_error(BUSY_ERROR)
            return

        handle = CancellationHandle()
        self._cancellation = handle
        self._state = SessionState.EXECUTING

        record = not (isinstance(history, list) and history)
        client_history = [] if record else from_ui_messages(history)
        prior = list(self._history) if record else client_history
        user_message = create_user_message(query)
        if record:
            self._history.append(user_message)

        logger.info(
            "Executing query",
            session_id=self.id,
            history_length=len(prior),
            client_history=not record,
        )

        try:
            error = await self._attempt(query, prior, handle, record)
            failure_prefix = "Query failed"

            if error is not None and not handle.cancelled and is_token_limit_error(error):
                description = get_token_limit_error_description(error) or ""
                original_length = len(prior)
                prior = compact_conversation(prior, self.compaction)
                if record:
                    self._history = prior + [user_message]

                logger.warning(
                    "Context window exceeded, retrying with compacted history",
                    session_id=self.id,
                    original=original_length,
                    compacted=len(prior),
                )
                self._send_context_compacted(description, handle)

                error = await self._attempt(query, prior, handle, record)
                failure_prefix = "Query failed after compaction"

            if handle.cancelled:
                return

            if error is not None:
                logger.error("Query failed", session_id=self.id, error=str(error))
                self._send_error(f"{failure_prefix}: {error}", handle)

            self._send_done(handle)
        finally:
            if self._cancellation is handle:
                self._cancellation = None
                self._state = SessionState.IDLE

    def _invoke(
        self,
        query: str,
        prior: list[ConversationMessage],
        handle: CancellationHandle,
    ) -> AgentStream:
        tools = create_agent_tools(self.mode, report_callback=self._report_callback_for(handle))
        system_prompt = self.system_prompt or build_system_prompt(self.mode.get_snapshot_root())

        if prior:
            messages = truncate_report_tool_calls(
                to_model_messages(prior + [create_user_message(query)])
            )
            return self.llm.stream(
                messages=messages,
                tools=tools,
                max_steps=self.max_steps,
                system_prompt=system_prompt,
            )

        return self.llm.stream(
            prompt=query,
            tools=tools,
            max_steps=self.max_steps,
            system_prompt=system_prompt,
        )

    async def _attempt(
        self,
        query: str,
        prior: list[ConversationMessage],
        handle: CancellationHandle,
        record: bool,
    ) -> Exception | None:
        """Run one backend invocation. Returns the failure, or None."""
        buffer: list[str] = []

        try:
            stream = self._invoke(query, prior, handle)
            await self._relay(stream, handle, buffer)

            if not handle.cancelled:
                response = await stream.response
                logger.info(
                    "Query completed",
                    session_id=self.id,
                    steps=response.steps,
                    input_tokens=response.input_tokens,
                    output_tokens=response.output_tokens,
                )
        except Exception as e:
            if not handle.cancelled:
                logger.warning("Backend invocation failed", session_id=self.id, error=str(e))
            return e

        if handle.cancelled:
            return None

        text = "".join(buffer)
        if text and record:
            self._history.append(create_assistant_message(text))
        return None

    async def _relay(
        self,
        stream: AgentStream,
        handle: CancellationHandle,
        buffer: list[str],
    ) -> None:
        """Relay the run's events in the order the backend produced them.

        Stops as soon as the handle is cancelled.
        """
        events = stream.events.__aiter__()
        cancelled = asyncio.ensure_future(handle.wait())
        next_event: asyncio.Future | None = None

        try:
            while True:
                next_event = asyncio.ensure_future(_next_item(events))
                await asyncio.wait({next_event, cancelled}, return_when=asyncio.FIRST_COMPLETED)

                if handle.cancelled:
                    return

                item = next_event.result()
                if item is _EXHAUSTED:
                    return

                if isinstance(item, StepEvent):
                    self._relay_step(item, handle)
                else:
                    buffer.append(item)
                    self._send_text(item, handle)
        finally:
            cancelled.cancel()
            if next_event is not None:
                if not next_event.done():
                    next_event.cancel()
                elif not next_event.cancelled():
                    # Retrieve a failure nobody is left to read
                    next_event.exception()

    def _relay_step(self, step: StepEvent, handle: CancellationHandle) -> None:
        for call in step.tool_calls:
            if handle.cancelled:
                return
            self._send_tool_call(call.name, call.arguments if call.arguments is not None else {}, handle)
        for outcome in step.tool_results:
            if handle.cancelled:
                return
            self._send_tool_result(outcome.name, outcome.output, handle)

    def cancel(self) -> None:
        """Cancel the running query.

        Returns the session to idle and signals ``done`` right away. The
        backend call is not aborted; whatever it still produces is dropped.
        """
        handle = self._cancellation
        if handle is None or handle.cancelled:
            return

        handle.cancel()
        self._cancellation = None
        self._state = SessionState.IDLE
        logger.info("Query cancelled", session_id=self.id)
        self._send_done()

    def clear_history(self) -> None:
        """Clear the conversation history."""
        self._history = []

    def cleanup(self) -> None:
        """Stop any running query and drop the history."""
        if self._cancellation is not None:
            self._cancellation.cancel()
            self._cancellation = None
        self._state = SessionState.IDLE
        self._history = []


class SessionManager:
    """Manages agent sessions, one per session id, bound to connections.

    Both maps are only mutated from the event loop thread, through
    ``get_or_create_session``, ``remove_session`` and ``cleanup``.
    """

    def __init__(
        self,
        mode: ExecutionMode,
        llm: BaseLLM,
        max_steps: int = DEFAULT_MAX_STEPS,
        compaction: CompactionConfig | None = None,
        system_prompt: str | None = None,
    ):
        self.mode = mode
        self.llm = llm
        self.max_steps = max_steps
        self.compaction = compaction
        self.system_prompt = system_prompt
        self._sessions: dict[str, AgentSession] = {}
        self._connections: dict[Hashable, str] = {}

    def get_or_create_session(
        self,
        connection: Hashable,
        session_id: str,
        sink: Sink,
    ) -> AgentSession:
        """Get the session for an id, creating it on first contact.

        The connection is always (re)bound to the session, and the session's
        notifications are delivered to this connection's sink from now on.
        A session the connection leaves behind is destroyed once nothing is
        bound to it.
        """
        previous_id = self._connections.get(connection)
        session = self._sessions.get(session_id)

        if session is None:
            session = AgentSession(
                session_id=session_id,
                mode=self.mode,
                llm=self.llm,
                sink=sink,
                max_steps=self.max_steps,
                compaction=self.compaction,
                system_prompt=self.system_prompt,
            )
            self._sessions[session_id] = session
            logger.info("Created new session", session_id=session_id)
        else:
            session.bind_sink(sink)

        self._connections[connection] = session_id

        if (
            previous_id is not None
            and previous_id != session_id
            and previous_id not in self._connections.values()
        ):
            self._destroy(previous_id)

        return session

    def get_session(self, session_id: str) -> AgentSession | None:
        return self._sessions.get(session_id)

    def get_session_for_connection(self, connection: Hashable) -> AgentSession | None:
        session_id = self._connections.get(connection)
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def remove_session(self, connection: Hashable) -> None:
        """Destroy the session bound to a connection that went away."""
        session_id = self._connections.pop(connection, None)
        if session_id is not None:
            self._destroy(session_id)

    def _destroy(self, session_id: str) -> None:
        for other, bound_id in list(self._connections.items()):
            if bound_id == session_id:
                del self._connections[other]

        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.cleanup()
            logger.info("Session removed", session_id=session_id)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def cleanup(self) -> None:
        """Cancel and drop every session."""
        for session in self._sessions.values():
            session.cleanup()
        count = len(self._sessions)
        self._sessions.clear()
        self._connections.clear()
        logger.info("Sessions cleaned up", count=count)
