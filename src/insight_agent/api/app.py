"""
FastAPI application factory.

Serves the agent over a WebSocket endpoint. Manages the lifecycle of:
- The model backend and the execution mode
- The session manager (per-connection agent sessions)
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..agent import CompactionConfig, SessionManager
from ..config import Settings, get_settings
from ..llm import BaseLLM, create_llm
from ..modes import ExecutionMode, LocalMode
from .protocol import (
    CancelMessage,
    ProtocolError,
    QueryMessage,
    error_message,
    parse_client_message,
)

logger = structlog.get_logger()


def _new_session_id() -> str:
    return f"session-{uuid.uuid4()}"


async def _write_outbound(websocket: WebSocket, queue: asyncio.Queue) -> None:
    """Drain a connection's outbound queue onto the socket."""
    while True:
        message = await queue.get()
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.warning(
                "Dropping outbound messages, connection closed",
                message_type=message.get("type"),
                error=str(e),
            )
            return


def create_app(
    settings: Settings | None = None,
    llm: BaseLLM | None = None,
    mode: ExecutionMode | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``llm`` and ``mode`` default to the Anthropic backend and a local
    execution mode built from settings.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        app.state.mode = mode or LocalMode(
            settings.snapshot_path,
            timeout_seconds=settings.command_timeout_seconds,
            max_output_chars=settings.max_output_chars,
        )
        app.state.llm = llm or create_llm(settings=settings)
        app.state.sessions = SessionManager(
            mode=app.state.mode,
            llm=app.state.llm,
            max_steps=settings.max_steps,
            compaction=CompactionConfig(
                keep_first_n=settings.compaction_keep_first,
                keep_last_n=settings.compaction_keep_last,
            ),
        )
        app.state.query_tasks = set()
        logger.info(
            "Agent server ready",
            provider=app.state.llm.provider_name,
            model=app.state.llm.model,
            snapshot_root=app.state.mode.get_snapshot_root(),
            ws_path=settings.ws_path,
        )

        yield

        # Shutdown
        app.state.sessions.cleanup()
        await app.state.mode.cleanup()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        description="Conversational agent over a telemetry snapshot",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #
    @app.get("/api/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "sessions": request.app.state.sessions.session_count,
            "llm_configured": bool(settings.anthropic_api_key) or llm is not None,
        }

    # ------------------------------------------------------------------ #
    # Agent WebSocket
    # ------------------------------------------------------------------ #
    @app.websocket(settings.ws_path)
    async def agent_socket(websocket: WebSocket):
        """One client connection: queries in, session notifications out."""
        await websocket.accept()

        sessions: SessionManager = websocket.app.state.sessions
        query_tasks: set[asyncio.Task] = websocket.app.state.query_tasks
        outbound: asyncio.Queue = asyncio.Queue()
        writer = asyncio.create_task(_write_outbound(websocket, outbound))
        logger.info("Client connected", client=str(websocket.client))

        def handle(message: QueryMessage | CancelMessage) -> None:
            if isinstance(message, QueryMessage):
                session_id = message.payload.session_id
                if not session_id:
                    bound = sessions.get_session_for_connection(websocket)
                    session_id = bound.id if bound is not None else _new_session_id()
                session = sessions.get_or_create_session(websocket, session_id, outbound.put_nowait)
                task = asyncio.create_task(
                    session.execute_query(message.payload.content, message.payload.history)
                )
                query_tasks.add(task)
                task.add_done_callback(query_tasks.discard)
                return

            if message.payload.session_id:
                session = sessions.get_session(message.payload.session_id)
            else:
                session = sessions.get_session_for_connection(websocket)

            if session is None:
                logger.debug("Cancel for unknown session", session_id=message.payload.session_id)
                return
            session.cancel()

        try:
            while True:
                event: dict[str, Any] = await websocket.receive()
                if event["type"] == "websocket.disconnect":
                    break

                raw = event.get("text")
                if raw is None:
                    raw = event.get("bytes") or b""

                try:
                    message = parse_client_message(raw)
                except ProtocolError as e:
                    logger.warning("Rejected client message", error=str(e))
                    outbound.put_nowait(error_message(str(e)))
                    continue

                handle(message)
        finally:
            sessions.remove_session(websocket)
            writer.cancel()
            logger.info("Client disconnected", client=str(websocket.client))

    return app
