"""
Command-line interface for Insight Agent.
"""

import argparse
import sys

import structlog
import uvicorn

from .config import get_settings

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="insight-agent",
        description="Insight Agent - ask questions about your telemetry snapshot",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the agent server")
    serve_parser.add_argument("--host", default=None, help="Host to bind to (default: from settings)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind to (default: from settings)")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "serve":
        settings = get_settings()
        run_server(args.host or settings.host, args.port or settings.port, args.reload)
    elif args.command == "config":
        if not show_config(args.check):
            sys.exit(1)
    else:
        parser.print_help()


def run_server(host: str, port: int, reload: bool) -> None:
    """Run the FastAPI server."""
    settings = get_settings()
    logger.info("Starting Insight Agent server", host=host, port=port, ws_path=settings.ws_path)

    uvicorn.run(
        "insight_agent.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
        log_level=settings.log_level.lower(),
    )


def show_config(check: bool) -> bool:
    """Show current configuration. Returns False if the check finds errors."""
    settings = get_settings()

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print("\n=== Insight Agent Configuration ===\n")

    print("Server:")
    print(f"  Host: {settings.host}")
    print(f"  Port: {settings.port}")
    print(f"  WebSocket Path: {settings.ws_path}")
    print(f"  Debug: {settings.debug}")

    print("\nModel:")
    print(f"  Model: {settings.default_model}")
    print(f"  Anthropic Key: {mask(settings.anthropic_api_key)}")
    print(f"  Base URL: {settings.anthropic_base_url or '(default)'}")
    print(f"  Max Tokens: {settings.max_tokens}")

    print("\nAgent:")
    print(f"  Max Steps: {settings.max_steps}")
    print(f"  Compaction: keep first {settings.compaction_keep_first}, last {settings.compaction_keep_last}")
    print(f"  Snapshot: {settings.snapshot_path}")
    print(f"  Command Timeout: {settings.command_timeout_seconds}s")

    if not check:
        return True

    print("\n=== Configuration Check ===\n")
    errors = []
    warnings = []

    if not settings.anthropic_api_key:
        errors.append("ANTHROPIC_API_KEY is required")

    if not settings.snapshot_path.exists():
        warnings.append(f"Snapshot directory {settings.snapshot_path} does not exist yet")

    if settings.host not in ("127.0.0.1", "localhost", "::1"):
        warnings.append(f"Server binds to {settings.host}; the agent can run shell commands")

    if errors:
        print("Errors:")
        for e in errors:
            print(f"   - {e}")

    if warnings:
        print("Warnings:")
        for w in warnings:
            print(f"   - {w}")

    if not errors and not warnings:
        print("Configuration looks good!")
    elif not errors:
        print("\nConfiguration is valid (with warnings)")
    else:
        print("\nConfiguration has errors - fix them before starting")

    return not errors


if __name__ == "__main__":
    main()
