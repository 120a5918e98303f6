"""
Stratyx Web Server Entry Point

Provides the `stratyx-web` command to start the FastAPI server.

Usage:
    stratyx-web                    # Start on default port 8080
    stratyx-web --port 9000        # Start on custom port
    stratyx-web --host 127.0.0.1   # Bind to localhost only
    stratyx-web --reload           # Enable auto-reload for development
"""

import argparse
import logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Stratyx real-time coaching analytics - Web Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    stratyx-web                     Start server on http://0.0.0.0:8080
    stratyx-web --port 9000         Start on port 9000
    stratyx-web --host 127.0.0.1    Bind to localhost only
    stratyx-web --reload            Enable auto-reload (development)
        """,
    )
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Port to bind to (default: 8080)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: info)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Start the Stratyx web server.

    One worker only: each process holds its own in-memory match session.
    """
    import uvicorn

    args = build_parser().parse_args(argv)

    logger.info("Starting Stratyx web server on http://%s:%s", args.host, args.port)
    logger.info("Press Ctrl+C to stop")

    uvicorn.run(
        "stratyx.api:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
