"""
Run script for starting the voice support server.

Starts the FastAPI application with uvicorn using WebSocket settings suited
to streaming call audio.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
"""

import argparse
import sys

import uvicorn

from voice_support.config import settings
from voice_support.config.constants import WS_MAX_SIZE, WS_PING_INTERVAL
from voice_support.config.logging_config import configure_logging


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Start the voice support server")
    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help="Port to run the server on (default: 8000 or PORT env var)",
    )
    parser.add_argument(
        "--host",
        default=settings.HOST,
        help="Host to bind the server to (default: 0.0.0.0 or HOST env var)",
    )
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for starting the server."""
    args = parse_args(argv)
    logger = configure_logging(args.log_level)

    # Speech sessions cannot be opened without an API key
    if not settings.OPENAI_API_KEY:
        logger.error("OPENAI_API_KEY environment variable not set")
        print("Error: OPENAI_API_KEY environment variable is required")
        sys.exit(1)

    logger.info(f"Starting server on http://{args.host}:{args.port}")
    logger.info(f"Log level: {args.log_level}")

    uvicorn.run(
        "voice_support.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        http="h11",
        ws_ping_interval=WS_PING_INTERVAL,
        ws_max_size=WS_MAX_SIZE,
        access_log=False,
    )


if __name__ == "__main__":
    main()
