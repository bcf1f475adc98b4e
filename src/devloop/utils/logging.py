"""
Logging utilities for devloop
"""

import sys
import logging
from typing import Optional

import structlog


def setup_logging(
    level: str = "INFO",
    json_logs: bool = False,
    session_mode: Optional[str] = None
) -> None:
    """
    Setup structured logging for devloop.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Render JSON lines instead of the console format
        session_mode: Optional execution mode ("local" or "remote") to include in logs
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="ISO", utc=True),
            renderer
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper())
    )

    if session_mode:
        bind_session_mode(session_mode)


def bind_session_mode(session_mode: str) -> None:
    """Attach the execution mode to every subsequent log line"""
    structlog.contextvars.bind_contextvars(session_mode=session_mode)


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name

    Returns:
        Structured logger
    """
    return structlog.get_logger(name)
