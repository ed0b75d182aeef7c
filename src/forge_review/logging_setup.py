"""Structured logging configuration shared by the CLI and the webhook server."""

import logging
import sys

import structlog


def configure_logging(debug: bool = False, json_output: bool = True) -> None:
    """
    Configure structlog for the process.

    Logs go to stderr so that stdout stays free for command output.
    """
    level = logging.DEBUG if debug else logging.INFO
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
