"""
Structured Logging Utilities

Configures structlog for the RBAC core and exposes ``get_logger`` for modules.
Development runs render to the console, every other environment emits JSON
lines. Flask request context (request id, user id, endpoint) is merged into
each event when a request is active.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from flask import g, has_request_context, request


def _add_flask_context(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add Flask request context to log entries."""
    if has_request_context():
        event_dict.setdefault('request_id', getattr(g, 'request_id', None))
        event_dict.setdefault('user_id', getattr(g, 'user_id', None))
        event_dict.setdefault('endpoint', request.endpoint)
        event_dict.setdefault('method', request.method)
    return event_dict


def configure_logging(level: str = 'INFO', json_output: bool = True) -> None:
    """
    Configure structlog and the stdlib root handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_output: Emit JSON lines instead of the coloured console renderer
    """
    log_level = getattr(logging, str(level).upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_flask_context,
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )

    # Flask and driver loggers go through the stdlib
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        stream=sys.stdout,
    )
    logging.getLogger().setLevel(log_level)


def get_logger(name: Optional[str] = None, **initial_values: Any):
    """
    Return a structlog logger bound to ``name``.

    Args:
        name: Logger name, normally ``__name__``
        **initial_values: Key/value pairs bound to every event

    Returns:
        structlog BoundLogger
    """
    if name:
        initial_values.setdefault('logger_name', name)
    # Stays a lazy proxy so module-level loggers pick up configure_logging
    return structlog.get_logger(**initial_values)


__all__ = ['configure_logging', 'get_logger']
