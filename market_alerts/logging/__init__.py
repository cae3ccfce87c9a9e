"""Structured logging: component loggers, scoped context, and formatters."""

import logging
from typing import Optional

from .context import clear_log_context, get_log_context, log_context


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its component field with per-call extra."""

    def process(self, msg, kwargs):
        # Call-site extra wins over the adapter's defaults
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, component: Optional[str] = None):
    """Get a logger that stamps a component name on every record.

    Args:
        name: Logger name (typically __name__)
        component: Optional component identifier (events, smtp, pipeline, ...)

    Returns:
        Logger or ComponentLoggerAdapter instance

    Example:
        >>> logger = get_logger(__name__, component="smtp")
        >>> logger.info("Connected", extra={"event": "smtp.connected"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger


__all__ = [
    "ComponentLoggerAdapter",
    "clear_log_context",
    "get_log_context",
    "get_logger",
    "log_context",
]
