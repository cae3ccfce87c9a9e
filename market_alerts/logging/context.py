"""Context propagation for structured logging.

Fields pushed here (run_id, user_id, recipient, ...) are stamped onto every log
record emitted inside the scope. Context lives in a ContextVar, so a scheduled
run on the scheduler thread never leaks fields into the main thread.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the active logging context."""
    return LogContextVar.get().copy()


def push_log_context(**kwargs) -> Token:
    """Merge fields into the logging context.

    Args:
        **kwargs: Fields to add; None values are ignored

    Returns:
        Token for pop_log_context()

    Example:
        >>> token = push_log_context(run_id="3f2a9c", user_id="b1e0...")
        >>> pop_log_context(token)
    """
    fields = {key: value for key, value in kwargs.items() if value is not None}
    return LogContextVar.set({**LogContextVar.get(), **fields})


def pop_log_context(token: Token) -> None:
    """Restore the context that was active before push_log_context()."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Drop every context field. Used by tests."""
    LogContextVar.set({})


class log_context:
    """Context manager for scoped logging fields.

    Example:
        >>> with log_context(run_id="3f2a9c"):
        ...     with log_context(recipient="a@example.com"):
        ...         logger.info("Digest sent")  # carries run_id and recipient
    """

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
            self.token = None
        return False
