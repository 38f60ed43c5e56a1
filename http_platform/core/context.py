"""Request context management utilities for trace IDs."""

import uuid
from contextvars import ContextVar

# Context variable for storing the trace ID across async boundaries
_trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)


class RequestContext:
    """Manages request context using contextvars for async-safe storage.

    The trace ID set by the trace middleware is readable from any code
    running inside the request, including background helpers that have no
    access to the request object.
    """

    @staticmethod
    def set_trace_id(trace_id: str) -> None:
        """Set the trace ID for the current context.

        Args:
            trace_id: The trace ID to store in the context.
        """
        _trace_id_var.set(trace_id)

    @staticmethod
    def get_trace_id() -> str | None:
        """Get the trace ID from the current context.

        Returns:
            str | None: The trace ID if set, None otherwise.
        """
        return _trace_id_var.get()

    @staticmethod
    def clear() -> None:
        """Clear all context variables."""
        _trace_id_var.set(None)


def generate_trace_id() -> str:
    """Generate a unique trace ID for request tracking.

    Returns:
        str: A string representation of a UUID4.

    Examples:
        >>> trace_id = generate_trace_id()
        >>> len(trace_id)
        36
    """
    return str(uuid.uuid4())
