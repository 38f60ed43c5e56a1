"""Trace ID middleware for request correlation.

This module implements middleware that gives every request a trace ID,
enabling log correlation across the request lifecycle and across service
boundaries.

Key features:
- **Trace ID propagation**: Reuses the inbound X-Trace-Id header or
  generates a UUID4
- **Request state**: Stores the ID on ``request.state.trace_id``
- **Context variables**: Makes the ID readable anywhere in the request
- **Loguru integration**: Binds the ID to every log emitted while serving
- **Response headers**: Echoes the ID on every response
"""

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from http_platform.api.constants import TRACE_ID_HEADER, TRACE_ID_STATE_KEY
from http_platform.core.context import RequestContext, generate_trace_id


class TraceIDMiddleware(BaseHTTPMiddleware):
    """Middleware that assigns and propagates the request trace ID."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request with a trace ID.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: Response with the X-Trace-Id header.
        """
        # An empty header counts as missing
        trace_id = request.headers.get(TRACE_ID_HEADER) or generate_trace_id()

        setattr(request.state, TRACE_ID_STATE_KEY, trace_id)
        RequestContext.set_trace_id(trace_id)

        with logger.contextualize(trace_id=trace_id):
            response = await call_next(request)
            response.headers[TRACE_ID_HEADER] = trace_id
            return response


def get_trace_id(request: Request) -> str:
    """Return the request trace ID, or "" when none was assigned."""
    trace_id = getattr(request.state, TRACE_ID_STATE_KEY, None)
    return trace_id if isinstance(trace_id, str) else ""
