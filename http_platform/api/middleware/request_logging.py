"""HTTP request logging with performance monitoring.

This module implements the request logging middleware, the innermost layer
of the platform chain. It writes one structured entry per request once the
handler has finished.

Features:
- **Structured logging**: Consistent fields for every request
- **Final status**: Reports the status the client actually receives, even
  when the error handler replaces the response
- **Performance tracking**: Human-readable and integer millisecond durations,
  with optional slow request warnings
- **Client identification**: Address as seen after proxy header handling
- **Exclusion patterns**: Configurable path exclusion (e.g., health checks)
- **Error handling**: Logs failures while preserving exception propagation
"""

import time
from collections.abc import Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from http_platform.api.classification import classify_error
from http_platform.api.constants import (
    HTTP_400_BAD_REQUEST,
    HTTP_500_INTERNAL_SERVER_ERROR,
)
from http_platform.api.middleware.error_handler import get_errors
from http_platform.api.middleware.trace import get_trace_id
from http_platform.api.utils.requests import client_address
from http_platform.core.config import Logger
from http_platform.core.constants import MILLISECONDS_PER_SECOND
from http_platform.core.types import LogContext


def format_duration(seconds: float) -> str:
    """Format a duration for humans, e.g. "850µs", "12.345ms" or "1.5s"."""
    if seconds < 1 / MILLISECONDS_PER_SECOND:
        return f"{seconds * 1_000_000:.0f}µs"
    if seconds < 1:
        return f"{seconds * MILLISECONDS_PER_SECOND:.3f}ms"
    return f"{seconds:.3f}s"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests and their outcome.

    Args:
        app: The ASGI application.
        logger: Logger receiving request entries.
        excluded_paths: Paths that are never logged.
        slow_request_threshold_ms: Warn about requests slower than this.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        logger: Logger,
        excluded_paths: Iterable[str] = (),
        slow_request_threshold_ms: int | None = None,
    ) -> None:
        super().__init__(app)
        self.logger = logger
        self.excluded_paths = set(excluded_paths)
        self.slow_request_threshold_ms = slow_request_threshold_ms

    def _log(
        self,
        request: Request,
        status: int,
        elapsed: float,
        errors: list[BaseException],
    ) -> None:
        duration_ms = int(elapsed * MILLISECONDS_PER_SECOND)
        fields: LogContext = {
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration": format_duration(elapsed),
            "duration_ms": duration_ms,
            "client_ip": client_address(request),
        }
        if query := request.url.query:
            fields["query"] = query
        if trace_id := get_trace_id(request):
            fields["trace_id"] = trace_id
        if errors:
            fields["errors"] = "; ".join(str(error) for error in errors)

        if status >= HTTP_500_INTERNAL_SERVER_ERROR:
            self.logger.error("Request completed with server error", **fields)
        elif status >= HTTP_400_BAD_REQUEST:
            self.logger.warning("Request completed with client error", **fields)
        else:
            self.logger.info("Request completed", **fields)

        threshold = self.slow_request_threshold_ms
        if threshold is not None and duration_ms > threshold:
            self.logger.warning(
                "Slow request detected",
                method=request.method,
                path=request.url.path,
                duration_ms=duration_ms,
                threshold_ms=threshold,
            )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request and log its outcome.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: The response from the application.

        Raises:
            Exception: Any exception raised by the application is re-raised
                after logging.
        """
        if request.url.path in self.excluded_paths:
            return await call_next(request)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = time.perf_counter() - start_time
            status = classify_error(exc).status
            self._log(request, status, elapsed, [*get_errors(request), exc])
            raise

        elapsed = time.perf_counter() - start_time
        errors = get_errors(request)
        # The error handler answers with the first attached error
        status = (
            classify_error(errors[0]).status if errors else response.status_code
        )
        self._log(request, status, elapsed, errors)
        return response
