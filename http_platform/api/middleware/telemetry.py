"""Per-request tracing spans.

The middleware opens one server span per request on the platform's own
tracer, continuing any W3C trace context sent by the caller. It only
observes: responses are never altered.
"""

from typing import Final

from opentelemetry.trace import Span, SpanKind, Status, StatusCode, Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from http_platform.api.classification import classify_error
from http_platform.api.constants import HTTP_500_INTERNAL_SERVER_ERROR
from http_platform.api.middleware.error_handler import get_errors
from http_platform.api.middleware.trace import get_trace_id

# Span attribute names
METHOD_ATTR: Final[str] = "http.request.method"
ROUTE_ATTR: Final[str] = "http.route"
STATUS_ATTR: Final[str] = "http.response.status_code"
REQUEST_SIZE_ATTR: Final[str] = "http.request.body.size"
RESPONSE_SIZE_ATTR: Final[str] = "http.response.body.size"
TRACE_ID_ATTR: Final[str] = "trace_id"


def _route_template(request: Request) -> str:
    """Return the matched route template, or the raw path when unmatched."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _content_length(headers: Headers | MutableHeaders) -> int | None:
    value = headers.get("content-length")
    return int(value) if value and value.isdigit() else None


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Middleware recording one server span per request.

    Args:
        app: The ASGI application.
        tracer: Tracer from the platform's TelemetryManager.
    """

    def __init__(self, app: ASGIApp, *, tracer: Tracer) -> None:
        super().__init__(app)
        self.tracer = tracer
        self.propagator = TraceContextTextMapPropagator()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request inside a server span.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: The unchanged response.
        """
        parent = self.propagator.extract(carrier=dict(request.headers))
        with self.tracer.start_as_current_span(
            f"{request.method} {request.url.path}",
            context=parent,
            kind=SpanKind.SERVER,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            span.set_attribute(METHOD_ATTR, request.method)
            if trace_id := get_trace_id(request):
                span.set_attribute(TRACE_ID_ATTR, trace_id)
            if (request_size := _content_length(request.headers)) is not None:
                span.set_attribute(REQUEST_SIZE_ATTR, request_size)

            try:
                response = await call_next(request)
            except Exception as exc:
                # Status follows the classified error, not the raise itself
                span.record_exception(exc)
                status = classify_error(exc).status
                self._finish(span, request, status)
                raise

            errors = get_errors(request)
            status = (
                classify_error(errors[0]).status if errors else response.status_code
            )
            if (response_size := _content_length(response.headers)) is not None:
                span.set_attribute(RESPONSE_SIZE_ATTR, response_size)
            self._finish(span, request, status)
            return response

    @staticmethod
    def _finish(span: Span, request: Request, status: int) -> None:
        route = _route_template(request)
        span.update_name(f"{request.method} {route}")
        span.set_attribute(ROUTE_ATTR, route)
        span.set_attribute(STATUS_ATTR, status)
        if status >= HTTP_500_INTERNAL_SERVER_ERROR:
            span.set_status(Status(StatusCode.ERROR))
