"""Error handling and recovery middleware.

This module turns every request failure into a consistent JSON error
response and a structured log entry. It is always installed, right after
the trace ID middleware.

Two kinds of failures are handled:
- **Raised exceptions** escaping the handler chain are recovered and
  classified. Non-``Exception`` raises are answered with a fixed 500 body.
- **Attached errors**: handlers may record an error with ``add_error``
  instead of raising. When the response starts, the first attached error
  replaces it; any further errors are dropped.

FastAPI's ``RequestValidationError`` is handled inside the router, so
``register_exception_handlers`` routes it through the same classification.
"""

import asyncio
import functools
import traceback
from collections.abc import Mapping
from typing import Any

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from http_platform.api.classification import (
    ErrorClassification,
    ErrorKind,
    classify_error,
)
from http_platform.api.constants import (
    ERRORS_STATE_KEY,
    HTTP_500_INTERNAL_SERVER_ERROR,
    PANIC_MESSAGE,
)
from http_platform.api.middleware.trace import get_trace_id
from http_platform.api.schemas.errors import ApiError
from http_platform.api.utils.requests import client_address
from http_platform.api.utils.responses import ErrorJSONResponse
from http_platform.core.config import Logger
from http_platform.core.types import LogContext

# Never recovered: these stop the task or the process
_PROPAGATED = (asyncio.CancelledError, KeyboardInterrupt, SystemExit, GeneratorExit)


def add_error(request: Request, exc: BaseException) -> None:
    """Attach an error to the request for the error handler to answer.

    Args:
        request: The current request.
        exc: The error to report.
    """
    errors: list[BaseException] | None = getattr(request.state, ERRORS_STATE_KEY, None)
    if errors is None:
        errors = []
        setattr(request.state, ERRORS_STATE_KEY, errors)
    errors.append(exc)


def get_errors(request: Request) -> list[BaseException]:
    """Return the errors attached to the request, oldest first."""
    errors: list[BaseException] | None = getattr(request.state, ERRORS_STATE_KEY, None)
    return list(errors) if errors else []


def build_log_fields(request: Request) -> LogContext:
    """Build the request fields shared by every error log entry."""
    fields: LogContext = {
        "client_ip": client_address(request),
        "method": request.method,
        "path": request.url.path,
    }
    if trace_id := get_trace_id(request):
        fields["trace_id"] = trace_id
    return fields


def log_classified_error(
    logger: Logger,
    request: Request,
    exc: BaseException,
    classification: ErrorClassification,
    *,
    raised: bool = False,
) -> None:
    """Log a classified error at error level for 5xx, warning otherwise.

    Raised errors also carry their stack trace; attached errors were never
    raised, so they have none.
    """
    fields = build_log_fields(request)
    fields["error"] = str(exc)
    fields.update(classification.log_fields)
    if raised and "stack_trace" not in fields:
        fields["stack_trace"] = "".join(traceback.format_exception(exc))
    fields["error_type"] = classification.kind.value
    fields["status"] = classification.status

    if classification.status >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("Server error", **fields)
    else:
        logger.warning("Client error", **fields)


def build_error_response(
    request: Request, exc: BaseException, logger: Logger, *, raised: bool = False
) -> Response:
    """Classify, log and render an error.

    Args:
        request: The request that failed.
        exc: The error to answer.
        logger: Logger receiving the error entry.
        raised: Whether the error was raised rather than attached.

    Returns:
        Response: JSON error response with charset.
    """
    classification = classify_error(exc)
    log_classified_error(logger, request, exc, classification, raised=raised)
    return ErrorJSONResponse(
        status_code=classification.status,
        content=classification.to_api_error().to_body(),
    )


def build_panic_response(
    request: Request, exc: BaseException, logger: Logger
) -> Response:
    """Log a non-exception raise and answer with the fixed panic body."""
    fields = build_log_fields(request)
    fields["panic"] = repr(exc)
    fields["stack_trace"] = "".join(traceback.format_exception(exc))
    fields["error_type"] = ErrorKind.PANIC.value
    logger.error("Panic recovered (non-error type)", **fields)

    body = ApiError(
        message=PANIC_MESSAGE,
        error="Internal Server Error",
        status=HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return ErrorJSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR, content=body.to_body()
    )


class ErrorHandlerMiddleware:
    """ASGI middleware recovering failures and rendering attached errors.

    Error responses are produced outside the CORS middleware, so when CORS
    is enabled they are sent through the same policy to stay readable by
    allowed origins.

    Args:
        app: The ASGI application.
        logger: Logger receiving error entries.
        cors_options: CORSMiddleware keyword arguments, when CORS is enabled.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        logger: Logger,
        cors_options: Mapping[str, Any] | None = None,
    ) -> None:
        self.app = app
        self.logger = logger
        self.cors = (
            CORSMiddleware(app, **cors_options) if cors_options is not None else None
        )

    def _error_send(self, scope: Scope, send: Send) -> Send:
        """Return the send channel for responses built by this middleware."""
        headers = Headers(scope=scope)
        if self.cors is None or "origin" not in headers:
            return send
        return functools.partial(self.cors.send, send=send, request_headers=headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Run the downstream chain and answer any failure it reports."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        error_send = self._error_send(scope, send)
        response_started = False
        replaced = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started, replaced
            if replaced:
                return
            if message["type"] == "http.response.start" and get_errors(request):
                # Discard the downstream response in favour of the error
                replaced = True
                return
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except _PROPAGATED:
            raise
        except Exception as exc:
            if response_started:
                self.logger.error(
                    "Error raised after response started",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    **build_log_fields(request),
                )
                raise
            response = build_error_response(request, exc, self.logger, raised=True)
            await response(scope, receive, error_send)
            return
        except BaseException as exc:
            if response_started:
                raise
            response = build_panic_response(request, exc, self.logger)
            await response(scope, receive, error_send)
            return

        if not response_started and (errors := get_errors(request)):
            response = build_error_response(request, errors[0], self.logger)
            await response(scope, receive, error_send)


def register_exception_handlers(app: FastAPI, logger: Logger) -> None:
    """Route FastAPI's request validation errors through the classifier.

    Args:
        app: The FastAPI application.
        logger: Logger receiving error entries.
    """

    async def validation_error_handler(request: Request, exc: Any) -> Response:  # noqa: ANN401
        if not isinstance(exc, RequestValidationError):
            msg = f"Expected RequestValidationError, got {type(exc).__name__}"
            raise TypeError(msg)
        return build_error_response(request, exc, logger)

    app.add_exception_handler(RequestValidationError, validation_error_handler)
