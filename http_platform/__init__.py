"""HTTP platform: a FastAPI service with a ready-made middleware chain.

A ``Platform`` is built from a validated ``ServerConfig`` plus options and
serves a FastAPI application with trace IDs, error recovery, client
disconnect detection, CORS, tracing spans and request logging, then shuts
down gracefully on SIGINT/SIGTERM or on request.

Packages:
- **core**: Configuration, exceptions, logging and telemetry
- **api**: Application assembly, middleware, error classification
- **platform**: Server lifecycle
"""

from http_platform.api.classification import (
    ErrorClassification,
    ErrorKind,
    classify_error,
    status_text,
)
from http_platform.api.middleware.cancellation import (
    deadline_exceeded,
    get_context_error,
    is_request_cancelled,
    with_timeout,
)
from http_platform.api.middleware.error_handler import add_error, get_errors
from http_platform.api.middleware.trace import get_trace_id
from http_platform.api.router import RouterGroup
from http_platform.api.schemas.errors import ApiError, ErrorCause
from http_platform.api.utils.requests import (
    bind_json,
    client_address,
    headers_to_map,
    query_params_to_map,
)
from http_platform.core.config import (
    Logger,
    Option,
    PlatformSettings,
    ServerConfig,
    apply_options,
    default_config,
    get_settings,
    validate_config,
    with_allow_credentials,
    with_allowed_headers,
    with_allowed_methods,
    with_base_path,
    with_cors,
    with_exposed_headers,
    with_host,
    with_idle_timeout,
    with_log_excluded_paths,
    with_logger,
    with_max_age,
    with_max_header_bytes,
    with_mode,
    with_port,
    with_read_timeout,
    with_slow_request_threshold,
    with_telemetry,
    with_telemetry_exporter,
    with_telemetry_sampling,
    with_trusted_proxies,
    with_write_timeout,
    without_context_cancellation,
    without_cors,
    without_logger,
    without_telemetry,
    without_trace_id,
)
from http_platform.core.exceptions import (
    AlreadyStartedError,
    BadRequestError,
    ConfigError,
    ConflictError,
    DomainError,
    EmptyBodyError,
    ErrorCode,
    ExternalServiceError,
    FieldViolation,
    ForbiddenError,
    HTTPError,
    IncompleteBodyError,
    InternalServerError,
    JSONTypeError,
    LifecycleError,
    NotFoundError,
    NotStartedError,
    PlatformError,
    RequestCancelledError,
    RequestTimeoutError,
    ServiceUnavailableError,
    Severity,
    ShutdownError,
    TooManyRequestsError,
    UnauthorizedError,
    UnprocessableEntityError,
    ValidationError,
)
from http_platform.core.logging import setup_logging
from http_platform.platform import Platform

__all__ = [
    "AlreadyStartedError",
    "ApiError",
    "BadRequestError",
    "ConfigError",
    "ConflictError",
    "DomainError",
    "EmptyBodyError",
    "ErrorCause",
    "ErrorClassification",
    "ErrorCode",
    "ErrorKind",
    "ExternalServiceError",
    "FieldViolation",
    "ForbiddenError",
    "HTTPError",
    "IncompleteBodyError",
    "InternalServerError",
    "JSONTypeError",
    "LifecycleError",
    "Logger",
    "NotFoundError",
    "NotStartedError",
    "Option",
    "Platform",
    "PlatformError",
    "PlatformSettings",
    "RequestCancelledError",
    "RequestTimeoutError",
    "RouterGroup",
    "ServerConfig",
    "ServiceUnavailableError",
    "Severity",
    "ShutdownError",
    "TooManyRequestsError",
    "UnauthorizedError",
    "UnprocessableEntityError",
    "ValidationError",
    "add_error",
    "apply_options",
    "bind_json",
    "classify_error",
    "client_address",
    "deadline_exceeded",
    "default_config",
    "get_context_error",
    "get_errors",
    "get_settings",
    "get_trace_id",
    "headers_to_map",
    "is_request_cancelled",
    "query_params_to_map",
    "setup_logging",
    "status_text",
    "validate_config",
    "with_allow_credentials",
    "with_allowed_headers",
    "with_allowed_methods",
    "with_base_path",
    "with_cors",
    "with_exposed_headers",
    "with_host",
    "with_idle_timeout",
    "with_log_excluded_paths",
    "with_logger",
    "with_max_age",
    "with_max_header_bytes",
    "with_mode",
    "with_port",
    "with_read_timeout",
    "with_slow_request_threshold",
    "with_telemetry",
    "with_telemetry_exporter",
    "with_telemetry_sampling",
    "with_timeout",
    "with_trusted_proxies",
    "with_write_timeout",
    "without_context_cancellation",
    "without_cors",
    "without_logger",
    "without_telemetry",
    "without_trace_id",
]
