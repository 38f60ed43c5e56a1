"""Structured exception hierarchy for the HTTP platform.

This module defines every exception the platform raises or recognizes,
from configuration and lifecycle failures to the request-level errors
that the error-handling middleware turns into JSON responses.

Key components:
- **ErrorCode enum**: Standardized error identifiers for programmatic handling
- **Severity enum**: Error classification for monitoring and alerting
- **PlatformError**: Base exception with context and cause chaining
- **Configuration/lifecycle errors**: Raised from platform construction,
  start and stop
- **HTTP errors**: Domain errors that carry a fixed HTTP status
- **Request errors**: Body, validation, cancellation and timeout failures

Request errors never escape to the process; they are classified at the
API boundary and rendered as a consistent error body.
"""

from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, Field


class ErrorCode(Enum):
    """Standardized error codes for the HTTP platform."""

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    CONFIG_ERROR = "CONFIG_ERROR"
    """The server configuration is invalid."""

    RUNTIME_ERROR = "RUNTIME_ERROR"
    """The platform lifecycle was driven into an invalid state."""

    # Request errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input validation failed due to invalid or malformed data."""

    BAD_REQUEST = "BAD_REQUEST"
    """The request could not be understood."""

    NOT_FOUND = "NOT_FOUND"
    """The requested resource could not be found."""

    UNAUTHORIZED = "UNAUTHORIZED"
    """Authentication failed."""

    FORBIDDEN = "FORBIDDEN"
    """The caller is not allowed to perform this action."""

    CONFLICT = "CONFLICT"
    """The request conflicts with the current resource state."""

    EXTERNAL_SERVICE = "EXTERNAL_SERVICE"
    """A downstream dependency failed."""

    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    """The client went away before the request completed."""

    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    """The request exceeded its deadline."""


class Severity(Enum):
    """Severity levels for platform errors."""

    LOW = "LOW"
    """Expected errors caused by client input."""

    MEDIUM = "MEDIUM"
    """Errors that affect a single request."""

    HIGH = "HIGH"
    """Errors impacting the service or its dependencies."""

    CRITICAL = "CRITICAL"
    """Errors that prevent the service from running."""


class PlatformError(Exception):
    """Base exception class for all platform exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


# Configuration and lifecycle errors


class ConfigError(PlatformError):
    """Raised when a server configuration fails validation.

    Args:
        message: Description of the invalid setting
        field: Name of the offending configuration field
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(
            ErrorCode.CONFIG_ERROR,
            message,
            Severity.CRITICAL,
            context={"field": field} if field else None,
        )
        self.field = field

    def __str__(self) -> str:
        return f"config error: {self.message}"


class LifecycleError(PlatformError):
    """Raised when the platform start/stop sequence fails.

    Args:
        message: Description of the lifecycle failure
        cause: The underlying failure, if any
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(ErrorCode.RUNTIME_ERROR, message, Severity.HIGH, cause=cause)

    def __str__(self) -> str:
        if self.cause is not None:
            return f"runtime error: {self.message}: {self.cause}"
        return f"runtime error: {self.message}"


class AlreadyStartedError(LifecycleError):
    """Raised when start() is called on a platform that is already running."""

    def __init__(self) -> None:
        super().__init__("platform already started")


class NotStartedError(LifecycleError):
    """Raised when stop() is called on a platform that was never started."""

    def __init__(self) -> None:
        super().__init__("platform not started")


class ShutdownError(LifecycleError):
    """Raised when graceful shutdown fails; wraps the first failure.

    Args:
        cause: The first shutdown failure
        errors: Every failure collected during shutdown
    """

    def __init__(
        self, cause: BaseException, errors: list[BaseException] | None = None
    ) -> None:
        super().__init__("shutdown failed", cause=cause)
        self.errors = errors or [cause]


# HTTP domain errors


class HTTPError(PlatformError):
    """Base class for errors that map onto one fixed HTTP status.

    Args:
        message: Message returned to the client
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    status_code: ClassVar[int] = 500
    default_code: ClassVar[ErrorCode] = ErrorCode.INTERNAL_ERROR
    default_severity: ClassVar[Severity] = Severity.LOW

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            self.default_code, message, self.default_severity, context, cause
        )


class NotFoundError(HTTPError):
    """The requested resource does not exist."""

    status_code = 404
    default_code = ErrorCode.NOT_FOUND


class UnauthorizedError(HTTPError):
    """The caller is not authenticated."""

    status_code = 401
    default_code = ErrorCode.UNAUTHORIZED
    default_severity = Severity.MEDIUM


class ForbiddenError(HTTPError):
    """The caller is authenticated but not allowed."""

    status_code = 403
    default_code = ErrorCode.FORBIDDEN
    default_severity = Severity.MEDIUM


class ConflictError(HTTPError):
    """The request conflicts with existing state."""

    status_code = 409
    default_code = ErrorCode.CONFLICT


class BadRequestError(HTTPError):
    """The request is malformed."""

    status_code = 400
    default_code = ErrorCode.BAD_REQUEST


class DomainError(HTTPError):
    """A business rule rejected the request."""

    status_code = 400
    default_code = ErrorCode.BAD_REQUEST


class UnprocessableEntityError(HTTPError):
    """The request is well formed but semantically invalid."""

    status_code = 422
    default_code = ErrorCode.VALIDATION_ERROR


class TooManyRequestsError(HTTPError):
    """The caller exceeded a rate limit."""

    status_code = 429
    default_code = ErrorCode.BAD_REQUEST
    default_severity = Severity.MEDIUM


class InternalServerError(HTTPError):
    """A handler failed in a known way."""

    status_code = 500
    default_code = ErrorCode.INTERNAL_ERROR
    default_severity = Severity.HIGH


class ServiceUnavailableError(HTTPError):
    """The service cannot handle the request right now."""

    status_code = 503
    default_code = ErrorCode.INTERNAL_ERROR
    default_severity = Severity.HIGH


class ExternalServiceError(PlatformError):
    """A downstream dependency failed; the response uses the carried status.

    Args:
        message: Message returned to the client
        status: HTTP status to answer with (100-599)
        cause: The original exception that caused this error

    Raises:
        ValueError: If status is not a valid HTTP status code
    """

    def __init__(
        self, message: str, status: int, cause: BaseException | None = None
    ) -> None:
        if not 100 <= status <= 599:  # noqa: PLR2004 - HTTP status range
            msg = f"invalid HTTP status for external service error: {status}"
            raise ValueError(msg)
        super().__init__(
            ErrorCode.EXTERNAL_SERVICE,
            message,
            Severity.HIGH,
            context={"external_status": status},
            cause=cause,
        )
        self.status = status


# Request errors


class FieldViolation(BaseModel):
    """A single failed validation rule on one field."""

    field: str = Field(..., description="Name of the invalid field")
    rule: str = Field(..., description="Name of the failed rule, e.g. required")
    param: str = Field(default="", description="Rule parameter, e.g. 18 for min")

    @property
    def reason(self) -> str:
        """Rule name with its parameter appended when there is one."""
        return f"{self.rule}={self.param}" if self.param else self.rule


class ValidationError(PlatformError):
    """Raised when a request payload fails field validation.

    Args:
        violations: One entry per failed field rule
        message: Summary message (defaults to "Validation error")
    """

    def __init__(
        self, violations: list[FieldViolation], message: str = "Validation error"
    ) -> None:
        super().__init__(ErrorCode.VALIDATION_ERROR, message, Severity.LOW)
        self.violations = violations


class JSONTypeError(PlatformError):
    """Raised when a JSON value has the wrong type for its target field.

    Args:
        field: Dotted path of the field
        expected_type: Name of the type the field requires
        value_kind: Kind of JSON value that was received
    """

    def __init__(self, field: str, expected_type: str, value_kind: str) -> None:
        super().__init__(
            ErrorCode.VALIDATION_ERROR,
            f"json: cannot unmarshal {value_kind} into field {field} "
            f"of type {expected_type}",
            Severity.LOW,
        )
        self.field = field
        self.expected_type = expected_type
        self.value_kind = value_kind


class EmptyBodyError(PlatformError, EOFError):
    """Raised when a request body was required but none was sent."""

    def __init__(self) -> None:
        super().__init__(ErrorCode.BAD_REQUEST, "request body is empty", Severity.LOW)


class IncompleteBodyError(PlatformError, EOFError):
    """Raised when a request body ends in the middle of a JSON document."""

    def __init__(self, cause: BaseException | None = None) -> None:
        super().__init__(
            ErrorCode.BAD_REQUEST,
            "unexpected end of request body",
            Severity.LOW,
            cause=cause,
        )


class RequestCancelledError(PlatformError):
    """The client disconnected before the request completed."""

    def __init__(self) -> None:
        super().__init__(ErrorCode.REQUEST_CANCELLED, "context canceled", Severity.LOW)


class RequestTimeoutError(PlatformError, TimeoutError):
    """The request exceeded its deadline.

    Args:
        timeout: The deadline in seconds, when known
    """

    def __init__(self, timeout: float | None = None) -> None:
        super().__init__(
            ErrorCode.REQUEST_TIMEOUT,
            "context deadline exceeded",
            Severity.MEDIUM,
            context={"timeout_seconds": timeout} if timeout is not None else None,
        )
        self.timeout = timeout
