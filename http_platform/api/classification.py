"""Error classification: from an exception to an HTTP status and body.

Every error the platform answers for is first reduced to one member of the
closed ``ErrorKind`` set; the status, label and body shape then follow from
a total mapping over that set. Classification order matters:

1. Domain errors with a fixed status (NotFoundError, ConflictError, ...)
2. External service errors, which carry their own status
3. Field validation failures (platform, pydantic and FastAPI)
4. JSON type mismatches
5. JSON syntax errors
6. Sentinels: empty/incomplete body, cancellation, request deadline
7. Anything else, reported as an unknown 500
"""

import json
import traceback
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from http import HTTPStatus
from typing import Any, Final

import pydantic
from fastapi.exceptions import RequestValidationError
from starlette.requests import ClientDisconnect

from http_platform.api.constants import (
    CLIENT_CLOSED_REQUEST_PHRASE,
    HTTP_408_REQUEST_TIMEOUT,
    HTTP_499_CLIENT_CLOSED_REQUEST,
)
from http_platform.api.schemas.errors import ApiError, ErrorCause
from http_platform.core.exceptions import (
    BadRequestError,
    ConflictError,
    DomainError,
    EmptyBodyError,
    ExternalServiceError,
    FieldViolation,
    ForbiddenError,
    HTTPError,
    IncompleteBodyError,
    InternalServerError,
    JSONTypeError,
    NotFoundError,
    PlatformError,
    RequestCancelledError,
    RequestTimeoutError,
    ServiceUnavailableError,
    TooManyRequestsError,
    UnauthorizedError,
    UnprocessableEntityError,
    ValidationError,
)
from http_platform.core.types import LogContext


class ErrorKind(StrEnum):
    """Closed set of error kinds; the value is the logged ``error_type``."""

    NOT_FOUND = "NotFoundError"
    UNAUTHORIZED = "UnauthorizedError"
    FORBIDDEN = "ForbiddenError"
    CONFLICT = "ConflictError"
    BAD_REQUEST = "BadRequestError"
    DOMAIN = "DomainError"
    UNPROCESSABLE_ENTITY = "UnprocessableEntityError"
    TOO_MANY_REQUESTS = "TooManyRequestsError"
    INTERNAL_SERVER = "InternalServerError"
    SERVICE_UNAVAILABLE = "ServiceUnavailableError"
    EXTERNAL_SERVICE = "ExternalServiceError"
    VALIDATION = "ValidationError"
    JSON_TYPE = "JSONTypeError"
    JSON_SYNTAX = "JSONSyntaxError"
    EMPTY_BODY = "EmptyBody"
    INCOMPLETE_BODY = "IncompleteBody"
    REQUEST_CANCELED = "RequestCanceled"
    REQUEST_TIMEOUT = "RequestTimeout"
    UNKNOWN = "UnknownError"
    PANIC = "Panic"


# Domain error classes, most specific first
_HTTP_ERROR_KINDS: Final[tuple[tuple[type[HTTPError], ErrorKind], ...]] = (
    (NotFoundError, ErrorKind.NOT_FOUND),
    (UnauthorizedError, ErrorKind.UNAUTHORIZED),
    (ForbiddenError, ErrorKind.FORBIDDEN),
    (ConflictError, ErrorKind.CONFLICT),
    (BadRequestError, ErrorKind.BAD_REQUEST),
    (DomainError, ErrorKind.DOMAIN),
    (UnprocessableEntityError, ErrorKind.UNPROCESSABLE_ENTITY),
    (TooManyRequestsError, ErrorKind.TOO_MANY_REQUESTS),
    (InternalServerError, ErrorKind.INTERNAL_SERVER),
    (ServiceUnavailableError, ErrorKind.SERVICE_UNAVAILABLE),
)

# Fixed status per kind; domain kinds take the status of their error class
# and ExternalServiceError uses the status it carries
KIND_STATUS: Final[Mapping[ErrorKind, int]] = {
    **{kind: error_class.status_code for error_class, kind in _HTTP_ERROR_KINDS},
    ErrorKind.EXTERNAL_SERVICE: 502,
    ErrorKind.VALIDATION: 400,
    ErrorKind.JSON_TYPE: 400,
    ErrorKind.JSON_SYNTAX: 400,
    ErrorKind.EMPTY_BODY: 400,
    ErrorKind.INCOMPLETE_BODY: 400,
    ErrorKind.REQUEST_CANCELED: HTTP_499_CLIENT_CLOSED_REQUEST,
    ErrorKind.REQUEST_TIMEOUT: HTTP_408_REQUEST_TIMEOUT,
    ErrorKind.UNKNOWN: 500,
    ErrorKind.PANIC: 500,
}

# pydantic error type -> (rule name, ctx key holding the rule parameter)
_PYDANTIC_RULES: Final[Mapping[str, tuple[str, str | None]]] = {
    "missing": ("required", None),
    "greater_than_equal": ("min", "ge"),
    "less_than_equal": ("max", "le"),
    "greater_than": ("gt", "gt"),
    "less_than": ("lt", "lt"),
    "string_too_short": ("min", "min_length"),
    "too_short": ("min", "min_length"),
    "string_too_long": ("max", "max_length"),
    "too_long": ("max", "max_length"),
    "string_pattern_mismatch": ("pattern", "pattern"),
    "literal_error": ("oneof", "expected"),
    "enum": ("oneof", "expected"),
    "multiple_of": ("multiple_of", "multiple_of"),
}

# Request parts FastAPI puts in front of field locations
_LOCATION_PREFIXES: Final[frozenset[str]] = frozenset(
    {"body", "query", "path", "header", "cookie"}
)

# pydantic error types that mean "wrong JSON type" rather than "invalid value"
_TYPE_ERROR_SUFFIXES: Final[tuple[str, ...]] = ("_type", "_parsing")
_NON_TYPE_ERRORS: Final[frozenset[str]] = frozenset(
    {"model_attributes_type", "dataclass_type"}
)

# Fixed client message and log reason for sentinel kinds
_SENTINEL_MESSAGES: Final[Mapping[ErrorKind, tuple[str, str | None]]] = {
    ErrorKind.EMPTY_BODY: ("Request body is empty", None),
    ErrorKind.INCOMPLETE_BODY: ("Request body is incomplete", None),
    ErrorKind.REQUEST_CANCELED: ("Request was cancelled by client", "context_canceled"),
    ErrorKind.REQUEST_TIMEOUT: ("Request timeout exceeded", "deadline_exceeded"),
}


@dataclass(frozen=True)
class ErrorClassification:
    """Outcome of classifying one error.

    Attributes:
        kind: The error kind.
        status: HTTP status to respond with.
        message: Message returned to the client.
        causes: Field-level causes, for validation failures.
        log_fields: Kind-specific structured log fields.
    """

    kind: ErrorKind
    status: int
    message: str
    causes: list[ErrorCause] | None = None
    log_fields: LogContext = field(default_factory=dict)

    def to_api_error(self) -> ApiError:
        """Build the response body for this classification."""
        return ApiError(
            message=self.message,
            error=status_text(self.status),
            status=self.status,
            cause=self.causes or None,
        )


def status_text(status: int) -> str:
    """Return the HTTP status phrase, or "" for unknown codes."""
    if status == HTTP_499_CLIENT_CLOSED_REQUEST:
        return CLIENT_CLOSED_REQUEST_PHRASE
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


def _json_kind(value: object) -> str:
    """Name the kind of a decoded JSON value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _field_name(loc: Sequence[Any]) -> str:
    parts = list(loc)
    if parts and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(str(part) for part in parts)


def _is_type_error(error_type: str) -> bool:
    return error_type.endswith(_TYPE_ERROR_SUFFIXES) and (
        error_type not in _NON_TYPE_ERRORS
    )


def violation_from_pydantic(error: Mapping[str, Any]) -> FieldViolation:
    """Translate one pydantic error entry into a field violation.

    Args:
        error: An entry of ``ValidationError.errors()``.

    Returns:
        FieldViolation: The failed rule, named like a validation tag.
    """
    error_type = str(error.get("type", "value_error"))
    rule, param_key = _PYDANTIC_RULES.get(error_type, (error_type, None))
    ctx = error.get("ctx") or {}
    param = str(ctx[param_key]) if param_key and param_key in ctx else ""
    return FieldViolation(
        field=_field_name(error.get("loc", ())), rule=rule, param=param
    )


def type_error_from_pydantic(error: Mapping[str, Any]) -> JSONTypeError:
    """Translate a pydantic type mismatch into a JSONTypeError.

    Args:
        error: An entry of ``ValidationError.errors()`` whose type ends in
            ``_type`` or ``_parsing``.

    Returns:
        JSONTypeError: The mismatch with field, expected type and value kind.
    """
    error_type = str(error["type"])
    for suffix in _TYPE_ERROR_SUFFIXES:
        error_type = error_type.removesuffix(suffix)
    return JSONTypeError(
        field=_field_name(error.get("loc", ())),
        expected_type=error_type,
        value_kind=_json_kind(error.get("input")),
    )


def errors_to_exception(
    errors: Sequence[Mapping[str, Any]],
) -> ValidationError | JSONTypeError | EmptyBodyError | json.JSONDecodeError:
    """Convert a pydantic/FastAPI error list into a platform exception.

    Args:
        errors: Entries of ``ValidationError.errors()`` or
            ``RequestValidationError.errors()``.

    Returns:
        The most specific platform exception describing the list.
    """
    for error in errors:
        if error.get("type") == "json_invalid":
            loc = error.get("loc", ())
            pos = loc[-1] if loc and isinstance(loc[-1], int) else 0
            ctx = error.get("ctx") or {}
            return json.JSONDecodeError(str(ctx.get("error", "invalid JSON")), "", pos)

    if (
        len(errors) == 1
        and errors[0].get("type") == "missing"
        and tuple(errors[0].get("loc", ())) == ("body",)
    ):
        return EmptyBodyError()

    for error in errors:
        if _is_type_error(str(error.get("type", ""))):
            return type_error_from_pydantic(error)

    return ValidationError([violation_from_pydantic(error) for error in errors])


def error_kind(exc: BaseException) -> ErrorKind:
    """Return the kind of an already normalized exception."""
    for error_class, kind in _HTTP_ERROR_KINDS:
        if isinstance(exc, error_class):
            return kind
    if isinstance(exc, ExternalServiceError):
        return ErrorKind.EXTERNAL_SERVICE
    if isinstance(exc, ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, JSONTypeError):
        return ErrorKind.JSON_TYPE
    if isinstance(exc, json.JSONDecodeError):
        return ErrorKind.JSON_SYNTAX
    if isinstance(exc, EmptyBodyError):
        return ErrorKind.EMPTY_BODY
    if isinstance(exc, IncompleteBodyError):
        return ErrorKind.INCOMPLETE_BODY
    if isinstance(exc, RequestCancelledError | ClientDisconnect):
        return ErrorKind.REQUEST_CANCELED
    if isinstance(exc, RequestTimeoutError):
        return ErrorKind.REQUEST_TIMEOUT
    return ErrorKind.UNKNOWN


def _normalize(exc: BaseException) -> BaseException:
    if isinstance(exc, RequestValidationError | pydantic.ValidationError):
        return errors_to_exception(exc.errors())
    return exc


def classify_error(exc: BaseException) -> ErrorClassification:
    """Classify an exception into status, message and log fields.

    Args:
        exc: The exception raised by, or attached to, a request.

    Returns:
        ErrorClassification: How to answer and log the error.
    """
    exc = _normalize(exc)
    kind = error_kind(exc)
    status = KIND_STATUS[kind]
    message = str(exc)
    causes: list[ErrorCause] | None = None
    log_fields: LogContext = {}

    if isinstance(exc, ExternalServiceError):
        status = exc.status
        log_fields["external_status"] = status
    elif isinstance(exc, ValidationError):
        message = "Validation error"
        causes = [ErrorCause(field=v.field, reason=v.reason) for v in exc.violations]
        log_fields["validation_errors"] = [cause.model_dump() for cause in causes]
    elif isinstance(exc, JSONTypeError):
        message = (
            f"Invalid type for field '{exc.field}', "
            f"expected {exc.expected_type} but got {exc.value_kind}"
        )
        log_fields["field"] = exc.field
        log_fields["expected_type"] = exc.expected_type
    elif isinstance(exc, json.JSONDecodeError):
        message = f"Invalid JSON syntax at position {exc.pos}"
        log_fields["offset"] = exc.pos
        log_fields["syntax_error"] = str(exc)
    elif kind in _SENTINEL_MESSAGES:
        message, reason = _SENTINEL_MESSAGES[kind]
        if reason:
            log_fields["reason"] = reason
    elif kind is ErrorKind.UNKNOWN:
        message = "An error occurred"
        log_fields["full_error"] = repr(exc)
        log_fields["stack_trace"] = "".join(traceback.format_exception(exc))

    if isinstance(exc, PlatformError):
        log_fields["severity"] = exc.severity.value

    return ErrorClassification(
        kind=kind,
        status=status,
        message=message,
        causes=causes,
        log_fields=log_fields,
    )
