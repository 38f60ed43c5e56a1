"""Request helpers for handlers built on the platform.

- ``query_params_to_map`` / ``headers_to_map`` flatten multi-valued inputs:
  a single value stays a string, repeated values become a list
- ``client_address`` returns the caller's address after proxy handling
- ``bind_json`` decodes and validates a JSON body into a pydantic model,
  raising the platform errors the error handler knows how to answer
"""

from collections.abc import Iterable

import orjson
import pydantic
from starlette.requests import Request

from http_platform.api.classification import errors_to_exception
from http_platform.core.exceptions import EmptyBodyError, IncompleteBodyError
from http_platform.core.types import MultiValue

# orjson messages for input that stops in the middle of a document
_TRUNCATED_MARKERS = ("unexpected end of data", "EOF while parsing")


def _to_map(items: Iterable[tuple[str, str]]) -> dict[str, MultiValue]:
    grouped: dict[str, list[str]] = {}
    for key, value in items:
        grouped.setdefault(key, []).append(value)
    return {
        key: values[0] if len(values) == 1 else values
        for key, values in grouped.items()
    }


def query_params_to_map(request: Request) -> dict[str, MultiValue]:
    """Return the query parameters, one string or a list per name.

    Examples:
        ``?tag=a&tag=b&page=2`` gives ``{"tag": ["a", "b"], "page": "2"}``.
    """
    return _to_map(request.query_params.multi_items())


def headers_to_map(request: Request) -> dict[str, MultiValue]:
    """Return the request headers, one string or a list per name.

    Header names are lower-cased, as delivered by the ASGI server.
    """
    return _to_map(request.headers.items())


def client_address(request: Request) -> str:
    """Return the client host, or "" when the server does not report one."""
    return request.client.host if request.client else ""


async def bind_json[M: pydantic.BaseModel](request: Request, model: type[M]) -> M:
    """Decode the request body as JSON and validate it into ``model``.

    Args:
        request: The current request.
        model: The pydantic model to validate into.

    Returns:
        The validated model instance.

    Raises:
        EmptyBodyError: If the body is empty.
        IncompleteBodyError: If the body ends in the middle of a document.
        orjson.JSONDecodeError: If the body is not valid JSON.
        JSONTypeError: If a value has the wrong JSON type.
        ValidationError: If one or more fields fail validation.
    """
    body = await request.body()
    if not body.strip():
        raise EmptyBodyError

    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        if any(marker in str(exc) for marker in _TRUNCATED_MARKERS):
            raise IncompleteBodyError(cause=exc) from exc
        raise

    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        raise errors_to_exception(exc.errors()) from exc
