"""Unit tests for request helpers."""

import json

import pytest
from pydantic import BaseModel, Field
from starlette.requests import Request
from starlette.types import Message, Scope

from http_platform.api.utils.requests import (
    bind_json,
    client_address,
    headers_to_map,
    query_params_to_map,
)
from http_platform.core.exceptions import (
    EmptyBodyError,
    IncompleteBodyError,
    JSONTypeError,
    ValidationError,
)


class User(BaseModel):
    """Body model used by bind_json tests."""

    email: str
    age: int = Field(ge=18)


def make_request(
    body: bytes = b"",
    query_string: bytes = b"",
    headers: list[tuple[bytes, bytes]] | None = None,
    client: tuple[str, int] | None = ("203.0.113.9", 5000),
) -> Request:
    """Build a request delivering ``body`` in one message."""
    scope: Scope = {
        "type": "http",
        "method": "POST",
        "path": "/users",
        "query_string": query_string,
        "headers": headers or [],
        "client": client,
    }
    messages: list[Message] = [
        {"type": "http.request", "body": body, "more_body": False}
    ]

    async def receive() -> Message:
        return messages.pop(0)

    return Request(scope, receive)


@pytest.mark.unit
class TestMaps:
    """Test query and header maps."""

    def test_query_params(self) -> None:
        """Verify repeated parameters become lists."""
        request = make_request(query_string=b"tag=a&tag=b&page=2")

        assert query_params_to_map(request) == {"tag": ["a", "b"], "page": "2"}

    def test_headers(self) -> None:
        """Verify repeated headers become lists."""
        request = make_request(
            headers=[
                (b"accept", b"application/json"),
                (b"x-role", b"admin"),
                (b"x-role", b"user"),
            ]
        )

        assert headers_to_map(request) == {
            "accept": "application/json",
            "x-role": ["admin", "user"],
        }

    def test_client_address(self) -> None:
        """Verify the client host is returned, or empty when unknown."""
        assert client_address(make_request()) == "203.0.113.9"
        assert client_address(make_request(client=None)) == ""


@pytest.mark.unit
class TestBindJson:
    """Test bind_json."""

    async def test_valid_body(self) -> None:
        """Verify a valid body is decoded into the model."""
        request = make_request(b'{"email": "a@b.test", "age": 30}')

        user = await bind_json(request, User)

        assert user == User(email="a@b.test", age=30)

    @pytest.mark.parametrize("body", [b"", b"   \n"])
    async def test_empty_body(self, body: bytes) -> None:
        """Verify empty bodies raise EmptyBodyError."""
        with pytest.raises(EmptyBodyError):
            await bind_json(make_request(body), User)

    async def test_truncated_body(self) -> None:
        """Verify truncated documents raise IncompleteBodyError."""
        with pytest.raises(IncompleteBodyError):
            await bind_json(make_request(b'{"email": "a@b.test"'), User)

    async def test_syntax_error(self) -> None:
        """Verify malformed JSON raises a decode error."""
        with pytest.raises(json.JSONDecodeError):
            await bind_json(make_request(b'{"email" "a@b.test"}'), User)

    async def test_type_error(self) -> None:
        """Verify wrong value types raise JSONTypeError."""
        with pytest.raises(JSONTypeError) as exc_info:
            await bind_json(make_request(b'{"email": "a@b.test", "age": "x"}'), User)

        assert exc_info.value.field == "age"

    async def test_validation_error(self) -> None:
        """Verify rule failures raise ValidationError with violations."""
        with pytest.raises(ValidationError) as exc_info:
            await bind_json(make_request(b'{"age": 10}'), User)

        reasons = [(v.field, v.reason) for v in exc_info.value.violations]
        assert reasons == [("email", "required"), ("age", "min=18")]
