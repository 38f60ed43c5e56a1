"""Integration tests for the full middleware chain of a platform."""

import asyncio
from collections.abc import AsyncGenerator

import pytest
import pytest_check
from fastapi import Request
from httpx import ASGITransport, AsyncClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)
from pydantic import BaseModel, Field
from pytest_mock import MockType

from http_platform import (
    ExternalServiceError,
    NotFoundError,
    Platform,
    ServerConfig,
    add_error,
    bind_json,
    get_trace_id,
    with_base_path,
    with_cors,
    with_telemetry,
    with_telemetry_sampling,
)


class CreateUser(BaseModel):
    """Body of the create-user route."""

    email: str
    age: int = Field(ge=18)


class Panic(BaseException):  # noqa: N818
    """A raise that is not an Exception."""


def build_platform(
    cfg: ServerConfig, span_exporter: InMemorySpanExporter | None = None
) -> Platform:
    """Build a platform serving a small user API under /api."""
    platform = Platform(
        cfg,
        with_base_path("/api"),
        with_cors("https://app.test"),
        span_exporter=span_exporter,
    )
    users = platform.group("/users")

    @users.get("/{user_id}")
    async def get_user(user_id: int, request: Request) -> dict[str, str | int]:
        if user_id == 404:
            raise NotFoundError("User not found")
        return {"id": user_id, "trace_id": get_trace_id(request)}

    @users.post("")
    async def create_user(request: Request) -> dict[str, str]:
        user = await bind_json(request, CreateUser)
        return {"email": user.email}

    @users.delete("/{user_id}")
    async def delete_user(user_id: int, request: Request) -> dict[str, str]:
        add_error(request, ExternalServiceError("Directory unavailable", 503))
        return {"deleted": str(user_id)}

    @platform.get("/upstream")
    async def upstream() -> None:
        await asyncio.wait_for(asyncio.sleep(1), timeout=0.01)

    @platform.get("/panic")
    async def panic() -> None:
        raise Panic

    return platform


@pytest.fixture
async def client(base_config: ServerConfig) -> AsyncGenerator[AsyncClient]:
    """Provide a client bound to the platform application."""
    platform = build_platform(base_config)
    transport = ASGITransport(app=platform.app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.integration
class TestPlatformChain:
    """Test requests through every platform middleware."""

    async def test_success(self, client: AsyncClient, mock_logger: MockType) -> None:
        """Verify a successful request is traced and logged."""
        response = await client.get("/api/users/7", headers={"X-Trace-Id": "t-1"})

        with pytest_check.check:
            assert response.status_code == 200
        with pytest_check.check:
            assert response.json() == {"id": 7, "trace_id": "t-1"}
        with pytest_check.check:
            assert response.headers["x-trace-id"] == "t-1"
        assert mock_logger.info.call_args.args[0] == "Request completed"
        fields = mock_logger.info.call_args.kwargs
        with pytest_check.check:
            assert fields["path"] == "/api/users/7"
        with pytest_check.check:
            assert fields["status"] == 200
        with pytest_check.check:
            assert fields["trace_id"] == "t-1"
        with pytest_check.check:
            assert fields["client_ip"] == "127.0.0.1"

    async def test_not_found(self, client: AsyncClient) -> None:
        """Verify domain errors produce the documented body."""
        response = await client.get("/api/users/404")

        assert response.status_code == 404
        assert response.json() == {
            "message": "User not found",
            "error": "Not Found",
            "status": 404,
        }
        assert response.headers["x-trace-id"]

    async def test_validation_causes(self, client: AsyncClient) -> None:
        """Verify bind_json failures list every invalid field."""
        response = await client.post("/api/users", json={"age": 10})

        assert response.status_code == 400
        assert response.json() == {
            "message": "Validation error",
            "error": "Bad Request",
            "status": 400,
            "cause": [
                {"field": "email", "reason": "required"},
                {"field": "age", "reason": "min=18"},
            ],
        }

    @pytest.mark.parametrize(
        ("body", "message"),
        [
            (b"", "Request body is empty"),
            (b'{"email": "a@b.test"', "Request body is incomplete"),
            (
                b'{"email": "a@b.test", "age": "old"}',
                "Invalid type for field 'age', expected int but got string",
            ),
        ],
    )
    async def test_body_errors(
        self, client: AsyncClient, body: bytes, message: str
    ) -> None:
        """Verify malformed bodies are answered with 400."""
        response = await client.post(
            "/api/users", content=body, headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["message"] == message

    async def test_syntax_error(self, client: AsyncClient) -> None:
        """Verify JSON syntax errors report their position."""
        response = await client.post("/api/users", content=b'{"email" 1}')

        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid JSON syntax at position")

    async def test_attached_error(self, client: AsyncClient) -> None:
        """Verify an attached error replaces the handler's response."""
        response = await client.delete("/api/users/3")

        assert response.status_code == 503
        assert response.json() == {
            "message": "Directory unavailable",
            "error": "Service Unavailable",
            "status": 503,
        }

    async def test_upstream_timeout_is_server_error(self, client: AsyncClient) -> None:
        """Verify a dependency timing out is not reported as a request timeout."""
        response = await client.get("/api/upstream")

        assert response.status_code == 500
        assert response.json()["message"] == "An error occurred"

    async def test_panic(self, client: AsyncClient) -> None:
        """Verify non-Exception raises answer with the fixed 500 body."""
        response = await client.get("/api/panic")

        assert response.status_code == 500
        assert response.json()["message"] == "Internal server error panic"

    async def test_cors_preflight(self, client: AsyncClient) -> None:
        """Verify preflight requests are answered for allowed origins."""
        response = await client.options(
            "/api/users",
            headers={
                "Origin": "https://app.test",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://app.test"
        assert response.headers["access-control-max-age"] == "43200"

    async def test_cors_exposes_trace_header(self, client: AsyncClient) -> None:
        """Verify browsers can read the trace ID header."""
        response = await client.get(
            "/api/users/1", headers={"Origin": "https://app.test"}
        )

        exposed = response.headers["access-control-expose-headers"]
        assert "X-Trace-Id" in exposed

    @pytest.mark.parametrize(
        ("method", "path", "status"),
        [
            ("GET", "/api/users/404", 404),
            ("DELETE", "/api/users/3", 503),
            ("GET", "/api/panic", 500),
            ("POST", "/api/users", 400),
        ],
    )
    async def test_cors_headers_on_errors(
        self, client: AsyncClient, method: str, path: str, status: int
    ) -> None:
        """Verify allowed origins can read raised, attached and panic errors."""
        response = await client.request(
            method, path, headers={"Origin": "https://app.test"}, json={}
        )

        assert response.status_code == status
        assert response.headers.get_list("access-control-allow-origin") == [
            "https://app.test"
        ]
        assert "X-Trace-Id" in response.headers["access-control-expose-headers"]

    async def test_no_cors_headers_on_errors_for_other_origins(
        self, client: AsyncClient
    ) -> None:
        """Verify errors do not grant access to origins outside the list."""
        response = await client.get(
            "/api/users/404", headers={"Origin": "https://evil.test"}
        )

        assert response.status_code == 404
        assert "access-control-allow-origin" not in response.headers

    async def test_telemetry_span(self, base_config: ServerConfig) -> None:
        """Verify requests are traced when telemetry is enabled."""
        exporter = InMemorySpanExporter()
        cfg = with_telemetry("users", "1.2.3", "test", "localhost:4317")(base_config)
        cfg = with_telemetry_sampling(True)(cfg)  # noqa: FBT003
        platform = build_platform(cfg, exporter)
        assert platform.telemetry is not None

        transport = ASGITransport(app=platform.app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            await ac.get("/api/users/404")
        platform.telemetry.shutdown()

        (span,) = exporter.get_finished_spans()
        assert span.name == "GET /api/users/{user_id}"
        assert span.attributes is not None
        assert span.attributes["http.response.status_code"] == 404
        assert span.resource.attributes["service.name"] == "users"
