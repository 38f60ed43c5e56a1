"""Unit tests for TraceIDMiddleware."""

import uuid

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient
from pytest_mock import MockerFixture

from http_platform.api.constants import TRACE_ID_HEADER
from http_platform.api.middleware.trace import TraceIDMiddleware, get_trace_id
from http_platform.core.context import RequestContext


@pytest.fixture
def trace_app() -> FastAPI:
    """Provide an app echoing the trace ID seen by the handler."""
    app = FastAPI()
    app.add_middleware(TraceIDMiddleware)

    @app.get("/echo")
    async def echo(request: Request) -> dict[str, str | None]:
        return {
            "state": get_trace_id(request),
            "context": RequestContext.get_trace_id(),
        }

    return app


@pytest.mark.unit
@pytest.mark.usefixtures("clean_context")
class TestTraceIDMiddleware:
    """Test suite for TraceIDMiddleware."""

    async def test_generates_trace_id_when_missing(self, trace_app: FastAPI) -> None:
        """Verify a UUID4 is generated and echoed."""
        # Arrange
        transport = ASGITransport(app=trace_app)

        # Act
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/echo")

        # Assert
        trace_id = response.headers[TRACE_ID_HEADER]
        assert uuid.UUID(trace_id).version == 4
        assert response.json() == {"state": trace_id, "context": trace_id}

    async def test_reuses_inbound_trace_id(self, trace_app: FastAPI) -> None:
        """Verify the inbound header is propagated unchanged."""
        transport = ASGITransport(app=trace_app)

        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/echo", headers={TRACE_ID_HEADER: "abc-123"})

        assert response.headers[TRACE_ID_HEADER] == "abc-123"
        assert response.json()["state"] == "abc-123"

    async def test_empty_header_is_replaced(self, trace_app: FastAPI) -> None:
        """Verify an empty inbound header counts as missing."""
        transport = ASGITransport(app=trace_app)

        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/echo", headers={TRACE_ID_HEADER: ""})

        assert response.headers[TRACE_ID_HEADER] != ""

    async def test_binds_trace_id_to_logs(
        self, trace_app: FastAPI, mocker: MockerFixture
    ) -> None:
        """Verify the trace ID is bound to Loguru for the request."""
        mock_contextualize = mocker.patch(
            "http_platform.api.middleware.trace.logger.contextualize"
        )
        transport = ASGITransport(app=trace_app)

        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.get("/echo", headers={TRACE_ID_HEADER: "log-me"})

        mock_contextualize.assert_called_once_with(trace_id="log-me")

    async def test_get_trace_id_without_middleware(self) -> None:
        """Verify get_trace_id returns an empty string when unassigned."""
        app = FastAPI()

        @app.get("/")
        async def root(request: Request) -> dict[str, str]:
            return {"trace_id": get_trace_id(request)}

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/")

        assert response.json() == {"trace_id": ""}
        assert TRACE_ID_HEADER not in response.headers
