"""Unit tests for Platform construction and routing."""

import pytest
from httpx import ASGITransport, AsyncClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)
from pytest_mock import MockType

from http_platform.core.config import (
    ServerConfig,
    default_config,
    with_base_path,
    with_idle_timeout,
    with_max_header_bytes,
    with_port,
    with_telemetry,
    with_trusted_proxies,
)
from http_platform.core.exceptions import ConfigError, NotStartedError
from http_platform.core.observability import TelemetryManager
from http_platform.platform import Platform


@pytest.mark.unit
class TestPlatformConstruction:
    """Test Platform construction."""

    def test_requires_logger(self) -> None:
        """Verify the base config is validated before options."""
        with pytest.raises(ConfigError, match="logger cannot be nil"):
            Platform(default_config())

    def test_options_validated(self, base_config: ServerConfig) -> None:
        """Verify the config is validated again after options."""
        with pytest.raises(ConfigError, match="invalid port"):
            Platform(base_config, with_port(0))

    def test_options_applied(self, base_config: ServerConfig) -> None:
        """Verify options reach the stored config."""
        platform = Platform(base_config, with_port(9000), with_base_path("/api"))

        assert platform.config.port == 9000
        assert platform.router.prefix == "/api"
        assert platform.telemetry is None
        assert platform.is_serving is False

    def test_telemetry_initialized(
        self, base_config: ServerConfig, mock_logger: MockType
    ) -> None:
        """Verify telemetry is created when enabled."""
        platform = Platform(
            base_config,
            with_telemetry("svc", "1.0.0", "test", "localhost:4317"),
            span_exporter=InMemorySpanExporter(),
        )

        assert isinstance(platform.telemetry, TelemetryManager)
        assert mock_logger.info.call_args.args[0] == "telemetry initialized"
        platform.telemetry.shutdown()

    def test_uvicorn_config(self, base_config: ServerConfig) -> None:
        """Verify server settings are passed to uvicorn."""
        platform = Platform(
            base_config,
            with_idle_timeout(15),
            with_max_header_bytes(4096),
            with_trusted_proxies("10.0.0.1"),
        )

        config = platform._uvicorn_config()

        assert config.timeout_keep_alive == 15
        assert config.h11_max_incomplete_event_size == 4096
        assert config.proxy_headers is True
        assert config.forwarded_allow_ips == ["10.0.0.1"]
        assert config.timeout_graceful_shutdown == 5
        assert config.access_log is False

    def test_untrusted_proxies_by_default(self, base_config: ServerConfig) -> None:
        """Verify forwarded headers are ignored unless proxies are trusted."""
        config = Platform(base_config)._uvicorn_config()

        assert config.proxy_headers is False

    async def test_stop_before_start(self, base_config: ServerConfig) -> None:
        """Verify stopping an unstarted platform fails."""
        with pytest.raises(NotStartedError):
            await Platform(base_config).stop()


@pytest.mark.unit
class TestPlatformRouting:
    """Test routes registered through the platform."""

    async def test_routes_under_base_path(self, base_config: ServerConfig) -> None:
        """Verify verb helpers and groups honour the base path."""
        # Arrange
        platform = Platform(base_config, with_base_path("/api"))

        @platform.get("/ping")
        async def ping() -> dict[str, str]:
            return {"pong": "ok"}

        users = platform.group("/users")

        @users.post("")
        async def create_user() -> dict[str, str]:
            return {"created": "yes"}

        # Act
        transport = ASGITransport(app=platform.app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            ping_response = await client.get("/api/ping")
            create_response = await client.post("/api/users")
            outside = await client.get("/ping")

        # Assert
        assert ping_response.json() == {"pong": "ok"}
        assert create_response.json() == {"created": "yes"}
        assert outside.status_code == 404

    async def test_use_adds_middleware(self, base_config: ServerConfig) -> None:
        """Verify use() installs middleware inside the platform chain."""
        calls: list[str] = []

        class Recorder:
            def __init__(self, app: object, *, name: str) -> None:
                self.app = app
                self.name = name

            async def __call__(self, scope, receive, send) -> None:  # noqa: ANN001
                if scope["type"] == "http":
                    calls.append(self.name)
                await self.app(scope, receive, send)  # type: ignore[operator]

        platform = Platform(base_config)
        platform.use(Recorder, name="recorder")

        @platform.get("/")
        async def root() -> dict[str, str]:
            return {}

        transport = ASGITransport(app=platform.app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.get("/")

        assert calls == ["recorder"]
