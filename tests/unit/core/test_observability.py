"""Unit tests for per-platform OpenTelemetry setup."""

import pytest
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)
from opentelemetry.sdk.trace.sampling import ALWAYS_ON, ParentBased
from pytest_mock import MockerFixture, MockType

from http_platform.core.config import (
    ServerConfig,
    apply_options,
    with_telemetry,
    with_telemetry_exporter,
)
from http_platform.core.observability import (
    LoguruSpanExporter,
    TelemetryManager,
    build_sampler,
    get_span_exporter,
    init_telemetry,
)


@pytest.fixture
def telemetry_config(base_config: ServerConfig) -> ServerConfig:
    """Provide a configuration with telemetry enabled."""
    return with_telemetry("orders", "2.0.0", "test", "localhost:4317")(base_config)


@pytest.mark.unit
class TestSamplerAndExporter:
    """Test sampler and exporter selection."""

    def test_sample_all(self) -> None:
        """Verify sample_all records every trace."""
        assert build_sampler(True) is ALWAYS_ON  # noqa: FBT003

    def test_ratio_sampler_follows_parent(self) -> None:
        """Verify partial sampling respects the parent decision."""
        sampler = build_sampler(False)  # noqa: FBT003

        assert isinstance(sampler, ParentBased)

    def test_otlp_exporter_by_default(self, telemetry_config: ServerConfig) -> None:
        """Verify OTLP is the default exporter."""
        assert isinstance(get_span_exporter(telemetry_config), OTLPSpanExporter)

    def test_console_exporter(self, telemetry_config: ServerConfig) -> None:
        """Verify the console exporter writes through Loguru."""
        cfg = with_telemetry_exporter("console")(telemetry_config)

        assert isinstance(get_span_exporter(cfg), LoguruSpanExporter)


@pytest.mark.unit
class TestTelemetryManager:
    """Test TelemetryManager."""

    def test_resource_attributes(self, telemetry_config: ServerConfig) -> None:
        """Verify spans carry the service identity."""
        exporter = InMemorySpanExporter()
        manager = TelemetryManager.from_config(telemetry_config, exporter)

        with manager.tracer.start_as_current_span("work"):
            pass
        manager.shutdown()

        (span,) = exporter.get_finished_spans()
        attributes = span.resource.attributes
        assert attributes["service.name"] == "orders"
        assert attributes["service.version"] == "2.0.0"
        assert attributes["deployment.environment"] == "test"

    def test_loguru_exporter_logs_spans(
        self, telemetry_config: ServerConfig, mocker: MockerFixture
    ) -> None:
        """Verify the console exporter logs one entry per span."""
        mock_logger = mocker.patch("http_platform.core.observability.logger")
        cfg = apply_options(telemetry_config, with_telemetry_exporter("console"))
        manager = TelemetryManager.from_config(cfg)

        with manager.tracer.start_as_current_span("GET /users"):
            pass
        manager.shutdown()

        mock_logger.bind.return_value.debug.assert_called_once_with(
            "Trace span completed: {}", "GET /users"
        )


@pytest.mark.unit
class TestInitTelemetry:
    """Test init_telemetry."""

    def test_disabled(self, base_config: ServerConfig, mock_logger: MockType) -> None:
        """Verify nothing is created when telemetry is off."""
        assert init_telemetry(base_config, mock_logger) is None
        mock_logger.info.assert_not_called()

    def test_enabled(
        self, telemetry_config: ServerConfig, mock_logger: MockType
    ) -> None:
        """Verify a manager is created and logged."""
        manager = init_telemetry(telemetry_config, mock_logger, InMemorySpanExporter())

        assert isinstance(manager, TelemetryManager)
        assert mock_logger.info.call_args.args[0] == "telemetry initialized"
        assert mock_logger.info.call_args.kwargs["service_name"] == "orders"
        manager.shutdown()

    def test_failure_continues_without_telemetry(
        self,
        telemetry_config: ServerConfig,
        mock_logger: MockType,
        mocker: MockerFixture,
    ) -> None:
        """Verify initialization failures are logged and swallowed."""
        mocker.patch(
            "http_platform.core.observability.TelemetryManager.from_config",
            side_effect=RuntimeError("no exporter"),
        )

        assert init_telemetry(telemetry_config, mock_logger) is None
        mock_logger.error.assert_called_once_with(
            "failed to initialize telemetry, continuing without it",
            error="no exporter",
            error_type="RuntimeError",
        )
