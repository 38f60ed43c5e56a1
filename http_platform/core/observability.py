"""OpenTelemetry tracing owned by a platform instance.

Each platform that enables telemetry gets its own ``TelemetryManager``
wrapping an SDK ``TracerProvider``. The provider is never installed as the
process-global one, so several platforms (or tests) can coexist.

Exporters:
- **otlp**: OTLP over gRPC to a local agent or collector
- **console**: Spans written through Loguru, for local development
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from loguru import logger
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import (
    ALWAYS_ON,
    ParentBased,
    Sampler,
    TraceIdRatioBased,
)

from http_platform.core.constants import (
    DEFAULT_SAMPLE_RATIO,
    SPAN_SCHEDULE_DELAY_MILLIS,
    SPAN_MAX_EXPORT_BATCH_SIZE,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from opentelemetry.trace import Tracer

    from http_platform.core.config import Logger, ServerConfig

SERVICE_NAME_KEY: Final[str] = "service.name"
SERVICE_VERSION_KEY: Final[str] = "service.version"
ENVIRONMENT_KEY: Final[str] = "deployment.environment"
TRACER_NAME: Final[str] = "http_platform"


class LoguruSpanExporter(SpanExporter):
    """Span exporter that writes finished spans through Loguru."""

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        """Log one debug entry per span."""
        for span in spans:
            span_context = span.get_span_context()
            if not span_context:
                continue

            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) // 1_000_000

            logger.bind(
                otel_trace_id=f"0x{span_context.trace_id:032x}",
                span_id=f"0x{span_context.span_id:016x}",
                span_name=span.name,
                span_kind=span.kind.name,
                duration_ms=duration_ms,
                attributes=dict(span.attributes or {}),
                status=span.status.status_code.name,
            ).debug("Trace span completed: {}", span.name)

        return SpanExportResult.SUCCESS


def build_sampler(sample_all: bool) -> Sampler:  # noqa: FBT001
    """Sample everything, or 10% of root traces following the parent otherwise."""
    if sample_all:
        return ALWAYS_ON
    return ParentBased(TraceIdRatioBased(DEFAULT_SAMPLE_RATIO))


def get_span_exporter(cfg: ServerConfig) -> SpanExporter:
    """Return the exporter selected by the configuration.

    Args:
        cfg: Server configuration.

    Returns:
        SpanExporter: OTLP gRPC exporter or the Loguru exporter.
    """
    if cfg.telemetry_exporter == "console":
        return LoguruSpanExporter()
    # The agent is expected to be local, so no TLS
    return OTLPSpanExporter(endpoint=cfg.otlp_endpoint, insecure=True)


class TelemetryManager:
    """Owns the tracer provider of one platform instance.

    Args:
        provider: The configured SDK tracer provider.
    """

    def __init__(self, provider: TracerProvider) -> None:
        self.provider = provider
        self.tracer: Tracer = provider.get_tracer(TRACER_NAME)

    @classmethod
    def from_config(
        cls, cfg: ServerConfig, exporter: SpanExporter | None = None
    ) -> TelemetryManager:
        """Build a manager from the telemetry settings of a config.

        Args:
            cfg: Server configuration.
            exporter: Exporter to use instead of the configured one.

        Returns:
            TelemetryManager: Manager with a batch span processor attached.
        """
        resource = Resource.create(
            {
                SERVICE_NAME_KEY: cfg.service_name,
                SERVICE_VERSION_KEY: cfg.service_version,
                ENVIRONMENT_KEY: cfg.environment,
            }
        )
        provider = TracerProvider(
            resource=resource, sampler=build_sampler(cfg.telemetry_sample_all)
        )
        provider.add_span_processor(
            BatchSpanProcessor(
                exporter or get_span_exporter(cfg),
                schedule_delay_millis=SPAN_SCHEDULE_DELAY_MILLIS,
                max_export_batch_size=SPAN_MAX_EXPORT_BATCH_SIZE,
            )
        )
        return cls(provider)

    def shutdown(self) -> None:
        """Flush pending spans and stop the exporter."""
        self.provider.shutdown()


def init_telemetry(
    cfg: ServerConfig, log: Logger, exporter: SpanExporter | None = None
) -> TelemetryManager | None:
    """Create the telemetry manager, or None when it is disabled or fails.

    Initialization failures are logged and leave telemetry disabled; they
    never prevent the server from starting.

    Args:
        cfg: Server configuration.
        log: Logger receiving the outcome.
        exporter: Exporter to use instead of the configured one.

    Returns:
        TelemetryManager | None: The manager, if telemetry is active.
    """
    if not cfg.enable_telemetry:
        return None
    try:
        manager = TelemetryManager.from_config(cfg, exporter)
    except Exception as exc:  # noqa: BLE001 - telemetry is optional
        log.error(
            "failed to initialize telemetry, continuing without it",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return None

    log.info(
        "telemetry initialized",
        service_name=cfg.service_name,
        service_version=cfg.service_version,
        environment=cfg.environment,
        exporter=cfg.telemetry_exporter,
        sample_all=cfg.telemetry_sample_all,
    )
    return manager
