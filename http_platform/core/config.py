"""Server configuration, functional options and environment settings.

This module implements the configuration layer of the platform using
Pydantic, providing an immutable, validated server configuration that is
assembled from documented defaults plus an ordered list of options.

Features:
- **Immutable config**: ServerConfig is frozen; options return new copies
- **Functional options**: Small composable functions applied in order
- **Validation**: Every invariant is checked with a field-specific error
- **Environment variables**: PlatformSettings reads HTTP_PLATFORM_* variables
  and .env files, with __ as the nested delimiter
- **Caching**: Environment settings are cached for performance

Configuration sources for PlatformSettings (in order of precedence):
1. Environment variables
2. .env file in project root
3. Default values in model definitions
"""

from collections.abc import Callable
from functools import lru_cache
from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from http_platform.core.constants import (
    DEFAULT_ALLOWED_METHODS,
    DEFAULT_EXPOSED_HEADERS,
    DEFAULT_IDLE_TIMEOUT,
    DEFAULT_MAX_AGE,
    DEFAULT_MAX_HEADER_BYTES,
    DEFAULT_OTLP_ENDPOINT,
    DEFAULT_PORT,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_WRITE_TIMEOUT,
    MAX_PORT,
    VALID_MODES,
)
from http_platform.core.exceptions import ConfigError

type Mode = Literal["debug", "release", "test"]
type ExporterKind = Literal["otlp", "console"]


@runtime_checkable
class Logger(Protocol):
    """Structured logger collaborator used by the platform.

    loguru's ``logger`` satisfies this protocol; any object with the same
    methods can be injected instead.
    """

    def debug(self, message: str, /, *args: Any, **fields: Any) -> None:  # noqa: ANN401
        """Log a debug message with structured fields."""
        ...

    def info(self, message: str, /, *args: Any, **fields: Any) -> None:  # noqa: ANN401
        """Log an info message with structured fields."""
        ...

    def warning(self, message: str, /, *args: Any, **fields: Any) -> None:  # noqa: ANN401
        """Log a warning message with structured fields."""
        ...

    def error(self, message: str, /, *args: Any, **fields: Any) -> None:  # noqa: ANN401
        """Log an error message with structured fields."""
        ...


class ServerConfig(BaseModel):
    """Immutable configuration of an HTTP platform instance.

    Durations are expressed in seconds. Use ``default_config`` and the
    ``with_*`` / ``without_*`` options rather than constructing this directly.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    # Server
    host: str = Field(default="0.0.0.0", description="Bind address")  # noqa: S104
    port: int = Field(default=DEFAULT_PORT, description="Listen port")
    mode: str = Field(default="debug", description="One of debug, release, test")
    read_timeout: float = Field(default=DEFAULT_READ_TIMEOUT)
    write_timeout: float = Field(default=DEFAULT_WRITE_TIMEOUT)
    idle_timeout: float = Field(default=DEFAULT_IDLE_TIMEOUT)
    max_header_bytes: int = Field(default=DEFAULT_MAX_HEADER_BYTES)
    logger: Any = Field(default=None, description="Logger collaborator (required)")

    # CORS
    allowed_origins: tuple[str, ...] = Field(default=("*",))
    allowed_methods: tuple[str, ...] = Field(default=DEFAULT_ALLOWED_METHODS)
    allowed_headers: tuple[str, ...] = Field(default=("*",))
    exposed_headers: tuple[str, ...] = Field(default=DEFAULT_EXPOSED_HEADERS)
    allow_credentials: bool = Field(default=False)
    max_age: int = Field(default=DEFAULT_MAX_AGE, description="Preflight cache (s)")

    # Middleware toggles
    enable_trace_id: bool = True
    enable_cors: bool = True
    enable_logger: bool = True
    enable_context_cancellation: bool = True

    # Routing
    base_path: str = ""
    trusted_proxies: tuple[str, ...] | None = None

    # Telemetry
    enable_telemetry: bool = False
    service_name: str = "http-platform-service"
    service_version: str = "1.0.0"
    environment: str = "development"
    otlp_endpoint: str = DEFAULT_OTLP_ENDPOINT
    telemetry_sample_all: bool = True
    telemetry_exporter: ExporterKind = "otlp"

    # Request logging
    log_excluded_paths: tuple[str, ...] = ()
    slow_request_threshold_ms: int | None = None


type Option = Callable[[ServerConfig], ServerConfig]


def default_config(logger: Logger | None = None) -> ServerConfig:
    """Return the default server configuration.

    Args:
        logger: Optional logger collaborator. Validation fails until one is set.

    Returns:
        ServerConfig: Configuration holding the documented defaults.
    """
    return ServerConfig(logger=logger)


def validate_config(cfg: ServerConfig) -> None:
    """Check every configuration invariant.

    Args:
        cfg: The configuration to check.

    Raises:
        ConfigError: On the first violated invariant, naming the field.
    """
    if cfg.logger is None:
        raise ConfigError("logger cannot be nil", field="logger")
    if not 1 <= cfg.port <= MAX_PORT:
        raise ConfigError("invalid port", field="port")
    if cfg.mode not in VALID_MODES:
        raise ConfigError("invalid mode: must be debug, release, or test", field="mode")
    for name in ("read_timeout", "write_timeout", "idle_timeout"):
        if getattr(cfg, name) <= 0:
            raise ConfigError(f"{name} must be positive", field=name)
    if cfg.enable_cors and cfg.allow_credentials and cfg.allowed_origins == ("*",):
        raise ConfigError(
            "CORS: allow_credentials cannot be true when allowed_origins is ['*']. "
            "Either set allow_credentials to false or specify explicit origins",
            field="allow_credentials",
        )


def apply_options(cfg: ServerConfig, *options: Option) -> ServerConfig:
    """Apply options in order; later options override earlier ones."""
    for option in options:
        cfg = option(cfg)
    return cfg


def _set(**update: Any) -> Option:  # noqa: ANN401
    def option(cfg: ServerConfig) -> ServerConfig:
        return cfg.model_copy(update=update)

    return option


# Server options


def with_host(host: str) -> Option:
    """Bind the listener to the given address."""
    return _set(host=host)


def with_port(port: int) -> Option:
    """Listen on the given port."""
    return _set(port=port)


def with_mode(mode: str) -> Option:
    """Select the server mode (debug, release or test)."""
    return _set(mode=mode)


def with_logger(logger: Logger) -> Option:
    """Use the given logger collaborator."""
    return _set(logger=logger)


def with_read_timeout(seconds: float) -> Option:
    """Set the read timeout in seconds."""
    return _set(read_timeout=seconds)


def with_write_timeout(seconds: float) -> Option:
    """Set the write timeout in seconds."""
    return _set(write_timeout=seconds)


def with_idle_timeout(seconds: float) -> Option:
    """Set the keep-alive idle timeout in seconds."""
    return _set(idle_timeout=seconds)


def with_max_header_bytes(size: int) -> Option:
    """Limit the size of request headers."""
    return _set(max_header_bytes=size)


# CORS options


def with_cors(*origins: str) -> Option:
    """Enable CORS for the given origins."""
    return _set(enable_cors=True, allowed_origins=tuple(origins))


def with_allowed_methods(*methods: str) -> Option:
    """Set the methods allowed by CORS."""
    return _set(allowed_methods=tuple(methods))


def with_allowed_headers(*headers: str) -> Option:
    """Set the request headers allowed by CORS."""
    return _set(allowed_headers=tuple(headers))


def with_exposed_headers(*headers: str) -> Option:
    """Set the response headers exposed to browsers."""
    return _set(exposed_headers=tuple(headers))


def with_allow_credentials(allow: bool) -> Option:  # noqa: FBT001
    """Allow credentialed cross-origin requests."""
    return _set(allow_credentials=allow)


def with_max_age(seconds: int) -> Option:
    """Set how long browsers may cache preflight responses."""
    return _set(max_age=seconds)


# Middleware toggles


def without_trace_id() -> Option:
    """Disable the trace ID middleware."""
    return _set(enable_trace_id=False)


def without_cors() -> Option:
    """Disable the CORS middleware."""
    return _set(enable_cors=False)


def without_logger() -> Option:
    """Disable the request logging middleware."""
    return _set(enable_logger=False)


def without_context_cancellation() -> Option:
    """Disable the context cancellation middleware."""
    return _set(enable_context_cancellation=False)


# Routing options


def with_base_path(path: str) -> Option:
    """Prefix every registered route with the given path."""
    return _set(base_path=path)


def with_trusted_proxies(*proxies: str) -> Option:
    """Trust forwarding headers from the given proxy addresses."""
    return _set(trusted_proxies=tuple(proxies))


# Telemetry options


def with_telemetry(
    service_name: str,
    service_version: str,
    environment: str,
    otlp_endpoint: str,
) -> Option:
    """Enable OpenTelemetry tracing with the given service identity."""
    return _set(
        enable_telemetry=True,
        service_name=service_name,
        service_version=service_version,
        environment=environment,
        otlp_endpoint=otlp_endpoint,
    )


def with_telemetry_sampling(sample_all: bool) -> Option:  # noqa: FBT001
    """Sample every trace, or 10% of root traces when False."""
    return _set(telemetry_sample_all=sample_all)


def with_telemetry_exporter(kind: ExporterKind) -> Option:
    """Export spans over OTLP or through the loguru console exporter."""
    return _set(telemetry_exporter=kind)


def without_telemetry() -> Option:
    """Disable OpenTelemetry tracing."""
    return _set(enable_telemetry=False)


# Request logging options


def with_log_excluded_paths(*paths: str) -> Option:
    """Skip request logging for the given paths."""
    return _set(log_excluded_paths=tuple(paths))


def with_slow_request_threshold(threshold_ms: int) -> Option:
    """Warn about requests slower than the threshold in milliseconds."""
    return _set(slow_request_threshold_ms=threshold_ms)


class LogConfig(BaseModel):
    """Logging configuration for the embedding application."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_formatter_type: Literal["console", "json"] = Field(
        default="console",
        description="Log output formatter",
    )
    excluded_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Paths to exclude from request logging",
    )
    slow_request_threshold_ms: int | None = Field(
        default=1000,
        gt=0,
        description="Threshold for slow request warnings (milliseconds)",
    )


class PlatformSettings(BaseSettings):
    """Environment-driven settings for building a ServerConfig."""

    model_config = SettingsConfigDict(
        env_prefix="HTTP_PLATFORM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
        extra="ignore",
    )

    host: str = Field(default="0.0.0.0", description="Bind address")  # noqa: S104
    port: int = Field(default=DEFAULT_PORT, description="Listen port")
    mode: Literal["debug", "release", "test"] = Field(default="debug")
    base_path: str = Field(default="", description="Route prefix")
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])
    allow_credentials: bool = False

    enable_telemetry: bool = False
    service_name: str = "http-platform-service"
    service_version: str = "1.0.0"
    environment: str = "development"
    otlp_endpoint: str = DEFAULT_OTLP_ENDPOINT
    telemetry_sample_all: bool = True
    telemetry_exporter: Literal["otlp", "console"] = "otlp"

    log_config: LogConfig = Field(
        default_factory=LogConfig, description="Logging configuration"
    )

    @field_validator("base_path", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str:
        """Normalize the base path so that "/api/" and "/api" are equivalent."""
        if not v:
            return ""
        return v.rstrip("/")

    @property
    def debug(self) -> bool:
        """Debug mode flag."""
        return self.mode == "debug"

    def to_config(self, logger: Logger) -> ServerConfig:
        """Build a ServerConfig from these settings.

        Args:
            logger: Logger collaborator for the platform.

        Returns:
            ServerConfig: The resulting configuration (not yet validated).
        """
        return apply_options(
            default_config(logger),
            with_host(self.host),
            with_port(self.port),
            with_mode(self.mode),
            with_base_path(self.base_path),
            with_cors(*self.allowed_origins),
            with_allow_credentials(self.allow_credentials),
            _set(
                enable_telemetry=self.enable_telemetry,
                service_name=self.service_name,
                service_version=self.service_version,
                environment=self.environment,
                otlp_endpoint=self.otlp_endpoint,
                telemetry_sample_all=self.telemetry_sample_all,
                telemetry_exporter=self.telemetry_exporter,
                log_excluded_paths=tuple(self.log_config.excluded_paths),
                slow_request_threshold_ms=self.log_config.slow_request_threshold_ms,
            ),
        )


@lru_cache
def get_settings() -> PlatformSettings:
    """Get cached settings instance."""
    return PlatformSettings()
