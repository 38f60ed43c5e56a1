"""Core platform constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000
SHUTDOWN_TIMEOUT_SECONDS = 5.0

# Server defaults
DEFAULT_PORT = 8080
MAX_PORT = 65535
VALID_MODES = frozenset({"debug", "release", "test"})
DEFAULT_READ_TIMEOUT = 30.0
DEFAULT_WRITE_TIMEOUT = 30.0
DEFAULT_IDLE_TIMEOUT = 60.0
DEFAULT_MAX_HEADER_BYTES = 1 << 20

# CORS defaults
DEFAULT_ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD")
DEFAULT_EXPOSED_HEADERS = ("Content-Length", "X-Trace-Id")
DEFAULT_MAX_AGE = 12 * 60 * 60

# Telemetry defaults
DEFAULT_OTLP_ENDPOINT = "localhost:4317"
DEFAULT_SAMPLE_RATIO = 0.1
SPAN_SCHEDULE_DELAY_MILLIS = 5000
SPAN_MAX_EXPORT_BATCH_SIZE = 512
