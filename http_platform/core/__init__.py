"""Core package for shared platform functionality.

- **config**: Server configuration, options and environment settings
- **constants**: Defaults and limits
- **context**: Request trace ID storage in context variables
- **exceptions**: Structured exception hierarchy with error codes
- **logging**: Loguru setup for embedding applications
- **observability**: OpenTelemetry tracer provider per platform
- **types**: Type aliases for better code clarity
"""
