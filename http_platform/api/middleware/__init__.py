"""Middleware for cross-cutting request/response concerns.

- **TraceIDMiddleware**: Assigns and echoes the X-Trace-Id header
- **ErrorHandlerMiddleware**: Recovers failures and renders JSON errors
- **ContextCancellationMiddleware**: Skips handlers for gone clients
- **cors**: Options for Starlette's CORSMiddleware
- **TelemetryMiddleware**: One tracing span per request
- **RequestLoggingMiddleware**: Structured logging with performance tracking

Middleware are executed in this order, outermost first:
1. Trace ID (so every later log carries it)
2. Error handling (catches and formats everything below)
3. Context cancellation
4. CORS
5. Telemetry
6. Request logging (observes the handler directly)
"""
