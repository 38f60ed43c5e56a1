"""HTTP layer of the platform, built on FastAPI and Starlette.

Key components:
- **router**: Application factory, middleware order and route groups
- **classification**: Mapping from exceptions to HTTP status and body
- **middleware**: Cross-cutting concerns for all requests
  - Trace ID assignment and propagation
  - Error handling and recovery with consistent responses
  - Client disconnect detection and per-route deadlines
  - CORS, tracing spans and structured request logging
- **schemas**: Error response model
- **utils**: orjson responses and request helpers
"""
