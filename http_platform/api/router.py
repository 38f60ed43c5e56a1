"""FastAPI application assembly and route registration.

This module builds the FastAPI application behind a platform and exposes
route registration through ``RouterGroup``.

Middleware runs in a fixed order, outermost first:
1. Trace ID (optional)
2. Error handling and recovery (always)
3. Context cancellation (optional)
4. CORS (optional)
5. Telemetry (optional)
6. Request logging (optional)
7. Middleware added with ``use``

Routes registered through a group are nested under the configured base
path; groups can be nested further and carry shared dependencies.
"""

from collections.abc import Callable, Sequence
from typing import Any

from fastapi import FastAPI, params
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

from http_platform.api.middleware.cancellation import ContextCancellationMiddleware
from http_platform.api.middleware.cors import cors_options_from_config
from http_platform.api.middleware.error_handler import (
    ErrorHandlerMiddleware,
    register_exception_handlers,
)
from http_platform.api.middleware.request_logging import RequestLoggingMiddleware
from http_platform.api.middleware.telemetry import TelemetryMiddleware
from http_platform.api.middleware.trace import TraceIDMiddleware
from http_platform.api.utils.responses import ORJSONResponse
from http_platform.core.config import ServerConfig
from http_platform.core.exceptions import LifecycleError
from http_platform.core.observability import TelemetryManager

type Endpoint = Callable[..., Any]


def join_paths(prefix: str, path: str) -> str:
    """Join a group prefix and a route path with exactly one slash."""
    if not prefix:
        return path or "/"
    if not path:
        return prefix
    return prefix.rstrip("/") + "/" + path.lstrip("/")


def build_middleware(
    cfg: ServerConfig, telemetry: TelemetryManager | None = None
) -> list[Middleware]:
    """Return the platform middleware, outermost first.

    Args:
        cfg: Validated server configuration.
        telemetry: Telemetry manager, when tracing is active.

    Returns:
        list[Middleware]: Middleware definitions in execution order.
    """
    middleware: list[Middleware] = []
    if cfg.enable_trace_id:
        middleware.append(Middleware(TraceIDMiddleware))
    cors_options = cors_options_from_config(cfg) if cfg.enable_cors else None
    middleware.append(
        Middleware(
            ErrorHandlerMiddleware, logger=cfg.logger, cors_options=cors_options
        )
    )
    if cfg.enable_context_cancellation:
        middleware.append(Middleware(ContextCancellationMiddleware))
    if cors_options is not None:
        middleware.append(Middleware(CORSMiddleware, **cors_options))
    if telemetry is not None:
        middleware.append(Middleware(TelemetryMiddleware, tracer=telemetry.tracer))
    if cfg.enable_logger:
        middleware.append(
            Middleware(
                RequestLoggingMiddleware,
                logger=cfg.logger,
                excluded_paths=cfg.log_excluded_paths,
                slow_request_threshold_ms=cfg.slow_request_threshold_ms,
            )
        )
    return middleware


def create_app(
    cfg: ServerConfig, telemetry: TelemetryManager | None = None
) -> FastAPI:
    """Create the FastAPI application for a platform.

    Args:
        cfg: Validated server configuration.
        telemetry: Telemetry manager, when tracing is active.

    Returns:
        FastAPI: Application with the platform middleware installed.
    """
    application = FastAPI(
        title=cfg.service_name,
        version=cfg.service_version,
        debug=cfg.mode == "debug",
        default_response_class=ORJSONResponse,
        middleware=build_middleware(cfg, telemetry),
    )
    register_exception_handlers(application, cfg.logger)
    return application


def add_user_middleware(
    app: FastAPI, middleware_class: type[Any], **options: Any  # noqa: ANN401
) -> None:
    """Append middleware inside the platform chain.

    Args:
        app: The platform application.
        middleware_class: ASGI middleware class.
        **options: Keyword arguments for the middleware.

    Raises:
        LifecycleError: If the application already started serving.
    """
    if app.middleware_stack is not None:
        raise LifecycleError("cannot add middleware after the server started")
    app.user_middleware.append(Middleware(middleware_class, **options))


class RouterGroup:
    """Registers routes on a FastAPI app under a shared prefix.

    Args:
        app: The FastAPI application.
        prefix: Path prefix of every route in the group.
        dependencies: Dependencies applied to every route in the group.
        tags: OpenAPI tags applied to every route in the group.
    """

    def __init__(
        self,
        app: FastAPI,
        prefix: str = "",
        dependencies: Sequence[params.Depends] | None = None,
        tags: Sequence[str] | None = None,
    ) -> None:
        self.app = app
        self.prefix = prefix
        self.dependencies = list(dependencies or [])
        self.tags = list(tags or [])

    def group(
        self,
        prefix: str,
        *,
        dependencies: Sequence[params.Depends] | None = None,
        tags: Sequence[str] | None = None,
    ) -> "RouterGroup":
        """Create a nested group; prefixes, dependencies and tags accumulate."""
        return RouterGroup(
            self.app,
            join_paths(self.prefix, prefix),
            [*self.dependencies, *(dependencies or [])],
            [*self.tags, *(tags or [])],
        )

    def full_path(self, path: str) -> str:
        """Return the absolute path a route of this group is served at."""
        return join_paths(self.prefix, path)

    def add_route(
        self,
        path: str,
        endpoint: Endpoint,
        *,
        methods: Sequence[str],
        **kwargs: Any,  # noqa: ANN401
    ) -> None:
        """Register an endpoint for the given methods.

        Args:
            path: Route path relative to the group prefix.
            endpoint: The handler.
            methods: HTTP methods served by the handler.
            **kwargs: Extra arguments for ``FastAPI.add_api_route``.
        """
        dependencies = [*self.dependencies, *kwargs.pop("dependencies", [])]
        tags = [*self.tags, *kwargs.pop("tags", [])]
        self.app.add_api_route(
            self.full_path(path),
            endpoint,
            methods=list(methods),
            dependencies=dependencies or None,
            tags=tags or None,
            **kwargs,
        )

    def route(
        self, path: str, *, methods: Sequence[str], **kwargs: Any  # noqa: ANN401
    ) -> Callable[[Endpoint], Endpoint]:
        """Decorator form of ``add_route``."""

        def decorator(endpoint: Endpoint) -> Endpoint:
            self.add_route(path, endpoint, methods=methods, **kwargs)
            return endpoint

        return decorator

    def get(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a GET route."""
        return self.route(path, methods=["GET"], **kwargs)

    def post(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a POST route."""
        return self.route(path, methods=["POST"], **kwargs)

    def put(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a PUT route."""
        return self.route(path, methods=["PUT"], **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a DELETE route."""
        return self.route(path, methods=["DELETE"], **kwargs)

    def patch(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a PATCH route."""
        return self.route(path, methods=["PATCH"], **kwargs)

    def options(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register an OPTIONS route."""
        return self.route(path, methods=["OPTIONS"], **kwargs)

    def head(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a HEAD route."""
        return self.route(path, methods=["HEAD"], **kwargs)
