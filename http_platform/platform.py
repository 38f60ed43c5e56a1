"""Platform lifecycle: build, serve and gracefully stop an HTTP service.

``Platform`` ties together the validated configuration, the FastAPI
application with its middleware chain, the optional telemetry manager and
a uvicorn server.

Lifecycle:
- **Construction** validates the configuration before and after applying
  options, initializes telemetry and builds the application
- **start()** serves in a background task and waits for SIGINT/SIGTERM,
  the caller's stop event, ``stop()`` or a startup failure
- **Shutdown** stops the listener and the telemetry exporter within 5
  seconds, logging every failure and raising the first one
"""

import asyncio
import contextlib
import signal
import threading
from collections.abc import Callable, Generator
from typing import Any, Final

import uvicorn
from fastapi import FastAPI, params
from opentelemetry.sdk.trace.export import SpanExporter

from http_platform.api.router import (
    Endpoint,
    RouterGroup,
    add_user_middleware,
    create_app,
)
from http_platform.core.config import (
    Logger,
    Option,
    ServerConfig,
    apply_options,
    validate_config,
)
from http_platform.core.constants import SHUTDOWN_TIMEOUT_SECONDS
from http_platform.core.exceptions import (
    AlreadyStartedError,
    LifecycleError,
    NotStartedError,
    ShutdownError,
)
from http_platform.core.observability import TelemetryManager, init_telemetry

HANDLED_SIGNALS: Final[tuple[signal.Signals, ...]] = (signal.SIGINT, signal.SIGTERM)


class _PlatformServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the platform."""

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None]:
        yield

    def install_signal_handlers(self) -> None:
        return


class Platform:
    """An HTTP service with a fixed middleware chain and graceful shutdown.

    Args:
        config: Base configuration, usually from ``default_config``.
        *options: Options applied to ``config`` in order.
        span_exporter: Exporter to use instead of the configured one.

    Raises:
        ConfigError: If the configuration is invalid before or after
            applying the options.

    Example:
        >>> platform = Platform(default_config(logger), with_port(9000))
        >>> @platform.get("/health")
        >>> async def health() -> dict[str, str]:
        >>>     return {"status": "ok"}
        >>> await platform.start()
    """

    def __init__(
        self,
        config: ServerConfig,
        *options: Option,
        span_exporter: SpanExporter | None = None,
    ) -> None:
        validate_config(config)
        config = apply_options(config, *options)
        validate_config(config)

        self.config = config
        self.logger: Logger = config.logger
        self.telemetry: TelemetryManager | None = init_telemetry(
            config, self.logger, span_exporter
        )
        self._app = create_app(config, self.telemetry)
        self.router = RouterGroup(self._app, config.base_path)

        self._lock = threading.Lock()
        self._started = False
        self._server: _PlatformServer | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self._shutdown_task: asyncio.Task[None] | None = None

    @property
    def app(self) -> FastAPI:
        """The underlying FastAPI application."""
        return self._app

    @property
    def is_serving(self) -> bool:
        """True once the listener accepts connections, until shutdown."""
        server = self._server
        return server is not None and server.started and not server.should_exit

    # Routing

    def use(self, middleware_class: type[Any], **options: Any) -> None:  # noqa: ANN401
        """Add middleware running after the platform middleware."""
        add_user_middleware(self._app, middleware_class, **options)

    def group(
        self,
        prefix: str,
        *,
        dependencies: list[params.Depends] | None = None,
        tags: list[str] | None = None,
    ) -> RouterGroup:
        """Create a route group under the base path."""
        return self.router.group(prefix, dependencies=dependencies, tags=tags)

    def get(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a GET route."""
        return self.router.get(path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a POST route."""
        return self.router.post(path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a PUT route."""
        return self.router.put(path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a DELETE route."""
        return self.router.delete(path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a PATCH route."""
        return self.router.patch(path, **kwargs)

    def options(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register an OPTIONS route."""
        return self.router.options(path, **kwargs)

    def head(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:  # noqa: ANN401
        """Register a HEAD route."""
        return self.router.head(path, **kwargs)

    # Lifecycle

    def _uvicorn_config(self) -> uvicorn.Config:
        cfg = self.config
        trusted = cfg.trusted_proxies
        return uvicorn.Config(
            self._app,
            host=cfg.host,
            port=cfg.port,
            timeout_keep_alive=max(1, int(cfg.idle_timeout)),
            h11_max_incomplete_event_size=cfg.max_header_bytes,
            proxy_headers=bool(trusted),
            forwarded_allow_ips=list(trusted) if trusted else None,
            timeout_graceful_shutdown=int(SHUTDOWN_TIMEOUT_SECONDS),
            access_log=False,
            log_config=None,
        )

    async def _serve(self, server: _PlatformServer) -> None:
        self.logger.info("server started", port=self.config.port, mode=self.config.mode)
        try:
            await server.serve()
        except SystemExit as exc:
            # uvicorn exits the process when it cannot bind
            raise LifecycleError("server failed to start", cause=exc) from exc

    async def _wait_for_signal(self) -> signal.Signals:
        loop = asyncio.get_running_loop()
        received: asyncio.Future[signal.Signals] = loop.create_future()

        def on_signal(sig: signal.Signals) -> None:
            if not received.done():
                received.set_result(sig)

        installed: list[signal.Signals] = []
        for sig in HANDLED_SIGNALS:
            try:
                loop.add_signal_handler(sig, on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Unsupported loop or not the main thread: rely on stop()
                continue
            installed.append(sig)

        try:
            return await received
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

    async def start(self, stop_event: asyncio.Event | None = None) -> None:
        """Serve until a signal, the stop event or ``stop()``, then shut down.

        Args:
            stop_event: Event that requests shutdown when set.

        Raises:
            AlreadyStartedError: If the platform was started before.
            LifecycleError: If the server fails to start.
            ShutdownError: If graceful shutdown fails.
        """
        with self._lock:
            if self._started:
                raise AlreadyStartedError
            self._started = True
            self._server = _PlatformServer(self._uvicorn_config())
            self._stop_event = stop_event or asyncio.Event()

        server = self._server
        serve_task = asyncio.create_task(self._serve(server), name="platform-serve")
        self._serve_task = serve_task
        stop_wait = asyncio.create_task(self._stop_event.wait())
        signal_wait = asyncio.create_task(self._wait_for_signal())

        try:
            done, _ = await asyncio.wait(
                {serve_task, stop_wait, signal_wait},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in (stop_wait, signal_wait):
                waiter.cancel()
            await asyncio.gather(stop_wait, signal_wait, return_exceptions=True)

        if serve_task in done:
            if (exc := serve_task.exception()) is not None:
                if isinstance(exc, LifecycleError):
                    raise exc
                raise LifecycleError("server failed to start", cause=exc) from exc
            if not server.started:
                raise LifecycleError("server failed to start")

        if signal_wait in done and not signal_wait.cancelled():
            self.logger.info(
                "shutdown signal received", signal=signal_wait.result().name
            )
        else:
            self.logger.info("context cancelled, shutting down")

        await self._shutdown()

    async def stop(self) -> None:
        """Shut down a started platform without waiting for a signal.

        Raises:
            NotStartedError: If the platform was never started.
            ShutdownError: If graceful shutdown fails.
        """
        with self._lock:
            if self._server is None:
                raise NotStartedError
        if self._stop_event is not None:
            self._stop_event.set()
        await self._shutdown()

    def run(self) -> None:
        """Blocking convenience wrapper around ``start``."""
        asyncio.run(self.start())

    async def _shutdown(self) -> None:
        # Concurrent callers share one shutdown sequence
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.create_task(self._run_shutdown())
        await self._shutdown_task

    async def _run_shutdown(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + SHUTDOWN_TIMEOUT_SECONDS
        errors: list[BaseException] = []
        self.logger.info("shutting down server...")

        if self._server is not None and self._serve_task is not None:
            self._server.should_exit = True
            try:
                await asyncio.wait_for(
                    asyncio.shield(self._serve_task),
                    timeout=max(0.0, deadline - loop.time()),
                )
            except TimeoutError as exc:
                # Abandon connections still open at the deadline
                self._server.force_exit = True
                errors.append(exc)
            except Exception as exc:  # noqa: BLE001 - collected and re-raised below
                errors.append(exc)

        if self.telemetry is not None:
            try:
                await asyncio.wait_for(
                    asyncio.to_thread(self.telemetry.shutdown),
                    timeout=max(0.0, deadline - loop.time()),
                )
            except Exception as exc:  # noqa: BLE001 - collected and re-raised below
                errors.append(exc)

        for error in errors:
            self.logger.error(
                "error during shutdown",
                error=str(error) or type(error).__name__,
                error_type=type(error).__name__,
            )
        if errors:
            raise ShutdownError(errors[0], errors)

        self.logger.info("server stopped gracefully")
