"""Client disconnect detection and per-route deadlines.

Key features:
- **Early abort**: ``ContextCancellationMiddleware`` checks, without
  blocking, whether the client already went away before any handler runs.
  If so, a ``RequestCancelledError`` is attached and no handler is invoked.
- **Cooperative polling**: ``is_request_cancelled`` and
  ``get_context_error`` let long-running handlers stop early.
- **Deadlines**: ``with_timeout`` races an endpoint against a timer and
  answers 408 when the timer wins.
"""

import asyncio
import functools
import inspect
import time
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from typing import Any

import anyio
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from http_platform.api.middleware.error_handler import add_error
from http_platform.core.exceptions import RequestCancelledError, RequestTimeoutError

# Monotonic deadline of the current endpoint call, set by with_timeout
_deadline_var: ContextVar[float | None] = ContextVar("deadline", default=None)


async def _poll(receive: Receive) -> Message | None:
    """Return the next ASGI message if one is ready, without waiting."""
    with anyio.CancelScope() as scope:
        scope.cancel()
        return await receive()
    return None


class ContextCancellationMiddleware:
    """ASGI middleware that skips handlers for already-disconnected clients.

    Args:
        app: The ASGI application.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Abort early on disconnect, otherwise run the downstream chain."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        message = await _poll(receive)
        if message is None:
            await self.app(scope, receive, send)
            return

        if message["type"] == "http.disconnect":
            add_error(Request(scope), RequestCancelledError())
            return

        # A body message was read while polling; hand it to the app first
        pending: Message | None = message

        async def replay_receive() -> Message:
            nonlocal pending
            if pending is not None:
                buffered, pending = pending, None
                return buffered
            return await receive()

        await self.app(scope, replay_receive, send)


async def is_request_cancelled(request: Request) -> bool:
    """Return True if the client has disconnected.

    Read the request body before polling: a pending body message is
    consumed by the check.
    """
    return await request.is_disconnected()


def deadline_exceeded() -> bool:
    """Return True if the current ``with_timeout`` deadline has passed."""
    deadline = _deadline_var.get()
    return deadline is not None and time.monotonic() >= deadline


async def get_context_error(request: Request) -> Exception | None:
    """Return why the request should stop, or None to keep going.

    Returns:
        RequestCancelledError if the client disconnected, RequestTimeoutError
        if the route deadline passed, otherwise None.
    """
    if await is_request_cancelled(request):
        return RequestCancelledError()
    if deadline_exceeded():
        return RequestTimeoutError()
    return None


type Endpoint = Callable[..., Any]
type AsyncEndpoint = Callable[..., Awaitable[Any]]


def with_timeout(seconds: float) -> Callable[[Endpoint], AsyncEndpoint]:
    """Limit an endpoint to ``seconds`` of wall-clock time.

    The endpoint runs as a separate unit of work raced against the deadline.
    When the deadline wins, the work is cancelled and ``RequestTimeoutError``
    is raised, which the error handler answers with 408. Sync endpoints run
    in a worker thread; a thread cannot be interrupted, so it is abandoned
    and should poll ``deadline_exceeded``.

    Args:
        seconds: The deadline in seconds.

    Returns:
        A decorator for FastAPI endpoints.

    Example:
        >>> @router.get("/report")
        >>> @with_timeout(2.0)
        >>> async def report() -> dict[str, str]:
        >>>     return await build_report()
    """

    def decorator(func: Endpoint) -> AsyncEndpoint:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:  # noqa: ANN401
            token = _deadline_var.set(time.monotonic() + seconds)
            try:
                if inspect.iscoroutinefunction(func):
                    work = asyncio.ensure_future(func(*args, **kwargs))
                else:
                    work = asyncio.ensure_future(
                        asyncio.to_thread(func, *args, **kwargs)
                    )
                try:
                    return await asyncio.wait_for(work, timeout=seconds)
                except TimeoutError as exc:
                    if work.done() and not work.cancelled():
                        # The endpoint itself raised a timeout
                        raise
                    raise RequestTimeoutError(seconds) from exc
            finally:
                _deadline_var.reset(token)

        return wrapper

    return decorator
