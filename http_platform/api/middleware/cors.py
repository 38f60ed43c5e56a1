"""CORS configuration for Starlette's CORSMiddleware.

Browsers reject credentialed responses that allow every origin, so when
the origin list is exactly ``["*"]`` credentials are always turned off,
whatever the configuration asked for.
"""

from collections.abc import Sequence
from typing import Any

from http_platform.core.config import ServerConfig


def cors_options(
    allowed_origins: Sequence[str],
    allowed_methods: Sequence[str],
    allowed_headers: Sequence[str],
    exposed_headers: Sequence[str],
    *,
    allow_credentials: bool,
    max_age: int,
) -> dict[str, Any]:
    """Build CORSMiddleware keyword arguments.

    Args:
        allowed_origins: Origins allowed to call the API.
        allowed_methods: Methods allowed in cross-origin requests.
        allowed_headers: Request headers allowed in cross-origin requests.
        exposed_headers: Response headers readable by browsers.
        allow_credentials: Whether cookies and auth headers are allowed.
        max_age: Preflight cache duration in seconds.

    Returns:
        dict[str, Any]: Options for ``starlette.middleware.cors.CORSMiddleware``.
    """
    allow_all_origins = list(allowed_origins) == ["*"]
    return {
        "allow_origins": list(allowed_origins),
        "allow_methods": list(allowed_methods),
        "allow_headers": list(allowed_headers),
        "expose_headers": list(exposed_headers),
        "allow_credentials": allow_credentials and not allow_all_origins,
        "max_age": max_age,
    }


def cors_options_from_config(cfg: ServerConfig) -> dict[str, Any]:
    """Build CORSMiddleware keyword arguments from a server config."""
    return cors_options(
        cfg.allowed_origins,
        cfg.allowed_methods,
        cfg.allowed_headers,
        cfg.exposed_headers,
        allow_credentials=cfg.allow_credentials,
        max_age=cfg.max_age,
    )
