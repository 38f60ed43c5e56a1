"""JSON response classes using orjson serialization.

The error-handling middleware answers every failure with ``ErrorJSONResponse``,
so error bodies always carry an explicit ``charset=utf-8`` content type and keep
their fields in declaration order. Other responses sort their keys.
"""

from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from http_platform.api.constants import JSON_MEDIA_TYPE


class ORJSONResponse(JSONResponse):
    """FastAPI Response class using orjson for JSON serialization.

    Attributes:
        media_type: The media type for the response.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - accepts any JSON-serializable content
        """Render the content as JSON using orjson.

        Args:
            content: The content to serialize to JSON.

        Returns:
            bytes: The JSON-encoded bytes.
        """
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json", exclude_none=True)

        # Use consistent sorting for predictable output
        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)


class ErrorJSONResponse(ORJSONResponse):
    """orjson response with an explicit UTF-8 charset for error bodies."""

    media_type = JSON_MEDIA_TYPE

    def render(self, content: Any) -> bytes:  # noqa: ANN401
        """Render the error body keeping message, error, status, cause order."""
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json", exclude_none=True)
        return orjson.dumps(content)
