"""Standardized error response schema.

Every error the platform answers with, whatever its origin, is rendered
as an ``ApiError``:

- **message**: Human-readable description of what went wrong
- **error**: HTTP status text, e.g. "Not Found"
- **status**: Numeric HTTP status
- **cause**: Optional field-level details, one entry per invalid field

``cause`` is omitted from the body when there is nothing to report.
"""

from pydantic import BaseModel, Field


class ErrorCause(BaseModel):
    """Field-level detail attached to an error response."""

    field: str = Field(
        ...,
        description="Name of the field that caused the error",
        examples=["Email", "age"],
    )

    reason: str = Field(
        ...,
        description="Failed rule, with its parameter when it has one",
        examples=["required", "min=18"],
    )


class ApiError(BaseModel):
    """Error response body returned by the platform."""

    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["User not found", "Validation error"],
    )

    error: str = Field(
        ...,
        description="HTTP status text",
        examples=["Not Found", "Bad Request"],
    )

    status: int = Field(
        ...,
        description="HTTP status code",
        examples=[404, 400],
    )

    cause: list[ErrorCause] | None = Field(
        default=None,
        description="Field-level error details",
        examples=[[{"field": "Email", "reason": "required"}]],
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"message": "User not found", "error": "Not Found", "status": 404},
                {
                    "message": "Validation error",
                    "error": "Bad Request",
                    "status": 400,
                    "cause": [
                        {"field": "Email", "reason": "required"},
                        {"field": "Age", "reason": "min=18"},
                    ],
                },
            ]
        }
    }

    def to_body(self) -> dict[str, object]:
        """Return the JSON body, without ``cause`` when there is none."""
        return self.model_dump(mode="json", exclude_none=True)
