"""Base Pydantic schemas with common patterns.

This module defines base schemas and common patterns used across the API.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Required at runtime for Pydantic
from typing import TYPE_CHECKING, cast

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


class BaseSchema(BaseModel):
    """Base schema with common configuration for all schemas.

    Configures Pydantic v2 settings for consistent behavior across all schemas.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=True,
    )


class BaseResponse(BaseSchema):
    """Base response schema with common fields.

    Includes id, created_at, and updated_at fields common to most responses.
    """

    id: int = Field(
        ...,
        description="Unique identifier",
        examples=[42],
    )
    created_at: datetime = Field(
        ...,
        description="Timestamp when the resource was created",
        examples=["2024-01-15T10:30:00Z"],
    )
    updated_at: datetime = Field(
        ...,
        description="Timestamp when the resource was last updated",
        examples=["2024-01-15T12:45:00Z"],
    )


class ErrorResponse(BaseSchema):
    """Standard error response schema."""

    detail: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Scheduled report '42' not found"],
    )


class SuccessResponse(BaseSchema):
    """Standard success response for operations without return data."""

    success: bool = Field(
        default=True,
        description="Indicates if the operation was successful",
    )
    message: str = Field(
        ...,
        description="Human-readable success message",
        examples=["Scheduled report deleted successfully"],
    )


# Common field definitions for reuse
NameField: FieldInfo = cast(
    "FieldInfo",
    Field(
        ...,
        min_length=1,
        max_length=255,
        description="Display name",
        examples=["Weekly support digest"],
    ),
)

DescriptionField: FieldInfo = cast(
    "FieldInfo",
    Field(
        default=None,
        max_length=2000,
        description="Optional description",
        examples=["Open tickets summary for the support leads"],
    ),
)


__all__ = [
    "BaseResponse",
    "BaseSchema",
    "DescriptionField",
    "ErrorResponse",
    "NameField",
    "SuccessResponse",
]
