"""Image-related Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ImageRecord(BaseModel):
    """Stored metadata of an original image."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "account_id": "christer",
                    "image_identifier": "929db9c5fc3099f7576f5655207eba47",
                    "width": 665,
                    "height": 463,
                    "mime_type": "image/png",
                    "checksum": "929db9c5fc3099f7576f5655207eba47",
                    "size": 95576,
                    "created_at": "2024-05-01T12:00:00Z",
                    "updated_at": "2024-05-01T12:00:00Z",
                    "metadata": {"photographer": "Christer"},
                }
            ]
        }
    )

    account_id: str = Field(..., min_length=3, description="Owner of the image")
    image_identifier: str = Field(
        ...,
        description="MD5 hex digest of the original image bytes",
        min_length=32,
        max_length=32,
        pattern="^[a-f0-9]{32}$",
    )
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    mime_type: str
    checksum: str
    size: int = Field(..., ge=0, description="Size of the original in bytes")
    created_at: datetime
    updated_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("image_identifier", mode="before")
    @classmethod
    def normalize_identifier(cls, v: str) -> str:
        """Lower-case hex identifiers before validation."""
        if isinstance(v, str):
            return v.lower()
        return v


class ImageUploadResponse(BaseModel):
    """Response model for a successful image upload.

    The image_identifier is an MD5 hash of the image content, so uploading
    the same bytes twice returns the same identifier.
    """

    image_identifier: str = Field(
        ...,
        description="Unique identifier for the uploaded image.",
        min_length=32,
        max_length=32,
        pattern="^[a-f0-9]{32}$",
    )
    width: int
    height: int
    mime_type: str
    created: bool = Field(
        ...,
        description="False when identical bytes had already been uploaded",
    )


class MetadataResponse(BaseModel):
    image_identifier: str
    metadata: dict[str, Any]


class DeleteResponse(BaseModel):
    image_identifier: str
    deleted_variations: bool
