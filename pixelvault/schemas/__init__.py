"""Pydantic schemas for request/response validation."""

from .image import DeleteResponse, ImageRecord, ImageUploadResponse, MetadataResponse

__all__ = [
    "ImageRecord",
    "ImageUploadResponse",
    "MetadataResponse",
    "DeleteResponse",
]
