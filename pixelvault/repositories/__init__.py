"""Repository implementations for data access."""

from .image import ImageDBRepository, ImageRepository, InMemoryImageRepository

__all__ = [
    "ImageRepository",
    "InMemoryImageRepository",
    "ImageDBRepository",
]
