"""Database models for the Pixelvault image service."""

from .db import Base, Image, OriginalBlob, VariationBlob

__all__ = ["Base", "Image", "OriginalBlob", "VariationBlob"]
