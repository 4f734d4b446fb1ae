"""Transformation parsing, contract and registry."""

from .base import ImageHandle, Transformation
from .parser import (
    NUMERIC_PARAMETERS,
    TransformationDescriptor,
    TransformationSpecParser,
    parse_transformations,
)
from .registry import TransformationRegistry, default_registry

__all__ = [
    "ImageHandle",
    "Transformation",
    "NUMERIC_PARAMETERS",
    "TransformationDescriptor",
    "TransformationSpecParser",
    "parse_transformations",
    "TransformationRegistry",
    "default_registry",
]
