"""Registry mapping transformation names to implementations."""

import logging
from typing import Iterable, Iterator

from pixelvault.errors import UnknownTransformation

from .base import DEFAULT_MAX_DIMENSION, Transformation
from .builtin import BUILTIN_TRANSFORMATIONS

logger = logging.getLogger(__name__)


class TransformationRegistry:
    """Static name -> transformation table.

    The table is filled once at startup; lookups during a request are plain
    dictionary reads.
    """

    def __init__(self, transformations: Iterable[Transformation] = ()):
        self._transformations: dict[str, Transformation] = {}
        for transformation in transformations:
            self.register(transformation)

    def register(self, transformation: Transformation) -> None:
        """Register a transformation under its ``name``.

        Raises:
            ValueError: If the name is already taken.
        """
        name = transformation.name
        if name in self._transformations:
            raise ValueError(f"Transformation '{name}' is already registered")
        self._transformations[name] = transformation
        logger.debug(f"Registered transformation: {name}")

    def get(self, name: str) -> Transformation:
        """Look up a transformation.

        Raises:
            UnknownTransformation: If no transformation has that name.
        """
        try:
            return self._transformations[name]
        except KeyError:
            raise UnknownTransformation(
                f"Unknown transformation: {name}",
                details={"transformation": name},
            ) from None

    def __contains__(self, name: object) -> bool:
        return name in self._transformations

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._transformations))

    def __len__(self) -> int:
        return len(self._transformations)


def default_registry(max_dimension: int = DEFAULT_MAX_DIMENSION) -> TransformationRegistry:
    """Create a registry holding every built-in transformation.

    ``max_dimension`` bounds the width and height of every produced image.
    """
    return TransformationRegistry(cls(max_dimension=max_dimension) for cls in BUILTIN_TRANSFORMATIONS)
