"""Parser for client supplied transformation strings.

A transformation string is either a bare name (``flipHorizontally``) or a
name followed by a comma separated parameter list
(``border:color=fff,width=2,height=2``). Only the keys listed in the numeric
key set are converted to integers; all other values are kept verbatim, so
``compress:level=90`` yields the string ``"90"``.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Union

from pixelvault.errors import InvalidArgument

logger = logging.getLogger(__name__)

ParamValue = Union[int, str]

# Keys whose values are converted to int. Everything else stays a string.
NUMERIC_PARAMETERS: frozenset[str] = frozenset({"width", "height", "x", "y"})


@dataclass(frozen=True)
class TransformationDescriptor:
    """One parsed transformation: a name and its ordered parameters."""

    name: str
    params: dict[str, ParamValue] = field(default_factory=dict)

    def signature(self) -> str:
        """Canonical string form, stable for identical descriptors."""
        if not self.params:
            return self.name
        pairs = ",".join(f"{key}={value}" for key, value in self.params.items())
        return f"{self.name}:{pairs}"


class TransformationSpecParser:
    """Turns a list of transformation strings into descriptors."""

    def __init__(self, numeric_params: Iterable[str] | None = None):
        if numeric_params is None:
            self.numeric_params = NUMERIC_PARAMETERS
        else:
            self.numeric_params = frozenset(numeric_params)

    def parse(self, raw: Any) -> list[TransformationDescriptor]:
        """Parse an ordered list of transformation strings.

        Args:
            raw: The transformation list as received from the client.

        Returns:
            list[TransformationDescriptor]: One descriptor per input element,
            in input order.

        Raises:
            InvalidArgument: If ``raw`` is not a list, an element is not a
                string, or an element does not follow the grammar.
        """
        if not isinstance(raw, (list, tuple)):
            raise InvalidArgument(
                "Transformations must be specified as an array",
                details={"type": type(raw).__name__},
            )

        descriptors = []
        for index, element in enumerate(raw):
            if not isinstance(element, str):
                raise InvalidArgument(
                    "Invalid transformation",
                    details={"index": index, "type": type(element).__name__},
                )
            descriptors.append(self._parse_one(index, element))

        logger.debug(f"Parsed {len(descriptors)} transformations")
        return descriptors

    def _parse_one(self, index: int, element: str) -> TransformationDescriptor:
        name, _, param_list = element.partition(":")
        name = name.strip()
        if not name:
            raise InvalidArgument(
                "Invalid transformation",
                details={"index": index, "transformation": element},
            )

        params: dict[str, ParamValue] = {}
        if param_list:
            for pair in param_list.split(","):
                key, sep, value = pair.partition("=")
                key = key.strip()
                if not sep or not key:
                    raise InvalidArgument(
                        f"Invalid transformation parameter: {pair!r}",
                        details={"index": index, "transformation": element},
                    )
                params[key] = self._convert(index, element, key, value)

        return TransformationDescriptor(name=name, params=params)

    def _convert(self, index: int, element: str, key: str, value: str) -> ParamValue:
        if key not in self.numeric_params:
            return value
        try:
            return int(value)
        except ValueError:
            raise InvalidArgument(
                f"Parameter '{key}' must be an integer, got {value!r}",
                details={"index": index, "transformation": element, "parameter": key},
            ) from None


def parse_transformations(
    raw: Any, numeric_params: Iterable[str] | None = None
) -> list[TransformationDescriptor]:
    """Parse ``raw`` with a parser using ``numeric_params`` as the integer keys."""
    return TransformationSpecParser(numeric_params).parse(raw)
