"""Transformation interface and the image handle transformations operate on."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from io import BytesIO
from typing import ClassVar, Mapping, Optional

from PIL import Image, ImageColor, UnidentifiedImageError

from pixelvault.errors import InvalidArgument, TransformationError

from .parser import ParamValue

# Largest width or height a transformation may produce
DEFAULT_MAX_DIMENSION = 10000

_HEX_COLOR = re.compile(r"^[A-F0-9]{3,6}$", re.IGNORECASE)

MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
}

# Output format names accepted by the ``convert`` transformation.
FORMAT_ALIASES = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "gif": "GIF",
}


@dataclass(frozen=True)
class ImageHandle:
    """A decoded image together with the settings used to encode it again.

    Handles are immutable: transformations return a new handle instead of
    mutating the one they receive.
    """

    image: Image.Image
    format: str
    quality: Optional[int] = None

    @classmethod
    def decode(cls, blob: bytes) -> "ImageHandle":
        """Decode raw image bytes.

        Raises:
            TransformationError: If Pillow cannot read the data.
        """
        try:
            image = Image.open(BytesIO(blob))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise TransformationError(f"Could not decode image: {e}") from e

        fmt = image.format if image.format in MIME_TYPES else "PNG"
        # Work in RGB(A) so colors and fills behave the same for every input
        mode = "RGBA" if "A" in image.getbands() or "transparency" in image.info else "RGB"
        if image.mode != mode:
            image = image.convert(mode)
        return cls(image=image, format=fmt)

    def encode(self) -> bytes:
        """Encode the image in the handle's output format."""
        image = self.image
        options = {}
        if self.format == "JPEG":
            if image.mode != "RGB":
                image = image.convert("RGB")
            if self.quality is not None:
                options["quality"] = self.quality
        buf = BytesIO()
        image.save(buf, format=self.format, **options)
        return buf.getvalue()

    @property
    def mime_type(self) -> str:
        return MIME_TYPES[self.format]

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def with_image(self, image: Image.Image) -> "ImageHandle":
        return replace(self, image=image)


Params = Mapping[str, ParamValue]


class Transformation(ABC):
    """Base class for all transformations.

    Subclasses set ``name`` to the identifier clients use in transformation
    strings and implement ``apply``. Implementations must be pure: the same
    handle and params always produce identical pixels.

    ``max_dimension`` caps the width and height of any image a
    transformation produces, so a request cannot make Pillow allocate an
    arbitrarily large canvas.
    """

    name: ClassVar[str]

    def __init__(self, max_dimension: int = DEFAULT_MAX_DIMENSION):
        self.max_dimension = max_dimension

    @abstractmethod
    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        """Apply the transformation and return a new handle."""

    @staticmethod
    def format_color(color: str) -> str:
        """Prefix bare hex colors with ``#``; named colors pass through."""
        if _HEX_COLOR.match(color):
            return "#" + color
        return color

    def color(self, params: Params, key: str, default: str, mode: str):
        """Resolve a color parameter to a fill value for ``mode``."""
        value = str(params.get(key, default))
        try:
            return ImageColor.getcolor(self.format_color(value), mode)
        except ValueError:
            raise InvalidArgument(
                f"Invalid color for parameter '{key}': {value!r}",
                details={"transformation": self.name, "parameter": key},
            ) from None

    def require(self, params: Params, key: str) -> ParamValue:
        if key not in params:
            raise InvalidArgument(
                f"Missing required parameter: {key}",
                details={"transformation": self.name, "parameter": key},
            )
        return params[key]

    def int_param(self, params: Params, key: str, default: Optional[int] = None) -> int:
        """Read an integer parameter, accepting numeric strings."""
        value = self.require(params, key) if default is None else params.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise InvalidArgument(
                f"Parameter '{key}' must be an integer, got {value!r}",
                details={"transformation": self.name, "parameter": key},
            ) from None

    def float_param(self, params: Params, key: str, default: Optional[float] = None) -> float:
        value = self.require(params, key) if default is None else params.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            raise InvalidArgument(
                f"Parameter '{key}' must be a number, got {value!r}",
                details={"transformation": self.name, "parameter": key},
            ) from None

    def positive(self, key: str, value: int) -> int:
        if value <= 0:
            raise InvalidArgument(
                f"Parameter '{key}' must be a positive integer",
                details={"transformation": self.name, "parameter": key},
            )
        return value

    def dimension(self, key: str, value: int) -> int:
        """Validate a requested output width or height."""
        self.positive(key, value)
        if value > self.max_dimension:
            raise InvalidArgument(
                f"Parameter '{key}' must not exceed {self.max_dimension}",
                details={"transformation": self.name, "parameter": key, "max": self.max_dimension},
            )
        return value

    def check_size(self, width: int, height: int) -> None:
        """Reject computed output sizes above ``max_dimension``."""
        if width > self.max_dimension or height > self.max_dimension:
            raise InvalidArgument(
                f"Resulting image {width}x{height} exceeds the maximum dimension {self.max_dimension}",
                details={"transformation": self.name, "width": width, "height": height, "max": self.max_dimension},
            )
