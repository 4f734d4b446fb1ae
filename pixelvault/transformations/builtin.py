"""Built-in transformations backed by Pillow."""

from PIL import Image, ImageDraw, ImageOps

from pixelvault.errors import InvalidArgument

from .base import FORMAT_ALIASES, ImageHandle, Params, Transformation

RESAMPLE = Image.Resampling.LANCZOS


def proportional_height(width: int, height: int, new_width: int) -> int:
    """Height of an image of ``width``x``height`` scaled to ``new_width``."""
    return max(1, round(height * new_width / width))


class Border(Transformation):
    """Add a border around the image (``outbound``) or paint one on its edges (``inline``)."""

    name = "border"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        image = handle.image
        width = self.int_param(params, "width", 1)
        height = self.int_param(params, "height", 1)
        fill = self.color(params, "color", "000000", image.mode)
        mode = params.get("mode", "outbound")

        if mode == "outbound":
            self.check_size(image.width + 2 * width, image.height + 2 * height)
            return handle.with_image(
                ImageOps.expand(image, border=(width, height, width, height), fill=fill)
            )
        if mode == "inline":
            out = image.copy()
            draw = ImageDraw.Draw(out)
            w, h = out.size
            if height > 0:
                draw.rectangle((0, 0, w - 1, height - 1), fill=fill)
                draw.rectangle((0, h - height, w - 1, h - 1), fill=fill)
            if width > 0:
                draw.rectangle((0, 0, width - 1, h - 1), fill=fill)
                draw.rectangle((w - width, 0, w - 1, h - 1), fill=fill)
            return handle.with_image(out)
        raise InvalidArgument(
            f"Invalid border mode: {mode!r}",
            details={"transformation": self.name, "parameter": "mode"},
        )


class Canvas(Transformation):
    """Place the image on a new canvas."""

    name = "canvas"
    modes = ("free", "center", "center-x", "center-y")

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        image = handle.image
        width = self.dimension("width", self.int_param(params, "width"))
        height = self.dimension("height", self.int_param(params, "height"))
        mode = params.get("mode", "free")
        if mode not in self.modes:
            raise InvalidArgument(
                f"Invalid canvas mode: {mode!r}",
                details={"transformation": self.name, "parameter": "mode"},
            )
        x = self.int_param(params, "x", 0)
        y = self.int_param(params, "y", 0)
        if mode in ("center", "center-x"):
            x = (width - image.width) // 2
        if mode in ("center", "center-y"):
            y = (height - image.height) // 2

        canvas = Image.new(image.mode, (width, height), self.color(params, "bg", "ffffff", image.mode))
        canvas.paste(image, (x, y))
        return handle.with_image(canvas)


class Compress(Transformation):
    """Set the encoder quality used when the image is written."""

    name = "compress"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        level = self.int_param(params, "level")
        if not 1 <= level <= 100:
            raise InvalidArgument(
                "Parameter 'level' must be between 1 and 100",
                details={"transformation": self.name, "parameter": "level"},
            )
        return ImageHandle(image=handle.image, format=handle.format, quality=level)


class Convert(Transformation):
    """Change the output format (jpg, png or gif)."""

    name = "convert"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        target = str(self.require(params, "type")).lower()
        if target not in FORMAT_ALIASES:
            raise InvalidArgument(
                f"Unsupported output type: {target!r}",
                details={"transformation": self.name, "parameter": "type"},
            )
        return ImageHandle(image=handle.image, format=FORMAT_ALIASES[target], quality=handle.quality)


class Crop(Transformation):
    """Crop a region; the region is clipped to the image bounds."""

    name = "crop"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        image = handle.image
        x = self.int_param(params, "x", 0)
        y = self.int_param(params, "y", 0)
        width = self.positive("width", self.int_param(params, "width"))
        height = self.positive("height", self.int_param(params, "height"))
        if x < 0 or y < 0 or x >= image.width or y >= image.height:
            raise InvalidArgument(
                "Crop offset is outside the image",
                details={"transformation": self.name, "x": x, "y": y},
            )
        box = (x, y, min(x + width, image.width), min(y + height, image.height))
        return handle.with_image(image.crop(box))


class Desaturate(Transformation):
    name = "desaturate"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        image = handle.image
        gray = ImageOps.grayscale(image).convert(image.mode)
        if image.mode == "RGBA":
            gray.putalpha(image.getchannel("A"))
        return handle.with_image(gray)


class FlipHorizontally(Transformation):
    name = "flipHorizontally"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        return handle.with_image(ImageOps.mirror(handle.image))


class FlipVertically(Transformation):
    name = "flipVertically"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        return handle.with_image(ImageOps.flip(handle.image))


class MaxSize(Transformation):
    """Shrink the image to fit within maxWidth/maxHeight, keeping its aspect ratio."""

    name = "maxSize"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        if "maxWidth" not in params and "maxHeight" not in params:
            raise InvalidArgument(
                "Missing required parameter: maxWidth or maxHeight",
                details={"transformation": self.name},
            )
        image = handle.image
        max_width = self.positive("maxWidth", self.int_param(params, "maxWidth", image.width))
        max_height = self.positive("maxHeight", self.int_param(params, "maxHeight", image.height))
        if image.width <= max_width and image.height <= max_height:
            return handle
        return handle.with_image(ImageOps.contain(image, (max_width, max_height), RESAMPLE))


class Resize(Transformation):
    """Resize to width and/or height. A missing dimension keeps the aspect ratio."""

    name = "resize"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        image = handle.image
        if "width" not in params and "height" not in params:
            raise InvalidArgument(
                "Missing required parameter: width or height",
                details={"transformation": self.name},
            )
        if "width" in params:
            width = self.dimension("width", self.int_param(params, "width"))
        else:
            height = self.dimension("height", self.int_param(params, "height"))
            width = proportional_height(image.height, image.width, height)
        if "height" in params:
            height = self.dimension("height", self.int_param(params, "height"))
        else:
            height = proportional_height(image.width, image.height, width)
        self.check_size(width, height)
        return handle.with_image(image.resize((width, height), RESAMPLE))


class Rotate(Transformation):
    """Rotate clockwise by ``angle`` degrees, filling uncovered areas with ``bg``."""

    name = "rotate"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        image = handle.image
        angle = self.float_param(params, "angle")
        fill = self.color(params, "bg", "000000", image.mode)
        rotated = image.rotate(-angle, resample=Image.Resampling.BICUBIC, expand=True, fillcolor=fill)
        return handle.with_image(rotated)


class Sepia(Transformation):
    """Sepia tone. ``threshold`` (0-100) moves the mid tone point."""

    name = "sepia"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        image = handle.image
        threshold = self.float_param(params, "threshold", 80.0)
        midpoint = min(254, max(1, round(threshold * 255 / 100)))
        toned = ImageOps.colorize(
            ImageOps.grayscale(image),
            black="#000000",
            white="#ffffff",
            mid="#a5784a",
            midpoint=midpoint,
        ).convert(image.mode)
        if image.mode == "RGBA":
            toned.putalpha(image.getchannel("A"))
        return handle.with_image(toned)


class Thumbnail(Transformation):
    """Fixed size thumbnail. ``fit=outbound`` crops to fill, ``fit=inset`` fits inside."""

    name = "thumbnail"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        width = self.dimension("width", self.int_param(params, "width", 50))
        height = self.dimension("height", self.int_param(params, "height", 50))
        fit = params.get("fit", "outbound")
        if fit == "outbound":
            return handle.with_image(ImageOps.fit(handle.image, (width, height), RESAMPLE))
        if fit == "inset":
            return handle.with_image(ImageOps.contain(handle.image, (width, height), RESAMPLE))
        raise InvalidArgument(
            f"Invalid thumbnail fit: {fit!r}",
            details={"transformation": self.name, "parameter": "fit"},
        )


class Transpose(Transformation):
    name = "transpose"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        return handle.with_image(handle.image.transpose(Image.Transpose.TRANSPOSE))


class Transverse(Transformation):
    name = "transverse"

    def apply(self, handle: ImageHandle, params: Params) -> ImageHandle:
        return handle.with_image(handle.image.transpose(Image.Transpose.TRANSVERSE))


BUILTIN_TRANSFORMATIONS: tuple[type[Transformation], ...] = (
    Border,
    Canvas,
    Compress,
    Convert,
    Crop,
    Desaturate,
    FlipHorizontally,
    FlipVertically,
    MaxSize,
    Resize,
    Rotate,
    Sepia,
    Thumbnail,
    Transpose,
    Transverse,
)
