"""Tests for the transformation contract, the built-ins and the registry."""

import pytest

from conftest import create_test_image, open_image
from pixelvault.errors import InvalidArgument, TransformationError, UnknownTransformation
from pixelvault.transformations import ImageHandle, Transformation, TransformationRegistry, default_registry
from pixelvault.transformations.base import DEFAULT_MAX_DIMENSION
from pixelvault.transformations.builtin import BUILTIN_TRANSFORMATIONS, proportional_height


@pytest.fixture(scope="module")
def registry():
    return default_registry()


@pytest.fixture
def handle(png_bytes):
    return ImageHandle.decode(png_bytes)


def apply(registry, handle, name, **params):
    return registry.get(name).apply(handle, params)


class TestImageHandle:
    def test_decode_png(self, handle):
        assert handle.format == "PNG"
        assert handle.mime_type == "image/png"
        assert (handle.width, handle.height) == (40, 20)
        assert handle.image.mode == "RGB"

    def test_decode_jpeg(self, jpeg_bytes):
        handle = ImageHandle.decode(jpeg_bytes)
        assert handle.format == "JPEG"
        assert handle.mime_type == "image/jpeg"

    def test_decode_garbage_raises(self):
        with pytest.raises(TransformationError):
            ImageHandle.decode(b"definitely not an image")

    def test_encode_round_trips_size(self, handle):
        img = open_image(handle.encode())
        assert img.format == "PNG"
        assert img.size == (40, 20)

    def test_with_image_returns_new_handle(self, handle):
        other = handle.with_image(handle.image.copy())
        assert other is not handle
        assert other.format == handle.format


class TestColors:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("fff", "#fff"),
            ("FF00aa", "#FF00aa"),
            ("red", "red"),
            ("#000", "#000"),
        ],
    )
    def test_format_color(self, value, expected):
        assert Transformation.format_color(value) == expected

    def test_invalid_color_raises(self, registry, handle):
        with pytest.raises(InvalidArgument) as exc_info:
            apply(registry, handle, "border", color="notacolor")

        assert exc_info.value.details["parameter"] == "color"


class TestBuiltinTransformations:
    """Check output dimensions and basic pixel behavior of each built-in."""

    def test_border_outbound_grows_image(self, registry, handle):
        result = apply(registry, handle, "border", color="fff", width=2, height=3)

        assert (result.width, result.height) == (44, 26)
        assert result.image.getpixel((0, 0)) == (255, 255, 255)

    def test_border_inline_keeps_size(self, registry, handle):
        result = apply(registry, handle, "border", color="00ff00", width=2, height=2, mode="inline")

        assert (result.width, result.height) == (40, 20)
        assert result.image.getpixel((0, 10)) == (0, 255, 0)
        assert result.image.getpixel((10, 10)) == (200, 30, 30)

    def test_border_invalid_mode(self, registry, handle):
        with pytest.raises(InvalidArgument):
            apply(registry, handle, "border", mode="sideways")

    def test_canvas_center(self, registry, handle):
        result = apply(registry, handle, "canvas", width=60, height=40, mode="center", bg="000")

        assert (result.width, result.height) == (60, 40)
        assert result.image.getpixel((0, 0)) == (0, 0, 0)
        assert result.image.getpixel((11, 11)) == (200, 30, 30)

    def test_canvas_requires_dimensions(self, registry, handle):
        with pytest.raises(InvalidArgument):
            apply(registry, handle, "canvas", width=60)

    def test_compress_sets_quality(self, registry, jpeg_bytes):
        handle = ImageHandle.decode(jpeg_bytes)
        result = apply(registry, handle, "compress", level="50")
        assert result.quality == 50

    @pytest.mark.parametrize("level", ["0", "101", "high"])
    def test_compress_rejects_bad_level(self, registry, handle, level):
        with pytest.raises(InvalidArgument):
            apply(registry, handle, "compress", level=level)

    def test_convert_changes_format(self, registry, handle):
        result = apply(registry, handle, "convert", type="jpg")

        assert result.format == "JPEG"
        assert result.mime_type == "image/jpeg"
        assert open_image(result.encode()).format == "JPEG"

    def test_convert_unknown_type(self, registry, handle):
        with pytest.raises(InvalidArgument):
            apply(registry, handle, "convert", type="bmp")

    def test_crop(self, registry, handle):
        result = apply(registry, handle, "crop", x=20, y=0, width=10, height=10)

        assert (result.width, result.height) == (10, 10)
        assert result.image.getpixel((0, 0)) == (30, 30, 200)

    def test_crop_is_clipped_to_bounds(self, registry, handle):
        result = apply(registry, handle, "crop", x=30, y=10, width=100, height=100)
        assert (result.width, result.height) == (10, 10)

    def test_crop_offset_outside_image(self, registry, handle):
        with pytest.raises(InvalidArgument):
            apply(registry, handle, "crop", x=40, y=0, width=5, height=5)

    def test_desaturate(self, registry, handle):
        result = apply(registry, handle, "desaturate")

        r, g, b = result.image.getpixel((0, 0))
        assert r == g == b
        assert result.image.mode == "RGB"

    def test_flip_horizontally(self, registry, handle):
        result = apply(registry, handle, "flipHorizontally")
        assert result.image.getpixel((0, 0)) == (30, 30, 200)

    def test_flip_vertically(self, registry):
        img = ImageHandle.decode(create_test_image(width=10, height=10))
        result = apply(registry, img, "flipVertically")
        assert result.image.getpixel((0, 0)) == (200, 30, 30)
        assert (result.width, result.height) == (10, 10)

    def test_max_size_shrinks_proportionally(self, registry, handle):
        result = apply(registry, handle, "maxSize", maxWidth="20")
        assert (result.width, result.height) == (20, 10)

    def test_max_size_never_enlarges(self, registry, handle):
        result = apply(registry, handle, "maxSize", maxWidth="100", maxHeight="100")
        assert result is handle

    def test_max_size_requires_a_bound(self, registry, handle):
        with pytest.raises(InvalidArgument):
            apply(registry, handle, "maxSize")

    def test_resize_width_only_keeps_ratio(self, registry, handle):
        result = apply(registry, handle, "resize", width=20)
        assert (result.width, result.height) == (20, 10)

    def test_resize_height_only_keeps_ratio(self, registry, handle):
        result = apply(registry, handle, "resize", height=40)
        assert (result.width, result.height) == (80, 40)

    def test_resize_both(self, registry, handle):
        result = apply(registry, handle, "resize", width=15, height=15)
        assert (result.width, result.height) == (15, 15)

    @pytest.mark.parametrize("params", [{}, {"width": 0}, {"width": -5}])
    def test_resize_rejects_bad_params(self, registry, handle, params):
        with pytest.raises(InvalidArgument):
            registry.get("resize").apply(handle, params)

    def test_rotate_quarter_turn(self, registry, handle):
        result = apply(registry, handle, "rotate", angle="90", bg="fff")
        assert (result.width, result.height) == (20, 40)

    def test_rotate_requires_angle(self, registry, handle):
        with pytest.raises(InvalidArgument):
            apply(registry, handle, "rotate")

    def test_sepia(self, registry, handle):
        result = apply(registry, handle, "sepia", threshold="70")

        assert (result.width, result.height) == (40, 20)
        r, g, b = result.image.getpixel((0, 0))
        assert r >= g >= b

    def test_thumbnail_outbound(self, registry, handle):
        result = apply(registry, handle, "thumbnail", width=10, height=10)
        assert (result.width, result.height) == (10, 10)

    def test_thumbnail_inset(self, registry, handle):
        result = apply(registry, handle, "thumbnail", width=10, height=10, fit="inset")
        assert (result.width, result.height) == (10, 5)

    def test_thumbnail_defaults(self, registry, handle):
        result = apply(registry, handle, "thumbnail")
        assert (result.width, result.height) == (50, 50)

    def test_transpose_and_transverse_swap_dimensions(self, registry, handle):
        assert apply(registry, handle, "transpose").image.size == (20, 40)
        assert apply(registry, handle, "transverse").image.size == (20, 40)

    def test_transformations_are_deterministic(self, registry, png_bytes):
        """The same input and params always produce identical bytes."""
        steps = [
            ("resize", {"width": 17}),
            ("sepia", {}),
            ("border", {"color": "abc", "width": 1, "height": 1}),
        ]

        outputs = []
        for _ in range(2):
            handle = ImageHandle.decode(png_bytes)
            for name, params in steps:
                handle = registry.get(name).apply(handle, params)
            outputs.append(handle.encode())

        assert outputs[0] == outputs[1]

    def test_input_handle_is_not_mutated(self, registry, handle):
        before = handle.image.tobytes()
        apply(registry, handle, "border", color="fff", width=3, height=3, mode="inline")
        assert handle.image.tobytes() == before


class TestDimensionLimit:
    """Produced images never exceed the registry's max dimension."""

    @pytest.fixture
    def small_registry(self):
        return default_registry(max_dimension=64)

    def test_resize_at_limit(self, small_registry, handle):
        result = apply(small_registry, handle, "resize", width=64)
        assert (result.width, result.height) == (64, 32)

    def test_resize_above_limit(self, small_registry, handle):
        with pytest.raises(InvalidArgument) as exc_info:
            apply(small_registry, handle, "resize", width=65)
        assert exc_info.value.details["max"] == 64

    def test_resize_proportional_side_above_limit(self, small_registry, handle):
        # 40x20 scaled to height 64 is 128 wide
        with pytest.raises(InvalidArgument):
            apply(small_registry, handle, "resize", height=64)

    def test_huge_resize_rejected_with_default_limit(self, registry, handle):
        with pytest.raises(InvalidArgument):
            apply(registry, handle, "resize", width=100000, height=100000)

    def test_canvas_limit(self, small_registry, handle):
        result = apply(small_registry, handle, "canvas", width=64, height=64)
        assert (result.width, result.height) == (64, 64)

        with pytest.raises(InvalidArgument):
            apply(small_registry, handle, "canvas", width=64, height=65)

    def test_thumbnail_limit(self, small_registry, handle):
        result = apply(small_registry, handle, "thumbnail", width=64, height=64)
        assert (result.width, result.height) == (64, 64)

        with pytest.raises(InvalidArgument):
            apply(small_registry, handle, "thumbnail", width=65, height=10)

    def test_outbound_border_limit(self, small_registry, handle):
        result = apply(small_registry, handle, "border", width=12, height=1)
        assert (result.width, result.height) == (64, 22)

        with pytest.raises(InvalidArgument):
            apply(small_registry, handle, "border", width=13, height=1)

    def test_default_max_dimension(self, registry):
        assert registry.get("resize").max_dimension == DEFAULT_MAX_DIMENSION


class TestTransformationRegistry:
    def test_default_registry_contains_builtins(self, registry):
        assert len(registry) == len(BUILTIN_TRANSFORMATIONS) == 15
        for name in (
            "border", "canvas", "compress", "convert", "crop", "desaturate",
            "flipHorizontally", "flipVertically", "maxSize", "resize", "rotate",
            "sepia", "thumbnail", "transpose", "transverse",
        ):
            assert name in registry

    def test_iteration_is_sorted(self, registry):
        names = list(registry)
        assert names == sorted(names)

    def test_unknown_name_raises(self, registry):
        with pytest.raises(UnknownTransformation) as exc_info:
            registry.get("explode")

        assert exc_info.value.status_code == 400
        assert exc_info.value.details == {"transformation": "explode"}

    def test_duplicate_registration_raises(self):
        class Noop(Transformation):
            name = "noop"

            def apply(self, handle, params):
                return handle

        registry = TransformationRegistry([Noop()])
        with pytest.raises(ValueError):
            registry.register(Noop())

    def test_lookup_is_case_sensitive(self, registry):
        with pytest.raises(UnknownTransformation):
            registry.get("fliphorizontally")


def test_proportional_height():
    assert proportional_height(40, 20, 20) == 10
    assert proportional_height(1000, 1, 10) == 1
