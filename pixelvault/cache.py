"""Cache of rendered image variations.

A variation is the original image scaled to a given width. Most requests
start with a resize, so a pipeline whose first step is ``resize:width=W``
(width only) is split into that step, which is served from or written to
the store under ``(account_id, image_identifier, W)``, and the remaining
steps, which run on top of the cached variation. Pipelines that do not start
with such a step are rendered straight from the original.

There is no eviction. Callers invalidate an image's variations whenever the
original is replaced or removed.
"""

import logging
import threading
from io import BytesIO
from typing import Callable, Optional, Sequence

from PIL import Image, UnidentifiedImageError

from pixelvault.context import RenderedImage
from pixelvault.errors import ImageNotFound, TransformationError
from pixelvault.storage.base import ImageStore
from pixelvault.transformations.base import MIME_TYPES
from pixelvault.transformations.parser import TransformationDescriptor

logger = logging.getLogger(__name__)

Renderer = Callable[[bytes, Sequence[TransformationDescriptor]], RenderedImage]

LOCK_STRIPES = 64


def describe(blob: bytes) -> RenderedImage:
    """Read format and size from encoded bytes without decoding pixels."""
    try:
        with Image.open(BytesIO(blob)) as image:
            mime_type = MIME_TYPES.get(image.format, Image.MIME.get(image.format, "application/octet-stream"))
            return RenderedImage(blob=blob, mime_type=mime_type, width=image.width, height=image.height)
    except (UnidentifiedImageError, OSError) as e:
        raise TransformationError(f"Could not read image: {e}") from e


class VariationCache:
    """Serves width variations from an ImageStore and renders the misses."""

    def __init__(
        self,
        store: ImageStore,
        render: Renderer,
        enabled: bool = True,
        single_flight: bool = True,
    ):
        """Initialize the cache.

        Args:
            store: Backend holding originals and variations.
            render: Callable applying descriptors to encoded image bytes.
            enabled: When False every request renders from the original.
            single_flight: Serialize concurrent misses on the same key within
                this process so the variation is rendered once.
        """
        self.store = store
        self.render = render
        self.enabled = enabled
        self.single_flight = single_flight
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    @staticmethod
    def cache_width(descriptors: Sequence[TransformationDescriptor]) -> Optional[int]:
        """Width key of a pipeline, or None if it cannot be cached."""
        if not descriptors:
            return None
        first = descriptors[0]
        if first.name != "resize" or set(first.params) != {"width"}:
            return None
        width = first.params["width"]
        if not isinstance(width, int) or width <= 0:
            return None
        return width

    def resolve(
        self,
        account_id: str,
        image_identifier: str,
        descriptors: Sequence[TransformationDescriptor],
    ) -> RenderedImage:
        """Return the image produced by ``descriptors``.

        Raises:
            ImageNotFound: If the original is needed and does not exist.
        """
        if not descriptors:
            return describe(self._load_original(account_id, image_identifier))

        width = self.cache_width(descriptors) if self.enabled else None
        if width is None:
            original = self._load_original(account_id, image_identifier)
            return self.render(original, descriptors)

        remainder = descriptors[1:]
        blob = self.store.get_variation(account_id, image_identifier, width)
        if blob is not None:
            logger.debug(f"Variation cache hit: {account_id}/{image_identifier}@{width}")
        else:
            blob = self._fill(account_id, image_identifier, width, descriptors[:1])

        if not remainder:
            return describe(blob)
        return self.render(blob, remainder)

    def _fill(
        self,
        account_id: str,
        image_identifier: str,
        width: int,
        prefix: Sequence[TransformationDescriptor],
    ) -> bytes:
        if not self.single_flight:
            return self._render_and_store(account_id, image_identifier, width, prefix)

        lock = self._locks[hash((account_id, image_identifier, width)) % LOCK_STRIPES]
        with lock:
            # Another thread may have stored it while we waited
            blob = self.store.get_variation(account_id, image_identifier, width)
            if blob is not None:
                return blob
            return self._render_and_store(account_id, image_identifier, width, prefix)

    def _render_and_store(
        self,
        account_id: str,
        image_identifier: str,
        width: int,
        prefix: Sequence[TransformationDescriptor],
    ) -> bytes:
        logger.debug(f"Variation cache miss: {account_id}/{image_identifier}@{width}")
        original = self._load_original(account_id, image_identifier)
        variation = self.render(original, prefix)
        self.store.store_variation(account_id, image_identifier, width, variation.blob)
        return variation.blob

    def _load_original(self, account_id: str, image_identifier: str) -> bytes:
        blob = self.store.get_original(account_id, image_identifier)
        if blob is None:
            raise ImageNotFound(
                f"Image not found: {image_identifier}",
                details={"account_id": account_id, "image_identifier": image_identifier},
            )
        return blob

    def invalidate(
        self, account_id: str, image_identifier: str, width: Optional[int] = None
    ) -> bool:
        """Drop cached variations of an image (one width, or all of them)."""
        deleted = self.store.delete_variations(account_id, image_identifier, width)
        if deleted:
            logger.info(f"Invalidated variations for {account_id}/{image_identifier}")
        return deleted
