"""Turns an image identifier plus a transformation list into a rendered image."""

import logging
import time
from typing import Any, Iterable, Optional, Sequence

from pixelvault.cache import VariationCache
from pixelvault.context import GET_IMAGE, OperationContext, RenderedImage
from pixelvault.errors import ImageServiceError, TransformationError
from pixelvault.hooks.pipeline import HookRegistry, run_operation
from pixelvault.storage.base import ImageStore
from pixelvault.transformations.base import ImageHandle
from pixelvault.transformations.parser import TransformationDescriptor, TransformationSpecParser
from pixelvault.transformations.registry import TransformationRegistry

logger = logging.getLogger(__name__)


class TransformationEngine:
    """Orchestrates parsing, hooks, the variation cache and the transformations."""

    def __init__(
        self,
        registry: TransformationRegistry,
        store: ImageStore,
        hooks: Optional[HookRegistry] = None,
        numeric_params: Optional[Iterable[str]] = None,
        cache_enabled: bool = True,
    ):
        self.registry = registry
        self.store = store
        self.hooks = hooks if hooks is not None else HookRegistry()
        self.parser = TransformationSpecParser(numeric_params)
        self.cache = VariationCache(store, self.apply, enabled=cache_enabled)

    def apply(self, blob: bytes, descriptors: Sequence[TransformationDescriptor]) -> RenderedImage:
        """Apply ``descriptors`` in order to encoded image bytes.

        Every transformation is resolved before any pixel work starts, so an
        unknown name fails fast.

        Raises:
            UnknownTransformation: If a name is not registered.
            InvalidArgument: If a transformation rejects its parameters.
            TransformationError: If the image cannot be processed.
        """
        steps = [(self.registry.get(d.name), d) for d in descriptors]

        start_time = time.time()
        handle = ImageHandle.decode(blob)
        for transformation, descriptor in steps:
            try:
                handle = transformation.apply(handle, descriptor.params)
            except ImageServiceError:
                raise
            except Exception as e:
                logger.error(f"Transformation {descriptor.signature()} failed: {e}")
                raise TransformationError(
                    f"Transformation '{descriptor.name}' failed: {e}",
                    details={"transformation": descriptor.signature()},
                ) from e

        try:
            encoded = handle.encode()
        except Exception as e:
            logger.error(f"Failed to encode transformed image: {e}")
            raise TransformationError(f"Could not encode image: {e}") from e

        elapsed_time = time.time() - start_time
        logger.debug(f"Applied {len(steps)} transformations in {elapsed_time:.3f}s")
        return RenderedImage(
            blob=encoded,
            mime_type=handle.mime_type,
            width=handle.width,
            height=handle.height,
        )

    def render(
        self,
        account_id: str,
        image_identifier: str,
        raw_transformations: Any = (),
    ) -> RenderedImage:
        """Serve an image with the client's transformations applied.

        Runs the ``getImage`` hooks around the variation cache lookup.

        Args:
            account_id: Owner of the image.
            image_identifier: Identifier of the original.
            raw_transformations: Transformation strings as sent by the client.

        Returns:
            RenderedImage: The encoded result.
        """
        descriptors = self.parser.parse(raw_transformations)
        context = OperationContext(
            operation=GET_IMAGE,
            account_id=account_id,
            image_identifier=image_identifier,
            transformations=descriptors,
        )

        def work(ctx: OperationContext) -> RenderedImage:
            return self.cache.resolve(ctx.account_id, ctx.image_identifier, ctx.transformations)

        return run_operation(self.hooks.pipeline(GET_IMAGE), context, work)
