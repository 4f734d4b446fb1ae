"""Image operations exposed to the API layer.

Every operation runs inside its hook pipeline: ``<operation>PreExec`` hooks,
the operation itself, then ``<operation>PostExec`` hooks.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from pixelvault.cache import describe
from pixelvault.context import (
    ADD_IMAGE,
    DELETE_IMAGE,
    DELETE_METADATA,
    EDIT_METADATA,
    GET_METADATA,
    OperationContext,
    RenderedImage,
)
from pixelvault.engine import TransformationEngine
from pixelvault.errors import ImageNotFound, InvalidArgument, TransformationError
from pixelvault.hooks.pipeline import run_operation
from pixelvault.repositories.image import ImageRepository
from pixelvault.schemas.image import ImageRecord
from pixelvault.storage.sharding import check_account_id

logger = logging.getLogger(__name__)


def generate_image_identifier(content: bytes) -> str:
    """MD5 hex digest of the image bytes, used as the image identifier."""
    return hashlib.md5(content, usedforsecurity=False).hexdigest()


class ImageOperations:
    """Add, fetch, delete and annotate images for an account."""

    def __init__(self, engine: TransformationEngine, repository: ImageRepository):
        self.engine = engine
        self.store = engine.store
        self.hooks = engine.hooks
        self.repository = repository

    def _run(self, context: OperationContext, work: Callable[[OperationContext], Any]) -> Any:
        return run_operation(self.hooks.pipeline(context.operation), context, work)

    def _require_record(self, account_id: str, image_identifier: str) -> ImageRecord:
        record = self.repository.get(account_id, image_identifier)
        if record is None:
            logger.warning(f"Image not found: {account_id}/{image_identifier}")
            raise ImageNotFound(
                f"Image not found: {image_identifier}",
                details={"account_id": account_id, "image_identifier": image_identifier},
            )
        return record

    def add_image(self, account_id: str, content: bytes) -> tuple[ImageRecord, bool]:
        """Store an original image.

        Uploading bytes that are already stored for the account returns the
        existing record.

        Returns:
            tuple[ImageRecord, bool]: The record and whether it was created.

        Raises:
            InvalidArgument: If the account id is invalid, or the content is
                empty or not a supported image.
            StorageError: If the original cannot be written.
        """
        check_account_id(account_id)
        if not content:
            raise InvalidArgument("Image content cannot be empty")

        try:
            info = describe(content)
        except TransformationError:
            raise InvalidArgument("Unsupported or corrupt image") from None

        image_identifier = generate_image_identifier(content)
        context = OperationContext(
            operation=ADD_IMAGE,
            account_id=account_id,
            image_identifier=image_identifier,
        )

        def work(ctx: OperationContext) -> tuple[ImageRecord, bool]:
            existing = self.repository.get(ctx.account_id, ctx.image_identifier)
            if existing is not None and self.store.get_original(ctx.account_id, ctx.image_identifier):
                logger.info(f"Image already exists: {ctx.account_id}/{ctx.image_identifier}")
                return existing, False

            now = datetime.now(timezone.utc)
            record = ImageRecord(
                account_id=ctx.account_id,
                image_identifier=ctx.image_identifier,
                width=info.width,
                height=info.height,
                mime_type=info.mime_type,
                checksum=ctx.image_identifier,
                size=len(content),
                created_at=now,
                updated_at=now,
                metadata=dict(ctx.metadata),
            )
            self.store.store_original(ctx.account_id, ctx.image_identifier, content)
            stored, created = self.repository.add(record)
            logger.info(f"Stored image {ctx.account_id}/{ctx.image_identifier} ({len(content)} bytes)")
            return stored, created

        return self._run(context, work)

    def get_image(self, account_id: str, image_identifier: str, transformations: Any = ()) -> RenderedImage:
        """Render an image with the given transformation strings applied."""
        return self.engine.render(account_id, image_identifier, transformations)

    def delete_image(self, account_id: str, image_identifier: str) -> bool:
        """Delete an original, its record and all of its variations.

        Returns:
            bool: Whether any cached variations were removed.

        Raises:
            ImageNotFound: If the image does not exist.
        """
        context = OperationContext(
            operation=DELETE_IMAGE,
            account_id=account_id,
            image_identifier=image_identifier,
        )

        def work(ctx: OperationContext) -> bool:
            self._require_record(ctx.account_id, ctx.image_identifier)
            self.store.delete_original(ctx.account_id, ctx.image_identifier)
            deleted_variations = self.engine.cache.invalidate(ctx.account_id, ctx.image_identifier)
            self.repository.delete(ctx.account_id, ctx.image_identifier)
            logger.info(f"Deleted image {ctx.account_id}/{ctx.image_identifier}")
            return deleted_variations

        return self._run(context, work)

    def get_metadata(self, account_id: str, image_identifier: str) -> dict[str, Any]:
        context = OperationContext(
            operation=GET_METADATA,
            account_id=account_id,
            image_identifier=image_identifier,
        )

        def work(ctx: OperationContext) -> dict[str, Any]:
            return dict(self._require_record(ctx.account_id, ctx.image_identifier).metadata)

        return self._run(context, work)

    def update_metadata(
        self,
        account_id: str,
        image_identifier: str,
        metadata: Any,
        replace: bool = False,
    ) -> dict[str, Any]:
        """Merge (or with ``replace`` overwrite) an image's metadata.

        Raises:
            InvalidArgument: If ``metadata`` is not a mapping with string keys.
            ImageNotFound: If the image does not exist.
        """
        if not isinstance(metadata, dict) or not all(isinstance(k, str) for k in metadata):
            raise InvalidArgument("Metadata must be an object with string keys")

        context = OperationContext(
            operation=EDIT_METADATA,
            account_id=account_id,
            image_identifier=image_identifier,
            metadata=dict(metadata),
        )

        def work(ctx: OperationContext) -> dict[str, Any]:
            self._require_record(ctx.account_id, ctx.image_identifier)
            record = self.repository.update_metadata(
                ctx.account_id, ctx.image_identifier, ctx.metadata, replace=replace
            )
            return dict(record.metadata)

        return self._run(context, work)

    def delete_metadata(self, account_id: str, image_identifier: str) -> dict[str, Any]:
        context = OperationContext(
            operation=DELETE_METADATA,
            account_id=account_id,
            image_identifier=image_identifier,
        )

        def work(ctx: OperationContext) -> dict[str, Any]:
            self._require_record(ctx.account_id, ctx.image_identifier)
            record = self.repository.update_metadata(
                ctx.account_id, ctx.image_identifier, {}, replace=True
            )
            return dict(record.metadata)

        return self._run(context, work)
