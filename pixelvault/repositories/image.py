"""Image repository for managing image metadata records."""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pixelvault.models.db import Image
from pixelvault.schemas.image import ImageRecord

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImageRepository(Protocol):
    """Interface for image metadata storage.

    Records are keyed by ``(account_id, image_identifier)``. The blobs
    themselves live in an ``ImageStore``; this repository only knows about
    dimensions, checksums, timestamps and free-form metadata.
    """

    def add(self, record: ImageRecord) -> tuple[ImageRecord, bool]:
        """Add a record unless one already exists for the same key.

        Returns:
            tuple[ImageRecord, bool]: The stored record and whether it was
            newly created.
        """
        ...

    def get(self, account_id: str, image_identifier: str) -> Optional[ImageRecord]:
        """Get a record, or None if it does not exist."""
        ...

    def exists(self, account_id: str, image_identifier: str) -> bool:
        """Check if a record exists."""
        ...

    def delete(self, account_id: str, image_identifier: str) -> None:
        """Delete a record.

        Raises:
            KeyError: If the record does not exist.
        """
        ...

    def update_metadata(
        self,
        account_id: str,
        image_identifier: str,
        metadata: dict[str, Any],
        replace: bool = False,
    ) -> ImageRecord:
        """Merge ``metadata`` into the record, or replace it entirely.

        Raises:
            KeyError: If the record does not exist.
        """
        ...

    def count(self, account_id: Optional[str] = None) -> int:
        """Count records, optionally for one account."""
        ...


class InMemoryImageRepository(ImageRepository):
    """In-memory implementation of ImageRepository.

    This implementation stores records in a simple dictionary.
    Data is not persisted and will be lost when the application restarts.
    Suitable for development, testing, and small-scale deployments.
    """

    def __init__(self):
        """Initialize the in-memory repository."""
        self._storage: dict[tuple[str, str], ImageRecord] = {}
        self._lock = threading.Lock()
        logger.info("Initialized InMemoryImageRepository")

    def add(self, record: ImageRecord) -> tuple[ImageRecord, bool]:
        key = (record.account_id, record.image_identifier)
        with self._lock:
            existing = self._storage.get(key)
            if existing is not None:
                logger.debug(f"Image already exists: {key}")
                return existing, False
            self._storage[key] = record
        logger.debug(f"Added image: {key}")
        return record, True

    def get(self, account_id: str, image_identifier: str) -> Optional[ImageRecord]:
        return self._storage.get((account_id, image_identifier))

    def exists(self, account_id: str, image_identifier: str) -> bool:
        return (account_id, image_identifier) in self._storage

    def delete(self, account_id: str, image_identifier: str) -> None:
        key = (account_id, image_identifier)
        with self._lock:
            if key not in self._storage:
                raise KeyError(f"Image {account_id}/{image_identifier} not found")
            del self._storage[key]
        logger.debug(f"Deleted image: {key}")

    def update_metadata(
        self,
        account_id: str,
        image_identifier: str,
        metadata: dict[str, Any],
        replace: bool = False,
    ) -> ImageRecord:
        key = (account_id, image_identifier)
        with self._lock:
            record = self._storage.get(key)
            if record is None:
                raise KeyError(f"Image {account_id}/{image_identifier} not found")
            merged = dict(metadata) if replace else {**record.metadata, **metadata}
            updated = record.model_copy(update={"metadata": merged, "updated_at": _utcnow()})
            self._storage[key] = updated
        logger.debug(f"Updated metadata for image: {key}")
        return updated

    def count(self, account_id: Optional[str] = None) -> int:
        if account_id is None:
            return len(self._storage)
        return sum(1 for owner, _ in self._storage if owner == account_id)

    def clear(self) -> None:
        """Clear all entries from the repository.

        This is mainly useful for testing purposes.
        """
        with self._lock:
            self._storage.clear()
        logger.debug("Cleared all images from repository")


class ImageDBRepository(ImageRepository):
    """SQLAlchemy-based implementation of ImageRepository.

    Data is persisted and will survive application restarts.
    Suitable for production deployments.
    """

    def __init__(self, db: Session):
        """Initialize the repository with a database session.

        Args:
            db: SQLAlchemy session for database operations
        """
        self.db = db
        logger.debug("Initialized ImageDBRepository")

    @staticmethod
    def _to_record(image: Image) -> ImageRecord:
        return ImageRecord(
            account_id=image.account_id,
            image_identifier=image.image_identifier,
            width=image.width,
            height=image.height,
            mime_type=image.mime_type,
            checksum=image.checksum,
            size=image.size,
            created_at=image.created_at,
            updated_at=image.updated_at,
            metadata=dict(image.image_metadata or {}),
        )

    def add(self, record: ImageRecord) -> tuple[ImageRecord, bool]:
        existing = self._get_image(record.account_id, record.image_identifier)
        if existing:
            return self._to_record(existing), False

        try:
            image = Image(
                account_id=record.account_id,
                image_identifier=record.image_identifier,
                width=record.width,
                height=record.height,
                mime_type=record.mime_type,
                checksum=record.checksum,
                size=record.size,
                created_at=record.created_at,
                updated_at=record.updated_at,
                image_metadata=dict(record.metadata),
            )
            self.db.add(image)
            self.db.commit()

            logger.info(f"Created image record: {record.account_id}/{record.image_identifier}")
            return self._to_record(image), True

        except IntegrityError:
            # A concurrent upload of the same bytes committed first
            self.db.rollback()
            stored = self._get_image(record.account_id, record.image_identifier)
            if stored is None:
                raise
            logger.info(f"Image record already created: {record.account_id}/{record.image_identifier}")
            return self._to_record(stored), False
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create image: {e}")
            raise

    def get(self, account_id: str, image_identifier: str) -> Optional[ImageRecord]:
        image = self._get_image(account_id, image_identifier)
        return self._to_record(image) if image else None

    def exists(self, account_id: str, image_identifier: str) -> bool:
        return self._get_image(account_id, image_identifier) is not None

    def delete(self, account_id: str, image_identifier: str) -> None:
        image = self._get_image(account_id, image_identifier)
        if not image:
            raise KeyError(f"Image {account_id}/{image_identifier} not found")

        try:
            self.db.delete(image)
            self.db.commit()
            logger.info(f"Deleted image: {account_id}/{image_identifier}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete image {account_id}/{image_identifier}: {e}")
            raise

    def update_metadata(
        self,
        account_id: str,
        image_identifier: str,
        metadata: dict[str, Any],
        replace: bool = False,
    ) -> ImageRecord:
        image = self._get_image(account_id, image_identifier)
        if not image:
            raise KeyError(f"Image {account_id}/{image_identifier} not found")

        try:
            current = {} if replace else dict(image.image_metadata or {})
            current.update(metadata)
            # Assign a new dict so the JSON column is flagged as changed
            image.image_metadata = current
            image.updated_at = _utcnow()
            self.db.commit()
            self.db.refresh(image)
            logger.info(f"Updated metadata for image: {account_id}/{image_identifier}")
            return self._to_record(image)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update metadata for {account_id}/{image_identifier}: {e}")
            raise

    def count(self, account_id: Optional[str] = None) -> int:
        query = self.db.query(Image)
        if account_id is not None:
            query = query.filter(Image.account_id == account_id)
        return query.count()

    def _get_image(self, account_id: str, image_identifier: str) -> Optional[Image]:
        """Internal method to retrieve an image row by its key."""
        return self.db.get(Image, (account_id, image_identifier))
