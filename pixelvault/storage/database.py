"""SQLAlchemy-backed implementation of ImageStore."""
import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pixelvault.models.db import OriginalBlob, VariationBlob

from .base import ImageStore, StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseImageStore(ImageStore):
    """Stores blobs in database tables.

    Each call runs in its own session obtained from ``session_factory`` and
    commits or rolls back as a unit, so a blob is never half written.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        """Initialize the store.

        Args:
            session_factory: Callable returning a new SQLAlchemy session,
                typically a ``sessionmaker``.
        """
        self.session_factory = session_factory
        logger.info("Initialized DatabaseImageStore")

    def _run(self, action: str, work: Callable[[Session], T]) -> T:
        session = self.session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise StorageError(f"Failed to {action}: {e}") from e
        finally:
            session.close()

    def _upsert(self, action: str, row: OriginalBlob | VariationBlob) -> None:
        try:
            self._run(action, lambda session: session.merge(row))
        except StorageError as e:
            # Two writers inserted the same key at once; the second write
            # becomes an update.
            if not isinstance(e.__cause__, IntegrityError):
                raise
            self._run(action, lambda session: session.merge(row))

    def store_original(self, account_id: str, image_identifier: str, blob: bytes) -> None:
        self._upsert(
            "store original image",
            OriginalBlob(account_id=account_id, image_identifier=image_identifier, data=blob),
        )
        logger.debug(f"Stored original {account_id}/{image_identifier}")

    def get_original(self, account_id: str, image_identifier: str) -> Optional[bytes]:
        def work(session: Session) -> Optional[bytes]:
            row = session.get(OriginalBlob, (account_id, image_identifier))
            return row.data if row else None

        return self._run("read original image", work)

    def delete_original(self, account_id: str, image_identifier: str) -> bool:
        def work(session: Session) -> bool:
            deleted = (
                session.query(OriginalBlob)
                .filter(
                    OriginalBlob.account_id == account_id,
                    OriginalBlob.image_identifier == image_identifier,
                )
                .delete()
            )
            return deleted > 0

        return self._run("delete original image", work)

    def store_variation(
        self, account_id: str, image_identifier: str, width: int, blob: bytes
    ) -> None:
        self._upsert(
            "store image variation",
            VariationBlob(
                account_id=account_id,
                image_identifier=image_identifier,
                width=int(width),
                data=blob,
            ),
        )
        logger.debug(f"Stored variation {account_id}/{image_identifier}@{width}")

    def get_variation(
        self, account_id: str, image_identifier: str, width: int
    ) -> Optional[bytes]:
        def work(session: Session) -> Optional[bytes]:
            row = session.get(VariationBlob, (account_id, image_identifier, int(width)))
            return row.data if row else None

        return self._run("read image variation", work)

    def delete_variations(
        self, account_id: str, image_identifier: str, width: Optional[int] = None
    ) -> bool:
        def work(session: Session) -> bool:
            query = session.query(VariationBlob).filter(
                VariationBlob.account_id == account_id,
                VariationBlob.image_identifier == image_identifier,
            )
            if width is not None:
                query = query.filter(VariationBlob.width == int(width))
            return query.delete() > 0

        return self._run("delete image variations", work)
