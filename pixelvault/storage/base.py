"""Storage interface for original images and their variations."""

from typing import Optional, Protocol, runtime_checkable

from pixelvault.errors import StorageError


@runtime_checkable
class ImageStore(Protocol):
    """Abstract interface for image blob storage.

    This interface defines the contract every backend (filesystem, database,
    in-memory) implements identically. Originals are addressed by
    ``(account_id, image_identifier)``; variations additionally by the
    output ``width`` they were rendered at.

    A missing blob is reported as ``None``, not as an error: for variations
    it is the cache-miss signal.
    """

    def store_original(self, account_id: str, image_identifier: str, blob: bytes) -> None:
        """Store an original image.

        Raises:
            StorageError: If the blob cannot be written.
        """
        ...

    def get_original(self, account_id: str, image_identifier: str) -> Optional[bytes]:
        """Fetch an original image, or ``None`` if it does not exist."""
        ...

    def delete_original(self, account_id: str, image_identifier: str) -> bool:
        """Delete an original image.

        Returns:
            bool: True if something was deleted, False if it did not exist.

        Raises:
            StorageError: If the blob exists but cannot be removed.
        """
        ...

    def store_variation(
        self, account_id: str, image_identifier: str, width: int, blob: bytes
    ) -> None:
        """Store a rendered variation. Storing the same key twice overwrites.

        Raises:
            StorageError: If the blob cannot be written.
        """
        ...

    def get_variation(
        self, account_id: str, image_identifier: str, width: int
    ) -> Optional[bytes]:
        """Fetch a variation, or ``None`` on a cache miss."""
        ...

    def delete_variations(
        self, account_id: str, image_identifier: str, width: Optional[int] = None
    ) -> bool:
        """Delete one variation (``width`` given) or all of them.

        Returns:
            bool: True if something was deleted, False if there was nothing
            to delete.

        Raises:
            StorageError: If existing data cannot be removed.
        """
        ...


__all__ = ["ImageStore", "StorageError"]
