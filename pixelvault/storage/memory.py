"""In-memory implementation of ImageStore."""
import logging
import threading
from typing import Optional

from .base import ImageStore

logger = logging.getLogger(__name__)


class InMemoryImageStore(ImageStore):
    """Dictionary backed store.

    Data is not persisted and will be lost when the application restarts.
    Suitable for development and testing.
    """

    def __init__(self):
        self._originals: dict[tuple[str, str], bytes] = {}
        self._variations: dict[tuple[str, str], dict[int, bytes]] = {}
        self._lock = threading.Lock()
        logger.info("Initialized InMemoryImageStore")

    def store_original(self, account_id: str, image_identifier: str, blob: bytes) -> None:
        with self._lock:
            self._originals[(account_id, image_identifier)] = bytes(blob)

    def get_original(self, account_id: str, image_identifier: str) -> Optional[bytes]:
        return self._originals.get((account_id, image_identifier))

    def delete_original(self, account_id: str, image_identifier: str) -> bool:
        with self._lock:
            return self._originals.pop((account_id, image_identifier), None) is not None

    def store_variation(
        self, account_id: str, image_identifier: str, width: int, blob: bytes
    ) -> None:
        with self._lock:
            self._variations.setdefault((account_id, image_identifier), {})[int(width)] = bytes(blob)

    def get_variation(
        self, account_id: str, image_identifier: str, width: int
    ) -> Optional[bytes]:
        return self._variations.get((account_id, image_identifier), {}).get(int(width))

    def delete_variations(
        self, account_id: str, image_identifier: str, width: Optional[int] = None
    ) -> bool:
        key = (account_id, image_identifier)
        with self._lock:
            if width is None:
                return self._variations.pop(key, None) is not None
            widths = self._variations.get(key)
            if not widths or widths.pop(int(width), None) is None:
                return False
            if not widths:
                del self._variations[key]
            return True

    def clear(self) -> None:
        """Drop everything. Mainly useful in tests."""
        with self._lock:
            self._originals.clear()
            self._variations.clear()
        logger.debug("Cleared in-memory image store")
