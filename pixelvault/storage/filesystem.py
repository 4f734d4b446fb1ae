"""Sharded local filesystem implementation of ImageStore."""
import errno
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from config import get_settings

from .base import ImageStore, StorageError
from .sharding import ensure_directory, shard_path

logger = logging.getLogger(__name__)

FILE_MODE = 0o664


class FilesystemImageStore(ImageStore):
    """Local filesystem storage implementation.

    Originals and variations live in two separate sharded trees so that
    wiping an image's variations never touches the original:

    - ``originals_root/a/b/c/abc/x/y/z/xyz`` is the original file.
    - ``variations_root/a/b/c/abc/x/y/z/xyz/<width>`` is one variation.

    Every write goes to a temporary file that is renamed into place, so a
    blob is either fully written or absent, and concurrent writers of the
    same key simply overwrite each other.
    """

    def __init__(
        self,
        originals_root: Optional[str | Path] = None,
        variations_root: Optional[str | Path] = None,
    ):
        """Initialize filesystem storage.

        Args:
            originals_root: Directory for original images. Defaults to the
                configured ``storage_root/originals``.
            variations_root: Directory for variations. Defaults to the
                configured ``storage_root/variations``.
        """
        settings = get_settings()

        self.originals_root = (
            Path(originals_root) if originals_root is not None else settings.originals_root
        )
        self.variations_root = (
            Path(variations_root) if variations_root is not None else settings.variations_root
        )

        self._ensure_storage_dir(self.originals_root)
        self._ensure_storage_dir(self.variations_root)
        logger.info(
            f"Initialized FilesystemImageStore with originals at {self.originals_root}, "
            f"variations at {self.variations_root}"
        )

    def _ensure_storage_dir(self, root: Path) -> None:
        """Ensure a storage root exists."""
        try:
            ensure_directory(root)
        except OSError as e:
            logger.error(f"Failed to create storage directory {root}: {e}")
            raise StorageError(f"Failed to create storage directory: {e}") from e

    def _write(self, root: Path, path: Path, blob: bytes, sweepable: bool = False) -> None:
        """Atomically write ``blob`` to ``path``.

        With ``sweepable``, a write whose directory or temporary file was
        removed by a concurrent ``delete_variations`` is dropped instead of
        failing.
        """
        if not os.access(root, os.W_OK):
            logger.error(f"Storage root is not writable: {root}")
            raise StorageError(
                "Could not store image (directory not writable)",
                details={"root": str(root)},
            )

        try:
            ensure_directory(path.parent)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(blob)
                os.chmod(tmp_name, FILE_MODE)
                os.replace(tmp_name, path)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                raise
        except FileNotFoundError as e:
            if not sweepable:
                logger.error(f"Failed to write {path}: {e}")
                raise StorageError(f"Failed to store image: {e}") from e
            logger.warning(f"Write to {path} lost to a concurrent variation delete")
            return
        except OSError as e:
            logger.error(f"Failed to write {path}: {e}")
            raise StorageError(f"Failed to store image: {e}") from e

        logger.debug(f"Stored {len(blob)} bytes at {path}")

    def _read(self, path: Path) -> Optional[bytes]:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Failed to read {path}: {e}")
            raise StorageError(f"Failed to read image: {e}") from e

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete {path}: {e}")
            raise StorageError(f"Failed to delete image: {e}") from e
        logger.debug(f"Deleted {path}")
        return True

    def store_original(self, account_id: str, image_identifier: str, blob: bytes) -> None:
        path = shard_path(self.originals_root, account_id, image_identifier)
        self._write(self.originals_root, path, blob)

    def get_original(self, account_id: str, image_identifier: str) -> Optional[bytes]:
        return self._read(shard_path(self.originals_root, account_id, image_identifier))

    def delete_original(self, account_id: str, image_identifier: str) -> bool:
        return self._unlink(shard_path(self.originals_root, account_id, image_identifier))

    def store_variation(
        self, account_id: str, image_identifier: str, width: int, blob: bytes
    ) -> None:
        path = shard_path(self.variations_root, account_id, image_identifier, width)
        self._write(self.variations_root, path, blob, sweepable=True)

    def get_variation(
        self, account_id: str, image_identifier: str, width: int
    ) -> Optional[bytes]:
        return self._read(shard_path(self.variations_root, account_id, image_identifier, width))

    def delete_variations(
        self, account_id: str, image_identifier: str, width: Optional[int] = None
    ) -> bool:
        """Delete a single variation, or every variation and their directory.

        Returns False when there was nothing to delete.
        """
        if width is not None:
            return self._unlink(
                shard_path(self.variations_root, account_id, image_identifier, width)
            )

        directory = shard_path(self.variations_root, account_id, image_identifier)
        if not directory.is_dir():
            logger.debug(f"No variations to delete for {account_id}/{image_identifier}")
            return False

        # A second pass picks up variations written during the first one
        for attempt in range(2):
            try:
                self._sweep(directory)
                break
            except FileNotFoundError:
                # Removed by a concurrent delete
                break
            except OSError as e:
                if attempt == 0 and e.errno in (errno.ENOTEMPTY, errno.EEXIST):
                    logger.debug(f"Variations added to {directory} during delete, retrying")
                    continue
                logger.error(f"Failed to delete variations in {directory}: {e}")
                raise StorageError(f"Failed to delete image variations: {e}") from e

        logger.debug(f"Deleted all variations for {account_id}/{image_identifier}")
        return True

    @staticmethod
    def _sweep(directory: Path) -> None:
        for entry in directory.iterdir():
            try:
                entry.unlink()
            except FileNotFoundError:
                pass
        directory.rmdir()
