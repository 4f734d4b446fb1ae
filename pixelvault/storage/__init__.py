"""Storage backends for original images and variations."""

from .base import ImageStore, StorageError
from .database import DatabaseImageStore
from .filesystem import FilesystemImageStore
from .memory import InMemoryImageStore

__all__ = [
    "ImageStore",
    "StorageError",
    "DatabaseImageStore",
    "FilesystemImageStore",
    "InMemoryImageStore",
]
