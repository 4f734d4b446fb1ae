"""Sharded directory layout for the filesystem backend.

Blobs live under ``root/a/b/c/abc.../x/y/z/xyz...`` where ``abc...`` is the
account id and ``xyz...`` the image identifier. Each shard level has at most
one entry per character of the identifier alphabet, so no single directory
grows unbounded even with millions of images.
"""

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from pixelvault.errors import InvalidArgument

logger = logging.getLogger(__name__)

DIRECTORY_MODE = 0o775

# The umask is process-wide; only one scope may hold it at a time
_UMASK_LOCK = threading.RLock()


def _check_component(kind: str, value: str) -> None:
    if not isinstance(value, str) or len(value) < 3:
        raise InvalidArgument(
            f"{kind} must be a string of at least 3 characters",
            details={kind: value},
        )
    if "/" in value or "\\" in value or value.startswith("."):
        raise InvalidArgument(f"Invalid {kind}", details={kind: value})


def check_account_id(account_id: str) -> None:
    """Reject account ids that cannot name a shard directory.

    Raises:
        InvalidArgument: If the id is shorter than 3 characters, contains a
            path separator or starts with a dot.
    """
    _check_component("account_id", account_id)


def shard_parts(account_id: str, image_identifier: str) -> list[str]:
    """Path components for an account/image pair, without the root."""
    _check_component("account_id", account_id)
    _check_component("image_identifier", image_identifier)
    return [
        account_id[0],
        account_id[1],
        account_id[2],
        account_id,
        image_identifier[0],
        image_identifier[1],
        image_identifier[2],
        image_identifier,
    ]


def shard_path(
    root: Path, account_id: str, image_identifier: str, width: Optional[int] = None
) -> Path:
    """Build the sharded path below ``root``.

    Without ``width`` this is the directory holding an image's variations
    (or, under the originals root, the original file itself). With
    ``width`` it is the file of that single variation.
    """
    path = Path(root).joinpath(*shard_parts(account_id, image_identifier))
    if width is not None:
        path = path / str(int(width))
    return path


@contextmanager
def scoped_umask(mask: int) -> Iterator[None]:
    """Temporarily replace the process umask, restoring it on every exit path.

    Scopes are serialized across threads, so overlapping scopes cannot
    restore each other's mask.
    """
    with _UMASK_LOCK:
        previous = os.umask(mask)
        try:
            yield
        finally:
            os.umask(previous)


def ensure_directory(path: Path, mode: int = DIRECTORY_MODE) -> None:
    """Create ``path`` and its missing parents, each with ``mode``.

    Safe under concurrent creators: if another process creates any part of
    the tree first, this still succeeds.

    Raises:
        OSError: If the directory cannot be created for any other reason.
    """
    path = Path(path)
    missing = []
    current = path
    while not current.is_dir():
        missing.append(current)
        if current.parent == current:
            break
        current = current.parent
    if not missing:
        return

    # os.makedirs() ignores mode for intermediate directories
    with scoped_umask(0):
        for directory in reversed(missing):
            try:
                os.mkdir(directory, mode)
            except FileExistsError:
                # Another creator won the race
                if not directory.is_dir():
                    raise
    logger.debug(f"Created shard directory: {path}")
