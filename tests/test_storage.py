"""Unit tests for the image store backends."""

import errno
import os
import stat
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest.mock import Mock

import pytest

from pixelvault.errors import InvalidArgument
from pixelvault.storage import (
    DatabaseImageStore,
    FilesystemImageStore,
    ImageStore,
    InMemoryImageStore,
    StorageError,
)
from pixelvault.storage.sharding import ensure_directory, scoped_umask, shard_parts, shard_path

IMAGE_ID = "929db9c5fc3099f7576f5655207eba47"
OTHER_ID = "0123456789abcdef0123456789abcdef"


class TestSharding:
    """Test the sharded path layout."""

    def test_variation_path(self, tmp_path):
        path = shard_path(tmp_path, "christer", IMAGE_ID, 100)

        assert path == tmp_path / "c" / "h" / "r" / "christer" / "9" / "2" / "9" / IMAGE_ID / "100"

    def test_path_without_width(self, tmp_path):
        path = shard_path(tmp_path, "christer", IMAGE_ID)
        assert path.relative_to(tmp_path).parts == ("c", "h", "r", "christer", "9", "2", "9", IMAGE_ID)

    def test_parts(self):
        assert shard_parts("abc", "xyz") == ["a", "b", "c", "abc", "x", "y", "z", "xyz"]

    @pytest.mark.parametrize(
        "account_id, image_identifier",
        [
            ("ab", IMAGE_ID),
            ("christer", "ab"),
            ("../etc", IMAGE_ID),
            ("chr/ister", IMAGE_ID),
            ("christer", "..\\" + IMAGE_ID),
            (None, IMAGE_ID),
        ],
    )
    def test_rejects_invalid_components(self, tmp_path, account_id, image_identifier):
        with pytest.raises(InvalidArgument):
            shard_path(tmp_path, account_id, image_identifier)


class TestScopedUmask:
    def test_restores_umask(self):
        previous = os.umask(0o022)
        try:
            with scoped_umask(0):
                assert os.umask(0) == 0
            assert os.umask(0o022) == 0o022
        finally:
            os.umask(previous)

    def test_restores_umask_on_failure(self):
        previous = os.umask(0o027)
        try:
            with pytest.raises(RuntimeError):
                with scoped_umask(0):
                    raise RuntimeError("creation failed")
            assert os.umask(0o027) == 0o027
        finally:
            os.umask(previous)

    def test_overlapping_scopes_are_serialized(self):
        previous = os.umask(0o022)
        try:
            first_entered = threading.Event()
            release_first = threading.Event()
            order = []

            def first():
                with scoped_umask(0):
                    order.append("first in")
                    first_entered.set()
                    release_first.wait(5)
                    order.append("first out")

            def second():
                first_entered.wait(5)
                with scoped_umask(0o077):
                    order.append("second in")

            threads = [threading.Thread(target=first), threading.Thread(target=second)]
            for thread in threads:
                thread.start()
            threads[1].join(0.2)
            assert threads[1].is_alive()

            release_first.set()
            for thread in threads:
                thread.join(5)

            assert order == ["first in", "first out", "second in"]
            assert os.umask(0o022) == 0o022
        finally:
            os.umask(previous)


class TestEnsureDirectory:
    def test_creates_tree_with_mode(self, tmp_path):
        target = tmp_path / "a" / "b" / "c"

        ensure_directory(target)

        assert target.is_dir()
        for directory in (tmp_path / "a", tmp_path / "a" / "b", target):
            assert stat.S_IMODE(directory.stat().st_mode) == 0o775

    def test_existing_directory_is_fine(self, tmp_path):
        ensure_directory(tmp_path)
        assert tmp_path.is_dir()

    def test_concurrent_creators(self, tmp_path):
        """Test that racing creators of the same tree all succeed."""
        target = tmp_path / "x" / "y" / "z" / "deep"

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: ensure_directory(target), range(16)))

        assert results == [None] * 16
        assert target.is_dir()

    def test_file_in_the_way_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")

        with pytest.raises(OSError):
            ensure_directory(blocker)

    def test_concurrent_creators_restore_umask(self, tmp_path):
        previous = os.umask(0o022)
        try:
            targets = [tmp_path / f"{i:02d}" / "a" / "b" for i in range(64)]

            with ThreadPoolExecutor(max_workers=8) as pool:
                list(pool.map(ensure_directory, targets))

            assert all(target.is_dir() for target in targets)
            assert os.umask(0o022) == 0o022
        finally:
            os.umask(previous)


class TestImageStoreProtocol:
    def test_backends_implement_protocol(self, tmp_path, session_factory):
        assert isinstance(InMemoryImageStore(), ImageStore)
        assert isinstance(FilesystemImageStore(tmp_path / "o", tmp_path / "v"), ImageStore)
        assert isinstance(DatabaseImageStore(session_factory), ImageStore)

    def test_non_compliant_class(self):
        class BadStore:
            def get_original(self, account_id, image_identifier):
                return None

        assert not isinstance(BadStore(), ImageStore)

    def test_mock_with_spec_is_accepted(self):
        assert isinstance(Mock(spec=ImageStore), ImageStore)


@pytest.fixture(params=["filesystem", "memory", "database"])
def store(request, tmp_path, session_factory):
    """Every backend must behave identically."""
    if request.param == "filesystem":
        return FilesystemImageStore(tmp_path / "originals", tmp_path / "variations")
    if request.param == "memory":
        return InMemoryImageStore()
    return DatabaseImageStore(session_factory)


class TestImageStoreContract:
    """Behavior shared by all backends."""

    def test_original_round_trip(self, store):
        store.store_original("christer", IMAGE_ID, b"original bytes")
        assert store.get_original("christer", IMAGE_ID) == b"original bytes"

    def test_missing_original_is_none(self, store):
        assert store.get_original("christer", IMAGE_ID) is None

    def test_store_original_overwrites(self, store):
        store.store_original("christer", IMAGE_ID, b"first")
        store.store_original("christer", IMAGE_ID, b"second")
        assert store.get_original("christer", IMAGE_ID) == b"second"

    def test_delete_original(self, store):
        store.store_original("christer", IMAGE_ID, b"data")

        assert store.delete_original("christer", IMAGE_ID) is True
        assert store.get_original("christer", IMAGE_ID) is None
        assert store.delete_original("christer", IMAGE_ID) is False

    def test_accounts_are_isolated(self, store):
        store.store_original("christer", IMAGE_ID, b"mine")
        assert store.get_original("espen", IMAGE_ID) is None

    def test_variation_round_trip(self, store):
        store.store_variation("christer", IMAGE_ID, 100, b"w100")
        store.store_variation("christer", IMAGE_ID, 200, b"w200")

        assert store.get_variation("christer", IMAGE_ID, 100) == b"w100"
        assert store.get_variation("christer", IMAGE_ID, 200) == b"w200"
        assert store.get_variation("christer", IMAGE_ID, 300) is None

    def test_delete_all_variations(self, store):
        """Deleting all widths reports success once, then nothing to delete."""
        for width in (100, 200, 300):
            store.store_variation("christer", IMAGE_ID, width, b"v")
        store.store_variation("christer", OTHER_ID, 100, b"other")

        assert store.delete_variations("christer", IMAGE_ID) is True
        for width in (100, 200, 300):
            assert store.get_variation("christer", IMAGE_ID, width) is None
        assert store.delete_variations("christer", IMAGE_ID) is False

        assert store.get_variation("christer", OTHER_ID, 100) == b"other"

    def test_delete_single_variation(self, store):
        store.store_variation("christer", IMAGE_ID, 100, b"w100")
        store.store_variation("christer", IMAGE_ID, 200, b"w200")

        assert store.delete_variations("christer", IMAGE_ID, 100) is True
        assert store.get_variation("christer", IMAGE_ID, 100) is None
        assert store.get_variation("christer", IMAGE_ID, 200) == b"w200"
        assert store.delete_variations("christer", IMAGE_ID, 100) is False

    def test_delete_variations_keeps_original(self, store):
        store.store_original("christer", IMAGE_ID, b"original")
        store.store_variation("christer", IMAGE_ID, 100, b"w100")

        store.delete_variations("christer", IMAGE_ID)

        assert store.get_original("christer", IMAGE_ID) == b"original"

    def test_concurrent_writes_of_same_key(self, store):
        if isinstance(store, DatabaseImageStore):
            pytest.skip("the in-memory SQLite fixture shares one connection")
        blob = b"x" * 4096

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: store.store_variation("christer", IMAGE_ID, 100, blob), range(16)))

        assert store.get_variation("christer", IMAGE_ID, 100) == blob


class TestFilesystemImageStore:
    """Filesystem specific behavior."""

    @pytest.fixture
    def fs_store(self, tmp_path):
        return FilesystemImageStore(tmp_path / "originals", tmp_path / "variations")

    def test_init_creates_roots(self, tmp_path):
        store = FilesystemImageStore(tmp_path / "o", tmp_path / "v")

        assert store.originals_root.is_dir()
        assert store.variations_root.is_dir()

    def test_init_default_roots_from_settings(self, monkeypatch, tmp_path):
        from config import get_settings

        settings = get_settings()
        monkeypatch.setattr(settings, "storage_root", tmp_path / "data" / "images")

        store = FilesystemImageStore()

        assert store.originals_root == tmp_path / "data" / "images" / "originals"
        assert store.variations_root == tmp_path / "data" / "images" / "variations"

    def test_init_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")

        with pytest.raises(StorageError):
            FilesystemImageStore(blocker / "originals", tmp_path / "v")

    def test_files_land_in_shard_layout(self, fs_store):
        fs_store.store_original("christer", IMAGE_ID, b"original")
        fs_store.store_variation("christer", IMAGE_ID, 100, b"w100")

        original = shard_path(fs_store.originals_root, "christer", IMAGE_ID)
        variation = shard_path(fs_store.variations_root, "christer", IMAGE_ID, 100)
        assert original.read_bytes() == b"original"
        assert variation.read_bytes() == b"w100"
        assert stat.S_IMODE(variation.stat().st_mode) == 0o664
        assert stat.S_IMODE(variation.parent.stat().st_mode) == 0o775

    def test_delete_all_removes_directory(self, fs_store):
        for width in (100, 200):
            fs_store.store_variation("christer", IMAGE_ID, width, b"v")
        directory = shard_path(fs_store.variations_root, "christer", IMAGE_ID)
        assert sorted(p.name for p in directory.iterdir()) == ["100", "200"]

        assert fs_store.delete_variations("christer", IMAGE_ID) is True
        assert not directory.exists()

    def test_no_temporary_files_left_behind(self, fs_store):
        fs_store.store_variation("christer", IMAGE_ID, 100, b"v")
        directory = shard_path(fs_store.variations_root, "christer", IMAGE_ID)
        assert [p.name for p in directory.iterdir()] == ["100"]

    def test_unwritable_root_fails_fast(self, fs_store, monkeypatch):
        """Test that writes fail before any directory is created."""
        monkeypatch.setattr(os, "access", lambda path, mode: False)

        with pytest.raises(StorageError) as exc_info:
            fs_store.store_original("christer", IMAGE_ID, b"data")

        assert "not writable" in exc_info.value.message
        assert list(Path(fs_store.originals_root).iterdir()) == []

    def test_write_failure_raises_storage_error(self, fs_store, monkeypatch):
        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)

        with pytest.raises(StorageError):
            fs_store.store_variation("christer", IMAGE_ID, 100, b"v")

        directory = shard_path(fs_store.variations_root, "christer", IMAGE_ID)
        assert list(directory.iterdir()) == []

    def test_delete_all_retries_when_variation_lands_mid_sweep(self, fs_store, monkeypatch):
        fs_store.store_variation("christer", IMAGE_ID, 100, b"v")
        directory = shard_path(fs_store.variations_root, "christer", IMAGE_ID)
        real_rmdir = Path.rmdir
        late_writes = []

        def rmdir_after_late_write(path):
            if not late_writes:
                late_writes.append(path)
                (path / "200").write_bytes(b"late")
            real_rmdir(path)

        monkeypatch.setattr(Path, "rmdir", rmdir_after_late_write)

        assert fs_store.delete_variations("christer", IMAGE_ID) is True
        assert late_writes == [directory]
        assert not directory.exists()

    def test_variation_write_swept_by_delete_is_dropped(self, fs_store, monkeypatch):
        def swept_replace(src, dst):
            os.unlink(src)
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", src)

        monkeypatch.setattr(os, "replace", swept_replace)

        fs_store.store_variation("christer", IMAGE_ID, 100, b"v")

        assert fs_store.get_variation("christer", IMAGE_ID, 100) is None

    def test_original_write_with_missing_temp_file_raises(self, fs_store, monkeypatch):
        def swept_replace(src, dst):
            os.unlink(src)
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", src)

        monkeypatch.setattr(os, "replace", swept_replace)

        with pytest.raises(StorageError):
            fs_store.store_original("christer", IMAGE_ID, b"o")


class TestInMemoryImageStore:
    def test_clear(self):
        store = InMemoryImageStore()
        store.store_original("christer", IMAGE_ID, b"o")
        store.store_variation("christer", IMAGE_ID, 100, b"v")

        store.clear()

        assert store.get_original("christer", IMAGE_ID) is None
        assert store.get_variation("christer", IMAGE_ID, 100) is None


class TestDatabaseImageStore:
    def test_failing_session_raises_storage_error(self, session_factory, db_engine):
        from pixelvault.models import Base

        store = DatabaseImageStore(session_factory)
        Base.metadata.drop_all(db_engine)

        with pytest.raises(StorageError):
            store.get_original("christer", IMAGE_ID)

        # Recreate so the fixture teardown has something to drop
        Base.metadata.create_all(db_engine)
