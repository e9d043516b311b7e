"""
Cache Store Tests

Bucket creation, transaction commit/rollback semantics and persistence.
"""

import os
import sqlite3
import stat

import pytest

from ratecache.storage import CacheStore, StorageFailureError


@pytest.fixture
def store(tmp_path):
    with CacheStore.open(tmp_path / "nested" / "dir" / "cache") as s:
        yield s


class TestOpen:

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "a" / "b" / "cache"
        with CacheStore.open(path):
            pass

        assert path.exists()

    def test_new_file_is_private(self, tmp_path):
        path = tmp_path / "cache"
        with CacheStore.open(path):
            pass

        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StorageFailureError):
            CacheStore.open(blocker / "cache")


class TestTransactions:

    def test_commit_persists(self, store):
        with store.begin(writable=True) as tx:
            tx.create_bucket_if_not_exists("cache").put("k", b"v")
            tx.commit()

        with store.view() as tx:
            assert tx.bucket("cache").get("k") == b"v"

    def test_exit_without_commit_rolls_back(self, store):
        with store.begin(writable=True) as tx:
            tx.create_bucket_if_not_exists("cache").put("k", b"v")

        with store.view() as tx:
            assert tx.bucket("cache") is None

    def test_exception_rolls_back(self, store):
        with pytest.raises(RuntimeError):
            with store.begin(writable=True) as tx:
                tx.create_bucket_if_not_exists("cache").put("k", b"v")
                raise RuntimeError("boom")

        assert list(store.iter_items("cache")) == []

    def test_put_overwrites(self, store):
        """One entry per key."""
        for value in (b"old", b"new"):
            with store.begin(writable=True) as tx:
                tx.create_bucket_if_not_exists("cache").put("k", value)
                tx.commit()

        assert list(store.iter_items("cache")) == [("k", b"new")]

    def test_buckets_are_isolated(self, store):
        with store.begin(writable=True) as tx:
            tx.create_bucket_if_not_exists("a").put("k", b"1")
            tx.create_bucket_if_not_exists("b").put("k", b"2")
            tx.commit()

        with store.view() as tx:
            assert tx.bucket("a").get("k") == b"1"
            assert tx.bucket("b").get("k") == b"2"
            assert len(tx.bucket("a")) == 1

    def test_missing_key_returns_none(self, store):
        with store.begin(writable=True) as tx:
            assert tx.create_bucket_if_not_exists("cache").get("nope") is None

    def test_read_only_put_raises(self, store):
        with store.begin(writable=True) as tx:
            tx.create_bucket_if_not_exists("cache")
            tx.commit()

        with store.view() as tx:
            with pytest.raises(StorageFailureError):
                tx.bucket("cache").put("k", b"v")

    def test_use_after_commit_raises(self, store):
        with store.begin(writable=True) as tx:
            bucket = tx.create_bucket_if_not_exists("cache")
            tx.commit()

            with pytest.raises(StorageFailureError):
                bucket.get("k")
            with pytest.raises(StorageFailureError):
                tx.commit()

    def test_rollback_is_idempotent(self, store):
        tx = store.begin(writable=True)
        tx.rollback()
        tx.rollback()

        assert tx.closed

    def test_second_writer_waits_then_fails(self, tmp_path):
        """A concurrent writer cannot begin while the lock is held."""
        path = tmp_path / "cache"
        with CacheStore.open(path) as first, CacheStore.open(path, lock_timeout=0.1) as second:
            with first.begin(writable=True):
                with pytest.raises(StorageFailureError):
                    second.begin(writable=True)

    def test_closed_store_raises(self, tmp_path):
        store = CacheStore.open(tmp_path / "cache")
        store.close()
        store.close()

        with pytest.raises(StorageFailureError):
            store.begin(writable=True)


class TestRollbackFailure:

    def test_rollback_error_is_storage_failure(self, store, fail_statement):
        tx = store.begin(writable=True)
        fail_statement(store, "ROLLBACK")

        with pytest.raises(StorageFailureError) as exc_info:
            tx.rollback()

        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)
        assert tx.closed

    def test_clean_exit_reports_rollback_error(self, store, fail_statement):
        fail_statement(store, "ROLLBACK")

        with pytest.raises(StorageFailureError):
            with store.begin(writable=True) as tx:
                tx.create_bucket_if_not_exists("cache")

    def test_rollback_error_does_not_mask_original(self, store, fail_statement):
        fail_statement(store, "ROLLBACK")

        with pytest.raises(RuntimeError, match="boom"):
            with store.begin(writable=True):
                raise RuntimeError("boom")
