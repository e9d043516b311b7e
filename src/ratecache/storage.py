"""
Cache Store

File-backed transactional key-value store with named buckets, built on
sqlite3. A writable transaction takes the database write lock up front
(BEGIN IMMEDIATE), so concurrent processes are serialized as single writers
and readers never see a half-written entry.
"""

import logging
import os
import sqlite3
from pathlib import Path
from typing import Any, Iterator

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS buckets (
    name TEXT PRIMARY KEY
);
CREATE TABLE IF NOT EXISTS entries (
    bucket TEXT NOT NULL REFERENCES buckets(name),
    key TEXT NOT NULL,
    value BLOB NOT NULL,
    PRIMARY KEY (bucket, key)
);
"""


class CacheError(Exception):
    """Base exception for cache store errors."""

    def __init__(
        self,
        message: str,
        error_type: str = "UNKNOWN",
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.details = details or {}


class CacheCorruptionError(CacheError):
    """A stored entry exists but cannot be decoded."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, error_type="CACHE_CORRUPTION", details=details)


class StorageFailureError(CacheError):
    """Open, begin, bucket, put or commit failed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, error_type="STORAGE_FAILURE", details=details)


class Bucket:
    """A named key space inside one transaction."""

    def __init__(self, tx: "Transaction", name: str):
        self._tx = tx
        self.name = name

    def get(self, key: str) -> bytes | None:
        row = self._tx._execute(
            "SELECT value FROM entries WHERE bucket = ? AND key = ?",
            (self.name, key),
        ).fetchone()
        return bytes(row[0]) if row is not None else None

    def put(self, key: str, value: bytes) -> None:
        """Insert or overwrite the entry for `key`."""
        if not self._tx.writable:
            raise StorageFailureError(
                "put on read-only transaction",
                details={"bucket": self.name, "key": key}
            )
        self._tx._execute(
            """
            INSERT INTO entries (bucket, key, value) VALUES (?, ?, ?)
            ON CONFLICT (bucket, key) DO UPDATE SET value = excluded.value
            """,
            (self.name, key, sqlite3.Binary(value)),
        )

    def keys(self) -> list[str]:
        rows = self._tx._execute(
            "SELECT key FROM entries WHERE bucket = ? ORDER BY key",
            (self.name,),
        ).fetchall()
        return [r[0] for r in rows]

    def __len__(self) -> int:
        row = self._tx._execute(
            "SELECT COUNT(*) FROM entries WHERE bucket = ?", (self.name,)
        ).fetchone()
        return int(row[0])


class Transaction:
    """
    One atomic unit of work against the store.

    Nothing is persisted until `commit()`; leaving the `with` block (or
    calling `rollback()`) without committing discards every change.
    """

    def __init__(self, conn: sqlite3.Connection, writable: bool):
        self._conn = conn
        self.writable = writable
        self.closed = False
        try:
            conn.execute("BEGIN IMMEDIATE" if writable else "BEGIN DEFERRED")
        except sqlite3.Error as e:
            self.closed = True
            raise StorageFailureError(
                f"Cannot begin transaction: {e}",
                details={"writable": writable}
            ) from e

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        if self.closed:
            raise StorageFailureError("Transaction is already closed")
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StorageFailureError(f"Storage operation failed: {e}") from e

    def bucket(self, name: str) -> Bucket | None:
        row = self._execute(
            "SELECT 1 FROM buckets WHERE name = ?", (name,)
        ).fetchone()
        return Bucket(self, name) if row is not None else None

    def create_bucket_if_not_exists(self, name: str) -> Bucket:
        if not name:
            raise StorageFailureError("Bucket name must not be empty")
        if not self.writable:
            existing = self.bucket(name)
            if existing is None:
                raise StorageFailureError(
                    f"Bucket '{name}' does not exist (read-only transaction)",
                    details={"bucket": name}
                )
            return existing
        self._execute("INSERT OR IGNORE INTO buckets (name) VALUES (?)", (name,))
        return Bucket(self, name)

    def commit(self) -> None:
        if self.closed:
            raise StorageFailureError("Transaction is already closed")
        if not self.writable:
            raise StorageFailureError("Cannot commit a read-only transaction")
        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._discard_after(e)
            raise StorageFailureError(f"Commit failed: {e}") from e
        self.closed = True

    def rollback(self) -> None:
        """Discard the transaction. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        try:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            raise StorageFailureError(f"Rollback failed: {e}") from e

    def __enter__(self) -> "Transaction":
        return self

    def _discard_after(self, error: BaseException) -> None:
        """Roll back while `error` is propagating; it stays the reported error."""
        try:
            self.rollback()
        except StorageFailureError as e:
            logger.error(f"{e} (while handling {type(error).__name__}: {error})")

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is None:
            self.rollback()
        else:
            self._discard_after(exc)


class CacheStore:
    """
    Embedded cache database handle.

    Opened once per run and closed at the end of it:

        >>> with CacheStore.open(path) as store:
        ...     with store.begin(writable=True) as tx:
        ...         tx.create_bucket_if_not_exists("cache").put("k", b"v")
        ...         tx.commit()
    """

    def __init__(self, path: Path, conn: sqlite3.Connection):
        self.path = path
        self._conn: sqlite3.Connection | None = conn

    @classmethod
    def open(cls, path: Path | str, lock_timeout: float = 30.0) -> "CacheStore":
        """
        Open (and create if missing) the store at `path`.

        Raises:
            StorageFailureError: If the directory or database cannot be created
        """
        path = Path(path).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            is_new = not path.exists()
            conn = sqlite3.connect(
                str(path),
                timeout=lock_timeout,
                isolation_level=None,
            )
        except (OSError, sqlite3.Error) as e:
            raise StorageFailureError(
                f"Cannot open cache store: {e}",
                details={"path": str(path)}
            ) from e

        try:
            conn.executescript(SCHEMA)
            if is_new:
                os.chmod(path, 0o600)
        except (OSError, sqlite3.Error) as e:
            conn.close()
            raise StorageFailureError(
                f"Cannot initialize cache store: {e}",
                details={"path": str(path)}
            ) from e

        logger.debug(f"Cache store opened: {path}")
        return cls(path, conn)

    def begin(self, writable: bool) -> Transaction:
        if self._conn is None:
            raise StorageFailureError(
                "Cache store is closed", details={"path": str(self.path)}
            )
        return Transaction(self._conn, writable)

    def view(self) -> Transaction:
        """Read-only transaction."""
        return self.begin(writable=False)

    def iter_items(self, bucket_name: str) -> Iterator[tuple[str, bytes]]:
        with self.view() as tx:
            bucket = tx.bucket(bucket_name)
            if bucket is None:
                return
            for key in bucket.keys():
                value = bucket.get(key)
                if value is not None:
                    yield key, value

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug(f"Cache store closed: {self.path}")

    def __enter__(self) -> "CacheStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
