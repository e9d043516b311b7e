"""
Shared fixtures.
"""

import sqlite3

import pytest


class FailingConnection:
    """sqlite3 connection wrapper that fails one statement on demand."""

    def __init__(self, conn: sqlite3.Connection, fail_on: str | None):
        self._conn = conn
        self.fail_on = fail_on

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        if self.fail_on is not None and sql.strip().upper() == self.fail_on:
            raise sqlite3.OperationalError("disk I/O error")
        return self._conn.execute(sql, params)

    def __getattr__(self, name):
        return getattr(self._conn, name)


@pytest.fixture
def fail_statement():
    """Make `statement` (e.g. "COMMIT") fail on the given store's connection."""

    def install(store, statement: str) -> FailingConnection:
        wrapper = FailingConnection(store._conn, statement)
        store._conn = wrapper
        return wrapper

    return install
