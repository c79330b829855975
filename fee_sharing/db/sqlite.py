"""
fee_sharing.db.sqlite — SQLite backend for the ledger KV.

One table, `records(key BLOB PRIMARY KEY, value BLOB)`. Keys compare bytewise,
so a namespace scan is the half-open range [prefix, next(prefix)).

The connection runs in autocommit mode; `SQLiteBatch` opens an explicit
`BEGIN IMMEDIATE` transaction so a batch either lands completely or not at all.
File databases use WAL journaling.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from typing import Dict, Iterator, Optional, Tuple, Union

from .kv import Batch

log = logging.getLogger("fee_sharing.db.sqlite")

PathLike = Union[str, "os.PathLike[str]"]

PRAGMAS: Dict[str, str] = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "temp_store": "MEMORY",
}

_SCHEMA = "CREATE TABLE IF NOT EXISTS records (key BLOB PRIMARY KEY, value BLOB NOT NULL)"
_UPSERT = "INSERT INTO records(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value = excluded.value"
_DELETE = "DELETE FROM records WHERE key = ?"


def _next_prefix(prefix: bytes) -> Optional[bytes]:
    """Smallest key above every key starting with `prefix`; None if unbounded."""
    b = bytearray(prefix)
    while b:
        if b[-1] < 0xFF:
            b[-1] += 1
            return bytes(b)
        b.pop()
    return None


class SQLiteBatch:
    """Write batch bound to one connection. Not reentrant."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._active = False

    def __enter__(self) -> "SQLiteBatch":
        if self._active:
            raise RuntimeError("batch already active")
        self._conn.execute("BEGIN IMMEDIATE")
        self._active = True
        return self

    def _require_active(self) -> None:
        if not self._active:
            raise RuntimeError("batch used outside its with-block")

    def put(self, key: bytes, value: bytes) -> None:
        self._require_active()
        self._conn.execute(_UPSERT, (bytes(key), bytes(value)))

    def delete(self, key: bytes) -> None:
        self._require_active()
        self._conn.execute(_DELETE, (bytes(key),))

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self._active = False
        self._conn.execute("ROLLBACK" if exc_type is not None else "COMMIT")
        return None


class SQLiteKV:
    """`KV` over a single SQLite connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, key: bytes) -> Optional[bytes]:
        row = self._conn.execute("SELECT value FROM records WHERE key = ?", (bytes(key),)).fetchone()
        return None if row is None else bytes(row[0])

    def has(self, key: bytes) -> bool:
        return self._conn.execute("SELECT 1 FROM records WHERE key = ?", (bytes(key),)).fetchone() is not None

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        lo = bytes(prefix)
        hi = _next_prefix(lo)
        if hi is None:
            rows = self._conn.execute(
                "SELECT key, value FROM records WHERE key >= ? ORDER BY key", (lo,)
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT key, value FROM records WHERE key >= ? AND key < ? ORDER BY key", (lo, hi)
            ).fetchall()
        # Rows are fetched up front; callers may write while iterating.
        for k, v in rows:
            yield bytes(k), bytes(v)

    def put(self, key: bytes, value: bytes) -> None:
        self._conn.execute(_UPSERT, (bytes(key), bytes(value)))

    def delete(self, key: bytes) -> None:
        self._conn.execute(_DELETE, (bytes(key),))

    def batch(self) -> Batch:
        return SQLiteBatch(self._conn)

    def close(self) -> None:
        self._conn.close()


def open_sqlite_kv(path: PathLike, *, pragmas: Optional[Dict[str, str]] = None, create: bool = True) -> SQLiteKV:
    """
    Open the KV at `path` (":memory:" for a private in-memory database).

    Raises FileNotFoundError when `create` is False and the file is missing.
    """
    target = str(path)
    if target != ":memory:" and not create and not os.path.exists(target):
        raise FileNotFoundError(f"no ledger store at {target}")
    conn = sqlite3.connect(target, isolation_level=None, check_same_thread=False)
    settings = {**PRAGMAS, **(pragmas or {})}
    if target == ":memory:":
        settings.pop("journal_mode", None)
    for name, value in settings.items():
        conn.execute(f"PRAGMA {name}={value}")
    conn.execute(_SCHEMA)
    log.debug("sqlite kv opened", extra={"path": target})
    return SQLiteKV(conn)


__all__ = ["SQLiteBatch", "SQLiteKV", "open_sqlite_kv"]
