"""
fee_sharing.db — where ledger records are kept.

`open_kv(uri)` accepts:

    memory://                an in-memory SQLite database (lost on close)
    sqlite:///:memory:       same
    sqlite:///var/fees.db    SQLite file at var/fees.db
    fees.db                  bare path with a .db suffix

Anything else raises ValueError.
"""

from __future__ import annotations

from .kv import KV, LEDGERS, META, Batch, Prefix, ReadOnlyKV
from .sqlite import open_sqlite_kv

_MEMORY = ":memory:"


def _sqlite_target(uri: str) -> str:
    u = uri.strip()
    if u == "memory://" or u == "memory:":
        return _MEMORY
    if u.startswith("sqlite:///"):
        return u[len("sqlite:///"):] or _MEMORY
    if u.endswith(".db"):
        return u
    raise ValueError(f"unsupported store URI: {uri!r}")


def open_kv(uri: str, create: bool = True) -> KV:
    """Open the store named by `uri`; FileNotFoundError if absent and `create` is False."""
    target = _sqlite_target(uri)
    return open_sqlite_kv(target, create=create or target == _MEMORY)


__all__ = ["KV", "ReadOnlyKV", "Batch", "Prefix", "LEDGERS", "META", "open_kv"]
