"""
fee_sharing.db.kv — key-value surface under the ledger store.

Two namespaces share one keyspace:

    LEDGERS  b"l:" + address   -> 680-byte ledger record
    META     b"m:" + name      -> store metadata (schema version)

Backends implement `KV`. Writes that must land together go through
`KV.batch()`, which commits on clean exit and rolls back if the block raises:

>>> from fee_sharing.db import open_kv
>>> kv = open_kv("memory://")
>>> with kv.batch() as b:
...     b.put(LEDGERS.key(b"\\x01" * 32), b"record")
>>> kv.has(LEDGERS.key(b"\\x01" * 32))
True
"""

from __future__ import annotations

from typing import Iterator, Optional, Protocol, Tuple, Union, runtime_checkable

_SEP = b":"


class Prefix:
    """Namespace for keys: `ns:` followed by the raw key body."""

    __slots__ = ("_raw",)

    def __init__(self, ns: Union[bytes, str]) -> None:
        b = ns.encode("ascii") if isinstance(ns, str) else bytes(ns)
        b = b.rstrip(_SEP)
        if not b:
            raise ValueError("namespace must be non-empty")
        self._raw = b + _SEP

    @property
    def raw(self) -> bytes:
        return self._raw

    def key(self, *parts: Union[bytes, str]) -> bytes:
        body = b"".join(p.encode("utf-8") if isinstance(p, str) else bytes(p) for p in parts)
        return self._raw + body

    def strip(self, key: bytes) -> bytes:
        """Key body with the namespace removed."""
        if not key.startswith(self._raw):
            raise ValueError(f"key is not under namespace {self._raw!r}")
        return key[len(self._raw):]

    def __repr__(self) -> str:
        return f"Prefix({self._raw!r})"


LEDGERS = Prefix(b"l")
META = Prefix(b"m")


@runtime_checkable
class ReadOnlyKV(Protocol):
    def get(self, key: bytes) -> Optional[bytes]:
        ...

    def has(self, key: bytes) -> bool:
        ...

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """(key, value) pairs under `prefix`, ascending by key."""
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class Batch(Protocol):
    """All-or-nothing group of writes, used as a context manager."""

    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...

    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class KV(ReadOnlyKV, Protocol):
    def put(self, key: bytes, value: bytes) -> None:
        ...

    def delete(self, key: bytes) -> None:
        ...

    def batch(self) -> Batch:
        ...


__all__ = ["Prefix", "LEDGERS", "META", "ReadOnlyKV", "Batch", "KV"]
