"""
fee_sharing.state.store — ledger records over a KV backend.

Records live under the `LEDGERS` prefix keyed by ledger address. Reads decode
the fixed layout; writes go through one KV batch so a record is either fully
replaced or untouched.

`transaction(address)` is the unit every mutating command uses:

    with store.transaction(addr) as ledger:
        distribution.fund(ledger, amount)
    # clean exit -> record written back once
    # exception  -> nothing written

The store itself takes no locks; the program layer serializes commands.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

from ..authority import as_address, short
from ..db.kv import KV, LEDGERS, META
from ..errors import InvalidFeeVault
from .layout import LEDGER_SIZE, decode_ledger, encode_ledger
from .ledger import Ledger

log = logging.getLogger("fee_sharing.state.store")

SCHEMA_VERSION = 1
_SCHEMA_KEY = META.key(b"schema")


class LedgerStore:
    """Typed access to persisted ledgers."""

    def __init__(self, kv: KV) -> None:
        self._kv = kv
        raw = kv.get(_SCHEMA_KEY)
        if raw is None:
            kv.put(_SCHEMA_KEY, SCHEMA_VERSION.to_bytes(2, "big"))
        elif int.from_bytes(raw, "big") != SCHEMA_VERSION:
            raise InvalidFeeVault(
                "store schema version mismatch",
                data={"found": int.from_bytes(raw, "big"), "expected": SCHEMA_VERSION},
            )

    @property
    def kv(self) -> KV:
        return self._kv

    # ------------------------------------------------------------------ reads

    def exists(self, address: bytes) -> bool:
        return self._kv.has(LEDGERS.key(as_address(address)))

    def load(self, address: bytes) -> Optional[Ledger]:
        addr = as_address(address)
        raw = self._kv.get(LEDGERS.key(addr))
        if raw is None:
            return None
        return decode_ledger(raw, address=addr)

    def get(self, address: bytes) -> Ledger:
        """Decode the ledger at `address`. Raises InvalidFeeVault when absent."""
        ledger = self.load(address)
        if ledger is None:
            raise InvalidFeeVault("fee vault not found", data={"address": "0x" + bytes(address).hex()})
        return ledger

    def iter_ledgers(self) -> Iterator[Tuple[bytes, Ledger]]:
        for key, raw in self._kv.iter_prefix(LEDGERS.raw):
            addr = LEDGERS.strip(key)
            yield addr, decode_ledger(raw, address=addr)

    # ----------------------------------------------------------------- writes

    def create(self, ledger: Ledger) -> None:
        """Persist a new ledger. Raises InvalidFeeVault if the address is taken."""
        addr = as_address(ledger.address)
        key = LEDGERS.key(addr)
        if self._kv.has(key):
            raise InvalidFeeVault("fee vault already exists", data={"address": "0x" + addr.hex()})
        record = encode_ledger(ledger)
        with self._kv.batch() as b:
            b.put(key, record)
        log.debug("ledger created", extra={"address": short(addr), "size": LEDGER_SIZE})

    def put(self, ledger: Ledger) -> None:
        addr = as_address(ledger.address)
        record = encode_ledger(ledger)
        with self._kv.batch() as b:
            b.put(LEDGERS.key(addr), record)

    @contextmanager
    def transaction(self, address: bytes) -> Iterator[Ledger]:
        """
        Yield a working copy of the ledger; write it back only on clean exit.

        The record is read exactly once, so every check and mutation inside
        the block sees the same state.
        """
        ledger = self.get(address)
        yield ledger
        self.put(ledger)


__all__ = ["LedgerStore", "SCHEMA_VERSION"]
