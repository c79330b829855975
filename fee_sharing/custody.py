"""
fee_sharing.custody — value kinds, transfer fees and the custody bank.

The distribution engine never touches balances. Everything that moves value
goes through `Bank.move(amount, source, destination, authority)`:

- the source record must be owned by `authority`
- both records must hold the same value kind
- the destination is credited the *net* amount: amount minus the transfer fee
  of the value kind (withheld on the destination record)

Transfer fee
------------
    fee = min(ceil(amount * bps / 10_000), max_fee)

Only EXTENDED value kinds that carry TRANSFER_FEE_CONFIG charge a fee.

Checkpoints
-----------
`Bank.begin()` pushes a snapshot of every record; `revert()` restores it and
`commit()` drops it. The program wraps every command in `Bank.checkpoint()` so
a failed command leaves custody exactly as it found it.
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple

from .authority import as_address, short
from .constants import BPS_DENOMINATOR, U64_MAX
from .errors import CustodyError, MathOverflow, UnsupportedValueKind
from .math import checked_add, checked_sub
from .state.ledger import ValueFlag

log = logging.getLogger("fee_sharing.custody")


class Extension(str, Enum):
    """Value-kind extensions. Only a handful have modeled transfer semantics."""

    TRANSFER_FEE_CONFIG = "transfer_fee_config"
    METADATA_POINTER = "metadata_pointer"
    TOKEN_METADATA = "token_metadata"
    TRANSFER_HOOK = "transfer_hook"
    PERMANENT_DELEGATE = "permanent_delegate"
    NON_TRANSFERABLE = "non_transferable"
    CONFIDENTIAL_TRANSFER = "confidential_transfer"
    INTEREST_BEARING = "interest_bearing"


SUPPORTED_EXTENSIONS: FrozenSet[Extension] = frozenset(
    {Extension.TRANSFER_FEE_CONFIG, Extension.METADATA_POINTER, Extension.TOKEN_METADATA}
)


@dataclass(frozen=True)
class TransferFee:
    bps: int = 0
    max_fee: int = U64_MAX

    def calculate(self, amount: int) -> int:
        if amount == 0 or self.bps == 0:
            return 0
        raw = -(-amount * self.bps // BPS_DENOMINATOR)  # ceil
        return min(raw, self.max_fee)


@dataclass(frozen=True)
class ValueKind:
    """
    A fungible value kind.

    Attributes:
        identity:     32-byte identifier
        flag:         PLAIN or EXTENDED transfer semantics
        extensions:   EXTENDED only; the extensions enabled on the kind
        transfer_fee: EXTENDED + TRANSFER_FEE_CONFIG only
    """
    identity: bytes
    flag: ValueFlag = ValueFlag.PLAIN
    extensions: FrozenSet[Extension] = frozenset()
    transfer_fee: Optional[TransferFee] = None

    def effective_fee(self) -> Optional[TransferFee]:
        if self.flag is ValueFlag.PLAIN:
            return None
        if Extension.TRANSFER_FEE_CONFIG not in self.extensions:
            return None
        return self.transfer_fee


def is_supported_value_kind(kind: ValueKind) -> bool:
    if kind.flag is ValueFlag.PLAIN:
        return True
    return all(e in SUPPORTED_EXTENSIONS for e in kind.extensions)


def require_supported(kind: ValueKind) -> None:
    if not is_supported_value_kind(kind):
        unsupported = sorted(e.value for e in kind.extensions if e not in SUPPORTED_EXTENSIONS)
        raise UnsupportedValueKind(
            data={"value_identity": "0x" + kind.identity.hex(), "extensions": unsupported}
        )


def transfer_fee_excluded_amount(kind: ValueKind, amount: int) -> Tuple[int, int]:
    """Return (net, fee) for a transfer of `amount` (fee-inclusive)."""
    fee = 0
    tf = kind.effective_fee()
    if tf is not None:
        fee = tf.calculate(amount)
    try:
        return checked_sub(amount, fee, 64), fee
    except MathOverflow:
        raise MathOverflow("transfer fee exceeds amount", op="transfer_fee_excluded_amount")


@dataclass
class CustodyAccount:
    address: bytes
    value_identity: bytes
    owner: bytes
    amount: int = 0
    withheld: int = 0


@dataclass
class Bank:
    """In-process custody bank: records, value kinds and snapshot checkpoints."""

    _kinds: Dict[bytes, ValueKind] = field(default_factory=dict)
    _accounts: Dict[bytes, CustodyAccount] = field(default_factory=dict)
    _snapshots: List[Dict[bytes, CustodyAccount]] = field(default_factory=list)

    # ----------------------------------------------------------- value kinds

    def register_value_kind(self, kind: ValueKind) -> ValueKind:
        self._kinds[as_address(kind.identity)] = kind
        return kind

    def value_kind(self, identity: bytes) -> ValueKind:
        try:
            return self._kinds[bytes(identity)]
        except KeyError:
            raise CustodyError("unknown value kind", data={"value_identity": "0x" + bytes(identity).hex()})

    # --------------------------------------------------------------- records

    def open_account(self, address: bytes, value_identity: bytes, owner: bytes, amount: int = 0) -> CustodyAccount:
        addr = as_address(address)
        if addr in self._accounts:
            raise CustodyError("custody record already exists", data={"address": "0x" + addr.hex()})
        self.value_kind(value_identity)
        acct = CustodyAccount(address=addr, value_identity=as_address(value_identity), owner=as_address(owner), amount=amount)
        self._accounts[addr] = acct
        log.debug("custody record opened", extra={"address": short(addr), "owner": short(acct.owner)})
        return acct

    def account(self, address: bytes) -> CustodyAccount:
        try:
            return self._accounts[bytes(address)]
        except KeyError:
            raise CustodyError("unknown custody record", data={"address": "0x" + bytes(address).hex()})

    def has_account(self, address: bytes) -> bool:
        return bytes(address) in self._accounts

    def balance(self, address: bytes) -> int:
        return self.account(address).amount

    def mint(self, address: bytes, amount: int) -> None:
        """Credit `amount` out of thin air (fixtures and issuance)."""
        acct = self.account(address)
        acct.amount = checked_add(acct.amount, amount, 64)

    def move(self, amount: int, source: bytes, destination: bytes, authority: bytes) -> int:
        """
        Move `amount` from `source` to `destination` on behalf of `authority`.
        Returns the net amount credited to the destination.
        """
        src = self.account(source)
        dst = self.account(destination)
        if bytes(authority) != src.owner:
            raise CustodyError(
                "authority does not own source record",
                data={"source": "0x" + src.address.hex(), "authority": "0x" + bytes(authority).hex()},
            )
        if src.value_identity != dst.value_identity:
            raise CustodyError("value kind mismatch between records")
        if amount > src.amount:
            raise CustodyError("insufficient balance", data={"balance": src.amount, "amount": amount})
        net, fee = transfer_fee_excluded_amount(self.value_kind(src.value_identity), amount)
        src.amount = checked_sub(src.amount, amount, 64)
        dst.amount = checked_add(dst.amount, net, 64)
        dst.withheld = checked_add(dst.withheld, fee, 64)
        return net

    # ----------------------------------------------------------- checkpoints

    def begin(self) -> int:
        self._snapshots.append(copy.deepcopy(self._accounts))
        return len(self._snapshots)

    def commit(self) -> None:
        if not self._snapshots:
            raise RuntimeError("no open custody checkpoint")
        self._snapshots.pop()

    def revert(self) -> None:
        if not self._snapshots:
            raise RuntimeError("no open custody checkpoint")
        self._accounts = self._snapshots.pop()

    @contextmanager
    def checkpoint(self) -> Iterator["Bank"]:
        self.begin()
        try:
            yield self
        except BaseException:
            self.revert()
            raise
        self.commit()


__all__ = [
    "Extension",
    "SUPPORTED_EXTENSIONS",
    "TransferFee",
    "ValueKind",
    "is_supported_value_kind",
    "require_supported",
    "transfer_fee_excluded_amount",
    "CustodyAccount",
    "Bank",
]
