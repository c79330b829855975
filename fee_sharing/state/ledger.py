"""
fee_sharing.state.ledger — the persistent record of one fee pool.

`Ledger` holds identity fields, the accumulator, and a fixed-capacity table of
`Beneficiary` slots. It carries no behaviour beyond small helpers; the
accounting lives in `fee_sharing.runtime.distribution` and the byte layout in
`fee_sharing.state.layout`.

Invariants (maintained by the distribution engine)
--------------------------------------------------
* sum(slot.share for used slots) == total_share
* fee_per_share never decreases
* slot.fee_per_share_checkpoint <= fee_per_share for every slot
* total_funded_fee never decreases
* len(beneficiaries) == MAX_BENEFICIARIES; unused slots are all-zero
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterator, List, Tuple

from ..constants import MAX_BENEFICIARIES, ZERO_ADDRESS


class VaultKind(IntEnum):
    """How the ledger's identity was created."""

    SELF_CUSTODIED = 0  # caller-supplied identity; cannot self-sign
    DERIVED_ADDRESS = 1  # derived identity; signs via SignerCapability


class ValueFlag(IntEnum):
    """Transfer-semantics family of the ledger's value kind."""

    PLAIN = 0
    EXTENDED = 1


@dataclass(frozen=True)
class BeneficiaryShare:
    """Initialize input: one identity and its share weight."""

    identity: bytes
    share: int


@dataclass
class Beneficiary:
    identity: bytes = ZERO_ADDRESS
    share: int = 0
    # Reserved in the layout; always 0.
    fee_pending: int = 0
    fee_claimed: int = 0
    fee_per_share_checkpoint: int = 0

    def is_empty(self) -> bool:
        return self.identity == ZERO_ADDRESS and self.share == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": "0x" + self.identity.hex(),
            "share": self.share,
            "fee_claimed": self.fee_claimed,
            "fee_per_share_checkpoint": self.fee_per_share_checkpoint,
        }


def _empty_slots() -> List[Beneficiary]:
    return [Beneficiary() for _ in range(MAX_BENEFICIARIES)]


@dataclass
class Ledger:
    """
    One managed fee pool.

    `address` is the key the record is stored under; it is not part of the
    persisted bytes.
    """

    owner: bytes = ZERO_ADDRESS
    value_identity: bytes = ZERO_ADDRESS
    custody_reference: bytes = ZERO_ADDRESS
    base: bytes = ZERO_ADDRESS
    value_flag: ValueFlag = ValueFlag.PLAIN
    vault_kind: VaultKind = VaultKind.SELF_CUSTODIED
    vault_bump: int = 0
    total_share: int = 0
    total_funded_fee: int = 0
    fee_per_share: int = 0
    beneficiaries: List[Beneficiary] = field(default_factory=_empty_slots)
    address: bytes = ZERO_ADDRESS

    def used_slots(self) -> Iterator[Tuple[int, Beneficiary]]:
        for i, b in enumerate(self.beneficiaries):
            if not b.is_empty():
                yield i, b

    def beneficiary_count(self) -> int:
        return sum(1 for _ in self.used_slots())

    def references(self, value_identity: bytes, custody_reference: bytes) -> bool:
        """True when both identifiers name this ledger's value kind and custody record."""
        return (
            bytes(value_identity) == self.value_identity
            and bytes(custody_reference) == self.custody_reference
        )

    def clone(self) -> "Ledger":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": "0x" + self.address.hex(),
            "owner": "0x" + self.owner.hex(),
            "value_identity": "0x" + self.value_identity.hex(),
            "custody_reference": "0x" + self.custody_reference.hex(),
            "base": "0x" + self.base.hex(),
            "value_flag": self.value_flag.name,
            "vault_kind": self.vault_kind.name,
            "vault_bump": self.vault_bump,
            "total_share": self.total_share,
            "total_funded_fee": self.total_funded_fee,
            "fee_per_share": self.fee_per_share,
            "beneficiaries": [
                dict(index=i, **b.to_dict()) for i, b in self.used_slots()
            ],
        }


__all__ = ["VaultKind", "ValueFlag", "BeneficiaryShare", "Beneficiary", "Ledger"]
