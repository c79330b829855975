# -*- coding: utf-8 -*-
"""
fee_sharing.runtime.distribution
================================

Pull-based dividend accounting over a `Ledger`.

Funding raises a single accumulator instead of crediting every beneficiary:

    fee_per_share += floor((amount << SCALE) / total_share)

and each beneficiary pulls what accrued since its last checkpoint:

    claimable = floor(share * (fee_per_share - checkpoint) >> SCALE)

Funding therefore costs the same regardless of beneficiary count, at the price
of at most one accumulator unit (1 / 2**SCALE of a share unit) of floor
rounding per funding call. That dust is never claimable by anyone.

Example
-------
    shares [(X, 1), (Y, 3)], total_share = 4
    fund(4000)  -> fee_per_share = 1000 << 52
    claim(X)    -> 1000
    claim(Y)    -> 3000

Properties
----------
- `fund` is a no-op for amount 0 and strictly raises the accumulator otherwise.
- `claim` always moves the checkpoint to the current accumulator, so a second
  claim with no intervening funding returns exactly 0.
- Nothing here moves value; callers transfer what `claim` returns.
"""
from __future__ import annotations

import logging
from typing import List, Sequence

from ..authority import as_address, is_null, short
from ..constants import MAX_BENEFICIARIES, PRECISION_SCALE, ZERO_ADDRESS
from ..errors import InvalidAddress, InvalidIndex, InvalidParameters, MathOverflow
from ..math import checked_add, checked_sub, narrow, scaled_div, scaled_mul_shift
from ..state.ledger import Beneficiary, BeneficiaryShare, Ledger, ValueFlag, VaultKind

log = logging.getLogger("fee_sharing.distribution")


# ---------- Initialization ----------

def validate_beneficiaries(shares: Sequence[BeneficiaryShare]) -> int:
    """Check the initialize input and return total_share."""
    n = len(shares)
    if n < 1 or n > MAX_BENEFICIARIES:
        raise InvalidParameters(
            "beneficiary count out of range", data={"count": n, "max": MAX_BENEFICIARIES}
        )
    total = 0
    seen = set()
    for i, s in enumerate(shares):
        if s.share <= 0:
            raise InvalidParameters("share must be positive", data={"index": i})
        if is_null(s.identity):
            raise InvalidParameters("beneficiary identity is null", data={"index": i})
        # Duplicates are allowed: each slot keeps its own checkpoint.
        if s.identity in seen:
            log.warning(
                "duplicate beneficiary identity",
                extra={"identity": short(s.identity), "index": i},
            )
        seen.add(s.identity)
        total = checked_add(total, s.share, 64)
    return total


def initialize(
    shares: Sequence[BeneficiaryShare],
    *,
    address: bytes,
    owner: bytes,
    value_identity: bytes,
    custody_reference: bytes,
    vault_kind: VaultKind = VaultKind.SELF_CUSTODIED,
    value_flag: ValueFlag = ValueFlag.PLAIN,
    base: bytes = ZERO_ADDRESS,
    vault_bump: int = 0,
) -> Ledger:
    """Build a fresh Active ledger. Accumulator and checkpoints start at 0."""
    shares = [BeneficiaryShare(as_address(s.identity), int(s.share)) for s in shares]
    total = validate_beneficiaries(shares)
    slots: List[Beneficiary] = [Beneficiary(identity=s.identity, share=s.share) for s in shares]
    slots.extend(Beneficiary() for _ in range(MAX_BENEFICIARIES - len(slots)))
    return Ledger(
        owner=as_address(owner),
        value_identity=as_address(value_identity),
        custody_reference=as_address(custody_reference),
        base=as_address(base),
        value_flag=ValueFlag(value_flag),
        vault_kind=VaultKind(vault_kind),
        vault_bump=vault_bump,
        total_share=total,
        total_funded_fee=0,
        fee_per_share=0,
        beneficiaries=slots,
        address=as_address(address),
    )


# ---------- Funding ----------

def fund(ledger: Ledger, amount: int) -> None:
    """
    Account `amount` of newly arrived value.

    Raises MathOverflow when total_share is 0, when total_funded_fee would
    leave u64, or when the accumulator would leave u128.
    """
    if amount == 0:
        return
    total_funded = checked_add(ledger.total_funded_fee, amount, 64)
    delta = scaled_div(amount, ledger.total_share, PRECISION_SCALE)
    fee_per_share = checked_add(ledger.fee_per_share, delta, 128)
    ledger.total_funded_fee = total_funded
    ledger.fee_per_share = fee_per_share


# ---------- Claiming ----------

def _slot(ledger: Ledger, index: int) -> Beneficiary:
    if not isinstance(index, int) or index < 0 or index >= MAX_BENEFICIARIES:
        raise InvalidIndex(index=index if isinstance(index, int) else None)
    return ledger.beneficiaries[index]


def _accrued(ledger: Ledger, b: Beneficiary) -> int:
    try:
        delta = checked_sub(ledger.fee_per_share, b.fee_per_share_checkpoint, 128)
    except MathOverflow:
        raise MathOverflow("checkpoint ahead of accumulator", op="claim")
    return narrow(scaled_mul_shift(b.share, delta, PRECISION_SCALE), 64)


def claim(ledger: Ledger, index: int, claimant: bytes) -> int:
    """
    Settle slot `index` for `claimant` and return the amount to pay out.

    The checkpoint moves to the current accumulator even when nothing accrued.
    """
    b = _slot(ledger, index)
    if b.is_empty() or is_null(claimant) or b.identity != bytes(claimant):
        raise InvalidAddress(index=index)
    amount = _accrued(ledger, b)
    fee_claimed = checked_add(b.fee_claimed, amount, 64)
    b.fee_per_share_checkpoint = ledger.fee_per_share
    b.fee_claimed = fee_claimed
    return amount


def pending(ledger: Ledger, index: int) -> int:
    """What `claim` at `index` would return right now. Does not mutate."""
    b = _slot(ledger, index)
    if b.is_empty():
        return 0
    return _accrued(ledger, b)


def is_beneficiary(ledger: Ledger, identity: bytes) -> bool:
    ident = bytes(identity)
    if ident == ZERO_ADDRESS:
        return False
    return any(b.identity == ident for b in ledger.beneficiaries)


__all__ = [
    "validate_beneficiaries",
    "initialize",
    "fund",
    "claim",
    "pending",
    "is_beneficiary",
]
