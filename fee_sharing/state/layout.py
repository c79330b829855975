"""
fee_sharing.state.layout — fixed-size byte layout of a persisted Ledger.

The record is little-endian with explicit reserved padding so new fields can be
added without relocating existing ones. Field order and widths are part of the
format; any compatible implementation must reproduce them bit for bit.

    offset  size  field
    ------  ----  ---------------------------------------------
         0     8  discriminator = sha3_256(b"account:FeeVault")[:8]
         8    32  owner
        40    32  value_identity
        72    32  custody_reference
       104    32  base
       136     1  value_flag (u8)
       137     1  vault_kind (u8)
       138     1  vault_bump (u8)
       139    13  padding_0
       152     8  total_share (u64)
       160     8  total_funded_fee (u64)
       168    16  fee_per_share (u128)
       184    96  padding (6 x u128)
       280   400  beneficiaries (5 x 80)

    beneficiary slot (80 bytes):
         0    32  identity
        32     8  share (u64)
        40     8  fee_pending (u64, reserved)
        48     8  fee_claimed (u64)
        56     8  padding
        64    16  fee_per_share_checkpoint (u128)

Total: 680 bytes.
"""

from __future__ import annotations

import hashlib
import struct
from typing import Final, List

from ..constants import MAX_BENEFICIARIES, U64_MAX, U128_MAX
from ..errors import InvalidFeeVault
from .ledger import Beneficiary, Ledger, ValueFlag, VaultKind

DISCRIMINATOR: Final[bytes] = hashlib.sha3_256(b"account:FeeVault").digest()[:8]

_HEAD = struct.Struct("<8s32s32s32s32sBBB13sQQ16s96s")
_SLOT = struct.Struct("<32sQQQ8s16s")

SLOT_SIZE: Final[int] = _SLOT.size
LEDGER_SIZE: Final[int] = _HEAD.size + MAX_BENEFICIARIES * SLOT_SIZE

_PAD0 = b"\x00" * 13
_PAD = b"\x00" * 96
_SLOT_PAD = b"\x00" * 8


def _u128_le(x: int) -> bytes:
    if x < 0 or x > U128_MAX:
        raise InvalidFeeVault("u128 field out of range", data={"value": str(x)})
    return x.to_bytes(16, "little")


def _u64(x: int, name: str) -> int:
    if x < 0 or x > U64_MAX:
        raise InvalidFeeVault(f"{name} out of u64 range", data={"value": str(x)})
    return x


def encode_ledger(ledger: Ledger) -> bytes:
    """Serialize a Ledger into its fixed 680-byte record."""
    if len(ledger.beneficiaries) != MAX_BENEFICIARIES:
        raise InvalidFeeVault("beneficiary table must have fixed capacity")
    out = bytearray(
        _HEAD.pack(
            DISCRIMINATOR,
            ledger.owner,
            ledger.value_identity,
            ledger.custody_reference,
            ledger.base,
            int(ledger.value_flag),
            int(ledger.vault_kind),
            ledger.vault_bump,
            _PAD0,
            _u64(ledger.total_share, "total_share"),
            _u64(ledger.total_funded_fee, "total_funded_fee"),
            _u128_le(ledger.fee_per_share),
            _PAD,
        )
    )
    for b in ledger.beneficiaries:
        out += _SLOT.pack(
            b.identity,
            _u64(b.share, "share"),
            _u64(b.fee_pending, "fee_pending"),
            _u64(b.fee_claimed, "fee_claimed"),
            _SLOT_PAD,
            _u128_le(b.fee_per_share_checkpoint),
        )
    return bytes(out)


def decode_ledger(data: bytes, *, address: bytes = b"\x00" * 32) -> Ledger:
    """Parse a 680-byte record. Raises InvalidFeeVault on size or discriminator mismatch."""
    raw = bytes(data)
    if len(raw) != LEDGER_SIZE:
        raise InvalidFeeVault(
            "ledger record has wrong size", data={"size": len(raw), "expected": LEDGER_SIZE}
        )
    (
        disc,
        owner,
        value_identity,
        custody_reference,
        base,
        value_flag,
        vault_kind,
        vault_bump,
        _pad0,
        total_share,
        total_funded_fee,
        fee_per_share,
        _pad,
    ) = _HEAD.unpack_from(raw, 0)
    if disc != DISCRIMINATOR:
        raise InvalidFeeVault("ledger record discriminator mismatch")
    try:
        flag = ValueFlag(value_flag)
        kind = VaultKind(vault_kind)
    except ValueError as e:
        raise InvalidFeeVault("ledger record has unknown enum value") from e

    slots: List[Beneficiary] = []
    for i in range(MAX_BENEFICIARIES):
        identity, share, pending, claimed, _spad, checkpoint = _SLOT.unpack_from(
            raw, _HEAD.size + i * SLOT_SIZE
        )
        slots.append(
            Beneficiary(
                identity=identity,
                share=share,
                fee_pending=pending,
                fee_claimed=claimed,
                fee_per_share_checkpoint=int.from_bytes(checkpoint, "little"),
            )
        )

    return Ledger(
        owner=owner,
        value_identity=value_identity,
        custody_reference=custody_reference,
        base=base,
        value_flag=flag,
        vault_kind=kind,
        vault_bump=vault_bump,
        total_share=total_share,
        total_funded_fee=total_funded_fee,
        fee_per_share=int.from_bytes(fee_per_share, "little"),
        beneficiaries=slots,
        address=bytes(address),
    )


__all__ = ["DISCRIMINATOR", "LEDGER_SIZE", "SLOT_SIZE", "encode_ledger", "decode_ledger"]
