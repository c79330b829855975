"""
fee_sharing.authority — derived identities and self-authorizing signer capabilities.

A ledger created on the derived path has no private key. It authorizes
forwarded calls by presenting a `SignerCapability`: the seeds (including a
bump byte) that hash, together with the program id, to the ledger's address.
Anyone can check a capability with `verify_capability`; no registry or held
secret is involved.

Derivation
----------
    candidate = sha3_256( seed_0 || ... || seed_n || program_id || b"ProgramDerivedAddress" )

A candidate whose last byte has the high bit set is treated as colliding with
the key-pair address space and rejected. `find_address` searches bump values
from 255 down to 0 and returns the first valid candidate, so the bump is a
deterministic function of the other seeds.

Labels in use (see `fee_sharing.constants.Seeds`):
  - b"fee_vault"            : per-ledger signer, seeds (label, base, value_identity, bump)
  - b"fee_vault_authority"  : program-wide custody owner, seeds (label, bump)
  - b"token_vault"          : custody record address of a ledger (never signs)
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence, Tuple, Union

from .constants import ADDRESS_LEN, PROGRAM_ID, ZERO_ADDRESS, Seeds

AddressLike = Union[bytes, bytearray, memoryview, str]

_PDA_MARKER = b"ProgramDerivedAddress"
_MAX_SEED_LEN = 32
_MAX_SEEDS = 16


def as_address(v: AddressLike) -> bytes:
    """Normalize raw bytes or a hex string (with or without 0x) into a 32-byte identity."""
    if isinstance(v, (bytes, bytearray, memoryview)):
        b = bytes(v)
    elif isinstance(v, str):
        s = v.strip()
        if s.startswith(("0x", "0X")):
            s = s[2:]
        try:
            b = bytes.fromhex(s)
        except ValueError as e:
            raise ValueError(f"invalid hex address: {v!r}") from e
    else:
        raise TypeError(f"expected address bytes or hex, got {type(v).__name__}")
    if len(b) != ADDRESS_LEN:
        raise ValueError(f"address must be {ADDRESS_LEN} bytes, got {len(b)}")
    return b


def is_null(addr: bytes) -> bool:
    return bytes(addr) == ZERO_ADDRESS


def short(addr: bytes) -> str:
    """Compact hex rendering for logs."""
    h = bytes(addr).hex()
    return h[:8] + "…" + h[-4:]


def _on_curve(candidate: bytes) -> bool:
    return bool(candidate[-1] & 0x80)


def create_address(seeds: Sequence[bytes], program_id: bytes = PROGRAM_ID) -> bytes:
    """
    Hash `seeds` (bump included) under `program_id`.

    Raises ValueError when the seeds are malformed or the candidate is rejected.
    """
    if len(seeds) > _MAX_SEEDS:
        raise ValueError("too many seeds")
    h = hashlib.sha3_256()
    for s in seeds:
        if len(s) > _MAX_SEED_LEN:
            raise ValueError("seed longer than 32 bytes")
        h.update(bytes(s))
    h.update(bytes(program_id))
    h.update(_PDA_MARKER)
    candidate = h.digest()
    if _on_curve(candidate):
        raise ValueError("derived candidate collides with key-pair space")
    return candidate


def find_address(seeds: Sequence[bytes], program_id: bytes = PROGRAM_ID) -> Tuple[bytes, int]:
    """Return (address, bump) for the highest bump that yields a valid candidate."""
    for bump in range(255, -1, -1):
        try:
            return create_address([*seeds, bytes([bump])], program_id), bump
        except ValueError:
            continue
    raise ValueError("no valid bump for seeds")  # pragma: no cover - probability 2**-256


@dataclass(frozen=True)
class SignerCapability:
    """
    Proof that the holder may sign as `address`.

    Attributes:
        address: the derived identity being authorized
        seeds:   full seed list, bump byte last
    """
    address: bytes
    seeds: Tuple[bytes, ...]

    @property
    def label(self) -> bytes:
        return self.seeds[0] if self.seeds else b""


def verify_capability(cap: SignerCapability, program_id: bytes = PROGRAM_ID) -> bool:
    """True when the capability's seeds derive exactly its address under `program_id`."""
    try:
        return create_address(cap.seeds, program_id) == cap.address
    except ValueError:
        return False


# ------------------------------------------------------------------------------
# Fee-vault specific derivations
# ------------------------------------------------------------------------------


def derive_fee_vault(base: bytes, value_identity: bytes, program_id: bytes = PROGRAM_ID) -> Tuple[bytes, int]:
    return find_address([Seeds.FEE_VAULT, as_address(base), as_address(value_identity)], program_id)


def fee_vault_capability(
    base: bytes, value_identity: bytes, bump: int, program_id: bytes = PROGRAM_ID
) -> SignerCapability:
    """
    Capability for a derived ledger, rebuilt from its stable persisted fields.

    Deterministic: the same (base, value_identity, bump) always yields the same
    capability, and it verifies only for that ledger's address.
    """
    seeds = (Seeds.FEE_VAULT, as_address(base), as_address(value_identity), bytes([bump]))
    return SignerCapability(address=create_address(seeds, program_id), seeds=seeds)


@lru_cache(maxsize=8)
def vault_authority(program_id: bytes = PROGRAM_ID) -> Tuple[bytes, int]:
    """Program-wide owner of every custody record."""
    return find_address([Seeds.FEE_VAULT_AUTHORITY], program_id)


def vault_authority_capability(program_id: bytes = PROGRAM_ID) -> SignerCapability:
    address, bump = vault_authority(program_id)
    return SignerCapability(address=address, seeds=(Seeds.FEE_VAULT_AUTHORITY, bytes([bump])))


def derive_custody_address(ledger_address: bytes, program_id: bytes = PROGRAM_ID) -> bytes:
    address, _ = find_address([Seeds.TOKEN_VAULT, as_address(ledger_address)], program_id)
    return address


__all__ = [
    "AddressLike",
    "as_address",
    "is_null",
    "short",
    "create_address",
    "find_address",
    "SignerCapability",
    "verify_capability",
    "derive_fee_vault",
    "fee_vault_capability",
    "vault_authority",
    "vault_authority_capability",
    "derive_custody_address",
]
