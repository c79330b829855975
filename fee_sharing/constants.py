"""
fee_sharing.constants — fixed parameters shared by every layer.

Everything here is compiled in. Changing a value changes the persisted layout
or the accumulator semantics, so treat this module as part of the record format.
"""

from __future__ import annotations

from typing import Final

# Beneficiary table capacity (fixed; unused slots are zeroed).
MAX_BENEFICIARIES: Final[int] = 5

# Fixed-point shift of the fee_per_share accumulator.
PRECISION_SCALE: Final[int] = 52

# Integer widths used at the storage boundary.
U8_MAX: Final[int] = (1 << 8) - 1
U64_MAX: Final[int] = (1 << 64) - 1
U128_MAX: Final[int] = (1 << 128) - 1
U256_MAX: Final[int] = (1 << 256) - 1

# Identities are 32 raw bytes; the all-zero identity means "unset".
ADDRESS_LEN: Final[int] = 32
ZERO_ADDRESS: Final[bytes] = b"\x00" * ADDRESS_LEN

# Leading bytes of a forwarded payload that name the target operation.
OPERATION_TAG_LEN: Final[int] = 8

# Basis-point denominator for transfer fees.
BPS_DENOMINATOR: Final[int] = 10_000


class Seeds:
    """Derivation labels. Each label scopes a derived identity to one purpose."""

    FEE_VAULT: Final[bytes] = b"fee_vault"
    FEE_VAULT_AUTHORITY: Final[bytes] = b"fee_vault_authority"
    TOKEN_VAULT: Final[bytes] = b"token_vault"


# Program identity of this fee-sharing module (32 bytes, stable).
PROGRAM_ID: Final[bytes] = bytes.fromhex(
    "0b6f3c2a9d7e41f08c5a2e19d4b7c6a3f1e0d9c8b7a69584736251403f2e1d0c"
)


__all__ = [
    "MAX_BENEFICIARIES",
    "PRECISION_SCALE",
    "U8_MAX",
    "U64_MAX",
    "U128_MAX",
    "U256_MAX",
    "ADDRESS_LEN",
    "ZERO_ADDRESS",
    "OPERATION_TAG_LEN",
    "BPS_DENOMINATOR",
    "Seeds",
    "PROGRAM_ID",
]
