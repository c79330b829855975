"""
fee_sharing.state — ledger data model, byte layout and KV-backed store.

Re-exports the common types so callers can write:

    from fee_sharing.state import Ledger, LedgerStore, encode_ledger
"""

from .ledger import Beneficiary, BeneficiaryShare, Ledger, ValueFlag, VaultKind
from .layout import DISCRIMINATOR, LEDGER_SIZE, decode_ledger, encode_ledger
from .store import LedgerStore

__all__ = [
    "Beneficiary",
    "BeneficiaryShare",
    "Ledger",
    "ValueFlag",
    "VaultKind",
    "DISCRIMINATOR",
    "LEDGER_SIZE",
    "decode_ledger",
    "encode_ledger",
    "LedgerStore",
]
