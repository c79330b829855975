"""
fee_sharing.errors — typed failures for the fee-sharing engine.

Every operation is all-or-nothing, so an exception is the only way a command
reports failure. The program layer logs the error (with its stable `code`) and
re-raises; nothing in the package retries on the caller's behalf.

Hierarchy
---------
FeeVaultError (base)
 ├─ MathOverflow          : add/sub/mul/shift/narrow out of range, shrinking custody
 ├─ InvalidParameters     : bad initialize input (count, zero share, null identity)
 ├─ InvalidIndex          : claim index outside the beneficiary table
 ├─ InvalidAddress        : claimant is not the identity stored at that index
 ├─ InvalidFeeVault       : custody/value mismatch, wrong vault kind, bad record
 ├─ InvalidAction         : relay target/operation not allow-listed, bad payload
 ├─ InvalidSigner         : caller not a beneficiary, missing signature
 ├─ AmountIsZero          : funding resolves to a zero transferable amount
 ├─ UnsupportedValueKind  : value kind with unmodeled transfer semantics
 ├─ InvalidRevenueSource  : known revenue module configured in the wrong mode
 ├─ CustodyError          : custody-bank failure (balance, authority, value kind)
 └─ ReentrantCommand      : a module called back into the program mid-command

These classes import nothing from the rest of the package so the arithmetic
layer can raise them without cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class FeeVaultError(Exception):
    """
    Base fee-sharing error.

    Attributes:
        message: Human-readable explanation.
        code:    Stable machine code string (e.g., 'MATH_OVERFLOW').
        data:    Optional structured details (kept JSON-serializable).
    """
    message: str = "fee vault error"
    code: str = "FEE_VAULT_ERROR"
    data: Optional[Dict[str, Any]] = field(default=None)

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.data:
            return f"{self.code}: {self.message} ({self.data})"
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict for logs and CLI output."""
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


def _merge(data: Optional[Dict[str, Any]], **extra: Any) -> Optional[Dict[str, Any]]:
    d: Dict[str, Any] = {}
    if data:
        d.update(data)
    for k, v in extra.items():
        if v is not None:
            d.setdefault(k, v)
    return d or None


class MathOverflow(FeeVaultError):
    """
    Arithmetic left its representable range.

    Raised by the checked helpers in `fee_sharing.math` and by the harvest
    adapter when the custody balance shrinks across an external call.
    """
    def __init__(
        self,
        message: str = "math operation overflow",
        *,
        op: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="MATH_OVERFLOW", data=_merge(data, op=op))


class InvalidParameters(FeeVaultError):
    def __init__(self, message: str = "fee vault parameters are invalid", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_PARAMETERS", data=data)


class InvalidIndex(FeeVaultError):
    def __init__(self, message: str = "invalid beneficiary index", *, index: Optional[int] = None):
        super().__init__(message=message, code="INVALID_INDEX", data=_merge(None, index=index))


class InvalidAddress(FeeVaultError):
    def __init__(self, message: str = "invalid beneficiary address", *, index: Optional[int] = None):
        super().__init__(message=message, code="INVALID_ADDRESS", data=_merge(None, index=index))


class InvalidFeeVault(FeeVaultError):
    """
    The request does not match the ledger it names.

    Examples:
      - custody record or value identity differs from the ledger's
      - SELF_CUSTODIED ledger used on a path that needs a self-signature
      - persisted record missing, duplicated, or of the wrong size
    """
    def __init__(self, message: str = "invalid fee vault", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_FEE_VAULT", data=data)


class InvalidAction(FeeVaultError):
    def __init__(
        self,
        message: str = "action is not allow-listed",
        *,
        target: Optional[str] = None,
        tag: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="INVALID_ACTION", data=_merge(data, target=target, tag=tag))


class InvalidSigner(FeeVaultError):
    def __init__(self, message: str = "invalid signer", *, signer: Optional[str] = None):
        super().__init__(message=message, code="INVALID_SIGNER", data=_merge(None, signer=signer))


class AmountIsZero(FeeVaultError):
    def __init__(self, message: str = "amount is zero"):
        super().__init__(message=message, code="AMOUNT_IS_ZERO", data=None)


class UnsupportedValueKind(FeeVaultError):
    def __init__(self, message: str = "value kind is not supported", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="UNSUPPORTED_VALUE_KIND", data=data)


class InvalidRevenueSource(FeeVaultError):
    def __init__(self, message: str = "invalid revenue source", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_REVENUE_SOURCE", data=data)


class CustodyError(FeeVaultError):
    """
    Failure inside the value-transfer collaborator.

    Typical triggers:
      - unknown custody record
      - insufficient balance
      - authority does not own the source record
      - source and destination hold different value kinds
    """
    def __init__(self, message: str = "custody error", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="CUSTODY_ERROR", data=data)


class ReentrantCommand(FeeVaultError):
    """A command was started from inside another command on the same program."""
    def __init__(self, message: str = "command re-entered while another is running", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="REENTRANT_COMMAND", data=data)


__all__ = [
    "FeeVaultError",
    "MathOverflow",
    "InvalidParameters",
    "InvalidIndex",
    "InvalidAddress",
    "InvalidFeeVault",
    "InvalidAction",
    "InvalidSigner",
    "AmountIsZero",
    "UnsupportedValueKind",
    "InvalidRevenueSource",
    "CustodyError",
    "ReentrantCommand",
]
