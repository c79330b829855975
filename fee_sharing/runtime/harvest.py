"""
fee_sharing.runtime.harvest — balance-delta capture around external calls.

Protocol (every path that pulls value from outside):

    b0 = balance(custody)
    call()                       # external module pays into custody
    b1 = balance(custody)
    delta = b1 - b0              # b1 < b0 -> MathOverflow
    delta > 0  -> fund(delta) + EvtFundFee
    delta == 0 -> nothing

The observed delta is the only source of truth for what was earned; what the
module says it paid is ignored. If `call` raises, nothing is funded.

Known sources
-------------
Pre-wired integrations with the two revenue modules the ledger knows about.
Each is a fixed (module, operation tag). Sources that need the ledger's own
signature are limited to DERIVED_ADDRESS ledgers and to beneficiary callers;
partner sources are signed by the caller in their role as fee claimer.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

from ..authority import fee_vault_capability, short
from ..custody import Bank
from ..errors import InvalidFeeVault, InvalidRevenueSource, InvalidSigner, MathOverflow
from ..state.ledger import Ledger, VaultKind
from . import distribution
from .events import EventSink, EvtFundFee, FundingType
from .modules import AccountMeta, CollectModeReader, Instruction, ModuleHost

log = logging.getLogger("fee_sharing.harvest")


def operation_tag(name: str) -> bytes:
    """8-byte tag that prefixes a module operation's payload."""
    return hashlib.sha3_256(b"global:" + name.encode("ascii")).digest()[:8]


def module_id(name: str) -> bytes:
    return hashlib.sha3_256(b"module:" + name.encode("ascii")).digest()


# Revenue modules with dedicated integrations.
AMM_MODULE_ID = module_id("amm")
CURVE_MODULE_ID = module_id("curve")

# Collect modes readable from a pool/config on the AMM and the curve.
QUOTE_ONLY = 1
QUOTE_ONLY_PARTNER = 0


def harvest(
    ledger: Ledger,
    bank: Bank,
    call: Callable[[], None],
    *,
    funding_type: FundingType,
    source: bytes,
    sink: Optional[EventSink] = None,
    payload: bytes = b"",
) -> int:
    """Run `call` and fund the ledger with the custody balance it added. Returns the delta."""
    custody = ledger.custody_reference
    before = bank.balance(custody)
    call()
    after = bank.balance(custody)
    if after < before:
        raise MathOverflow(
            "custody balance decreased across external call",
            op="harvest",
            data={"before": before, "after": after},
        )
    delta = after - before
    if delta == 0:
        log.debug("harvest produced nothing", extra={"fee_vault": short(ledger.address)})
        return 0
    distribution.fund(ledger, delta)
    if sink is not None:
        sink.emit(
            EvtFundFee(
                funding_type=funding_type,
                fee_vault=ledger.address,
                source=bytes(source),
                funded_amount=delta,
                fee_per_share=ledger.fee_per_share,
                payload=bytes(payload),
            )
        )
    return delta


# ---------------------------------------------------------------------------
# Known sources
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KnownSource:
    funding_type: FundingType
    module_id: bytes
    tag: bytes
    needs_self_signature: bool
    required_collect_mode: Optional[int] = None


KNOWN_SOURCES: Dict[FundingType, KnownSource] = {
    FundingType.POSITION_FEE: KnownSource(
        FundingType.POSITION_FEE, AMM_MODULE_ID, operation_tag("claim_position_fee"),
        needs_self_signature=True, required_collect_mode=QUOTE_ONLY,
    ),
    FundingType.CREATOR_TRADING_FEE: KnownSource(
        FundingType.CREATOR_TRADING_FEE, CURVE_MODULE_ID, operation_tag("claim_creator_trading_fee"),
        needs_self_signature=True,
    ),
    FundingType.CREATOR_SURPLUS: KnownSource(
        FundingType.CREATOR_SURPLUS, CURVE_MODULE_ID, operation_tag("creator_withdraw_surplus"),
        needs_self_signature=True,
    ),
    FundingType.PARTNER_TRADING_FEE: KnownSource(
        FundingType.PARTNER_TRADING_FEE, CURVE_MODULE_ID, operation_tag("claim_trading_fee"),
        needs_self_signature=False, required_collect_mode=QUOTE_ONLY_PARTNER,
    ),
    FundingType.PARTNER_SURPLUS: KnownSource(
        FundingType.PARTNER_SURPLUS, CURVE_MODULE_ID, operation_tag("partner_withdraw_surplus"),
        needs_self_signature=False,
    ),
}


def known_source(funding_type: FundingType) -> KnownSource:
    try:
        return KNOWN_SOURCES[FundingType(funding_type)]
    except (KeyError, ValueError):
        raise InvalidRevenueSource("not a known revenue source", data={"source": str(funding_type)})


def _check_collect_mode(src: KnownSource, host: ModuleHost, pool: bytes) -> None:
    if src.required_collect_mode is None:
        return
    module = host.get(src.module_id)
    if not isinstance(module, CollectModeReader):
        raise InvalidRevenueSource("module does not expose a collect mode")
    mode = module.collect_fee_mode(pool)
    if mode != src.required_collect_mode:
        raise InvalidRevenueSource(
            "pool collect mode not supported",
            data={"source": src.funding_type.name, "mode": mode, "required": src.required_collect_mode},
        )


def harvest_known(
    ledger: Ledger,
    funding_type: FundingType,
    *,
    host: ModuleHost,
    caller: bytes,
    pool: bytes,
    extra: Sequence[AccountMeta] = (),
    args: bytes = b"",
    sink: Optional[EventSink] = None,
) -> int:
    """
    Harvest from one pre-wired source into the ledger's custody.

    Account order handed to the module: pool, custody, signer, *extra.
    """
    src = known_source(funding_type)
    caps = ()
    if src.needs_self_signature:
        if ledger.vault_kind is not VaultKind.DERIVED_ADDRESS:
            raise InvalidFeeVault(
                "source requires a derived-address fee vault", data={"source": src.funding_type.name}
            )
        if not distribution.is_beneficiary(ledger, caller):
            raise InvalidSigner("caller is not a beneficiary", signer="0x" + bytes(caller).hex())
        caps = (fee_vault_capability(ledger.base, ledger.value_identity, ledger.vault_bump),)
        signer = ledger.address
    else:
        signer = bytes(caller)
    _check_collect_mode(src, host, pool)

    ix = Instruction(
        program_id=src.module_id,
        accounts=(
            AccountMeta(bytes(pool), is_signer=False, is_writable=True),
            AccountMeta(ledger.custody_reference, is_signer=False, is_writable=True),
            AccountMeta(signer, is_signer=True, is_writable=False),
            *extra,
        ),
        data=src.tag + bytes(args),
    )
    return harvest(
        ledger,
        host.bank,
        lambda: host.invoke(ix, caller=caller, capabilities=caps),
        funding_type=src.funding_type,
        source=src.module_id,
        sink=sink,
    )


__all__ = [
    "operation_tag",
    "module_id",
    "AMM_MODULE_ID",
    "CURVE_MODULE_ID",
    "QUOTE_ONLY",
    "QUOTE_ONLY_PARTNER",
    "harvest",
    "KnownSource",
    "KNOWN_SOURCES",
    "known_source",
    "harvest_known",
]
