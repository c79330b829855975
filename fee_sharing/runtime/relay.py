"""
fee_sharing.runtime.relay — allow-listed call forwarding signed by the ledger.

A DERIVED_ADDRESS ledger can sign for itself, so forwarding arbitrary calls
would let anyone make it sign a transfer of its own custody. The relay only
forwards a fixed, audited set of (module, operation tag) pairs whose sole
effect is paying already-earned revenue into the ledger's custody.

Checks, in order (each aborts with no mutation):

    a. (target, payload[:8]) is allow-listed          else InvalidAction
    b. caller is a beneficiary                        else InvalidSigner
    c. ledger.vault_kind == DERIVED_ADDRESS           else InvalidFeeVault
    d. measured custody == ledger.custody_reference   else InvalidFeeVault

Forwarding: the resource equal to the ledger's address becomes a signer
(backed by the ledger's SignerCapability); every other resource loses its
signer flag and keeps its writable flag. The call runs inside the harvest
adapter, so only the custody balance delta is funded.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, List, Optional, Sequence, Tuple

from ..authority import fee_vault_capability, short
from ..constants import OPERATION_TAG_LEN
from ..errors import InvalidAction, InvalidFeeVault, InvalidSigner
from ..state.ledger import Ledger, VaultKind
from . import distribution
from .events import EventSink, FundingType
from .harvest import AMM_MODULE_ID, CURVE_MODULE_ID, harvest, operation_tag
from .modules import AccountMeta, Instruction, ModuleHost

log = logging.getLogger("fee_sharing.relay")

DEFAULT_MAX_PAYLOAD = 1024
DEFAULT_MAX_RESOURCES = 64

# Compiled in; never mutated at runtime.
ALLOWED_ACTIONS: FrozenSet[Tuple[bytes, bytes]] = frozenset(
    {
        (AMM_MODULE_ID, operation_tag("claim_position_fee")),
        (AMM_MODULE_ID, operation_tag("claim_reward")),
        (CURVE_MODULE_ID, operation_tag("claim_creator_trading_fee")),
        (CURVE_MODULE_ID, operation_tag("creator_withdraw_surplus")),
    }
)


def is_allowed_action(target: bytes, tag: bytes) -> bool:
    return (bytes(target), bytes(tag)) in ALLOWED_ACTIONS


def forwarded_metas(resources: Sequence[AccountMeta], ledger_address: bytes) -> Tuple[AccountMeta, ...]:
    """Re-tag resources: only the ledger signs, writability passes through."""
    return tuple(
        AccountMeta(
            address=bytes(r.address),
            is_signer=bytes(r.address) == ledger_address,
            is_writable=r.is_writable,
        )
        for r in resources
    )


def validate(
    ledger: Ledger,
    *,
    caller: bytes,
    target: bytes,
    payload: bytes,
    resources: Sequence[AccountMeta],
    custody: bytes,
    max_payload: int = DEFAULT_MAX_PAYLOAD,
    max_resources: int = DEFAULT_MAX_RESOURCES,
) -> None:
    target_hex = "0x" + bytes(target).hex()
    if len(payload) < OPERATION_TAG_LEN:
        raise InvalidAction("payload shorter than operation tag", target=target_hex)
    if len(payload) > max_payload:
        raise InvalidAction("payload too large", target=target_hex, data={"size": len(payload), "max": max_payload})
    if len(resources) > max_resources:
        raise InvalidAction("too many resources", target=target_hex, data={"count": len(resources), "max": max_resources})
    tag = bytes(payload[:OPERATION_TAG_LEN])
    if not is_allowed_action(target, tag):
        raise InvalidAction(target=target_hex, tag=tag.hex())
    if not distribution.is_beneficiary(ledger, caller):
        raise InvalidSigner("caller is not a beneficiary", signer="0x" + bytes(caller).hex())
    if ledger.vault_kind is not VaultKind.DERIVED_ADDRESS:
        raise InvalidFeeVault("relay requires a derived-address fee vault")
    if bytes(custody) != ledger.custody_reference:
        raise InvalidFeeVault("custody record does not belong to fee vault")


def relay(
    ledger: Ledger,
    *,
    host: ModuleHost,
    caller: bytes,
    target: bytes,
    payload: bytes,
    resources: Sequence[AccountMeta],
    custody: bytes,
    sink: Optional[EventSink] = None,
    max_payload: int = DEFAULT_MAX_PAYLOAD,
    max_resources: int = DEFAULT_MAX_RESOURCES,
) -> int:
    """Validate and forward one call. Returns the funded delta."""
    validate(
        ledger,
        caller=caller,
        target=target,
        payload=payload,
        resources=resources,
        custody=custody,
        max_payload=max_payload,
        max_resources=max_resources,
    )
    ix = Instruction(
        program_id=bytes(target),
        accounts=forwarded_metas(resources, ledger.address),
        data=bytes(payload),
    )
    cap = fee_vault_capability(ledger.base, ledger.value_identity, ledger.vault_bump)
    log.debug(
        "relay forward",
        extra={"fee_vault": short(ledger.address), "target": short(target), "tag": payload[:8].hex()},
    )
    return harvest(
        ledger,
        host.bank,
        lambda: host.invoke(ix, capabilities=(cap,)),
        funding_type=FundingType.RELAY,
        source=target,
        sink=sink,
        payload=payload,
    )


def allowlist() -> List[Tuple[bytes, bytes]]:
    """Allow-list entries in a stable order."""
    return sorted(ALLOWED_ACTIONS)


__all__ = [
    "ALLOWED_ACTIONS",
    "DEFAULT_MAX_PAYLOAD",
    "DEFAULT_MAX_RESOURCES",
    "is_allowed_action",
    "forwarded_metas",
    "validate",
    "relay",
    "allowlist",
]
