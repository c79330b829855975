"""
fee_sharing.runtime.events — notification records, sink and canonical CBOR.

Notifications are for external observers and are not needed for correctness.
Each command appends zero or more records to an `EventSink`; the program logs
them and callers may drain the sink or encode records for export.

Wire form (canonical CBOR map, keys sorted by the encoder):

    { "name": "EvtFundFee", "fields": { ...snake_case field -> value... } }

Byte fields are CBOR byte strings; u128 accumulators become CBOR bignums when
they exceed 64 bits. Enums are written as their integer value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, Union

import cbor2

log = logging.getLogger("fee_sharing.events")


class FundingType(IntEnum):
    """Where funded value came from."""

    DIRECT = 0
    POSITION_FEE = 1
    PARTNER_TRADING_FEE = 2
    CREATOR_TRADING_FEE = 3
    CREATOR_SURPLUS = 4
    PARTNER_SURPLUS = 5
    RELAY = 6


@dataclass(frozen=True)
class EvtInitializeFeeVault:
    fee_vault: bytes
    value_identity: bytes
    owner: bytes
    base: bytes
    vault_kind: int
    beneficiaries: Tuple[Tuple[bytes, int], ...]


@dataclass(frozen=True)
class EvtFundFee:
    """
    Funding notification.

    `source` is the funder for DIRECT funding and the revenue module for
    harvests. `payload` is the forwarded call data on the relay path.
    """
    funding_type: FundingType
    fee_vault: bytes
    source: bytes
    funded_amount: int
    fee_per_share: int
    payload: bytes = b""


@dataclass(frozen=True)
class EvtClaimFee:
    fee_vault: bytes
    user: bytes
    index: int
    claimed_fee: int


Event = Union[EvtInitializeFeeVault, EvtFundFee, EvtClaimFee]

_EVENT_TYPES: Dict[str, Type[Any]] = {
    cls.__name__: cls for cls in (EvtInitializeFeeVault, EvtFundFee, EvtClaimFee)
}


# ------------------------------ Encoding ------------------------------------


def _wire(v: Any) -> Any:
    if isinstance(v, IntEnum):
        return int(v)
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v)
    if isinstance(v, tuple):
        return [_wire(x) for x in v]
    return v


def event_to_obj(evt: Event) -> Dict[str, Any]:
    return {
        "name": type(evt).__name__,
        "fields": {f.name: _wire(getattr(evt, f.name)) for f in fields(evt)},
    }


def encode_event(evt: Event) -> bytes:
    """Serialize an event to canonical CBOR bytes."""
    return cbor2.dumps(event_to_obj(evt), canonical=True)


def decode_event(data: bytes) -> Event:
    obj = cbor2.loads(bytes(data))
    if not isinstance(obj, Mapping) or "name" not in obj or "fields" not in obj:
        raise ValueError("event CBOR must decode to a {name, fields} map")
    cls = _EVENT_TYPES.get(obj["name"])
    if cls is None:
        raise ValueError(f"unknown event name: {obj['name']!r}")
    kw = dict(obj["fields"])
    if cls is EvtFundFee:
        kw["funding_type"] = FundingType(kw["funding_type"])
    if cls is EvtInitializeFeeVault:
        kw["beneficiaries"] = tuple((bytes(i), int(s)) for i, s in kw["beneficiaries"])
    return cls(**kw)


def event_to_dict(evt: Event) -> Dict[str, Any]:
    """JSON-friendly rendering (bytes as 0x-hex)."""

    def js(v: Any) -> Any:
        if isinstance(v, IntEnum):
            return v.name
        if isinstance(v, (bytes, bytearray)):
            return "0x" + bytes(v).hex()
        if isinstance(v, tuple):
            return [js(x) for x in v]
        return v

    return {"name": type(evt).__name__, **{f.name: js(getattr(evt, f.name)) for f in fields(evt)}}


# -------------------------------- Sink --------------------------------------


@dataclass
class EventSink:
    """Append-only collector. Disabled sinks drop records but still log them."""

    enabled: bool = True
    _events: List[Event] = field(default_factory=list)

    def emit(self, evt: Event) -> None:
        log.debug("event", extra={"event": event_to_dict(evt)})
        if self.enabled:
            self._events.append(evt)

    def events(self) -> List[Event]:
        return list(self._events)

    def last(self) -> Optional[Event]:
        return self._events[-1] if self._events else None

    def drain(self) -> List[Event]:
        out, self._events = self._events, []
        return out

    def mark(self) -> int:
        return len(self._events)

    def truncate(self, mark: int) -> None:
        """Drop records appended after `mark` (used when a command aborts)."""
        del self._events[mark:]

    def __len__(self) -> int:
        return len(self._events)


__all__ = [
    "FundingType",
    "EvtInitializeFeeVault",
    "EvtFundFee",
    "EvtClaimFee",
    "Event",
    "event_to_obj",
    "event_to_dict",
    "encode_event",
    "decode_event",
    "EventSink",
]
