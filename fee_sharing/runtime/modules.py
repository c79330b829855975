"""
fee_sharing.runtime.modules — external revenue modules and signature-checked invocation.

An external module is anything that can "pay my accrued revenue into a supplied
destination". The ledger reaches modules only through `ModuleHost.invoke`,
which enforces the one rule that makes forwarding safe:

    every resource meta marked is_signer must be covered either by the verified
    caller identity or by a SignerCapability that verifies under PROGRAM_ID.

Modules see the instruction, the set of identities that signed it and the
custody bank. They move value with `bank.move(...)`; the adapter measures the
result from the outside and never trusts what the module reports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import (Dict, FrozenSet, Iterable, Optional, Protocol, Sequence,
                    Tuple, runtime_checkable)

from ..authority import SignerCapability, as_address, short, verify_capability
from ..constants import PROGRAM_ID
from ..custody import Bank
from ..errors import InvalidAction, InvalidSigner

log = logging.getLogger("fee_sharing.modules")


@dataclass(frozen=True)
class AccountMeta:
    address: bytes
    is_signer: bool = False
    is_writable: bool = False


@dataclass(frozen=True)
class Instruction:
    program_id: bytes
    accounts: Tuple[AccountMeta, ...]
    data: bytes

    @property
    def tag(self) -> bytes:
        return self.data[:8]


@dataclass(frozen=True)
class InvocationContext:
    """What a module is handed when invoked."""

    bank: Bank
    signers: FrozenSet[bytes]

    def require_signer(self, address: bytes) -> None:
        if bytes(address) not in self.signers:
            raise InvalidSigner("required signature missing", signer="0x" + bytes(address).hex())


@runtime_checkable
class RevenueModule(Protocol):
    module_id: bytes

    def process(self, ix: Instruction, ctx: InvocationContext) -> None:
        """Execute `ix`. Raise to abort the enclosing command."""
        ...


@runtime_checkable
class CollectModeReader(Protocol):
    """Modules whose fee-collection mode is readable per pool/config."""

    def collect_fee_mode(self, pool: bytes) -> int:
        ...


@dataclass
class ModuleHost:
    """Registry of modules plus the signer check applied on every invocation."""

    bank: Bank
    program_id: bytes = PROGRAM_ID
    _modules: Dict[bytes, RevenueModule] = field(default_factory=dict)

    def register(self, module: RevenueModule) -> RevenueModule:
        self._modules[as_address(module.module_id)] = module
        return module

    def get(self, module_id: bytes) -> RevenueModule:
        m = self._modules.get(bytes(module_id))
        if m is None:
            raise InvalidAction("unknown module", target="0x" + bytes(module_id).hex())
        return m

    def find(self, module_id: bytes) -> Optional[RevenueModule]:
        return self._modules.get(bytes(module_id))

    def _signers(
        self,
        ix: Instruction,
        caller: Optional[bytes],
        capabilities: Iterable[SignerCapability],
    ) -> FrozenSet[bytes]:
        granted = set()
        if caller is not None:
            granted.add(bytes(caller))
        for cap in capabilities:
            if not verify_capability(cap, self.program_id):
                raise InvalidSigner("signer capability does not verify", signer="0x" + cap.address.hex())
            granted.add(cap.address)
        for meta in ix.accounts:
            if meta.is_signer and meta.address not in granted:
                raise InvalidSigner("missing signature on forwarded call", signer="0x" + meta.address.hex())
        return frozenset(m.address for m in ix.accounts if m.is_signer)

    def invoke(
        self,
        ix: Instruction,
        *,
        caller: Optional[bytes] = None,
        capabilities: Sequence[SignerCapability] = (),
    ) -> None:
        module = self.get(ix.program_id)
        signers = self._signers(ix, caller, capabilities)
        log.debug(
            "invoke module",
            extra={"module": short(ix.program_id), "tag": ix.tag.hex(), "signers": len(signers)},
        )
        module.process(ix, InvocationContext(bank=self.bank, signers=signers))


__all__ = [
    "AccountMeta",
    "Instruction",
    "InvocationContext",
    "RevenueModule",
    "CollectModeReader",
    "ModuleHost",
]
