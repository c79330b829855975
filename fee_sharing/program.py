"""
fee_sharing.program — the command surface.

`FeeVaultProgram` is what callers talk to. Each public command is one atomic
unit:

    lock                              -> ReentrantCommand if a called module starts a command
      trace scope (command, fee_vault, caller bound into the log context)
        custody checkpoint            -> reverted if anything raises
          ledger transaction          -> one load, one write-back on success
            validate / call out / account

Validation, external calls and mutations either all land or none do. Errors
are logged with their code and re-raised unchanged; nothing retries.

Commands
--------
initialize_fee_vault          SELF_CUSTODIED ledger at a caller-chosen address
initialize_fee_vault_derived  DERIVED_ADDRESS ledger at (fee_vault, base, value_identity)
fund_fee                      direct funding from the funder's own custody record
claim_fee                     settle one beneficiary slot and pay it out
harvest_known                 pull revenue from a pre-wired source
fund_by_claiming_fee          relay an allow-listed call signed by the ledger
get_ledger / pending_fee      read-only
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from . import logging as flog
from .authority import (as_address, derive_custody_address, derive_fee_vault,
                        short, vault_authority)
from .config import FeeSharingConfig, get_config
from .constants import PROGRAM_ID, ZERO_ADDRESS
from .custody import Bank, require_supported, transfer_fee_excluded_amount
from .db import open_kv
from .errors import (AmountIsZero, CustodyError, FeeVaultError, InvalidFeeVault,
                     ReentrantCommand)
from .runtime import distribution, harvest, relay
from .runtime.events import (EventSink, EvtClaimFee, EvtFundFee,
                             EvtInitializeFeeVault, FundingType)
from .runtime.modules import AccountMeta, ModuleHost
from .state.ledger import BeneficiaryShare, Ledger, VaultKind
from .state.store import LedgerStore

log = flog.get_logger("fee_sharing.program")


class FeeVaultProgram:
    """
    Fee-sharing program bound to a ledger store, a custody bank and a module host.

    Use `FeeVaultProgram.open(cfg)` to build one from configuration, or pass
    collaborators directly in tests.
    """

    def __init__(
        self,
        store: LedgerStore,
        bank: Bank,
        host: Optional[ModuleHost] = None,
        *,
        sink: Optional[EventSink] = None,
        config: Optional[FeeSharingConfig] = None,
        program_id: bytes = PROGRAM_ID,
    ) -> None:
        self.config = config or get_config()
        self.store = store
        self.bank = bank
        self.host = host or ModuleHost(bank=bank, program_id=program_id)
        if self.host.bank is not bank:
            raise ValueError("module host must share the program's custody bank")
        self.sink = sink or EventSink(enabled=self.config.features.emit_events)
        self.program_id = program_id
        self._lock = threading.Lock()
        self._owner: Optional[int] = None
        self._running: Optional[str] = None

    @classmethod
    def open(cls, config: Optional[FeeSharingConfig] = None, *, bank: Optional[Bank] = None) -> "FeeVaultProgram":
        cfg = config or get_config()
        store = LedgerStore(open_kv(cfg.db_uri))
        return cls(store, bank or Bank(), config=cfg)

    # ------------------------------------------------------------------
    # Atomic command wrapper
    # ------------------------------------------------------------------

    @contextmanager
    def _command(self, name: str, address: Optional[bytes] = None, caller: Optional[bytes] = None) -> Iterator[None]:
        if self._owner == threading.get_ident():
            # A module invoked mid-command called back in; the outer command
            # still holds its own copy of the ledger.
            raise ReentrantCommand(data={"command": name, "running": self._running})
        with self._lock, flog.trace_scope(command=name, fee_vault=address, caller=caller):
            self._owner, self._running = threading.get_ident(), name
            mark = self.sink.mark()
            try:
                with self.bank.checkpoint():
                    yield
            except FeeVaultError as e:
                self.sink.truncate(mark)
                log.error("command rejected", extra={"code": e.code, "reason": e.message})
                raise
            except Exception:
                self.sink.truncate(mark)
                log.exception("command failed")
                raise
            finally:
                self._owner, self._running = None, None

    @contextmanager
    def _ledger_command(self, name: str, address: bytes, caller: Optional[bytes] = None) -> Iterator[Ledger]:
        addr = as_address(address)
        with self._command(name, addr, caller):
            with self.store.transaction(addr) as ledger:
                yield ledger

    @staticmethod
    def _require_references(ledger: Ledger, value_identity: bytes, custody: bytes) -> None:
        if not ledger.references(value_identity, custody):
            raise InvalidFeeVault(
                "value kind or custody record does not match fee vault",
                data={"fee_vault": "0x" + ledger.address.hex()},
            )

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def _create(
        self,
        address: bytes,
        *,
        owner: bytes,
        value_identity: bytes,
        beneficiaries: Sequence[BeneficiaryShare],
        vault_kind: VaultKind,
        base: bytes = ZERO_ADDRESS,
        bump: int = 0,
    ) -> Ledger:
        kind = self.bank.value_kind(as_address(value_identity))
        require_supported(kind)
        if self.store.exists(address):
            raise InvalidFeeVault("fee vault already exists", data={"address": "0x" + address.hex()})
        custody = derive_custody_address(address, self.program_id)
        ledger = distribution.initialize(
            beneficiaries,
            address=address,
            owner=owner,
            value_identity=value_identity,
            custody_reference=custody,
            vault_kind=vault_kind,
            value_flag=kind.flag,
            base=base,
            vault_bump=bump,
        )
        authority, _ = vault_authority(self.program_id)
        self.bank.open_account(custody, value_identity, authority)
        self.store.create(ledger)
        self.sink.emit(
            EvtInitializeFeeVault(
                fee_vault=ledger.address,
                value_identity=ledger.value_identity,
                owner=ledger.owner,
                base=ledger.base,
                vault_kind=int(ledger.vault_kind),
                beneficiaries=tuple((b.identity, b.share) for _, b in ledger.used_slots()),
            )
        )
        log.info(
            "fee vault initialized",
            extra={
                "vault_kind": ledger.vault_kind.name,
                "beneficiaries": ledger.beneficiary_count(),
                "total_share": ledger.total_share,
                "custody": short(custody),
            },
        )
        return ledger

    def initialize_fee_vault(
        self,
        fee_vault: bytes,
        *,
        owner: bytes,
        value_identity: bytes,
        beneficiaries: Sequence[BeneficiaryShare],
    ) -> Ledger:
        """Create a SELF_CUSTODIED ledger at `fee_vault`."""
        addr = as_address(fee_vault)
        with self._command("initialize_fee_vault", addr):
            return self._create(
                addr,
                owner=as_address(owner),
                value_identity=value_identity,
                beneficiaries=beneficiaries,
                vault_kind=VaultKind.SELF_CUSTODIED,
            )

    def initialize_fee_vault_derived(
        self,
        base: bytes,
        *,
        owner: bytes,
        value_identity: bytes,
        beneficiaries: Sequence[BeneficiaryShare],
    ) -> Ledger:
        """Create a DERIVED_ADDRESS ledger whose address is derived from (base, value_identity)."""
        addr, bump = derive_fee_vault(base, value_identity, self.program_id)
        with self._command("initialize_fee_vault_derived", addr):
            return self._create(
                addr,
                owner=as_address(owner),
                value_identity=value_identity,
                beneficiaries=beneficiaries,
                vault_kind=VaultKind.DERIVED_ADDRESS,
                base=as_address(base),
                bump=bump,
            )

    # ------------------------------------------------------------------
    # Funding
    # ------------------------------------------------------------------

    def fund_fee(
        self,
        fee_vault: bytes,
        *,
        funder: bytes,
        funder_custody: bytes,
        value_identity: bytes,
        custody: bytes,
        max_amount: int,
    ) -> int:
        """
        Move min(max_amount, funder balance) into custody and fund the net amount.

        Returns the amount credited to the ledger (after any transfer fee).
        """
        with self._ledger_command("fund_fee", fee_vault, funder) as ledger:
            self._require_references(ledger, value_identity, custody)
            amount = min(max_amount, self.bank.balance(funder_custody))
            if amount <= 0:
                raise AmountIsZero()
            net, fee = transfer_fee_excluded_amount(self.bank.value_kind(ledger.value_identity), amount)
            distribution.fund(ledger, net)
            credited = self.bank.move(amount, funder_custody, ledger.custody_reference, funder)
            if credited != net:
                raise CustodyError("custody credited an unexpected amount", data={"expected": net, "credited": credited})
            self.sink.emit(
                EvtFundFee(
                    funding_type=FundingType.DIRECT,
                    fee_vault=ledger.address,
                    source=bytes(funder),
                    funded_amount=net,
                    fee_per_share=ledger.fee_per_share,
                )
            )
            log.info("fee funded", extra={"amount": amount, "funded": net, "transfer_fee": fee})
            return net

    def harvest_known(
        self,
        fee_vault: bytes,
        source: FundingType,
        *,
        caller: bytes,
        pool: bytes,
        value_identity: bytes,
        custody: bytes,
        extra: Sequence[AccountMeta] = (),
        args: bytes = b"",
    ) -> int:
        """Harvest a pre-wired revenue source. Returns the funded delta (0 when nothing accrued)."""
        with self._ledger_command("harvest_known", fee_vault, caller) as ledger:
            self._require_references(ledger, value_identity, custody)
            funded = harvest.harvest_known(
                ledger,
                source,
                host=self.host,
                caller=as_address(caller),
                pool=as_address(pool),
                extra=extra,
                args=args,
                sink=self.sink,
            )
            log.info("harvest", extra={"source": harvest.known_source(source).funding_type.name, "funded": funded})
            return funded

    def fund_by_claiming_fee(
        self,
        fee_vault: bytes,
        *,
        caller: bytes,
        target: bytes,
        payload: bytes,
        resources: Sequence[AccountMeta],
        custody: bytes,
    ) -> int:
        """Relay an allow-listed call signed by the ledger. Returns the funded delta."""
        with self._ledger_command("fund_by_claiming_fee", fee_vault, caller) as ledger:
            funded = relay.relay(
                ledger,
                host=self.host,
                caller=as_address(caller),
                target=as_address(target),
                payload=bytes(payload),
                resources=resources,
                custody=as_address(custody),
                sink=self.sink,
                max_payload=self.config.limits.max_payload_bytes,
                max_resources=self.config.limits.max_resources,
            )
            log.info("relay harvest", extra={"target": short(target), "funded": funded})
            return funded

    # ------------------------------------------------------------------
    # Claiming
    # ------------------------------------------------------------------

    def claim_fee(
        self,
        fee_vault: bytes,
        index: int,
        *,
        user: bytes,
        user_custody: bytes,
        value_identity: bytes,
        custody: bytes,
    ) -> int:
        """Settle slot `index` for `user` and pay it out of custody. Returns the settled amount."""
        with self._ledger_command("claim_fee", fee_vault, user) as ledger:
            self._require_references(ledger, value_identity, custody)
            amount = distribution.claim(ledger, index, as_address(user))
            if amount > 0:
                authority, _ = vault_authority(self.program_id)
                self.bank.move(amount, ledger.custody_reference, user_custody, authority)
                self.sink.emit(EvtClaimFee(fee_vault=ledger.address, user=bytes(user), index=index, claimed_fee=amount))
            log.info("fee claimed", extra={"index": index, "amount": amount})
            return amount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_ledger(self, fee_vault: bytes) -> Ledger:
        return self.store.get(as_address(fee_vault))

    def pending_fee(self, fee_vault: bytes, index: int) -> int:
        return distribution.pending(self.get_ledger(fee_vault), index)


__all__ = ["FeeVaultProgram"]
