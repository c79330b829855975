"""
In-process revenue modules used by the test-suite.

AmmModule   : pools with a single position owner; pays position fees and rewards
CurveModule : launch pools with a creator and a partner (fee claimer)

Both escrow accrued revenue in custody records they own and pay out with
`bank.move`, exactly like any external module would.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Callable, Dict

from fee_sharing.custody import Bank
from fee_sharing.runtime.harvest import AMM_MODULE_ID, CURVE_MODULE_ID, operation_tag
from fee_sharing.runtime.modules import Instruction, InvocationContext


def addr(label: str) -> bytes:
    return hashlib.sha3_256(b"test:" + label.encode()).digest()


@dataclass
class AmmPool:
    escrow: bytes
    position_owner: bytes
    collect_fee_mode: int = 1
    fee: int = 0
    reward: int = 0


@dataclass
class AmmModule:
    bank: Bank
    value_identity: bytes
    module_id: bytes = AMM_MODULE_ID
    pools: Dict[bytes, AmmPool] = field(default_factory=dict)

    def add_pool(self, pool: bytes, position_owner: bytes, *, collect_fee_mode: int = 1) -> AmmPool:
        escrow = addr("amm-escrow:" + pool.hex())
        self.bank.open_account(escrow, self.value_identity, self.module_id)
        p = AmmPool(escrow=escrow, position_owner=position_owner, collect_fee_mode=collect_fee_mode)
        self.pools[pool] = p
        return p

    def accrue(self, pool: bytes, fee: int = 0, reward: int = 0) -> None:
        p = self.pools[pool]
        self.bank.mint(p.escrow, fee + reward)
        p.fee += fee
        p.reward += reward

    def collect_fee_mode(self, pool: bytes) -> int:
        return self.pools[pool].collect_fee_mode

    def process(self, ix: Instruction, ctx: InvocationContext) -> None:
        pool, destination, owner = (m.address for m in ix.accounts[:3])
        p = self.pools[pool]
        ctx.require_signer(owner)
        if owner != p.position_owner:
            raise PermissionError("not the position owner")
        if ix.tag == operation_tag("claim_position_fee"):
            amount, p.fee = p.fee, 0
        elif ix.tag == operation_tag("claim_reward"):
            amount, p.reward = p.reward, 0
        else:
            raise ValueError("unknown instruction")
        if amount:
            ctx.bank.move(amount, p.escrow, destination, self.module_id)


@dataclass
class CurvePool:
    escrow: bytes
    creator: bytes
    partner: bytes
    collect_fee_mode: int = 0
    creator_fee: int = 0
    partner_fee: int = 0
    creator_surplus: int = 0
    partner_surplus: int = 0


@dataclass
class CurveModule:
    bank: Bank
    value_identity: bytes
    module_id: bytes = CURVE_MODULE_ID
    pools: Dict[bytes, CurvePool] = field(default_factory=dict)

    def add_pool(self, pool: bytes, *, creator: bytes, partner: bytes, collect_fee_mode: int = 0) -> CurvePool:
        escrow = addr("curve-escrow:" + pool.hex())
        self.bank.open_account(escrow, self.value_identity, self.module_id)
        p = CurvePool(escrow=escrow, creator=creator, partner=partner, collect_fee_mode=collect_fee_mode)
        self.pools[pool] = p
        return p

    def accrue(self, pool: bytes, **amounts: int) -> None:
        p = self.pools[pool]
        for k, v in amounts.items():
            setattr(p, k, getattr(p, k) + v)
            self.bank.mint(p.escrow, v)

    def collect_fee_mode(self, pool: bytes) -> int:
        return self.pools[pool].collect_fee_mode

    def process(self, ix: Instruction, ctx: InvocationContext) -> None:
        pool, destination, signer = (m.address for m in ix.accounts[:3])
        p = self.pools[pool]
        ctx.require_signer(signer)
        routes = {
            operation_tag("claim_creator_trading_fee"): ("creator", "creator_fee"),
            operation_tag("creator_withdraw_surplus"): ("creator", "creator_surplus"),
            operation_tag("claim_trading_fee"): ("partner", "partner_fee"),
            operation_tag("partner_withdraw_surplus"): ("partner", "partner_surplus"),
        }
        if ix.tag not in routes:
            raise ValueError("unknown instruction")
        role, bucket = routes[ix.tag]
        if signer != getattr(p, role):
            raise PermissionError(f"signer is not the pool {role}")
        amount = getattr(p, bucket)
        setattr(p, bucket, 0)
        if amount:
            ctx.bank.move(amount, p.escrow, destination, self.module_id)


@dataclass
class ShrinkingModule:
    """Misbehaving module: removes value from whatever custody it is handed."""

    bank: Bank
    module_id: bytes = field(default_factory=lambda: addr("shrinking-module"))

    def process(self, ix: Instruction, ctx: InvocationContext) -> None:
        destination = ix.accounts[1].address
        ctx.bank.account(destination).amount -= 1


@dataclass
class FailingModule:
    bank: Bank
    module_id: bytes = field(default_factory=lambda: addr("failing-module"))

    def process(self, ix: Instruction, ctx: InvocationContext) -> None:
        raise RuntimeError("module exploded")


# ---- identities shared by the suite ----------------------------------------

ALICE = addr("alice")
BOB = addr("bob")
CAROL = addr("carol")
MALLORY = addr("mallory")
OWNER = addr("owner")
BASE = addr("base")
VALUE = addr("value:plain")
FEE_VALUE = addr("value:fee")


def open_wallet(bank: Bank, owner: bytes, value_identity: bytes = VALUE, amount: int = 0) -> bytes:
    """Custody record owned by `owner`, optionally pre-funded."""
    a = addr("wallet:" + owner.hex() + value_identity.hex())
    bank.open_account(a, value_identity, owner, amount)
    return a


@dataclass
class ReenteringModule:
    """Wraps a module and runs `on_call` before delegating, like a hostile callee."""

    inner: object
    on_call: Callable[[], object]

    @property
    def module_id(self) -> bytes:
        return self.inner.module_id

    def collect_fee_mode(self, pool: bytes) -> int:
        return self.inner.collect_fee_mode(pool)

    def process(self, ix: Instruction, ctx: InvocationContext) -> None:
        self.on_call()
        self.inner.process(ix, ctx)
