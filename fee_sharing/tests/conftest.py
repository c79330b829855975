# -*- coding: utf-8 -*-
"""
Shared fixtures for the fee_sharing test-suite.

- Registers Hypothesis profiles (dev/ci/fast/stress); HYPOTHESIS_PROFILE picks
  one, otherwise "ci" under CI and "dev" locally.
- Builds an in-memory program (memory:// store, fresh custody bank) with the
  AMM and curve test modules registered on its host.
"""
from __future__ import annotations

import logging
import os
from typing import Tuple

import pytest
from hypothesis import HealthCheck, Verbosity, settings

from fee_sharing import logging as flog
from fee_sharing.config import get_config, load_config
from fee_sharing.custody import Bank, Extension, TransferFee, ValueKind
from fee_sharing.db import open_kv
from fee_sharing.program import FeeVaultProgram
from fee_sharing.state.ledger import BeneficiaryShare, Ledger, ValueFlag
from fee_sharing.state.store import LedgerStore

from .fakes import (ALICE, BASE, BOB, FEE_VALUE, OWNER, VALUE, AmmModule,
                    CurveModule, addr, open_wallet)

# ---- hypothesis profiles ----------------------------------------------------

_SUPPRESS = (HealthCheck.too_slow, HealthCheck.filter_too_much)

settings.register_profile("dev", max_examples=100, deadline=None, suppress_health_check=_SUPPRESS)
settings.register_profile(
    "ci", max_examples=200, deadline=None, suppress_health_check=_SUPPRESS,
    verbosity=Verbosity.verbose, derandomize=True,
)
settings.register_profile("fast", max_examples=25, deadline=None, suppress_health_check=(HealthCheck.too_slow,))
settings.register_profile("stress", max_examples=1000, deadline=None, suppress_health_check=_SUPPRESS, derandomize=True)


def _env_truthy(name: str) -> bool:
    return (os.getenv(name) or "").lower() not in ("", "0", "false", "no", "off")


settings.load_profile(os.getenv("HYPOTHESIS_PROFILE") or ("ci" if _env_truthy("CI") else "dev"))


@pytest.fixture
def restore_root():
    """Undo `configure()` calls: root handlers, level, log context and cached config."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    get_config.cache_clear()
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    flog.clear_context()
    get_config.cache_clear()


@pytest.fixture
def bank() -> Bank:
    b = Bank()
    b.register_value_kind(ValueKind(identity=VALUE))
    b.register_value_kind(
        ValueKind(
            identity=FEE_VALUE,
            flag=ValueFlag.EXTENDED,
            extensions=frozenset({Extension.TRANSFER_FEE_CONFIG, Extension.TOKEN_METADATA}),
            transfer_fee=TransferFee(bps=100, max_fee=50),
        )
    )
    return b


@pytest.fixture
def config():
    return load_config(env={})


@pytest.fixture
def store() -> LedgerStore:
    return LedgerStore(open_kv("memory://"))


@pytest.fixture
def program(store, bank, config) -> FeeVaultProgram:
    return FeeVaultProgram(store, bank, config=config)


@pytest.fixture
def amm(program) -> AmmModule:
    return program.host.register(AmmModule(bank=program.bank, value_identity=VALUE))


@pytest.fixture
def curve(program) -> CurveModule:
    return program.host.register(CurveModule(bank=program.bank, value_identity=VALUE))


@pytest.fixture
def shares():
    return [BeneficiaryShare(ALICE, 1), BeneficiaryShare(BOB, 3)]


@pytest.fixture
def derived_vault(program, shares) -> Ledger:
    return program.initialize_fee_vault_derived(BASE, owner=OWNER, value_identity=VALUE, beneficiaries=shares)


@pytest.fixture
def self_vault(program, shares) -> Ledger:
    return program.initialize_fee_vault(addr("self-vault"), owner=OWNER, value_identity=VALUE, beneficiaries=shares)


@pytest.fixture
def wallets(bank) -> Tuple[bytes, bytes]:
    return open_wallet(bank, ALICE), open_wallet(bank, BOB)
