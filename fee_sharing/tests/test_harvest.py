import pytest

from fee_sharing.constants import PRECISION_SCALE
from fee_sharing.errors import (InvalidAction, InvalidFeeVault, InvalidRevenueSource,
                                InvalidSigner, MathOverflow)
from fee_sharing.runtime import harvest
from fee_sharing.runtime.events import EventSink, EvtFundFee, FundingType
from fee_sharing.runtime.harvest import AMM_MODULE_ID, CURVE_MODULE_ID, QUOTE_ONLY, QUOTE_ONLY_PARTNER
from fee_sharing.runtime.modules import AccountMeta, Instruction

from .fakes import ALICE, BOB, CAROL, MALLORY, VALUE, FailingModule, ShrinkingModule, addr

POOL = addr("pool")


def _harvest_known(program, ledger, source, caller, pool=POOL, custody=None):
    return program.harvest_known(
        ledger.address,
        source,
        caller=caller,
        pool=pool,
        value_identity=VALUE,
        custody=custody or ledger.custody_reference,
    )


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


def test_operation_tags_are_stable():
    assert len(harvest.operation_tag("claim_position_fee")) == 8
    assert harvest.operation_tag("claim_reward") != harvest.operation_tag("claim_position_fee")
    assert AMM_MODULE_ID != CURVE_MODULE_ID


def test_positive_delta_funds_and_emits(program, derived_vault):
    sink = EventSink()
    ledger = derived_vault
    got = harvest.harvest(
        ledger,
        program.bank,
        lambda: program.bank.mint(ledger.custody_reference, 400),
        funding_type=FundingType.RELAY,
        source=addr("src"),
        sink=sink,
        payload=b"\x02" * 8,
    )
    assert got == 400
    assert ledger.total_funded_fee == 400
    assert ledger.fee_per_share == 100 << PRECISION_SCALE
    evt = sink.last()
    assert isinstance(evt, EvtFundFee)
    assert evt.funded_amount == 400
    assert evt.fee_per_share == ledger.fee_per_share
    assert evt.payload == b"\x02" * 8


def test_zero_delta_is_silent(program, derived_vault):
    sink = EventSink()
    got = harvest.harvest(
        derived_vault, program.bank, lambda: None, funding_type=FundingType.RELAY, source=addr("src"), sink=sink
    )
    assert got == 0
    assert derived_vault.total_funded_fee == 0
    assert len(sink) == 0


def test_shrinking_custody_is_overflow(program, derived_vault):
    module = program.host.register(ShrinkingModule(bank=program.bank))
    program.bank.mint(derived_vault.custody_reference, 5)
    ix = Instruction(
        program_id=module.module_id,
        accounts=(AccountMeta(POOL), AccountMeta(derived_vault.custody_reference, is_writable=True)),
        data=b"\x00" * 8,
    )
    with pytest.raises(MathOverflow) as ei:
        harvest.harvest(
            derived_vault, program.bank, lambda: program.host.invoke(ix),
            funding_type=FundingType.RELAY, source=module.module_id,
        )
    assert ei.value.data["op"] == "harvest"
    assert derived_vault.total_funded_fee == 0


def test_failing_call_funds_nothing(program, derived_vault):
    module = program.host.register(FailingModule(bank=program.bank))
    ix = Instruction(program_id=module.module_id, accounts=(), data=b"\x00" * 8)
    with pytest.raises(RuntimeError):
        harvest.harvest(
            derived_vault, program.bank, lambda: program.host.invoke(ix),
            funding_type=FundingType.RELAY, source=module.module_id,
        )
    assert derived_vault.fee_per_share == 0


# ---------------------------------------------------------------------------
# Known sources
# ---------------------------------------------------------------------------


def test_position_fee(program, amm, derived_vault):
    amm.add_pool(POOL, position_owner=derived_vault.address, collect_fee_mode=QUOTE_ONLY)
    amm.accrue(POOL, fee=800, reward=99)
    assert _harvest_known(program, derived_vault, FundingType.POSITION_FEE, ALICE) == 800
    stored = program.get_ledger(derived_vault.address)
    assert stored.total_funded_fee == 800
    assert program.bank.balance(stored.custody_reference) == 800
    evt = program.sink.last()
    assert evt.funding_type is FundingType.POSITION_FEE
    assert evt.source == AMM_MODULE_ID
    assert program.pending_fee(derived_vault.address, 1) == 600


def test_position_fee_with_nothing_accrued(program, amm, derived_vault):
    amm.add_pool(POOL, position_owner=derived_vault.address)
    before = len(program.sink)
    assert _harvest_known(program, derived_vault, FundingType.POSITION_FEE, BOB) == 0
    assert len(program.sink) == before
    assert program.get_ledger(derived_vault.address).total_funded_fee == 0


def test_position_fee_requires_quote_only_mode(program, amm, derived_vault):
    amm.add_pool(POOL, position_owner=derived_vault.address, collect_fee_mode=0)
    amm.accrue(POOL, fee=800)
    with pytest.raises(InvalidRevenueSource):
        _harvest_known(program, derived_vault, FundingType.POSITION_FEE, ALICE)


def test_self_signed_source_requires_beneficiary(program, amm, derived_vault):
    amm.add_pool(POOL, position_owner=derived_vault.address)
    amm.accrue(POOL, fee=800)
    with pytest.raises(InvalidSigner):
        _harvest_known(program, derived_vault, FundingType.POSITION_FEE, MALLORY)
    assert program.bank.balance(derived_vault.custody_reference) == 0


def test_self_signed_source_requires_derived_vault(program, amm, self_vault):
    amm.add_pool(POOL, position_owner=self_vault.address)
    amm.accrue(POOL, fee=800)
    with pytest.raises(InvalidFeeVault):
        _harvest_known(program, self_vault, FundingType.POSITION_FEE, ALICE)


@pytest.mark.parametrize(
    "source,bucket",
    [
        (FundingType.CREATOR_TRADING_FEE, "creator_fee"),
        (FundingType.CREATOR_SURPLUS, "creator_surplus"),
    ],
)
def test_creator_sources(program, curve, derived_vault, source, bucket):
    curve.add_pool(POOL, creator=derived_vault.address, partner=CAROL)
    curve.accrue(POOL, **{bucket: 120, "partner_fee": 7})
    assert _harvest_known(program, derived_vault, source, BOB) == 120
    assert program.sink.last().funding_type is source
    assert program.get_ledger(derived_vault.address).total_funded_fee == 120


@pytest.mark.parametrize(
    "source,bucket",
    [
        (FundingType.PARTNER_TRADING_FEE, "partner_fee"),
        (FundingType.PARTNER_SURPLUS, "partner_surplus"),
    ],
)
def test_partner_sources_signed_by_caller(program, curve, self_vault, source, bucket):
    curve.add_pool(POOL, creator=addr("creator"), partner=CAROL, collect_fee_mode=QUOTE_ONLY_PARTNER)
    curve.accrue(POOL, **{bucket: 50})
    assert _harvest_known(program, self_vault, source, CAROL) == 50
    assert program.get_ledger(self_vault.address).total_funded_fee == 50


def test_partner_trading_fee_requires_mode(program, curve, self_vault):
    curve.add_pool(POOL, creator=addr("creator"), partner=CAROL, collect_fee_mode=1)
    curve.accrue(POOL, partner_fee=50)
    with pytest.raises(InvalidRevenueSource):
        _harvest_known(program, self_vault, FundingType.PARTNER_TRADING_FEE, CAROL)


def test_module_rejection_rolls_back(program, curve, self_vault):
    curve.add_pool(POOL, creator=addr("creator"), partner=CAROL)
    curve.accrue(POOL, partner_surplus=50)
    with pytest.raises(PermissionError):
        _harvest_known(program, self_vault, FundingType.PARTNER_SURPLUS, MALLORY)
    assert program.get_ledger(self_vault.address).total_funded_fee == 0
    assert curve.pools[POOL].partner_surplus == 50


@pytest.mark.parametrize("source", [FundingType.DIRECT, FundingType.RELAY, 42])
def test_not_a_known_source(program, derived_vault, source):
    with pytest.raises(InvalidRevenueSource):
        _harvest_known(program, derived_vault, source, ALICE)


def test_wrong_custody_rejected(program, amm, derived_vault):
    amm.add_pool(POOL, position_owner=derived_vault.address)
    with pytest.raises(InvalidFeeVault):
        _harvest_known(program, derived_vault, FundingType.POSITION_FEE, ALICE, custody=addr("elsewhere"))


def test_unknown_module_is_reported(program, derived_vault):
    # Known source wired, but no AMM registered on this host.
    with pytest.raises(InvalidAction):
        _harvest_known(program, derived_vault, FundingType.POSITION_FEE, ALICE)
