import pytest

from fee_sharing.custody import (Bank, Extension, TransferFee, ValueKind,
                                 is_supported_value_kind, require_supported,
                                 transfer_fee_excluded_amount)
from fee_sharing.errors import CustodyError, UnsupportedValueKind
from fee_sharing.state.ledger import ValueFlag

from .fakes import ALICE, BOB, FEE_VALUE, VALUE, addr, open_wallet


@pytest.mark.parametrize(
    "amount,bps,max_fee,expected",
    [
        (0, 100, 50, 0),
        (1, 100, 50, 1),  # rounds up
        (1000, 100, 50, 10),
        (1001, 100, 50, 11),
        (10_000, 100, 50, 50),  # capped
        (10_000, 0, 50, 0),
    ],
)
def test_transfer_fee_calculation(amount, bps, max_fee, expected):
    assert TransferFee(bps=bps, max_fee=max_fee).calculate(amount) == expected


def test_fee_only_applies_to_extended_kind_with_config():
    fee = TransferFee(bps=100)
    assert ValueKind(identity=VALUE, transfer_fee=fee).effective_fee() is None
    no_config = ValueKind(identity=VALUE, flag=ValueFlag.EXTENDED, transfer_fee=fee)
    assert no_config.effective_fee() is None
    with_config = ValueKind(
        identity=VALUE,
        flag=ValueFlag.EXTENDED,
        extensions=frozenset({Extension.TRANSFER_FEE_CONFIG}),
        transfer_fee=fee,
    )
    assert with_config.effective_fee() is fee
    assert transfer_fee_excluded_amount(with_config, 1000) == (990, 10)


def test_supported_value_kinds():
    assert is_supported_value_kind(ValueKind(identity=VALUE))
    ok = ValueKind(
        identity=VALUE,
        flag=ValueFlag.EXTENDED,
        extensions=frozenset({Extension.METADATA_POINTER, Extension.TOKEN_METADATA}),
    )
    assert is_supported_value_kind(ok)
    hooked = ValueKind(
        identity=VALUE,
        flag=ValueFlag.EXTENDED,
        extensions=frozenset({Extension.TRANSFER_FEE_CONFIG, Extension.TRANSFER_HOOK}),
    )
    assert not is_supported_value_kind(hooked)
    with pytest.raises(UnsupportedValueKind) as ei:
        require_supported(hooked)
    assert ei.value.data["extensions"] == ["transfer_hook"]


def test_move_plain(bank):
    a = open_wallet(bank, ALICE, amount=100)
    b = open_wallet(bank, BOB)
    assert bank.move(40, a, b, ALICE) == 40
    assert bank.balance(a) == 60
    assert bank.balance(b) == 40


def test_move_withholds_transfer_fee(bank):
    a = open_wallet(bank, ALICE, FEE_VALUE, amount=10_000)
    b = open_wallet(bank, BOB, FEE_VALUE)
    assert bank.move(1000, a, b, ALICE) == 990
    assert bank.balance(b) == 990
    assert bank.account(b).withheld == 10
    assert bank.balance(a) == 9000


def test_move_errors(bank):
    a = open_wallet(bank, ALICE, amount=10)
    b = open_wallet(bank, BOB)
    other = open_wallet(bank, BOB, FEE_VALUE)
    with pytest.raises(CustodyError):
        bank.move(1, a, b, BOB)
    with pytest.raises(CustodyError):
        bank.move(11, a, b, ALICE)
    with pytest.raises(CustodyError):
        bank.move(1, a, other, ALICE)
    with pytest.raises(CustodyError):
        bank.move(1, addr("missing"), b, ALICE)
    assert bank.balance(a) == 10


def test_open_account_errors(bank):
    open_wallet(bank, ALICE)
    with pytest.raises(CustodyError):
        open_wallet(bank, ALICE)
    with pytest.raises(CustodyError):
        bank.open_account(addr("w"), addr("unknown-kind"), ALICE)


def test_checkpoint_reverts_on_error(bank):
    a = open_wallet(bank, ALICE, amount=100)
    b = open_wallet(bank, BOB)
    with pytest.raises(RuntimeError):
        with bank.checkpoint():
            bank.move(50, a, b, ALICE)
            bank.open_account(addr("late"), VALUE, ALICE)
            raise RuntimeError("abort")
    assert bank.balance(a) == 100
    assert bank.balance(b) == 0
    assert not bank.has_account(addr("late"))


def test_nested_checkpoints(bank):
    a = open_wallet(bank, ALICE, amount=100)
    b = open_wallet(bank, BOB)
    with bank.checkpoint():
        bank.move(10, a, b, ALICE)
        with pytest.raises(RuntimeError):
            with bank.checkpoint():
                bank.move(20, a, b, ALICE)
                raise RuntimeError("inner")
    assert bank.balance(b) == 10


def test_commit_without_checkpoint():
    with pytest.raises(RuntimeError):
        Bank().commit()
    with pytest.raises(RuntimeError):
        Bank().revert()
