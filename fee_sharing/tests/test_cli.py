from __future__ import annotations

import json
import logging

import pytest
from typer.testing import CliRunner

from fee_sharing.cli import app
from fee_sharing.db import open_kv
from fee_sharing.runtime import distribution
from fee_sharing.state.layout import encode_ledger
from fee_sharing.state.ledger import BeneficiaryShare
from fee_sharing.state.store import LedgerStore

from .fakes import ALICE, BOB, OWNER, VALUE, addr

runner = CliRunner()
# Every invocation reconfigures the root logger.
pytestmark = pytest.mark.usefixtures("restore_root")
VAULT = addr("cli-vault")


@pytest.fixture
def ledger():
    ledger = distribution.initialize(
        [BeneficiaryShare(ALICE, 1), BeneficiaryShare(BOB, 3)],
        address=VAULT,
        owner=OWNER,
        value_identity=VALUE,
        custody_reference=addr("cli-custody"),
    )
    distribution.fund(ledger, 4000)
    distribution.claim(ledger, 0, ALICE)
    return ledger


@pytest.fixture
def db_uri(tmp_path, ledger):
    uri = f"sqlite:///{tmp_path / 'fees.db'}"
    kv = open_kv(uri)
    LedgerStore(kv).create(ledger)
    kv.close()
    return uri


def test_inspect_json(db_uri):
    r = runner.invoke(app, ["inspect", "0x" + VAULT.hex(), "--db", db_uri, "--json"])
    assert r.exit_code == 0, r.output
    d = json.loads(r.output)
    assert d["address"] == "0x" + VAULT.hex()
    assert d["total_funded_fee"] == 4000
    assert [b["share"] for b in d["beneficiaries"]] == [1, 3]


def test_inspect_table(db_uri):
    r = runner.invoke(app, ["inspect", VAULT.hex(), "--db", db_uri])
    assert r.exit_code == 0, r.output
    assert "total_share" in r.output
    assert "PENDING" in r.output


def test_pending_json(db_uri):
    r = runner.invoke(app, ["pending", VAULT.hex(), "--db", db_uri, "--json"])
    assert r.exit_code == 0, r.output
    rows = json.loads(r.output)
    assert [(x["index"], x["fee_claimed"], x["pending"]) for x in rows] == [(0, 1000, 0), (1, 0, 3000)]


def test_list(db_uri):
    r = runner.invoke(app, ["list", "--db", db_uri, "--json"])
    assert r.exit_code == 0, r.output
    rows = json.loads(r.output)
    assert rows == [
        {"address": "0x" + VAULT.hex(), "vault_kind": "SELF_CUSTODIED", "beneficiaries": 2, "total_funded_fee": 4000}
    ]


def test_missing_vault_exits_1(db_uri):
    r = runner.invoke(app, ["inspect", addr("nope").hex(), "--db", db_uri])
    assert r.exit_code == 1
    assert "INVALID_FEE_VAULT" in r.output


def test_bad_address_exits_2(db_uri):
    r = runner.invoke(app, ["pending", "0x1234", "--db", db_uri])
    assert r.exit_code == 2
    assert "Invalid address" in r.output


def test_missing_store_exits_2(tmp_path):
    r = runner.invoke(app, ["list", "--db", f"sqlite:///{tmp_path / 'absent.db'}"])
    assert r.exit_code == 2


def test_decode_file(tmp_path, ledger):
    path = tmp_path / "record.bin"
    path.write_bytes(encode_ledger(ledger))
    r = runner.invoke(app, ["decode", str(path), "--json"])
    assert r.exit_code == 0, r.output
    assert json.loads(r.output)["fee_per_share"] == 1000 << 52

    path.write_bytes(b"\x00" * 10)
    r = runner.invoke(app, ["decode", str(path)])
    assert r.exit_code == 1


def test_allowlist_json():
    r = runner.invoke(app, ["allowlist", "--json"])
    assert r.exit_code == 0, r.output
    rows = json.loads(r.output)
    assert len(rows) == 4
    assert all(len(x["tag"]) == 16 for x in rows)


def test_config_command():
    r = runner.invoke(app, ["config"])
    assert r.exit_code == 0, r.output
    assert r.output.startswith("fee-sharing ")
    assert "fee_sharing{" in r.output


def test_env_log_level_applies():
    r = runner.invoke(app, ["allowlist", "--json"], env={"FEE_SHARING_LOG_LEVEL": "ERROR"})
    assert r.exit_code == 0, r.output
    assert logging.getLogger().level == logging.ERROR


def test_invalid_env_config_exits_2():
    r = runner.invoke(app, ["allowlist"], env={"FEE_SHARING_LOG_LEVEL": "LOUD"})
    assert r.exit_code == 2
    assert "Invalid configuration" in r.output


def test_corrupt_checkpoint_exits_1(tmp_path, ledger):
    ledger.beneficiaries[1].fee_per_share_checkpoint = ledger.fee_per_share + 1
    uri = f"sqlite:///{tmp_path / 'corrupt.db'}"
    kv = open_kv(uri)
    LedgerStore(kv).create(ledger)
    kv.close()

    r = runner.invoke(app, ["pending", VAULT.hex(), "--db", uri])
    assert r.exit_code == 1
    assert "MATH_OVERFLOW" in r.output
