"""
fee_sharing.cli
---------------

Operator tool for fee-vault records.

- inspect   : decode and print one ledger
- pending   : claimable amount per beneficiary slot
- list      : every ledger in the store
- decode    : decode a raw 680-byte record from a file
- allowlist : the compiled relay allow-list

Examples
--------
fee-sharing inspect 0x<address> --db sqlite:///fees.db
fee-sharing pending 0x<address> --db fees.db --json
fee-sharing decode ./record.bin
fee-sharing allowlist --json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from . import logging as flog
from .authority import as_address
from .config import get_config, summary
from .db import open_kv
from .errors import FeeVaultError
from .runtime import distribution, relay
from .state.layout import decode_ledger
from .state.ledger import Ledger
from .state.store import LedgerStore
from .version import __version__

app = typer.Typer(
    name="fee-sharing",
    add_completion=False,
    no_args_is_help=True,
    help="Inspect fee-vault ledgers, pending claims and the relay allow-list.",
)


@app.callback()
def _setup() -> None:
    # Logging follows FEE_SHARING_LOG_LEVEL and FEE_SHARING_LOG_FORMAT for every command.
    try:
        cfg = get_config()
    except ValueError as e:
        typer.secho(f"Invalid configuration: {e}", fg=typer.colors.RED)
        raise typer.Exit(2)
    flog.configure_from_config(cfg)


# -------------------- utils --------------------


def _pad(s: str, n: int) -> str:
    if len(s) <= n:
        return s + " " * (n - len(s))
    return s[: n - 1] + "…"


def _addr_or_exit(value: str) -> bytes:
    try:
        return as_address(value)
    except ValueError as e:
        typer.secho(f"Invalid address: {e}", fg=typer.colors.RED)
        raise typer.Exit(2)


def _open_store(db: Optional[str]) -> LedgerStore:
    uri = db or get_config().db_uri
    try:
        return LedgerStore(open_kv(uri, create=False))
    except (ValueError, FileNotFoundError) as e:
        typer.secho(f"Cannot open store {uri!r}: {e}", fg=typer.colors.RED)
        raise typer.Exit(2)


def _load_or_exit(store: LedgerStore, address: bytes) -> Ledger:
    try:
        return store.get(address)
    except FeeVaultError as e:
        typer.secho(f"{e.code}: {e.message}", fg=typer.colors.RED)
        raise typer.Exit(1)


def _pending_rows(ledger: Ledger) -> List[Dict[str, Any]]:
    try:
        return [
            {
                "index": i,
                "identity": "0x" + b.identity.hex(),
                "share": b.share,
                "fee_claimed": b.fee_claimed,
                "pending": distribution.pending(ledger, i),
            }
            for i, b in ledger.used_slots()
        ]
    except FeeVaultError as e:
        typer.secho(f"{e.code}: {e.message}", fg=typer.colors.RED)
        raise typer.Exit(1)


# -------------------- printing --------------------


def _print_ledger(ledger: Ledger) -> None:
    d = ledger.to_dict()
    for k in (
        "address", "owner", "value_identity", "custody_reference", "base",
        "vault_kind", "value_flag", "vault_bump", "total_share",
        "total_funded_fee", "fee_per_share",
    ):
        typer.echo(f"{_pad(k, 18)} {d[k]}")
    typer.echo("")
    _print_slots(_pending_rows(ledger))


def _print_slots(rows: List[Dict[str, Any]]) -> None:
    if not rows:
        typer.echo("No beneficiaries.")
        return
    cols = [
        ("IDX", 4, lambda r: str(r["index"])),
        ("IDENTITY", 20, lambda r: r["identity"]),
        ("SHARE", 12, lambda r: str(r["share"])),
        ("CLAIMED", 14, lambda r: str(r["fee_claimed"])),
        ("PENDING", 14, lambda r: str(r["pending"])),
    ]
    typer.secho(" ".join(_pad(n, w) for n, w, _ in cols), bold=True)
    for r in rows:
        typer.echo(" ".join(_pad(fn(r), w) for _, w, fn in cols))


# -------------------- commands --------------------


@app.command("inspect")
def cmd_inspect(
    address: str = typer.Argument(..., help="Fee vault address (hex)."),
    db: Optional[str] = typer.Option(None, "--db", help="KV URI (e.g., sqlite:///fees.db). Defaults to FEE_SHARING_DB."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    ledger = _load_or_exit(_open_store(db), _addr_or_exit(address))
    if json_out:
        typer.echo(json.dumps(ledger.to_dict(), indent=2, sort_keys=True))
        return
    _print_ledger(ledger)


@app.command("pending")
def cmd_pending(
    address: str = typer.Argument(..., help="Fee vault address (hex)."),
    db: Optional[str] = typer.Option(None, "--db", help="KV URI. Defaults to FEE_SHARING_DB."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    ledger = _load_or_exit(_open_store(db), _addr_or_exit(address))
    rows = _pending_rows(ledger)
    if json_out:
        typer.echo(json.dumps(rows, indent=2, sort_keys=True))
        return
    _print_slots(rows)


@app.command("list")
def cmd_list(
    db: Optional[str] = typer.Option(None, "--db", help="KV URI. Defaults to FEE_SHARING_DB."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    store = _open_store(db)
    rows = [
        {
            "address": "0x" + addr.hex(),
            "vault_kind": ledger.vault_kind.name,
            "beneficiaries": ledger.beneficiary_count(),
            "total_funded_fee": ledger.total_funded_fee,
        }
        for addr, ledger in store.iter_ledgers()
    ]
    if json_out:
        typer.echo(json.dumps(rows, indent=2, sort_keys=True))
        return
    if not rows:
        typer.echo("No fee vaults.")
        return
    typer.secho(_pad("ADDRESS", 68) + " " + _pad("KIND", 16) + " " + _pad("N", 3) + " FUNDED", bold=True)
    for r in rows:
        typer.echo(
            _pad(r["address"], 68) + " " + _pad(r["vault_kind"], 16) + " "
            + _pad(str(r["beneficiaries"]), 3) + " " + str(r["total_funded_fee"])
        )


@app.command("decode")
def cmd_decode(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="File holding a raw ledger record."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    try:
        ledger = decode_ledger(path.read_bytes())
    except FeeVaultError as e:
        typer.secho(f"{e.code}: {e.message}", fg=typer.colors.RED)
        raise typer.Exit(1)
    if json_out:
        typer.echo(json.dumps(ledger.to_dict(), indent=2, sort_keys=True))
        return
    _print_ledger(ledger)


@app.command("allowlist")
def cmd_allowlist(
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    rows = [{"module": "0x" + m.hex(), "tag": t.hex()} for m, t in relay.allowlist()]
    if json_out:
        typer.echo(json.dumps(rows, indent=2, sort_keys=True))
        return
    typer.secho(_pad("MODULE", 68) + " TAG", bold=True)
    for r in rows:
        typer.echo(_pad(r["module"], 68) + " " + r["tag"])


@app.command("config")
def cmd_config() -> None:
    """Print the effective configuration and version."""
    typer.echo(f"fee-sharing {__version__}")
    typer.echo(summary())


def main() -> None:  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
