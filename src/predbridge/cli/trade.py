"""Trade subcommand: buy, sell."""

from __future__ import annotations

import typer

from predbridge.cli.common import finish, open_coordinator

app = typer.Typer(help="Buy and sell outcome shares")


def _print_tx(payload: dict) -> None:
    tx = payload.get("tx")
    if tx:
        typer.echo(f"Tx: {tx['tx_hash']}")
        if tx.get("explorer_url"):
            typer.echo(f"  {tx['explorer_url']}")
    if payload.get("ledger_synced") is False:
        typer.echo("Warning: confirmed on-chain but the ledger was not updated")


@app.command("buy")
def buy(
    ctx: typer.Context,
    market_id: str = typer.Argument(...),
    side: str = typer.Option(..., "--side", "-s", help="yes | no"),
    amount: float = typer.Option(..., "--amount", "-a", help="Stake in native units"),
    user: str | None = typer.Option(None, "--user", help="Acting address (ledger-only markets; on-chain markets act as the wallet)"),
) -> None:
    """Buy shares on one side."""
    with open_coordinator(ctx.obj["settings"]) as coordinator:
        payload = finish(coordinator.buy(market_id, side.lower(), amount, acting_address=user))
    trade = payload.get("trade")
    if trade:
        typer.echo(f"Bought {trade['shares']:.4f} {side.upper()} @ {trade['price']:.2f}")
    _print_tx(payload)


@app.command("sell")
def sell(
    ctx: typer.Context,
    market_id: str = typer.Argument(...),
    side: str = typer.Option(..., "--side", "-s", help="yes | no"),
    shares: float = typer.Option(..., "--shares", help="Shares to sell"),
    user: str | None = typer.Option(None, "--user", help="Acting address (ledger-only markets; on-chain markets act as the wallet)"),
) -> None:
    """Sell shares back (legacy contracts only)."""
    with open_coordinator(ctx.obj["settings"]) as coordinator:
        payload = finish(coordinator.sell(market_id, side.lower(), shares, acting_address=user))
    typer.echo(f"Sold {shares} {side.upper()} shares")
    _print_tx(payload)
