"""Claim command."""

from __future__ import annotations

import typer

from predbridge.cli.common import finish, open_coordinator


def claim(
    ctx: typer.Context,
    market_id: str = typer.Argument(...),
    user: str | None = typer.Option(None, "--user", help="Acting address (ledger-only markets; on-chain markets act as the wallet)"),
) -> None:
    """Claim winnings from a resolved market."""
    with open_coordinator(ctx.obj["settings"]) as coordinator:
        payload = finish(coordinator.claim(market_id, acting_address=user))
    typer.echo(f"Claimed {payload['amount']} ({payload['amount_wei']} wei)")
    if payload.get("tx_hash"):
        typer.echo(f"Tx: {payload['tx_hash']}")
