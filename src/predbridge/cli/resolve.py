"""Resolve subcommand: manual, ai, bridge, status, pending."""

from __future__ import annotations

import typer

from predbridge.cli.common import finish, open_coordinator
from predbridge.models import ResolutionStage
from predbridge.storage.db import get_connection, init_schema
from predbridge.storage.resolutions import list_resolution_states

app = typer.Typer(help="Resolve markets and bridge outcomes")


def _print_resolution(payload: dict) -> None:
    typer.echo(f"Outcome: {str(payload.get('outcome', '')).upper()}  ({payload.get('mechanism')})")
    if payload.get("rationale"):
        typer.echo(f"Reasoning: {payload['rationale'][:200]}")
    if payload.get("tx"):
        typer.echo(f"Settlement tx: {payload['tx']['tx_hash']}")


@app.command("manual")
def manual(
    ctx: typer.Context,
    market_id: str = typer.Argument(...),
    outcome: str = typer.Option(..., "--outcome", "-o", help="yes | no"),
    user: str | None = typer.Option(None, "--user", help="Acting address (ledger-only markets; on-chain markets act as the wallet)"),
) -> None:
    """Resolve as the market creator."""
    with open_coordinator(ctx.obj["settings"]) as coordinator:
        payload = finish(coordinator.resolve_manual(market_id, outcome.lower(), acting_address=user))
    _print_resolution(payload)


@app.command("ai")
def ai(
    ctx: typer.Context,
    market_id: str = typer.Argument(...),
    user: str | None = typer.Option(None, "--user", help="Acting address (ledger-only markets; on-chain markets act as the wallet)"),
) -> None:
    """Request AI consensus on the resolution chain, then bridge the outcome."""
    with open_coordinator(ctx.obj["settings"]) as coordinator:
        payload = finish(coordinator.resolve_with_ai(market_id, acting_address=user))
    _print_resolution(payload)


@app.command("bridge")
def bridge(
    ctx: typer.Context,
    market_id: str = typer.Argument(...),
    user: str | None = typer.Option(None, "--user", help="Acting address (ledger-only markets; on-chain markets act as the wallet)"),
) -> None:
    """Retry bridging an outcome that was decided but not yet settled."""
    with open_coordinator(ctx.obj["settings"]) as coordinator:
        payload = finish(coordinator.bridge_pending(market_id, acting_address=user))
    _print_resolution(payload)


@app.command("status")
def status(ctx: typer.Context, market_id: str = typer.Argument(...)) -> None:
    """Show ledger, settlement-chain and resolution-chain views of a market's resolution."""
    with open_coordinator(ctx.obj["settings"]) as coordinator:
        payload = finish(coordinator.resolution_status(market_id))
    typer.echo(f"Status: {payload['status']}  Stage: {payload['stage']}")
    if payload.get("outcome"):
        typer.echo(f"Outcome: {payload['outcome'].upper()}")
    for key in ("onchain", "resolution_chain"):
        if payload.get(key):
            typer.echo(f"{key}: {payload[key]}")


@app.command("pending")
def pending(ctx: typer.Context) -> None:
    """List markets whose outcome is decided but not yet bridged to settlement."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        states = list_resolution_states(conn, stage=ResolutionStage.DECIDED_PENDING_BRIDGE.value)
        for s in states:
            typer.echo(f"  {s.market_id}  {str(s.outcome).upper():<3}  {s.mechanism.value if s.mechanism else '-'}")
        typer.echo(f"Pending: {len(states)}")
    finally:
        conn.close()
