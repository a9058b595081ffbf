"""Markets subcommand: list, show, create, factory."""

from __future__ import annotations

import time
from datetime import datetime

import typer

from predbridge.cli.common import finish, open_coordinator
from predbridge.storage.db import get_connection, init_schema
from predbridge.storage.markets import get_market
from predbridge.storage.markets import list_markets as storage_list_markets
from predbridge.storage.positions import list_positions

app = typer.Typer(help="Market listing and creation")


@app.command("list")
def list_markets(
    ctx: typer.Context,
    status: str | None = typer.Option(None, "--status", "-s", help="open | ended | resolving | resolved"),
    category: str | None = typer.Option(None, "--category", "-c"),
    limit: int = typer.Option(50, "--limit", "-n"),
) -> None:
    """List markets in the local ledger."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        rows = storage_list_markets(conn, status=status, category=category, limit=limit)
        for m in rows:
            chain = "on-chain" if m.has_contract else "ledger"
            typer.echo(
                f"  {m.market_id[:12]}  {m.status.value:<9}  {m.probability:>3.0f}%  {chain:<8}  {m.question[:60]}"
            )
        typer.echo(f"Total: {len(rows)} markets")
    finally:
        conn.close()


@app.command("show")
def show(ctx: typer.Context, market_id: str = typer.Argument(..., help="Market ID")) -> None:
    """Show one market with its positions."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        m = get_market(conn, market_id)
        if m is None:
            typer.echo(f"Market not found: {market_id}")
            raise typer.Exit(1)
        typer.echo(f"Market: {m.market_id}")
        typer.echo(f"Question: {m.question}")
        typer.echo(f"Status: {m.status.value}  Probability: {m.probability:.0f}%  Volume: {m.volume:.2f} {settings.display_currency}")
        typer.echo(f"Ends: {datetime.fromtimestamp(m.end_time / 1000).isoformat(timespec='minutes')}")
        if m.settlement_address:
            typer.echo(f"Settlement contract: {m.settlement_address} ({m.contract_version or 'auto-detect'})")
        if m.resolution_address:
            typer.echo(f"Resolution contract: {m.resolution_address}")
        if m.resolved_outcome:
            typer.echo(f"Outcome: {m.resolved_outcome.upper()}")
        for p in list_positions(conn, market_id=market_id):
            flag = "  claimed" if p.claimed else ""
            typer.echo(f"  {p.user_address}  {p.side:<3}  {p.shares:.4f} @ {p.avg_price:.2f}{flag}")
    finally:
        conn.close()


@app.command("create")
def create(
    ctx: typer.Context,
    question: str = typer.Option(..., "--question", "-q"),
    days: float = typer.Option(7.0, "--days", help="Days until the market ends"),
    description: str = typer.Option("", "--description", "-d", help="Resolution criteria"),
    category: str = typer.Option("General", "--category", "-c"),
    creator: str | None = typer.Option(None, "--creator", help="Creator address (default: wallet)"),
    settlement: str | None = typer.Option(None, "--settlement", help="Settlement contract address"),
    resolution: str | None = typer.Option(None, "--resolution", help="AI resolution contract address"),
    version: str | None = typer.Option(None, "--version", help="Declared contract version: legacy | current"),
    source: str | None = typer.Option(None, "--source", help="Resolution source"),
    deploy: bool = typer.Option(False, "--deploy", help="Deploy a settlement contract through the market factory"),
) -> None:
    """Register a market in the ledger, bound to existing contracts or deploying its own."""
    settings = ctx.obj["settings"]
    end_time = int(time.time() * 1000 + days * 86_400_000)
    with open_coordinator(settings) as coordinator:
        payload = finish(
            coordinator.create_market(
                question,
                end_time,
                description=description,
                category=category,
                creator_address=creator,
                settlement_address=settlement,
                resolution_address=resolution,
                contract_version=version,
                resolution_source=source,
                deploy=deploy,
            )
        )
    typer.echo(f"Created market {payload['market']['market_id']}")
    if payload.get("tx"):
        typer.echo(f"Settlement contract: {payload['market']['settlement_address']}")
        typer.echo(f"  tx: {payload['tx'].get('explorer_url') or payload['tx']['tx_hash']}")


@app.command("factory")
def factory(
    ctx: typer.Context,
    creator: str | None = typer.Option(None, "--creator", help="Only markets deployed by this address"),
) -> None:
    """List markets the factory deployed, with their local market IDs."""
    settings = ctx.obj["settings"]
    with open_coordinator(settings) as coordinator:
        payload = finish(coordinator.factory_markets(creator))
    for entry in payload["markets"]:
        typer.echo(f"  {entry['address']}  {entry['market_id'] or '(not tracked)'}")
    typer.echo(f"Total: {len(payload['markets'])} markets")
