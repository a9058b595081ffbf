"""Contracts subcommand: detect escrow interface version, clear the cache."""

from __future__ import annotations

import typer

from predbridge.chain.providers import ProviderPool
from predbridge.chain.versions import ContractVersionResolver, clear_version_cache
from predbridge.errors import CoordinatorError

app = typer.Typer(help="Settlement contract inspection")


@app.command("version")
def version(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="Settlement contract address"),
) -> None:
    """Detect whether the contract at ADDRESS is legacy, current or invalid."""
    settings = ctx.obj["settings"]
    resolver = ContractVersionResolver(ProviderPool.from_settings(settings))
    try:
        detected = resolver.resolve_version(address)
    except CoordinatorError as e:
        typer.echo(f"Error [{e.code}]: {e.message}")
        raise typer.Exit(1)
    typer.echo(f"{address}: {detected.value}")


@app.command("clear-cache")
def clear_cache(
    address: str | None = typer.Argument(None, help="Only this address (default: all)"),
) -> None:
    """Drop cached version bindings held by this process."""
    clear_version_cache(address)
    typer.echo("Cleared version binding" + (f" for {address}" if address else "s"))
