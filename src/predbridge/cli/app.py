"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from predbridge.config import get_settings
from predbridge.config.settings import configure_logging

app = typer.Typer(
    name="predbridge",
    help="predbridge - trade, resolve and settle binary prediction markets across chains.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from predbridge.cli import api_cmd, claim, contracts, markets, resolve, trade  # noqa: E402

app.add_typer(markets.app, name="markets")
app.add_typer(trade.app, name="trade")
app.add_typer(resolve.app, name="resolve")
app.command("claim")(claim.claim)
app.add_typer(contracts.app, name="contracts")
app.add_typer(api_cmd.app, name="api")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
