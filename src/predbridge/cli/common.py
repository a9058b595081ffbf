"""Shared helpers for CLI commands: build the coordinator, print results."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

import typer

from predbridge.coordinator import ResolutionCoordinator, build_coordinator
from predbridge.storage.db import get_connection, init_schema

if TYPE_CHECKING:
    from predbridge.config.settings import Settings
    from predbridge.models import ActionResult


def _echo_status(message: str) -> None:
    typer.echo(f"  {message}")


@contextmanager
def open_coordinator(settings: Settings) -> Iterator[ResolutionCoordinator]:
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        yield build_coordinator(settings, conn, on_status=_echo_status)
    finally:
        conn.close()


def finish(result: ActionResult) -> dict:
    """Return the payload of a successful result; print the error and exit 1 otherwise."""
    if result.ok:
        return result.payload
    typer.echo(f"Error [{result.error_code}]: {result.error}")
    for key in ("funding_url", "recognized_address", "stage"):
        if result.details.get(key):
            typer.echo(f"  {key}: {result.details[key]}")
    raise typer.Exit(1)
