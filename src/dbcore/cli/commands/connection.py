"""Connection utilities: connectivity test and DSN parsing."""

from __future__ import annotations

from typing import Annotated

import typer

from dbcore.cli.commands._shared import output, resolve_connection
from dbcore.core.config import ClientSettings, parse_connection_string
from dbcore.core.registry import ConnectionRegistry


def check_command(ctx: typer.Context) -> None:
    """Check that the configured database accepts connections."""
    config = resolve_connection(ctx)
    registry = ConnectionRegistry(ClientSettings.from_env())
    registry.test_config(config)
    typer.echo(f"OK: {config.name}", err=True)
    output(ctx, {"ok": True, "name": config.name})


def parse_dsn_command(
    ctx: typer.Context,
    dsn: Annotated[str, typer.Argument(help="Connection string to parse")],
    show_password: Annotated[
        bool,
        typer.Option("--show-password", help="Do not mask the password"),
    ] = False,
) -> None:
    """Parse a connection string into its structured fields."""
    config = parse_connection_string(dsn)
    output(ctx, config if show_password else config.redacted())
