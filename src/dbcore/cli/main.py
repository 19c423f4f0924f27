"""dbcore CLI entry point and command registration."""

from __future__ import annotations

import atexit
from typing import Annotated

import sentry_sdk
import typer

from dbcore.__about__ import __version__
from dbcore.cli.commands.connection import check_command, parse_dsn_command
from dbcore.cli.commands.query import query_command, split_command
from dbcore.cli.commands.schema import (
    describe_command,
    entities_command,
    tables_command,
)
from dbcore.core.exceptions import DbCoreError
from dbcore.core.logging import setup_logging
from dbcore.core.monitoring import setup_sentry

app = typer.Typer(
    help="dbcore - database client core command line",
    no_args_is_help=True,
)

app.command("query")(query_command)
app.command("split")(split_command)
app.command("entities")(entities_command)
app.command("tables")(tables_command)
app.command("describe")(describe_command)
app.command("test")(check_command)
app.command("parse-dsn")(parse_dsn_command)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dbcore {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable verbose logging"),
    ] = False,
    dsn: Annotated[
        str | None,
        typer.Option("--dsn", help="Connection string (default: $DATABASE_URL)"),
    ] = None,
    compact: Annotated[
        bool,
        typer.Option("--compact", help="Compact JSON output (no indentation)"),
    ] = False,
) -> None:
    """dbcore - database client core command line."""
    setup_logging(verbose)
    if setup_sentry():
        transaction = sentry_sdk.start_transaction(
            op="cli", name=ctx.invoked_subcommand or "dbcore"
        )
        transaction.__enter__()

        def cleanup() -> None:
            transaction.__exit__(None, None, None)
            sentry_sdk.flush(timeout=2)

        atexit.register(cleanup)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["dsn"] = dsn
    ctx.obj["compact"] = compact


def run() -> None:
    """Entry point with global error handling."""
    try:
        app()
    except DbCoreError as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e.message}", err=True)
        raise SystemExit(e.exit_code) from None
    except SystemExit:
        raise
    except KeyboardInterrupt:
        raise SystemExit(130) from None
    except Exception as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from None
