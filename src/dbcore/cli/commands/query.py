from __future__ import annotations

import sys
from typing import Annotated

import typer

from dbcore.cli.commands._shared import connected, output
from dbcore.core.query_source import resolve_query_source
from dbcore.core.splitter import split_statements


def _stdin_is_tty() -> bool:
    try:
        return sys.stdin.isatty()
    except (ValueError, AttributeError):
        return False


def query_command(
    ctx: typer.Context,
    file: Annotated[
        str | None,
        typer.Argument(help="SQL file to execute"),
    ] = None,
    execute: Annotated[
        str | None,
        typer.Option("--execute", "-e", help="Execute inline SQL"),
    ] = None,
    transaction: Annotated[
        bool,
        typer.Option("--transaction", help="Run all statements in one transaction"),
    ] = False,
) -> None:
    """Execute a SQL script from file, inline (-e), or stdin.

    The script is split into statements and run in order; the first
    failing statement aborts the rest. Prints one result per statement.
    """
    if execute is None and file is None and _stdin_is_tty():
        typer.echo(ctx.get_help())
        raise typer.Exit()

    script = resolve_query_source(inline=execute, file_path=file)

    with connected(ctx) as (registry, connection_id):
        if transaction:
            statements = split_statements(script)
            with registry.begin_transaction(connection_id) as txn:
                results = [txn.execute_query(s) for s in statements]
            for index, result in enumerate(results):
                result.result_index = index
        else:
            results = registry.execute_many(connection_id, script)

    output(ctx, results)


def split_command(
    ctx: typer.Context,
    file: Annotated[
        str | None,
        typer.Argument(help="SQL file to split"),
    ] = None,
    execute: Annotated[
        str | None,
        typer.Option("--execute", "-e", help="Inline SQL to split"),
    ] = None,
) -> None:
    """Split a SQL script into statements without running it."""
    if execute is None and file is None and _stdin_is_tty():
        typer.echo(ctx.get_help())
        raise typer.Exit()

    script = resolve_query_source(inline=execute, file_path=file)
    output(ctx, split_statements(script))
