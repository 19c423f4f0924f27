"""Catalog introspection commands."""

from __future__ import annotations

from typing import Annotated

import typer

from dbcore.cli.commands._shared import connected, output, parse_table_arg
from dbcore.core.entities import EntityKind


def entities_command(
    ctx: typer.Context,
    include_system: Annotated[
        bool,
        typer.Option("--system", help="Include pg_catalog and information_schema"),
    ] = False,
    kind: Annotated[
        list[EntityKind] | None,
        typer.Option("--kind", "-k", help="Only entities of this kind (repeatable)"),
    ] = None,
) -> None:
    """List schemas and schema-owned objects as a flat entity forest."""
    with connected(ctx) as (registry, connection_id):
        entities = registry.get_entities(connection_id, include_system=include_system)
    if kind:
        wanted = set(kind)
        entities = [e for e in entities if e.kind in wanted]
    output(ctx, entities)


def tables_command(
    ctx: typer.Context,
    schema: Annotated[
        str | None,
        typer.Option("--schema", "-s", help="Only tables in this schema"),
    ] = None,
) -> None:
    """List tables with columns, constraints and indices."""
    with connected(ctx) as (registry, connection_id):
        tables = registry.get_tables(connection_id)
    if schema:
        tables = [t for t in tables if t.schema_name == schema]
    output(ctx, tables)


def describe_command(
    ctx: typer.Context,
    table: Annotated[str, typer.Argument(help="Table name (schema.table)")],
    page: Annotated[
        int | None,
        typer.Option("--page", help="Also fetch this page of rows (0-based)"),
    ] = None,
    page_size: Annotated[
        int,
        typer.Option("--page-size", help="Rows per page"),
    ] = 50,
) -> None:
    """Describe one table; optionally include a page of its rows."""
    schema_name, table_name = parse_table_arg(table)
    with connected(ctx) as (registry, connection_id):
        info = registry.get_table_info(connection_id, schema_name, table_name)
        rows = None
        if page is not None:
            rows = registry.get_paginated_rows(
                connection_id, schema_name, table_name, page, page_size
            )
    if rows is None:
        output(ctx, info)
    else:
        output(ctx, {"table": info, "rows": rows})
