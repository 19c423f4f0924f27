"""Shared CLI plumbing for command modules.

Connection resolution, registry lifetime, and output helpers.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from dbcore.cli.output import write_json
from dbcore.core.config import (
    ClientSettings,
    ConnectionConfig,
    connection_from_env,
    parse_connection_string,
)
from dbcore.core.exceptions import ConfigError, InputError
from dbcore.core.registry import ConnectionRegistry

if TYPE_CHECKING:
    from collections.abc import Iterator

    import typer


def resolve_connection(ctx: typer.Context) -> ConnectionConfig:
    """Connection from --dsn, else from the environment."""
    obj = ctx.ensure_object(dict)
    dsn = obj.get("dsn")
    if dsn:
        return parse_connection_string(dsn)
    config = connection_from_env()
    if config is None:
        msg = "No connection configured. Use --dsn or set DATABASE_URL."
        raise ConfigError(msg)
    return config


@contextmanager
def connected(ctx: typer.Context) -> Iterator[tuple[ConnectionRegistry, str]]:
    """Register and connect the resolved config for one command."""
    registry = ConnectionRegistry(ClientSettings.from_env())
    connection_id = registry.add(resolve_connection(ctx))
    try:
        registry.connect(connection_id)
        yield registry, connection_id
    finally:
        registry.close_all()


def output(ctx: typer.Context, data: Any) -> None:
    obj = ctx.ensure_object(dict)
    write_json(data, compact=obj.get("compact", False))


def parse_table_arg(table_arg: str) -> tuple[str, str]:
    """Split ``schema.table``; a bare name means the public schema."""
    if "." in table_arg:
        schema_name, _, table_name = table_arg.partition(".")
    else:
        schema_name, table_name = "public", table_arg
    if not schema_name or not table_name:
        msg = f"Invalid table name: '{table_arg}'. Use schema.table"
        raise InputError(msg)
    return schema_name, table_name
