"""Schema entity model and catalog row builders.

The entity model is a flat, backend-agnostic forest used for tree
browsing: schemas at the root, schema-owned objects one level below.
Indexes and triggers belong to a table logically but are kept flat with a
``table_name`` back-reference, so tables stay listable without them.

Detailed per-table metadata (TableInfo) is built separately from a column
stream sorted by (schema, table, position).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from enum import StrEnum
from itertools import pairwise
from typing import Any

from pydantic import BaseModel

from dbcore.core.logging import get_logger
from dbcore.core.models import ColumnInfo, TableInfo


class EntityKind(StrEnum):
    SCHEMA = "schema"
    TABLE = "table"
    VIEW = "view"
    MATERIALIZED_VIEW = "materialized_view"
    FOREIGN_TABLE = "foreign_table"
    FUNCTION = "function"
    PROCEDURE = "procedure"
    SEQUENCE = "sequence"
    CUSTOM_TYPE = "custom_type"
    INDEX = "index"
    TRIGGER = "trigger"


TABLE_LIKE_KINDS = frozenset(
    {
        EntityKind.TABLE,
        EntityKind.VIEW,
        EntityKind.MATERIALIZED_VIEW,
        EntityKind.FOREIGN_TABLE,
    }
)

# Postgres pg_class.relkind discriminators for table-like relations.
RELKIND_TO_KIND: dict[str, EntityKind] = {
    "r": EntityKind.TABLE,
    "p": EntityKind.TABLE,
    "v": EntityKind.VIEW,
    "m": EntityKind.MATERIALIZED_VIEW,
    "f": EntityKind.FOREIGN_TABLE,
}


class Entity(BaseModel):
    """One catalog object.

    ``id`` is the backend object id (stable across renames). ``schema_id``
    is None only for schemas. ``children`` is populated for schemas only.
    """

    id: str
    kind: EntityKind
    name: str
    is_system: bool = False
    extension: str | None = None
    schema_id: str | None = None
    comment: str | None = None
    # Table-like kinds
    row_count_estimate: int | None = None
    size_bytes: int | None = None
    column_count: int | None = None
    # Index / trigger kinds
    table_name: str | None = None
    # Schema kind
    children: list[str] = []


class CatalogRows(BaseModel):
    """Raw catalog rows, one list per separately fetched result set.

    Each row is a mapping with at least ``id`` and ``name``; dependent
    rows carry ``schema_id``. Relation rows carry ``relkind``.
    """

    schemas: list[dict[str, Any]] = []
    relations: list[dict[str, Any]] = []
    routines: list[dict[str, Any]] = []
    sequences: list[dict[str, Any]] = []
    types: list[dict[str, Any]] = []
    indexes: list[dict[str, Any]] = []
    triggers: list[dict[str, Any]] = []


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    # reltuples is -1 for never-analyzed tables.
    return number if number >= 0 else None


def _relation_kind(row: Mapping[str, Any]) -> EntityKind | None:
    return RELKIND_TO_KIND.get(str(row.get("relkind", "")))


def _routine_kind(row: Mapping[str, Any]) -> EntityKind:
    return EntityKind.PROCEDURE if row.get("prokind") == "p" else EntityKind.FUNCTION


def _entity(kind: EntityKind, row: Mapping[str, Any], **extra: Any) -> Entity:
    return Entity(
        id=str(row["id"]),
        kind=kind,
        name=row["name"],
        is_system=bool(row.get("is_system", False)),
        extension=row.get("extension"),
        schema_id=str(row["schema_id"]) if row.get("schema_id") is not None else None,
        comment=row.get("comment"),
        **extra,
    )


def build_entities(catalog: CatalogRows) -> list[Entity]:
    """Build the entity forest from raw catalog rows.

    Schemas are registered first; every other row is attached under its
    ``schema_id``. Rows whose schema is missing from ``catalog.schemas``
    (e.g. dropped mid-introspection) are dropped.
    """
    log = get_logger("entities")
    schemas: dict[str, Entity] = {}
    for row in catalog.schemas:
        schema = _entity(EntityKind.SCHEMA, row)
        schema.schema_id = None
        schemas[schema.id] = schema

    members: list[Entity] = []
    dropped = 0

    def attach(entity: Entity) -> None:
        nonlocal dropped
        parent = schemas.get(entity.schema_id or "")
        if parent is None:
            dropped += 1
            return
        parent.children.append(entity.id)
        members.append(entity)

    for row in catalog.relations:
        kind = _relation_kind(row)
        if kind is None:
            dropped += 1
            continue
        attach(
            _entity(
                kind,
                row,
                row_count_estimate=_optional_int(row.get("row_count_estimate")),
                size_bytes=_optional_int(row.get("size_bytes")),
                column_count=_optional_int(row.get("column_count")),
            )
        )
    for row in catalog.routines:
        attach(_entity(_routine_kind(row), row))
    for row in catalog.sequences:
        attach(_entity(EntityKind.SEQUENCE, row))
    for row in catalog.types:
        attach(_entity(EntityKind.CUSTOM_TYPE, row))
    for row in catalog.indexes:
        attach(_entity(EntityKind.INDEX, row, table_name=row.get("table_name")))
    for row in catalog.triggers:
        attach(_entity(EntityKind.TRIGGER, row, table_name=row.get("table_name")))

    if dropped:
        log.debug("dropped orphan catalog rows", count=dropped)

    return [*schemas.values(), *members]


def orphans(entities: Iterable[Entity]) -> list[Entity]:
    """Entities whose schema_id does not name a schema in the same list."""
    items = list(entities)
    schema_ids = {e.id for e in items if e.kind is EntityKind.SCHEMA}
    return [
        e for e in items if e.kind is not EntityKind.SCHEMA and e.schema_id not in schema_ids
    ]


# ---------------------------------------------------------------------------
# Detailed table grouping
# ---------------------------------------------------------------------------


def _table_key(row: Mapping[str, Any]) -> tuple[str, str, int]:
    return (row["schema_name"], row["table_name"], int(row.get("position") or 0))


def group_table_columns(
    rows: Iterable[Mapping[str, Any]],
    column_factory: Callable[[Mapping[str, Any]], ColumnInfo],
) -> list[TableInfo]:
    """Group a column stream into one TableInfo per (schema, table).

    The stream must be ordered by (schema, table, position); a running
    accumulator is flushed whenever the (schema, table) key changes. An
    unordered stream is re-sorted first.
    """
    items = list(rows)
    if any(_table_key(a) > _table_key(b) for a, b in pairwise(items)):
        get_logger("entities").warning(
            "catalog column stream not sorted; re-sorting", rows=len(items)
        )
        items.sort(key=_table_key)

    tables: list[TableInfo] = []
    current: TableInfo | None = None

    for row in items:
        schema_name, table_name = row["schema_name"], row["table_name"]
        if current is None or (current.schema_name, current.name) != (
            schema_name,
            table_name,
        ):
            if current is not None:
                tables.append(_finish(current))
            current = TableInfo(name=table_name, schema_name=schema_name)
        current.columns.append(column_factory(row))

    if current is not None:
        tables.append(_finish(current))

    return tables


def _finish(table: TableInfo) -> TableInfo:
    table.primary_key_columns = [c.name for c in table.columns if c.primary_key]
    return table
