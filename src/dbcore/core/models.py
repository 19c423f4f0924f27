"""Result and metadata models for dbcore.

Pydantic models for query results returned by DatabaseClient.execute_query()
and the detailed, per-object catalog forms (TableInfo, ViewInfo,
FunctionInfo) fetched on demand.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class ColumnDefinition(BaseModel):
    """A result-set column.

    ``from_catalog`` is False when the column was described from a result
    set alone. In that case ``nullable`` and ``primary_key`` are defaults,
    not facts about the underlying table.
    """

    name: str
    data_type: str
    nullable: bool = True
    primary_key: bool = False
    default_value: str | None = None
    from_catalog: bool = False


class Row(BaseModel):
    """Values keyed by column name.

    Duplicate column names in one result collapse to a single key; the
    value of the rightmost column wins.
    """

    values: dict[str, Any] = {}

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)


class QueryResult(BaseModel):
    """Result of one statement.

    Row-returning statements carry ``columns``/``rows`` and no
    ``rows_affected``; all other statements carry ``rows_affected`` and
    empty ``columns``/``rows``.
    """

    query: str
    timestamp: int
    execution_time_ms: int
    rows_affected: int | None = None
    columns: list[ColumnDefinition] = []
    rows: list[Row] = []
    warnings: list[str] = []
    result_index: int = 0

    @property
    def returns_rows(self) -> bool:
        return self.rows_affected is None


class PaginatedRowsResult(BaseModel):
    rows: list[Row]
    columns: list[ColumnDefinition] = []
    total_rows: int
    page_index: int
    page_size: int
    total_pages: int


# ---------------------------------------------------------------------------
# Detailed catalog forms
# ---------------------------------------------------------------------------


class ColumnTypeCategory(StrEnum):
    TEXT = "text"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    BINARY = "binary"
    JSON = "json"
    ARRAY = "array"
    ENUM = "enum"
    GEOMETRY = "geometry"
    NETWORK = "network"
    UUID = "uuid"
    OTHER = "other"


class ConstraintType(StrEnum):
    PRIMARY_KEY = "primary_key"
    FOREIGN_KEY = "foreign_key"
    UNIQUE = "unique"
    CHECK = "check"
    EXCLUSION = "exclusion"


class ForeignKeyReference(BaseModel):
    referenced_schema: str
    referenced_table: str
    referenced_column: str
    on_update: str | None = None
    on_delete: str | None = None


class ConstraintInfo(BaseModel):
    name: str
    constraint_type: ConstraintType
    schema_name: str
    table_name: str
    column_names: list[str] = []
    foreign_key_reference: ForeignKeyReference | None = None
    check_definition: str | None = None


class IndexInfo(BaseModel):
    name: str
    schema_name: str
    table_name: str
    is_unique: bool = False
    is_primary: bool = False
    column_names: list[str] = []
    method: str | None = None


class ColumnInfo(BaseModel):
    """Catalog-backed column metadata."""

    name: str
    data_type: str
    type_category: ColumnTypeCategory = ColumnTypeCategory.OTHER
    nullable: bool = True
    primary_key: bool = False
    auto_increment: bool = False
    indexed: bool = False
    unique: bool = False
    default_value: str | None = None
    comment: str | None = None
    position: int | None = None
    foreign_key: ForeignKeyReference | None = None


class TableInfo(BaseModel):
    name: str
    schema_name: str
    columns: list[ColumnInfo] = []
    constraints: list[ConstraintInfo] = []
    indices: list[IndexInfo] = []
    primary_key_columns: list[str] = []
    row_count_estimate: int | None = None
    size_bytes: int | None = None
    comment: str | None = None


class ViewInfo(BaseModel):
    name: str
    schema_name: str
    columns: list[ColumnInfo] = []
    definition: str | None = None
    materialized: bool = False
    comment: str | None = None


class FunctionInfo(BaseModel):
    name: str
    schema_name: str
    arguments: list[str] = []
    return_type: str | None = None
    definition: str | None = None
    language: str | None = None
    is_procedure: bool = False
    comment: str | None = None


class SchemaInfo(BaseModel):
    database: str
    schemas: list[str] = []
    tables: list[TableInfo] = []
    views: list[ViewInfo] = []
    functions: list[FunctionInfo] = []
