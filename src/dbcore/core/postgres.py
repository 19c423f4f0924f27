"""PostgreSQL client for dbcore.

Wraps a psycopg v3 connection pool (psycopg_pool) with statement
execution, transactions, catalog introspection, and exception mapping
to the DbCoreError hierarchy.
"""

from __future__ import annotations

import math
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

import psycopg
import psycopg.errors
import sentry_sdk
from psycopg import sql
from psycopg.pq import ExecStatus
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolClosed, PoolTimeout

from dbcore.core.client import DatabaseClient, Transaction, returns_rows
from dbcore.core.config import BackendKind, resolve_connection_string
from dbcore.core.entities import CatalogRows, Entity, build_entities, group_table_columns
from dbcore.core.exceptions import (
    ConfigError,
    ConnectionError,
    DbCoreError,
    NotFoundError,
    QueryError,
    TimeoutError,
    TransactionError,
)
from dbcore.core.logging import get_logger
from dbcore.core.models import (
    ColumnDefinition,
    ColumnInfo,
    ColumnTypeCategory,
    ConstraintInfo,
    ConstraintType,
    ForeignKeyReference,
    FunctionInfo,
    IndexInfo,
    PaginatedRowsResult,
    QueryResult,
    SchemaInfo,
    TableInfo,
    ViewInfo,
)
from dbcore.core.serialization import create_query_result, to_row, type_category

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from dbcore.core.config import ClientSettings, ConnectionConfig

# Mapping from type OIDs to names for types the connection's adapters
# do not know. Unknown OIDs fall back to "unknown".
_TYPE_NAMES: dict[int, str] = {
    16: "bool",
    17: "bytea",
    20: "int8",
    21: "int2",
    23: "int4",
    25: "text",
    26: "oid",
    114: "json",
    142: "xml",
    700: "float4",
    701: "float8",
    790: "money",
    1042: "bpchar",
    1043: "varchar",
    1082: "date",
    1083: "time",
    1114: "timestamp",
    1184: "timestamptz",
    1186: "interval",
    1266: "timetz",
    1700: "numeric",
    2950: "uuid",
    3802: "jsonb",
}

_CONSTRAINT_TYPES: dict[str, ConstraintType] = {
    "p": ConstraintType.PRIMARY_KEY,
    "f": ConstraintType.FOREIGN_KEY,
    "u": ConstraintType.UNIQUE,
    "c": ConstraintType.CHECK,
    "x": ConstraintType.EXCLUSION,
}

_FK_ACTIONS: dict[str, str] = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}

_NOT_CONNECTED = "Database client is not connected"
_FINALIZED = "Transaction already committed or rolled back"


def wrap_error(e: psycopg.Error) -> DbCoreError:
    """Map a psycopg/psycopg_pool exception to a DbCoreError."""
    if isinstance(e, PoolTimeout):
        return TimeoutError(f"Connection pool timeout: {e}")
    if isinstance(e, PoolClosed):
        return ConnectionError(f"Connection pool closed: {e}")
    if isinstance(e, psycopg.errors.QueryCanceled):
        return TimeoutError(f"Query timed out: {e}")
    if isinstance(e, psycopg.OperationalError):
        return ConnectionError(f"Database error: {e}")
    return QueryError(f"SQL error: {e}")


def _type_name(conn: psycopg.Connection[Any], oid: int) -> str:
    info = conn.adapters.types.get(oid)
    if info is not None:
        return info.name
    return _TYPE_NAMES.get(oid, "unknown")


def _columns_from_description(
    conn: psycopg.Connection[Any], description: Sequence[Any]
) -> list[ColumnDefinition]:
    return [
        ColumnDefinition(name=col.name, data_type=_type_name(conn, col.type_code))
        for col in description
    ]


def describe_statement(
    conn: psycopg.Connection[Any], query: str
) -> list[ColumnDefinition]:
    """Ask the server for a statement's result columns without running it."""
    pgconn = conn.pgconn
    encoding = conn.info.encoding
    prepared = pgconn.prepare(b"", query.encode(encoding))
    if prepared.status != ExecStatus.COMMAND_OK:
        msg = (prepared.error_message or b"").decode(encoding, "replace").strip()
        raise QueryError(f"SQL error: {msg}")
    described = pgconn.describe_prepared(b"")
    return [
        ColumnDefinition(
            name=(described.fname(i) or b"").decode(encoding),
            data_type=_type_name(conn, described.ftype(i)),
        )
        for i in range(described.nfields)
    ]


def run_statement(
    conn: psycopg.Connection[Any], query: str, log: Any = None
) -> QueryResult:
    """Execute exactly one statement on ``conn`` and build its QueryResult.

    SELECT-class statements (by leading keyword) return rows and columns;
    everything else returns the driver's affected-row count. Server
    notices raised during execution become warnings.
    """
    log = log or get_logger("postgres")
    sql_normalized = " ".join(query.split())
    span_description = sql_normalized[:100]
    warnings: list[str] = []

    def on_notice(diag: psycopg.errors.Diagnostic) -> None:
        warnings.append(f"{diag.severity}: {diag.message_primary}")

    conn.add_notice_handler(on_notice)
    log.debug("executing query", sql=sql_normalized)
    with sentry_sdk.start_span(op="db.query", description=span_description) as span:
        start_time = time.monotonic()
        try:
            with conn.cursor() as cur:
                cur.execute(query)
                if returns_rows(query):
                    raw_rows = cur.fetchall() if cur.description else []
                    if cur.description:
                        columns = _columns_from_description(conn, cur.description)
                    else:
                        columns = describe_statement(conn, query)
                    rows = [to_row(r, columns) for r in raw_rows]
                    rows_affected = None
                else:
                    columns, rows = [], []
                    rows_affected = max(cur.rowcount, 0)
        except psycopg.errors.QueryCanceled as e:
            span.set_status("deadline_exceeded")
            log.error("query timeout", sql=sql_normalized)
            raise wrap_error(e) from e
        except psycopg.Error as e:
            span.set_status("internal_error")
            log.error("query failed", sql=sql_normalized, error=str(e))
            raise wrap_error(e) from e
        finally:
            conn.remove_notice_handler(on_notice)

        duration_ms = (time.monotonic() - start_time) * 1000
        span.set_data("row_count", len(rows))
        span.set_data("duration_ms", duration_ms)
        log.debug(
            "query complete",
            duration_ms=f"{duration_ms:.1f}",
            row_count=len(rows),
            rows_affected=rows_affected,
        )

    return create_query_result(
        query,
        columns,
        rows,
        rows_affected,
        int(duration_ms),
        warnings=warnings,
    )


class PostgresTransaction(Transaction):
    """A transaction pinned to one pooled connection.

    Calls are serialized; commit/rollback return the connection to the
    pool and finalize the handle.
    """

    def __init__(self, pool: ConnectionPool, conn: psycopg.Connection[Any]) -> None:
        self._pool = pool
        self._conn: psycopg.Connection[Any] | None = conn
        self._lock = threading.Lock()

    @property
    def finalized(self) -> bool:
        return self._conn is None

    def _require(self) -> psycopg.Connection[Any]:
        if self._conn is None:
            raise TransactionError(_FINALIZED)
        return self._conn

    def execute_query(self, sql: str) -> QueryResult:
        with self._lock:
            return run_statement(self._require(), sql)

    def commit(self) -> None:
        self._finish("COMMIT")

    def rollback(self) -> None:
        self._finish("ROLLBACK")

    def _finish(self, command: str) -> None:
        with self._lock:
            conn = self._require()
            self._conn = None
            try:
                conn.execute(command)
            except psycopg.Error as e:
                raise TransactionError(f"{command} failed: {e}") from e
            finally:
                self._pool.putconn(conn)


class PostgresClient(DatabaseClient):
    """PostgreSQL client backed by a psycopg_pool ConnectionPool."""

    backend = BackendKind.POSTGRES

    def __init__(
        self, config: ConnectionConfig, settings: ClientSettings | None = None
    ) -> None:
        super().__init__(config, settings)
        self._pool: ConnectionPool | None = None
        self._lock = threading.Lock()

    # -- connection lifecycle --

    def _connect_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "autocommit": True,
            "connect_timeout": self.settings.connect_timeout,
            "application_name": self.settings.application_name,
        }
        tls = self.config.tls
        if tls is None:
            return kwargs
        if tls.effective_mode:
            kwargs["sslmode"] = tls.effective_mode
        for param, path in (
            ("sslrootcert", tls.root_cert),
            ("sslcert", tls.client_cert),
            ("sslkey", tls.client_key),
        ):
            if path is None:
                continue
            if not Path(path).expanduser().is_file():
                msg = f"TLS file not found for {param}: {path}"
                raise ConfigError(msg)
            kwargs[param] = str(Path(path).expanduser())
        return kwargs

    def _open_connection(
        self, conninfo: str, kwargs: dict[str, Any]
    ) -> psycopg.Connection[Any]:
        try:
            return psycopg.connect(conninfo, **kwargs)
        except psycopg.Error as e:
            msg = (
                f"Connection failed to {self.config.host}:{self.config.effective_port} "
                f"database '{self.config.database}': {e}"
            )
            raise ConnectionError(msg) from e

    def _configure(self, conn: psycopg.Connection[Any]) -> None:
        if self.settings.statement_timeout > 0:
            timeout_ms = int(self.settings.statement_timeout * 1000)
            conn.execute(f"SET statement_timeout = {timeout_ms}")

    def connect(self) -> None:
        log = get_logger("postgres", connection_id=self.config.id)
        with self._lock:
            if self._pool is not None and not self._pool.closed:
                return

            conninfo = resolve_connection_string(self.config)
            kwargs = self._connect_kwargs()
            # Probe first so failures carry the server's diagnostic text.
            self._open_connection(conninfo, kwargs).close()

            pool = ConnectionPool(
                conninfo,
                min_size=self.settings.pool_min_size,
                max_size=self.settings.pool_max_size,
                kwargs=kwargs,
                configure=self._configure,
                timeout=self.settings.acquire_timeout,
                name=f"dbcore-{self.config.id}",
                open=False,
            )
            try:
                pool.open(wait=True, timeout=self.settings.acquire_timeout)
            except psycopg.Error as e:
                pool.close()
                raise wrap_error(e) from e

            self._pool = pool
        log.info("connected", name=self.config.name, max_size=self.settings.pool_max_size)

    def disconnect(self) -> None:
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.close()
            get_logger("postgres", connection_id=self.config.id).info("disconnected")

    def is_connected(self) -> bool:
        pool = self._pool
        return pool is not None and not pool.closed

    def _require_pool(self) -> ConnectionPool:
        pool = self._pool
        if pool is None or pool.closed:
            raise ConnectionError(_NOT_CONNECTED)
        return pool

    def test_connection(self) -> None:
        pool = self._pool
        try:
            if pool is not None and not pool.closed:
                with pool.connection(timeout=self.settings.acquire_timeout) as conn:
                    conn.execute("SELECT 1")
                return
            conninfo = resolve_connection_string(self.config)
            with self._open_connection(conninfo, self._connect_kwargs()) as conn:
                conn.execute("SELECT 1")
        except psycopg.Error as e:
            raise wrap_error(e) from e

    # -- execution --

    def execute_query(self, sql: str) -> QueryResult:
        pool = self._require_pool()
        log = get_logger("postgres", connection_id=self.config.id)
        try:
            with pool.connection(timeout=self.settings.acquire_timeout) as conn:
                return run_statement(conn, sql, log)
        except psycopg.Error as e:
            raise wrap_error(e) from e

    def begin_transaction(self) -> Transaction:
        pool = self._require_pool()
        try:
            conn = pool.getconn(timeout=self.settings.acquire_timeout)
        except psycopg.Error as e:
            raise wrap_error(e) from e
        try:
            conn.execute("BEGIN")
        except psycopg.Error as e:
            pool.putconn(conn)
            raise TransactionError(f"BEGIN failed: {e}") from e
        return PostgresTransaction(pool, conn)

    def get_paginated_rows(
        self, schema_name: str, table_name: str, page_index: int, page_size: int
    ) -> PaginatedRowsResult:
        if page_size <= 0 or page_index < 0:
            msg = f"Invalid page: index={page_index} size={page_size}"
            raise ConfigError(msg)
        pool = self._require_pool()
        table = sql.Identifier(schema_name, table_name)
        count_query = sql.SQL("SELECT count(*) FROM {}").format(table)
        page_query = sql.SQL("SELECT * FROM {} LIMIT {} OFFSET {}").format(
            table, sql.Literal(page_size), sql.Literal(page_index * page_size)
        )
        try:
            with pool.connection(timeout=self.settings.acquire_timeout) as conn:
                with conn.cursor() as cur:
                    cur.execute(count_query)
                    row = cur.fetchone()
                    total_rows = int(row[0]) if row else 0
                result = run_statement(conn, page_query.as_string(conn))
        except psycopg.Error as e:
            raise wrap_error(e) from e

        return PaginatedRowsResult(
            rows=result.rows,
            columns=result.columns,
            total_rows=total_rows,
            page_index=page_index,
            page_size=page_size,
            total_pages=math.ceil(total_rows / page_size),
        )

    # -- introspection --

    def _fetch(
        self, query: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        pool = self._require_pool()
        try:
            with (
                pool.connection(timeout=self.settings.acquire_timeout) as conn,
                conn.cursor(row_factory=dict_row) as cur,
            ):
                cur.execute(query, params)
                return cur.fetchall()
        except psycopg.Error as e:
            raise wrap_error(e) from e

    def get_entities(self, *, include_system: bool = False) -> list[Entity]:
        params = {"include_system": include_system}
        catalog = CatalogRows(
            schemas=self._fetch(_ENTITY_SCHEMAS_SQL, params),
            relations=self._fetch(_ENTITY_RELATIONS_SQL, params),
            routines=self._fetch(_ENTITY_ROUTINES_SQL, params),
            sequences=self._fetch(_ENTITY_SEQUENCES_SQL, params),
            types=self._fetch(_ENTITY_TYPES_SQL, params),
            indexes=self._fetch(_ENTITY_INDEXES_SQL, params),
            triggers=self._fetch(_ENTITY_TRIGGERS_SQL, params),
        )
        return build_entities(catalog)

    def _detail_params(
        self, schema_name: str | None = None, table_name: str | None = None
    ) -> dict[str, Any]:
        return {"include_system": False, "schema": schema_name, "table": table_name}

    def _tables(
        self, schema_name: str | None = None, table_name: str | None = None
    ) -> list[TableInfo]:
        params = self._detail_params(schema_name, table_name)
        column_rows = self._fetch(_COLUMNS_SQL, {**params, "relkinds": ["r", "p"]})
        tables = group_table_columns(column_rows, _column_info)

        meta = {
            (r["schema_name"], r["table_name"]): r
            for r in self._fetch(_TABLE_META_SQL, params)
        }
        constraints = _group_by_table(
            _constraint_info(r) for r in self._fetch(_CONSTRAINTS_SQL, params)
        )
        indices = _group_by_table(
            _index_info(r) for r in self._fetch(_INDICES_SQL, params)
        )

        for table in tables:
            key = (table.schema_name, table.name)
            table.constraints = constraints.get(key, [])
            table.indices = indices.get(key, [])
            if key in meta:
                estimate = meta[key]["row_count_estimate"]
                table.row_count_estimate = (
                    estimate if estimate is None or estimate >= 0 else None
                )
                table.size_bytes = meta[key]["size_bytes"]
                table.comment = meta[key]["comment"]
            _attach_foreign_keys(table)
        return tables

    def get_tables(self) -> list[TableInfo]:
        return self._tables()

    def get_table_info(self, schema_name: str, table_name: str) -> TableInfo:
        tables = self._tables(schema_name, table_name)
        if not tables:
            raise NotFoundError(f"Table not found: {schema_name}.{table_name}")
        return tables[0]

    def get_views(self) -> list[ViewInfo]:
        params = self._detail_params()
        column_rows = self._fetch(_COLUMNS_SQL, {**params, "relkinds": ["v", "m"]})
        columns = {
            (t.schema_name, t.name): t.columns
            for t in group_table_columns(column_rows, _column_info)
        }
        return [
            ViewInfo(
                name=r["name"],
                schema_name=r["schema_name"],
                columns=columns.get((r["schema_name"], r["name"]), []),
                definition=r["definition"],
                materialized=r["relkind"] == "m",
                comment=r["comment"],
            )
            for r in self._fetch(_VIEWS_SQL, params)
        ]

    def get_functions(self) -> list[FunctionInfo]:
        return [
            FunctionInfo(
                name=r["name"],
                schema_name=r["schema_name"],
                arguments=split_arguments(r["arguments"] or ""),
                return_type=r["return_type"],
                definition=r["definition"],
                language=r["language"],
                is_procedure=r["prokind"] == "p",
                comment=r["comment"],
            )
            for r in self._fetch(_FUNCTIONS_SQL, self._detail_params())
        ]

    def get_schema_info(self) -> SchemaInfo:
        database = self._fetch("SELECT current_database() AS name")[0]["name"]
        schemas = [
            r["name"]
            for r in self._fetch(_ENTITY_SCHEMAS_SQL, {"include_system": False})
        ]
        return SchemaInfo(
            database=database,
            schemas=schemas,
            tables=self.get_tables(),
            views=self.get_views(),
            functions=self.get_functions(),
        )


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------


def _column_info(row: Mapping[str, Any]) -> ColumnInfo:
    if row.get("typtype") == "e":
        category = ColumnTypeCategory.ENUM
    else:
        category = type_category(row["type_name"])
    return ColumnInfo(
        name=row["column_name"],
        data_type=row["data_type"],
        type_category=category,
        nullable=row["nullable"],
        primary_key=row.get("is_primary", False),
        auto_increment=row.get("auto_increment", False),
        indexed=row.get("is_indexed", False),
        unique=row.get("is_unique", False),
        default_value=row.get("default_value"),
        comment=row.get("comment"),
        position=row["position"],
    )


def _constraint_info(row: Mapping[str, Any]) -> ConstraintInfo | None:
    constraint_type = _CONSTRAINT_TYPES.get(row["contype"])
    if constraint_type is None:
        return None
    reference = None
    if constraint_type is ConstraintType.FOREIGN_KEY and row["ref_table"]:
        ref_columns = row["ref_columns"] or []
        reference = ForeignKeyReference(
            referenced_schema=row["ref_schema"],
            referenced_table=row["ref_table"],
            referenced_column=ref_columns[0] if ref_columns else "",
            on_update=_FK_ACTIONS.get(row["on_update"]),
            on_delete=_FK_ACTIONS.get(row["on_delete"]),
        )
    return ConstraintInfo(
        name=row["name"],
        constraint_type=constraint_type,
        schema_name=row["schema_name"],
        table_name=row["table_name"],
        column_names=row["columns"] or [],
        foreign_key_reference=reference,
        check_definition=(
            row["definition"] if constraint_type is ConstraintType.CHECK else None
        ),
    )


def _index_info(row: Mapping[str, Any]) -> IndexInfo:
    return IndexInfo(
        name=row["name"],
        schema_name=row["schema_name"],
        table_name=row["table_name"],
        is_unique=row["is_unique"],
        is_primary=row["is_primary"],
        column_names=row["column_names"] or [],
        method=row["method"],
    )


def _group_by_table(items: Any) -> dict[tuple[str, str], list[Any]]:
    grouped: dict[tuple[str, str], list[Any]] = {}
    for item in items:
        if item is None:
            continue
        grouped.setdefault((item.schema_name, item.table_name), []).append(item)
    return grouped


def _attach_foreign_keys(table: TableInfo) -> None:
    by_name = {c.name: c for c in table.columns}
    for constraint in table.constraints:
        ref = constraint.foreign_key_reference
        if ref is None or len(constraint.column_names) != 1:
            continue
        column = by_name.get(constraint.column_names[0])
        if column is not None:
            column.foreign_key = ref


def split_arguments(arguments: str) -> list[str]:
    """Split pg_get_function_arguments() output on top-level commas."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in arguments:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]


# ---------------------------------------------------------------------------
# Catalog queries
# ---------------------------------------------------------------------------

_IS_SYSTEM = "(n.nspname IN ('pg_catalog', 'information_schema'))"

_SCHEMA_FILTER = """
    n.nspname !~ '^pg_(toast|temp_|toast_temp_)'
    AND (%(include_system)s OR n.nspname NOT IN ('pg_catalog', 'information_schema'))
"""


def _extension_join(catalog: str, alias: str) -> str:
    return f"""
    LEFT JOIN pg_catalog.pg_depend dep
        ON dep.classid = '{catalog}'::regclass
        AND dep.objid = {alias}.oid
        AND dep.deptype = 'e'
    LEFT JOIN pg_catalog.pg_extension ext ON ext.oid = dep.refobjid
    """


_ENTITY_SCHEMAS_SQL = f"""
SELECT
    n.oid::text AS id,
    n.nspname AS name,
    {_IS_SYSTEM} AS is_system,
    ext.extname AS extension,
    obj_description(n.oid, 'pg_namespace') AS comment
FROM pg_catalog.pg_namespace n
{_extension_join("pg_catalog.pg_namespace", "n")}
WHERE {_SCHEMA_FILTER}
ORDER BY n.nspname
"""

_ENTITY_RELATIONS_SQL = f"""
SELECT
    c.oid::text AS id,
    c.relname AS name,
    c.relnamespace::text AS schema_id,
    c.relkind::text AS relkind,
    {_IS_SYSTEM} AS is_system,
    ext.extname AS extension,
    obj_description(c.oid, 'pg_class') AS comment,
    c.reltuples::bigint AS row_count_estimate,
    pg_catalog.pg_total_relation_size(c.oid) AS size_bytes,
    c.relnatts AS column_count
FROM pg_catalog.pg_class c
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
{_extension_join("pg_catalog.pg_class", "c")}
WHERE c.relkind IN ('r', 'p', 'v', 'm', 'f')
AND NOT c.relispartition
AND {_SCHEMA_FILTER}
ORDER BY n.nspname, c.relname
"""

_ENTITY_ROUTINES_SQL = f"""
SELECT
    p.oid::text AS id,
    p.proname AS name,
    p.pronamespace::text AS schema_id,
    p.prokind::text AS prokind,
    {_IS_SYSTEM} AS is_system,
    ext.extname AS extension,
    obj_description(p.oid, 'pg_proc') AS comment
FROM pg_catalog.pg_proc p
JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
{_extension_join("pg_catalog.pg_proc", "p")}
WHERE p.prokind IN ('f', 'p')
AND {_SCHEMA_FILTER}
ORDER BY n.nspname, p.proname
"""

_ENTITY_SEQUENCES_SQL = f"""
SELECT
    c.oid::text AS id,
    c.relname AS name,
    c.relnamespace::text AS schema_id,
    {_IS_SYSTEM} AS is_system,
    ext.extname AS extension,
    obj_description(c.oid, 'pg_class') AS comment
FROM pg_catalog.pg_class c
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
{_extension_join("pg_catalog.pg_class", "c")}
WHERE c.relkind = 'S'
AND {_SCHEMA_FILTER}
ORDER BY n.nspname, c.relname
"""

_ENTITY_TYPES_SQL = f"""
SELECT
    t.oid::text AS id,
    t.typname AS name,
    t.typnamespace::text AS schema_id,
    {_IS_SYSTEM} AS is_system,
    ext.extname AS extension,
    obj_description(t.oid, 'pg_type') AS comment
FROM pg_catalog.pg_type t
JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
LEFT JOIN pg_catalog.pg_class rel ON rel.oid = t.typrelid
{_extension_join("pg_catalog.pg_type", "t")}
WHERE (t.typtype IN ('e', 'd', 'r', 'm') OR (t.typtype = 'c' AND rel.relkind = 'c'))
AND {_SCHEMA_FILTER}
ORDER BY n.nspname, t.typname
"""

_ENTITY_INDEXES_SQL = f"""
SELECT
    i.oid::text AS id,
    i.relname AS name,
    i.relnamespace::text AS schema_id,
    t.relname AS table_name,
    {_IS_SYSTEM} AS is_system,
    ext.extname AS extension,
    obj_description(i.oid, 'pg_class') AS comment
FROM pg_catalog.pg_index ix
JOIN pg_catalog.pg_class i ON i.oid = ix.indexrelid
JOIN pg_catalog.pg_class t ON t.oid = ix.indrelid
JOIN pg_catalog.pg_namespace n ON n.oid = i.relnamespace
{_extension_join("pg_catalog.pg_class", "i")}
WHERE {_SCHEMA_FILTER}
ORDER BY n.nspname, t.relname, i.relname
"""

_ENTITY_TRIGGERS_SQL = f"""
SELECT
    tg.oid::text AS id,
    tg.tgname AS name,
    c.relnamespace::text AS schema_id,
    c.relname AS table_name,
    {_IS_SYSTEM} AS is_system,
    ext.extname AS extension,
    obj_description(tg.oid, 'pg_trigger') AS comment
FROM pg_catalog.pg_trigger tg
JOIN pg_catalog.pg_class c ON c.oid = tg.tgrelid
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
{_extension_join("pg_catalog.pg_trigger", "tg")}
WHERE NOT tg.tgisinternal
AND {_SCHEMA_FILTER}
ORDER BY n.nspname, c.relname, tg.tgname
"""

_OBJECT_FILTER = """
    (%(schema)s::text IS NULL OR n.nspname = %(schema)s::text)
    AND (%(table)s::text IS NULL OR c.relname = %(table)s::text)
"""

# Ordered by (schema, table, position) in byte order so the grouping pass
# sees each table's columns contiguously.
_COLUMNS_SQL = f"""
SELECT
    n.nspname AS schema_name,
    c.relname AS table_name,
    a.attname AS column_name,
    t.typname AS type_name,
    t.typtype::text AS typtype,
    format_type(a.atttypid, a.atttypmod) AS data_type,
    NOT a.attnotnull AS nullable,
    a.attnum AS position,
    pg_get_expr(d.adbin, d.adrelid) AS default_value,
    col_description(c.oid, a.attnum) AS comment,
    EXISTS (
        SELECT 1 FROM pg_catalog.pg_index i
        WHERE i.indrelid = c.oid AND i.indisprimary AND a.attnum = ANY(i.indkey)
    ) AS is_primary,
    EXISTS (
        SELECT 1 FROM pg_catalog.pg_index i
        WHERE i.indrelid = c.oid AND a.attnum = ANY(i.indkey)
    ) AS is_indexed,
    EXISTS (
        SELECT 1 FROM pg_catalog.pg_index i
        WHERE i.indrelid = c.oid AND i.indisunique AND a.attnum = ANY(i.indkey)
    ) AS is_unique,
    (a.attidentity <> '' OR pg_get_serial_sequence(
        quote_ident(n.nspname) || '.' || quote_ident(c.relname), a.attname::text
    ) IS NOT NULL) AS auto_increment
FROM pg_catalog.pg_class c
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
JOIN pg_catalog.pg_attribute a ON a.attrelid = c.oid
JOIN pg_catalog.pg_type t ON t.oid = a.atttypid
LEFT JOIN pg_catalog.pg_attrdef d ON d.adrelid = c.oid AND d.adnum = a.attnum
WHERE c.relkind::text = ANY(%(relkinds)s)
AND a.attnum > 0
AND NOT a.attisdropped
AND {_SCHEMA_FILTER}
AND {_OBJECT_FILTER}
ORDER BY n.nspname COLLATE "C", c.relname COLLATE "C", a.attnum
"""

_TABLE_META_SQL = f"""
SELECT
    n.nspname AS schema_name,
    c.relname AS table_name,
    c.reltuples::bigint AS row_count_estimate,
    pg_catalog.pg_total_relation_size(c.oid) AS size_bytes,
    obj_description(c.oid, 'pg_class') AS comment
FROM pg_catalog.pg_class c
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
WHERE c.relkind IN ('r', 'p')
AND {_SCHEMA_FILTER}
AND {_OBJECT_FILTER}
"""

_CONSTRAINTS_SQL = f"""
SELECT
    n.nspname AS schema_name,
    c.relname AS table_name,
    con.conname AS name,
    con.contype::text AS contype,
    pg_get_constraintdef(con.oid) AS definition,
    ARRAY(
        SELECT a.attname::text
        FROM unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
        JOIN pg_catalog.pg_attribute a
            ON a.attrelid = con.conrelid AND a.attnum = k.attnum
        ORDER BY k.ord
    ) AS columns,
    fn.nspname AS ref_schema,
    fc.relname AS ref_table,
    ARRAY(
        SELECT a.attname::text
        FROM unnest(con.confkey) WITH ORDINALITY AS k(attnum, ord)
        JOIN pg_catalog.pg_attribute a
            ON a.attrelid = con.confrelid AND a.attnum = k.attnum
        ORDER BY k.ord
    ) AS ref_columns,
    con.confupdtype::text AS on_update,
    con.confdeltype::text AS on_delete
FROM pg_catalog.pg_constraint con
JOIN pg_catalog.pg_class c ON c.oid = con.conrelid
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
LEFT JOIN pg_catalog.pg_class fc ON fc.oid = con.confrelid
LEFT JOIN pg_catalog.pg_namespace fn ON fn.oid = fc.relnamespace
WHERE con.contype IN ('p', 'f', 'u', 'c', 'x')
AND {_SCHEMA_FILTER}
AND {_OBJECT_FILTER}
ORDER BY n.nspname, c.relname, con.conname
"""

_INDICES_SQL = f"""
SELECT
    n.nspname AS schema_name,
    c.relname AS table_name,
    i.relname AS name,
    am.amname AS method,
    ix.indisunique AS is_unique,
    ix.indisprimary AS is_primary,
    ARRAY(
        SELECT a.attname::text
        FROM unnest(ix.indkey) WITH ORDINALITY AS k(attnum, ord)
        JOIN pg_catalog.pg_attribute a
            ON a.attrelid = ix.indrelid AND a.attnum = k.attnum
        ORDER BY k.ord
    ) AS column_names
FROM pg_catalog.pg_index ix
JOIN pg_catalog.pg_class i ON i.oid = ix.indexrelid
JOIN pg_catalog.pg_class c ON c.oid = ix.indrelid
JOIN pg_catalog.pg_am am ON am.oid = i.relam
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
WHERE {_SCHEMA_FILTER}
AND {_OBJECT_FILTER}
ORDER BY n.nspname, c.relname, i.relname
"""

_VIEWS_SQL = f"""
SELECT
    n.nspname AS schema_name,
    c.relname AS name,
    c.relkind::text AS relkind,
    pg_get_viewdef(c.oid) AS definition,
    obj_description(c.oid, 'pg_class') AS comment
FROM pg_catalog.pg_class c
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
WHERE c.relkind IN ('v', 'm')
AND {_SCHEMA_FILTER}
AND {_OBJECT_FILTER}
ORDER BY n.nspname, c.relname
"""

_FUNCTIONS_SQL = f"""
SELECT
    n.nspname AS schema_name,
    p.proname AS name,
    pg_get_function_arguments(p.oid) AS arguments,
    pg_get_function_result(p.oid) AS return_type,
    pg_get_functiondef(p.oid) AS definition,
    l.lanname AS language,
    p.prokind::text AS prokind,
    obj_description(p.oid, 'pg_proc') AS comment
FROM pg_catalog.pg_proc p
JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
JOIN pg_catalog.pg_language l ON l.oid = p.prolang
WHERE p.prokind IN ('f', 'p')
AND {_SCHEMA_FILTER}
AND (%(schema)s::text IS NULL OR n.nspname = %(schema)s::text)
ORDER BY n.nspname, p.proname
"""
