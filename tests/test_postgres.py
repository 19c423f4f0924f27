"""Tests for the PostgreSQL client (core.postgres).

Unit tests stand a MagicMock in for psycopg connections and the pool;
integration tests run against DBCORE_TEST_DSN.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import psycopg
import psycopg.errors
import pytest
from psycopg.pq import ExecStatus
from psycopg_pool import PoolClosed, PoolTimeout

from dbcore.core.config import ClientSettings, ConnectionConfig, TlsConfig
from dbcore.core.entities import EntityKind, orphans
from dbcore.core.exceptions import (
    ConfigError,
    ConnectionError,
    NotFoundError,
    QueryError,
    TimeoutError,
    TransactionError,
)
from dbcore.core.postgres import (
    PostgresClient,
    PostgresTransaction,
    describe_statement,
    run_statement,
    split_arguments,
    wrap_error,
)
from tests.integration_config import TEST_DSN, TEST_SCHEMA


def _column(name, type_code):
    return SimpleNamespace(name=name, type_code=type_code)


def _mock_conn(description=None, rows=(), rowcount=-1):
    conn = MagicMock()
    conn.adapters.types.get.return_value = None
    conn.info.encoding = "utf-8"
    cur = MagicMock()
    cur.description = description
    cur.fetchall.return_value = list(rows)
    cur.rowcount = rowcount
    conn.cursor.return_value.__enter__.return_value = cur
    return conn, cur


def _mock_pool(conn):
    pool = MagicMock()
    pool.closed = False
    pool.connection.return_value.__enter__.return_value = conn
    pool.getconn.return_value = conn
    return pool


@pytest.fixture
def config():
    return ConnectionConfig(host="dbhost", port=5432, database="app", username="me")


@pytest.fixture
def connected_client(config):
    conn, cur = _mock_conn()
    client = PostgresClient(config)
    client._pool = _mock_pool(conn)
    return client, conn, cur


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (PoolTimeout("couldn't get a connection after 10.00 sec"), TimeoutError),
        (PoolClosed("the pool is closed"), ConnectionError),
        (psycopg.errors.QueryCanceled("canceling statement due to statement timeout"), TimeoutError),
        (psycopg.OperationalError("server closed the connection"), ConnectionError),
        (psycopg.errors.UndefinedTable('relation "nope" does not exist'), QueryError),
        (psycopg.errors.UniqueViolation("duplicate key"), QueryError),
    ],
)
def test_wrap_error(error, expected):
    wrapped = wrap_error(error)
    assert type(wrapped) is expected
    assert str(error) in wrapped.message


# ---------------------------------------------------------------------------
# Statement execution
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestRunStatement:
    def test_select_rows(self):
        conn, _ = _mock_conn(
            description=[_column("id", 23), _column("name", 25)],
            rows=[(1, "a"), (2, "b")],
        )
        result = run_statement(conn, "SELECT id, name FROM t")
        assert [c.name for c in result.columns] == ["id", "name"]
        assert [c.data_type for c in result.columns] == ["int4", "text"]
        assert [r.values for r in result.rows] == [
            {"id": 1, "name": "a"},
            {"id": 2, "name": "b"},
        ]
        assert result.rows_affected is None

    def test_select_zero_rows_keeps_columns(self):
        conn, _ = _mock_conn(description=[_column("id", 23)], rows=[])
        result = run_statement(conn, "SELECT id FROM t WHERE false")
        assert [c.name for c in result.columns] == ["id"]
        assert result.rows == []
        assert result.rows_affected is None

    def test_select_without_description_asks_server(self):
        conn, _ = _mock_conn(description=None)
        conn.pgconn.prepare.return_value = SimpleNamespace(
            status=ExecStatus.COMMAND_OK, error_message=b""
        )
        described = MagicMock(nfields=1)
        described.fname.return_value = b"total"
        described.ftype.return_value = 20
        conn.pgconn.describe_prepared.return_value = described

        result = run_statement(conn, "SELECT count(*) AS total FROM t")
        assert [(c.name, c.data_type) for c in result.columns] == [("total", "int8")]
        assert result.rows == []
        conn.pgconn.prepare.assert_called_once_with(b"", b"SELECT count(*) AS total FROM t")

    def test_update_reports_rows_affected(self):
        conn, _ = _mock_conn(rowcount=3)
        result = run_statement(conn, "UPDATE t SET x = 1")
        assert result.rows_affected == 3
        assert result.rows == []
        assert result.columns == []

    def test_ddl_reports_zero(self):
        conn, _ = _mock_conn(rowcount=-1)
        assert run_statement(conn, "CREATE TABLE t (id int)").rows_affected == 0

    def test_unknown_type_oid(self):
        conn, _ = _mock_conn(description=[_column("v", 999999)], rows=[("x",)])
        result = run_statement(conn, "SELECT v FROM t")
        assert result.columns[0].data_type == "unknown"
        assert result.rows[0]["v"] == "x"

    def test_notices_become_warnings(self):
        conn, cur = _mock_conn(rowcount=0)
        handlers = []
        conn.add_notice_handler.side_effect = handlers.append

        def execute(query):
            handlers[0](SimpleNamespace(severity="NOTICE", message_primary="table does not exist, skipping"))

        cur.execute.side_effect = execute
        result = run_statement(conn, "DROP TABLE IF EXISTS t")
        assert result.warnings == ["NOTICE: table does not exist, skipping"]
        conn.remove_notice_handler.assert_called_once_with(handlers[0])

    def test_driver_error_wrapped(self):
        conn, cur = _mock_conn()
        cur.execute.side_effect = psycopg.errors.SyntaxError('syntax error at or near "SELEC"')
        with pytest.raises(QueryError, match="syntax error"):
            run_statement(conn, "SELEC 1")
        conn.remove_notice_handler.assert_called_once()

    def test_statement_timeout_wrapped(self):
        conn, cur = _mock_conn()
        cur.execute.side_effect = psycopg.errors.QueryCanceled("canceling statement")
        with pytest.raises(TimeoutError):
            run_statement(conn, "SELECT pg_sleep(10)")


@pytest.mark.unit
def test_describe_statement_error():
    conn, _ = _mock_conn()
    conn.pgconn.prepare.return_value = SimpleNamespace(
        status=ExecStatus.FATAL_ERROR, error_message=b"ERROR: no such table\n"
    )
    with pytest.raises(QueryError, match="no such table"):
        describe_statement(conn, "SELECT * FROM nope")


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestPostgresTransaction:
    def test_commit_returns_connection(self):
        conn, _ = _mock_conn(rowcount=1)
        pool = _mock_pool(conn)
        txn = PostgresTransaction(pool, conn)
        txn.execute_query("UPDATE t SET x = 1")
        txn.commit()
        conn.execute.assert_called_once_with("COMMIT")
        pool.putconn.assert_called_once_with(conn)
        assert txn.finalized

    def test_rollback(self):
        conn, _ = _mock_conn()
        pool = _mock_pool(conn)
        txn = PostgresTransaction(pool, conn)
        txn.rollback()
        conn.execute.assert_called_once_with("ROLLBACK")
        pool.putconn.assert_called_once_with(conn)

    def test_use_after_finish_raises(self):
        conn, _ = _mock_conn()
        txn = PostgresTransaction(_mock_pool(conn), conn)
        txn.commit()
        with pytest.raises(TransactionError, match="already committed or rolled back"):
            txn.execute_query("SELECT 1")
        with pytest.raises(TransactionError):
            txn.commit()
        with pytest.raises(TransactionError):
            txn.rollback()

    def test_failed_commit_still_returns_connection(self):
        conn, _ = _mock_conn()
        conn.execute.side_effect = psycopg.OperationalError("connection lost")
        pool = _mock_pool(conn)
        txn = PostgresTransaction(pool, conn)
        with pytest.raises(TransactionError, match="COMMIT failed"):
            txn.commit()
        pool.putconn.assert_called_once_with(conn)
        assert txn.finalized


# ---------------------------------------------------------------------------
# Client lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestPostgresClientLifecycle:
    def test_not_connected(self, config):
        client = PostgresClient(config)
        assert client.is_connected() is False
        with pytest.raises(ConnectionError, match="not connected"):
            client.execute_query("SELECT 1")

    def test_connect_is_idempotent(self, config):
        with (
            patch("dbcore.core.postgres.psycopg.connect") as connect,
            patch("dbcore.core.postgres.ConnectionPool") as pool_cls,
        ):
            pool_cls.return_value.closed = False
            client = PostgresClient(config)
            client.connect()
            client.connect()
        assert pool_cls.call_count == 1
        assert connect.call_count == 1
        pool_cls.return_value.open.assert_called_once()
        assert client.is_connected()

    def test_connect_passes_settings(self, config):
        settings = ClientSettings(pool_min_size=0, pool_max_size=3, acquire_timeout=2.0)
        with (
            patch("dbcore.core.postgres.psycopg.connect"),
            patch("dbcore.core.postgres.ConnectionPool") as pool_cls,
        ):
            PostgresClient(config, settings).connect()
        args, kwargs = pool_cls.call_args
        assert args[0] == "postgres://me@dbhost:5432/app"
        assert kwargs["min_size"] == 0
        assert kwargs["max_size"] == 3
        assert kwargs["timeout"] == 2.0
        assert kwargs["kwargs"]["autocommit"] is True
        assert kwargs["kwargs"]["application_name"] == "dbcore"

    def test_connect_failure_carries_diagnostic(self, config):
        with patch(
            "dbcore.core.postgres.psycopg.connect",
            side_effect=psycopg.OperationalError('password authentication failed for user "me"'),
        ):
            client = PostgresClient(config)
            with pytest.raises(ConnectionError, match="password authentication failed"):
                client.connect()
        assert client.is_connected() is False

    def test_pool_open_timeout(self, config):
        with (
            patch("dbcore.core.postgres.psycopg.connect"),
            patch("dbcore.core.postgres.ConnectionPool") as pool_cls,
        ):
            pool_cls.return_value.open.side_effect = PoolTimeout("pool initialization incomplete")
            client = PostgresClient(config)
            with pytest.raises(TimeoutError):
                client.connect()
            pool_cls.return_value.close.assert_called_once()
        assert client.is_connected() is False

    def test_missing_tls_file(self, config, tmp_path):
        cfg = config.model_copy(
            update={"tls": TlsConfig(enabled=True, root_cert=str(tmp_path / "missing.pem"))}
        )
        with pytest.raises(ConfigError, match="TLS file not found for sslrootcert"):
            PostgresClient(cfg).connect()

    def test_tls_options_passed(self, config, tmp_path):
        ca = tmp_path / "ca.pem"
        ca.write_text("cert")
        cfg = config.model_copy(
            update={"tls": TlsConfig(enabled=True, mode="verify-ca", root_cert=str(ca))}
        )
        with (
            patch("dbcore.core.postgres.psycopg.connect") as connect,
            patch("dbcore.core.postgres.ConnectionPool"),
        ):
            PostgresClient(cfg).connect()
        kwargs = connect.call_args.kwargs
        assert kwargs["sslmode"] == "verify-ca"
        assert kwargs["sslrootcert"] == str(ca)

    def test_disconnect_closes_pool(self, connected_client):
        client, _, _ = connected_client
        pool = client._pool
        client.disconnect()
        pool.close.assert_called_once()
        assert client.is_connected() is False
        client.disconnect()

    def test_statement_timeout_configured(self, config):
        conn = MagicMock()
        PostgresClient(config, ClientSettings(statement_timeout=1.5))._configure(conn)
        conn.execute.assert_called_once_with("SET statement_timeout = 1500")

    def test_no_statement_timeout_by_default(self, config):
        conn = MagicMock()
        PostgresClient(config)._configure(conn)
        conn.execute.assert_not_called()


@pytest.mark.unit
class TestPostgresClientExecution:
    def test_execute_query(self, connected_client):
        client, _, cur = connected_client
        cur.rowcount = 2
        result = client.execute_query("DELETE FROM t")
        assert result.rows_affected == 2

    def test_acquire_timeout(self, connected_client):
        client, _, _ = connected_client
        client._pool.connection.side_effect = PoolTimeout("couldn't get a connection")
        with pytest.raises(TimeoutError, match="pool timeout"):
            client.execute_query("SELECT 1")

    def test_begin_transaction(self, connected_client):
        client, conn, _ = connected_client
        txn = client.begin_transaction()
        conn.execute.assert_called_once_with("BEGIN")
        assert isinstance(txn, PostgresTransaction)
        assert not txn.finalized

    def test_begin_failure_returns_connection(self, connected_client):
        client, conn, _ = connected_client
        conn.execute.side_effect = psycopg.OperationalError("terminated")
        with pytest.raises(TransactionError, match="BEGIN failed"):
            client.begin_transaction()
        client._pool.putconn.assert_called_once_with(conn)

    def test_invalid_page(self, connected_client):
        client, _, _ = connected_client
        with pytest.raises(ConfigError, match="Invalid page"):
            client.get_paginated_rows("public", "t", 0, 0)


# ---------------------------------------------------------------------------
# Introspection
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestPostgresIntrospection:
    def test_get_entities_builds_forest(self, connected_client, monkeypatch):
        client, _, _ = connected_client
        from dbcore.core import postgres

        rows = {
            postgres._ENTITY_SCHEMAS_SQL: [{"id": "1", "name": "public", "is_system": False}],
            postgres._ENTITY_RELATIONS_SQL: [
                {"id": "2", "name": "users", "schema_id": "1", "relkind": "r"},
                {"id": "3", "name": "stray", "schema_id": "99", "relkind": "r"},
            ],
            postgres._ENTITY_ROUTINES_SQL: [],
            postgres._ENTITY_SEQUENCES_SQL: [],
            postgres._ENTITY_TYPES_SQL: [],
            postgres._ENTITY_INDEXES_SQL: [
                {"id": "4", "name": "users_pkey", "schema_id": "1", "table_name": "users"}
            ],
            postgres._ENTITY_TRIGGERS_SQL: [],
        }
        seen_params = []

        def fetch(query, params=None):
            seen_params.append(params)
            return rows[query]

        monkeypatch.setattr(client, "_fetch", fetch)
        entities = client.get_entities()
        assert [e.kind for e in entities] == [
            EntityKind.SCHEMA,
            EntityKind.TABLE,
            EntityKind.INDEX,
        ]
        assert orphans(entities) == []
        assert all(p == {"include_system": False} for p in seen_params)

    def test_get_table_info_not_found(self, connected_client, monkeypatch):
        client, _, _ = connected_client
        monkeypatch.setattr(client, "_fetch", lambda query, params=None: [])
        with pytest.raises(NotFoundError, match="public.nope"):
            client.get_table_info("public", "nope")

    def test_tables_attach_constraints_and_indices(self, connected_client, monkeypatch):
        client, _, _ = connected_client
        from dbcore.core import postgres

        column = {
            "schema_name": "public", "table_name": "orders", "type_name": "int4",
            "typtype": "b", "data_type": "integer", "nullable": False,
            "default_value": None, "comment": None, "is_primary": False,
            "is_indexed": False, "is_unique": False, "auto_increment": False,
        }
        rows = {
            postgres._COLUMNS_SQL: [
                {**column, "column_name": "id", "position": 1, "is_primary": True},
                {**column, "column_name": "user_id", "position": 2},
            ],
            postgres._TABLE_META_SQL: [
                {"schema_name": "public", "table_name": "orders",
                 "row_count_estimate": -1, "size_bytes": 16384, "comment": "Orders"}
            ],
            postgres._CONSTRAINTS_SQL: [
                {"schema_name": "public", "table_name": "orders", "name": "orders_user_fk",
                 "contype": "f", "definition": "FOREIGN KEY (user_id) REFERENCES users(id)",
                 "columns": ["user_id"], "ref_schema": "public", "ref_table": "users",
                 "ref_columns": ["id"], "on_update": "a", "on_delete": "c"},
            ],
            postgres._INDICES_SQL: [
                {"schema_name": "public", "table_name": "orders", "name": "orders_pkey",
                 "method": "btree", "is_unique": True, "is_primary": True,
                 "column_names": ["id"]},
            ],
        }
        monkeypatch.setattr(client, "_fetch", lambda query, params=None: rows[query])

        table = client.get_table_info("public", "orders")
        assert table.primary_key_columns == ["id"]
        assert table.row_count_estimate is None
        assert table.size_bytes == 16384
        assert table.comment == "Orders"
        assert table.indices[0].name == "orders_pkey"
        fk = table.constraints[0].foreign_key_reference
        assert fk.referenced_table == "users"
        assert fk.on_delete == "CASCADE"
        assert table.columns[1].foreign_key == fk
        assert table.columns[0].type_category == "numeric"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("arguments", "expected"),
    [
        ("", []),
        ("a integer", ["a integer"]),
        ("a integer, b text DEFAULT 'x'", ["a integer", "b text DEFAULT 'x'"]),
        ("p numeric(10,2), q int", ["p numeric(10,2)", "q int"]),
    ],
)
def test_split_arguments(arguments, expected):
    assert split_arguments(arguments) == expected


# ---------------------------------------------------------------------------
# Integration
# ---------------------------------------------------------------------------


@pytest.fixture
def live_client():
    from dbcore.core.config import parse_connection_string

    client = PostgresClient(parse_connection_string(TEST_DSN or ""))
    with client:
        client.execute_query(f"DROP SCHEMA IF EXISTS {TEST_SCHEMA} CASCADE")
        client.execute_query(f"CREATE SCHEMA {TEST_SCHEMA}")
        client.execute_query(
            f"CREATE TABLE {TEST_SCHEMA}.items ("
            "id serial PRIMARY KEY, name text NOT NULL, payload bytea)"
        )
        try:
            yield client
        finally:
            client.execute_query(f"DROP SCHEMA IF EXISTS {TEST_SCHEMA} CASCADE")


@pytest.mark.integration
def test_zero_row_select_has_columns(live_client):
    result = live_client.execute_query(f"SELECT id, name FROM {TEST_SCHEMA}.items")
    assert [c.name for c in result.columns] == ["id", "name"]
    assert result.rows == []
    assert result.rows_affected is None


@pytest.mark.integration
def test_insert_then_select(live_client):
    insert = live_client.execute_query(
        f"INSERT INTO {TEST_SCHEMA}.items (name, payload) VALUES ('a', '\\x0102')"
    )
    assert insert.rows_affected == 1
    result = live_client.execute_query(f"SELECT name, payload FROM {TEST_SCHEMA}.items")
    assert result.rows[0].values == {"name": "a", "payload": "<binary data: 2 bytes>"}


@pytest.mark.integration
def test_transaction_rollback(live_client):
    with pytest.raises(QueryError), live_client.begin_transaction() as txn:
        txn.execute_query(f"INSERT INTO {TEST_SCHEMA}.items (name) VALUES ('x')")
        txn.execute_query("SELECT * FROM no_such_table")
    result = live_client.execute_query(f"SELECT count(*) AS n FROM {TEST_SCHEMA}.items")
    assert result.rows[0]["n"] == 0


@pytest.mark.integration
def test_entities_and_table_info(live_client):
    entities = live_client.get_entities()
    assert orphans(entities) == []
    names = {(e.kind, e.name) for e in entities}
    assert (EntityKind.SCHEMA, TEST_SCHEMA) in names
    assert (EntityKind.TABLE, "items") in names
    assert (EntityKind.SEQUENCE, "items_id_seq") in names

    table = live_client.get_table_info(TEST_SCHEMA, "items")
    assert [c.name for c in table.columns] == ["id", "name", "payload"]
    assert table.primary_key_columns == ["id"]
    assert table.columns[0].auto_increment is True


@pytest.mark.integration
def test_paginated_rows(live_client):
    live_client.execute_queries(
        "; ".join(
            f"INSERT INTO {TEST_SCHEMA}.items (name) VALUES ('n{i}')" for i in range(5)
        )
    )
    page = live_client.get_paginated_rows(TEST_SCHEMA, "items", 1, 2)
    assert page.total_rows == 5
    assert page.total_pages == 3
    assert len(page.rows) == 2
