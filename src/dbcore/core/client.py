"""Database client interface.

One DatabaseClient implementation exists per backend kind. Backends that
are recognized but not implemented get an UnsupportedClient, so callers
see a uniform UnsupportedError instead of a missing case.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from dbcore.core.config import BackendKind, ClientSettings
from dbcore.core.exceptions import UnsupportedError
from dbcore.core.splitter import split_statements

if TYPE_CHECKING:
    from dbcore.core.config import ConnectionConfig
    from dbcore.core.entities import Entity
    from dbcore.core.models import (
        FunctionInfo,
        PaginatedRowsResult,
        QueryResult,
        SchemaInfo,
        TableInfo,
        ViewInfo,
    )

# Leading keywords of statements that return a result set.
ROW_RETURNING_KEYWORDS = frozenset(
    {"SELECT", "WITH", "VALUES", "TABLE", "SHOW", "EXPLAIN"}
)

_LEADING_KEYWORD = re.compile(r"^[\s(]*([A-Za-z]+)")


def returns_rows(sql: str) -> bool:
    """Classify a statement by its leading keyword, case-insensitively."""
    match = _LEADING_KEYWORD.match(sql)
    return bool(match) and match.group(1).upper() in ROW_RETURNING_KEYWORDS


class Transaction(ABC):
    """A single-owner transaction handle.

    ``commit`` and ``rollback`` consume the handle; any later call raises
    TransactionError.
    """

    @abstractmethod
    def execute_query(self, sql: str) -> QueryResult: ...

    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...

    @property
    @abstractmethod
    def finalized(self) -> bool: ...

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type: object, *exc: object) -> None:
        if self.finalized:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


class DatabaseClient(ABC):
    """Backend client: connect, execute, introspect."""

    backend: BackendKind

    def __init__(
        self, config: ConnectionConfig, settings: ClientSettings | None = None
    ) -> None:
        self.config = config
        self.settings = settings or ClientSettings()

    def __enter__(self) -> DatabaseClient:
        self.connect()
        return self

    def __exit__(self, *exc: object) -> None:
        self.disconnect()

    @abstractmethod
    def connect(self) -> None:
        """Open the pool. No-op when already connected."""

    @abstractmethod
    def disconnect(self) -> None:
        """Release the pool. Safe to call when not connected."""

    @abstractmethod
    def is_connected(self) -> bool: ...

    def reconnect(self) -> None:
        self.disconnect()
        self.connect()

    @abstractmethod
    def test_connection(self) -> None:
        """Round-trip a trivial query without changing client state."""

    @abstractmethod
    def execute_query(self, sql: str) -> QueryResult: ...

    def execute_queries(self, script: str) -> list[QueryResult]:
        """Split ``script`` and run each statement in order.

        The first failure aborts the batch and propagates; results of
        statements that already ran are discarded.
        """
        results: list[QueryResult] = []
        for index, statement in enumerate(split_statements(script)):
            result = self.execute_query(statement)
            result.result_index = index
            results.append(result)
        return results

    @abstractmethod
    def begin_transaction(self) -> Transaction: ...

    @abstractmethod
    def get_schema_info(self) -> SchemaInfo: ...

    @abstractmethod
    def get_tables(self) -> list[TableInfo]: ...

    @abstractmethod
    def get_table_info(self, schema_name: str, table_name: str) -> TableInfo: ...

    @abstractmethod
    def get_views(self) -> list[ViewInfo]: ...

    @abstractmethod
    def get_functions(self) -> list[FunctionInfo]: ...

    @abstractmethod
    def get_entities(self, *, include_system: bool = False) -> list[Entity]: ...

    @abstractmethod
    def get_paginated_rows(
        self, schema_name: str, table_name: str, page_index: int, page_size: int
    ) -> PaginatedRowsResult: ...


class UnsupportedClient(DatabaseClient):
    """Placeholder for backends that are recognized but not implemented."""

    def __init__(
        self, config: ConnectionConfig, settings: ClientSettings | None = None
    ) -> None:
        super().__init__(config, settings)
        self.backend = config.backend

    def _unsupported(self) -> UnsupportedError:
        return UnsupportedError(f"{self.backend.value} support not yet implemented")

    def connect(self) -> None:
        raise self._unsupported()

    def disconnect(self) -> None:
        return None

    def is_connected(self) -> bool:
        return False

    def test_connection(self) -> None:
        raise self._unsupported()

    def execute_query(self, sql: str) -> QueryResult:
        raise self._unsupported()

    def execute_queries(self, script: str) -> list[QueryResult]:
        raise self._unsupported()

    def begin_transaction(self) -> Transaction:
        raise self._unsupported()

    def get_schema_info(self) -> SchemaInfo:
        raise self._unsupported()

    def get_tables(self) -> list[TableInfo]:
        raise self._unsupported()

    def get_table_info(self, schema_name: str, table_name: str) -> TableInfo:
        raise self._unsupported()

    def get_views(self) -> list[ViewInfo]:
        raise self._unsupported()

    def get_functions(self) -> list[FunctionInfo]:
        raise self._unsupported()

    def get_entities(self, *, include_system: bool = False) -> list[Entity]:
        raise self._unsupported()

    def get_paginated_rows(
        self, schema_name: str, table_name: str, page_index: int, page_size: int
    ) -> PaginatedRowsResult:
        raise self._unsupported()


def create_client(
    config: ConnectionConfig, settings: ClientSettings | None = None
) -> DatabaseClient:
    """Instantiate the client for ``config.backend`` without connecting."""
    if config.backend is BackendKind.POSTGRES:
        from dbcore.core.postgres import PostgresClient

        return PostgresClient(config, settings)
    return UnsupportedClient(config, settings)
