"""Connection registry: id -> (config, live client).

The registry owns every client it creates. Lookups take a short map lock;
each entry has its own lock for connect/disconnect/update/remove so work
on one id never blocks another. Operations lease the live client for
their duration, and teardown waits for outstanding leases to drain
before releasing the pool, so an in-flight query never sees its client
vanish underneath it.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from dbcore.core.client import DatabaseClient, Transaction, create_client
from dbcore.core.config import ClientSettings, ConnectionConfig
from dbcore.core.exceptions import NotFoundError
from dbcore.core.logging import get_logger

if TYPE_CHECKING:
    from dbcore.core.entities import Entity
    from dbcore.core.models import (
        FunctionInfo,
        PaginatedRowsResult,
        QueryResult,
        SchemaInfo,
        TableInfo,
        ViewInfo,
    )

ClientFactory = Callable[[ConnectionConfig, ClientSettings], DatabaseClient]


class _Entry:
    def __init__(self, config: ConnectionConfig) -> None:
        self.config = config
        self.client: DatabaseClient | None = None
        self.lock = threading.Lock()
        self.drained = threading.Condition(threading.Lock())
        self.inflight = 0
        self.removed = False


class ConnectionRegistry:
    """Thread-safe registry of connection configs and their live clients."""

    def __init__(
        self,
        settings: ClientSettings | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.settings = settings or ClientSettings()
        self._client_factory = client_factory or create_client
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    # -- configs --

    def _entry(self, connection_id: str) -> _Entry:
        with self._lock:
            entry = self._entries.get(connection_id)
        if entry is None:
            raise NotFoundError(f"Connection not found: {connection_id}")
        return entry

    def add(self, config: ConnectionConfig) -> str:
        """Register a config without connecting; returns its id.

        Re-adding an id replaces its stored config and tears down any
        live client built from the old one.
        """
        with self._lock:
            existing = self._entries.get(config.id)
            if existing is None:
                self._entries[config.id] = _Entry(config)
                return config.id
        with existing.lock:
            if existing.removed:
                return self.add(config)
            self._teardown(existing)
            existing.config = config
        return config.id

    def get(self, connection_id: str) -> ConnectionConfig:
        return self._entry(connection_id).config

    def list(self) -> list[ConnectionConfig]:
        with self._lock:
            entries = list(self._entries.values())
        return [e.config for e in entries]

    def update(self, connection_id: str, config: ConnectionConfig) -> ConnectionConfig:
        """Replace a stored config, keeping its id.

        A live client is torn down first; the caller reconnects to pick
        up the new settings.
        """
        entry = self._entry(connection_id)
        if config.id != connection_id:
            config = ConnectionConfig.model_validate(
                {**config.model_dump(), "id": connection_id}
            )
        with entry.lock:
            if entry.removed:
                raise NotFoundError(f"Connection not found: {connection_id}")
            self._teardown(entry)
            entry.config = config
        get_logger("registry", connection_id=connection_id).info("connection updated")
        return config

    def remove(self, connection_id: str) -> None:
        with self._lock:
            entry = self._entries.pop(connection_id, None)
        if entry is None:
            raise NotFoundError(f"Connection not found: {connection_id}")
        with entry.lock:
            entry.removed = True
            self._teardown(entry)
        get_logger("registry", connection_id=connection_id).info("connection removed")

    # -- lifecycle --

    def connect(self, connection_id: str) -> None:
        """Connect a registered config. No-op when already connected."""
        entry = self._entry(connection_id)
        log = get_logger("registry", connection_id=connection_id)
        with entry.lock:
            if entry.removed:
                raise NotFoundError(f"Connection not found: {connection_id}")
            if entry.client is not None:
                log.debug("already connected")
                return
            client = self._client_factory(entry.config, self.settings)
            client.connect()
            entry.client = client
        log.info("registry connected", name=entry.config.name)

    def disconnect(self, connection_id: str) -> None:
        """Tear down the live client.

        Raises NotFoundError when the id is unknown or not connected.
        """
        entry = self._entry(connection_id)
        with entry.lock:
            if entry.client is None:
                raise NotFoundError(f"Not connected to database: {connection_id}")
            self._teardown(entry)

    def _teardown(self, entry: _Entry) -> None:
        # Caller holds entry.lock.
        with entry.drained:
            client, entry.client = entry.client, None
            if client is None:
                return
            while entry.inflight:
                entry.drained.wait()
        client.disconnect()
        get_logger("registry", connection_id=entry.config.id).info("registry disconnected")

    def is_connected(self, connection_id: str) -> bool:
        with self._lock:
            entry = self._entries.get(connection_id)
        return entry is not None and entry.client is not None

    def close_all(self) -> None:
        """Disconnect every live client. Configs stay registered."""
        with self._lock:
            entries = list(self._entries.values())
        for entry in entries:
            with entry.lock:
                self._teardown(entry)

    @contextmanager
    def _lease(self, connection_id: str) -> Iterator[DatabaseClient]:
        with self._lock:
            entry = self._entries.get(connection_id)
        client = None
        if entry is not None:
            with entry.drained:
                client = entry.client
                if client is not None:
                    entry.inflight += 1
        if entry is None or client is None:
            raise NotFoundError(f"Not connected to database: {connection_id}")
        try:
            yield client
        finally:
            with entry.drained:
                entry.inflight -= 1
                if entry.inflight == 0:
                    entry.drained.notify_all()

    # -- testing --

    def test_connection(self, connection_id: str) -> None:
        """Round-trip through the live client, or a throwaway one if idle."""
        entry = self._entry(connection_id)
        if self.is_connected(connection_id):
            with self._lease(connection_id) as client:
                client.test_connection()
            return
        self.test_config(entry.config)

    def test_config(self, config: ConnectionConfig) -> None:
        """Verify an unregistered config can connect. Registers nothing."""
        self._client_factory(config, self.settings).test_connection()

    # -- delegation --

    def execute(self, connection_id: str, sql: str) -> QueryResult:
        with self._lease(connection_id) as client:
            return client.execute_query(sql)

    def execute_many(self, connection_id: str, script: str) -> list[QueryResult]:
        with self._lease(connection_id) as client:
            return client.execute_queries(script)

    def begin_transaction(self, connection_id: str) -> Transaction:
        with self._lease(connection_id) as client:
            return client.begin_transaction()

    def get_schema_info(self, connection_id: str) -> SchemaInfo:
        with self._lease(connection_id) as client:
            return client.get_schema_info()

    def get_tables(self, connection_id: str) -> list[TableInfo]:
        with self._lease(connection_id) as client:
            return client.get_tables()

    def get_table_info(
        self, connection_id: str, schema_name: str, table_name: str
    ) -> TableInfo:
        with self._lease(connection_id) as client:
            return client.get_table_info(schema_name, table_name)

    def get_views(self, connection_id: str) -> list[ViewInfo]:
        with self._lease(connection_id) as client:
            return client.get_views()

    def get_functions(self, connection_id: str) -> list[FunctionInfo]:
        with self._lease(connection_id) as client:
            return client.get_functions()

    def get_entities(
        self, connection_id: str, *, include_system: bool = False
    ) -> list[Entity]:
        with self._lease(connection_id) as client:
            return client.get_entities(include_system=include_system)

    def get_paginated_rows(
        self,
        connection_id: str,
        schema_name: str,
        table_name: str,
        page_index: int,
        page_size: int,
    ) -> PaginatedRowsResult:
        with self._lease(connection_id) as client:
            return client.get_paginated_rows(
                schema_name, table_name, page_index, page_size
            )
