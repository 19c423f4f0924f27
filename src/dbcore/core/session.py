"""Session binding: caller-visible session handles -> connection ids.

A session (an editor window, a CLI invocation, a request scope) is bound
to at most one connection at a time; one connection may back many
sessions.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from dbcore.core.exceptions import NotFoundError
from dbcore.core.logging import get_logger

if TYPE_CHECKING:
    from dbcore.core.models import QueryResult
    from dbcore.core.registry import ConnectionRegistry


class SessionManager:
    def __init__(self, registry: ConnectionRegistry, *, auto_connect: bool = False) -> None:
        self.registry = registry
        self.auto_connect = auto_connect
        self._bindings: dict[str, str] = {}
        self._lock = threading.Lock()

    def bind(self, session_id: str, connection_id: str) -> None:
        """Bind a session to a registered connection, replacing any prior binding."""
        self.registry.get(connection_id)
        with self._lock:
            self._bindings[session_id] = connection_id
        get_logger("session", session_id=session_id).debug(
            "session bound", connection_id=connection_id
        )

    def unbind(self, session_id: str) -> str | None:
        with self._lock:
            return self._bindings.pop(session_id, None)

    def connection_id(self, session_id: str) -> str:
        with self._lock:
            connection_id = self._bindings.get(session_id)
        if connection_id is None:
            raise NotFoundError(f"Session not bound to a connection: {session_id}")
        return connection_id

    def sessions_for(self, connection_id: str) -> list[str]:
        with self._lock:
            return sorted(s for s, c in self._bindings.items() if c == connection_id)

    def _ready(self, session_id: str) -> str:
        connection_id = self.connection_id(session_id)
        if self.auto_connect and not self.registry.is_connected(connection_id):
            self.registry.connect(connection_id)
        return connection_id

    def execute(self, session_id: str, sql: str) -> QueryResult:
        return self.registry.execute(self._ready(session_id), sql)

    def execute_many(self, session_id: str, script: str) -> list[QueryResult]:
        return self.registry.execute_many(self._ready(session_id), script)
