"""
Connection lookup for opening designer sessions.

The tools never run queries. A connection provider only resolves a
connection id to the target it names and the schema snapshot the
designer should start from.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Protocol

from ..schema.types import Schema


@dataclass(frozen=True)
class ConnectionInfo:
    """A resolved connection and its initial designer state.

    Attributes:
        connection_id: Caller-facing connection id
        server: Server name shown to callers
        database: Database name shown to callers
        schema: Schema snapshot loaded for the designer
        schema_names: Schemas available in the database
    """

    connection_id: str
    server: str
    database: str
    schema: Schema = field(default_factory=Schema)
    schema_names: tuple[str, ...] = ("dbo",)


class ConnectionProvider(Protocol):
    def get_connection_info(self, connection_id: str) -> ConnectionInfo | None: ...


class InMemoryConnectionProvider:
    """Connection provider backed by a dict, for hosts that preload schemas."""

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionInfo] = {}
        self._lock = threading.Lock()

    def register(
        self,
        connection_id: str,
        server: str,
        database: str,
        schema: Schema | None = None,
        schema_names: tuple[str, ...] | list[str] = ("dbo",),
    ) -> ConnectionInfo:
        info = ConnectionInfo(
            connection_id=connection_id,
            server=server,
            database=database,
            schema=schema or Schema(),
            schema_names=tuple(schema_names),
        )
        with self._lock:
            self._connections[connection_id] = info
        return info

    def get_connection_info(self, connection_id: str) -> ConnectionInfo | None:
        with self._lock:
            return self._connections.get(connection_id)
