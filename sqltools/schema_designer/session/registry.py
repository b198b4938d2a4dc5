"""
Document registry for open designer sessions.

The registry is constructed by the host and passed to the tools; there is
no process-wide instance. It maps a session key derived from the target
server and database to its DesignerDocument and tracks which document is
active. Only the active document is addressable by the tools.

Invariants:
    - Keys are case-insensitive: "HOST/Db" and "host/db" are one session
    - open() is idempotent per key and makes the document active
    - Closing the active document leaves no active document

Example:
    >>> registry = DocumentRegistry()
    >>> doc = registry.open("localhost", "AdventureWorks", Schema())
    >>> registry.active is doc
    True
"""

from __future__ import annotations

import logging
import threading

from ..config import DesignerSettings
from ..errors import InvalidRequestError, NotFoundError
from ..schema.types import Schema
from .connections import ConnectionProvider
from .document import DesignerDocument

logger = logging.getLogger(__name__)


def make_session_key(server: str, database: str) -> str:
    """Case-insensitive session key for a server/database pair."""
    return f"{server.strip().lower()}/{database.strip().lower()}"


class DocumentRegistry:
    """Open designer documents keyed by target.

    Thread safety:
        All mutations go through an internal lock.
    """

    def __init__(
        self,
        settings: DesignerSettings | None = None,
        connections: ConnectionProvider | None = None,
    ) -> None:
        """Initialize an empty registry.

        Args:
            settings: Settings passed to every document
            connections: Resolves connection ids for open_connection()
        """
        self.settings = settings or DesignerSettings()
        self.connections = connections
        self._documents: dict[str, DesignerDocument] = {}
        self._active_key: str | None = None
        self._last_known_versions: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def active(self) -> DesignerDocument | None:
        """The foreground document, if any."""
        with self._lock:
            if self._active_key is None:
                return None
            return self._documents.get(self._active_key)

    @property
    def documents(self) -> list[DesignerDocument]:
        with self._lock:
            return list(self._documents.values())

    def get(self, key: str) -> DesignerDocument | None:
        with self._lock:
            return self._documents.get(key.lower())

    def open(
        self,
        server: str,
        database: str,
        schema: Schema | None = None,
        schema_names: tuple[str, ...] | list[str] = (),
    ) -> DesignerDocument:
        """Open (or reuse) the session for ``server``/``database`` and activate it.

        An existing session keeps its state; ``schema`` only seeds new ones.
        """
        key = make_session_key(server, database)
        with self._lock:
            document = self._documents.get(key)
            if document is None:
                document = DesignerDocument(
                    key=key,
                    server=server,
                    database=database,
                    schema=schema or Schema(),
                    schema_names=schema_names,
                    settings=self.settings,
                )
                self._documents[key] = document
                logger.info(f"Opened designer session {key}", extra={"designer": key})
            self._active_key = key
        return document

    def open_connection(self, connection_id: str) -> DesignerDocument:
        """Open the session for a connection id.

        Raises:
            InvalidRequestError: No connection provider is configured
            NotFoundError: The connection id is unknown
        """
        if self.connections is None:
            raise InvalidRequestError("No connection provider is configured.")
        info = self.connections.get_connection_info(connection_id)
        if info is None:
            raise NotFoundError(
                f"No connection found for connectionId '{connection_id}'.",
                resource_type="connection",
                reference=connection_id,
            )
        return self.open(info.server, info.database, info.schema, info.schema_names)

    def activate(self, key: str) -> DesignerDocument:
        """Bring an open document to the foreground.

        Raises:
            NotFoundError: No session has this key
        """
        key = key.lower()
        with self._lock:
            document = self._documents.get(key)
            if document is None:
                raise NotFoundError(
                    f"Designer session '{key}' not found.", resource_type="designer", reference=key
                )
            self._active_key = key
        document.reveal_to_foreground()
        return document

    def close(self, key: str) -> bool:
        """Close a session. Returns whether it was open."""
        key = key.lower()
        with self._lock:
            document = self._documents.pop(key, None)
            self._last_known_versions.pop(key, None)
            if self._active_key == key:
                self._active_key = None
        if document is not None:
            logger.info(f"Closed designer session {key}", extra={"designer": key})
        return document is not None

    def remember_version(self, key: str, version: str) -> None:
        """Cache the last version token handed out for a session."""
        with self._lock:
            self._last_known_versions[key.lower()] = version

    def last_known_version(self, key: str) -> str | None:
        with self._lock:
            return self._last_known_versions.get(key.lower())
