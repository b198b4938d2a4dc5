"""
Designer document: the live, mutable state behind one designer session.

A DesignerDocument owns one schema and its optional DAB configuration and
is the only place either is committed. It enforces the version check and
the single in-flight apply per document; the tool facade handles target
checks and response shaping.

Invariants:
    - The schema and DAB config are replaced wholesale on commit, never mutated
    - At most one apply batch (schema or DAB) runs per document at a time;
      a second concurrent apply fails fast with ApplyInProgressError
    - A stale expected version leaves the document untouched
    - apply_dab_changes initializes and synchronizes the DAB config before
      comparing versions but only commits when at least one change applied

How to change safely:
    - Compute version tokens outside the state lock; they hash the whole document
    - New commit paths must record touched columns in the original-value cache
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from ..apply.applier import EditBatchResult, SchemaEditApplier
from ..cancellation import CancellationToken
from ..config import DesignerSettings
from ..dab.applier import DabChangeApplier, shape_dab_state
from ..dab.types import DabConfig, create_default_config, sync_config_with_tables
from ..errors import ApplyInProgressError, StaleStateError
from ..schema.hashing import compute_dab_version, compute_schema_version
from ..schema.types import Schema
from .original_values import OriginalValueCache

logger = logging.getLogger(__name__)


class DesignerDocument:
    """Live state of one schema designer session.

    Thread safety:
        Reads take a snapshot under the state lock. Applies, reverts and
        save marks hold a non-blocking in-flight lock for their whole run.
        A read that synchronizes the DAB config commits it only if nothing
        was committed since its snapshot.

    Example:
        >>> doc = DesignerDocument("localhost/db", "localhost", "db", Schema())
        >>> result = doc.apply_edits(doc.version, [
        ...     {"op": "add_table", "table": {"schema": "dbo", "name": "X"}},
        ... ])
        >>> result.applied_edits, doc.is_dirty
        (1, True)
    """

    def __init__(
        self,
        key: str,
        server: str,
        database: str,
        schema: Schema,
        schema_names: tuple[str, ...] | list[str] = (),
        settings: DesignerSettings | None = None,
        dab_config: DabConfig | None = None,
    ) -> None:
        """Initialize a document.

        Args:
            key: Registry key of the session
            server: Server the session targets
            database: Database the session targets
            schema: Initial schema snapshot
            schema_names: Schemas available in the database
            settings: Designer settings (defaults from environment)
            dab_config: Existing DAB configuration, if any
        """
        self.key = key
        self.server = server
        self.database = database
        self.settings = settings or DesignerSettings()
        self._schema = schema
        self._schema_names = tuple(schema_names) or tuple(self.settings.default_schema_names)
        self._dab_config = dab_config
        self._saved_version = compute_schema_version(schema)
        self._original_values = OriginalValueCache()

        self._state_lock = threading.Lock()
        self._apply_lock = threading.Lock()

        self.active_view = "schema"
        self.revealed_at: float | None = None
        self._dab_commits = 0

    # -- reads ---------------------------------------------------------------

    @property
    def schema(self) -> Schema:
        with self._state_lock:
            return self._schema

    @property
    def version(self) -> str:
        return compute_schema_version(self.schema)

    @property
    def schema_names(self) -> tuple[str, ...]:
        # Schemas already used by tables stay valid even if the loader omitted them.
        names = list(self._schema_names)
        known = {n.lower() for n in names}
        for table in self.schema.tables:
            if table.schema.lower() not in known:
                names.append(table.schema)
                known.add(table.schema.lower())
        return tuple(names)

    @property
    def dab_config(self) -> DabConfig | None:
        with self._state_lock:
            return self._dab_config

    @property
    def dab_commit_count(self) -> int:
        return self._dab_commits

    @property
    def original_values(self) -> OriginalValueCache:
        return self._original_values

    @property
    def is_dirty(self) -> bool:
        """Whether the schema differs from the last saved version."""
        return self.version != self._saved_version

    # -- presentation --------------------------------------------------------

    def reveal_to_foreground(self) -> None:
        self.revealed_at = time.time()
        logger.debug(f"Designer {self.key} revealed")

    def show_auxiliary_view(self, view: str = "dab") -> None:
        self.active_view = view
        logger.debug(f"Designer {self.key} showing {view} view")

    # -- schema edits --------------------------------------------------------

    def apply_edits(
        self,
        expected_version: str,
        edits: list[Any],
        cancellation: CancellationToken | None = None,
    ) -> EditBatchResult:
        """Apply a batch of schema edits with prefix-commit semantics.

        Args:
            expected_version: Version token the caller last read
            edits: Raw JSON edits
            cancellation: Checked before each edit

        Returns:
            EditBatchResult; its schema is now the document's schema

        Raises:
            ApplyInProgressError: Another batch is running on this document
            StaleStateError: ``expected_version`` is not the current version
        """
        if not self._apply_lock.acquire(blocking=False):
            raise ApplyInProgressError(self.key)
        try:
            current_schema = self.schema
            current_version = compute_schema_version(current_schema)
            if expected_version != current_version:
                logger.info(
                    f"Rejected stale schema edit batch for {self.key}",
                    extra={"designer": self.key, "edit_count": len(edits)},
                )
                raise StaleStateError(expected_version, current_version)

            applier = SchemaEditApplier(
                data_types=self.settings.data_types, schema_names=self.schema_names
            )
            result = applier.apply(current_schema, edits, cancellation)
            if result.applied_edits:
                with self._state_lock:
                    self._schema = result.schema
                    for table_id, column in result.touched_columns:
                        self._original_values.remember(table_id, column)

            logger.info(
                f"Applied {result.applied_edits}/{len(edits)} edits to {self.key}",
                extra={
                    "designer": self.key,
                    "applied_edits": result.applied_edits,
                    "failed_edit_index": result.failed_edit_index,
                },
            )
            return result
        finally:
            self._apply_lock.release()

    def mark_saved(self) -> None:
        """Record the current schema as saved and forget original values.

        Raises:
            ApplyInProgressError: A batch is running on this document
        """
        if not self._apply_lock.acquire(blocking=False):
            raise ApplyInProgressError(self.key)
        try:
            with self._state_lock:
                self._saved_version = compute_schema_version(self._schema)
                self._original_values.clear()
        finally:
            self._apply_lock.release()

    def revert_columns(self) -> None:
        """Restore every column edited or dropped since the last save.

        Raises:
            ApplyInProgressError: A batch is running on this document
        """
        if not self._apply_lock.acquire(blocking=False):
            raise ApplyInProgressError(self.key)
        try:
            with self._state_lock:
                self._schema = self._original_values.restore(self._schema)
                self._original_values.clear()
        finally:
            self._apply_lock.release()

    # -- DAB -----------------------------------------------------------------

    def _synced_dab_config(self) -> tuple[DabConfig, bool, tuple[DabConfig | None, tuple]]:
        """Synchronize the stored DAB config with the current tables.

        Returns:
            (synced config, whether it differs from the stored one, the
            stored config and tables it was derived from)
        """
        with self._state_lock:
            config = self._dab_config
            tables = self._schema.tables
        base = (config, tables)
        initialized = config is None
        if config is None:
            config = create_default_config(tables)
        config, changed = sync_config_with_tables(config, tables)
        return config, initialized or changed, base

    def _commit_dab(
        self, config: DabConfig, base: tuple[DabConfig | None, tuple] | None = None
    ) -> bool:
        """Store ``config``.

        With ``base``, the commit only happens while the stored config and
        tables are still the ones ``config`` was derived from.
        """
        with self._state_lock:
            if base is not None and (
                self._dab_config is not base[0] or self._schema.tables is not base[1]
            ):
                return False
            self._dab_config = config
            self._dab_commits += 1
            return True

    def get_dab_state(self) -> dict[str, Any]:
        """Initialize and synchronize the DAB config, then shape it for a read.

        Commits only when initialization or synchronization changed something,
        and never over a config committed after the read started.

        Returns:
            Dict with version, returnState, summary and optionally
            config / stateOmittedReason
        """
        while True:
            config, changed, base = self._synced_dab_config()
            if not changed or self._commit_dab(config, base):
                break
            logger.debug(f"DAB config of {self.key} changed during read, resyncing")
        view = shape_dab_state(config, "full", self.settings.dab_state_entity_threshold)
        return {"version": compute_dab_version(config), **view.to_dict()}

    def apply_dab_changes(
        self,
        expected_version: str,
        changes: list[Any],
        return_state: str = "full",
        cancellation: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """Apply a batch of DAB changes with prefix-commit semantics.

        Args:
            expected_version: ``dabcfg_`` token the caller last read
            changes: Raw JSON changes
            return_state: full, summary or none
            cancellation: Checked before each change

        Returns:
            Result dict: success flag, appliedChanges, version and the shaped
            state; failures add reason, message and failedChangeIndex

        Raises:
            ApplyInProgressError: Another batch is running on this document
        """
        if not self._apply_lock.acquire(blocking=False):
            raise ApplyInProgressError(self.key)
        try:
            config, _, _ = self._synced_dab_config()
            current_version = compute_dab_version(config)
            threshold = self.settings.dab_response_entity_threshold

            if expected_version != current_version:
                logger.info(
                    f"Rejected stale DAB change batch for {self.key}",
                    extra={"designer": self.key, "change_count": len(changes)},
                )
                error = StaleStateError(expected_version, current_version)
                view = shape_dab_state(config, return_state, threshold)
                return {
                    "success": False,
                    "reason": error.reason.value,
                    "message": error.message,
                    "appliedChanges": 0,
                    "version": current_version,
                    **view.to_dict(),
                }

            result = DabChangeApplier().apply(config, changes, cancellation)
            if result.applied_changes:
                self._commit_dab(result.config)

            logger.info(
                f"Applied {result.applied_changes}/{len(changes)} DAB changes to {self.key}",
                extra={
                    "designer": self.key,
                    "applied_changes": result.applied_changes,
                    "failed_change_index": result.failed_change_index,
                },
            )

            view = shape_dab_state(result.config, return_state, threshold)
            response: dict[str, Any] = {"success": result.success}
            if result.error is not None:
                response.update(result.error.to_dict())
                response["failedChangeIndex"] = result.failed_change_index
            response["appliedChanges"] = result.applied_changes
            response["version"] = compute_dab_version(result.config)
            response.update(view.to_dict())
            return response
        finally:
            self._apply_lock.release()
