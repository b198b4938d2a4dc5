"""
Unit tests for designer documents and the document registry.

Tests cover:
- Session keys, activation and closing
- Opening sessions from connection ids
- Version checks and commits for schema edits
- Single in-flight apply per document
- DAB initialization, synchronization and commit counting
- Dirty tracking and column revert
- Reads, reverts and save marks racing an apply
"""

import pytest

from sqltools.schema_designer.cancellation import CancellationToken
from sqltools.schema_designer.config import DesignerSettings
from sqltools.schema_designer.errors import (
    ApplyInProgressError,
    InvalidRequestError,
    NotFoundError,
    StaleStateError,
)
from sqltools.schema_designer.schema.hashing import compute_dab_version, compute_schema_version
from sqltools.schema_designer.schema.types import Column, Schema, Table
from sqltools.schema_designer.session.connections import InMemoryConnectionProvider
from sqltools.schema_designer.session.document import DesignerDocument
from sqltools.schema_designer.session.registry import DocumentRegistry, make_session_key


def make_schema():
    users = Table.create(
        "dbo",
        "Users",
        columns=(
            Column.create("Id", "int", is_primary_key=True, is_nullable=False),
            Column.create("Name", "nvarchar", max_length="50"),
        ),
    )
    return Schema(tables=(users,))


def add_table(name):
    return {"op": "add_table", "table": {"schema": "dbo", "name": name}}


@pytest.fixture
def document():
    return DesignerDocument("localhost/db", "localhost", "db", make_schema(), ["dbo"])


class ReentrantToken(CancellationToken):
    """Token that tries to start a second apply while the first is running."""

    def __init__(self, start):
        super().__init__()
        self.start = start
        self.errors = []

    def raise_if_cancelled(self):
        try:
            self.start()
        except ApplyInProgressError as e:
            self.errors.append(e)


class InterleavedDocument(DesignerDocument):
    """Document that runs ``interleave`` once, right after a DAB sync."""

    interleave = None

    def _synced_dab_config(self):
        synced = super()._synced_dab_config()
        action, self.interleave = self.interleave, None
        if action is not None:
            action()
        return synced


class TestRegistry:
    """Tests for DocumentRegistry."""

    def test_session_key(self):
        """Keys are trimmed and lowercased."""
        assert make_session_key(" Host ", "AdventureWorks") == "host/adventureworks"

    def test_open_is_idempotent(self):
        """Opening the same target twice reuses the document."""
        registry = DocumentRegistry()
        first = registry.open("Host", "Db", make_schema())
        second = registry.open("host", "DB")
        assert first is second
        assert registry.active is first
        assert len(registry.documents) == 1

    def test_open_activates(self):
        """The last opened document is active."""
        registry = DocumentRegistry()
        a = registry.open("h", "a")
        b = registry.open("h", "b")
        assert registry.active is b
        assert registry.activate("H/A") is a
        assert registry.active is a
        assert a.revealed_at is not None

    def test_activate_unknown(self):
        """Activating an unknown key is not_found."""
        with pytest.raises(NotFoundError):
            DocumentRegistry().activate("h/x")

    def test_close_active(self):
        """Closing the active document leaves none active."""
        registry = DocumentRegistry()
        registry.open("h", "a")
        registry.remember_version("h/a", "v1")
        assert registry.close("H/A") is True
        assert registry.active is None
        assert registry.last_known_version("h/a") is None
        assert registry.close("h/a") is False

    def test_open_connection(self):
        """Connection ids resolve through the provider."""
        connections = InMemoryConnectionProvider()
        connections.register("c1", "Server1", "Sales", make_schema(), ["dbo", "sales"])
        registry = DocumentRegistry(connections=connections)
        document = registry.open_connection("c1")
        assert document.key == "server1/sales"
        assert (document.server, document.database) == ("Server1", "Sales")
        assert document.schema_names == ("dbo", "sales")

    def test_open_unknown_connection(self):
        """Unknown connection ids are not_found."""
        registry = DocumentRegistry(connections=InMemoryConnectionProvider())
        with pytest.raises(NotFoundError, match="No connection found for connectionId 'nope'."):
            registry.open_connection("nope")

    def test_open_connection_without_provider(self):
        """A registry without a provider cannot open connections."""
        with pytest.raises(InvalidRequestError):
            DocumentRegistry().open_connection("c1")


class TestSchemaEdits:
    """Tests for DesignerDocument.apply_edits."""

    def test_version(self, document):
        """The version is the hash of the live schema."""
        assert document.version == compute_schema_version(document.schema)

    def test_stale_version(self, document):
        """A stale version raises and changes nothing."""
        before = document.schema
        with pytest.raises(StaleStateError) as exc_info:
            document.apply_edits("sha256:stale", [add_table("X")])
        assert exc_info.value.details == {
            "expectedVersion": "sha256:stale",
            "currentVersion": document.version,
        }
        assert document.schema is before

    def test_commit(self, document):
        """A successful batch becomes the live schema."""
        v1 = document.version
        result = document.apply_edits(v1, [add_table("X")])
        assert document.schema is result.schema
        assert document.version != v1
        assert document.is_dirty is True

    def test_failed_first_edit_commits_nothing(self, document):
        """No applied edits means no commit."""
        before = document.schema
        result = document.apply_edits(document.version, [add_table("Users")])
        assert result.applied_edits == 0
        assert document.schema is before
        assert document.is_dirty is False

    def test_schema_names_include_table_schemas(self):
        """Schemas used by tables are always available."""
        schema = Schema(tables=(Table.create("hr", "People", columns=(Column.create("Id", "int"),)),))
        document = DesignerDocument("h/d", "h", "d", schema)
        assert document.schema_names == ("dbo", "hr")

    def test_concurrent_apply_is_rejected(self, document):
        """A second apply during a batch fails fast."""
        token = ReentrantToken(lambda: document.apply_edits(document.version, [add_table("Y")]))
        result = document.apply_edits(document.version, [add_table("X")], token)
        assert result.success is True
        assert len(token.errors) == 1
        assert token.errors[0].details == {"designerKey": "localhost/db"}
        assert [t.name for t in document.schema.tables] == ["Users", "X"]

    def test_dab_apply_blocked_during_schema_apply(self, document):
        """Schema and DAB batches share the in-flight guard."""
        token = ReentrantToken(lambda: document.apply_dab_changes("dabcfg_x", [{}]))
        document.apply_edits(document.version, [add_table("X")], token)
        assert len(token.errors) == 1

    def test_mark_saved_and_revert(self, document):
        """Reverting restores edited and dropped columns."""
        document.apply_edits(
            document.version,
            [
                {
                    "op": "set_column",
                    "table": {"schema": "dbo", "name": "Users"},
                    "column": "Name",
                    "set": {"name": "FullName"},
                },
            ],
        )
        assert len(document.original_values) == 1
        document.revert_columns()
        assert [c.name for c in document.schema.tables[0].columns] == ["Id", "Name"]
        assert len(document.original_values) == 0

        document.apply_edits(document.version, [add_table("X")])
        document.mark_saved()
        assert document.is_dirty is False


class TestDabState:
    """Tests for DAB reads and change batches on a document."""

    def test_get_state_initializes_once(self, document):
        """The first read commits the default config; later reads do not."""
        state = document.get_dab_state()
        assert document.dab_commit_count == 1
        assert state["returnState"] == "full"
        assert state["version"] == compute_dab_version(document.dab_config)
        assert state["version"].startswith("dabcfg_")
        document.get_dab_state()
        assert document.dab_commit_count == 1

    def test_get_state_syncs_new_tables(self, document):
        """Tables added after the first read get entities."""
        document.get_dab_state()
        document.apply_edits(document.version, [add_table("X")])
        state = document.get_dab_state()
        assert state["summary"]["entityCount"] == 2
        assert document.dab_commit_count == 2

    def test_get_state_over_threshold(self):
        """Large configs are summarized on read."""
        settings = DesignerSettings(dab_state_entity_threshold=0)
        document = DesignerDocument("h/d", "h", "d", make_schema(), settings=settings)
        state = document.get_dab_state()
        assert state["returnState"] == "summary"
        assert state["stateOmittedReason"] == "entity_count_over_threshold"
        assert "config" not in state

    def test_stale_does_not_commit(self, document):
        """A stale batch reports the current version and commits nothing."""
        result = document.apply_dab_changes(
            "dabcfg_stale", [{"type": "set_all_entities_enabled", "isEnabled": False}]
        )
        assert result["success"] is False
        assert result["reason"] == "stale_state"
        assert result["appliedChanges"] == 0
        assert result["version"].startswith("dabcfg_")
        assert result["returnState"] == "full"
        assert "config" in result
        assert document.dab_config is None
        assert document.dab_commit_count == 0

    def test_success_commits_once(self, document):
        """A successful batch commits once."""
        version = document.get_dab_state()["version"]
        result = document.apply_dab_changes(
            version,
            [
                {"type": "set_api_types", "apiTypes": ["rest", "graphql"]},
                {"type": "set_all_entities_enabled", "isEnabled": False},
            ],
        )
        assert result["success"] is True
        assert result["appliedChanges"] == 2
        assert result["version"] != version
        assert result["version"] == compute_dab_version(document.dab_config)
        assert document.dab_commit_count == 2

    def test_failure_commits_prefix(self, document):
        """A failing batch commits the applied prefix once."""
        version = document.get_dab_state()["version"]
        result = document.apply_dab_changes(
            version,
            [
                {"type": "set_all_entities_enabled", "isEnabled": False},
                {"type": "set_api_types", "apiTypes": ["soap"]},
            ],
            return_state="summary",
        )
        assert result["success"] is False
        assert result["reason"] == "validation_error"
        assert result["failedChangeIndex"] == 1
        assert result["appliedChanges"] == 1
        assert result["returnState"] == "summary"
        assert "config" not in result
        assert document.dab_commit_count == 2
        assert document.dab_config.entities[0].is_enabled is False

    def test_failed_first_change_commits_nothing(self, document):
        """Nothing applied means nothing committed."""
        version = document.get_dab_state()["version"]
        result = document.apply_dab_changes(version, [{"type": "bogus"}])
        assert result["failedChangeIndex"] == 0
        assert result["reason"] == "invalid_request"
        assert document.dab_commit_count == 1

    def test_read_does_not_overwrite_concurrent_apply(self):
        """A change committed while a read synchronizes survives the read."""
        document = InterleavedDocument("h/d", "h", "d", make_schema(), ["dbo"])
        document.get_dab_state()
        document.apply_edits(document.version, [add_table("X")])

        results = []

        def apply_during_read():
            config, _, _ = document._synced_dab_config()
            results.append(
                document.apply_dab_changes(
                    compute_dab_version(config),
                    [{"type": "set_api_types", "apiTypes": ["graphql"]}],
                )
            )

        document.interleave = apply_during_read
        state = document.get_dab_state()

        assert results[0]["success"] is True
        assert results[0]["appliedChanges"] == 1
        assert [a.value for a in document.dab_config.api_types] == ["graphql"]
        assert state["version"] == compute_dab_version(document.dab_config)
        assert state["summary"]["entityCount"] == 2


class TestRevertGuard:
    """Tests for reverts and save marks racing an apply."""

    def test_revert_blocked_during_apply(self, document):
        """A revert cannot interleave with a running batch."""
        token = ReentrantToken(document.revert_columns)
        result = document.apply_edits(document.version, [add_table("X")], token)
        assert result.success is True
        assert len(token.errors) == 1
        assert [t.name for t in document.schema.tables] == ["Users", "X"]

    def test_mark_saved_blocked_during_apply(self, document):
        """A save mark cannot interleave with a running batch."""
        token = ReentrantToken(document.mark_saved)
        document.apply_edits(document.version, [add_table("X")], token)
        assert len(token.errors) == 1
        assert document.is_dirty is True
