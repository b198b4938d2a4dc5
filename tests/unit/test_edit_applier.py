"""
Unit tests for the schema edit applier.

Tests cover:
- Edit parsing and shape errors
- Prefix-commit batch semantics
- Table, column and foreign key handlers
- Dependent foreign key maintenance on drop and rename
- Receipts and cancellation
"""

import pytest

from sqltools.schema_designer.apply.applier import (
    EditReceipt,
    SchemaEditApplier,
    check_on_action,
)
from sqltools.schema_designer.apply.edits import (
    AddTable,
    SetForeignKey,
    count_edit_ops,
    parse_edit,
)
from sqltools.schema_designer.cancellation import CancellationToken
from sqltools.schema_designer.errors import ErrorKind, InvalidRequestError, ValidationError
from sqltools.schema_designer.schema.types import Column, ForeignKey, OnAction, Schema, Table

DBO = {"schema": "dbo"}


def ref(name):
    return {**DBO, "name": name}


@pytest.fixture
def schema():
    customers = Table.create(
        "dbo",
        "Customers",
        columns=(Column.create("CustomerId", "int", is_primary_key=True, is_nullable=False),),
    )
    orders = Table.create(
        "dbo",
        "Orders",
        columns=(
            Column.create("OrderId", "int", is_primary_key=True, is_nullable=False),
            Column.create("CustomerId", "int"),
            Column.create("Note", "nvarchar", max_length="200"),
        ),
        foreign_keys=(
            ForeignKey(
                id="fk-orders-customers",
                name="FK_Orders_Customers",
                columns=("CustomerId",),
                referenced_schema_name="dbo",
                referenced_table_name="Customers",
                referenced_columns=("CustomerId",),
            ),
        ),
    )
    return Schema(tables=(customers, orders))


@pytest.fixture
def applier():
    return SchemaEditApplier(schema_names=("dbo",))


def table_named(schema, name):
    return next(t for t in schema.tables if t.name == name)


class TestParseEdit:
    """Tests for parse_edit."""

    def test_parse_add_table(self):
        """add_table parses schema and name."""
        edit = parse_edit({"op": "add_table", "table": ref("X")})
        assert edit == AddTable(schema="dbo", name="X")

    def test_unknown_op(self):
        """Unknown ops are invalid_request."""
        with pytest.raises(InvalidRequestError, match="Unknown edit op: rename_table"):
            parse_edit({"op": "rename_table"})

    def test_non_object(self):
        """Edits must be objects."""
        with pytest.raises(InvalidRequestError):
            parse_edit("add_table")

    def test_add_table_missing_name(self):
        """add_table needs schema and name."""
        with pytest.raises(InvalidRequestError, match=r"Missing edit.table \(schema \+ name\)."):
            parse_edit({"op": "add_table", "table": DBO})

    def test_unknown_column_property_suggests(self):
        """Misspelled column properties are rejected with suggestions."""
        with pytest.raises(InvalidRequestError, match="Unsupported property 'column.datatype'") as exc_info:
            parse_edit(
                {
                    "op": "add_column",
                    "table": ref("Orders"),
                    "column": {"name": "X", "datatype": "int"},
                }
            )
        assert "dataType" in exc_info.value.message

    def test_column_id_is_ignored(self):
        """Projected column ids can be sent back."""
        edit = parse_edit(
            {
                "op": "add_column",
                "table": ref("Orders"),
                "column": {"id": "c1", "name": "X", "dataType": "int"},
            }
        )
        assert edit.column == {"name": "X", "data_type": "int"}

    @pytest.mark.parametrize("data_type", [None, "", "   "])
    def test_add_column_missing_data_type(self, data_type):
        """A new column without a data type is an invalid request."""
        column = {"name": "X"}
        if data_type is not None:
            column["dataType"] = data_type
        with pytest.raises(InvalidRequestError, match="Missing column.dataType."):
            parse_edit({"op": "add_column", "table": ref("Orders"), "column": column})

    def test_initial_column_missing_data_type(self):
        """Initial columns need a data type too."""
        with pytest.raises(InvalidRequestError, match=r"Missing initialColumns\[1\].dataType."):
            parse_edit(
                {
                    "op": "add_table",
                    "table": ref("X"),
                    "initialColumns": [{"name": "Id", "dataType": "int"}, {"name": "Note"}],
                }
            )

    def test_set_column_blank_data_type(self):
        """A blank data type in set is an invalid request."""
        with pytest.raises(InvalidRequestError, match="set.dataType cannot be empty."):
            parse_edit(
                {"op": "set_column", "table": ref("Orders"), "column": "Note", "set": {"dataType": " "}}
            )

    def test_missing_data_type_fails_batch_as_invalid_request(self, applier, schema):
        """The applier reports the missing type with invalid_request."""
        result = applier.apply(
            schema, [{"op": "add_column", "table": ref("Orders"), "column": {"name": "X"}}]
        )
        assert result.error.reason == ErrorKind.INVALID_REQUEST
        assert result.error.message == "Missing column.dataType."

    def test_malformed_mapping(self):
        """Mapping items need both column names."""
        with pytest.raises(InvalidRequestError, match="Invalid foreignKey.mappings item"):
            parse_edit(
                {
                    "op": "add_foreign_key",
                    "table": ref("Orders"),
                    "foreignKey": {
                        "name": "FK",
                        "referencedTable": ref("Customers"),
                        "mappings": [{"column": "CustomerId"}],
                    },
                }
            )

    def test_set_foreign_key_tracks_present_actions(self):
        """Only actions present in set are applied."""
        edit = parse_edit(
            {
                "op": "set_foreign_key",
                "table": ref("Orders"),
                "foreignKey": "FK_Orders_Customers",
                "set": {"onDeleteAction": 0},
            }
        )
        assert isinstance(edit, SetForeignKey)
        assert edit.set_on_delete is True
        assert edit.set_on_update is False

    def test_count_edit_ops(self):
        """Counts are keyed <op>_count and ignore unknown ops."""
        counts = count_edit_ops(
            [{"op": "add_table"}, {"op": "add_table"}, {"op": "bogus"}, "junk"]
        )
        assert counts["add_table_count"] == 2
        assert counts["drop_table_count"] == 0
        assert "bogus_count" not in counts


class TestBatchSemantics:
    """Tests for prefix-commit behavior."""

    def test_single_add_table(self, applier):
        """The receipt names exactly the added table."""
        result = applier.apply(Schema(), [{"op": "add_table", "table": ref("X")}])
        assert result.success is True
        assert result.applied_edits == 1
        assert result.receipt.to_dict() == {"tablesAdded": [{"schema": "dbo", "name": "X"}]}

    def test_default_id_column(self, applier):
        """New tables get an Id int identity primary key."""
        result = applier.apply(Schema(), [{"op": "add_table", "table": ref("X")}])
        (column,) = result.schema.tables[0].columns
        assert column.name == "Id"
        assert column.data_type == "int"
        assert column.is_primary_key and column.is_identity
        assert (column.identity_seed, column.identity_increment) == (1, 1)
        assert column.is_nullable is False

    def test_prefix_commit(self, applier, schema):
        """A failing edit keeps the prefix and stops the batch."""
        result = applier.apply(
            schema,
            [
                {"op": "add_table", "table": ref("A")},
                {"op": "add_table", "table": ref("customers")},
                {"op": "add_table", "table": ref("B")},
            ],
        )
        assert result.success is False
        assert result.applied_edits == 1
        assert result.failed_edit_index == 1
        assert result.error.reason == ErrorKind.VALIDATION_ERROR
        assert result.error.message == "Table 'customers' already exists"
        names = [t.name for t in result.schema.tables]
        assert names == ["Customers", "Orders", "A"]
        assert result.receipt.to_dict() == {"tablesAdded": [{"schema": "dbo", "name": "A"}]}

    def test_first_edit_fails(self, applier, schema):
        """A failure at index 0 returns the input schema."""
        result = applier.apply(schema, [{"op": "drop_table", "table": ref("Missing")}])
        assert result.applied_edits == 0
        assert result.failed_edit_index == 0
        assert result.error.reason == ErrorKind.NOT_FOUND
        assert result.schema is schema
        assert result.receipt.is_empty

    def test_parse_error_mid_batch(self, applier, schema):
        """Malformed edits fail at their index."""
        result = applier.apply(
            schema,
            [{"op": "add_table", "table": ref("A")}, {"op": "nope"}],
        )
        assert result.failed_edit_index == 1
        assert result.error.reason == ErrorKind.INVALID_REQUEST

    def test_cancelled_before_first_edit(self, applier, schema):
        """A cancelled token stops the batch before any edit."""
        token = CancellationToken()
        token.cancel()
        result = applier.apply(schema, [{"op": "add_table", "table": ref("A")}], token)
        assert result.applied_edits == 0
        assert result.error.reason == ErrorKind.CANCELLED

    def test_unavailable_schema(self, applier):
        """Tables can only be added to available schemas."""
        result = applier.apply(
            Schema(), [{"op": "add_table", "table": {"schema": "sales", "name": "X"}}]
        )
        assert result.error.message == "Schema 'sales' is not available."

    def test_stats(self, applier, schema):
        """Counters track applied and failed edits."""
        applier.apply(schema, [{"op": "add_table", "table": ref("A")}, {"op": "nope"}])
        assert applier.stats == {"batches_applied": 1, "edits_applied": 1, "edits_failed": 1}


class TestTableEdits:
    """Tests for table handlers."""

    def test_drop_table_removes_referencing_keys(self, applier, schema):
        """Dropping a table drops keys that point at it."""
        result = applier.apply(schema, [{"op": "drop_table", "table": ref("Customers")}])
        orders = table_named(result.schema, "Orders")
        assert orders.foreign_keys == ()
        assert result.receipt.to_dict() == {
            "tablesDropped": [{"schema": "dbo", "name": "Customers"}],
            "foreignKeysDropped": [
                {"table": {"schema": "dbo", "name": "Orders"}, "name": "FK_Orders_Customers"}
            ],
        }

    def test_rename_rewrites_references(self, applier, schema):
        """Renaming a table rewrites keys that point at it."""
        result = applier.apply(
            schema,
            [{"op": "set_table", "table": ref("Customers"), "set": {"name": "Clients"}}],
        )
        fk = table_named(result.schema, "Orders").foreign_keys[0]
        assert fk.referenced_table_name == "Clients"
        assert result.receipt.to_dict() == {
            "tablesUpdated": [{"schema": "dbo", "name": "Clients"}]
        }

    def test_rename_to_existing_fails(self, applier, schema):
        """Renames cannot collide with another table."""
        result = applier.apply(
            schema,
            [{"op": "set_table", "table": ref("Customers"), "set": {"name": "ORDERS"}}],
        )
        assert result.error.reason == ErrorKind.VALIDATION_ERROR
        assert table_named(result.schema, "Customers")

    def test_set_table_requires_change(self):
        """set_table needs name or schema."""
        with pytest.raises(InvalidRequestError, match="edit.set must include name or schema."):
            parse_edit({"op": "set_table", "table": ref("Customers"), "set": {}})

    def test_case_twins_editable_by_id(self, applier):
        """Tables whose names differ only by case can still be edited by id."""
        dup = Table.create("dbo", "Dup", columns=(Column.create("Id", "int"),))
        twin = Table.create("dbo", "DUP", columns=(Column.create("Id", "int"),))
        result = applier.apply(
            Schema(tables=(dup, twin)),
            [
                {
                    "op": "add_column",
                    "table": {"id": dup.id},
                    "column": {"name": "Note", "dataType": "int"},
                },
                {
                    "op": "set_column",
                    "table": {"id": twin.id},
                    "column": "Id",
                    "set": {"isNullable": False},
                },
            ],
        )
        assert result.success is True
        assert result.applied_edits == 2
        assert [c.name for c in result.schema.get_table(dup.id).columns] == ["Id", "Note"]
        assert result.schema.get_table(twin.id).columns[0].is_nullable is False

    def test_case_twins_reject_new_duplicate(self, applier):
        """Adding another table with the shared name still fails."""
        dup = Table.create("dbo", "Dup", columns=(Column.create("Id", "int"),))
        twin = Table.create("dbo", "DUP", columns=(Column.create("Id", "int"),))
        result = applier.apply(Schema(tables=(dup, twin)), [{"op": "add_table", "table": ref("dup")}])
        assert result.error.reason == ErrorKind.VALIDATION_ERROR
        assert result.error.message == "Table 'dup' already exists"


class TestColumnEdits:
    """Tests for column handlers."""

    def add_column(self, applier, schema, column):
        return applier.apply(
            schema, [{"op": "add_column", "table": ref("Customers"), "column": column}]
        )

    def test_add_column_default_length(self, applier, schema):
        """Length-based types get a default length."""
        result = self.add_column(applier, schema, {"name": "Name", "dataType": "nvarchar"})
        column = table_named(result.schema, "Customers").columns[-1]
        assert column.max_length == "50"
        assert result.receipt.to_dict() == {
            "columnsAdded": [{"table": {"schema": "dbo", "name": "Customers"}, "name": "Name"}]
        }

    def test_add_column_invalid_type(self, applier, schema):
        """Unknown data types are a validation error."""
        result = self.add_column(applier, schema, {"name": "Name", "dataType": "strng"})
        assert result.error.reason == ErrorKind.VALIDATION_ERROR
        assert result.error.message == "Data type 'strng' is invalid."

    def test_add_primary_key_column_not_nullable(self, applier, schema):
        """Primary key columns default to NOT NULL."""
        result = self.add_column(
            applier, schema, {"name": "Code", "dataType": "int", "isPrimaryKey": True}
        )
        assert table_named(result.schema, "Customers").columns[-1].is_nullable is False

    def test_add_duplicate_column(self, applier, schema):
        """Column names are unique per table."""
        result = self.add_column(applier, schema, {"name": "customerid", "dataType": "int"})
        assert result.error.reason == ErrorKind.VALIDATION_ERROR
        assert result.error.message.endswith("already exists")

    def test_rename_column_rewrites_keys(self, applier, schema):
        """Renaming a referenced column rewrites referencing keys."""
        result = applier.apply(
            schema,
            [
                {
                    "op": "set_column",
                    "table": ref("Customers"),
                    "column": "CustomerId",
                    "set": {"name": "ClientId"},
                }
            ],
        )
        assert result.success is True
        fk = table_named(result.schema, "Orders").foreign_keys[0]
        assert fk.referenced_columns == ("ClientId",)
        table_id, original = result.touched_columns[0]
        assert table_id == table_named(schema, "Customers").id
        assert original.name == "CustomerId"

    def test_rename_owning_column_rewrites_keys(self, applier, schema):
        """Renaming a key column rewrites the owning key."""
        result = applier.apply(
            schema,
            [
                {
                    "op": "set_column",
                    "table": ref("Orders"),
                    "column": {"name": "customerid"},
                    "set": {"name": "ClientId"},
                }
            ],
        )
        assert table_named(result.schema, "Orders").foreign_keys[0].columns == ("ClientId",)

    def test_change_type_adjusts_length(self, applier, schema):
        """Switching to and from length-based types adjusts max length."""
        result = applier.apply(
            schema,
            [
                {"op": "set_column", "table": ref("Orders"), "column": "Note", "set": {"dataType": "int"}},
            ],
        )
        assert table_named(result.schema, "Orders").columns[2].max_length == ""
        result = applier.apply(
            result.schema,
            [
                {"op": "set_column", "table": ref("Orders"), "column": "Note", "set": {"dataType": "varchar"}},
            ],
        )
        assert table_named(result.schema, "Orders").columns[2].max_length == "50"

    def test_drop_key_column_refused(self, applier, schema):
        """Columns used by a key cannot be dropped."""
        result = applier.apply(
            schema,
            [{"op": "drop_column", "table": ref("Orders"), "column": "CustomerId"}],
        )
        assert result.error.reason == ErrorKind.VALIDATION_ERROR
        assert "FK_Orders_Customers" in result.error.message

    def test_drop_referenced_column_refused(self, applier, schema):
        """Columns referenced by another table's key cannot be dropped."""
        result = applier.apply(
            schema,
            [{"op": "drop_column", "table": ref("Customers"), "column": "CustomerId"}],
        )
        assert result.error.reason == ErrorKind.VALIDATION_ERROR

    def test_drop_column(self, applier, schema):
        """Dropping a free column records it as touched."""
        result = applier.apply(
            schema, [{"op": "drop_column", "table": ref("Orders"), "column": "Note"}]
        )
        assert [c.name for c in table_named(result.schema, "Orders").columns] == [
            "OrderId",
            "CustomerId",
        ]
        assert result.touched_columns[0][1].name == "Note"

    def test_drop_missing_column(self, applier, schema):
        """Unknown columns are not_found."""
        result = applier.apply(
            schema, [{"op": "drop_column", "table": ref("Orders"), "column": "Nope"}]
        )
        assert result.error.reason == ErrorKind.NOT_FOUND


class TestForeignKeyEdits:
    """Tests for foreign key handlers."""

    def add_fk(self, applier, schema, **fk):
        body = {
            "name": "FK_New",
            "referencedTable": ref("Customers"),
            "mappings": [{"column": "CustomerId", "referencedColumn": "CustomerId"}],
            "onDeleteAction": 1,
            "onUpdateAction": 1,
        }
        body.update(fk)
        return applier.apply(
            schema, [{"op": "add_foreign_key", "table": ref("Orders"), "foreignKey": body}]
        )

    def test_add_foreign_key(self, applier, schema):
        """Mapped column names come back in stored casing."""
        result = self.add_fk(
            applier,
            schema,
            mappings=[{"column": "customerid", "referencedColumn": "CUSTOMERID"}],
            onDeleteAction=0,
        )
        fk = table_named(result.schema, "Orders").foreign_keys[-1]
        assert fk.columns == ("CustomerId",)
        assert fk.referenced_columns == ("CustomerId",)
        assert fk.on_delete_action == OnAction.CASCADE

    def test_invalid_action(self, applier, schema):
        """Out-of-range actions are a validation error."""
        result = self.add_fk(applier, schema, onDeleteAction=7)
        assert result.error.reason == ErrorKind.VALIDATION_ERROR
        assert result.error.message.startswith("Foreign key action must be one of:")

    def test_missing_mappings(self, applier, schema):
        """Keys need at least one mapping."""
        result = self.add_fk(applier, schema, mappings=None)
        assert result.error.message == "Foreign key must map at least one column."

    def test_duplicate_key_name(self, applier, schema):
        """Key names are unique per table."""
        result = self.add_fk(applier, schema, name="fk_orders_customers")
        assert result.error.message == "Foreign key 'fk_orders_customers' already exists"

    def test_drop_foreign_key(self, applier, schema):
        """Keys are dropped by name."""
        result = applier.apply(
            schema,
            [{"op": "drop_foreign_key", "table": ref("Orders"), "foreignKey": "fk_orders_customers"}],
        )
        assert table_named(result.schema, "Orders").foreign_keys == ()
        assert result.receipt.to_dict() == {
            "foreignKeysDropped": [
                {"table": {"schema": "dbo", "name": "Orders"}, "name": "FK_Orders_Customers"}
            ]
        }

    def test_set_foreign_key(self, applier, schema):
        """set_foreign_key changes only the given properties."""
        result = applier.apply(
            schema,
            [
                {
                    "op": "set_foreign_key",
                    "table": ref("Orders"),
                    "foreignKey": {"id": "fk-orders-customers"},
                    "set": {"name": "FK_Renamed", "onDeleteAction": 2},
                }
            ],
        )
        fk = table_named(result.schema, "Orders").foreign_keys[0]
        assert fk.name == "FK_Renamed"
        assert fk.on_delete_action == OnAction.SET_NULL
        assert fk.on_update_action == OnAction.NO_ACTION
        assert fk.columns == ("CustomerId",)


class TestHelpers:
    """Tests for receipts and action checks."""

    def test_receipt_orders_groups(self):
        """Groups render in a fixed order, empty ones omitted."""
        receipt = EditReceipt()
        receipt.add("columnsAdded", {"name": "c"})
        receipt.add("tablesAdded", {"name": "t"})
        assert list(receipt.to_dict()) == ["tablesAdded", "columnsAdded"]

    def test_receipt_rejects_unknown_group(self):
        """Unknown groups are a programming error."""
        with pytest.raises(KeyError):
            EditReceipt().add("indexesAdded", {})

    def test_check_on_action(self):
        """Actions accept integral numbers only."""
        assert check_on_action(3) == OnAction.SET_DEFAULT
        assert check_on_action(2.0) == OnAction.SET_NULL
        with pytest.raises(ValidationError, match="must be a number"):
            check_on_action("CASCADE")
        with pytest.raises(ValidationError, match="must be a number"):
            check_on_action(True)
        with pytest.raises(ValidationError, match="must be one of"):
            check_on_action(1.5)
