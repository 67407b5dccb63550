"""Tests for the list, operation and result data model."""

import pytest

from sharepoint_list_sync.errors import BatchError
from sharepoint_list_sync.models import (
    Batch,
    BatchOutcome,
    ColumnDef,
    ColumnKind,
    ListDefinition,
    ListRef,
    Operation,
    OperationKind,
    SyncJob,
    SyncMode,
    SyncResult,
)


class TestColumnsAndLists:

    def test_column_payload(self):
        assert ColumnDef("Hours", ColumnKind.NUMBER).to_graph_payload() == {
            "name": "Hours", "displayName": "Hours", "number": {},
        }
        assert ColumnDef("Project").to_graph_payload()["text"] == {}

    def test_column_kind_from_string(self):
        assert ColumnDef("Hours", "Number").kind is ColumnKind.NUMBER

    def test_duplicate_columns_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            ListDefinition("l", [ColumnDef("A"), ColumnDef("A")])

    def test_unique_key_must_be_declared(self):
        with pytest.raises(ValueError, match="not declared"):
            ListDefinition("l", [ColumnDef("A")], unique_key=["B"])

    def test_from_rows_infers_text_columns(self):
        rows = [{"Title": "t", "Project": "A", "year": "2024"}]
        definition = ListDefinition.from_rows("downtime", rows, unique_key=["Project"])

        assert [c.name for c in definition.columns] == ["Project", "year"]
        assert definition.column("Project").required is True
        assert definition.column("year").required is False
        assert definition.column("missing") is None


class TestOperation:

    def test_create_cannot_carry_item_id(self):
        with pytest.raises(ValueError):
            Operation(OperationKind.CREATE, {"Title": "x"}, item_id="1")

    @pytest.mark.parametrize("kind", [OperationKind.UPDATE, OperationKind.DELETE])
    def test_update_and_delete_require_item_id(self, kind):
        with pytest.raises(ValueError):
            Operation(kind, {"Title": "x"})

    def test_delete_request_has_no_body(self):
        request = Operation.delete("5").to_batch_request("3", ListRef("s", "l", "n"))
        assert request == {"id": "3", "method": "DELETE", "url": "/sites/s/lists/l/items/5"}


class TestResults:

    def test_failed_all(self):
        batch = Batch(4, [Operation.create({"Title": "a"}), Operation.create({"Title": "b"})])
        error = BatchError("down", batch_id=4)
        outcome = BatchOutcome.failed_all(batch, error, attempts=5)

        assert (outcome.submitted, outcome.succeeded, outcome.failed) == (2, 0, 2)
        assert outcome.errors == [error]
        assert not outcome.ok

    def test_result_totals(self):
        result = SyncResult()
        result.record(BatchOutcome(1, 20, succeeded=20, attempts=1))
        result.record(BatchOutcome(2, 5, succeeded=3, failed=2, errors=[BatchError("x")]))

        assert (result.submitted, result.succeeded, result.failed, result.batches) == (25, 23, 2, 2)
        assert result.submitted == result.succeeded + result.failed
        assert len(result.errors) == 1
        assert not result.ok


class TestSyncJob:

    def test_upsert_requires_unique_key(self):
        with pytest.raises(ValueError, match="unique key"):
            SyncJob(ListDefinition("l", [ColumnDef("A")]), [], mode=SyncMode.UPSERT)

    def test_concurrency_must_be_positive(self, downtime_definition):
        with pytest.raises(ValueError):
            SyncJob(downtime_definition, [], concurrency=0)

    def test_mode_parsed_from_string(self, downtime_definition):
        assert SyncJob(downtime_definition, [], mode="full-replace").mode is SyncMode.FULL_REPLACE
