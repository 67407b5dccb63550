"""Tests for bounded-concurrency batch dispatch and failure isolation."""

import threading
from unittest.mock import MagicMock

import pytest

from sharepoint_list_sync.chunker import chunk_operations
from sharepoint_list_sync.dispatcher import MAX_WORKERS, BatchDispatcher
from sharepoint_list_sync.models import BatchOutcome, Operation
from sharepoint_list_sync.retry import RetryPolicy
from sharepoint_list_sync.uploader import BatchUploader

from conftest import batch_titles


def _batches(count, size=4):
    operations = [Operation.create({"Title": f"T{i}"}, row_index=i) for i in range(count * size)]
    return chunk_operations(operations, size)


@pytest.fixture
def uploader(client, list_ref, sleeps):
    return BatchUploader(client, list_ref, retry_policy=RetryPolicy(max_attempts=3),
                         on_log=lambda line: None, sleep=sleeps.append)


class TestBatchDispatcher:

    def test_all_batches_succeed(self, uploader, downtime_list, logs):
        dispatcher = BatchDispatcher(uploader, concurrency=3, on_log=logs.append)
        result = dispatcher.dispatch(_batches(5), "token")

        assert (result.submitted, result.succeeded, result.failed) == (20, 20, 0)
        assert result.batches == 5
        assert len(downtime_list.items) == 20
        assert sum(1 for line in logs if line.startswith("[✓] Batch")) == 5

    def test_failing_batch_does_not_stop_siblings(self, uploader, graph, downtime_list, logs):
        # Batch 3 carries T8..T11 and always answers 500
        graph.batch_hook = lambda subs: 500 if "T8" in batch_titles(subs) else None
        dispatcher = BatchDispatcher(uploader, concurrency=2, on_log=logs.append)

        result = dispatcher.dispatch(_batches(5), "token")

        assert result.batches == 5
        assert (result.submitted, result.succeeded, result.failed) == (20, 16, 4)
        assert result.submitted == result.succeeded + result.failed
        assert [e.batch_id for e in result.errors] == [3]
        assert len(downtime_list.items) == 16
        assert any(line.startswith("[!] Batch 3") for line in logs)

    def test_in_flight_never_exceeds_concurrency(self, uploader, graph, downtime_list):
        graph.batch_delay = 0.02
        dispatcher = BatchDispatcher(uploader, concurrency=3, on_log=lambda line: None)

        result = dispatcher.dispatch(_batches(8), "token")

        assert result.succeeded == 32
        assert 1 <= graph.max_in_flight <= 3
        assert dispatcher.in_flight.peak() <= 3
        assert dispatcher.in_flight.value() == 0

    def test_single_worker_is_sequential(self, uploader, graph, downtime_list):
        graph.batch_delay = 0.01
        BatchDispatcher(uploader, concurrency=1, on_log=lambda line: None).dispatch(_batches(4), "token")
        assert graph.max_in_flight == 1

    def test_empty_batch_list(self):
        uploader = MagicMock()
        result = BatchDispatcher(uploader, on_log=lambda line: None).dispatch([], "token")

        assert result.batches == 0
        assert result.submitted == 0
        uploader.upload.assert_not_called()

    def test_uploader_crash_becomes_failed_batch(self):
        def upload(batch, token):
            if batch.batch_id == 2:
                raise RuntimeError("boom")
            return BatchOutcome(batch.batch_id, len(batch), succeeded=len(batch), attempts=1)

        uploader = MagicMock()
        uploader.upload.side_effect = upload
        result = BatchDispatcher(uploader, concurrency=2, on_log=lambda line: None).dispatch(_batches(3), "token")

        assert (result.succeeded, result.failed) == (8, 4)
        assert "boom" in str(result.errors[0])

    def test_cancel_before_start(self):
        cancel = threading.Event()
        cancel.set()
        uploader = MagicMock()

        result = BatchDispatcher(uploader, concurrency=2, on_log=lambda line: None,
                                 cancel_event=cancel).dispatch(_batches(4), "token")

        assert result.cancelled == 4
        assert result.submitted == 0
        uploader.upload.assert_not_called()

    def test_cancel_between_batches(self):
        cancel = threading.Event()

        def upload(batch, token):
            cancel.set()
            return BatchOutcome(batch.batch_id, len(batch), succeeded=len(batch), attempts=1)

        uploader = MagicMock()
        uploader.upload.side_effect = upload
        result = BatchDispatcher(uploader, concurrency=1, on_log=lambda line: None,
                                 cancel_event=cancel).dispatch(_batches(5), "token")

        assert result.batches == 1
        assert result.cancelled == 4
        assert result.submitted == result.succeeded == 4

    def test_merges_into_given_result(self, uploader, downtime_list):
        first = BatchDispatcher(uploader, on_log=lambda line: None).dispatch(_batches(1), "token")
        BatchDispatcher(uploader, on_log=lambda line: None).dispatch(_batches(2), "token", result=first)
        assert first.succeeded == 12
        assert first.batches == 3

    def test_concurrency_bounds(self, uploader, logs):
        with pytest.raises(ValueError):
            BatchDispatcher(uploader, concurrency=0)

        dispatcher = BatchDispatcher(uploader, concurrency=16, on_log=logs.append)

        assert dispatcher.concurrency == MAX_WORKERS
        assert logs == [f"[!] Requested 16 workers; limiting to {MAX_WORKERS} parallel batches"]
        assert BatchDispatcher(uploader, concurrency=MAX_WORKERS, on_log=logs.append).concurrency == MAX_WORKERS
        assert len(logs) == 1

    def test_failing_progress_sink_does_not_stop_workers(self, capsys):
        def broken_log(line):
            raise RuntimeError("sink closed")

        uploader = MagicMock()
        uploader.upload.side_effect = lambda batch, token: BatchOutcome(
            batch.batch_id, len(batch), succeeded=len(batch), attempts=1)

        result = BatchDispatcher(uploader, concurrency=2, on_log=broken_log).dispatch(_batches(3), "token")

        assert result.batches == 3
        assert result.succeeded == 12
        assert "Progress log failed" in capsys.readouterr().out
