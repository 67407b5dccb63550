# -*- coding: utf-8 -*-
"""
Bounded-concurrency dispatch of batches to the batch uploader.

A fixed pool of N worker threads pulls batches from one shared queue until
it is empty, so at most N $batch requests are in flight at any time. A
failed batch is recorded and never stops its siblings; the dispatcher always
drains the queue (unless cancelled) and returns one aggregate SyncResult.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from queue import Empty, Queue

from .errors import BatchError
from .models import BatchOutcome, SyncResult
from .thread_utils import ThreadSafeCounter, console_log, thread_safe_print
from .utils import is_debug_enabled, truncate

# Graph API concurrency guidance: keep parallel requests per app modest
MAX_WORKERS = 10


class BatchDispatcher:
    """
    Runs batches through a fixed-size worker pool.

    Batches may complete in any order. The only state shared between
    workers is the queue, the result (under a lock), the in-flight counter
    and the read-only token.
    """

    def __init__(self, uploader, concurrency=4, on_log=None, cancel_event=None):
        """
        Args:
            uploader (BatchUploader): Submits one batch per call
            concurrency (int): Number of workers (capped at MAX_WORKERS)
            on_log (callable): Progress sink; called from worker threads
            cancel_event (threading.Event): Checked before each batch is claimed
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.uploader = uploader
        self.on_log = on_log or console_log
        self.concurrency = min(concurrency, MAX_WORKERS)
        if concurrency > MAX_WORKERS:
            self.on_log(f"[!] Requested {concurrency} workers; limiting to {MAX_WORKERS} parallel batches")
        self.cancel_event = cancel_event
        self.in_flight = ThreadSafeCounter()
        self._result_lock = threading.Lock()

    def dispatch(self, batches, token, result=None, label="Batch"):
        """
        Upload every batch and aggregate the outcomes.

        Args:
            batches (list): Batch objects to submit
            token (str): Bearer token shared read-only by all workers
            result (SyncResult): Result to merge into (a new one by default)
            label (str): Word used in progress lines ('Batch', 'Delete batch')

        Returns:
            SyncResult: Totals over every submitted batch; batches left
                        unclaimed after cancellation are counted in `cancelled`
        """
        result = result if result is not None else SyncResult()
        if not batches:
            return result

        work = Queue()
        for batch in batches:
            work.put(batch)
        total = len(batches)
        completed = ThreadSafeCounter()

        def worker(worker_id):
            """Pull and upload batches until the queue is empty"""
            threading.current_thread().name = f"Upload-{worker_id}"

            while True:
                if self.cancel_event is not None and self.cancel_event.is_set():
                    return
                try:
                    batch = work.get_nowait()
                except Empty:
                    return

                self.in_flight.increment()
                try:
                    outcome = self.uploader.upload(batch, token)
                except Exception as e:
                    # Any uploader bug becomes a failed batch, never a dead worker
                    error = BatchError(f"{label} {batch.batch_id} crashed: {truncate(e, 200)}",
                                       batch_id=batch.batch_id)
                    outcome = BatchOutcome.failed_all(batch, error)
                finally:
                    self.in_flight.decrement()

                with self._result_lock:
                    result.record(outcome)
                done = completed.increment()
                try:
                    self._log_outcome(label, outcome, done, total)
                except Exception as e:
                    # The outcome is already recorded; keep draining the queue
                    thread_safe_print(f"[!] Progress log failed for {label} {batch.batch_id}: {truncate(e, 200)}")

        workers = min(self.concurrency, total)
        if is_debug_enabled():
            self.on_log(f"[DEBUG] Dispatching {total} batches with {workers} workers")

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(worker, index + 1) for index in range(workers)]
            for future in as_completed(futures):
                future.result()

        # Whatever is still queued was never claimed because of cancellation
        result.cancelled += work.qsize()
        if result.cancelled:
            self.on_log(f"[!] Cancelled: {result.cancelled} batches were not submitted")
        return result

    def _log_outcome(self, label, outcome, done, total):
        if outcome.failed == 0:
            self.on_log(f"[✓] {label} {outcome.batch_id}: {outcome.succeeded}/{outcome.submitted} succeeded "
                        f"({done}/{total})")
            return
        self.on_log(f"[!] {label} {outcome.batch_id}: {outcome.failed}/{outcome.submitted} failed "
                    f"({done}/{total})")
        for error in outcome.errors[:3]:
            self.on_log(f"    - {error}")
