# -*- coding: utf-8 -*-
"""
Composite $batch submission for SharePoint list writes.

One Batch becomes one POST to /$batch. Top-level transient failures resubmit
the whole batch after the retry policy's delay. When the composite call
succeeds, each sub-response is checked so that success and failure are
counted per operation; operations throttled inside the batch (429, 500, 503
sub-responses) are resubmitted on their own.

Known risk:
    A batch is resubmitted in full when its response is lost or throttled.
    If an earlier attempt was in fact applied, Create operations in it are
    applied twice; there is no server-side idempotency key for list items.
"""

import time

from .errors import BatchError, GraphApiError, TransientHttpError
from .models import BatchOutcome
from .retry import RetryPolicy, parse_retry_after
from .thread_utils import console_log
from .utils import is_debug_enabled, truncate


def _sub_response_error(result):
    """Extract the Graph error message from a failed sub-response body"""
    body = result.get('body')
    if isinstance(body, dict):
        error = body.get('error')
        if isinstance(error, dict):
            return error.get('message') or error.get('code') or ''
    return truncate(body, 200) if body else ''


def _sub_response_retry_after(result):
    """Retry-After hint of one sub-response, in seconds"""
    headers = result.get('headers') or {}
    for name, value in headers.items():
        if name.lower() == 'retry-after':
            return parse_retry_after(value)
    return None


def _describe(operation):
    """Short label for an operation, e.g. 'update 17' or 'create row 4'"""
    if operation.item_id:
        return f"{operation.kind.value} {operation.item_id}"
    if operation.row_index is not None:
        return f"{operation.kind.value} row {operation.row_index + 1}"
    return operation.kind.value


class BatchUploader:
    """Submits one batch per call, applying the retry policy"""

    def __init__(self, client, list_ref, retry_policy=None, on_log=None, sleep=time.sleep):
        """
        Args:
            client (GraphListClient): Transport for the $batch call
            list_ref (ListRef): List every operation targets
            retry_policy (RetryPolicy): Backoff and attempt limit
            on_log (callable): Progress sink
            sleep (callable): Sleep function (injectable for tests)
        """
        self.client = client
        self.list_ref = list_ref
        self.retry_policy = retry_policy or RetryPolicy()
        self.on_log = on_log or console_log
        self.sleep = sleep

    def build_requests(self, batch):
        """Render a batch as $batch sub-requests with ids '0'..'n-1'"""
        return self._render(batch.operations)

    def _render(self, operations):
        return [op.to_batch_request(str(index), self.list_ref) for index, op in enumerate(operations)]

    def upload(self, batch, token):
        """
        Submit a batch, retrying transient failures.

        A transient top-level failure resubmits every pending operation. When
        the composite call succeeds but some sub-responses are 429, 500 or
        503, only those operations are resubmitted: they were not applied.
        Both kinds of retry share one attempt budget.

        Args:
            batch (Batch): Operations to submit
            token (str): Bearer token

        Returns:
            BatchOutcome: Per-operation success/failure counts and errors.
                          Never raises for HTTP or network failures.
        """
        policy = self.retry_policy
        outcome = BatchOutcome(batch.batch_id, len(batch))
        pending = list(batch.operations)
        attempt = 0

        while True:
            attempt += 1
            outcome.attempts = attempt
            try:
                response = self.client.post_batch(self._render(pending), token)
                status = response.status_code
                hint = parse_retry_after(response.headers.get('Retry-After'))
                detail = f"HTTP {status}"
            except TransientHttpError as e:
                response = None
                status = None
                hint = e.retry_after
                detail = str(e)
            except GraphApiError as e:
                self._fail_pending(outcome, pending, BatchError(f"Batch {batch.batch_id} failed: {e}",
                                                                batch_id=batch.batch_id))
                return outcome

            if response is not None and status == 200:
                throttled = self._record_sub_responses(batch, pending, response, outcome)
                if not throttled:
                    return outcome
                status = max(result.get('status') for _, result in throttled)
                hints = [_sub_response_retry_after(result) for _, result in throttled]
                hints = [h for h in hints if h is not None]
                if policy.should_retry(status, attempt):
                    delay = policy.next_delay(attempt, max(hints) if hints else None)
                    self.on_log(f"[!] Batch {batch.batch_id}: {len(throttled)} operations throttled. "
                                f"Retrying them in {delay:g} seconds... ({attempt}/{policy.max_attempts})")
                    self.sleep(delay)
                    pending = [operation for operation, _ in throttled]
                    continue
                for operation, result in throttled:
                    self._record_failure(batch, operation, result, outcome,
                                         suffix=f" after {attempt} attempts")
                return outcome

            if policy.should_retry(status, attempt):
                delay = policy.next_delay(attempt, hint)
                self.on_log(f"[!] Batch {batch.batch_id}: {detail}. Retrying in {delay:g} seconds... "
                            f"({attempt}/{policy.max_attempts})")
                self.sleep(delay)
                continue

            if policy.is_retryable(status):
                message = f"Batch {batch.batch_id} failed after {attempt} attempts: {detail}"
            else:
                message = f"Batch {batch.batch_id} failed: {detail}"
                if response is not None:
                    message += f" {truncate(response.text, 200)}"
            self._fail_pending(outcome, pending, BatchError(message, batch_id=batch.batch_id, status_code=status))
            return outcome

    @staticmethod
    def _fail_pending(outcome, pending, error):
        outcome.failed += len(pending)
        outcome.errors.append(error)

    def _record_sub_responses(self, batch, pending, response, outcome):
        """
        Attribute success or failure to each pending operation of an accepted batch.

        Sub-responses missing from the composite body count as failed.

        Returns:
            list: (operation, sub-response) pairs with a retryable status
        """
        try:
            results = response.json().get('responses', [])
        except (ValueError, AttributeError):
            self._fail_pending(outcome, pending, BatchError(
                f"Batch {batch.batch_id}: unreadable composite response", batch_id=batch.batch_id))
            return []

        statuses = {}
        for result in results:
            try:
                statuses[int(result['id'])] = result
            except (KeyError, TypeError, ValueError):
                continue

        failed_before = outcome.failed
        throttled = []
        for index, operation in enumerate(pending):
            result = statuses.get(index)
            status = result.get('status', 0) if result is not None else None
            if status is not None and 200 <= status < 300:
                outcome.succeeded += 1
            elif status and self.retry_policy.is_retryable(status):
                throttled.append((operation, result))
            else:
                self._record_failure(batch, operation, result, outcome)

        failed_now = outcome.failed - failed_before
        if failed_now and is_debug_enabled():
            self.on_log(f"[DEBUG] Batch {batch.batch_id}: {failed_now}/{len(pending)} operations failed")
        return throttled

    @staticmethod
    def _record_failure(batch, operation, result, outcome, suffix=""):
        outcome.failed += 1
        if result is None:
            reason = "no sub-response returned"
            status = None
        else:
            status = result.get('status')
            reason = f"HTTP {status} {_sub_response_error(result)}".strip()
        outcome.errors.append(BatchError(
            f"Batch {batch.batch_id}: {_describe(operation)} failed{suffix}: {reason}",
            batch_id=batch.batch_id,
            status_code=status
        ))
