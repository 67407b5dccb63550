# -*- coding: utf-8 -*-
"""
Sync pipeline orchestration.

One SyncJob runs through a linear state machine:

    AUTHENTICATING -> ENSURE_SCHEMA -> CLEAR_EXISTING (full replace)
                                     | FETCH_EXISTING (upsert)
                   -> BUILD_OPERATIONS -> CHUNK -> DISPATCH -> COMPLETED

FAILED is reached only from authentication, schema and the fetch/clear
step; nothing has been written at that point except the clear step's
deletes. Batch failures during dispatch never fail the job: it completes
with a SyncResult whose `failed` count is nonzero.
"""

import time
from enum import Enum

from .chunker import chunk_operations
from .dispatcher import BatchDispatcher
from .errors import AuthError, GraphApiError, SchemaError, SyncError
from .graph_api import GraphListClient
from .models import SyncJob, SyncMode, SyncResult
from .paginator import CursorPaginator
from .retry import RetryPolicy
from .rows import undeclared_fields
from .schema import SchemaReconciler
from .thread_utils import console_log
from .upsert import UpsertResolver, build_delete_operations, index_existing_items
from .uploader import BatchUploader
from .utils import is_debug_enabled


class SyncState(Enum):
    AUTHENTICATING = "Authenticating"
    ENSURE_SCHEMA = "Ensuring schema"
    CLEAR_EXISTING = "Clearing existing items"
    FETCH_EXISTING = "Fetching existing items"
    BUILD_OPERATIONS = "Building operations"
    CHUNK = "Chunking"
    DISPATCH = "Dispatching batches"
    COMPLETED = "Completed"
    FAILED = "Failed"


def item_to_row(item):
    """Flatten a Graph item into its fields, with the item id under 'id'"""
    row = dict(item.get('fields') or {})
    row['id'] = str(item.get('id', row.get('id', '')))
    return row


class SyncPipeline:
    """
    Runs sync jobs against one SharePoint site.

    Example:
        pipeline = SyncPipeline(config, MsalTokenProvider(...))
        result = pipeline.sync_rows(definition, rows, mode=SyncMode.UPSERT)
        print(result.succeeded, result.failed)
    """

    def __init__(self, config, token_provider, client=None, session=None, on_log=None, sleep=time.sleep,
                 cancel_event=None, scopes=None):
        """
        Args:
            config (Config): Engine configuration
            token_provider: Object with get_token(scopes) -> str or None
            client (GraphListClient): Transport (built from config by default)
            session (requests.Session): HTTP session for the default client
            on_log (callable): Progress sink, called at every phase and batch outcome
            sleep (callable): Sleep function for retry delays (injectable for tests)
            cancel_event (threading.Event): Stops pagination and dispatch between requests
            scopes (list): Scopes passed to the token provider (None: provider default)
        """
        self.config = config
        self.token_provider = token_provider
        self.on_log = on_log or console_log
        self.sleep = sleep
        self.cancel_event = cancel_event
        self.scopes = scopes
        self.retry_policy = RetryPolicy(max_attempts=config.max_retry, default_hint=config.default_retry_after)
        self.client = client or GraphListClient(
            site_id=config.site_id,
            graph_endpoint=config.graph_endpoint,
            session=session,
            timeout=config.request_timeout,
            retry_policy=self.retry_policy,
            on_log=self.on_log,
            sleep=sleep
        )
        self.state = None
        self.history = []

    def _transition(self, state):
        self.state = state
        self.history.append(state)
        if state is SyncState.FAILED:
            self.on_log(f"[!] State: {state.value}")
        elif state is not SyncState.COMPLETED:
            self.on_log(f"[*] {state.value}...")

    def authenticate(self):
        """
        Acquire a bearer token for the job.

        Returns:
            str: Token, shared read-only by every phase and worker

        Raises:
            AuthError: If no token can be acquired
        """
        self._transition(SyncState.AUTHENTICATING)
        try:
            token = self.token_provider.get_token(self.scopes)
        except Exception as e:
            raise AuthError(f"Token acquisition failed: {e}") from e
        if not token:
            raise AuthError("Token acquisition failed.")
        return token

    def _ensure_site(self, token):
        if self.client.site_id:
            return
        try:
            site_id = self.client.resolve_site_id(self.config.sharepoint_host_name, self.config.site_path, token)
        except GraphApiError as e:
            raise SchemaError(f"Could not resolve site '{self.config.tenant_url}': {e}") from e
        if is_debug_enabled():
            self.on_log(f"[DEBUG] Site ID: {site_id}")

    def ensure_schema(self, definition, token=None):
        """
        Ensure the list and its declared columns exist.

        Args:
            definition (ListDefinition): Declared list schema
            token (str): Bearer token (acquired when omitted)

        Returns:
            SchemaResult: Resolved list reference and column map

        Raises:
            AuthError: If no token can be acquired
            SchemaError: If the list cannot be ensured, or a column failed under strict_schema
        """
        if token is None:
            token = self.authenticate()
        self._transition(SyncState.ENSURE_SCHEMA)
        self._ensure_site(token)

        reconciler = SchemaReconciler(
            self.client,
            on_log=self.on_log,
            column_retries=self.config.column_retries,
            column_retry_delay=self.config.column_retry_delay,
            sleep=self.sleep
        )
        schema = reconciler.ensure_schema(definition, token)
        if self.config.strict_schema and schema.failed_columns:
            names = ", ".join(error.column for error in schema.failed_columns)
            raise SchemaError(f"Missing columns on '{definition.display_name}': {names}")
        return schema

    def _fetch_items(self, list_ref, token):
        paginator = CursorPaginator(
            self.client, list_ref, token,
            page_size=self.config.page_size,
            cancel_event=self.cancel_event,
            on_log=self.on_log
        )
        items = paginator.fetch_all()
        self.on_log(f"[=] '{list_ref.display_name}': {len(items)} existing items "
                    f"({paginator.requests_made} pages)")
        return items

    def fetch_all(self, list_ref, token=None):
        """
        Read every item of a list.

        Args:
            list_ref (ListRef): List to read
            token (str): Bearer token (acquired when omitted)

        Returns:
            list: One dict of fields per item, with the item id under 'id'

        Raises:
            AuthError: If no token can be acquired
            PaginationError: If any page fails
        """
        if token is None:
            token = self.authenticate()
        return [item_to_row(item) for item in self._fetch_items(list_ref, token)]

    def sync_rows(self, definition, rows, mode=None, concurrency=None, batch_size=None):
        """
        Synchronize rows into a list.

        Args:
            definition (ListDefinition): Target list schema and unique key
            rows (list): Row dictionaries keyed by column display name
            mode (SyncMode): Upsert or full replace (default: config.mode)
            concurrency (int): Parallel batch uploads (default: config.max_upload_workers)
            batch_size (int): Operations per batch (default: config.batch_size)

        Returns:
            SyncResult: Terminal result, possibly with failed operations

        Raises:
            AuthError, SchemaError, PaginationError: Fatal phase errors
        """
        job = SyncJob(
            definition,
            rows,
            mode=mode or self.config.mode,
            concurrency=concurrency or self.config.max_upload_workers,
            batch_size=batch_size or self.config.batch_size,
            retry_policy=self.retry_policy
        )
        return self.run(job)

    def run(self, job):
        """
        Execute one sync job through every phase.

        Returns:
            SyncResult: Terminal result

        Raises:
            AuthError, SchemaError, PaginationError: Fatal phase errors (state FAILED)
            SyncError: Any other failure before dispatch, chained to its cause (state FAILED)
        """
        started = time.time()
        definition = job.definition
        self.history = []
        self.on_log(f"[*] Sync '{definition.display_name}': {len(job.rows)} rows, "
                    f"mode={job.mode.value}, workers={job.concurrency}")

        dropped = undeclared_fields(job.rows, definition)
        if dropped:
            self.on_log(f"[!] Ignoring undeclared fields: {', '.join(dropped)}")

        result = SyncResult()
        try:
            token = self.authenticate()
            schema = self.ensure_schema(definition, token)
            resolver = UpsertResolver(definition, column_map=schema.column_map, on_log=self.on_log)

            if job.mode is SyncMode.FULL_REPLACE:
                self._clear_existing(schema, token, job, result)
                self._transition(SyncState.BUILD_OPERATIONS)
                operations, rejected = resolver.build_full_replace(job.rows)
            else:
                self._transition(SyncState.FETCH_EXISTING)
                items = self._fetch_items(schema.list_ref, token)
                key_columns = [schema.internal_name(name) for name in definition.unique_key]
                existing, ambiguous = index_existing_items(items, key_columns)
                if ambiguous:
                    self.on_log(f"[!] {len(ambiguous)} unique keys match several existing items")
                self._transition(SyncState.BUILD_OPERATIONS)
                operations, rejected = resolver.resolve(existing, job.rows, ambiguous)
        except Exception as e:
            phase = self.state
            self._transition(SyncState.FAILED)
            self.on_log(f"[!] Sync '{definition.display_name}' failed: {e}")
            if isinstance(e, (SyncError, ValueError)):
                raise
            raise SyncError(f"Unexpected error while {phase.value.lower()}: {e}") from e

        result.rejected.extend(rejected)
        for error in rejected:
            self.on_log(f"[!] Skipped {error}")
        updates = sum(1 for op in operations if op.item_id)
        self.on_log(f"[=] {len(operations)} operations: {len(operations) - updates} creates, {updates} updates")

        self._transition(SyncState.CHUNK)
        batches = chunk_operations(operations, job.batch_size)

        self._transition(SyncState.DISPATCH)
        uploader = BatchUploader(
            self.client, schema.list_ref,
            retry_policy=job.retry_policy or self.retry_policy,
            on_log=self.on_log,
            sleep=self.sleep
        )
        dispatcher = BatchDispatcher(uploader, concurrency=job.concurrency, on_log=self.on_log,
                                     cancel_event=self.cancel_event)
        dispatcher.dispatch(batches, token, result=result)

        self._transition(SyncState.COMPLETED)
        elapsed = time.time() - started
        marker = "[✓]" if result.failed == 0 else "[!]"
        self.on_log(f"{marker} Completed '{definition.display_name}': {result.succeeded}/{result.submitted} "
                    f"operations succeeded in {len(batches)} batches ({elapsed:.3f}s)")
        return result

    def _clear_existing(self, schema, token, job, result):
        """
        Delete every existing item before a full replace.

        Skipped for a list created in this run. Pagination failure is fatal;
        failed delete batches are recorded in result.errors and the job goes on.
        """
        self._transition(SyncState.CLEAR_EXISTING)
        list_ref = schema.list_ref
        if schema.created_list:
            self.on_log(f"[=] '{list_ref.display_name}' was just created; nothing to clear")
            return

        items = self._fetch_items(list_ref, token)
        if not items:
            return

        self.on_log(f"[*] Deleting {len(items)} existing items")
        batches = chunk_operations(build_delete_operations(items), job.batch_size)
        uploader = BatchUploader(
            self.client, list_ref,
            retry_policy=job.retry_policy or self.retry_policy,
            on_log=self.on_log,
            sleep=self.sleep
        )
        dispatcher = BatchDispatcher(uploader, concurrency=job.concurrency, on_log=self.on_log,
                                     cancel_event=self.cancel_event)
        cleared = dispatcher.dispatch(batches, token, label="Delete batch")

        result.deleted = cleared.succeeded
        result.errors.extend(cleared.errors)
        if cleared.failed:
            self.on_log(f"[!] {cleared.failed}/{cleared.submitted} existing items could not be deleted; "
                        f"they will remain next to the new rows")
        else:
            self.on_log(f"[✓] Deleted {cleared.succeeded} existing items")
