# -*- coding: utf-8 -*-
"""
Schema reconciliation for SharePoint lists.

Ensures a list exists (matched by display name) and that every declared
column is present. Column creation is retried per column with a fixed
delay; a column that still cannot be created is logged and skipped, since
writes to a missing column are dropped by SharePoint rather than rejected.
"""

import time

from .errors import GraphApiError, SchemaError
from .models import ListRef
from .thread_utils import console_log
from .utils import is_debug_enabled

DEFAULT_COLUMN_RETRIES = 3
DEFAULT_COLUMN_RETRY_DELAY = 2.0


class SchemaResult:
    """
    Outcome of one ensure_schema call.

    Attributes:
        list_ref (ListRef): Resolved list
        created_list (bool): True if the list did not exist and was created
        created_columns (list): Display names of columns created by this call
        failed_columns (list): SchemaError per column that could not be created
        column_map (dict): Display name -> internal name for present columns
    """

    def __init__(self, list_ref, created_list=False):
        self.list_ref = list_ref
        self.created_list = created_list
        self.created_columns = []
        self.failed_columns = []
        self.column_map = {}

    def internal_name(self, display_name):
        """Internal column name for a display name, or the name itself when unknown"""
        return self.column_map.get(display_name, display_name)

    def has_column(self, display_name):
        return display_name in self.column_map

    @property
    def ok(self):
        return not self.failed_columns


class SchemaReconciler:
    """Ensures lists and their declared columns exist"""

    def __init__(self, client, on_log=None, column_retries=DEFAULT_COLUMN_RETRIES,
                 column_retry_delay=DEFAULT_COLUMN_RETRY_DELAY, sleep=time.sleep):
        """
        Args:
            client (GraphListClient): Transport bound to the target site
            on_log (callable): Progress sink
            column_retries (int): Attempts per column before giving up
            column_retry_delay (float): Fixed seconds between column attempts
            sleep (callable): Sleep function (injectable for tests)
        """
        if column_retries < 1:
            raise ValueError("column_retries must be at least 1")
        self.client = client
        self.on_log = on_log or console_log
        self.column_retries = column_retries
        self.column_retry_delay = column_retry_delay
        self.sleep = sleep

    def ensure_schema(self, definition, token):
        """
        Ensure the list and every declared column exist.

        Running this twice with the same definition never creates a column
        twice: presence is checked by display name before creating.

        Args:
            definition (ListDefinition): Declared list schema
            token (str): Bearer token with Sites.Manage.All

        Returns:
            SchemaResult: Resolved list, created/failed columns and column map

        Raises:
            SchemaError: If the list cannot be found/created or its columns cannot be read
        """
        name = definition.display_name
        self.on_log(f"[*] Preparing list: {name}")

        try:
            list_id = self.client.find_list_by_name(name, token)
        except GraphApiError as e:
            raise SchemaError(f"Could not look up list '{name}': {e}") from e

        created_list = False
        if not list_id:
            self.on_log(f"[+] Creating list '{name}'...")
            try:
                list_id = self.client.create_list(definition, token)
            except GraphApiError as e:
                raise SchemaError(f"Could not create list '{name}': {e}") from e
            created_list = True
            self.on_log(f"[✓] Created '{name}' (ID: {list_id})")
        elif is_debug_enabled():
            self.on_log(f"[=] '{name}' exists (ID: {list_id})")

        result = SchemaResult(ListRef(self.client.site_id, list_id, name), created_list=created_list)

        try:
            existing = self.client.get_columns(list_id, token)
        except GraphApiError as e:
            raise SchemaError(f"Could not read columns of '{name}': {e}") from e
        result.column_map = {display: meta['internal_name'] for display, meta in existing.items()}

        for column in definition.columns:
            if column.name in existing:
                continue
            internal_name = self._create_column_with_retry(list_id, column, token)
            if internal_name:
                result.created_columns.append(column.name)
                result.column_map[column.name] = internal_name
                self.on_log(f"[+] Created column '{column.name}'")
            else:
                error = SchemaError(
                    f"Could not create column '{column.name}' on '{name}' after {self.column_retries} attempts; "
                    f"values for it will be dropped",
                    column=column.name
                )
                result.failed_columns.append(error)
                self.on_log(f"[!] {error}")

        if result.created_columns or result.failed_columns:
            self.on_log(f"[✓] Schema for '{name}': {len(result.created_columns)} columns created, "
                        f"{len(result.failed_columns)} failed")
        else:
            self.on_log(f"[✓] Schema for '{name}' already up to date")
        return result

    def _create_column_with_retry(self, list_id, column, token):
        """
        Create one column, retrying with a fixed delay.

        Returns:
            str: Internal name, or None once attempts are exhausted
        """
        for attempt in range(1, self.column_retries + 1):
            try:
                return self.client.create_column(list_id, column, token)
            except GraphApiError as e:
                self.on_log(f"[!] Failed to create column '{column.name}' "
                            f"(attempt {attempt}/{self.column_retries}): {e}")
            if attempt < self.column_retries:
                self.sleep(self.column_retry_delay)
        return None
