#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SharePoint List Sync Script
===========================

PURPOSE:
    This script pushes tabular rows (exported spreadsheets, KPI forms, report
    extracts) into a SharePoint list through Microsoft Graph, typically from a
    scheduled job or CI/CD pipeline.

SYNOPSIS:
    python main.py <site_name> <sharepoint_host> <tenant_id>
                   <client_id> <client_secret> <list_name>
                   <rows_file> [mode] [unique_key] [max_retry]
                   [login_endpoint] [graph_endpoint] [max_upload_workers]
                   [batch_size] [strict_schema] [debug] [debug_metadata]

PARAMETERS:
    Required Parameters:
    -------------------
    <site_name>
        SharePoint site name from your site URL.
        `Example`: For 'https://company.sharepoint.com/sites/Quality', use 'Quality'
        `Position`: 1

    <sharepoint_host>
        SharePoint tenant domain name.
        `Example`: 'company.sharepoint.com' (GovCloud: 'company.sharepoint.us')
        `Position`: 2

    <tenant_id> <client_id> <client_secret>
        Azure AD tenant and App Registration credentials.
        Leave blank ('') to read TENANT_ID, CLIENT_ID and CLIENT_SECRET from
        the environment or a .env file.
        The app needs Sites.ReadWrite.All, plus Sites.Manage.All to create
        lists and columns.
        `Position`: 3-5

    <list_name>
        Display name of the target list. Created when missing.
        `Position`: 6

    <rows_file>
        JSON file with the rows to sync, either a list of row objects:
            [{"Project": "A", "year": "2024", "Month": "01", "Hours": 12}, ...]
        or an object declaring the columns:
            {"columns": [{"name": "Project", "type": "text", "required": true},
                         {"name": "Hours", "type": "number"}],
             "unique_key": ["Project", "year", "Month"],
             "rows": [...]}
        With a plain list every column is created as Text.
        `Position`: 7

    Optional Parameters:
    -------------------
    [mode]
        'upsert' (update rows matched by unique key, create the rest) or
        'full_replace' (delete every existing item, then create all rows).
        Default: 'upsert'
        `Position`: 8

    [unique_key]
        Comma-separated key columns, e.g. 'Project,year,Month'.
        Required for upsert unless the rows file declares one.
        `Position`: 9

    [max_retry]
        Maximum attempts per $batch call on 429/500/503 and network errors.
        Default: 5
        `Position`: 10

    [login_endpoint] [graph_endpoint]
        Endpoints for special cloud environments.
        Defaults: 'login.microsoftonline.com', 'graph.microsoft.com'
        `Position`: 11-12

    [max_upload_workers]
        Concurrent $batch calls. Default: 4, maximum 10.
        `Position`: 13

    [batch_size]
        Operations per $batch call. Default and maximum: 20.
        `Position`: 14

    [strict_schema]
        'True' to abort when a column cannot be created. Default: 'False'
        `Position`: 15

    [debug] [debug_metadata]
        'True' to enable per-batch progress, and Graph request/response output.
        `Position`: 16-17

EXIT CODES:
    0 - Every operation succeeded
    1 - Configuration error, fatal sync error, or any failed/rejected row
"""

import json
import os
import sys
import time

from sharepoint_list_sync.auth import MsalTokenProvider
from sharepoint_list_sync.config import Config
from sharepoint_list_sync.errors import SyncError
from sharepoint_list_sync.models import ColumnDef, ListDefinition
from sharepoint_list_sync.monitoring import print_rate_limiting_summary, print_sync_summary
from sharepoint_list_sync.pipeline import SyncPipeline
from sharepoint_list_sync.utils import is_debug_enabled


def _column_from_json(entry, unique_key):
    if isinstance(entry, str):
        return ColumnDef(entry, required=entry in unique_key)
    if not isinstance(entry, dict) or not entry.get('name'):
        raise ValueError(f"Invalid column declaration: {entry!r}")
    name = entry['name']
    return ColumnDef(
        name,
        entry.get('type', 'text'),
        required=bool(entry.get('required', name in unique_key))
    )


def load_rows_file(path, list_name, unique_key=None):
    """
    Load rows and the list definition from a JSON file.

    Args:
        path (str): Rows file path
        list_name (str): Display name of the target list
        unique_key (list): Key columns from the command line (override the file's)

    Returns:
        tuple: (ListDefinition, rows)

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is not valid JSON or has an unexpected layout
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    unique_key = list(unique_key or [])
    if isinstance(data, list):
        return ListDefinition.from_rows(list_name, data, unique_key), data

    if not isinstance(data, dict) or not isinstance(data.get('rows'), list):
        raise ValueError("Rows file must hold a list of rows or an object with a 'rows' list")

    rows = data['rows']
    unique_key = unique_key or list(data.get('unique_key') or [])
    columns = data.get('columns')
    if not columns:
        return ListDefinition.from_rows(list_name, rows, unique_key), rows

    definition = ListDefinition(
        list_name,
        [_column_from_json(entry, unique_key) for entry in columns],
        unique_key
    )
    return definition, rows


def main(argv=None):
    """
    Main execution function that orchestrates the list sync.

    Process:
        1. Parse configuration from command-line arguments
        2. Load rows and the list definition
        3. Run the sync pipeline (auth, schema, existing items, batches)
        4. Print summary statistics and exit with the matching code
    """
    try:
        config = Config.from_argv(argv)
        config.validate(require_job=False)
        if not config.list_name or not config.rows_file:
            raise ValueError("list_name and rows_file are required")
    except ValueError as e:
        print(f"[Error] Invalid configuration: {e}")
        sys.exit(1)

    # Set environment variables for debug flags (enables existing debug checks in utils.py)
    if config.debug:
        os.environ['DEBUG'] = 'true'
    if config.debug_metadata:
        os.environ['DEBUG_METADATA'] = 'true'

    # ============================================================
    # [1/4] CONFIGURATION
    # ============================================================
    print("\n" + "="*60)
    print("[1/4] CONFIGURATION")
    print("="*60)
    print(f"[=] Site:              {config.tenant_url}")
    print(f"[=] List:              {config.list_name}")
    print(f"[=] Mode:              {config.mode.value}")
    print(f"[✓] Parallel batches:  {config.max_upload_workers} workers, {config.batch_size} operations/batch")
    print(f"[=] Max attempts:      {config.max_retry}")
    if config.strict_schema:
        print("[!] Strict schema: a column that cannot be created aborts the sync")

    # ============================================================
    # [2/4] LOADING ROWS
    # ============================================================
    load_start = time.time()
    print("\n" + "="*60)
    print("[2/4] LOADING ROWS")
    print("="*60)
    print(f"[*] Rows file: {config.rows_file}")
    try:
        definition, rows = load_rows_file(config.rows_file, config.list_name, config.unique_key)
    except (OSError, ValueError) as e:
        print(f"[Error] Could not load rows: {e}")
        sys.exit(1)

    if not rows:
        print("[!] Rows file contains no rows")
        sys.exit(1)

    print(f"[✓] Loaded {len(rows)} rows, {len(definition.columns)} columns "
          f"({time.time() - load_start:.3f}s)")
    if definition.unique_key:
        print(f"[=] Unique key: {', '.join(definition.unique_key)}")
    if is_debug_enabled():
        for column in definition.columns:
            print(f"[DEBUG] {column!r}")

    # ============================================================
    # [3/4] SYNCHRONIZATION
    # ============================================================
    sync_start = time.time()
    print("\n" + "="*60)
    print("[3/4] SYNCHRONIZATION")
    print("="*60)

    provider = MsalTokenProvider(
        config.tenant_id,
        config.client_id,
        config.client_secret,
        login_endpoint=config.login_endpoint,
        graph_endpoint=config.graph_endpoint
    )
    pipeline = SyncPipeline(config, provider)

    try:
        result = pipeline.sync_rows(definition, rows)
    except ValueError as e:
        # Job-level misconfiguration, e.g. upsert without a unique key
        print(f"[Error] {e}")
        sys.exit(1)
    except SyncError as e:
        print(f"[Error] Sync failed: {e}")
        print("[!] Ensure that:")
        print("    - Your credentials are correct")
        print("    - The site URL is correct")
        print("    - The app has Sites.ReadWrite.All and Sites.Manage.All")
        print_rate_limiting_summary(pipeline.client.monitor)
        sys.exit(1)

    # ============================================================
    # [4/4] SUMMARY
    # ============================================================
    print("\n" + "="*60)
    print("[4/4] SUMMARY")
    print("="*60)
    print_sync_summary(result, definition.display_name, elapsed=time.time() - sync_start)
    print_rate_limiting_summary(pipeline.client.monitor)

    # Exit code 0 = success, 1 = failure
    if not result.ok:
        print(f"[!] {result.failed} operation(s) failed, {len(result.rejected)} row(s) rejected")
        sys.exit(1)

    if is_debug_enabled():
        print("[✓] All rows synchronized successfully")


if __name__ == "__main__":
    main()
