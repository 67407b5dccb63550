# -*- coding: utf-8 -*-
"""
SharePoint List Sync Package
============================

This package provides modular components for synchronizing tabular rows
into SharePoint lists through Microsoft Graph, with schema reconciliation,
unique-key upserts, and bounded-concurrency $batch uploads.

Modules:
--------
- config: Configuration and argument parsing
- auth: Microsoft authentication (token providers)
- graph_api: Microsoft Graph API transport
- retry: Retry policy for transient failures
- paginator: Cursor pagination over list items
- schema: List and column reconciliation
- chunker: Splitting operations into $batch-sized groups
- uploader: Composite $batch submission
- dispatcher: Bounded-concurrency batch dispatch
- upsert: Create-vs-update resolution
- pipeline: Sync job orchestration
- monitoring: Rate limiting monitoring and summaries
- utils: Shared utility functions

Usage Example:
-------------
    from sharepoint_list_sync import Config, MsalTokenProvider, SyncPipeline
    from sharepoint_list_sync import ColumnDef, ColumnKind, ListDefinition, SyncMode

    cfg = Config(site_name='Quality', sharepoint_host_name='contoso.sharepoint.com',
                 tenant_id=tenant_id, client_id=client_id, client_secret=client_secret)
    provider = MsalTokenProvider(cfg.tenant_id, cfg.client_id, cfg.client_secret)
    definition = ListDefinition('downtime', [
        ColumnDef('Project', required=True),
        ColumnDef('year', required=True),
        ColumnDef('Month', required=True),
        ColumnDef('Hours', ColumnKind.NUMBER),
    ], unique_key=['Project', 'year', 'Month'])

    result = SyncPipeline(cfg, provider).sync_rows(definition, rows, mode=SyncMode.UPSERT)
"""

__version__ = "1.0.0"

# Main exports for convenience
from .config import parse_config, Config
from .auth import MsalTokenProvider, StaticTokenProvider
from .errors import (
    SyncError,
    AuthError,
    SchemaError,
    GraphApiError,
    TransientHttpError,
    BatchError,
    PaginationError,
    ValidationError
)
from .models import (
    ColumnDef,
    ColumnKind,
    ListDefinition,
    ListRef,
    Operation,
    OperationKind,
    Batch,
    BatchOutcome,
    SyncJob,
    SyncMode,
    SyncResult
)
from .graph_api import GraphListClient
from .retry import RetryPolicy
from .paginator import CursorPaginator
from .schema import SchemaReconciler, SchemaResult
from .chunker import chunk_operations
from .uploader import BatchUploader
from .dispatcher import BatchDispatcher
from .upsert import UpsertResolver, build_unique_key, index_existing_items
from .pipeline import SyncPipeline, SyncState
from .monitoring import RateLimitMonitor, print_rate_limiting_summary, print_sync_summary
from .utils import parse_site_url, is_debug_metadata_enabled, is_debug_enabled

__all__ = [
    # Configuration
    'parse_config',
    'Config',
    # Authentication
    'MsalTokenProvider',
    'StaticTokenProvider',
    # Errors
    'SyncError',
    'AuthError',
    'SchemaError',
    'GraphApiError',
    'TransientHttpError',
    'BatchError',
    'PaginationError',
    'ValidationError',
    # Data model
    'ColumnDef',
    'ColumnKind',
    'ListDefinition',
    'ListRef',
    'Operation',
    'OperationKind',
    'Batch',
    'BatchOutcome',
    'SyncJob',
    'SyncMode',
    'SyncResult',
    # Engine
    'GraphListClient',
    'RetryPolicy',
    'CursorPaginator',
    'SchemaReconciler',
    'SchemaResult',
    'chunk_operations',
    'BatchUploader',
    'BatchDispatcher',
    'UpsertResolver',
    'build_unique_key',
    'index_existing_items',
    'SyncPipeline',
    'SyncState',
    # Monitoring
    'RateLimitMonitor',
    'print_rate_limiting_summary',
    'print_sync_summary',
    # Utilities
    'parse_site_url',
    'is_debug_metadata_enabled',
    'is_debug_enabled',
]
