# -*- coding: utf-8 -*-
"""
Configuration management for SharePoint list sync.

This module handles command-line argument parsing and configuration setup.
A Config instance is passed explicitly to the sync pipeline; nothing reads
configuration from module-level state.
"""

import os
import sys

from dotenv import load_dotenv

from .models import MAX_BATCH_SIZE, SyncMode
from .retry import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_AFTER_SECONDS
from .utils import parse_site_url

# Upper bound on parallel $batch calls to stay clear of Graph throttling
MAX_UPLOAD_WORKERS_LIMIT = 10


def _flag(value, default):
    if value is None or value == "":
        return default
    return str(value).strip().lower() == "true"


def _arg(argv, position):
    """Positional argument or None when absent/blank"""
    if len(argv) > position and argv[position] != "":
        return argv[position]
    return None


class Config:
    """Configuration for SharePoint list sync operations"""

    def __init__(self, site_name="", sharepoint_host_name="", tenant_id="", client_id="",
                 client_secret="", list_name="", rows_file="", mode="upsert", unique_key=None,
                 max_retry=DEFAULT_MAX_ATTEMPTS, login_endpoint="login.microsoftonline.com",
                 graph_endpoint="graph.microsoft.com", max_upload_workers=4, batch_size=MAX_BATCH_SIZE,
                 strict_schema=False, debug=False, debug_metadata=False, site_id=None,
                 default_retry_after=DEFAULT_RETRY_AFTER_SECONDS, column_retries=3,
                 column_retry_delay=2.0, page_size=999, request_timeout=60, site_url=None):
        # Site and credentials
        self.site_name = site_name
        self.sharepoint_host_name = sharepoint_host_name
        self._site_path = None
        if site_url:
            # Full URL form also covers OneDrive personal sites (/personal/<user>)
            self.sharepoint_host_name, self._site_path = parse_site_url(site_url)
            self.site_name = self._site_path.split("/", 1)[1]
        self.site_id = site_id
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.login_endpoint = login_endpoint
        self.graph_endpoint = graph_endpoint

        # Job
        self.list_name = list_name
        self.rows_file = rows_file
        self.mode = SyncMode.parse(mode)
        if isinstance(unique_key, str):
            unique_key = [k.strip() for k in unique_key.split(',') if k.strip()]
        self.unique_key = list(unique_key or [])

        # Engine tuning
        self.max_retry = int(max_retry)
        self.default_retry_after = float(default_retry_after)
        self.max_upload_workers = min(int(max_upload_workers), MAX_UPLOAD_WORKERS_LIMIT)
        self.batch_size = min(int(batch_size), MAX_BATCH_SIZE)
        self.column_retries = int(column_retries)
        self.column_retry_delay = float(column_retry_delay)
        self.page_size = int(page_size)
        self.request_timeout = request_timeout
        self.strict_schema = strict_schema

        # Debug flags
        self.debug = debug
        self.debug_metadata = debug_metadata

    @property
    def site_path(self):
        """Graph site path, e.g. 'sites/Quality' or 'personal/jdoe_contoso_com'"""
        return self._site_path or f"sites/{self.site_name}"

    @property
    def tenant_url(self):
        return f'https://{self.sharepoint_host_name}/{self.site_path}'

    @classmethod
    def from_argv(cls, argv=None):
        """
        Build a configuration from positional command-line arguments.

        Arguments are parsed in the following order:
        1. site_name - SharePoint site name, or a full site URL
           (https://contoso.sharepoint.com/sites/Quality, https://contoso-my.sharepoint.com/personal/jdoe)
        2. sharepoint_host_name - SharePoint domain
        3. tenant_id - Azure AD tenant ID (blank: TENANT_ID env var)
        4. client_id - App registration client ID (blank: CLIENT_ID env var)
        5. client_secret - App registration client secret (blank: CLIENT_SECRET env var)
        6. list_name - Display name of the target list
        7. rows_file - JSON file with the rows to sync
        8. mode (optional) - 'upsert' or 'full_replace' (default: upsert)
        9. unique_key (optional) - Comma-separated key columns (default: "")
        10. max_retry (optional) - Max attempts per batch (default: 5)
        11. login_endpoint (optional) - Azure AD endpoint (default: login.microsoftonline.com)
        12. graph_endpoint (optional) - Graph API endpoint (default: graph.microsoft.com)
        13. max_upload_workers (optional) - Concurrent batch uploads (default: 4, max 10)
        14. batch_size (optional) - Operations per $batch call (default: 20, max 20)
        15. strict_schema (optional) - Abort if a column cannot be created (default: False)
        16. debug (optional) - Enable general debug output (default: False)
        17. debug_metadata (optional) - Enable Graph request debug output (default: False)

        Args:
            argv (list): Argument vector including program name (default: sys.argv)

        Returns:
            Config: Unvalidated configuration
        """
        argv = sys.argv if argv is None else argv
        # Secrets may come from a .env file instead of the command line
        load_dotenv()

        site = _arg(argv, 1) or ""
        site_url = site if site.lower().startswith("https://") else None

        return cls(
            site_name="" if site_url else site,
            site_url=site_url,
            sharepoint_host_name=_arg(argv, 2) or "",
            tenant_id=_arg(argv, 3) or os.environ.get("TENANT_ID", ""),
            client_id=_arg(argv, 4) or os.environ.get("CLIENT_ID", ""),
            client_secret=_arg(argv, 5) or os.environ.get("CLIENT_SECRET", ""),
            list_name=_arg(argv, 6) or "",
            rows_file=_arg(argv, 7) or "",
            mode=_arg(argv, 8) or "upsert",
            unique_key=_arg(argv, 9) or "",
            max_retry=_arg(argv, 10) or DEFAULT_MAX_ATTEMPTS,
            login_endpoint=_arg(argv, 11) or "login.microsoftonline.com",
            graph_endpoint=_arg(argv, 12) or "graph.microsoft.com",
            max_upload_workers=_arg(argv, 13) or 4,
            batch_size=_arg(argv, 14) or MAX_BATCH_SIZE,
            strict_schema=_flag(_arg(argv, 15), False),
            debug=_flag(_arg(argv, 16), False),
            debug_metadata=_flag(_arg(argv, 17), False),
        )

    def validate(self, require_job=True):
        """
        Validate configuration values.

        Args:
            require_job (bool): Also require list_name and rows_file (CLI use)

        Raises:
            ValueError: If configuration is invalid
        """
        if not self.site_id:
            if not self.site_name:
                raise ValueError("site_name cannot be empty")
            if not self.sharepoint_host_name:
                raise ValueError("sharepoint_host_name cannot be empty")
        if not self.tenant_id:
            raise ValueError("tenant_id cannot be empty")
        if not self.client_id:
            raise ValueError("client_id cannot be empty")
        if not self.client_secret:
            raise ValueError("client_secret cannot be empty")
        if require_job:
            if not self.list_name:
                raise ValueError("list_name cannot be empty")
            if not self.rows_file:
                raise ValueError("rows_file cannot be empty")
        if self.mode is SyncMode.UPSERT and require_job and not self.unique_key:
            raise ValueError("upsert mode requires unique_key")
        if self.max_retry < 1:
            raise ValueError("max_retry must be at least 1")
        if self.max_upload_workers < 1:
            raise ValueError("max_upload_workers must be at least 1")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.column_retries < 1:
            raise ValueError("column_retries must be at least 1")
        if self.page_size < 1:
            raise ValueError("page_size must be at least 1")


def parse_config(argv=None):
    """
    Parse configuration from command-line arguments.

    Returns:
        Config: Configured Config object

    Raises:
        ValueError: If configuration is invalid
    """
    config = Config.from_argv(argv)
    config.validate()
    return config
