# -*- coding: utf-8 -*-
"""
Shared utility functions for SharePoint list sync operations.

This module provides common helper functions used across multiple modules.
"""

import os
from urllib.parse import urlparse


def parse_site_url(site_url):
    """
    Split a SharePoint site URL into host name and Graph site path.

    Args:
        site_url (str): Site URL such as 'https://contoso.sharepoint.com/sites/Quality'
                        or 'https://contoso-my.sharepoint.com/personal/jdoe_contoso_com'

    Returns:
        tuple: (host_name, site_path) where site_path keeps its 'sites/' or
               'personal/' prefix, e.g. ('contoso.sharepoint.com', 'sites/Quality')

    Raises:
        ValueError: If the URL is not a team site or personal site URL
    """
    parsed = urlparse(site_url)
    host_name = parsed.hostname
    path = parsed.path.strip('/')
    if not host_name or not (path.startswith('sites/') or path.startswith('personal/')):
        raise ValueError(f"Unsupported SharePoint site URL format: {site_url}")
    return host_name, path


def truncate(text, limit=300):
    """Shorten response bodies and error text for console output"""
    text = str(text or "")
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def is_debug_metadata_enabled():
    """
    Check if debug metadata mode is enabled via DEBUG_METADATA environment variable.

    This is for detailed Graph API debugging: request URLs, response bodies,
    and column mapping output.

    Returns:
        bool: True if debug metadata mode is enabled, False otherwise
    """
    return os.environ.get('DEBUG_METADATA', 'false').lower() == 'true'


def is_debug_enabled():
    """
    Check if general debug mode is enabled via DEBUG environment variable.

    This controls per-batch and per-column messages and retry notices. Does not affect:
    - Phase banners
    - Final summary statistics
    - Rate limiting summary
    - Error messages

    Returns:
        bool: True if general debug mode is enabled, False otherwise
    """
    return os.environ.get('DEBUG', 'false').lower() == 'true'
