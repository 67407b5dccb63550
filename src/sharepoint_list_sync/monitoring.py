# -*- coding: utf-8 -*-
"""
Rate limiting monitoring and summary reports for SharePoint list sync.

This module provides the Graph API throttling monitor attached to each
client and the console summaries printed at the end of a run.
"""

import threading

from .thread_utils import console_log
from .utils import is_debug_metadata_enabled


class RateLimitMonitor:
    """
    Monitor and track Graph API rate limiting metrics.

    Analyzes response headers to detect and track throttling:
    - x-ms-throttle-limit-percentage: Utilization percentage (0.8-1.8 range)
    - x-ms-resource-unit: Resource units consumed per request
    - x-ms-throttle-scope: Throttling scope details

    Headers only appear when >80% of limit consumed. One monitor is shared by
    all upload workers of a client, so every update happens under a lock.
    """

    def __init__(self, on_log=None):
        self.on_log = on_log or console_log
        self._lock = threading.Lock()
        self.metrics = {
            'total_requests': 0,
            'throttled_requests': 0,
            'rate_limited_responses': 0,
            'average_throttle_percentage': 0.0,
            'max_throttle_percentage': 0.0,
            'resource_units_consumed': 0,
            'alerts_triggered': 0
        }
        self.throttle_threshold = 0.8  # Alert when >80% of limit

        self.request_types = {
            'GET': 0,
            'POST': 0,
            'PATCH': 0,
            'DELETE': 0
        }

        self.operations = {
            'site_lookup': 0,       # GET /sites/{host}:/sites/{name}
            'list_lookup': 0,       # GET /lists?$filter=...
            'list_create': 0,       # POST /lists
            'column_ops': 0,        # GET/POST /columns
            'item_page': 0,         # GET /items (pagination)
            'batch_operation': 0,   # POST /$batch
            'other': 0
        }

    def analyze_response_headers(self, response, method=None, url=None):
        """
        Analyze Graph API response headers for rate limiting info.

        Args:
            response: requests.Response object from Graph API call
            method (str): HTTP method (GET, POST, PATCH, DELETE)
            url (str): Request URL for operation type detection

        Returns:
            dict: Rate limiting information extracted from headers
        """
        headers = response.headers
        throttle_percentage = headers.get('x-ms-throttle-limit-percentage')
        resource_unit = headers.get('x-ms-resource-unit')
        throttle_scope = headers.get('x-ms-throttle-scope')
        messages = []

        with self._lock:
            self.metrics['total_requests'] += 1
            if response.status_code == 429:
                self.metrics['rate_limited_responses'] += 1

            if method and method.upper() in self.request_types:
                self.request_types[method.upper()] += 1
            if url and method:
                self.operations[self._categorize_operation(url, method.upper())] += 1

            if throttle_percentage:
                percentage = float(throttle_percentage)
                self.metrics['max_throttle_percentage'] = max(
                    self.metrics['max_throttle_percentage'],
                    percentage
                )

                # Calculate running average
                current_avg = self.metrics['average_throttle_percentage']
                total_requests = self.metrics['total_requests']
                self.metrics['average_throttle_percentage'] = (
                    ((current_avg * (total_requests - 1)) + percentage) / total_requests
                )

                if percentage >= 1.0:
                    self.metrics['throttled_requests'] += 1
                    messages.append(f"[!] THROTTLING DETECTED: {percentage:.1%} of limit used")
                    if throttle_scope:
                        messages.append(f"[!] Throttle scope: {throttle_scope}")
                elif percentage >= self.throttle_threshold:
                    self.metrics['alerts_triggered'] += 1
                    messages.append(f"[ ] Rate limit warning: {percentage:.1%} of limit used")

            if resource_unit:
                units = int(resource_unit)
                self.metrics['resource_units_consumed'] += units
                if is_debug_metadata_enabled():
                    messages.append(f"[=] Resource units consumed: {units}")

        for message in messages:
            self.on_log(message)

        return {
            'throttle_percentage': float(throttle_percentage) if throttle_percentage else None,
            'resource_unit': int(resource_unit) if resource_unit else None,
            'throttle_scope': throttle_scope,
            'is_throttled': response.status_code == 429
        }

    def _categorize_operation(self, url, method):
        """
        Categorize API operation based on URL pattern and HTTP method.

        Returns:
            str: Key into self.operations
        """
        url_lower = url.lower()

        if url_lower.endswith('/$batch'):
            return 'batch_operation'
        if '/columns' in url_lower:
            return 'column_ops'
        if '/items' in url_lower and method == 'GET':
            return 'item_page'
        if '/lists' in url_lower and method == 'POST':
            return 'list_create'
        if '/lists' in url_lower and method == 'GET':
            return 'list_lookup'
        if '/sites/' in url_lower and method == 'GET':
            return 'site_lookup'
        return 'other'

    def get_metrics_summary(self):
        """
        Get comprehensive rate limiting metrics.

        Returns:
            dict: Summary of all rate limiting metrics
        """
        with self._lock:
            return {
                'total_requests': self.metrics['total_requests'],
                'throttled_requests': self.metrics['throttled_requests'],
                'rate_limited_responses': self.metrics['rate_limited_responses'],
                'throttle_rate': self.metrics['throttled_requests'] / max(self.metrics['total_requests'], 1),
                'average_throttle_percentage': self.metrics['average_throttle_percentage'],
                'max_throttle_percentage': self.metrics['max_throttle_percentage'],
                'resource_units_consumed': self.metrics['resource_units_consumed'],
                'alerts_triggered': self.metrics['alerts_triggered']
            }


def print_rate_limiting_summary(monitor, on_log=None):
    """
    Print rate limiting statistics collected during execution.

    Args:
        monitor (RateLimitMonitor): Monitor of the client used for the run
        on_log (callable): Line sink (default: thread-safe console)
    """
    log = on_log or console_log
    metrics = monitor.get_metrics_summary()

    log("\n" + "=" * 60)
    log("GRAPH API RATE LIMITING SUMMARY")
    log("=" * 60)
    log("[STATS] API Request Statistics:")
    log(f"   - Total API Requests:       {metrics['total_requests']:>6}")
    log(f"   - 429 Responses:            {metrics['rate_limited_responses']:>6}")
    log(f"   - Throttled Requests:       {metrics['throttled_requests']:>6} ({metrics['throttle_rate']:.1%})")
    log(f"   - Max Throttle %:           {metrics['max_throttle_percentage']:>6.1%}")
    log(f"   - Resource Units Used:      {metrics['resource_units_consumed']:>6}")

    if any(monitor.request_types.values()):
        log("\n[API] Request Methods:")
        for method, count in monitor.request_types.items():
            if count > 0:
                log(f"   - {f'{method} requests:':<27} {count:>6}")

    if any(monitor.operations.values()):
        log("\n[OPS] Operation Types:")
        for op_type, count in monitor.operations.items():
            if count > 0:
                op_name = op_type.replace('_', ' ').title()
                log(f"   - {f'{op_name}:':<27} {count:>6}")

    if metrics['max_throttle_percentage'] >= 1.0 or metrics['rate_limited_responses'] > 0:
        log("\n[!] WARNING: Hit throttling limits during execution")
    elif metrics['max_throttle_percentage'] >= 0.8:
        log("\n[ ] CAUTION: Approached throttling limits")
    else:
        log("\n[OK] Stayed within throttling limits")
    log("=" * 60)


def print_sync_summary(result, list_name, elapsed=None, on_log=None):
    """
    Print the final report of a sync job.

    Args:
        result (SyncResult): Terminal result of the job
        list_name (str): Display name of the target list
        elapsed (float): Job duration in seconds, if known
        on_log (callable): Line sink (default: thread-safe console)
    """
    log = on_log or console_log

    log("")
    log("=" * 60)
    log(f"[✓] SYNC COMPLETED: {list_name}")
    log("=" * 60)
    log("[STATS] Sync Statistics:")
    if result.deleted:
        log(f"   - Existing items cleared:   {result.deleted:>6}")
    log(f"   - Batches dispatched:       {result.batches:>6}")
    log(f"   - Operations submitted:     {result.submitted:>6}")
    log(f"   - Operations succeeded:     {result.succeeded:>6}")
    log(f"   - Operations failed:        {result.failed:>6}")
    log(f"   - Rows rejected:            {len(result.rejected):>6}")
    if result.cancelled:
        log(f"   - Batches cancelled:        {result.cancelled:>6}")
    if elapsed is not None:
        log(f"   - Elapsed:                  {elapsed:>6.1f}s")

    if result.rejected:
        log("\n[!] Rejected rows:")
        for error in result.rejected[:20]:
            log(f"   - {error}")
        if len(result.rejected) > 20:
            log(f"   ... and {len(result.rejected) - 20} more")

    if result.errors:
        log("\n[!] Errors:")
        for error in result.errors[:20]:
            log(f"   - {error}")
        if len(result.errors) > 20:
            log(f"   ... and {len(result.errors) - 20} more")
