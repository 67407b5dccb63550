# -*- coding: utf-8 -*-
"""
Microsoft Graph API operations for SharePoint list sync.

This module provides the HTTP transport for every list call: site and list
lookup, list and column creation, item pages, and $batch submission. It
keeps the request error handling (timeouts, TLS, proxy, redirects) in one
place; retry decisions come from a RetryPolicy.
"""

import time

import requests

from .errors import GraphApiError, TransientHttpError
from .monitoring import RateLimitMonitor
from .retry import RetryPolicy, parse_retry_after
from .thread_utils import console_log
from .utils import is_debug_enabled, is_debug_metadata_enabled, truncate

DEFAULT_TIMEOUT_SECONDS = 60


def raise_for_graph_status(response, context):
    """
    Raise the matching error for a non-2xx Graph response.

    Args:
        response (requests.Response): Response to check
        context (str): Short description of the call, used in the message

    Raises:
        TransientHttpError: For 429, 500 and 503 (carries the Retry-After hint)
        GraphApiError: For any other non-2xx status
    """
    if 200 <= response.status_code < 300:
        return
    body = truncate(response.text, 500)
    message = f"{context} failed: HTTP {response.status_code}"
    if response.status_code in (429, 500, 503):
        raise TransientHttpError(
            message,
            status_code=response.status_code,
            body=body,
            retry_after=parse_retry_after(response.headers.get('Retry-After'))
        )
    raise GraphApiError(message, status_code=response.status_code, body=body)


def read_graph_json(response, context):
    """
    Decode the JSON object of a successful Graph response.

    Raises:
        GraphApiError: If the body is not a JSON object
    """
    try:
        data = response.json()
    except ValueError as e:
        raise GraphApiError(f"{context} returned an unreadable body: {truncate(e, 200)}",
                            status_code=response.status_code, body=truncate(response.text, 500)) from e
    if not isinstance(data, dict):
        raise GraphApiError(f"{context} returned unexpected JSON: {truncate(data, 200)}",
                            status_code=response.status_code)
    return data


class GraphListClient:
    """
    Graph REST client scoped to one SharePoint site.

    The client owns a requests.Session shared by all upload workers and a
    RateLimitMonitor that inspects every response. The bearer token is
    passed per call and never stored.

    Example:
        client = GraphListClient(site_id, graph_endpoint='graph.microsoft.com')
        list_id = client.find_list_by_name('downtime', token)
    """

    def __init__(self, site_id=None, graph_endpoint="graph.microsoft.com", session=None,
                 timeout=DEFAULT_TIMEOUT_SECONDS, retry_policy=None, monitor=None,
                 on_log=None, sleep=time.sleep):
        self.site_id = site_id
        self.graph_endpoint = graph_endpoint
        self.base_url = f"https://{graph_endpoint}/v1.0"
        self.session = session or requests.Session()
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.on_log = on_log or console_log
        self.monitor = monitor or RateLimitMonitor(on_log=self.on_log)
        self.sleep = sleep

    def graph_url(self, path):
        """Build an absolute Graph URL from a path such as '/sites/{id}/lists'"""
        return f"{self.base_url}{path}"

    def lists_url(self):
        return self.graph_url(f"/sites/{self.site_id}/lists")

    def items_url(self, list_id):
        return self.graph_url(f"/sites/{self.site_id}/lists/{list_id}/items")

    def columns_url(self, list_id):
        return self.graph_url(f"/sites/{self.site_id}/lists/{list_id}/columns")

    @staticmethod
    def _headers(token):
        return {
            'Authorization': f'Bearer {token}',
            'Accept': 'application/json',
            'Content-Type': 'application/json'
        }

    def request(self, method, url, token, json_data=None, params=None):
        """
        Make a single Graph API request.

        Args:
            method (str): HTTP method ('GET', 'POST', 'PATCH', 'DELETE')
            url (str): Absolute Graph URL
            token (str): Bearer token
            json_data (dict): JSON body for POST/PATCH
            params (dict): Query parameters

        Returns:
            requests.Response: The response, whatever its status

        Raises:
            TransientHttpError: On timeouts and connection errors (no status)
            GraphApiError: On TLS, proxy, redirect-loop and other transport failures (not retried)
        """
        method = method.upper()
        if is_debug_metadata_enabled():
            self.on_log(f"[DEBUG] {method} {truncate(url, 200)}")

        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(token),
                json=json_data,
                params=params,
                timeout=self.timeout
            )

        except requests.exceptions.SSLError as e:
            # SSL errors usually aren't transient - fail fast with clear message
            self.on_log("[!] ========================================")
            self.on_log("[!] SSL/TLS CERTIFICATE ERROR")
            self.on_log("[!] ========================================")
            self.on_log("[!] Failed to verify SSL certificate for Microsoft Graph API.")
            self.on_log("[!]   1. Verify system certificate store is up to date")
            self.on_log("[!]   2. Check if corporate proxy is intercepting SSL/TLS connections")
            self.on_log("[!]   3. Ensure system clock is accurate")
            self.on_log(f"[!] Technical details: {truncate(e, 300)}")
            raise GraphApiError(f"SSL certificate verification failed: {truncate(e, 200)}")

        except requests.exceptions.ProxyError as e:
            self.on_log("[!] ========================================")
            self.on_log("[!] PROXY CONNECTION ERROR")
            self.on_log("[!] ========================================")
            self.on_log("[!]   1. Verify HTTP_PROXY and HTTPS_PROXY environment variables are set correctly")
            self.on_log("[!]   2. Check proxy server allows connections to *.microsoft.com")
            self.on_log(f"[!] Technical details: {truncate(e, 300)}")
            raise GraphApiError(f"Proxy connection failed: {truncate(e, 200)}")

        except requests.exceptions.TooManyRedirects as e:
            self.on_log("[!] Encountered redirect loop - verify the Graph endpoint and proxy configuration")
            self.on_log(f"[!] URL: {truncate(url, 100)}")
            raise GraphApiError(f"Too many redirects - possible configuration issue: {truncate(e, 200)}")

        except requests.exceptions.Timeout as e:
            raise TransientHttpError(f"Request timeout: {truncate(e, 100) or 'timeout'}")

        except requests.exceptions.ConnectionError as e:
            raise TransientHttpError(f"Network connection error: {truncate(e, 100)}")

        except requests.exceptions.RequestException as e:
            # Truncated or undecodable bodies and other transport failures
            raise GraphApiError(f"Request failed: {type(e).__name__}: {truncate(e, 200)}")

        self.monitor.analyze_response_headers(response, method=method, url=url)

        if is_debug_metadata_enabled() and response.status_code >= 400:
            self.on_log(f"[DEBUG] HTTP {response.status_code}: {truncate(response.text, 300)}")

        return response

    def request_with_retry(self, method, url, token, json_data=None, params=None):
        """
        Make a Graph API request, retrying transient failures per the retry policy.

        Requests stay sequential: the next attempt starts only after the
        previous one has returned and the backoff delay has elapsed.

        Returns:
            requests.Response: First non-retryable response, or the last
                               retryable one once attempts are exhausted

        Raises:
            TransientHttpError: If network errors persist through every attempt
            GraphApiError: On non-retryable transport failures
        """
        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                response = self.request(method, url, token, json_data=json_data, params=params)
            except TransientHttpError as e:
                if not policy.should_retry(None, attempt):
                    raise
                delay = policy.next_delay(attempt)
                self.on_log(f"[!] {e}. Retrying in {delay:g} seconds... ({attempt}/{policy.max_attempts})")
                self.sleep(delay)
                continue

            if policy.is_retryable(response.status_code) and policy.should_retry(response.status_code, attempt):
                hint = parse_retry_after(response.headers.get('Retry-After'))
                delay = policy.next_delay(attempt, hint)
                if is_debug_enabled():
                    self.on_log(f"[!] HTTP {response.status_code} on {method.upper()}. "
                                f"Waiting {delay:g} seconds before retry {attempt}/{policy.max_attempts}...")
                self.sleep(delay)
                continue

            return response

    def resolve_site_id(self, host_name, site_path, token):
        """
        Resolve a site id from host name and 'sites/<name>' or 'personal/<name>' path.

        Returns:
            str: Graph site id (also stored on the client)

        Raises:
            GraphApiError: If the site cannot be resolved
        """
        url = self.graph_url(f"/sites/{host_name}:/{site_path.strip('/')}")
        response = self.request_with_retry('GET', url, token)
        context = f"Site lookup for {host_name}/{site_path}"
        raise_for_graph_status(response, context)
        site_id = read_graph_json(response, context).get('id')
        if not site_id:
            raise GraphApiError(f"Site lookup for {host_name}/{site_path} returned no id")
        self.site_id = site_id
        return site_id

    def find_list_by_name(self, display_name, token):
        """
        Find a list by its display name.

        Returns:
            str: List id, or None if no list has that display name

        Raises:
            GraphApiError: If the lookup itself fails
        """
        escaped = display_name.replace("'", "''")
        response = self.request_with_retry(
            'GET', self.lists_url(), token,
            params={'$filter': f"displayName eq '{escaped}'", '$select': 'id,displayName'}
        )
        context = f"List lookup '{display_name}'"
        raise_for_graph_status(response, context)
        for entry in read_graph_json(response, context).get('value', []):
            if entry.get('displayName', display_name) == display_name:
                return entry.get('id')
        return None

    def create_list(self, definition, token):
        """
        Create a generic list with its declared columns.

        Args:
            definition (ListDefinition): List name and columns
            token (str): Bearer token

        Returns:
            str: Id of the new list

        Raises:
            GraphApiError: If the list cannot be created
        """
        payload = {
            'displayName': definition.display_name,
            'columns': [col.to_graph_payload() for col in definition.columns],
            'list': {'template': 'genericList'}
        }
        response = self.request_with_retry('POST', self.lists_url(), token, json_data=payload)
        context = f"List creation '{definition.display_name}'"
        raise_for_graph_status(response, context)
        list_id = read_graph_json(response, context).get('id')
        if not list_id:
            raise GraphApiError(f"List creation '{definition.display_name}' returned no id")
        return list_id

    def get_columns(self, list_id, token):
        """
        Get mapping of display names to column metadata for a list.

        Returns:
            dict: {display_name: {'internal_name': str, 'type': str}}

        Raises:
            GraphApiError: If the columns cannot be read
        """
        response = self.request_with_retry('GET', self.columns_url(list_id), token)
        raise_for_graph_status(response, "Column lookup")

        mapping = {}
        for column in read_graph_json(response, "Column lookup").get('value', []):
            display_name = column.get('displayName') or column.get('name', '')
            if 'number' in column:
                column_type = 'number'
            elif 'text' in column:
                column_type = 'text'
            else:
                column_type = column.get('columnGroup', 'other')
            mapping[display_name] = {
                'internal_name': column.get('name', display_name),
                'type': column_type
            }
            if is_debug_metadata_enabled():
                self.on_log(f"[=] Column mapping: '{display_name}' -> '{mapping[display_name]['internal_name']}'")
        return mapping

    def create_column(self, list_id, column, token):
        """
        Create one column on a list. Single attempt; the schema reconciler owns retries.

        Returns:
            str: Internal name assigned by SharePoint

        Raises:
            GraphApiError: If the column cannot be created
            TransientHttpError: On network failures
        """
        response = self.request('POST', self.columns_url(list_id), token, json_data=column.to_graph_payload())
        context = f"Column creation '{column.name}'"
        raise_for_graph_status(response, context)
        return read_graph_json(response, context).get('name', column.name)

    def get_page(self, url, token, params=None):
        """
        Fetch one page of a paged collection.

        Returns:
            dict: Parsed JSON body with 'value' and optional '@odata.nextLink'

        Raises:
            GraphApiError: If the page cannot be fetched
        """
        response = self.request_with_retry('GET', url, token, params=params)
        raise_for_graph_status(response, "Item page fetch")
        return read_graph_json(response, "Item page fetch")

    def post_batch(self, batch_requests, token):
        """
        Submit one composite $batch request. Single attempt; the batch uploader owns retries.

        Args:
            batch_requests (list): Sub-requests (at most 20)
            token (str): Bearer token

        Returns:
            requests.Response: The composite response, whatever its status
        """
        return self.request('POST', self.graph_url('/$batch'), token, json_data={'requests': batch_requests})
