"""Shared pytest fixtures for SharePoint list sync tests.

Provides an in-memory Graph API stand-in (a requests-compatible session
emulating site lookup, lists, columns, item pages and $batch), recorders
for sleeps and log lines, and common list definitions.
"""

import json as jsonlib
import threading
import time
from collections import defaultdict, deque
from urllib.parse import parse_qsl, urlsplit

import pytest

from sharepoint_list_sync.config import Config
from sharepoint_list_sync.graph_api import GraphListClient
from sharepoint_list_sync.models import ColumnDef, ColumnKind, ListDefinition, ListRef
from sharepoint_list_sync.retry import RetryPolicy

GRAPH_ROOT = "https://graph.microsoft.com/v1.0"
SITE_ID = "contoso.sharepoint.com,site-guid,web-guid"


class FakeResponse:
    """Minimal requests.Response stand-in"""

    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = dict(headers or {})

    @property
    def text(self):
        return "" if self._payload is None else jsonlib.dumps(self._payload)

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeList:
    def __init__(self, list_id, display_name):
        self.id = list_id
        self.display_name = display_name
        self.columns = {"Title": {"name": "Title", "displayName": "Title", "text": {}}}
        self.items = {}


class FakeGraphSession:
    """
    In-memory Microsoft Graph emulation for one site.

    Failure hooks:
        inject(route, *entries): queue outcomes for the next direct calls to a
            route ('site', 'lists', 'columns', 'items', 'batch'). An entry is an
            int status, a (status, headers) tuple, an exception instance to
            raise, or None for a normal response.
        column_failures: column name -> number of creation attempts to fail
            (a large number fails always)
        batch_hook: callable(sub_requests) returning a status to answer a
            whole $batch call with, or None to execute it
        fail_titles: item Titles whose create/update sub-requests fail with 400
        throttled_titles: item Title -> number of times its sub-request is answered
            with a 429 sub-response (Retry-After: 2) before being executed
        batch_delay: seconds each $batch call takes (for concurrency tests)
    """

    def __init__(self, site_id=SITE_ID):
        self.site_id = site_id
        self.lists = {}
        self.calls = []
        self.batch_payloads = []
        self.injected = defaultdict(deque)
        self.column_failures = {}
        self.internal_names = {}
        self.batch_hook = None
        self.fail_titles = set()
        self.throttled_titles = {}
        self.batch_delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._next_list = 1
        self._next_item = 1
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def inject(self, route, *entries):
        self.injected[route].extend(entries)

    def add_list(self, display_name, columns=(), items=()):
        """Create a list directly; columns are ColumnDefs, items are field dicts"""
        fake = FakeList(f"list-{self._next_list}", display_name)
        self._next_list += 1
        for column in columns:
            self._add_column(fake, column.to_graph_payload())
        for fields in items:
            self._add_item(fake, dict(fields))
        self.lists[fake.id] = fake
        return fake

    def get_list(self, display_name):
        for fake in self.lists.values():
            if fake.display_name == display_name:
                return fake
        return None

    def count(self, method, route):
        return sum(1 for call in self.calls if call[0] == method and call[1] == route)

    # ------------------------------------------------------------------
    # requests.Session interface
    # ------------------------------------------------------------------

    def request(self, method, url, headers=None, json=None, params=None, timeout=None):
        split = urlsplit(url)
        query = dict(parse_qsl(split.query))
        query.update({k: str(v) for k, v in (params or {}).items()})
        parts = [p for p in split.path.split('/') if p][1:]  # drop 'v1.0'
        route = self._route_name(parts)

        with self._lock:
            self.calls.append((method, route, query, json))
            entry = self.injected[route].popleft() if self.injected[route] else None

        if isinstance(entry, Exception):
            raise entry
        if entry is not None:
            status, extra_headers = entry if isinstance(entry, tuple) else (entry, {})
            return FakeResponse(status, {"error": {"code": "injected", "message": f"HTTP {status}"}},
                                headers=extra_headers)

        if route == 'batch':
            return self._execute_batch(json['requests'])

        with self._lock:
            status, payload = self._handle(method, parts, query, json)
        return FakeResponse(status, payload)

    # ------------------------------------------------------------------
    # Emulation
    # ------------------------------------------------------------------

    @staticmethod
    def _route_name(parts):
        if parts == ['$batch']:
            return 'batch'
        if len(parts) >= 2 and parts[1].endswith(':'):
            return 'site'
        if len(parts) == 3:
            return 'lists'
        if len(parts) >= 5:
            return parts[4]
        return 'other'

    def _add_column(self, fake, payload):
        display = payload['displayName']
        column = dict(payload)
        column['name'] = self.internal_names.get(display, payload['name'])
        fake.columns[display] = column
        return column

    def _add_item(self, fake, fields):
        item_id = str(self._next_item)
        self._next_item += 1
        fields['id'] = item_id
        fake.items[item_id] = fields
        return item_id

    def _error(self, status, message):
        return status, {"error": {"code": str(status), "message": message}}

    def _handle(self, method, parts, query, body):
        if len(parts) >= 2 and parts[1].endswith(':'):
            return 200, {"id": self.site_id}
        if len(parts) < 3 or parts[0] != 'sites' or parts[2] != 'lists':
            return self._error(404, "Unknown resource")

        if len(parts) == 3:
            if method == 'GET':
                value = [{"id": f.id, "displayName": f.display_name} for f in self.lists.values()]
                flt = query.get('$filter', '')
                if flt.startswith("displayName eq '"):
                    wanted = flt[len("displayName eq '"):-1].replace("''", "'")
                    value = [v for v in value if v['displayName'] == wanted]
                return 200, {"value": value}
            fake = FakeList(f"list-{self._next_list}", body['displayName'])
            self._next_list += 1
            for column in body.get('columns', []):
                self._add_column(fake, column)
            self.lists[fake.id] = fake
            return 201, {"id": fake.id, "displayName": fake.display_name}

        fake = self.lists.get(parts[3])
        if fake is None:
            return self._error(404, "List not found")

        if parts[4] == 'columns':
            if method == 'GET':
                return 200, {"value": list(fake.columns.values())}
            name = body['displayName']
            remaining = self.column_failures.get(name, 0)
            if remaining:
                self.column_failures[name] = remaining - 1
                return self._error(500, f"Could not create {name}")
            return 201, self._add_column(fake, body)

        if parts[4] == 'items':
            if len(parts) == 5 and method == 'GET':
                top = int(query.get('$top', 200))
                offset = int(query.get('$skiptoken', 0))
                ids = sorted(fake.items, key=int)
                page = [{"id": i, "fields": dict(fake.items[i])} for i in ids[offset:offset + top]]
                payload = {"value": page}
                if offset + top < len(ids):
                    payload['@odata.nextLink'] = (
                        f"{GRAPH_ROOT}/sites/{parts[1]}/lists/{fake.id}/items"
                        f"?expand=fields&$top={top}&$skiptoken={offset + top}"
                    )
                return 200, payload

            if len(parts) == 5 and method == 'POST':
                fields = dict(body.get('fields', {}))
                if fields.get('Title') in self.fail_titles:
                    return self._error(400, f"Invalid item {fields.get('Title')}")
                item_id = self._add_item(fake, fields)
                return 201, {"id": item_id, "fields": dict(fake.items[item_id])}

            item_id = parts[5]
            if item_id not in fake.items:
                return self._error(404, f"Item {item_id} not found")
            if method == 'DELETE':
                del fake.items[item_id]
                return 204, None
            if method == 'PATCH':
                if body.get('Title') in self.fail_titles:
                    return self._error(400, f"Invalid item {body.get('Title')}")
                fake.items[item_id].update(body)
                return 200, dict(fake.items[item_id])

        return self._error(400, "Unsupported request")

    def _execute_batch(self, sub_requests):
        with self._lock:
            self.batch_payloads.append(sub_requests)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.batch_delay:
                time.sleep(self.batch_delay)
            if self.batch_hook is not None:
                status = self.batch_hook(sub_requests)
                if status is not None:
                    return FakeResponse(status, {"error": {"code": "hook", "message": f"HTTP {status}"}})

            responses = []
            with self._lock:
                for sub in sub_requests:
                    title = batch_titles([sub])[0]
                    if self.throttled_titles.get(title):
                        self.throttled_titles[title] -= 1
                        responses.append({"id": sub['id'], "status": 429, "headers": {"Retry-After": "2"},
                                          "body": {"error": {"code": "TooManyRequests", "message": "Throttled"}}})
                        continue
                    parts = [p for p in sub['url'].split('?')[0].split('/') if p]
                    status, payload = self._handle(sub['method'], parts, {}, sub.get('body'))
                    responses.append({"id": sub['id'], "status": status, "body": payload})
            return FakeResponse(200, {"responses": responses})
        finally:
            with self._lock:
                self.in_flight -= 1


def batch_titles(sub_requests):
    """Titles carried by the create/update sub-requests of a $batch call"""
    titles = []
    for sub in sub_requests:
        body = sub.get('body') or {}
        titles.append(body.get('fields', body).get('Title'))
    return titles


@pytest.fixture
def graph():
    return FakeGraphSession()


@pytest.fixture
def sleeps():
    """Recorded sleep durations (injected instead of time.sleep)"""
    return []


@pytest.fixture
def logs():
    return []


@pytest.fixture
def client(graph, sleeps, logs):
    return GraphListClient(
        site_id=SITE_ID,
        session=graph,
        retry_policy=RetryPolicy(max_attempts=3),
        on_log=logs.append,
        sleep=sleeps.append
    )


@pytest.fixture
def config():
    return Config(
        site_name="Quality",
        sharepoint_host_name="contoso.sharepoint.com",
        tenant_id="tenant",
        client_id="client",
        client_secret="secret",
        site_id=SITE_ID,
        max_retry=3,
        max_upload_workers=2,
    )


@pytest.fixture
def downtime_definition():
    return ListDefinition(
        "downtime",
        [
            ColumnDef("Project", required=True),
            ColumnDef("year", required=True),
            ColumnDef("Month", required=True),
            ColumnDef("Hours", ColumnKind.NUMBER),
        ],
        unique_key=["Project", "year", "Month"],
    )


@pytest.fixture
def downtime_list(graph, downtime_definition):
    """Existing empty 'downtime' list with every declared column"""
    return graph.add_list("downtime", downtime_definition.columns)


@pytest.fixture
def list_ref(downtime_list):
    return ListRef(SITE_ID, downtime_list.id, downtime_list.display_name)


def make_rows(count, project="P"):
    """Distinct downtime rows keyed by project and month number"""
    return [
        {"Project": project, "year": "2024", "Month": f"{i:03d}", "Hours": i}
        for i in range(1, count + 1)
    ]
