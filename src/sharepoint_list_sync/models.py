# -*- coding: utf-8 -*-
"""
Data model for SharePoint list sync.

This module defines the list, column, operation and result types shared by
every stage of the sync pipeline.
"""

from collections import namedtuple
from enum import Enum

# Graph API $batch endpoint accepts at most 20 requests per call
MAX_BATCH_SIZE = 20

# Housekeeping field every SharePoint generic list carries
TITLE_FIELD = "Title"


ListRef = namedtuple("ListRef", ["site_id", "list_id", "display_name"])
ListRef.__doc__ = "Resolved reference to a remote SharePoint list (immutable)"


class ColumnKind(Enum):
    TEXT = "text"
    NUMBER = "number"


class SyncMode(Enum):
    """How a sync job reconciles rows against the remote list"""
    FULL_REPLACE = "full_replace"
    UPSERT = "upsert"

    @classmethod
    def parse(cls, value):
        """
        Parse a mode from user input ('upsert', 'full_replace', 'full-replace').

        Raises:
            ValueError: If value does not name a mode
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace('-', '_')
        for mode in cls:
            if mode.value == normalized:
                return mode
        raise ValueError(f"Unknown sync mode: {value}")


class ColumnDef:
    """Declared column of a list"""

    def __init__(self, name, kind=ColumnKind.TEXT, required=False):
        if not name:
            raise ValueError("Column name cannot be empty")
        self.name = name
        self.kind = kind if isinstance(kind, ColumnKind) else ColumnKind(str(kind).lower())
        self.required = required

    def to_graph_payload(self):
        """
        Build the Graph API column definition body.

        Returns:
            dict: e.g. {'name': 'Budget', 'displayName': 'Budget', 'number': {}}
        """
        return {
            "name": self.name,
            "displayName": self.name,
            self.kind.value: {},
        }

    def __eq__(self, other):
        if not isinstance(other, ColumnDef):
            return NotImplemented
        return (self.name, self.kind, self.required) == (other.name, other.kind, other.required)

    def __hash__(self):
        return hash((self.name, self.kind, self.required))

    def __repr__(self):
        return f"ColumnDef({self.name!r}, {self.kind.name}, required={self.required})"


class ListDefinition:
    """
    Declarative schema of a remote list: its columns and optional unique key.

    A list with a unique key can be synced in upsert mode; the key columns
    identify one logical row.
    """

    def __init__(self, display_name, columns, unique_key=None):
        if not display_name:
            raise ValueError("List display name cannot be empty")
        self.display_name = display_name
        self.columns = list(columns)
        self.unique_key = tuple(unique_key) if unique_key else ()

        names = [c.name for c in self.columns]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate column names in list '{display_name}'")
        for key_column in self.unique_key:
            if key_column not in names:
                raise ValueError(f"Unique key column '{key_column}' is not declared on list '{display_name}'")

    @classmethod
    def from_rows(cls, display_name, rows, unique_key=None):
        """
        Infer a definition with one Text column per key of the first row.

        Args:
            display_name (str): Name of the list
            rows (list): Row dictionaries
            unique_key (list): Optional key column names

        Returns:
            ListDefinition: Definition with Text columns in row key order
        """
        columns = []
        if rows:
            for name in rows[0].keys():
                if name == TITLE_FIELD:
                    continue
                columns.append(ColumnDef(name, ColumnKind.TEXT, required=name in (unique_key or ())))
        return cls(display_name, columns, unique_key)

    def column(self, name):
        """Return the ColumnDef with the given name, or None"""
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def __repr__(self):
        return f"ListDefinition({self.display_name!r}, {len(self.columns)} columns, unique_key={self.unique_key})"


class OperationKind(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Operation:
    """
    One create, update or delete against a list item.

    Create operations never carry an item id; update and delete always do.
    """

    def __init__(self, kind, fields=None, item_id=None, row_index=None):
        if kind is OperationKind.CREATE and item_id is not None:
            raise ValueError("Create operations cannot carry an item id")
        if kind in (OperationKind.UPDATE, OperationKind.DELETE) and not item_id:
            raise ValueError(f"{kind.value.title()} operations require an item id")
        self.kind = kind
        self.fields = dict(fields or {})
        self.item_id = item_id
        self.row_index = row_index

    @classmethod
    def create(cls, fields, row_index=None):
        return cls(OperationKind.CREATE, fields=fields, row_index=row_index)

    @classmethod
    def update(cls, item_id, fields, row_index=None):
        return cls(OperationKind.UPDATE, fields=fields, item_id=item_id, row_index=row_index)

    @classmethod
    def delete(cls, item_id):
        return cls(OperationKind.DELETE, item_id=item_id)

    def to_batch_request(self, request_id, list_ref):
        """
        Render this operation as one sub-request of a $batch call.

        Args:
            request_id (str): Id unique within the batch
            list_ref (ListRef): Target list

        Returns:
            dict: Sub-request with id, method, url, and (for writes) headers and body
        """
        items_url = f"/sites/{list_ref.site_id}/lists/{list_ref.list_id}/items"
        if self.kind is OperationKind.CREATE:
            return {
                "id": request_id,
                "method": "POST",
                "url": items_url,
                "headers": {"Content-Type": "application/json"},
                "body": {"fields": self.fields},
            }
        if self.kind is OperationKind.UPDATE:
            return {
                "id": request_id,
                "method": "PATCH",
                "url": f"{items_url}/{self.item_id}/fields",
                "headers": {"Content-Type": "application/json"},
                "body": self.fields,
            }
        return {
            "id": request_id,
            "method": "DELETE",
            "url": f"{items_url}/{self.item_id}",
        }

    def __repr__(self):
        if self.item_id:
            return f"Operation({self.kind.name}, item_id={self.item_id!r})"
        return f"Operation({self.kind.name}, row_index={self.row_index})"


class Batch:
    """Ordered, size-bounded group of operations submitted as one $batch call"""

    def __init__(self, batch_id, operations):
        if len(operations) > MAX_BATCH_SIZE:
            raise ValueError(f"Batch {batch_id} has {len(operations)} operations (limit {MAX_BATCH_SIZE})")
        self.batch_id = batch_id
        self.operations = list(operations)

    def __len__(self):
        return len(self.operations)

    def __iter__(self):
        return iter(self.operations)

    def __repr__(self):
        return f"Batch({self.batch_id}, {len(self.operations)} operations)"


class BatchOutcome:
    """Result of uploading one batch"""

    def __init__(self, batch_id, submitted, succeeded=0, failed=0, attempts=0, errors=None):
        self.batch_id = batch_id
        self.submitted = submitted
        self.succeeded = succeeded
        self.failed = failed
        self.attempts = attempts
        self.errors = list(errors or [])

    @classmethod
    def failed_all(cls, batch, error, attempts=0):
        """Outcome for a batch whose every operation failed with one error"""
        return cls(batch.batch_id, len(batch), succeeded=0, failed=len(batch),
                   attempts=attempts, errors=[error])

    @property
    def ok(self):
        return self.failed == 0

    def __repr__(self):
        return (f"BatchOutcome({self.batch_id}, submitted={self.submitted}, "
                f"succeeded={self.succeeded}, failed={self.failed}, attempts={self.attempts})")


class SyncResult:
    """
    Terminal report of a sync job.

    Invariant: submitted == succeeded + failed. Rows rejected by validation
    are never submitted and are reported separately in `rejected`.
    """

    def __init__(self):
        self.submitted = 0
        self.succeeded = 0
        self.failed = 0
        self.errors = []
        self.rejected = []
        self.deleted = 0
        self.batches = 0
        self.cancelled = 0

    def record(self, outcome):
        """Merge one BatchOutcome into the totals"""
        self.batches += 1
        self.submitted += outcome.submitted
        self.succeeded += outcome.succeeded
        self.failed += outcome.failed
        self.errors.extend(outcome.errors)

    @property
    def ok(self):
        return self.failed == 0 and not self.rejected

    def __repr__(self):
        return (f"SyncResult(submitted={self.submitted}, succeeded={self.succeeded}, "
                f"failed={self.failed}, rejected={len(self.rejected)}, deleted={self.deleted})")


class SyncJob:
    """One synchronization run: target list, rows, and how to apply them"""

    def __init__(self, definition, rows, mode=SyncMode.UPSERT, concurrency=4,
                 batch_size=MAX_BATCH_SIZE, retry_policy=None):
        self.definition = definition
        self.rows = list(rows)
        self.mode = SyncMode.parse(mode)
        self.concurrency = concurrency
        self.batch_size = batch_size
        self.retry_policy = retry_policy

        if self.mode is SyncMode.UPSERT and not definition.unique_key:
            raise ValueError(f"Upsert mode requires a unique key on list '{definition.display_name}'")
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
