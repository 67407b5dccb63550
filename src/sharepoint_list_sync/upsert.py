# -*- coding: utf-8 -*-
"""
Create-vs-update resolution for SharePoint list rows.

Upsert mode matches each local row to an existing item through the list's
unique key (e.g. Project|year|Month). Full-replace mode skips matching and
recreates every row after the existing items have been deleted.
"""

from .errors import ValidationError
from .models import TITLE_FIELD, Operation
from .rows import format_scalar, is_empty, validate_row
from .thread_utils import console_log
from .utils import is_debug_enabled

KEY_SEPARATOR = "|"
TITLE_SEPARATOR = "-"


def key_parts(fields, key_columns, row_index=None):
    """
    Extract the unique key values of a row as strings.

    Raises:
        ValidationError: If any key value is missing or empty
    """
    parts = []
    for column in key_columns:
        value = fields.get(column)
        if is_empty(value):
            raise ValidationError(f"missing unique key field '{column}'", row_index=row_index)
        parts.append(format_scalar(value).strip())
    return parts


def build_unique_key(fields, key_columns, row_index=None):
    """
    Build the composite unique key of a row.

    Numbers are rendered without a trailing '.0' so that 2024.0 read back
    from a Number column matches the text '2024' in a local row.

    Examples:
        >>> build_unique_key({'Project': 'A', 'Month': '01', 'year': 2024}, ['Project', 'Month', 'year'])
        'A|01|2024'
    """
    return KEY_SEPARATOR.join(key_parts(fields, key_columns, row_index))


def index_existing_items(items, key_columns):
    """
    Map unique key -> item id over a snapshot of existing items.

    A key shared by more than one item is ambiguous and left out of the
    index, so matching rows fall back to Create instead of overwriting an
    arbitrary record. Items missing a key value cannot be matched and are
    skipped.

    Args:
        items (list): Raw Graph items ({'id': ..., 'fields': {...}})
        key_columns (list): Key column names as stored remotely (internal names)

    Returns:
        tuple: (index dict, set of ambiguous keys)
    """
    index = {}
    ambiguous = set()
    for item in items:
        fields = item.get('fields') or {}
        try:
            key = build_unique_key(fields, key_columns)
        except ValidationError:
            continue
        if key in ambiguous:
            continue
        if key in index:
            del index[key]
            ambiguous.add(key)
            continue
        index[key] = str(item.get('id') or fields.get('id'))
    return index, ambiguous


def build_delete_operations(items):
    """Turn an existing-item snapshot into Delete operations"""
    return [Operation.delete(str(item['id'])) for item in items if item.get('id')]


class UpsertResolver:
    """
    Builds operations for one list from validated rows.

    When a column map from the schema step is given, field names are
    translated to internal column names and fields of columns that could not
    be created are dropped.
    """

    def __init__(self, definition, column_map=None, on_log=None):
        """
        Args:
            definition (ListDefinition): Declared columns and unique key
            column_map (dict): Display name -> internal name, or None to keep names
            on_log (callable): Progress sink
        """
        self.definition = definition
        self.column_map = column_map
        self.on_log = on_log or console_log

    def _to_remote_fields(self, fields):
        if self.column_map is None:
            return dict(fields)
        remote = {}
        for name, value in fields.items():
            if name == TITLE_FIELD:
                remote[TITLE_FIELD] = value
            elif name in self.column_map:
                remote[self.column_map[name]] = value
        return remote

    def _title(self, fields, parts, row_index):
        if fields.get(TITLE_FIELD):
            return fields[TITLE_FIELD]
        if parts:
            return TITLE_SEPARATOR.join(parts)
        return f"Row_{row_index + 1}"

    def resolve(self, existing, rows, ambiguous=()):
        """
        Decide create-vs-update for each row.

        Args:
            existing (dict): Unique key -> item id (from index_existing_items)
            rows (list): Raw row dictionaries
            ambiguous (set): Keys matching several existing items, for logging

        Returns:
            tuple: (operations, rejected) where rejected is a list of
                   ValidationError for rows that were excluded
        """
        key_columns = self.definition.unique_key
        if not key_columns:
            raise ValueError(f"List '{self.definition.display_name}' has no unique key; use full replace")

        operations = []
        rejected = []
        seen_keys = {}

        for row_index, row in enumerate(rows):
            try:
                fields = validate_row(row, self.definition, row_index)
                parts = key_parts(fields, key_columns, row_index)
            except ValidationError as e:
                rejected.append(e)
                continue

            key = KEY_SEPARATOR.join(parts)
            if key in seen_keys:
                rejected.append(ValidationError(
                    f"duplicate unique key '{key}' (first seen in row {seen_keys[key] + 1})",
                    row_index=row_index
                ))
                continue
            seen_keys[key] = row_index

            fields[TITLE_FIELD] = self._title(fields, parts, row_index)
            remote_fields = self._to_remote_fields(fields)

            item_id = existing.get(key)
            if item_id:
                operations.append(Operation.update(item_id, remote_fields, row_index=row_index))
            else:
                if key in ambiguous:
                    self.on_log(f"[!] Key '{key}' matches several existing items; creating a new item")
                operations.append(Operation.create(remote_fields, row_index=row_index))

        if is_debug_enabled():
            updates = sum(1 for op in operations if op.item_id)
            self.on_log(f"[DEBUG] Resolved {len(operations)} rows: {updates} updates, "
                        f"{len(operations) - updates} creates, {len(rejected)} rejected")
        return operations, rejected

    def build_full_replace(self, rows):
        """
        Build Create operations for every valid row.

        Returns:
            tuple: (operations, rejected)
        """
        operations = []
        rejected = []
        for row_index, row in enumerate(rows):
            try:
                fields = validate_row(row, self.definition, row_index)
            except ValidationError as e:
                rejected.append(e)
                continue

            parts = []
            if self.definition.unique_key:
                try:
                    parts = key_parts(fields, self.definition.unique_key, row_index)
                except ValidationError:
                    parts = []
            fields[TITLE_FIELD] = self._title(fields, parts, row_index)
            operations.append(Operation.create(self._to_remote_fields(fields), row_index=row_index))
        return operations, rejected
