# -*- coding: utf-8 -*-
"""
Row validation against declared columns.

Rows arrive as plain dictionaries from the caller (spreadsheet imports,
KPI forms). Before a row may become an operation it is checked against the
list's ColumnDefs: numbers are coerced, empty markers are normalized, and
required values are enforced. Rows that fail are rejected here rather than
by SharePoint.
"""

import math

from .errors import ValidationError
from .models import TITLE_FIELD, ColumnKind

# Values spreadsheets use for "no value"
EMPTY_MARKERS = ("", "---")


def is_empty(value):
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() in EMPTY_MARKERS


def format_scalar(value):
    """
    Render a scalar as text the way the list stores it.

    Examples:
        >>> format_scalar(2024.0)
        '2024'
        >>> format_scalar(True)
        'true'
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def coerce_number(value):
    """
    Convert a value to int or float.

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, bool):
        raise ValueError(f"boolean {value!r} is not a number")
    if isinstance(value, (int, float)):
        number = value
    else:
        number = float(str(value).strip().replace(' ', ''))
    if isinstance(number, float):
        if math.isnan(number) or math.isinf(number):
            raise ValueError(f"{value!r} is not a finite number")
        if number.is_integer():
            return int(number)
    return number


def validate_row(row, definition, row_index=None):
    """
    Validate one row and return the fields to write.

    Only declared columns (plus Title) are kept. Text values are stringified
    with empty markers mapped to ''. Empty Number values are omitted.

    Args:
        row (dict): Raw row from the caller
        definition (ListDefinition): Declared columns
        row_index (int): Position of the row, for error messages

    Returns:
        dict: Validated fields in declared column order

    Raises:
        ValidationError: If a required value is missing or a number is malformed
    """
    if not isinstance(row, dict):
        raise ValidationError(f"expected a mapping, got {type(row).__name__}", row_index=row_index)

    fields = {}
    title = row.get(TITLE_FIELD)
    if not is_empty(title):
        fields[TITLE_FIELD] = format_scalar(title)

    for column in definition.columns:
        value = row.get(column.name)
        if is_empty(value):
            if column.required:
                raise ValidationError(f"missing required value for '{column.name}'", row_index=row_index)
            if column.kind is ColumnKind.TEXT:
                fields[column.name] = ""
            continue

        if column.kind is ColumnKind.NUMBER:
            try:
                fields[column.name] = coerce_number(value)
            except ValueError:
                raise ValidationError(f"'{column.name}' expects a number, got {value!r}", row_index=row_index)
        else:
            fields[column.name] = format_scalar(value)

    return fields


def undeclared_fields(rows, definition):
    """
    Collect field names used by rows but not declared on the list.

    Returns:
        list: Sorted names that validate_row will drop
    """
    declared = {column.name for column in definition.columns}
    declared.add(TITLE_FIELD)
    seen = set()
    for row in rows:
        if isinstance(row, dict):
            seen.update(name for name in row if name not in declared)
    return sorted(seen)
