# -*- coding: utf-8 -*-
"""
Error taxonomy for SharePoint list sync operations.

Only phase-fatal errors (AuthError, fatal SchemaError, PaginationError)
propagate out of the sync pipeline. The others are recorded as outcomes.
"""


class SyncError(Exception):
    """Base class for all sync engine errors"""


class AuthError(SyncError):
    """No token could be acquired, or the token was rejected"""


class SchemaError(SyncError):
    """A list or column could not be found or created"""

    def __init__(self, message, column=None):
        super().__init__(message)
        self.column = column


class GraphApiError(SyncError):
    """
    A Graph API call returned a non-success status.

    Attributes:
        status_code (int): HTTP status, or None for network-level failures
        body (str): Truncated response body for diagnostics
    """

    def __init__(self, message, status_code=None, body=""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TransientHttpError(GraphApiError):
    """
    A retryable failure (429, 500, 503, timeouts, connection resets).

    Attributes:
        retry_after (float): Server-supplied Retry-After hint in seconds, if any
    """

    def __init__(self, message, status_code=None, body="", retry_after=None):
        super().__init__(message, status_code=status_code, body=body)
        self.retry_after = retry_after


class BatchError(SyncError):
    """A batch (or one operation in it) failed terminally"""

    def __init__(self, message, batch_id=None, status_code=None):
        super().__init__(message)
        self.batch_id = batch_id
        self.status_code = status_code


class PaginationError(SyncError):
    """Listing existing items failed; any partial snapshot is discarded"""


class ValidationError(SyncError):
    """A row failed validation and was excluded before submission"""

    def __init__(self, message, row_index=None):
        super().__init__(message)
        self.row_index = row_index

    def __str__(self):
        message = super().__str__()
        if self.row_index is None:
            return message
        return f"Row {self.row_index + 1}: {message}"
