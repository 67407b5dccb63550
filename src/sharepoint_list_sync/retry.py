# -*- coding: utf-8 -*-
"""
Retry policy for transient Graph API failures.

The policy is a pure value object: it decides whether to retry and how long
to wait, and the caller owns the actual sleep.

Retry Logic:
    - 429 (Rate Limit), 500 and 503 (Server Error) are retryable
    - Network failures (timeouts, resets) are treated like 503
    - Every other status is terminal
    - Delay is linear: (Retry-After hint or default hint) * attempt
"""

RETRYABLE_STATUSES = frozenset({429, 500, 503})

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_AFTER_SECONDS = 5.0


def parse_retry_after(value):
    """
    Parse a Retry-After header value given in seconds.

    Args:
        value (str): Raw header value, or None

    Returns:
        float: Seconds to wait, or None if the header is absent or malformed
               (HTTP-date values are not used by Graph and are treated as malformed)
    """
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    if seconds < 0:
        return None
    return seconds


class RetryPolicy:
    """
    Backoff and retry decision for transient HTTP failures.

    Attributes:
        max_attempts (int): Total attempts allowed, including the first one
        default_hint (float): Seconds per attempt when the server sends no Retry-After
    """

    def __init__(self, max_attempts=DEFAULT_MAX_ATTEMPTS, default_hint=DEFAULT_RETRY_AFTER_SECONDS,
                 retryable_statuses=RETRYABLE_STATUSES):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if default_hint < 0:
            raise ValueError("default_hint must be non-negative")
        self.max_attempts = max_attempts
        self.default_hint = default_hint
        self.retryable_statuses = frozenset(retryable_statuses)

    def is_retryable(self, status_code):
        """
        Check whether a status is transient.

        Args:
            status_code (int): HTTP status, or None for a network-level failure
        """
        return status_code is None or status_code in self.retryable_statuses

    def should_retry(self, status_code, attempt):
        """
        Decide whether a failed attempt should be repeated.

        Args:
            status_code (int): Status of the failed attempt (None for network errors)
            attempt (int): 1-based number of the attempt that just failed

        Returns:
            bool: True if the status is transient and attempts remain
        """
        return self.is_retryable(status_code) and attempt < self.max_attempts

    def next_delay(self, attempt, hint_seconds=None):
        """
        Compute the wait before the next attempt.

        Args:
            attempt (int): 1-based number of the attempt that just failed
            hint_seconds (float): Server Retry-After value, if any

        Returns:
            float: Seconds to wait, (hint or default_hint) * attempt

        Examples:
            >>> RetryPolicy().next_delay(1)
            5.0
            >>> RetryPolicy().next_delay(3, hint_seconds=2)
            6.0
        """
        hint = self.default_hint if hint_seconds is None else hint_seconds
        return float(hint) * attempt

    def __repr__(self):
        return f"RetryPolicy(max_attempts={self.max_attempts}, default_hint={self.default_hint})"
