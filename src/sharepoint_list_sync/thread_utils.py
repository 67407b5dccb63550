# -*- coding: utf-8 -*-
"""
Thread-safe utilities for parallel batch dispatch.

This module provides the lock-protected console sink used as the default
log callback, plus a small thread-safe counter shared by upload workers.
"""

import threading

from .utils import is_debug_enabled

# Global lock for console output
_console_lock = threading.Lock()


def thread_safe_print(*args, **kwargs):
    """
    Thread-safe print() that ensures sequential output.
    When DEBUG=true, includes thread identifier to track which thread produced each log line.

    Thread identifiers (DEBUG mode only):
        [Main] - Main thread (orchestration, schema, pagination, summaries)
        [Upload-N] - Batch upload worker threads

    Args:
        *args: Same as print()
        **kwargs: Same as print()
    """
    with _console_lock:
        if is_debug_enabled() and args:
            thread_name = threading.current_thread().name

            if thread_name == "MainThread":
                prefix = "[Main]"
            elif thread_name.startswith("Upload-"):
                prefix = f"[{thread_name}]"
            elif "ThreadPoolExecutor" in thread_name:
                # Unnamed worker thread - extract number
                parts = thread_name.split('_')
                prefix = f"[Worker-{parts[-1]}]" if len(parts) > 1 else "[Worker]"
            else:
                prefix = f"[{thread_name[:10]}]"

            print(prefix, *args, **kwargs)
        else:
            print(*args, **kwargs)


def console_log(message):
    """Default on_log sink: one thread-safe console line per message"""
    thread_safe_print(message)


class ThreadSafeCounter:
    """
    Thread-safe counter that also remembers the highest value it reached.

    The dispatcher uses it to track in-flight batches.

    Example:
        >>> counter = ThreadSafeCounter()
        >>> counter.increment()
        1
        >>> counter.decrement()
        0
        >>> counter.peak()
        1
    """

    def __init__(self, initial=0):
        self._value = initial
        self._peak = initial
        self._lock = threading.Lock()

    def increment(self, amount=1):
        """
        Increment counter by specified amount.

        Returns:
            int: New counter value
        """
        with self._lock:
            self._value += amount
            self._peak = max(self._peak, self._value)
            return self._value

    def decrement(self, amount=1):
        """
        Decrement counter by specified amount.

        Returns:
            int: New counter value
        """
        with self._lock:
            self._value -= amount
            return self._value

    def value(self):
        with self._lock:
            return self._value

    def peak(self):
        """Highest value observed since creation"""
        with self._lock:
            return self._peak

