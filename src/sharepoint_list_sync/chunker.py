# -*- coding: utf-8 -*-
"""
Split operations into $batch-sized groups.
"""

from .models import MAX_BATCH_SIZE, Batch


def chunk_operations(operations, max_size=MAX_BATCH_SIZE, first_batch_id=1):
    """
    Split operations into ordered batches of at most max_size.

    max_size is clamped to the Graph $batch limit, whatever the caller asks for.

    Args:
        operations (list): Operations in submission order
        max_size (int): Requested batch size
        first_batch_id (int): Id of the first batch; ids increase by one

    Returns:
        list: ceil(len(operations) / size) Batch objects; [] for empty input

    Raises:
        ValueError: If max_size is below 1

    Examples:
        >>> [len(b) for b in chunk_operations(ops_45, 20)]
        [20, 20, 5]
    """
    if max_size < 1:
        raise ValueError("max_size must be at least 1")
    size = min(max_size, MAX_BATCH_SIZE)
    operations = list(operations)

    return [
        Batch(first_batch_id + index, operations[start:start + size])
        for index, start in enumerate(range(0, len(operations), size))
    ]
