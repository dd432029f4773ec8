"""Sizing helpers — values computed from facts rather than looked up."""

import math

# Memory held back for the OS and other services on large hosts
RESERVED_MEMORY_MB = 4096
LARGE_HOST_THRESHOLD_MB = 8192


def compute_heap_size(memory_mb: float) -> int:
    """
    Java heap for a host with ``memory_mb`` of RAM.

    Above 8192 MB the heap is everything but 4096 MB; at or below it, half
    the memory. Rounded half-up to a whole MB.

    >>> compute_heap_size(16384)
    12288
    >>> compute_heap_size(8192)
    4096
    """
    if memory_mb < 0:
        raise ValueError(f"Memory size cannot be negative: {memory_mb}")
    if memory_mb > LARGE_HOST_THRESHOLD_MB:
        heap = memory_mb - RESERVED_MEMORY_MB
    else:
        heap = memory_mb * 0.5
    return int(math.floor(heap + 0.5))
