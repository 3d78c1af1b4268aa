"""
Chunk planning for batch calls.

Dependencies: None
System role: Splits batches into store-sized index ranges
"""


def plan_chunks(n: int, limit: int) -> list[range]:
    """
    Partition [0, n) into contiguous ranges of at most limit items.

    Args:
        n: Number of items in the batch
        limit: Maximum items per store call

    Returns:
        list[range]: ceil(n / limit) ranges in order; empty when n is 0

    Raises:
        ValueError: If limit is not positive or n is negative
    """
    if limit <= 0:
        raise ValueError(f"chunk limit must be positive, got {limit}")
    if n < 0:
        raise ValueError(f"batch size must not be negative, got {n}")
    return [range(lo, min(lo + limit, n)) for lo in range(0, n, limit)]
