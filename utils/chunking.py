from typing import List, Sequence, TypeVar

T = TypeVar("T")


def slices(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive groups of at most `size`, keeping order.

    The last group holds the remainder. An empty input gives an empty list and
    the input itself is never modified.
    """
    size = int(size)
    if size < 1:
        raise ValueError(f"slice size must be >= 1, got {size}")

    items = list(items)
    return [items[i:i + size] for i in range(0, len(items), size)]
