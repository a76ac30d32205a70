"""Uniform fixed-size sampling without replacement."""

import random
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")

_system_random = random.SystemRandom()


def sample_without_replacement(
    pool: Sequence[T], k: int, rng: Optional[random.Random] = None
) -> List[T]:
    """Return ``k`` distinct items of ``pool`` in random order.

    Partial Fisher-Yates: only the first ``k`` slots of a copy are shuffled,
    which makes every ordered k-subset equally likely in O(n) time.
    """
    if k < 0:
        raise ValueError("k must be non-negative")
    if k > len(pool):
        raise ValueError(f"cannot draw {k} items from a pool of {len(pool)}")

    rng = rng or _system_random
    items = list(pool)
    n = len(items)
    for i in range(k):
        j = rng.randrange(i, n)
        items[i], items[j] = items[j], items[i]
    return items[:k]
