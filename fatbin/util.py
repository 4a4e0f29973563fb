"""Small collection helpers."""

from __future__ import annotations

from typing import Callable, Hashable, Iterable, Optional, TypeVar

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


def first_duplicate(values: Iterable[T], key: Callable[[T], K]) -> Optional[K]:
    """Return the first key that appears a second time, or None."""
    seen: set = set()
    for value in values:
        k = key(value)
        if k in seen:
            return k
        seen.add(k)
    return None