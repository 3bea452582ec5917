"""
Bounded buffer of records committed as one unit.
"""

from collections.abc import Iterator
from typing import Any


class Chunk:
    """
    Ordered buffer of at most max_size items.

    Attributes:
        max_size: Capacity of the chunk
        items: Buffered items, in read order
        exhausted: True when the source ran out while filling this chunk
    """

    def __init__(self, max_size: int):
        if max_size < 1:
            raise ValueError(f"Chunk size must be positive, got {max_size}")
        self.max_size = max_size
        self.items: list[Any] = []
        self.exhausted = False

    @property
    def is_full(self) -> bool:
        return len(self.items) >= self.max_size

    def add(self, item: Any) -> None:
        if self.is_full:
            raise ValueError(f"Chunk is full ({self.max_size} items)")
        self.items.append(item)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __repr__(self) -> str:
        return f"Chunk(size={len(self.items)}, max_size={self.max_size}, exhausted={self.exhausted})"
