"""Ordered set of delivery tags awaiting broker confirmation."""

from __future__ import annotations

from bisect import bisect_left, bisect_right, insort
from typing import Iterator, List


class OutstandingSet:
    """Delivery tags published but not yet acked or nacked.

    Supports single-tag settlement and cumulative settlement, where a tag
    ``T`` with ``multiple`` set settles every tag ``<= T``.
    """

    def __init__(self) -> None:
        self._tags: List[int] = []

    def add(self, tag: int) -> None:
        if self._tags and tag > self._tags[-1]:
            self._tags.append(tag)
            return
        index = bisect_left(self._tags, tag)
        if index < len(self._tags) and self._tags[index] == tag:
            return
        insort(self._tags, tag)

    def settle(self, tag: int, multiple: bool = False) -> int:
        """Remove ``tag`` (or every tag up to it) and return how many were removed."""

        if multiple:
            cut = bisect_right(self._tags, tag)
            del self._tags[:cut]
            return cut
        index = bisect_left(self._tags, tag)
        if index < len(self._tags) and self._tags[index] == tag:
            del self._tags[index]
            return 1
        return 0

    def clear(self) -> int:
        count = len(self._tags)
        self._tags.clear()
        return count

    def __contains__(self, tag: object) -> bool:
        if not isinstance(tag, int):
            return False
        index = bisect_left(self._tags, tag)
        return index < len(self._tags) and self._tags[index] == tag

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._tags))

    def __len__(self) -> int:
        return len(self._tags)

    def __bool__(self) -> bool:
        return bool(self._tags)

    def __repr__(self) -> str:
        return f"OutstandingSet({self._tags!r})"


__all__ = ["OutstandingSet"]
