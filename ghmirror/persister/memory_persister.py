"""In-process persister used for dry runs and tests."""

from __future__ import annotations

import copy
import re
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Dict, List, Mapping

from bson import ObjectId

from .base import BasePersister, Record, Selector, read_value

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$gte": lambda actual, bound: actual >= bound,
    "$gt": lambda actual, bound: actual > bound,
    "$lte": lambda actual, bound: actual <= bound,
    "$lt": lambda actual, bound: actual < bound,
    "$ne": lambda actual, bound: actual != bound,
}


def _matches_condition(actual: Any, expected: Any) -> bool:
    if isinstance(expected, re.Pattern):
        return isinstance(actual, str) and expected.search(actual) is not None
    if isinstance(expected, Mapping) and expected and all(k in _OPERATORS for k in expected):
        if actual is None:
            return False
        try:
            return all(_OPERATORS[op](actual, bound) for op, bound in expected.items())
        except TypeError:
            return False
    if isinstance(actual, list) and not isinstance(expected, list):
        return expected in actual
    return actual == expected


def matches(record: Mapping[str, Any], selector: Mapping[str, Any]) -> bool:
    """Evaluate a selector the way the document store would."""

    return all(_matches_condition(read_value(record, path), expected) for path, expected in selector.items())


class MemoryPersister(BasePersister):
    """Keep records in dictionaries keyed by collection name."""

    ext_uniq = "_id"

    def __init__(self) -> None:
        self._collections: Dict[str, List[Record]] = {}
        self._lock = Lock()

    def find(self, collection: str, selector: Mapping[str, Any], *, skip: int = 0, limit: int = 0) -> list[Record]:
        with self._lock:
            rows = [r for r in self._collections.get(collection, []) if matches(r, selector)]
        rows = rows[skip:]
        if limit:
            rows = rows[:limit]
        return [copy.deepcopy(r) for r in rows]

    def store(self, collection: str, record: Mapping[str, Any]) -> Any:
        document = copy.deepcopy(dict(record))
        unq = document.get(self.ext_uniq) or ObjectId()
        document[self.ext_uniq] = unq
        with self._lock:
            self._collections.setdefault(collection, []).append(document)
        return unq

    def id_floor(self, timestamp: float) -> Selector:
        moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
        return {self.ext_uniq: {"$gte": ObjectId.from_datetime(moment)}}

    def collections(self) -> list[str]:
        with self._lock:
            return sorted(self._collections)

    def clear(self) -> None:
        with self._lock:
            self._collections.clear()


__all__ = ["MemoryPersister", "matches"]
