"""Persister Service Provider Interface."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Hashable, Mapping

Record = dict[str, Any]
Selector = dict[str, Any]

_MISSING = object()


def read_value(record: Mapping[str, Any], path: str) -> Any:
    """Return the value at a dotted ``path``; an empty path returns the record."""

    if not path:
        return record
    current: Any = record
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return None
    return current


def write_value(record: dict[str, Any], path: str, value: Any) -> None:
    """Set ``value`` at a dotted ``path``, creating intermediate mappings."""

    parts = path.split(".")
    current = record
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def selector_key(selector: Mapping[str, Any]) -> Hashable:
    """Canonical hashable form; equivalent selectors share a key."""

    def _freeze(value: Any) -> Hashable:
        if isinstance(value, Mapping):
            return frozenset((k, _freeze(v)) for k, v in value.items())
        if isinstance(value, (list, tuple)):
            return tuple(_freeze(v) for v in value)
        if isinstance(value, re.Pattern):
            return ("re", value.pattern, value.flags)
        if isinstance(value, Hashable):
            return value
        return repr(value)

    return frozenset((path, _freeze(value)) for path, value in selector.items())


class BasePersister(ABC):
    """Uniform document store contract used by the retrieval engine and publisher."""

    #: Field under which the store-assigned identifier is exposed on a record
    ext_uniq: str = "_id"

    @abstractmethod
    def find(self, collection: str, selector: Mapping[str, Any], *, skip: int = 0, limit: int = 0) -> list[Record]:
        """Return records matching ``selector`` in insertion order; ``limit=0`` is unbounded."""

    @abstractmethod
    def store(self, collection: str, record: Mapping[str, Any]) -> Any:
        """Persist ``record`` and return its collection-unique identifier."""

    def count(self, collection: str, selector: Mapping[str, Any]) -> int:
        return len(self.find(collection, selector))

    @abstractmethod
    def id_floor(self, timestamp: float) -> Selector:
        """Selector matching records stored at or after ``timestamp`` (Unix seconds)."""

    def close(self) -> None:
        return


__all__ = ["BasePersister", "Record", "Selector", "read_value", "selector_key", "write_value"]
