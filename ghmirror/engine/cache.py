"""Fetch-or-reuse cache for single remote entities."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, Hashable, Iterator, Mapping

import structlog

from ..errors import NotFoundError
from ..logging_conf import component_logger
from ..persister import BasePersister, Record, selector_key

FetchFn = Callable[[], "Record | None"]


@dataclass(slots=True)
class _KeyLock:
    lock: Lock = field(default_factory=Lock)
    # Callers holding or waiting for the lock
    users: int = 0


class RetrievalCache:
    """Return stored entities, calling the remote fetch function only on a miss.

    A distinct selector triggers at most one remote fetch for as long as the
    persister is shared. Lookups for the same selector are serialized so that
    two threads cannot both miss and store a duplicate; different selectors
    proceed independently. A selector's lock is dropped once no caller holds
    or waits for it.
    """

    def __init__(self, persister: BasePersister, logger: structlog.BoundLogger | None = None) -> None:
        self.persister = persister
        self.logger = logger or component_logger("retrieval_cache")
        self._locks: Dict[Hashable, _KeyLock] = {}
        self._locks_guard = Lock()

    def fetch_single(
        self,
        collection: str,
        selector: Mapping[str, Any],
        fetch_fn: FetchFn,
        *,
        label: str | None = None,
        missing_ok: bool = False,
    ) -> Record | None:
        """Return the record matching ``selector``, fetching and storing it on a miss.

        With ``missing_ok`` an empty remote result yields ``None`` instead of
        an error, for entities that may legitimately have been deleted upstream.

        Raises:
            NotFoundError: nothing is stored and ``fetch_fn`` returned an empty result.
        """

        what = label or collection
        with self._locked(collection, selector):
            stored = self.persister.find(collection, selector)
            if stored:
                self.logger.debug("cache_hit", collection=collection, what=what, selector=dict(selector))
                return stored[0]

            record = fetch_fn()
            if not record:
                if missing_ok:
                    self.logger.debug("cache_missing", collection=collection, what=what, selector=dict(selector))
                    return None
                raise NotFoundError(collection, selector)

            unq = self.persister.store(collection, record)
            record[self.persister.ext_uniq] = unq
            self.logger.info("cache_added", collection=collection, what=what, selector=dict(selector))
            return record

    @contextmanager
    def _locked(self, collection: str, selector: Mapping[str, Any]) -> Iterator[None]:
        key = (collection, selector_key(selector))
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if not entry.users:
                    del self._locks[key]


__all__ = ["FetchFn", "RetrievalCache"]
