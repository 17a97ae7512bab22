"""Append-only merge of scoped remote listings into the store."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

import structlog

from ..errors import NotFoundError
from ..logging_conf import component_logger
from ..persister import BasePersister, Record, read_value, write_value

ListingFn = Callable[[], Iterable[Record]]


class CollectionSync:
    """Merge remote items belonging to a parent scope, keyed by a discriminator.

    The merge is one-directional: items that disappear upstream stay in the
    store and items whose remote attributes change are not updated.
    """

    def __init__(self, persister: BasePersister, logger: structlog.BoundLogger | None = None) -> None:
        self.persister = persister
        self.logger = logger or component_logger("collection_sync")

    def sync_scoped_collection(
        self,
        collection: str,
        scope: Mapping[str, Any],
        listing_fn: ListingFn,
        discriminator: str,
    ) -> list[Record]:
        """Store unseen remote items under ``scope`` and return everything stored for it."""

        stored = self.persister.find(collection, scope)
        known = {read_value(item, discriminator) for item in stored}

        for item in listing_fn():
            for path, value in scope.items():
                write_value(item, path, value)
            marker = read_value(item, discriminator)
            if marker in known:
                self.logger.debug("sync_exists", collection=collection, scope=dict(scope), item=marker)
                continue
            self.persister.store(collection, item)
            known.add(marker)
            self.logger.info("sync_added", collection=collection, scope=dict(scope), item=marker)

        return self.persister.find(collection, scope)

    def fetch_scoped_item(
        self,
        collection: str,
        scope: Mapping[str, Any],
        discriminator: str,
        value: Any,
        listing_fn: ListingFn,
        *,
        missing_ok: bool = True,
    ) -> Record | None:
        """Return the item of ``scope`` whose discriminator equals ``value``.

        On a miss the whole scope is synced first. An item that is still absent
        was most likely deleted upstream: ``None`` is returned, or
        ``NotFoundError`` raised when ``missing_ok`` is false.
        """

        selector = {**scope, discriminator: value}
        stored = self.persister.find(collection, selector)
        if stored:
            self.logger.debug("sync_item_cached", collection=collection, selector=selector)
            return stored[0]

        items = self.sync_scoped_collection(collection, scope, listing_fn, discriminator)
        for item in items:
            if read_value(item, discriminator) == value:
                return item

        if not missing_ok:
            raise NotFoundError(collection, selector)
        self.logger.debug("sync_item_missing", collection=collection, selector=selector)
        return None


__all__ = ["CollectionSync", "ListingFn"]
