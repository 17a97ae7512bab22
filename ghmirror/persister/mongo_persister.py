"""MongoDB persister implementation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from bson import ObjectId
from pymongo import ASCENDING, MongoClient

from .base import BasePersister, Record, Selector


class MongoPersister(BasePersister):
    """Store records as documents, one MongoDB collection per entity kind."""

    ext_uniq = "_id"

    def __init__(self, uri: str, database: str, client: Any | None = None) -> None:
        self.client = client if client is not None else MongoClient(uri)
        self.db = self.client[database]

    def find(self, collection: str, selector: Mapping[str, Any], *, skip: int = 0, limit: int = 0) -> list[Record]:
        cursor = self.db[collection].find(
            dict(selector),
            skip=skip,
            limit=limit,
            sort=[("_id", ASCENDING)],
        )
        return list(cursor)

    def store(self, collection: str, record: Mapping[str, Any]) -> Any:
        # insert_one mutates its argument; keep the caller's record untouched
        result = self.db[collection].insert_one(dict(record))
        return result.inserted_id

    def count(self, collection: str, selector: Mapping[str, Any]) -> int:
        return self.db[collection].count_documents(dict(selector))

    def id_floor(self, timestamp: float) -> Selector:
        moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
        return {"_id": {"$gte": ObjectId.from_datetime(moment)}}

    def close(self) -> None:
        self.client.close()


__all__ = ["MongoPersister"]
