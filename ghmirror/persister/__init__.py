"""Persister SPI and implementations."""

from .base import BasePersister, Record, Selector, read_value, selector_key, write_value
from .memory_persister import MemoryPersister
from .mongo_persister import MongoPersister

__all__ = [
    "BasePersister",
    "MemoryPersister",
    "MongoPersister",
    "Record",
    "Selector",
    "read_value",
    "selector_key",
    "write_value",
]
