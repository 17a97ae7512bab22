"""Retrieval engine: remote API access, fetch-or-reuse cache and scoped sync."""

from .api_client import ApiClient
from .cache import FetchFn, RetrievalCache
from .retriever import GitHubRetriever
from .sync import CollectionSync, ListingFn

__all__ = [
    "ApiClient",
    "CollectionSync",
    "FetchFn",
    "GitHubRetriever",
    "ListingFn",
    "RetrievalCache",
]
