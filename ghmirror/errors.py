"""Error taxonomy shared by the retrieval engine and the publisher."""

from __future__ import annotations

from typing import Any, Mapping


class MirrorError(Exception):
    """Base class for all ghmirror failures."""


class NotFoundError(MirrorError):
    """Remote lookup returned nothing and no cached copy exists."""

    def __init__(self, collection: str, selector: Mapping[str, Any]) -> None:
        self.collection = collection
        self.selector = dict(selector)
        super().__init__(f"Cannot find {collection} matching {self.selector}")


class ValidationError(MirrorError):
    """A stored record cannot be turned into a publishable message."""


class TransientError(MirrorError):
    """Network failure or rate limit reported by the remote API."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class RemoteError(MirrorError):
    """Non-retryable HTTP failure from the remote API."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message)


__all__ = ["MirrorError", "NotFoundError", "RemoteError", "TransientError", "ValidationError"]
