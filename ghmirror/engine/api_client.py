"""HTTP access to the GitHub REST API with lazy pagination."""

from __future__ import annotations

from typing import Any, Iterator

import httpx
import structlog

from ..config import MirrorConfig
from ..errors import RemoteError, TransientError
from ..logging_conf import component_logger

# Statuses meaning "this entity does not exist (any more)"
_NOT_FOUND_STATUSES = frozenset({404, 410, 451})


class ApiClient:
    """Issue GET requests against the configured API base URL.

    Not-found responses are reported as ``None``; rate limiting, server errors
    and transport failures surface as ``TransientError`` and are not retried
    here.
    """

    def __init__(
        self,
        config: MirrorConfig,
        logger: structlog.BoundLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self.logger = logger or component_logger("api_client")
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "ghmirror",
        }
        if config.token:
            headers["Authorization"] = f"token {config.token}"
        self._client = httpx.Client(
            follow_redirects=True,
            timeout=config.timeout,
            headers=headers,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def ghurl(self, path: str) -> str:
        return self.config.urlbase + path.lstrip("/")

    def api_request(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """Return the decoded body for ``url`` or ``None`` when the entity does not exist."""

        response = self._get(url, params)
        if response is None:
            return None
        body = self._decode(response)
        return body or None

    def paged_api_request(
        self,
        url: str,
        pages: int | None = None,
        params: dict[str, Any] | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Yield items across result pages, following ``rel="next"`` links.

        ``params`` are merged into the first request's query string together
        with the page size. At most ``pages`` pages are requested when
        ``pages`` is positive.
        """

        next_url: str | None = url
        params = {**(params or {}), "per_page": self.config.per_page}
        fetched = 0
        while next_url:
            if pages is not None and pages > 0 and fetched >= pages:
                self.logger.debug("page_limit_reached", url=url, pages=pages)
                break
            response = self._get(next_url, params)
            if response is None:
                break
            fetched += 1
            body = self._decode(response)
            if isinstance(body, list):
                items = body
            elif isinstance(body, dict) and isinstance(body.get("items"), list):
                items = body["items"]
            elif body:
                items = [body]
            else:
                items = []
            yield from items
            next_url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            params = None

    # ------------------------------------------------------------------
    def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response | None:
        # Passing params= to httpx replaces the URL's own query string
        request_url = httpx.URL(url).copy_merge_params(params) if params else httpx.URL(url)
        try:
            response = self._client.get(request_url)
        except httpx.TransportError as exc:
            self.logger.warning("api_transport_error", url=url, error=str(exc))
            raise TransientError(f"Request to {url} failed: {exc}", url=url) from exc

        status = response.status_code
        self.logger.debug("api_request", url=str(response.url), status=status)
        if status in _NOT_FOUND_STATUSES:
            return None
        if self._is_transient(response):
            self.logger.warning(
                "api_transient_status",
                url=url,
                status=status,
                remaining=response.headers.get("X-RateLimit-Remaining"),
            )
            raise TransientError(f"Unexpected status {status} for {url}", url=url, status_code=status)
        if status >= 400:
            raise RemoteError(f"Unexpected status {status} for {url}", url=url, status_code=status)
        return response

    @staticmethod
    def _is_transient(response: httpx.Response) -> bool:
        status = response.status_code
        if status >= 500 or status == 429:
            return True
        return status == 403 and response.headers.get("X-RateLimit-Remaining") == "0"

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        return response.json()


__all__ = ["ApiClient"]
