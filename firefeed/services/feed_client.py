from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from firefeed.services.listing import build_feed_params

logger = logging.getLogger(__name__)


class FeedClientError(RuntimeError):
    pass


class FeedClient:
    """
    Thin httpx client for the active fires endpoint.

    Each fetch is independent; a caller that polls just keeps the last
    successful response.
    """

    def __init__(
        self,
        api_url: str,
        *,
        timeout_s: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_url = api_url
        self._client = httpx.Client(
            timeout=timeout_s,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def fetch(self, *, limit: int = 50, query: Optional[str] = None) -> Dict[str, Any]:
        params = build_feed_params(limit, query)
        try:
            r = self._client.get(self.api_url, params=params)
        except httpx.HTTPError as e:
            raise FeedClientError(f"request failed: {e}") from e

        if r.status_code >= 400:
            raise FeedClientError(f"HTTP {r.status_code}")

        try:
            data = r.json()
        except ValueError as e:
            raise FeedClientError("response was not JSON") from e

        if not isinstance(data, dict) or not isinstance(data.get("fires"), list):
            raise FeedClientError("unexpected response shape")

        logger.debug(
            "feed_fetch params=%s count=%d cache=%s",
            params, len(data["fires"]), r.headers.get("X-Cache"),
        )
        return data

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "FeedClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
