"""
Async Graph API client with pagination, throttling, retry, and safety enforcement.
Used by every collector; SharePoint site scans fan out through its semaphore.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncGenerator, Optional

import httpx

from ..config import (
    GRAPH_BASE_URL,
    GRAPH_API_VERSION,
    GRAPH_BETA_VERSION,
    MAX_RETRIES,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    BACKOFF_MULTIPLIER,
    DEFAULT_PAGE_SIZE,
    MAX_PAGES_PER_ENDPOINT,
    MAX_CONCURRENT_REQUESTS,
)
from ..safety.guardian import SafetyGuardian, SafetyViolation

logger = logging.getLogger("m365_copilot_readiness.graph")

RETRYABLE_STATUS = (429, 503, 504)
TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.ConnectError)


class GraphAPIError(Exception):
    """Non-recoverable Graph response."""
    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(f"HTTP {status_code}: {message} ({url})")


class GraphClient:
    """
    Read-only async client for Microsoft Graph.

    Every request passes the SafetyGuardian first, then waits on a shared
    semaphore so collectors and site scans never exceed `max_concurrency`
    requests in flight. Throttled responses are retried with backoff; a 403
    comes back as a `_forbidden` marker so callers can record a permission
    gap instead of failing the whole collection.
    """

    def __init__(
        self,
        access_token: str,
        guardian: SafetyGuardian,
        max_concurrency: int = MAX_CONCURRENT_REQUESTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_pages: int = MAX_PAGES_PER_ENDPOINT,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.access_token = access_token
        self.guardian = guardian
        self.max_pages = max_pages
        # Graph caps $top at 999
        self.page_size = max(1, min(page_size, DEFAULT_PAGE_SIZE))
        self.max_concurrency = max_concurrency
        self._transport = transport
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._stats = {"total_requests": 0, "throttle_events": 0}
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
                # $count and $search on directory objects need eventual consistency
                "ConsistencyLevel": "eventual",
            },
            timeout=httpx.Timeout(60.0, connect=30.0),
            limits=httpx.Limits(
                max_connections=self.max_concurrency * 2,
                max_keepalive_connections=self.max_concurrency,
            ),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client is not None:
            await self._client.aclose()
        self._client = None

    def url_for(self, endpoint: str, beta: bool = False) -> str:
        """Absolute Graph URL; nextLink values pass through untouched."""
        if endpoint.startswith(("https://", "http://")):
            return endpoint
        version = GRAPH_BETA_VERSION if beta else GRAPH_API_VERSION
        return f"{GRAPH_BASE_URL}/{version}/{endpoint.lstrip('/')}"

    # ─── Public read API ────────────────────────────────────────────────

    async def get(self, endpoint: str, params: Optional[dict] = None, beta: bool = False) -> dict:
        """Single GET; returns the decoded body or a marker dict."""
        return await self._guarded_get(self.url_for(endpoint, beta), params)

    async def get_all_pages(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
        top: Optional[int] = None,
        skip_top: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Collect a paginated collection; `limit` stops reading once reached."""
        collected: list[dict] = []
        stream = self.get_all_pages_stream(endpoint, params, beta, top, skip_top=skip_top)
        try:
            async for item in stream:
                collected.append(item)
                if limit is not None and len(collected) >= limit:
                    break
        finally:
            await stream.aclose()
        return collected

    async def get_all_pages_stream(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
        top: Optional[int] = None,
        skip_top: bool = False,
    ) -> AsyncGenerator[dict, None]:
        """
        Yield items across @odata.nextLink pages.
        Some endpoints reject $top; pass skip_top=True for those.
        Raises GraphAPIError(403) when the collection is not readable.
        """
        query = dict(params or {})
        if not skip_top:
            query.setdefault("$top", str(min(top or self.page_size, self.page_size)))

        url: Optional[str] = self.url_for(endpoint, beta)
        page_query: Optional[dict] = query
        for _ in range(self.max_pages):
            page = await self._guarded_get(url, page_query)
            if page.get("_forbidden"):
                raise GraphAPIError(403, page.get("_error_message", "Forbidden"), url)
            for item in page.get("value", []):
                yield item
            url = page.get("@odata.nextLink")
            if not url:
                return
            page_query = None  # nextLink carries its own query string

        logger.warning(f"Stopped paging {endpoint} after {self.max_pages} pages")

    async def get_count(self, endpoint: str, beta: bool = False) -> int:
        """Value of `<endpoint>/$count`, or -1 when Graph will not provide it."""
        url = self.url_for(endpoint, beta) + "/$count"
        self.guardian.validate_request("GET", url)
        async with self._semaphore:
            response = await self._execute_raw("GET", url)
        self._stats["total_requests"] += 1
        if response.status_code != 200:
            logger.debug(f"No $count for {url}: HTTP {response.status_code}")
            return -1
        try:
            return int(response.text.strip())
        except ValueError:
            return -1

    def get_stats(self) -> dict[str, Any]:
        return dict(self._stats)

    # ─── Transport ──────────────────────────────────────────────────────

    async def _guarded_get(self, url: str, params: Optional[dict]) -> dict:
        self.guardian.validate_request("GET", url)
        async with self._semaphore:
            return await self._execute_with_retry("GET", url, params=params)

    async def _execute_with_retry(self, method: str, url: str, params: Optional[dict] = None) -> dict:
        """Send with exponential backoff on throttling and transient network errors."""
        delay = INITIAL_BACKOFF_SECONDS
        status = 0
        attempt = 0
        while True:
            try:
                response = await self._execute_raw(method, url, params=params)
            except TRANSIENT_ERRORS as e:
                if attempt >= MAX_RETRIES:
                    raise
                logger.warning(f"{type(e).__name__} calling {url} (attempt {attempt + 1}/{MAX_RETRIES})")
                wait = delay
            else:
                self._stats["total_requests"] += 1
                status = response.status_code
                if status not in RETRYABLE_STATUS:
                    return _decode(response, url)
                self._stats["throttle_events"] += 1
                if attempt >= MAX_RETRIES:
                    break
                wait = max(_retry_after(response, delay), delay)
                logger.warning(f"HTTP {status} from {url}; retry {attempt + 1}/{MAX_RETRIES} in {wait:.1f}s")

            await asyncio.sleep(wait)
            delay = min(delay * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
            attempt += 1

        raise GraphAPIError(status, f"Retries exhausted after {MAX_RETRIES} attempts", url)

    async def _execute_raw(self, method: str, url: str, params: Optional[dict] = None) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("GraphClient must be used inside 'async with'")
        if method != "GET":
            raise SafetyViolation(f"Refusing {method} at transport level: {url}")
        return await self._client.get(url, params=params)


def _decode(response: httpx.Response, url: str) -> dict:
    """Map a final (non-throttled) response to a body or a marker dict."""
    status = response.status_code
    if status == 200:
        if not response.content.strip():
            return {"value": []}
        try:
            return response.json()
        except ValueError:
            logger.debug(f"Non-JSON 200 body from {url}")
            return {"value": []}
    if status == 204:
        return {}
    if status == 404:
        logger.debug(f"Not found: {url}")
        return {"value": [], "_not_found": True}
    message = _error_message(response)
    if status == 403:
        logger.warning(f"Forbidden: {url} ({message})")
        return {"value": [], "_forbidden": True, "_error_message": message}
    raise GraphAPIError(status, message, url)


def _retry_after(response: httpx.Response, default: float) -> float:
    try:
        return float(response.headers.get("Retry-After", default))
    except ValueError:
        return default


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json() if response.content else {}
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message", response.text[:200])
    return response.text[:200]
