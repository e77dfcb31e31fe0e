"""
Async Graph API client with pagination, bounded retry, $batch, and read-only enforcement.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator, Optional

import httpx

from ..config import (
    GRAPH_BASE_URL,
    GRAPH_API_VERSION,
    GRAPH_BETA_VERSION,
    DEFAULT_PAGE_SIZE,
    MAX_PAGES_PER_ENDPOINT,
    BATCH_SIZE,
    MAX_CONCURRENT_REQUESTS,
    RetryPolicy,
)
from ..safety.guardian import ReadOnlyGuard, ReadOnlyViolation

logger = logging.getLogger("m365_tenant_reports.graph")

RETRYABLE_STATUS = (429, 503, 504)


class GraphAPIError(Exception):
    """Raised when Graph API returns a non-recoverable error."""
    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(f"Graph API Error {status_code} for {url}: {message}")


class GraphClient:
    """
    Async Microsoft Graph API client.
    Features:
      - Read-only guard on every request
      - Automatic pagination with @odata.nextLink
      - Bounded retry on 429/503/504, timeouts and connection errors
      - Concurrent request semaphore
      - v1.0 and beta endpoint support
    """

    def __init__(
        self,
        access_token: str,
        guard: ReadOnlyGuard,
        retry: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.guard = guard
        self.retry = retry or RetryPolicy()
        self._transport = transport
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)
        self._request_count = 0
        self._throttle_count = 0
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(60.0, connect=30.0),
            limits=httpx.Limits(
                max_connections=MAX_CONCURRENT_REQUESTS * 2,
                max_keepalive_connections=MAX_CONCURRENT_REQUESTS,
            ),
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
                "ConsistencyLevel": "eventual",
            },
            follow_redirects=True,  # report endpoints redirect to a download URL
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str, beta: bool = False) -> str:
        if endpoint.startswith("http"):
            return endpoint
        version = GRAPH_BETA_VERSION if beta else GRAPH_API_VERSION
        return f"{GRAPH_BASE_URL}/{version}/{endpoint.lstrip('/')}"

    async def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
    ) -> dict:
        """Execute a single GET request with retry handling."""
        url = self._build_url(endpoint, beta=beta)
        self.guard.validate_request("GET", url)

        async with self._semaphore:
            return await self._execute_with_retry("GET", url, params=params)

    async def get_all_pages(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
        skip_top: bool = False,
    ) -> list[dict]:
        """Fetch all pages of a paginated endpoint into a list."""
        return [
            item async for item in
            self.get_all_pages_stream(endpoint, params, beta, skip_top=skip_top)
        ]

    async def get_all_pages_stream(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
        skip_top: bool = False,
    ) -> AsyncGenerator[dict, None]:
        """
        Stream all pages of a paginated endpoint, one item at a time.
        Set skip_top=True for endpoints that reject $top (reports, directoryRoles).
        """
        params = dict(params or {})
        if not skip_top and "$top" not in params:
            params["$top"] = str(DEFAULT_PAGE_SIZE)

        url = self._build_url(endpoint, beta=beta)
        request_params: Optional[dict] = params
        pages = 0

        while url and pages < MAX_PAGES_PER_ENDPOINT:
            self.guard.validate_request("GET", url)

            async with self._semaphore:
                data = await self._execute_with_retry("GET", url, params=request_params)

            if data.get("_forbidden"):
                raise GraphAPIError(
                    403,
                    data.get("_error_message", "Forbidden — missing API permission"),
                    url,
                )

            for item in data.get("value", []):
                yield item

            url = data.get("@odata.nextLink")
            request_params = None  # nextLink carries the query string
            pages += 1

        if pages >= MAX_PAGES_PER_ENDPOINT:
            logger.warning(
                f"Pagination safety cap reached ({MAX_PAGES_PER_ENDPOINT} pages) "
                f"for endpoint: {endpoint}"
            )

    async def batch_get(
        self,
        endpoints: list[str],
        beta: bool = False,
    ) -> list[dict]:
        """
        Execute GET requests as Graph $batch calls of BATCH_SIZE.
        Results keep the order of `endpoints`; failures are returned as
        {"_error": True, "status": ..., "_error_message": ...}.
        """
        results = []
        version = GRAPH_BETA_VERSION if beta else GRAPH_API_VERSION
        batch_url = f"{GRAPH_BASE_URL}/{version}/$batch"

        for i in range(0, len(endpoints), BATCH_SIZE):
            chunk = endpoints[i:i + BATCH_SIZE]
            batch_body = {
                "requests": [
                    {
                        "id": str(idx),
                        "method": "GET",
                        "url": ep if ep.startswith("/") else f"/{ep}",
                    }
                    for idx, ep in enumerate(chunk)
                ]
            }
            self.guard.validate_request("POST", batch_url, batch_body)

            async with self._semaphore:
                data = await self._execute_with_retry(
                    "POST", batch_url, json_body=batch_body
                )

            # Graph does not guarantee response order within a batch
            by_id = {str(r.get("id")): r for r in data.get("responses", [])}
            for idx in range(len(chunk)):
                resp = by_id.get(str(idx))
                if resp is None:
                    results.append({"_error": True, "status": None, "_error_message": "Missing response"})
                    continue
                status = resp.get("status")
                if status == 200:
                    results.append(resp.get("body") or {})
                    continue
                body = resp.get("body") or {}
                msg = body.get("error", {}).get("message", "Unknown")
                if status == 403:
                    logger.debug(f"Batch sub-request {chunk[idx]} permission denied (403): {msg}")
                else:
                    logger.warning(f"Batch sub-request {chunk[idx]} failed: {status} — {msg}")
                results.append({"_error": True, "status": status, "_error_message": msg})

        return results

    async def _execute_with_retry(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict:
        """Execute request, retrying throttling and transport errors with backoff."""
        backoff = self.retry.initial_backoff
        max_retries = self.retry.max_retries

        for attempt in range(max_retries + 1):
            try:
                response = await self._execute_raw(
                    method, url, params=params, json_body=json_body
                )
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                logger.warning(
                    f"{type(e).__name__} on {url}, attempt {attempt + 1}/{max_retries + 1}"
                )
                if attempt == max_retries:
                    raise
                await asyncio.sleep(backoff)
                backoff = self.retry.next_backoff(backoff)
                continue

            self._request_count += 1
            status = response.status_code

            if status == 200:
                if not response.content or not response.content.strip():
                    return {"value": []}
                try:
                    return response.json()
                except ValueError:
                    logger.debug(f"200 response with non-JSON body from {url}")
                    return {"value": []}

            if status == 204:
                return {}

            if status == 404:
                logger.debug(f"404 Not Found: {url}")
                return {"value": [], "_not_found": True}

            if status in RETRYABLE_STATUS:
                self._throttle_count += 1
                if attempt == max_retries:
                    break
                wait_time = max(_retry_after(response, backoff), backoff)
                logger.warning(
                    f"Throttled ({status}) on {url}. "
                    f"Retry {attempt + 1}/{max_retries} in {wait_time:.1f}s"
                )
                await asyncio.sleep(wait_time)
                backoff = self.retry.next_backoff(backoff)
                continue

            error_msg = _error_message(response)
            if status == 403:
                logger.warning(f"403 Forbidden: {url} — {error_msg}")
                return {"value": [], "_forbidden": True, "_error_message": error_msg}

            raise GraphAPIError(status, error_msg, url)

        raise GraphAPIError(429, f"Still throttled after {max_retries} retries", url)

    async def _execute_raw(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> httpx.Response:
        if not self._client:
            raise RuntimeError("GraphClient not initialized. Use 'async with' context.")

        if method == "GET":
            return await self._client.get(url, params=params)
        elif method == "POST":
            return await self._client.post(url, json=json_body, params=params)
        raise ReadOnlyViolation(f"Unsupported method at raw level: {method}")

    def get_stats(self) -> dict:
        return {
            "total_requests": self._request_count,
            "throttle_events": self._throttle_count,
        }


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
    if isinstance(body, dict):
        return body.get("error", {}).get("message", response.text[:200])
    return response.text[:200]
