"""
Rate-limited, queued async client for the OpenF1 REST API.

Every request goes through a single FIFO queue drained by one task, so no two
requests from the same client are ever in flight at once and requests reach
the upstream in the order they were made.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import aiohttp

from .auth import TokenProvider
from .errors import (
    AuthenticationError,
    ClientClosedError,
    OpenF1APIError,
    OpenF1ConnectionError,
    OpenF1Error,
    RateLimitExceededError,
)

__all__ = [
    "HTTPResult",
    "OpenF1Client",
    "QueueItem",
    "OpenF1Error",
    "OpenF1APIError",
    "OpenF1ConnectionError",
    "RateLimitExceededError",
    "AuthenticationError",
    "ClientClosedError",
]

API_BASE = "https://api.openf1.org/v1"


@dataclass
class QueueItem:
    """A request waiting for its turn."""
    url: str
    options: Optional[Dict[str, Any]]
    future: asyncio.Future


@dataclass
class HTTPResult:
    """Status and decoded body of one HTTP exchange."""
    status: int
    data: Any = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class OpenF1Client:
    """Async OpenF1 client with a rate-limited request queue."""

    def __init__(
        self,
        base_url: str = API_BASE,
        token_provider: Optional[TokenProvider] = None,
        min_interval: float = 0.4,
        max_retries: int = 3,
        max_rate_limit_retries: int = 5,
        rate_limit_backoff: float = 2.0,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.min_interval = min_interval
        self.max_retries = max_retries
        self.max_rate_limit_retries = max_rate_limit_retries
        self.rate_limit_backoff = rate_limit_backoff
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._clock = clock

        self._queue: asyncio.Queue[QueueItem] = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None
        self._last_request_time: Optional[float] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._closed = False

    def build_url(self, endpoint: str) -> str:
        """Absolute URL for an endpoint such as '/sessions?year=2024'."""
        if endpoint.startswith("http"):
            return endpoint
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return f"{self.base_url}{endpoint}"

    async def fetch(self, endpoint: str, options: Optional[Dict[str, Any]] = None) -> Any:
        """
        Queue a request and wait for its result.

        Args:
            endpoint: API path (with query string) or absolute URL.
            options: Extra request options: method, headers, params, json, data.

        Returns:
            Parsed JSON body.

        Raises:
            OpenF1APIError: Upstream kept failing after all retries.
            ClientClosedError: The client was closed first.
        """
        if self._closed:
            raise ClientClosedError("Client is closed")

        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(QueueItem(self.build_url(endpoint), options, future))
        self._ensure_worker()
        return await future

    def queue_size(self) -> int:
        """Number of requests waiting (excluding the one in flight)."""
        return self._queue.qsize()

    def _ensure_worker(self) -> None:
        """Start the drain task if it is not running."""
        if self._worker_task is None or self._worker_task.done():
            self._worker_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        """Process queued requests one at a time, in order."""
        while True:
            item = await self._queue.get()
            try:
                if item.future.done():
                    # Caller gave up waiting
                    continue
                try:
                    result = await self._execute(item.url, item.options)
                except asyncio.CancelledError:
                    if not item.future.done():
                        item.future.set_exception(
                            ClientClosedError("Client closed before request completed")
                        )
                    raise
                except Exception as e:
                    if not item.future.done():
                        item.future.set_exception(e)
                else:
                    if not item.future.done():
                        item.future.set_result(result)
            finally:
                self._queue.task_done()

    async def _wait_for_slot(self) -> None:
        """Sleep out the rest of the minimum interval since the last request."""
        if self._last_request_time is not None:
            elapsed = self._clock() - self._last_request_time
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)

    async def _execute(self, url: str, options: Optional[Dict[str, Any]]) -> Any:
        """Issue one queued request with retry and backoff."""
        failures = 0
        throttled = 0

        while True:
            await self._wait_for_slot()
            cause: Optional[BaseException] = None
            try:
                headers = await self._auth_header()
                print(f"[API] Fetching {url}")
                # Spacing is measured between sends, not between token fetches
                self._last_request_time = self._clock()
                result = await self._send(url, options, headers)
            except AuthenticationError as e:
                error: Exception = e
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                cause = e
                error = OpenF1ConnectionError(url, e)
            else:
                if result.ok:
                    return result.data

                if result.status == 429:
                    # Throttling has its own bound and never uses up the failure budget
                    throttled += 1
                    if throttled > self.max_rate_limit_retries:
                        raise RateLimitExceededError(url, throttled)
                    wait = self.rate_limit_backoff * throttled
                    print(f"[API] Rate limit hit for {url}. Waiting {wait:.1f}s...")
                    await asyncio.sleep(wait)
                    continue

                if result.status == 401 and self.token_provider is not None:
                    self.token_provider.invalidate()

                error = OpenF1APIError(result.status, url, result.reason)

            failures += 1
            if failures >= self.max_retries:
                print(f"[API] Giving up on {url} after {failures} attempts: {error}")
                if cause is not None:
                    raise error from cause
                raise error
            print(f"[API] Error fetching {url}, retrying... ({failures}/{self.max_retries})")
            await asyncio.sleep(self.retry_delay)

    async def _auth_header(self) -> Dict[str, str]:
        if self.token_provider is None:
            return {}
        return await self.token_provider.get_auth_header()

    async def _send(
        self,
        url: str,
        options: Optional[Dict[str, Any]],
        auth_headers: Dict[str, str],
    ) -> HTTPResult:
        """Perform the HTTP exchange."""
        session = await self._ensure_session()
        opts = dict(options or {})
        method = opts.pop("method", "GET")
        headers = {**(opts.pop("headers", None) or {}), **auth_headers}

        async with session.request(method, url, headers=headers, **opts) as resp:
            if 200 <= resp.status < 300:
                return HTTPResult(resp.status, await resp.json(content_type=None))
            return HTTPResult(resp.status, None, resp.reason)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure aiohttp session exists."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        """Stop the drain task, reject pending requests, close the session."""
        self._closed = True

        if self._worker_task is not None:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None

        while not self._queue.empty():
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if not item.future.done():
                item.future.set_exception(ClientClosedError("Client closed before request completed"))

        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

        if self.token_provider is not None:
            await self.token_provider.close()

    async def __aenter__(self) -> "OpenF1Client":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
