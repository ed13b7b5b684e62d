"""Small async HTTP layer over urllib.

Two callers: the diagram renderer (POST a diagram source, get SVG back) and
the link checker (GET external pages, sometimes hundreds per build). Requests
block in a worker thread; retries and pacing happen on the event loop.
"""

from __future__ import annotations

import asyncio
import gzip
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, NamedTuple

from ..config import CONNECT_TIMEOUT, LINK_CHECK_RATE, MAX_RETRIES, READ_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)

RETRY_STATUSES = frozenset({408, 425, 429})
MAX_BACKOFF = 10.0
MAX_RETRY_AFTER = 60.0


@dataclass(frozen=True)
class HTTPError(Exception):
    """A response that came back with a 4xx/5xx status."""

    url: str
    status_code: int
    headers: dict[str, str]
    content: bytes

    def __str__(self) -> str:
        return f"HTTP {self.status_code} for {self.url}"


class _Response(NamedTuple):
    content: bytes
    headers: dict[str, str]
    status: int


class RateLimiter:
    """Token bucket: bursts of up to `rate` requests, then `rate` per second."""

    def __init__(self, rate: float = LINK_CHECK_RATE):
        if rate <= 0:
            raise ValueError("rate must be > 0")
        self.rate = float(rate)
        self.tokens = self.rate
        self._stamp = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.rate, self.tokens + (now - self._stamp) * self.rate)
        self._stamp = now

    async def acquire(self) -> None:
        while True:
            async with self._lock:
                self._refill()
                if self.tokens >= 1.0:
                    self.tokens -= 1.0
                    return
                delay = (1.0 - self.tokens) / self.rate
            await asyncio.sleep(delay)


class HttpClient:
    """GET/POST with retries on network errors, 429 and 5xx.

    Client errors other than the ones in RETRY_STATUSES fail on the first
    attempt. `rate_limit` (requests/second) is only applied when given.
    """

    def __init__(
        self,
        user_agent: str = USER_AGENT,
        rate_limit: float | None = None,
        max_retries: int = MAX_RETRIES,
        timeout: float | None = None,
    ):
        self.user_agent = user_agent
        self.attempts = max(1, int(max_retries))
        self.timeout = timeout if timeout is not None else float(max(CONNECT_TIMEOUT, READ_TIMEOUT))
        self._limiter = RateLimiter(rate_limit) if rate_limit else None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Nothing to release; urllib opens a connection per request."""

    async def fetch(self, url: str) -> tuple[bytes, dict[str, Any]]:
        response = await self._send(url, "GET", None, {})
        return response.content, response.headers

    async def post(self, url: str, data: bytes, content_type: str = "text/plain") -> tuple[bytes, dict[str, Any]]:
        response = await self._send(url, "POST", data, {"Content-Type": content_type})
        return response.content, response.headers

    async def status(self, url: str) -> int:
        """Status code of a GET, 4xx/5xx included, after retries."""
        try:
            await self.fetch(url)
        except HTTPError as e:
            return e.status_code
        return 200

    async def _send(self, url: str, method: str, data: bytes | None, headers: dict[str, str]) -> _Response:
        delay = 1.0
        for attempt in range(1, self.attempts + 1):
            last = attempt == self.attempts
            if self._limiter is not None:
                await self._limiter.acquire()

            try:
                response = _Response(*await asyncio.to_thread(self._fetch_sync, url, method, data, headers))
            except OSError as e:  # URLError is an OSError
                if last:
                    raise
                logger.debug("%s %s: %s (attempt %d/%d)", method, url, e, attempt, self.attempts)
                await asyncio.sleep(delay)
                delay = min(delay * 2, MAX_BACKOFF)
                continue

            if response.status < 400:
                return response
            error = HTTPError(url=url, status_code=response.status, headers=response.headers, content=response.content)
            if last or not _retryable(response.status):
                raise error

            logger.debug("%s %s: HTTP %d (attempt %d/%d)", method, url, response.status, attempt, self.attempts)
            wait = _retry_after(response.headers)
            await asyncio.sleep(delay if wait is None else wait)
            delay = min(delay * 2, MAX_BACKOFF)

        raise AssertionError("retry loop exited without a result")

    def _fetch_sync(
        self, url: str, method: str, data: bytes | None, headers: dict[str, str]
    ) -> tuple[bytes, dict[str, str], int]:
        request = urllib.request.Request(
            url,
            data=data,
            method=method,
            headers={"User-Agent": self.user_agent, "Accept-Encoding": "gzip", **headers},
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as resp:
                status, raw_headers, body = resp.status, resp.headers, resp.read()
        except urllib.error.HTTPError as e:
            # 4xx/5xx arrive as exceptions; treat them as ordinary responses.
            status, raw_headers, body = e.code, e.headers, e.read()

        resp_headers = dict(raw_headers.items()) if raw_headers else {}
        return _decode_body(body or b"", resp_headers), resp_headers, int(status)


def _retryable(status: int) -> bool:
    return status >= 500 or status in RETRY_STATUSES


def _decode_body(body: bytes, headers: dict[str, str]) -> bytes:
    if headers.get("Content-Encoding", "").lower() == "gzip":
        try:
            return gzip.decompress(body)
        except (OSError, EOFError):
            logger.debug("Body claimed gzip but did not decompress; keeping raw bytes")
    return body


def _retry_after(headers: dict[str, str]) -> float | None:
    """Seconds from a numeric Retry-After header, capped. HTTP-date values are ignored."""
    value = (headers.get("Retry-After") or "").strip()
    try:
        return min(max(float(value), 0.0), MAX_RETRY_AFTER) if value else None
    except ValueError:
        return None
