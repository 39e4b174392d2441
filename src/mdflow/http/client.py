"""aiohttp implementation of HttpClient."""

from __future__ import annotations

import asyncio
import logging
import random
from types import TracebackType
from typing import Optional

import aiohttp
from charset_normalizer import from_bytes

from ..models.config import NetworkConfig
from ..models.document import declared_encoding
from .protocols import HttpResponse

logger = logging.getLogger(__name__)

# Pages and images larger than this are refused
MAX_RESPONSE_BYTES = 20 * 1024 * 1024
CHUNK_SIZE = 64 * 1024
# Longest Retry-After honored, in seconds
MAX_RETRY_AFTER = 60.0


class _RetryableStatus(Exception):
    def __init__(self, response: HttpResponse):
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


class AsyncHttpClient:
    """
    Fetches pages and images over one shared aiohttp session.

    Connection errors, timeouts and 429/5xx answers are retried with
    exponential backoff; a Retry-After header replaces the computed delay.
    When retries run out on a status code, the last response is returned so
    the caller can report the status.

    Example:
        async with AsyncHttpClient.from_config(config.network) as client:
            response = await client.get("https://example.com/post")
            if response.ok:
                html = client.decode_content(response)
    """

    RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})
    NETWORK_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError)

    def __init__(
        self,
        max_retries: int = 3,
        backoff: float = 0.5,
        user_agent: Optional[str] = None,
        proxy: Optional[str] = None,
        default_timeout: float = 30.0,
        max_bytes: int = MAX_RESPONSE_BYTES,
        connections_per_host: int = 6,
    ) -> None:
        """
        Initialize the client.

        Args:
            max_retries: Retries after the first attempt
            backoff: Delay before the first retry; doubles on each retry
            user_agent: User-Agent header (defaults to an mdflow identifier)
            proxy: Proxy URL for every request
            default_timeout: Total request timeout when get() gets none
            max_bytes: Largest accepted body
            connections_per_host: Connection pool limit per host
        """
        if user_agent is None:
            from .. import __version__

            user_agent = f"Mozilla/5.0 (compatible; mdflow/{__version__})"
        self._max_retries = max_retries
        self._backoff = backoff
        self._user_agent = user_agent
        self._proxy = proxy
        self._default_timeout = default_timeout
        self._max_bytes = max_bytes
        self._connections_per_host = connections_per_host
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, network: NetworkConfig) -> AsyncHttpClient:
        return cls(
            max_retries=network.max_retries,
            user_agent=network.user_agent,
            proxy=network.proxy,
            default_timeout=network.read_timeout,
        )

    async def __aenter__(self) -> AsyncHttpClient:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(limit_per_host=self._connections_per_host),
                headers={
                    "User-Agent": self._user_agent,
                    "Accept": "text/html,application/xhtml+xml,image/*;q=0.9,*/*;q=0.8",
                },
            )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _delay(self, attempt: int, retry_after: Optional[str] = None) -> float:
        if retry_after is not None and retry_after.strip().isdigit():
            return min(float(retry_after.strip()), MAX_RETRY_AFTER)
        return self._backoff * (2**attempt) + random.uniform(0, self._backoff)

    async def _fetch_once(
        self,
        session: aiohttp.ClientSession,
        url: str,
        timeout: float,
        headers: Optional[dict[str, str]],
    ) -> HttpResponse:
        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout),
            headers=headers,
            proxy=self._proxy,
        ) as resp:
            declared = resp.content_length
            if declared is not None and declared > self._max_bytes:
                raise ValueError(f"{url}: response of {declared} bytes exceeds {self._max_bytes}")

            body = bytearray()
            async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                body.extend(chunk)
                if len(body) > self._max_bytes:
                    raise ValueError(f"{url}: response exceeds {self._max_bytes} bytes")

            response = HttpResponse(
                status_code=resp.status,
                content=bytes(body),
                content_type=resp.headers.get("Content-Type", ""),
                headers=dict(resp.headers),
                url=str(resp.url),
            )
        if response.status_code in self.RETRY_STATUSES:
            raise _RetryableStatus(response)
        return response

    async def get(
        self,
        url: str,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        """
        Fetch url, retrying transient failures.

        Raises:
            RuntimeError: If the client was not entered
            ValueError: If the body exceeds max_bytes
            aiohttp.ClientError, asyncio.TimeoutError: When retries run out
        """
        session = self._session
        if session is None:
            raise RuntimeError("AsyncHttpClient must be used as an async context manager")

        attempts = self._max_retries + 1
        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                return await self._fetch_once(session, url, timeout or self._default_timeout, headers)
            except _RetryableStatus as e:
                if last_attempt:
                    return e.response
                delay = self._delay(attempt, e.response.headers.get("Retry-After"))
                logger.warning(f"{url} answered {e.response.status_code}; retry {attempt + 1} in {delay:.1f}s")
            except self.NETWORK_ERRORS as e:
                if last_attempt:
                    logger.error(f"Giving up on {url} after {attempts} attempts: {e}")
                    raise
                delay = self._delay(attempt)
                logger.warning(f"{url} failed ({e.__class__.__name__}: {e}); retry {attempt + 1} in {delay:.1f}s")
            await asyncio.sleep(delay)

        raise RuntimeError(f"No fetch attempted for {url} (max_retries < 0)")

    def decode_content(self, response: HttpResponse) -> str:
        """
        Decode a body to text.

        Tries the Content-Type charset, then a charset declared in the
        markup, then charset-normalizer detection, then UTF-8 with
        replacement characters.
        """
        content = response.content
        for encoding in (response.charset, declared_encoding(content)):
            if not encoding:
                continue
            try:
                return content.decode(encoding)
            except (LookupError, UnicodeDecodeError):
                logger.debug(f"Declared encoding {encoding!r} does not fit {response.url}")

        guess = from_bytes(content).best()
        if guess is not None:
            return str(guess)
        return content.decode("utf-8", errors="replace")
