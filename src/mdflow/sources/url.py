"""Fetches web pages as documents."""

import logging

from ..errors import FetchError
from ..http.protocols import HttpClient
from .base import ExtractedDocument

logger = logging.getLogger(__name__)

HTML_MIME_TYPES = frozenset({"text/html", "application/xhtml+xml", ""})


class UrlSource:
    """
    Loads a web page through an HttpClient.

    Example:
        async with AsyncHttpClient() as client:
            document = await UrlSource(client).load("https://example.com/post")
    """

    def __init__(self, http_client: HttpClient, timeout: float | None = None):
        self._http_client = http_client
        self._timeout = timeout

    async def load(self, url: str) -> ExtractedDocument:
        """
        Fetch and decode a page.

        Raises:
            FetchError: On a non-2xx response or a non-HTML content type
        """
        response = await self._http_client.get(url, timeout=self._timeout)
        if not response.ok:
            raise FetchError(url, f"HTTP {response.status_code}", response.status_code)
        if response.mime_type not in HTML_MIME_TYPES:
            raise FetchError(url, f"Not an HTML document ({response.mime_type})", response.status_code)

        final_url = response.url or url
        logger.debug(f"Fetched {final_url} ({len(response.content)} bytes)")
        return ExtractedDocument(
            html=self._http_client.decode_content(response),
            source_url=url,
            base_url=final_url,
        )
