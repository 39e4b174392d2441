"""HTTP client interface shared by page sources and the image processor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol


@dataclass(frozen=True)
class HttpResponse:
    """
    A fetched resource.

    Attributes:
        status_code: HTTP status code
        content: Body bytes, undecoded
        content_type: Raw Content-Type header ("" when absent)
        headers: Response headers
        url: URL the body was served from, after redirects
    """

    status_code: int
    content: bytes
    content_type: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def mime_type(self) -> str:
        """Content-Type without parameters, lowercased."""
        return self.content_type.split(";", 1)[0].strip().lower()

    @property
    def charset(self) -> Optional[str]:
        """Charset parameter of the Content-Type header, if any."""
        for param in self.content_type.split(";")[1:]:
            name, _, value = param.partition("=")
            if name.strip().lower() == "charset" and value.strip():
                return value.strip().strip("\"'")
        return None


class HttpClient(Protocol):
    """
    What mdflow needs from an HTTP client.

    UrlSource and ImageProcessor depend only on this, so tests hand in a
    mock object with the same two methods.
    """

    async def get(
        self,
        url: str,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        """
        Fetch url.

        Non-2xx responses are returned, not raised. Network failures raise
        once retries are exhausted.
        """
        ...

    def decode_content(self, response: HttpResponse) -> str:
        """Decode a response body to text."""
        ...
