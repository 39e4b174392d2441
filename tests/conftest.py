"""Shared test fixtures."""

import pytest

from mdflow.http.protocols import HttpResponse


class MockHttpClient:
    """Mock HTTP client for testing."""

    def __init__(self, responses: dict[str, tuple[int, str, bytes]] | None = None):
        """
        Initialize mock client.

        Args:
            responses: Dict mapping URLs to (status_code, content_type, content)
        """
        self.responses = responses or {}
        self.requested: list[str] = []

    async def get(self, url: str, *, timeout: float | None = None, headers: dict[str, str] | None = None):
        """Mock GET request."""
        self.requested.append(url)
        status, content_type, content = self.responses.get(url, (404, "text/html", b"Not found"))
        return HttpResponse(status, content, content_type, {"Content-Type": content_type}, url)

    def decode_content(self, response: HttpResponse) -> str:
        return response.content.decode("utf-8", errors="replace")

    async def close(self) -> None:
        pass


@pytest.fixture
def http_client():
    return MockHttpClient()
