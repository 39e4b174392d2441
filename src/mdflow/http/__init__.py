"""HTTP client for page and image fetches."""

from .client import AsyncHttpClient
from .protocols import HttpClient, HttpResponse

__all__ = ["AsyncHttpClient", "HttpClient", "HttpResponse"]
