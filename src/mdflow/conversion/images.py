"""Image download and reference rewriting."""

from __future__ import annotations

import asyncio
import copy
import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional, TypeVar
from urllib.parse import urljoin, urlsplit

from bs4 import Tag

from ..errors import FetchError
from ..http.protocols import HttpClient, HttpResponse
from ..models.results import ImageRecord

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Tag)

DEFAULT_IMAGE_TIMEOUT = 30.0
DEFAULT_EXTENSION = "png"
MAX_FILENAME_LENGTH = 50

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/x-icon": "ico",
    "image/bmp": "bmp",
}
URL_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "svg", "ico", "bmp"})

_UNSAFE_NAME = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class ImageOptions:
    """How images of one conversion are handled."""

    download_images: bool = False
    target_path: str = "images"
    rewrite_absolute: bool = False


def is_absolute_url(url: str) -> bool:
    lowered = url.lower()
    return lowered.startswith(("http://", "https://", "//"))


def resolve_url(url: str, base_url: Optional[str]) -> str:
    if url.startswith("//"):
        scheme = urlsplit(base_url).scheme if base_url else ""
        return f"{scheme or 'https'}:{url}"
    if not base_url or is_absolute_url(url):
        return url
    try:
        return urljoin(base_url, url)
    except ValueError:
        return url


def should_download(url: str) -> bool:
    """Remote raster images only: no data:, blob:, local or SVG references."""
    lowered = url.lower()
    if lowered.startswith(("data:", "blob:", "file:")):
        return False
    if not is_absolute_url(url):
        return False
    return not urlsplit(lowered).path.endswith(".svg")


def sanitize_filename(name: str) -> str:
    return _UNSAFE_NAME.sub("_", name.lower()).strip("_")[:MAX_FILENAME_LENGTH]


def extension_for(content_type: str, url: str) -> str:
    """File extension from the content type, then the URL path, else png."""
    mime = content_type.split(";", 1)[0].strip().lower()
    if mime in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[mime]
    suffix = PurePosixPath(urlsplit(url).path.lower()).suffix.lstrip(".")
    if suffix in URL_EXTENSIONS:
        return suffix
    return DEFAULT_EXTENSION


def rewrite_to_relative(url: str, base_url: Optional[str]) -> str:
    """
    Express a same-origin URL relative to the page at base_url.

    The last segment of the base path is treated as the page itself.
    Cross-origin URLs are returned unchanged.
    """
    if not base_url:
        return url
    try:
        target = urlsplit(urljoin(base_url, url))
        base = urlsplit(base_url)
    except ValueError:
        return url
    if (target.scheme, target.netloc) != (base.scheme, base.netloc):
        return url

    path_parts = [p for p in target.path.split("/") if p]
    base_parts = [p for p in base.path.split("/") if p]

    common = 0
    for left, right in zip(path_parts, base_parts):
        if left != right:
            break
        common += 1

    up_levels = max(0, len(base_parts) - common - 1)
    relative = "../" * up_levels + "/".join(path_parts[common:])
    if target.query:
        relative += f"?{target.query}"
    return relative or "./"


class ImageProcessor:
    """
    Downloads images of one conversion and rewrites their references.

    A processor remembers what it fetched, so create one per conversion.

    Example:
        processor = ImageProcessor(http_client, save_dir=Path("./out"))
        tree = await processor.process(tree, ImageOptions(download_images=True), base_url)
        for record in processor.records:
            print(record.resolved_url, "->", record.local_path)
    """

    def __init__(
        self,
        http_client: Optional[HttpClient] = None,
        save_dir: Optional[Path] = None,
        timeout: float = DEFAULT_IMAGE_TIMEOUT,
    ):
        """
        Initialize the processor.

        Args:
            http_client: Client used for downloads (required to download)
            save_dir: Directory that target paths are relative to; bytes are
                      only kept in memory when None
            timeout: Per-image fetch timeout in seconds
        """
        self._http_client = http_client
        self._save_dir = save_dir
        self._timeout = timeout
        self._memo: dict[str, ImageRecord] = {}
        self._used_names: set[str] = set()
        self._counter = 0

    @property
    def records(self) -> list[ImageRecord]:
        return list(self._memo.values())

    async def process(self, subtree: T, options: ImageOptions, base_url: Optional[str] = None) -> T:
        """
        Download or rewrite the images of a copy of subtree.

        Failed downloads are logged and keep their original URL.
        """
        self._memo.clear()
        self._used_names.clear()
        self._counter = 0

        root = copy.copy(subtree)
        images = [img for img in root.find_all("img") if img.get("src")]

        if options.download_images:
            await self._download_all(images, options, base_url)

        for img in images:
            src = str(img["src"]).strip()
            resolved = resolve_url(src, base_url)
            record = self._memo.get(resolved)
            if record is not None and record.downloaded:
                img["src"] = record.local_path
            elif options.rewrite_absolute and is_absolute_url(resolved):
                img["src"] = rewrite_to_relative(resolved, base_url)

        return root

    async def _download_all(self, images: list[Tag], options: ImageOptions, base_url: Optional[str]) -> None:
        pending: dict[str, tuple[str, str]] = {}
        for img in images:
            src = str(img["src"]).strip()
            resolved = resolve_url(src, base_url)
            if should_download(resolved) and resolved not in pending:
                pending.setdefault(resolved, (src, str(img.get("alt", ""))))

        if not pending:
            return
        if self._http_client is None:
            logger.warning("Image download requested without an HTTP client; keeping original URLs")
            return

        urls = list(pending)
        responses = await asyncio.gather(*(self._fetch(url) for url in urls), return_exceptions=True)

        # Names are assigned in document order regardless of fetch completion order
        for url, response in zip(urls, responses):
            original, alt = pending[url]
            if isinstance(response, BaseException):
                logger.warning(f"Failed to download image {url}: {response}")
                self._memo[url] = ImageRecord(original, url, original, downloaded=False, alt=alt)
                continue
            filename = self._filename(alt, extension_for(response.content_type, url))
            local_path = f"{options.target_path.rstrip('/')}/{filename}" if options.target_path else filename
            try:
                written = self._write(local_path, response.content)
            except OSError as e:
                logger.warning(f"Failed to save image {url}: {e}")
                self._memo[url] = ImageRecord(original, url, original, downloaded=False, alt=alt)
                continue
            self._memo[url] = ImageRecord(
                original,
                url,
                local_path,
                downloaded=True,
                alt=alt,
                content=None if written else response.content,
            )
            logger.debug(f"Downloaded image {url} -> {local_path}")

    async def _fetch(self, url: str) -> HttpResponse:
        if self._http_client is None:
            raise RuntimeError("ImageProcessor needs an HTTP client to download images")
        response = await self._http_client.get(url, timeout=self._timeout)
        if not response.ok:
            raise FetchError(url, f"HTTP {response.status_code}", response.status_code)
        return response

    def _filename(self, alt: str, extension: str) -> str:
        stem = sanitize_filename(alt)
        if not stem:
            self._counter += 1
            stem = f"image_{self._counter}"
        candidate = f"{stem}.{extension}"
        suffix = 2
        while candidate in self._used_names:
            candidate = f"{stem}_{suffix}.{extension}"
            suffix += 1
        self._used_names.add(candidate)
        return candidate

    def _write(self, local_path: str, content: bytes) -> bool:
        """Write under save_dir; False when there is no directory to write to."""
        if self._save_dir is None:
            return False
        destination = self._save_dir / local_path
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(content)
        return True
