"""Loading image bytes from files and URLs.

:class:`ImageLoader` turns a file path or an ``http(s)`` URL into an
:class:`~decksync.image.resource.ImageResource`. Loaded resources are kept
in an :class:`ImageCache` shared by every loader in the process, so a
picture referenced on many slides (or on many passes) is read, and
uploaded, once.
"""

from __future__ import annotations

import asyncio
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Any

import httpx

from decksync.config import DeckSyncConfig
from decksync.errors import DeckSyncImageError
from decksync.image.resource import ImageResource
from decksync.models import UploadState
from decksync.observability import get_logger

_log = get_logger(__name__)

_CacheKey = tuple[str, str, bool]

DEFAULT_CACHE_ENTRIES = 256


class ImageCache:
    """Thread-safe, size-bounded cache of loaded images.

    Lookups are by source (path or URL), link and ``from_markdown`` flag.
    File entries remember the file's modification time and are ignored
    once the file changes, and resources whose upload failed are skipped
    so the next pass loads them afresh. Resources with the same content, MIME type,
    link and flag are stored once, so every source that yields the same
    picture shares one upload lifecycle.

    Parameters
    ----------
    max_entries:
        Number of sources kept. Past it, the least recently used source is
        evicted, along with its resource once no other source refers to it.
    """

    def __init__(self, max_entries: int = DEFAULT_CACHE_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._by_source: OrderedDict[_CacheKey, tuple[ImageResource, float | None]] = OrderedDict()
        self._by_content: dict[tuple[str, str, str, bool], ImageResource] = {}

    def get(self, key: _CacheKey, modified_at: float | None = None) -> ImageResource | None:
        with self._lock:
            entry = self._by_source.get(key)
            if entry is not None:
                self._by_source.move_to_end(key)
        if entry is None:
            return None
        resource, cached_mtime = entry
        if modified_at is not None and cached_mtime != modified_at:
            return None
        if resource.state is UploadState.FAILED:
            return None
        return resource

    def store(
        self, key: _CacheKey, resource: ImageResource, modified_at: float | None = None,
    ) -> ImageResource:
        """Cache *resource* under *key* and return the canonical instance."""
        content_key = _content_key(resource)
        with self._lock:
            canonical = self._by_content.get(content_key)
            if canonical is None or canonical.state is UploadState.FAILED:
                canonical = self._by_content[content_key] = resource
            previous = self._by_source.get(key)
            self._by_source[key] = (canonical, modified_at)
            self._by_source.move_to_end(key)
            if previous is not None and previous[0] is not canonical:
                self._forget_if_unreferenced(previous[0])
            while len(self._by_source) > self.max_entries:
                evicted_key, (evicted, _) = self._by_source.popitem(last=False)
                self._forget_if_unreferenced(evicted)
                _log.debug(
                    "evicted cached image",
                    extra={"extra_fields": {"source": evicted_key[0], "fingerprint": evicted.fingerprint}},
                )
        return canonical

    def _forget_if_unreferenced(self, resource: ImageResource) -> None:
        """Drop *resource* from the content index once no source maps to it."""
        if any(r is resource for r, _ in self._by_source.values()):
            return
        content_key = _content_key(resource)
        if self._by_content.get(content_key) is resource:
            del self._by_content[content_key]

    def clear(self) -> None:
        with self._lock:
            self._by_source.clear()
            self._by_content.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_source)


def _content_key(resource: ImageResource) -> tuple[str, str, str, bool]:
    return (resource.fingerprint, resource.mime_type, resource.link, resource.from_markdown)


default_cache = ImageCache()
"""Process-wide cache used by loaders created without an explicit cache."""


class ImageLoader:
    """Load images into :class:`ImageResource` objects.

    Parameters
    ----------
    config:
        Supplies the fetch timeout and ``User-Agent``.
    client:
        An existing :class:`httpx.AsyncClient` to fetch URLs with. When
        omitted the loader creates one and closes it in :meth:`close`.
    cache:
        Cache to use. Defaults to :data:`default_cache`.
    """

    def __init__(
        self,
        config: DeckSyncConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        cache: ImageCache | None = None,
    ) -> None:
        self._config = config if config is not None else DeckSyncConfig()
        self._cache = cache if cache is not None else default_cache
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": self._config.user_agent},
            timeout=httpx.Timeout(self._config.image_fetch_timeout_seconds),
            follow_redirects=True,
        )

    async def load(self, source: str, *, link: str = "", from_markdown: bool = False) -> ImageResource:
        """Load the image at *source* (a file path or an ``http(s)`` URL).

        Raises
        ------
        DeckSyncImageError
            If the image cannot be read or fetched, or is not PNG, JPEG
            or GIF.
        """
        key = (source, link, from_markdown)
        if source.startswith(("http://", "https://")):
            return await self._load_url(source, key, link, from_markdown)
        return await self._load_file(source, key, link, from_markdown)

    async def _load_url(self, url: str, key: _CacheKey, link: str, from_markdown: bool) -> ImageResource:
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            response = await self._client.get(url, headers={"User-Agent": self._config.user_agent})
        except httpx.HTTPError as exc:
            raise DeckSyncImageError(
                message=f"Failed to fetch image from {url}: {exc}",
                context={"source": url, "reason": "network_error"},
                cause=exc,
            ) from exc
        if response.status_code != 200:
            raise DeckSyncImageError(
                message=f"Failed to fetch image from {url}: status code {response.status_code}",
                context={"source": url, "reason": "http_status", "status_code": response.status_code},
            )

        resource = ImageResource.from_bytes(
            response.content, source=url, link=link, from_markdown=from_markdown,
        )
        _log.debug(
            "image fetched",
            extra={"extra_fields": {"op": "load_image", "source": url, "bytes": len(response.content)}},
        )
        return self._cache.store(key, resource)

    async def _load_file(self, source: str, key: _CacheKey, link: str, from_markdown: bool) -> ImageResource:
        path = Path(source).expanduser()
        loop = asyncio.get_running_loop()
        try:
            stat = await loop.run_in_executor(None, path.stat)
        except OSError as exc:
            raise DeckSyncImageError(
                message=f"Image file not found: {source}",
                context={"source": source, "reason": "not_found"},
                cause=exc,
            ) from exc

        cached = self._cache.get(key, modified_at=stat.st_mtime)
        if cached is not None:
            return cached

        try:
            data = await loop.run_in_executor(None, path.read_bytes)
        except OSError as exc:
            raise DeckSyncImageError(
                message=f"Failed to read image file {source}: {exc}",
                context={"source": source, "reason": "unreadable"},
                cause=exc,
            ) from exc

        resource = ImageResource.from_bytes(
            data,
            source=source,
            link=link,
            from_markdown=from_markdown,
            modified_at=stat.st_mtime,
        )
        return self._cache.store(key, resource, modified_at=stat.st_mtime)

    async def close(self) -> None:
        """Close the HTTP client if this loader created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> ImageLoader:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
