"""Tests for ImageLoader and ImageCache.

URL fetches go through an :class:`httpx.MockTransport`; file loads use
pytest's ``tmp_path``.
"""

from __future__ import annotations

import os

import httpx
import pytest

from decksync.config import DeckSyncConfig
from decksync.errors import DeckSyncImageError
from decksync.image.loader import ImageCache, ImageLoader
from decksync.models import UploadState

PNG = b"\x89PNG\r\n\x1a\n" + b"body"
JPEG = b"\xff\xd8\xff\xe0" + b"body"


def _loader(handler, cache: ImageCache, **config) -> ImageLoader:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ImageLoader(DeckSyncConfig(**config), client=client, cache=cache)


# =========================================================================
# URLs
# =========================================================================


class TestLoadUrl:
    async def test_fetches_and_sniffs(self, cache):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=PNG)

        loader = _loader(handler, cache, user_agent="deck-tests/1.0")
        image = await loader.load("https://cdn.example.com/a.png", link="https://x.example.com")

        assert image.mime_type == "image/png"
        assert image.link == "https://x.example.com"
        assert image.public_url == "https://cdn.example.com/a.png"
        assert seen[0].headers["User-Agent"] == "deck-tests/1.0"

    async def test_second_load_is_cached(self, cache):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, content=PNG)

        loader = _loader(handler, cache)
        first = await loader.load("https://cdn.example.com/a.png")
        second = await loader.load("https://cdn.example.com/a.png")

        assert first is second
        assert calls == 1

    async def test_non_200_raises(self, cache):
        loader = _loader(lambda request: httpx.Response(404), cache)
        with pytest.raises(DeckSyncImageError) as exc_info:
            await loader.load("https://cdn.example.com/missing.png")
        assert exc_info.value.context["reason"] == "http_status"
        assert exc_info.value.context["status_code"] == 404

    async def test_network_error_raises(self, cache):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        loader = _loader(handler, cache)
        with pytest.raises(DeckSyncImageError) as exc_info:
            await loader.load("https://cdn.example.com/a.png")
        assert exc_info.value.context["reason"] == "network_error"
        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    async def test_unknown_format_raises(self, cache):
        loader = _loader(lambda request: httpx.Response(200, content=b"<html/>"), cache)
        with pytest.raises(DeckSyncImageError, match="not PNG, JPEG or GIF"):
            await loader.load("https://cdn.example.com/page")

    async def test_same_content_from_two_urls_shares_resource(self, cache):
        loader = _loader(lambda request: httpx.Response(200, content=PNG), cache)
        a = await loader.load("https://cdn.example.com/a.png")
        b = await loader.load("https://mirror.example.com/a.png")
        assert a is b


# =========================================================================
# Files
# =========================================================================


class TestLoadFile:
    async def test_reads_file(self, cache, tmp_path):
        path = tmp_path / "photo.jpg"
        path.write_bytes(JPEG)
        loader = ImageLoader(cache=cache)

        image = await loader.load(str(path), from_markdown=True)

        assert image.mime_type == "image/jpeg"
        assert image.from_markdown is True
        assert image.modified_at == os.stat(path).st_mtime
        assert image.needs_upload
        await loader.close()

    async def test_missing_file(self, cache, tmp_path):
        async with ImageLoader(cache=cache) as loader:
            with pytest.raises(DeckSyncImageError) as exc_info:
                await loader.load(str(tmp_path / "nope.png"))
        assert exc_info.value.context["reason"] == "not_found"

    async def test_cached_until_modified(self, cache, tmp_path):
        path = tmp_path / "a.png"
        path.write_bytes(PNG)
        async with ImageLoader(cache=cache) as loader:
            first = await loader.load(str(path))
            assert await loader.load(str(path)) is first

            path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"changed")
            stat = os.stat(path)
            os.utime(path, (stat.st_atime, stat.st_mtime + 10))
            changed = await loader.load(str(path))

        assert changed is not first
        assert changed.fingerprint != first.fingerprint


# =========================================================================
# Cache
# =========================================================================


class TestImageCache:
    def test_get_missing(self, cache):
        assert cache.get(("a.png", "", False)) is None

    def test_store_returns_canonical(self, cache, make_image):
        first = make_image(b"same")
        second = make_image(b"same")
        assert cache.store(("a.png", "", False), first) is first
        assert cache.store(("b.png", "", False), second) is first
        assert len(cache) == 2

    def test_link_and_flag_separate_entries(self, cache, make_image):
        plain = cache.store(("a.png", "", False), make_image(b"same"))
        linked = cache.store(("a.png", "https://l.example.com", False), make_image(b"same", link="https://l.example.com"))
        assert plain is not linked

    def test_mtime_mismatch_is_a_miss(self, cache, make_image):
        image = make_image()
        cache.store(("a.png", "", False), image, modified_at=1.0)
        assert cache.get(("a.png", "", False), modified_at=1.0) is image
        assert cache.get(("a.png", "", False), modified_at=2.0) is None

    def test_failed_resource_is_a_miss_and_replaced(self, cache, make_image):
        failed = make_image(b"x")
        cache.store(("a.png", "", False), failed)
        failed.start_upload()
        failed.fail(RuntimeError("boom"))

        assert cache.get(("a.png", "", False)) is None
        fresh = make_image(b"x")
        assert cache.store(("a.png", "", False), fresh) is fresh
        assert fresh.state is UploadState.PENDING

    def test_clear(self, cache, make_image):
        cache.store(("a.png", "", False), make_image())
        cache.clear()
        assert len(cache) == 0

    def test_bounded_least_recently_used(self, make_image):
        cache = ImageCache(max_entries=2)
        a, b, c = make_image(b"a"), make_image(b"b"), make_image(b"c")
        cache.store(("a.png", "", False), a)
        cache.store(("b.png", "", False), b)
        assert cache.get(("a.png", "", False)) is a

        cache.store(("c.png", "", False), c)

        assert len(cache) == 2
        assert cache.get(("b.png", "", False)) is None
        assert cache.get(("a.png", "", False)) is a
        assert cache.get(("c.png", "", False)) is c

    def test_evicted_content_is_forgotten(self, make_image):
        cache = ImageCache(max_entries=1)
        cache.store(("a.png", "", False), make_image(b"same"))
        cache.store(("b.png", "", False), make_image(b"other"))

        fresh = make_image(b"same")
        assert cache.store(("c.png", "", False), fresh) is fresh

    def test_shared_content_survives_eviction_of_one_source(self, make_image):
        cache = ImageCache(max_entries=2)
        first = cache.store(("a.png", "", False), make_image(b"same"))
        cache.store(("b.png", "", False), make_image(b"same"))
        cache.store(("c.png", "", False), make_image(b"other"))

        assert cache.get(("a.png", "", False)) is None
        assert cache.get(("b.png", "", False)) is first
        assert cache.store(("d.png", "", False), make_image(b"same")) is first

    def test_max_entries_validated(self):
        with pytest.raises(ValueError):
            ImageCache(max_entries=0)
