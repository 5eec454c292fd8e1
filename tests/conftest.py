"""Shared test fixtures for the decksync test suite."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from decksync.config import DeckSyncConfig
from decksync.image.loader import ImageCache
from decksync.image.resource import ImageResource

PNG_HEADER = b"\x89PNG\r\n\x1a\n"


@pytest.fixture
def config() -> DeckSyncConfig:
    """Default configuration."""
    return DeckSyncConfig()


@pytest.fixture
def cache() -> ImageCache:
    """A private image cache so tests never share loaded images."""
    return ImageCache()


@pytest.fixture
def make_image() -> Callable[..., ImageResource]:
    """Factory for PNG resources; the payload makes the fingerprint unique."""

    def _make(payload: bytes = b"pixels", **kwargs) -> ImageResource:
        return ImageResource(PNG_HEADER + payload, "image/png", **kwargs)

    return _make


class RecordingMetrics:
    """Metrics backend that keeps every data point for assertions."""

    def __init__(self) -> None:
        self.increments: list[dict[str, Any]] = []
        self.timings: list[dict[str, Any]] = []
        self.gauges: list[dict[str, Any]] = []

    def increment(self, name: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        self.increments.append({"name": name, "value": value, "tags": tags})

    def timing(self, name: str, ms: float, tags: dict[str, str] | None = None) -> None:
        self.timings.append({"name": name, "ms": ms, "tags": tags})

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.gauges.append({"name": name, "value": value, "tags": tags})

    def total(self, name: str) -> int:
        return sum(i["value"] for i in self.increments if i["name"] == name)


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()
