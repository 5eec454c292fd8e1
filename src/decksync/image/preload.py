"""Preloading the images already present on slides about to be updated.

Before an Update replaces a slide's images, the executor needs to know
which of them are already there: an image equivalent to one on the
current slide is kept in place instead of being uploaded again.

Loading runs on a bounded worker pool fed from a queue sized to the
number of images. Workers only produce results; after the pool is done a
single pass files every result under its ``(slide_index, image_index)``
slot, so no two coroutines ever write the same slide's list. The first
failure cancels the remaining workers and is raised as
:class:`~decksync.errors.DeckSyncPreloadError`, before any remote
mutation happens.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from decksync.errors import DeckSyncPreloadError
from decksync.models import Action, ActionType, PreloadedImage, RemoteImage
from decksync.observability import get_logger, resolve_metrics

_log = get_logger(__name__)

DEFAULT_PRELOAD_WORKERS = 4


@dataclass(frozen=True)
class _PreloadItem:
    slide_index: int
    image_index: int
    remote: RemoteImage


@dataclass(frozen=True)
class _PreloadResult:
    slide_index: int
    image_index: int
    image: PreloadedImage


def existing_slide_count(actions: list[Action]) -> int | None:
    """Number of slides on the remote before the plan runs, if the plan tells.

    Appends are numbered from the end of the current list, so the lowest
    Append index is the current length. Without Appends every Update
    targets an existing slide and ``None`` is returned.
    """
    appends = [a.index for a in actions if a.action_type is ActionType.APPEND]
    return min(appends) if appends else None


async def preload_current_images(
    document: Any,
    actions: list[Action],
    loader: Any,
    *,
    max_workers: int = DEFAULT_PRELOAD_WORKERS,
    metrics: Any | None = None,
) -> dict[int, list[PreloadedImage]]:
    """Load the current images of every slide targeted by an Update.

    Parameters
    ----------
    document:
        A :class:`~decksync.document.DocumentAPI`; only ``list_images``
        is used.
    actions:
        The plan about to be executed.
    loader:
        An :class:`~decksync.image.loader.ImageLoader`.
    max_workers:
        Size of the worker pool.
    metrics:
        Optional metrics backend.

    Returns
    -------
    dict[int, list[PreloadedImage]]
        Preloaded images per slide index, in on-slide order.

    Raises
    ------
    DeckSyncPreloadError
        If a slide's images could not be listed, or for the first image
        that could not be loaded.
    """
    existing = existing_slide_count(actions)
    targets = sorted({
        a.index
        for a in actions
        if a.action_type is ActionType.UPDATE
        and not a.slide.freeze
        and (existing is None or a.index < existing)
    })

    items: list[_PreloadItem] = []
    for slide_index in targets:
        try:
            remote_images = await document.list_images(slide_index)
        except Exception as exc:
            raise DeckSyncPreloadError(
                message=f"Failed to list images of slide {slide_index}: {exc}",
                context={"slide_index": slide_index},
                cause=exc,
            ) from exc
        items.extend(
            _PreloadItem(slide_index, image_index, remote)
            for image_index, remote in enumerate(remote_images)
        )

    preloaded: dict[int, list[PreloadedImage]] = {i: [] for i in targets}
    if not items:
        return preloaded

    queue: asyncio.Queue[_PreloadItem] = asyncio.Queue(maxsize=len(items))
    for item in items:
        queue.put_nowait(item)
    results: list[_PreloadResult] = []

    async def worker() -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                resource = await loader.load(item.remote.url, from_markdown=item.remote.from_markdown)
            except Exception as exc:
                raise DeckSyncPreloadError(
                    message=(
                        f"Failed to preload image {item.image_index} of slide "
                        f"{item.slide_index} from {item.remote.url}: {exc}"
                    ),
                    context={
                        "slide_index": item.slide_index,
                        "image_index": item.image_index,
                        "url": item.remote.url,
                    },
                    cause=exc,
                ) from exc
            results.append(_PreloadResult(
                item.slide_index,
                item.image_index,
                PreloadedImage(resource=resource, object_id=item.remote.object_id),
            ))

    workers = [asyncio.create_task(worker()) for _ in range(min(max_workers, len(items)))]
    try:
        await asyncio.wait(workers, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        for task in workers:
            if not task.done():
                task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

    for task in workers:
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()

    slots: dict[int, list[PreloadedImage | None]] = {
        i: [None] * sum(1 for item in items if item.slide_index == i) for i in targets
    }
    for result in results:
        slots[result.slide_index][result.image_index] = result.image
    for slide_index, images in slots.items():
        preloaded[slide_index] = [image for image in images if image is not None]

    resolve_metrics(metrics).increment("decksync.images_preloaded_total", len(results))
    _log.debug(
        "current images preloaded",
        extra={"extra_fields": {"op": "preload", "slides": len(targets), "images": len(results)}},
    )
    return preloaded
