"""Uploading new images to temporary storage.

:class:`UploadPipeline` is started once per plan execution. ``start``
decides synchronously which images need an upload and claims each of
them (``PENDING``/``EXPIRED`` -> ``UPLOADING``) before any worker runs,
then schedules a detached task running a bounded worker pool. The
executor keeps issuing remote mutations meanwhile; an action that needs
an image URL awaits :meth:`ImageResource.wait_url`.

Upload failures are recorded on the resource, never raised by the pool
itself. They surface when a consumer awaits the resource.
"""

from __future__ import annotations

import asyncio
from typing import Any

from decksync.config import DeckSyncConfig
from decksync.errors import DeckSyncStorageError, DeckSyncUploadError
from decksync.image.resource import ImageResource
from decksync.models import Action, ActionType, PreloadedImage, UploadState
from decksync.observability import get_logger, resolve_metrics

_log = get_logger(__name__)


def images_to_upload(
    actions: list[Action],
    preloaded: dict[int, list[PreloadedImage]],
) -> list[ImageResource]:
    """Images referenced by Append/Update payloads that must be uploaded.

    An image that can take the place of an equivalent element already on
    the targeted slide is skipped (each element is claimed once), as is one
    that has a public URL or is already being uploaded. Each resource
    appears at most once.
    """
    selected: list[ImageResource] = []
    seen: set[int] = set()
    for action in actions:
        if action.action_type not in (ActionType.APPEND, ActionType.UPDATE) or action.slide.freeze:
            continue
        available = list(preloaded.get(action.index, [])) if action.action_type is ActionType.UPDATE else []
        for image in action.slide.images:
            claimed = next((p for p in available if image.equivalent(p.resource)), None)
            if claimed is not None:
                available.remove(claimed)
                continue
            if id(image) in seen or not image.needs_upload:
                continue
            seen.add(id(image))
            selected.append(image)
    return selected


class UploadPipeline:
    """Bounded, detached image uploads with post-run cleanup.

    Parameters
    ----------
    storage:
        A :class:`~decksync.storage.Storage` backend, or ``None`` when no
        storage is configured. Without storage every image that needs an
        upload fails with :class:`~decksync.errors.DeckSyncUploadError`.
    config:
        Supplies ``upload_max_workers`` and the metrics backend.
    """

    def __init__(self, storage: Any | None, config: DeckSyncConfig | None = None) -> None:
        self._storage = storage
        self._config = config if config is not None else DeckSyncConfig()
        self._metrics = resolve_metrics(self._config.metrics)
        self._task: asyncio.Task[None] | None = None
        self._uploaded: list[ImageResource] = []

    @property
    def uploaded(self) -> list[ImageResource]:
        """Resources this pipeline uploaded successfully."""
        return list(self._uploaded)

    def start(
        self,
        actions: list[Action],
        preloaded: dict[int, list[PreloadedImage]],
    ) -> list[ImageResource]:
        """Claim the images that need uploading and start the worker pool.

        Must be called from a running event loop. Returns the claimed
        resources; they are all ``UPLOADING`` when this returns.
        """
        resources = images_to_upload(actions, preloaded)
        for resource in resources:
            resource.start_upload()
        if resources:
            _log.info(
                "uploading images",
                extra={"extra_fields": {"op": "upload", "images": len(resources)}},
            )
            self._task = asyncio.create_task(self._run(resources))
        return resources

    async def _run(self, resources: list[ImageResource]) -> None:
        queue: asyncio.Queue[ImageResource] = asyncio.Queue(maxsize=len(resources))
        for resource in resources:
            queue.put_nowait(resource)

        async def worker() -> None:
            while True:
                try:
                    resource = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await self._upload_one(resource)

        workers = min(self._config.upload_max_workers, len(resources))
        await asyncio.gather(*(worker() for _ in range(workers)))

    async def _upload_one(self, resource: ImageResource) -> None:
        if self._storage is None:
            resource.fail(DeckSyncUploadError(
                message=f"No storage configured to upload image {resource.source or resource.fingerprint}",
                context={"source": resource.source, "fingerprint": resource.fingerprint},
            ))
            self._metrics.increment("decksync.upload_failure_total", tags={"reason": "no_storage"})
            return

        try:
            url, resource_id = await self._storage.upload(resource.data, resource.mime_type)
            if not url:
                raise DeckSyncStorageError(
                    message="Storage returned an empty public URL",
                    context={"operation": "upload", "resource_id": resource_id},
                )
        except asyncio.CancelledError:
            resource.fail(DeckSyncUploadError(
                message="Upload was cancelled",
                context={"source": resource.source, "fingerprint": resource.fingerprint},
            ))
            raise
        except Exception as exc:
            await self._discard_partial(exc)
            resource.fail(exc)
            self._metrics.increment("decksync.upload_failure_total", tags={"reason": "storage_error"})
            _log.warning(
                "image upload failed",
                extra={"extra_fields": {
                    "op": "upload",
                    "source": resource.source,
                    "fingerprint": resource.fingerprint,
                    "error": str(exc),
                }},
            )
            return

        resource.complete(url, resource_id)
        self._uploaded.append(resource)
        self._metrics.increment("decksync.upload_success_total")

    async def _discard_partial(self, exc: Exception) -> None:
        """Delete bytes a storage call stored before failing, if it reported them."""
        resource_id = getattr(exc, "context", {}).get("resource_id")
        if not resource_id or self._storage is None:
            return
        try:
            await self._storage.delete(resource_id)
        except Exception as delete_exc:
            _log.warning(
                "failed to delete partially uploaded image",
                extra={"extra_fields": {"op": "upload", "resource_id": resource_id, "error": str(delete_exc)}},
            )

    async def wait(self) -> None:
        """Wait until every started upload has finished."""
        if self._task is not None:
            await self._task

    async def cleanup(self) -> None:
        """Delete every uploaded temporary copy and mark it ``EXPIRED``.

        Deletions run with the same concurrency bound as uploads. A failed
        deletion is logged and the resource is left ``UPLOADED``.
        """
        await self.wait()
        uploaded = [r for r in self._uploaded if r.state is UploadState.UPLOADED]
        if not uploaded or self._storage is None:
            return

        semaphore = asyncio.Semaphore(self._config.upload_max_workers)

        async def delete_one(resource: ImageResource) -> None:
            async with semaphore:
                try:
                    await self._storage.delete(resource.resource_id)
                except Exception as exc:
                    _log.warning(
                        "failed to delete uploaded image",
                        extra={"extra_fields": {
                            "op": "cleanup",
                            "resource_id": resource.resource_id,
                            "error": str(exc),
                        }},
                    )
                    return
                resource.expire()

        await asyncio.gather(*(delete_one(r) for r in uploaded))
        self._uploaded = [r for r in self._uploaded if r.state is UploadState.UPLOADED]
