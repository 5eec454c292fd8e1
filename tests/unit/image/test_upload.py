"""Tests for upload selection and the UploadPipeline."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

from decksync.config import DeckSyncConfig
from decksync.errors import DeckSyncStorageError, DeckSyncUploadError
from decksync.image.upload import UploadPipeline, images_to_upload
from decksync.models import Action, ActionType, PreloadedImage, Slide, UploadState
from decksync.storage import MemoryStorage

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _append(index: int, *images) -> Action:
    return Action(action_type=ActionType.APPEND, index=index, slide=Slide(images=list(images)))


def _update(index: int, *images, freeze: bool = False) -> Action:
    return Action(
        action_type=ActionType.UPDATE, index=index, slide=Slide(images=list(images), freeze=freeze),
    )


def _failing_storage(error: Exception) -> MagicMock:
    storage = MagicMock()
    storage.upload = AsyncMock(side_effect=error)
    storage.delete = AsyncMock()
    return storage


# =========================================================================
# Selection
# =========================================================================


class TestImagesToUpload:
    def test_each_resource_once(self, make_image):
        shared = make_image(b"shared")
        other = make_image(b"other")
        actions = [_append(0, shared, other), _append(1, shared)]
        assert images_to_upload(actions, {}) == [shared, other]

    def test_skips_public_and_in_flight(self, make_image):
        public = make_image(b"p", source="https://example.com/p.png")
        in_flight = make_image(b"f")
        in_flight.start_upload()
        assert images_to_upload([_append(0, public, in_flight)], {}) == []

    def test_skips_images_already_on_the_slide(self, make_image):
        current = make_image(b"logo")
        desired = make_image(b"logo")
        preloaded = {0: [PreloadedImage(resource=current, object_id="el-1")]}
        assert images_to_upload([_update(0, desired)], preloaded) == []

    def test_preloaded_only_applies_to_its_slide(self, make_image):
        preloaded = {0: [PreloadedImage(resource=make_image(b"logo"), object_id="el-1")]}
        desired = make_image(b"logo")
        assert images_to_upload([_update(1, desired)], preloaded) == [desired]

    def test_appends_never_reuse(self, make_image):
        preloaded = {0: [PreloadedImage(resource=make_image(b"logo"), object_id="el-1")]}
        desired = make_image(b"logo")
        assert images_to_upload([_append(0, desired)], preloaded) == [desired]

    def test_frozen_updates_are_ignored(self, make_image):
        assert images_to_upload([_update(0, make_image(), freeze=True)], {}) == []

    def test_expired_needs_upload_again(self, make_image):
        image = make_image()
        image.start_upload()
        image.complete("memory://1", "1")
        image.expire()
        assert images_to_upload([_append(0, image)], {}) == [image]

    def test_moves_and_deletes_ignored(self):
        actions = [
            Action(action_type=ActionType.DELETE, index=0),
            Action(action_type=ActionType.MOVE, index=0, move_to_index=1),
        ]
        assert images_to_upload(actions, {}) == []


# =========================================================================
# Pipeline
# =========================================================================


class TestUploadPipeline:
    async def test_start_claims_synchronously(self, make_image):
        image = make_image()
        pipeline = UploadPipeline(MemoryStorage(), DeckSyncConfig())
        claimed = pipeline.start([_append(0, image)], {})

        assert claimed == [image]
        assert image.state is UploadState.UPLOADING
        await pipeline.wait()
        assert image.state is UploadState.UPLOADED
        assert pipeline.uploaded == [image]

    async def test_nothing_to_upload(self):
        pipeline = UploadPipeline(MemoryStorage())
        assert pipeline.start([], {}) == []
        await pipeline.wait()
        await pipeline.cleanup()
        assert pipeline.uploaded == []

    async def test_bytes_and_mime_reach_storage(self, make_image):
        storage = MemoryStorage()
        image = make_image(b"payload")
        pipeline = UploadPipeline(storage)
        pipeline.start([_append(0, image)], {})
        await pipeline.wait()

        assert storage.objects[image.resource_id] == (image.data, "image/png")
        assert image.public_url == f"memory://{image.resource_id}"

    async def test_worker_pool_is_bounded(self, make_image):
        in_flight = 0
        peak = 0

        class SlowStorage:
            async def upload(self, data, mime_type):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.001)
                in_flight -= 1
                return f"memory://{len(data)}", str(id(data))

            async def delete(self, resource_id):
                pass

        images = [make_image(bytes([i])) for i in range(6)]
        pipeline = UploadPipeline(SlowStorage(), DeckSyncConfig(upload_max_workers=2))
        pipeline.start([_append(0, *images)], {})
        await pipeline.wait()
        assert peak == 2
        assert len(pipeline.uploaded) == 6

    async def test_failure_recorded_on_resource(self, make_image, metrics):
        error = DeckSyncStorageError(message="bucket gone")
        storage = _failing_storage(error)
        image = make_image()
        pipeline = UploadPipeline(storage, DeckSyncConfig(metrics=metrics))
        pipeline.start([_append(0, image)], {})

        # The pipeline itself never raises.
        await pipeline.wait()

        assert image.state is UploadState.FAILED
        assert image.error is error
        assert metrics.total("decksync.upload_failure_total") == 1
        storage.delete.assert_not_awaited()

    async def test_partial_upload_is_discarded(self, make_image):
        storage = _failing_storage(DeckSyncStorageError(
            message="empty public URL",
            context={"operation": "upload", "resource_id": "orphan-7"},
        ))
        pipeline = UploadPipeline(storage)
        pipeline.start([_append(0, make_image())], {})
        await pipeline.wait()
        storage.delete.assert_awaited_once_with("orphan-7")

    async def test_empty_url_from_storage_fails_and_discards(self, make_image):
        storage = MagicMock()
        storage.upload = AsyncMock(return_value=("", "res-9"))
        storage.delete = AsyncMock()
        image = make_image()
        pipeline = UploadPipeline(storage)
        pipeline.start([_append(0, image)], {})
        await pipeline.wait()

        assert image.state is UploadState.FAILED
        assert isinstance(image.error, DeckSyncStorageError)
        storage.delete.assert_awaited_once_with("res-9")

    async def test_no_storage_fails_every_upload(self, make_image):
        image = make_image()
        pipeline = UploadPipeline(None)
        pipeline.start([_append(0, image)], {})
        await pipeline.wait()

        assert image.state is UploadState.FAILED
        assert isinstance(image.error, DeckSyncUploadError)

    async def test_success_metric(self, make_image, metrics):
        pipeline = UploadPipeline(MemoryStorage(), DeckSyncConfig(metrics=metrics))
        pipeline.start([_append(0, make_image(b"1"), make_image(b"2"))], {})
        await pipeline.wait()
        assert metrics.total("decksync.upload_success_total") == 2


class TestCleanup:
    async def test_deletes_and_expires(self, make_image):
        storage = MemoryStorage()
        image = make_image()
        pipeline = UploadPipeline(storage)
        pipeline.start([_append(0, image)], {})

        await pipeline.cleanup()

        assert storage.objects == {}
        assert image.state is UploadState.EXPIRED
        assert pipeline.uploaded == []

    async def test_failed_delete_is_logged_and_kept(self, make_image):
        storage = MemoryStorage()
        image = make_image()
        pipeline = UploadPipeline(storage)
        pipeline.start([_append(0, image)], {})
        await pipeline.wait()
        # Someone else already removed the object.
        storage.objects.clear()

        await pipeline.cleanup()

        assert image.state is UploadState.UPLOADED
        assert pipeline.uploaded == [image]
