"""Plan executor: apply a reconciliation plan to a remote presentation.

Takes the actions produced by :class:`~decksync.diff.planner.ReconcilePlanner`
and issues one :class:`~decksync.document.DocumentAPI` call per action,
strictly in plan order. Around the mutations it runs the image pipeline:

1. preload the images already on slides about to be updated
   (fail-fast, before any mutation);
2. start the detached upload of every new image;
3. apply the actions, awaiting an image's upload only when the action
   that places it is reached;
4. delete the temporary uploads (also when a mutation failed).

There is no rollback and no retry: the first failing action stops the
run with :class:`~decksync.errors.DeckSyncActionError`, leaving every
earlier action applied.
"""

from __future__ import annotations

import json
import sys
import time
from collections import Counter
from typing import Any

from decksync.config import DeckSyncConfig
from decksync.diff.planner import check_phase_order
from decksync.errors import DeckSyncActionError
from decksync.image.loader import ImageLoader
from decksync.image.preload import preload_current_images
from decksync.image.upload import UploadPipeline
from decksync.models import (
    Action,
    ActionType,
    ExecutionResult,
    ExecutionWarning,
    PreloadedImage,
    ResolvedImage,
    Slide,
)
from decksync.observability import get_logger, resolve_metrics

_log = get_logger(__name__)


class AsyncPlanExecutor:
    """Apply action plans through a :class:`~decksync.document.DocumentAPI`.

    Parameters
    ----------
    document:
        The remote presentation.
    config:
        Worker pool sizes, upload failure policy, cleanup and debug flags.
    storage:
        Storage backend for new images. May be ``None`` when no plan will
        need an upload.
    loader:
        Loader for the images already on the remote slides. When omitted,
        one is created per :meth:`execute` call and closed afterwards.
    """

    def __init__(
        self,
        document: Any,
        config: DeckSyncConfig | None = None,
        *,
        storage: Any | None = None,
        loader: ImageLoader | None = None,
    ) -> None:
        self._document = document
        self._config = config if config is not None else DeckSyncConfig()
        self._storage = storage
        self._loader = loader
        self._metrics = resolve_metrics(self._config.metrics)

    async def execute(self, actions: list[Action]) -> ExecutionResult:
        """Apply *actions* in order.

        Parameters
        ----------
        actions:
            A plan in phase order (Append, Update, Delete descending,
            Move).

        Returns
        -------
        ExecutionResult
            Counts of applied and skipped actions plus warnings.

        Raises
        ------
        DeckSyncInvariantError
            If *actions* are not in phase order. Nothing is applied.
        DeckSyncPreloadError
            If a current image could not be loaded. Nothing is applied.
        DeckSyncActionError
            For the first action that failed.
        """
        check_phase_order(actions)
        self._log_plan(actions)

        result = ExecutionResult()
        if not actions:
            return result

        started = time.monotonic()
        loader = self._loader if self._loader is not None else ImageLoader(self._config)
        pipeline = UploadPipeline(self._storage, self._config)
        try:
            preloaded = await preload_current_images(
                self._document,
                actions,
                loader,
                max_workers=self._config.preload_max_workers,
                metrics=self._config.metrics,
            )
            pipeline.start(actions, preloaded)
            for position, action in enumerate(actions):
                await self._apply(position, action, preloaded, result)
            await pipeline.wait()
            result.images_uploaded = len(pipeline.uploaded)
        finally:
            if self._config.cleanup_uploads:
                await pipeline.cleanup()
            else:
                await pipeline.wait()
            if self._loader is None:
                await loader.close()
            self._metrics.timing(
                "decksync.execute_duration_ms", (time.monotonic() - started) * 1000,
            )

        _emit_action_metrics(self._metrics, actions, result)
        _log.info(
            "plan applied",
            extra={"extra_fields": {
                "op": "execute",
                "appended": result.appended,
                "updated": result.updated,
                "deleted": result.deleted,
                "moved": result.moved,
                "skipped": result.skipped,
                "images_uploaded": result.images_uploaded,
            }},
        )
        return result

    # ── single actions ──────────────────────────────────────────────────

    async def _apply(
        self,
        position: int,
        action: Action,
        preloaded: dict[int, list[PreloadedImage]],
        result: ExecutionResult,
    ) -> None:
        try:
            if action.action_type is ActionType.APPEND:
                if action.slide.freeze:
                    _log.info(
                        "appending blank slide for frozen page",
                        extra={"extra_fields": {"op": "execute", "index": action.index}},
                    )
                    await self._document.apply_append(
                        Slide(layout=action.slide.layout, freeze=True), [],
                    )
                else:
                    images = await self._resolve_images(action, [], result)
                    await self._document.apply_append(action.slide, images)
                result.appended += 1

            elif action.action_type is ActionType.UPDATE:
                if action.slide.freeze:
                    _log.info(
                        "skip updating frozen slide",
                        extra={"extra_fields": {"op": "execute", "index": action.index}},
                    )
                    result.skipped += 1
                    return
                images = await self._resolve_images(action, preloaded.get(action.index, []), result)
                await self._document.apply_update(action.index, action.slide, images)
                result.updated += 1

            elif action.action_type is ActionType.DELETE:
                await self._document.apply_delete(action.index)
                result.deleted += 1

            elif action.action_type is ActionType.MOVE:
                await self._document.apply_move(action.index, action.move_to_index)
                result.moved += 1

        except Exception as exc:
            raise DeckSyncActionError(
                message=(
                    f"{action.action_type.value} at index {action.index} "
                    f"(plan position {position}) failed: {exc}"
                ),
                context={
                    "action_type": action.action_type.value,
                    "index": action.index,
                    "move_to_index": action.move_to_index,
                    "position": position,
                },
                cause=exc,
            ) from exc

    async def _resolve_images(
        self,
        action: Action,
        current: list[PreloadedImage],
        result: ExecutionResult,
    ) -> list[ResolvedImage]:
        """Pair each payload image with an existing element or a public URL.

        Each existing element is reused at most once. Images without an
        equivalent element wait for their upload; a failed upload raises
        or is dropped depending on ``upload_failure_policy``.
        """
        available = list(current)
        resolved: list[ResolvedImage] = []
        for image in action.slide.images:
            match = next((p for p in available if image.equivalent(p.resource)), None)
            if match is not None:
                available.remove(match)
                resolved.append(ResolvedImage(resource=image, object_id=match.object_id))
                result.images_reused += 1
                continue
            try:
                url = await image.wait_url()
            except Exception as exc:
                if self._config.upload_failure_policy == "raise":
                    raise
                _log.warning(
                    "dropping image that failed to upload",
                    extra={"extra_fields": {
                        "op": "execute",
                        "index": action.index,
                        "source": image.source,
                        "error": str(exc),
                    }},
                )
                result.warnings.append(ExecutionWarning(
                    code="IMAGE_SKIPPED",
                    message=f"Image {image.source or image.fingerprint} was not placed: {exc}",
                    context={"index": action.index, "fingerprint": image.fingerprint},
                ))
                continue
            resolved.append(ResolvedImage(resource=image, url=url))
        return resolved

    # ── plan logging ────────────────────────────────────────────────────

    def _log_plan(self, actions: list[Action]) -> None:
        summary = describe_plan(actions)
        _log.info(
            "applying plan",
            extra={"extra_fields": {"op": "execute", "actions": len(actions), "plan": summary}},
        )
        if self._config.debug_dump_plan:
            print(json.dumps(summary, indent=2, ensure_ascii=False), file=sys.stderr)


def describe_plan(actions: list[Action]) -> list[dict[str, Any]]:
    """Structured summary of a plan: ``type``, ``titles``, ``index``, ``move_to_index``."""
    return [action.to_dict() for action in actions]


def _emit_action_metrics(metrics: Any, actions: list[Action], result: ExecutionResult) -> None:
    """Emit ``decksync.actions_total`` counters grouped by action type."""
    counts: Counter[str] = Counter(a.action_type.value for a in actions)
    if result.skipped:
        counts[ActionType.UPDATE.value] -= result.skipped
    for action_type, count in counts.items():
        if count:
            metrics.increment("decksync.actions_total", count, tags={"action_type": action_type})
    if result.skipped:
        metrics.increment(
            "decksync.actions_total", result.skipped, tags={"action_type": "skipped"},
        )
