"""Asynchronous decksync client.

:class:`AsyncDeckSyncClient` ties the planner and the executor together:
it reads the current slides, builds the desired list, computes the plan
and applies it.

Usage::

    import asyncio
    from decksync import AsyncDeckSyncClient, CommandStorage

    async def main():
        storage = CommandStorage("upload-image --type {{mime}}", "delete-image {{id}}")
        async with AsyncDeckSyncClient(document, storage=storage) as client:
            result = await client.apply(slides)
            print(result.updated, result.moved)

    asyncio.run(main())
"""

from __future__ import annotations

from typing import Any

from decksync.config import DeckSyncConfig
from decksync.diff.executor import AsyncPlanExecutor
from decksync.diff.planner import ReconcilePlanner
from decksync.errors import DeckSyncValidationError
from decksync.image.loader import ImageLoader
from decksync.models import Action, ExecutionResult, Slide
from decksync.observability import get_logger

_log = get_logger(__name__)


class AsyncDeckSyncClient:
    """Reconcile slide lists onto a remote presentation.

    Parameters
    ----------
    document:
        The remote presentation, a :class:`~decksync.document.DocumentAPI`.
    storage:
        Temporary image storage, a :class:`~decksync.storage.Storage`.
        Only needed when new images must be uploaded.
    loader:
        Image loader for the current remote images. Created on demand
        and closed by :meth:`close` when omitted.
    **kwargs:
        Forwarded to :class:`~decksync.config.DeckSyncConfig`.
    """

    def __init__(
        self,
        document: Any,
        *,
        storage: Any | None = None,
        loader: ImageLoader | None = None,
        **kwargs: Any,
    ) -> None:
        self._config = DeckSyncConfig(**kwargs)
        self._document = document
        self._owns_loader = loader is None
        self._loader = loader if loader is not None else ImageLoader(self._config)
        self._planner = ReconcilePlanner(self._config)
        self._executor = AsyncPlanExecutor(
            document, self._config, storage=storage, loader=self._loader,
        )

    @property
    def config(self) -> DeckSyncConfig:
        return self._config

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def plan(self, slides: list[Slide]) -> list[Action]:
        """Return the plan that would make the presentation match *slides*."""
        current = await self._document.current_slides()
        return self._planner.plan(current, self._with_default_layouts(slides))

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    async def apply(self, slides: list[Slide]) -> ExecutionResult:
        """Make the presentation match *slides* exactly."""
        current = await self._document.current_slides()
        desired = self._with_default_layouts(slides)
        return await self._reconcile_and_execute(current, desired)

    async def apply_pages(self, slides: list[Slide], pages: list[int]) -> ExecutionResult:
        """Apply only the given 1-based *pages* of *slides*.

        Unselected positions keep their current remote slide. The desired
        list is truncated to ``len(slides)``, so remote slides beyond the
        end of *slides* are deleted.

        Raises
        ------
        DeckSyncValidationError
            If a page number is outside ``1..len(slides)``.
        """
        for page in pages:
            if page < 1 or page > len(slides):
                raise DeckSyncValidationError(
                    message=f"Invalid page number {page}: must be between 1 and {len(slides)}",
                    context={"field": "pages", "value": page, "constraint": f"1..{len(slides)}"},
                )

        current = await self._document.current_slides()
        desired = [slide.clone() for slide in current]
        for page in pages:
            index = page - 1
            slide = slides[index].clone()
            if not slide.layout:
                slide.layout = self._config.layout_for(index)
            if index < len(desired):
                desired[index] = slide
            else:
                desired.append(slide)
        desired = desired[: len(slides)]

        return await self._reconcile_and_execute(current, desired)

    async def _reconcile_and_execute(self, current: list[Slide], desired: list[Slide]) -> ExecutionResult:
        actions = self._planner.plan(current, desired)
        if not actions:
            _log.info(
                "presentation already up to date",
                extra={"extra_fields": {"op": "apply", "slides": len(desired)}},
            )
        return await self._executor.execute(actions)

    def _with_default_layouts(self, slides: list[Slide]) -> list[Slide]:
        desired: list[Slide] = []
        for index, slide in enumerate(slides):
            slide = slide.clone()
            if not slide.layout:
                slide.layout = self._config.layout_for(index)
            desired.append(slide)
        return desired

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the image loader if the client created it."""
        if self._owns_loader:
            await self._loader.close()

    async def __aenter__(self) -> AsyncDeckSyncClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
