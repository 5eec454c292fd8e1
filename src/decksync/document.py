"""The remote presentation as seen by the executor.

:class:`DocumentAPI` is the narrow, index-addressed interface the plan
executor drives; adapters for real presentation services implement it.
Request shapes, text styling and authentication live entirely behind it.

:class:`InMemoryDocument` is a complete implementation over a Python
list, used for dry runs and tests.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from decksync.models import RemoteImage, ResolvedImage, Slide


@runtime_checkable
class DocumentAPI(Protocol):
    """Index-addressed access to a remote presentation.

    Indices are 0-based positions in the presentation as it is at the
    moment of the call.
    """

    async def current_slides(self) -> list[Slide]:
        """Snapshot of the current slides, in order."""
        ...

    async def list_images(self, index: int) -> list[RemoteImage]:
        """Image elements currently on the slide at *index*, in on-slide order."""
        ...

    async def apply_append(self, slide: Slide, images: list[ResolvedImage]) -> None:
        """Add a slide rendering *slide* at the end of the presentation."""
        ...

    async def apply_update(self, index: int, slide: Slide, images: list[ResolvedImage]) -> None:
        """Make the slide at *index* render *slide*.

        Images with an ``object_id`` are existing elements of that slide
        to keep; the others are created from their ``url``. Existing image
        elements not listed are removed.
        """
        ...

    async def apply_move(self, index: int, to_index: int) -> None:
        """Move the slide at *index* so that it ends up at *to_index*."""
        ...

    async def apply_delete(self, index: int) -> None:
        """Delete the slide at *index*."""
        ...


class InMemoryDocument:
    """A :class:`DocumentAPI` over an in-memory slide list.

    Parameters
    ----------
    slides:
        Initial slides. Cloned on the way in.
    images:
        Image elements already present, per slide index.

    Attributes
    ----------
    calls:
        Every mutation received, as ``(name, *args)`` tuples.
    """

    def __init__(
        self,
        slides: list[Slide] | None = None,
        images: dict[int, list[RemoteImage]] | None = None,
    ) -> None:
        self.slides: list[Slide] = [s.clone() for s in slides or []]
        initial = images or {}
        self.images: list[list[RemoteImage]] = [list(initial.get(i, [])) for i in range(len(self.slides))]
        self.calls: list[tuple] = []
        self._next_element = 0

    async def current_slides(self) -> list[Slide]:
        return [s.clone() for s in self.slides]

    async def list_images(self, index: int) -> list[RemoteImage]:
        self._check_index(index)
        return list(self.images[index])

    async def apply_append(self, slide: Slide, images: list[ResolvedImage]) -> None:
        self.calls.append(("append", slide.titles))
        self.slides.append(self._render(slide, images))
        self.images.append(self._place(images, []))

    async def apply_update(self, index: int, slide: Slide, images: list[ResolvedImage]) -> None:
        self._check_index(index)
        self.calls.append(("update", index, slide.titles))
        self.slides[index] = self._render(slide, images)
        self.images[index] = self._place(images, self.images[index])

    async def apply_move(self, index: int, to_index: int) -> None:
        self._check_index(index)
        self._check_index(to_index)
        self.calls.append(("move", index, to_index))
        self.slides.insert(to_index, self.slides.pop(index))
        self.images.insert(to_index, self.images.pop(index))

    async def apply_delete(self, index: int) -> None:
        self._check_index(index)
        self.calls.append(("delete", index))
        del self.slides[index]
        del self.images[index]

    # ── helpers ─────────────────────────────────────────────────────────

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.slides):
            raise IndexError(f"slide index {index} out of range (0..{len(self.slides) - 1})")

    @staticmethod
    def _render(slide: Slide, images: list[ResolvedImage]) -> Slide:
        rendered = slide.clone()
        rendered.images = [image.resource for image in images]
        return rendered

    def _place(self, images: list[ResolvedImage], existing: list[RemoteImage]) -> list[RemoteImage]:
        by_id = {element.object_id: element for element in existing}
        placed: list[RemoteImage] = []
        for image in images:
            if image.object_id is not None:
                if image.object_id not in by_id:
                    raise KeyError(f"image element {image.object_id} is not on this slide")
                placed.append(by_id[image.object_id])
                continue
            self._next_element += 1
            placed.append(RemoteImage(
                url=image.url or "",
                object_id=f"image-{self._next_element}",
                from_markdown=image.resource.from_markdown,
            ))
        return placed
