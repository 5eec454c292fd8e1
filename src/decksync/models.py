"""Data models for decksync.

Slides are plain dataclasses describing one page of a presentation. They
carry no reconciliation state: a planning pass wraps clones of them in
:class:`TrackedSlide` instead, so the caller's lists are never touched.

Slide equality is content equality, computed by :meth:`Slide.equals`:

* adjacent text fragments with identical styles are merged before
  comparison, and trailing newlines in fragment values are ignored;
* block quotes and images are compared as multisets (order does not
  matter);
* images compare by MIME type, link and fingerprint;
* the ``freeze`` flag is not content and is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from decksync.image.resource import ImageResource


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Bullet(str, Enum):
    """Bullet style of a paragraph."""

    NONE = ""
    DASH = "-"
    NUMBERED = "1"


class SlideMark(str, Enum):
    """Reconciliation marker attached to a slide for one planning pass."""

    KEPT = "kept"
    """An ordinary slide from the input list."""

    NEW = "new"
    """Padding added to ``before``; becomes an Append."""

    REMOVED = "removed"
    """Padding added to ``after`` (and its mapped ``before`` entry);
    becomes a Delete."""


class ActionType(str, Enum):
    """Kinds of remote mutation in a plan."""

    APPEND = "append"
    UPDATE = "update"
    MOVE = "move"
    DELETE = "delete"


class UploadState(str, Enum):
    """Lifecycle states of an :class:`~decksync.image.resource.ImageResource`."""

    PENDING = "pending"
    """No upload has been started."""

    UPLOADING = "uploading"
    """An upload worker owns the resource."""

    UPLOADED = "uploaded"
    """A public URL and storage resource ID are available."""

    FAILED = "failed"
    """The upload failed; the error is kept on the resource."""

    EXPIRED = "expired"
    """The temporary storage copy was deleted after the plan was applied.
    May go back to ``UPLOADING`` when the resource is needed again."""


# ---------------------------------------------------------------------------
# Slide content
# ---------------------------------------------------------------------------

@dataclass
class Fragment:
    """A run of text sharing one set of styles."""

    value: str
    bold: bool = False
    italic: bool = False
    link: str = ""
    code: bool = False
    style_name: str = ""

    def styles_equal(self, other: Fragment) -> bool:
        return (
            self.bold == other.bold
            and self.italic == other.italic
            and self.link == other.link
            and self.code == other.code
            and self.style_name == other.style_name
        )

    def clone(self) -> Fragment:
        return Fragment(
            value=self.value,
            bold=self.bold,
            italic=self.italic,
            link=self.link,
            code=self.code,
            style_name=self.style_name,
        )


def merge_fragments(fragments: list[Fragment]) -> list[Fragment]:
    """Join adjacent fragments whose styles are equal.

    Returns new :class:`Fragment` objects; the input is not modified.
    """
    merged: list[Fragment] = []
    for i, fragment in enumerate(fragments):
        if i > 0 and fragments[i - 1].styles_equal(fragment):
            merged[-1].value += fragment.value
            continue
        merged.append(fragment.clone())
    return merged


@dataclass
class Paragraph:
    """A paragraph of styled fragments, optionally bulleted."""

    fragments: list[Fragment] = field(default_factory=list)
    bullet: Bullet = Bullet.NONE
    nesting: int = 0

    def key(self) -> tuple:
        """Comparison key: bullet, nesting and merged, newline-trimmed fragments."""
        return (
            Bullet(self.bullet).value,
            self.nesting,
            tuple(
                (f.value.rstrip("\n"), f.bold, f.italic, f.link, f.code, f.style_name)
                for f in merge_fragments(self.fragments)
            ),
        )

    def text(self) -> str:
        return "".join(f.value for f in self.fragments)

    def clone(self) -> Paragraph:
        return Paragraph(
            fragments=[f.clone() for f in self.fragments],
            bullet=self.bullet,
            nesting=self.nesting,
        )


@dataclass
class Body:
    """A body placeholder: an ordered list of paragraphs."""

    paragraphs: list[Paragraph] = field(default_factory=list)

    def key(self) -> tuple:
        return tuple(p.key() for p in self.paragraphs)

    def text(self) -> str:
        return "\n".join(p.text() for p in self.paragraphs)

    def clone(self) -> Body:
        return Body(paragraphs=[p.clone() for p in self.paragraphs])


@dataclass
class BlockQuote:
    """A block quote with its own paragraphs and nesting depth."""

    paragraphs: list[Paragraph] = field(default_factory=list)
    nesting: int = 0

    def key(self) -> tuple:
        return (self.nesting, tuple(p.key() for p in self.paragraphs))

    def clone(self) -> BlockQuote:
        return BlockQuote(
            paragraphs=[p.clone() for p in self.paragraphs],
            nesting=self.nesting,
        )


def bodies_equal(a: list[Body], b: list[Body]) -> bool:
    """Ordered comparison of body lists."""
    return [body.key() for body in a] == [body.key() for body in b]


def block_quotes_equal(a: list[BlockQuote], b: list[BlockQuote]) -> bool:
    """Order-insensitive comparison of block quote lists."""
    return sorted(q.key() for q in a) == sorted(q.key() for q in b)


def images_equivalent(a: list[ImageResource], b: list[ImageResource]) -> bool:
    """Order-insensitive comparison of image lists.

    Both lists are sorted by link and fingerprint, then compared pairwise
    with :meth:`ImageResource.equivalent`.
    """
    if len(a) != len(b):
        return False

    def order(image: ImageResource) -> tuple[str, str]:
        return (image.link, image.fingerprint)

    return all(x.equivalent(y) for x, y in zip(sorted(a, key=order), sorted(b, key=order)))


@dataclass(eq=False)
class Slide:
    """One page of a presentation.

    ``images`` holds shared :class:`~decksync.image.resource.ImageResource`
    references: :meth:`clone` copies the list but never the resources, so
    a resource's upload state is visible from every clone.
    """

    layout: str = ""
    titles: list[str] = field(default_factory=list)
    subtitles: list[str] = field(default_factory=list)
    bodies: list[Body] = field(default_factory=list)
    block_quotes: list[BlockQuote] = field(default_factory=list)
    images: list[ImageResource] = field(default_factory=list)
    speaker_note: str = ""
    freeze: bool = False

    def equals(self, other: Slide) -> bool:
        """Content equality. ``freeze`` is ignored."""
        return (
            self.layout == other.layout
            and self.titles == other.titles
            and self.subtitles == other.subtitles
            and bodies_equal(self.bodies, other.bodies)
            and images_equivalent(self.images, other.images)
            and block_quotes_equal(self.block_quotes, other.block_quotes)
            and self.speaker_note == other.speaker_note
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Slide):
            return NotImplemented
        return self.equals(other)

    __hash__ = None  # type: ignore[assignment]

    def clone(self) -> Slide:
        return Slide(
            layout=self.layout,
            titles=list(self.titles),
            subtitles=list(self.subtitles),
            bodies=[b.clone() for b in self.bodies],
            block_quotes=[q.clone() for q in self.block_quotes],
            images=list(self.images),
            speaker_note=self.speaker_note,
            freeze=self.freeze,
        )

    def __repr__(self) -> str:
        return f"Slide(layout={self.layout!r}, titles={self.titles!r}, images={len(self.images)})"


# ---------------------------------------------------------------------------
# Planning types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrackedSlide:
    """A slide wrapped with its reconciliation marker for one planning pass."""

    slide: Slide
    mark: SlideMark = SlideMark.KEPT

    @property
    def is_new(self) -> bool:
        return self.mark is SlideMark.NEW

    @property
    def is_removed(self) -> bool:
        return self.mark is SlideMark.REMOVED


@dataclass(frozen=True)
class Action:
    """One remote mutation.

    Attributes
    ----------
    action_type:
        The kind of mutation.
    index:
        Target position for Append/Update/Delete, source position for Move.
    move_to_index:
        Destination position (Move only).
    slide:
        Payload for Append/Update. For Move/Delete it is a snapshot used
        only for logging.
    """

    action_type: ActionType
    index: int
    slide: Slide | None = None
    move_to_index: int | None = None

    def __post_init__(self) -> None:
        if self.action_type is ActionType.MOVE and self.move_to_index is None:
            raise ValueError("a move action requires move_to_index")
        if self.action_type is not ActionType.MOVE and self.move_to_index is not None:
            raise ValueError(f"{self.action_type.value} action cannot carry move_to_index")
        if self.action_type in (ActionType.APPEND, ActionType.UPDATE) and self.slide is None:
            raise ValueError(f"{self.action_type.value} action requires a slide payload")

    def to_dict(self) -> dict[str, Any]:
        """Summary used for plan logging and debug dumps."""
        return {
            "type": self.action_type.value,
            "titles": list(self.slide.titles) if self.slide is not None else [],
            "index": self.index,
            "move_to_index": self.move_to_index,
        }


# ---------------------------------------------------------------------------
# Image references on the remote side
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RemoteImage:
    """An image element already present on a remote slide."""

    url: str
    object_id: str
    from_markdown: bool = True


@dataclass(frozen=True)
class PreloadedImage:
    """A loaded remote image together with the element ID it lives in."""

    resource: ImageResource
    object_id: str


@dataclass(frozen=True)
class ResolvedImage:
    """An image ready to be placed by a remote mutation.

    Exactly one of ``object_id`` (reuse an existing element) and ``url``
    (create an element from a public URL) is set.
    """

    resource: ImageResource
    url: str | None = None
    object_id: str | None = None

    @property
    def reused(self) -> bool:
        return self.object_id is not None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class ExecutionWarning:
    """A non-fatal condition encountered while applying a plan."""

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    """Summary of an applied plan."""

    appended: int = 0
    updated: int = 0
    moved: int = 0
    deleted: int = 0
    skipped: int = 0
    images_uploaded: int = 0
    images_reused: int = 0
    warnings: list[ExecutionWarning] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.appended + self.updated + self.moved + self.deleted
