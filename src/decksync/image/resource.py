"""Image resources and their upload lifecycle.

An :class:`ImageResource` holds the bytes of one picture plus the state
of its temporary upload. Slides share resources by reference, so a
resource referenced from several slides (or several clones of a slide)
is uploaded at most once per pass.

Ownership rules:

* exactly one writer moves the resource through its states: the caller
  of :meth:`ImageResource.start_upload` hands it to a single upload
  worker, which calls :meth:`complete` or :meth:`fail`;
* any number of readers call :meth:`wait_url`, which blocks on an
  :class:`asyncio.Event` until the writer is done.
"""

from __future__ import annotations

import asyncio
import io

import imagehash
from PIL import Image

from decksync.errors import DeckSyncImageError, DeckSyncUploadError
from decksync.image.detect import SUPPORTED_MIMES, is_public_url, sniff_mime
from decksync.models import UploadState
from decksync.observability import get_logger
from decksync.utils.hashing import fingerprint

_log = get_logger(__name__)

#: Maximum Hamming distance (exclusive) between perceptual hashes of the
#: same picture.
PHASH_DISTANCE_THRESHOLD = 5


class ImageResource:
    """Bytes of one image plus its upload state machine.

    Valid transitions::

        PENDING    -> UPLOADING
        UPLOADING  -> UPLOADED | FAILED
        UPLOADED   -> EXPIRED
        EXPIRED    -> UPLOADING  (re-upload on a later pass)
        FAILED     -> (terminal)

    Parameters
    ----------
    data:
        Raw image bytes.
    mime_type:
        One of :data:`~decksync.image.detect.SUPPORTED_MIMES`.
    source:
        File path or URL the bytes came from, if any. A public URL is
        used directly and never uploaded.
    link:
        Hyperlink attached to the image on the slide.
    from_markdown:
        ``True`` when the image was declared by the user rather than
        placed on the slide by its layout.
    modified_at:
        File modification time, used by the image cache.
    """

    VALID_TRANSITIONS: dict[UploadState, set[UploadState]] = {
        UploadState.PENDING: {UploadState.UPLOADING},
        UploadState.UPLOADING: {UploadState.UPLOADED, UploadState.FAILED},
        UploadState.UPLOADED: {UploadState.EXPIRED},
        UploadState.EXPIRED: {UploadState.UPLOADING},
        UploadState.FAILED: set(),
    }

    def __init__(
        self,
        data: bytes,
        mime_type: str,
        *,
        source: str = "",
        link: str = "",
        from_markdown: bool = False,
        modified_at: float | None = None,
    ) -> None:
        if mime_type not in SUPPORTED_MIMES:
            raise DeckSyncImageError(
                message=f"Unsupported image MIME type: {mime_type}",
                context={"source": source, "reason": "unsupported_mime", "mime_type": mime_type},
            )
        self.data = data
        self.mime_type = mime_type
        self.source = source
        self.link = link
        self.from_markdown = from_markdown
        self.modified_at = modified_at
        self.fingerprint = fingerprint(data)
        self._phash: imagehash.ImageHash | None = None
        self._phash_computed = False

        self.state: UploadState = UploadState.PENDING
        self.public_url: str | None = source if is_public_url(source) else None
        self.resource_id: str | None = None
        self.error: Exception | None = None
        self._done: asyncio.Event | None = None

    @classmethod
    def from_bytes(cls, data: bytes, **kwargs) -> ImageResource:
        """Build a resource, detecting the MIME type from *data*."""
        mime = sniff_mime(data)
        if mime is None:
            raise DeckSyncImageError(
                message="Image data is not PNG, JPEG or GIF",
                context={"source": kwargs.get("source", ""), "reason": "unknown_format"},
            )
        return cls(data, mime, **kwargs)

    # ── Equivalence ─────────────────────────────────────────────────────

    def perceptual_hash(self) -> imagehash.ImageHash | None:
        """Perceptual hash of the decoded pixels, or ``None`` if undecodable.

        Computed on first use and cached on the resource.
        """
        if not self._phash_computed:
            self._phash_computed = True
            try:
                with Image.open(io.BytesIO(self.data)) as img:
                    self._phash = imagehash.phash(img)
            except Exception as exc:
                _log.debug(
                    "Perceptual hash unavailable",
                    extra={"extra_fields": {
                        "fingerprint": self.fingerprint,
                        "source": self.source,
                        "error": str(exc),
                    }},
                )
        return self._phash

    def equivalent(self, other: ImageResource) -> bool:
        """Same picture as *other*.

        MIME type and link must match. Equal fingerprints are enough;
        otherwise the perceptual hashes must be closer than
        :data:`PHASH_DISTANCE_THRESHOLD`. Images read back from the remote
        service are re-encoded, so their bytes rarely match.
        """
        if self.mime_type != other.mime_type or self.link != other.link:
            return False
        if self.fingerprint == other.fingerprint:
            return True
        mine, theirs = self.perceptual_hash(), other.perceptual_hash()
        if mine is None or theirs is None:
            return False
        return (mine - theirs) < PHASH_DISTANCE_THRESHOLD

    # ── State machine ───────────────────────────────────────────────────

    def transition(self, new_state: UploadState) -> None:
        """Move to *new_state*.

        Raises
        ------
        ValueError
            If the transition is not allowed from the current state.
        """
        allowed = self.VALID_TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid state transition: {self.state.value} -> {new_state.value} "
                f"for image {self.fingerprint}. "
                f"Allowed transitions from {self.state.value}: "
                f"{{{', '.join(s.value for s in allowed)}}}"
            )
        self.state = new_state

    @property
    def needs_upload(self) -> bool:
        """``True`` when no URL is available and no upload has been started."""
        return (
            self.state in (UploadState.PENDING, UploadState.EXPIRED)
            and self.public_url is None
        )

    def start_upload(self) -> None:
        """Claim the resource for an upload worker.

        Must be called synchronously, before the worker is scheduled, so
        that a second slide referencing the same resource sees it as
        in progress and does not upload it again.
        """
        self.transition(UploadState.UPLOADING)
        self.error = None
        self._done = asyncio.Event()

    def complete(self, public_url: str, resource_id: str) -> None:
        self.transition(UploadState.UPLOADED)
        self.public_url = public_url
        self.resource_id = resource_id
        if self._done is not None:
            self._done.set()

    def fail(self, error: Exception) -> None:
        self.transition(UploadState.FAILED)
        self.error = error
        if self._done is not None:
            self._done.set()

    def expire(self) -> None:
        """Forget the temporary upload after its storage copy was deleted."""
        self.transition(UploadState.EXPIRED)
        self.public_url = None
        self.resource_id = None

    async def wait_url(self) -> str:
        """Wait for the upload to finish and return the public URL.

        Raises
        ------
        DeckSyncUploadError
            If the upload failed, or if no URL is available and no upload
            was ever started.
        """
        if self.state is UploadState.UPLOADING and self._done is not None:
            await self._done.wait()

        if self.state is UploadState.FAILED:
            raise DeckSyncUploadError(
                message=f"Upload of image {self.source or self.fingerprint} failed: {self.error}",
                context=self._error_context(),
                cause=self.error,
            )
        if self.public_url is None:
            raise DeckSyncUploadError(
                message=f"Image {self.source or self.fingerprint} has no public URL",
                context=self._error_context(),
            )
        return self.public_url

    def _error_context(self) -> dict[str, str]:
        return {
            "source": self.source,
            "fingerprint": self.fingerprint,
            "state": self.state.value,
        }

    def __repr__(self) -> str:
        return (
            f"ImageResource(mime_type={self.mime_type!r}, source={self.source!r}, "
            f"fingerprint={self.fingerprint!r}, state={self.state.value!r})"
        )
