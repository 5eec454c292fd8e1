"""Error hierarchy for decksync.

Every public error class inherits from :class:`DeckSyncError`. Each carries
a machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict and an optional
``cause`` (the wrapped exception, also set as ``__cause__``).

Errors raised while a plan is being applied always carry enough context
to tell which remote mutation failed; nothing is rolled back, so callers
use that context to decide how to recover.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error decksync can raise."""

    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    ACTION_FAILED = "ACTION_FAILED"
    PRELOAD_FAILED = "PRELOAD_FAILED"
    IMAGE_ERROR = "IMAGE_ERROR"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class DeckSyncError(Exception):
    """Base exception for all decksync errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Structured diagnostic detail. Keys are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Planning errors
# ---------------------------------------------------------------------------

class DeckSyncInvariantError(DeckSyncError):
    """An internal precondition of the reconciliation engine was broken.

    Raised for unequal list lengths handed to the matcher or the move
    sequencer, and for plans whose actions are out of phase order. This
    always indicates a bug, never bad user input.

    Context keys: ``stage``, ``before_len``, ``after_len``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.INVARIANT_VIOLATION,
            message=message,
            context=context,
            cause=cause,
        )


class DeckSyncValidationError(DeckSyncError):
    """Caller-supplied input was rejected (e.g. a page number out of range).

    Context keys: ``field``, ``value``, ``constraint``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Execution errors
# ---------------------------------------------------------------------------

class DeckSyncActionError(DeckSyncError):
    """A remote mutation failed while applying a plan.

    Execution stops at the first failure. Actions before ``position``
    have already been applied to the remote presentation.

    Context keys: ``action_type``, ``index``, ``move_to_index``,
    ``position``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.ACTION_FAILED,
            message=message,
            context=context,
            cause=cause,
        )


class DeckSyncPreloadError(DeckSyncError):
    """Loading an image already present on a remote slide failed.

    Raised before any mutation is issued.

    Context keys: ``slide_index``, ``image_index``, ``url``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.PRELOAD_FAILED,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Image / upload errors
# ---------------------------------------------------------------------------

class DeckSyncImageError(DeckSyncError):
    """An image could not be read, fetched, or has an unsupported type.

    Context keys: ``source``, ``reason``, ``status_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.IMAGE_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class DeckSyncUploadError(DeckSyncError):
    """An image upload did not produce a usable public URL.

    Recorded on the :class:`~decksync.image.resource.ImageResource` by
    the upload worker and re-raised to whoever awaits the resource.

    Context keys: ``source``, ``fingerprint``, ``state``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.UPLOAD_FAILED,
            message=message,
            context=context,
            cause=cause,
        )


class DeckSyncStorageError(DeckSyncError):
    """A storage backend call failed.

    When the bytes were already stored before the failure, the created
    resource ID is reported under ``resource_id`` so it can be deleted.

    Context keys: ``operation``, ``command``, ``exit_code``, ``stderr``,
    ``resource_id``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.STORAGE_ERROR,
            message=message,
            context=context,
            cause=cause,
        )
