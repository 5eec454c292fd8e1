"""decksync -- reconcile a declared slide list onto a remote presentation.

Public re-exports
-----------------

* **Client:** :class:`AsyncDeckSyncClient`
* **Engine:** :func:`reconcile`, :class:`ReconcilePlanner`,
  :class:`AsyncPlanExecutor`, :func:`simulate`
* **Configuration:** :class:`DeckSyncConfig`
* **Interfaces:** :class:`DocumentAPI`, :class:`Storage` and their
  bundled implementations
* **Errors:** every :class:`DeckSyncError` subclass and :class:`ErrorCode`
* **Models:** slides, actions, results and enums

Usage::

    from decksync import Slide, reconcile

    before = [Slide(layout="title", titles=["Intro"]), Slide(layout="body", titles=["A"])]
    after = [Slide(layout="body", titles=["A"]), Slide(layout="title", titles=["Intro"])]
    actions = reconcile(before, after)   # a single Move
"""

from __future__ import annotations

# ── Client ──────────────────────────────────────────────────────────────
from decksync.client import AsyncDeckSyncClient

# ── Configuration ───────────────────────────────────────────────────────
from decksync.config import DeckSyncConfig

# ── Engine ──────────────────────────────────────────────────────────────
from decksync.diff import (
    MAX_SCORE,
    AsyncPlanExecutor,
    ReconcilePlanner,
    reconcile,
    simulate,
)

# ── Interfaces ──────────────────────────────────────────────────────────
from decksync.document import DocumentAPI, InMemoryDocument

# ── Errors ──────────────────────────────────────────────────────────────
from decksync.errors import (
    DeckSyncActionError,
    DeckSyncError,
    DeckSyncImageError,
    DeckSyncInvariantError,
    DeckSyncPreloadError,
    DeckSyncStorageError,
    DeckSyncUploadError,
    DeckSyncValidationError,
    ErrorCode,
)
from decksync.image import ImageLoader, ImageResource

# ── Models ──────────────────────────────────────────────────────────────
from decksync.models import (
    Action,
    ActionType,
    BlockQuote,
    Body,
    Bullet,
    ExecutionResult,
    ExecutionWarning,
    Fragment,
    Paragraph,
    RemoteImage,
    ResolvedImage,
    Slide,
    SlideMark,
    TrackedSlide,
    UploadState,
)
from decksync.storage import CommandStorage, MemoryStorage, Storage

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    # Client
    "AsyncDeckSyncClient",
    # Configuration
    "DeckSyncConfig",
    # Engine
    "MAX_SCORE",
    "AsyncPlanExecutor",
    "ReconcilePlanner",
    "reconcile",
    "simulate",
    # Interfaces
    "DocumentAPI",
    "InMemoryDocument",
    "Storage",
    "CommandStorage",
    "MemoryStorage",
    "ImageLoader",
    "ImageResource",
    # Errors
    "DeckSyncError",
    "ErrorCode",
    "DeckSyncInvariantError",
    "DeckSyncValidationError",
    "DeckSyncActionError",
    "DeckSyncPreloadError",
    "DeckSyncImageError",
    "DeckSyncUploadError",
    "DeckSyncStorageError",
    # Models
    "Slide",
    "Fragment",
    "Paragraph",
    "Body",
    "BlockQuote",
    "Bullet",
    "TrackedSlide",
    "SlideMark",
    "Action",
    "ActionType",
    "RemoteImage",
    "ResolvedImage",
    "ExecutionResult",
    "ExecutionWarning",
    "UploadState",
]

__version__ = "0.1.0"
