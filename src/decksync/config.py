"""Configuration for decksync.

:class:`DeckSyncConfig` collects every tuneable knob of the planner, the
executor and the image pipeline. Instances are passed to
:class:`~decksync.client.AsyncDeckSyncClient` or directly to the lower
level components.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

DEFAULT_USER_AGENT = "decksync (+https://github.com/decksync/decksync)"
"""``User-Agent`` header sent when fetching images over HTTP."""

DEFAULT_WORKERS = 4


@dataclass
class DeckSyncConfig:
    """Complete configuration for a decksync client.

    Every parameter has a default, so ``DeckSyncConfig()`` is valid.

    Parameters
    ----------
    preload_max_workers:
        Size of the worker pool that loads images already present on the
        remote slides being updated.
    upload_max_workers:
        Size of the worker pool that uploads new images to storage.
    matcher_max_iterations:
        Cap on the optimal matcher's cover/adjust loop. ``None`` means
        ``n * n`` for an ``n``-slide problem. When the cap is hit the
        greedy assignment is used instead and a warning is logged.
    upload_failure_policy:
        What happens when an image referenced by an Append or Update
        failed to upload.

        * ``"raise"`` -- the action fails with
          :class:`~decksync.errors.DeckSyncActionError`.
        * ``"skip"`` -- the image is dropped from that call and a warning
          is recorded.
    cleanup_uploads:
        Delete the temporary storage copies of uploaded images once the
        plan has been applied (or has failed).
    default_layout:
        Layout assigned to desired slides that declare none.
    default_title_layout:
        Layout assigned to the first desired slide when it declares none.
        Falls back to ``default_layout`` when empty.
    image_fetch_timeout_seconds:
        HTTP timeout for fetching images by URL.
    user_agent:
        ``User-Agent`` header used for image fetches.
    metrics:
        Optional :class:`~decksync.observability.MetricsHook` backend.
    debug_dump_plan:
        Write the action plan to *stderr* before it is applied.
    """

    # ── Worker pools ────────────────────────────────────────────────────
    preload_max_workers: int = DEFAULT_WORKERS

    upload_max_workers: int = DEFAULT_WORKERS

    # ── Matching ────────────────────────────────────────────────────────
    matcher_max_iterations: int | None = None

    # ── Images ──────────────────────────────────────────────────────────
    upload_failure_policy: Literal["raise", "skip"] = "raise"

    cleanup_uploads: bool = True

    image_fetch_timeout_seconds: float = 30.0

    user_agent: str = DEFAULT_USER_AGENT

    # ── Layout defaults ─────────────────────────────────────────────────
    default_layout: str = ""

    default_title_layout: str = ""

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    # ── Debug ───────────────────────────────────────────────────────────
    debug_dump_plan: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.preload_max_workers < 1:
            raise ValueError(f"preload_max_workers must be >= 1, got {self.preload_max_workers}")
        if self.upload_max_workers < 1:
            raise ValueError(f"upload_max_workers must be >= 1, got {self.upload_max_workers}")
        if self.matcher_max_iterations is not None and self.matcher_max_iterations < 1:
            raise ValueError(
                f"matcher_max_iterations must be >= 1 or None, got {self.matcher_max_iterations}"
            )
        if self.upload_failure_policy not in ("raise", "skip"):
            raise ValueError(
                "upload_failure_policy must be 'raise' or 'skip', "
                f"got {self.upload_failure_policy!r}"
            )
        if self.image_fetch_timeout_seconds <= 0:
            raise ValueError(
                f"image_fetch_timeout_seconds must be > 0, got {self.image_fetch_timeout_seconds}"
            )

    def layout_for(self, position: int) -> str:
        """Return the default layout for a desired slide at *position* (0-based)."""
        if position == 0 and self.default_title_layout:
            return self.default_title_layout
        return self.default_layout
