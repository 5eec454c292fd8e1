"""Metrics hook protocol and the no-op default.

decksync reports counters and timings from the planner, the executor and
the image pipeline. Nothing is recorded unless a backend satisfying
:class:`MetricsHook` is passed as ``DeckSyncConfig.metrics``.

Emitted metric names:

* ``decksync.actions_total``            -- counter, tag ``action_type``
* ``decksync.images_preloaded_total``   -- counter
* ``decksync.upload_success_total``     -- counter
* ``decksync.upload_failure_total``     -- counter
* ``decksync.matcher_fallback_total``   -- counter
* ``decksync.execute_duration_ms``      -- timing
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol every metrics backend must satisfy.

    *tags* are string key/value pairs that the backend maps onto its own
    labelling scheme.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment the counter *name* by *value*."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration of *ms* milliseconds under *name*."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set the gauge *name* to *value*."""
        ...


class NoopMetricsHook:
    """Backend that discards every data point.

    Used whenever no backend is configured so call sites never need a
    ``None`` check.
    """

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass


def resolve_metrics(metrics: Any | None) -> Any:
    """Return *metrics*, or a :class:`NoopMetricsHook` when it is ``None``."""
    return metrics if metrics is not None else NoopMetricsHook()
